"""
Room topology.

Room names are plain strings that must match exactly on join and on emit:

- ``role:self:{role}:{account_id}`` - one account's private room
- ``role:all:{role}``              - every connected vendor / admin
- ``broadcast:all-students``       - every connected student

Students never join ``role:all:student``; a role-wide student target
resolves to the broadcast room instead.
"""

from typing import Dict, FrozenSet, Tuple, Union

from app.models.account import AccountRole
from app.services.events import DomainEvent, EventType, TargetKind

ALL_STUDENTS_ROOM = "broadcast:all-students"


def private_room(role: Union[AccountRole, str], account_id: str) -> str:
    return f"role:self:{AccountRole(role).value}:{account_id}"


def shared_room(role: Union[AccountRole, str]) -> str:
    role = AccountRole(role)
    if role == AccountRole.STUDENT:
        return ALL_STUDENTS_ROOM
    return f"role:all:{role.value}"


# Audience of an "everyone" selector, per event type. Unlisted types reach every role.
ALL_AUDIENCE: Dict[EventType, Tuple[AccountRole, ...]] = {
    EventType.OFFER_CREATED: (AccountRole.STUDENT,),
    EventType.STUDENT_BROADCAST: (AccountRole.STUDENT,),
}


class RoomTopology:
    """Maps identities to the rooms they join and events to the rooms they reach"""

    def join_rooms_for(self, role: Union[AccountRole, str], account_id: str) -> FrozenSet[str]:
        return frozenset({private_room(role, account_id), shared_room(role)})

    def audience_roles(self, event: DomainEvent) -> Tuple[AccountRole, ...]:
        """Roles an ALL-targeted event is meant for"""
        return ALL_AUDIENCE.get(event.event_type, tuple(AccountRole))

    def resolve_targets(self, event: DomainEvent) -> FrozenSet[str]:
        target = event.target
        if target.kind == TargetKind.ACCOUNT:
            return frozenset({private_room(target.role, target.account_id)})
        if target.kind == TargetKind.ROLE:
            return frozenset({shared_room(target.role)})
        return frozenset(shared_room(role) for role in self.audience_roles(event))


topology = RoomTopology()
