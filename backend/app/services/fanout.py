"""
Event Fanout Engine

Delivers DomainEvents to every connection in the target rooms. Delivery
is a non-blocking enqueue onto each connection's outbox; a per-connection
sender task does the actual socket writes. Nothing here raises into the
caller: a business operation must never fail because of who happens to
be connected.
"""

from dataclasses import dataclass
from typing import FrozenSet, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging_config import logger
from app.models.account import AccountRole
from app.models.notification import Notification
from app.services.connection_registry import ConnectionRegistry
from app.services.events import DomainEvent, TargetKind, identity_of
from app.services.rooms import RoomTopology, topology as default_topology


@dataclass
class DeliveryReport:
    """Outcome of one fanout"""
    event_type: str
    rooms: FrozenSet[str] = frozenset()
    delivered: int = 0
    dropped: int = 0
    notification_id: Optional[str] = None
    rejected: bool = False


RECIPIENT_COLUMNS = {
    AccountRole.STUDENT: "student_id",
    AccountRole.VENDOR: "vendor_id",
    AccountRole.ADMIN: "admin_id",
}


class EventFanout:
    """Resolves rooms for an event and pushes it to their members"""

    def __init__(self, registry: ConnectionRegistry, topology: Optional[RoomTopology] = None):
        self.registry = registry
        self.topology = topology or default_topology

    def publish(
        self,
        event: DomainEvent,
        exclude: Optional[str] = None,
        notification_id: Optional[str] = None,
    ) -> DeliveryReport:
        """
        Enqueue the event on every member of its target rooms.

        A connection that belongs to several target rooms receives one copy.
        ``exclude`` skips one connection id (e.g. the sender of a presence
        change).
        """
        report = DeliveryReport(event_type=str(getattr(event.type, "value", event.type)))
        try:
            if event.event_type is None:
                logger.warning(
                    f"Dropping realtime event of unknown type '{event.type}'",
                    extra={"event_type": "realtime_unknown_type"}
                )
                report.rejected = True
                return report

            report.rooms = self.topology.resolve_targets(event)
            report.notification_id = notification_id
            message = event.to_wire(notification_id)

            seen = set()
            for room in sorted(report.rooms):
                for connection in self.registry.members(room):
                    if connection.connection_id in seen or connection.connection_id == exclude:
                        continue
                    seen.add(connection.connection_id)
                    if connection.enqueue(message):
                        report.delivered += 1
                    else:
                        report.dropped += 1
                        logger.warning(
                            f"Outbox full, dropped {report.event_type} for connection "
                            f"{connection.connection_id}",
                            extra={"event_type": "realtime_drop", "room": room}
                        )

            logger.log_realtime_event(
                report.event_type,
                delivered=report.delivered,
                rooms=sorted(report.rooms),
                dropped=report.dropped,
            )
        except Exception as e:
            logger.log_error_with_context(e, context="realtime publish", realtime_event=report.event_type)
        return report

    async def emit(
        self,
        event: DomainEvent,
        session: Optional[AsyncSession] = None,
        exclude: Optional[str] = None,
    ) -> DeliveryReport:
        """
        Persist a Notification for durable events (when a session is given),
        then publish. Persistence and delivery are independent: either may
        fail without affecting the other.
        """
        notification_id = None
        if session is not None and event.event_type is not None and event.is_durable:
            notification_id = await self._persist(event, session)
        return self.publish(event, exclude=exclude, notification_id=notification_id)

    def build_notification(self, event: DomainEvent) -> Notification:
        created_by_role, created_by_id = identity_of(event)
        notification = Notification(
            title=event.resolved_title,
            message=event.message,
            type=event.resolved_notification_type,
            event_type=event.event_type.value,
            created_by_id=created_by_id,
            created_by_role=created_by_role,
            related_offer_id=event.payload.get("offer_id"),
            related_coupon_id=event.payload.get("coupon_id"),
            extra=event.payload,
        )

        target = event.target
        if target.kind == TargetKind.ACCOUNT:
            setattr(notification, RECIPIENT_COLUMNS[target.role], target.account_id)
        elif target.kind == TargetKind.ROLE:
            notification.is_global = True
            notification.audience_role = target.role.value
        else:
            notification.is_global = True
            roles = self.topology.audience_roles(event)
            notification.audience_role = roles[0].value if len(roles) == 1 else None

        return notification

    async def _persist(self, event: DomainEvent, session: AsyncSession) -> Optional[str]:
        """Store the Notification in its own session on the caller's engine"""
        try:
            async with AsyncSession(session.bind, expire_on_commit=False) as own_session:
                notification = self.build_notification(event)
                own_session.add(notification)
                await own_session.commit()
                return str(notification.id)
        except Exception as e:
            logger.log_error_with_context(e, context="notification persist", realtime_event=str(event.type))
            return None
