"""
Message Service - free-form messages pushed through the realtime layer.

- admin message: to one account, to every account of a role, or to all
- student broadcast: admin announcement to every student
- vendor message: vendor to the admin team
"""

from typing import Any, Dict, Optional, Union

from app.core.exceptions import AccountNotFoundError, ValidationError
from app.core.logging_config import logger
from app.models.account import AccountRole
from app.services.account_store import AccountStore
from app.services.audit import record_admin_action
from app.services.events import Actor, DomainEvent, EventType, TargetSelector
from app.services.fanout import DeliveryReport, EventFanout


class MessageService:
    def __init__(self, session, fanout: EventFanout):
        self.session = session
        self.fanout = fanout

    async def send_admin_message(
        self,
        actor: Actor,
        message: str,
        title: Optional[str] = None,
        role: Optional[Union[AccountRole, str]] = None,
        account_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> DeliveryReport:
        """
        Direct message when ``account_id`` is given (``role`` required),
        role-wide when only ``role`` is given, everyone otherwise.
        """
        if account_id and role is None:
            raise ValidationError("role is required with account_id", field="role")

        if account_id:
            role = AccountRole(role)
            recipient = await AccountStore(self.session).find_by_id(role, account_id)
            if recipient is None:
                raise AccountNotFoundError(role.value, str(account_id))
            target = TargetSelector.account(role, account_id)
        elif role is not None:
            target = TargetSelector.role_wide(role)
        else:
            target = TargetSelector.everyone()

        record_admin_action(self.session, actor, "admin_message", target.kind.value,
                            account_id or (target.role.value if target.role else None),
                            {"title": title, "message": message})
        await self.session.commit()

        report = await self.fanout.emit(
            DomainEvent(
                type=EventType.ADMIN_MESSAGE,
                target=target,
                message=message,
                title=title or "Message from admin",
                payload={**(data or {}), "from": actor.name, "from_role": actor.role.value},
                actor=actor,
            ),
            session=self.session,
        )
        logger.info(f"Admin message from {actor.account_id} to {target.kind.value} "
                    f"reached {report.delivered} connection(s)")
        return report

    async def broadcast_to_students(
        self,
        actor: Actor,
        message: str,
        title: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> DeliveryReport:
        record_admin_action(self.session, actor, "student_broadcast", "student", None,
                            {"title": title, "message": message})
        await self.session.commit()

        return await self.fanout.emit(
            DomainEvent(
                type=EventType.STUDENT_BROADCAST,
                target=TargetSelector.everyone(),
                message=message,
                title=title or "Announcement",
                payload={**(data or {}), "from": actor.name},
                actor=actor,
            ),
            session=self.session,
        )

    async def send_vendor_message(
        self,
        vendor,
        message: str,
        title: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> DeliveryReport:
        return await self.fanout.emit(
            DomainEvent(
                type=EventType.VENDOR_MESSAGE,
                target=TargetSelector.role_wide(AccountRole.ADMIN),
                message=message,
                title=title or f"Message from {vendor.business_name or vendor.name}",
                payload={
                    **(data or {}),
                    "vendor_id": str(vendor.id),
                    "vendor_name": vendor.business_name or vendor.name,
                },
                actor=Actor(AccountRole.VENDOR, str(vendor.id), vendor.name),
            ),
            session=self.session,
        )
