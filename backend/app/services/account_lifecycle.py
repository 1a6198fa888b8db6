"""
Account Lifecycle State Machine

Three independent status dimensions per account:

┌──────────────────────────────────────────────────────────────┐
│  verification:  pending → verified | rejected  (re-reviewable) │
│  approval:      pending → approved | rejected  (re-decidable)  │
│  activation:    active ⇄ inactive,  unsuspended ⇄ suspended    │
└──────────────────────────────────────────────────────────────┘

Every transition:
1. parses the requested outcome before touching storage
2. applies one atomic field-set on the account row (last write wins)
3. stages an audit row and commits
4. emits the private notice to the account, then the admin-room summary

A missing account raises AccountNotFoundError and emits nothing.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Type, Union

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    AccountNotFoundError,
    InvalidTransitionError,
    PreconditionFailedError,
)
from app.core.logging_config import logger
from app.models.account import (
    AccountRole,
    ApprovalStatus,
    VerificationStatus,
    model_for_role,
)
from app.models.verification_document import VerificationDocument
from app.services.account_store import AccountStore
from app.services.audit import record_admin_action
from app.services.events import Actor, DomainEvent, EventType, TargetSelector
from app.services.fanout import EventFanout


class Transition(str, Enum):
    VERIFICATION = "verification"
    APPROVAL = "approval"
    SUSPEND = "suspend"
    UNSUSPEND = "unsuspend"
    DEACTIVATE = "deactivate"
    REACTIVATE = "reactivate"
    DELETE = "delete"


# Outcomes an admin may choose; "pending" is only ever the initial state
ALLOWED_OUTCOMES: Dict[Transition, set] = {
    Transition.VERIFICATION: {VerificationStatus.VERIFIED, VerificationStatus.REJECTED},
    Transition.APPROVAL: {ApprovalStatus.APPROVED, ApprovalStatus.REJECTED},
}


def parse_outcome(transition: Transition, outcome: Any, enum_cls: Type[Enum]):
    allowed = ALLOWED_OUTCOMES[transition]
    allowed_values = sorted(member.value for member in allowed)
    try:
        parsed = enum_cls(getattr(outcome, "value", outcome))
    except ValueError:
        raise InvalidTransitionError(transition.value, outcome, allowed_values)
    if parsed not in allowed:
        raise InvalidTransitionError(transition.value, outcome, allowed_values)
    return parsed


# ==================== Gates ====================

def can_authenticate(account) -> bool:
    """Login and every authenticated request require an active, unsuspended account"""
    return bool(account.is_active) and not account.is_suspended


def redemption_block_reason(account) -> Optional[str]:
    if account.role != AccountRole.STUDENT:
        return "only students can redeem offers"
    if not account.is_active:
        return "account is deactivated"
    if account.is_suspended:
        return "account is suspended"
    if account.approval_status != ApprovalStatus.APPROVED:
        return "account is not approved"
    return None


def can_redeem(account) -> bool:
    return redemption_block_reason(account) is None


@dataclass
class ApprovalPolicy:
    """
    Preconditions for approving an account.

    Approval always requires an active, unsuspended account. Requiring
    verified documents first is configurable.
    """
    requires_verification: bool = field(
        default_factory=lambda: settings.APPROVAL_REQUIRES_VERIFICATION
    )

    def check(self, account) -> None:
        if not account.is_active:
            raise PreconditionFailedError(
                "Cannot approve a deactivated account",
                details={"account_id": str(account.id)}
            )
        if account.is_suspended:
            raise PreconditionFailedError(
                "Cannot approve a suspended account",
                details={"account_id": str(account.id)}
            )
        if self.requires_verification and account.verification_status != VerificationStatus.VERIFIED:
            raise PreconditionFailedError(
                "Documents must be verified before the account can be approved",
                details={
                    "account_id": str(account.id),
                    "verification_status": account.verification_status.value,
                }
            )


# ==================== Messages ====================

VERIFICATION_MESSAGES = {
    VerificationStatus.VERIFIED: "Your documents have been verified",
    VerificationStatus.REJECTED: "Your document verification was rejected",
}

APPROVAL_MESSAGES = {
    ApprovalStatus.APPROVED: "Your account has been approved",
    ApprovalStatus.REJECTED: "Your account approval was rejected",
}


def with_remarks(message: str, remarks: Optional[str]) -> str:
    return f"{message}: {remarks}" if remarks else message


class AccountLifecycleService:
    """Applies admin transitions to accounts and announces them"""

    def __init__(
        self,
        session: AsyncSession,
        fanout: EventFanout,
        policy: Optional[ApprovalPolicy] = None,
    ):
        self.session = session
        self.fanout = fanout
        self.policy = policy or ApprovalPolicy()
        self.store = AccountStore(session)

    # ==================== Transitions ====================

    async def verify_documents(
        self,
        role: Union[AccountRole, str],
        account_id: str,
        outcome: Union[VerificationStatus, str],
        remarks: Optional[str] = None,
        actor: Optional[Actor] = None,
    ):
        status = parse_outcome(Transition.VERIFICATION, outcome, VerificationStatus)
        role = AccountRole(role)
        model = model_for_role(role)
        now = datetime.utcnow()

        fields = {
            "verification_status": status,
            "verification_remarks": remarks,
            "is_verified": status == VerificationStatus.VERIFIED,
            "verified_at": func.coalesce(model.verified_at, now)
            if status == VerificationStatus.VERIFIED else None,
        }
        account = await self._apply(role, account_id, fields)

        # Pending documents share the review outcome
        await self.session.execute(
            update(VerificationDocument)
            .where(
                VerificationDocument.account_id == str(account_id),
                VerificationDocument.role == role.value,
                VerificationDocument.status == VerificationStatus.PENDING,
            )
            .values(status=status, remarks=remarks, reviewed_at=now)
            .execution_options(synchronize_session=False)
        )

        payload = {
            "verification_status": status.value,
            "is_verified": account.is_verified,
            "remarks": remarks,
        }
        return await self._finish(
            Transition.VERIFICATION, account, actor, payload,
            EventType.ACCOUNT_VERIFICATION_CHANGED,
            with_remarks(VERIFICATION_MESSAGES[status], remarks),
            title="Verification update",
        )

    async def approve_account(
        self,
        role: Union[AccountRole, str],
        account_id: str,
        outcome: Union[ApprovalStatus, str],
        remarks: Optional[str] = None,
        actor: Optional[Actor] = None,
    ):
        status = parse_outcome(Transition.APPROVAL, outcome, ApprovalStatus)
        role = AccountRole(role)
        model = model_for_role(role)

        if status == ApprovalStatus.APPROVED:
            current = await self.store.find_by_id(role, account_id)
            if current is None:
                raise AccountNotFoundError(role.value, str(account_id))
            self.policy.check(current)

        fields = {
            "approval_status": status,
            "approval_remarks": remarks,
            # First approval stamps the time; repeats keep it
            "approved_at": func.coalesce(model.approved_at, datetime.utcnow())
            if status == ApprovalStatus.APPROVED else None,
        }
        account = await self._apply(role, account_id, fields)

        payload = {
            "approval_status": status.value,
            "remarks": remarks,
            "approved_at": account.approved_at.isoformat() if account.approved_at else None,
        }
        return await self._finish(
            Transition.APPROVAL, account, actor, payload,
            EventType.ACCOUNT_APPROVAL_CHANGED,
            with_remarks(APPROVAL_MESSAGES[status], remarks),
            title="Account approval update",
        )

    async def suspend(self, role, account_id: str, reason: Optional[str] = None,
                      actor: Optional[Actor] = None):
        role = AccountRole(role)
        self._refuse_self(Transition.SUSPEND, role, account_id, actor)
        model = model_for_role(role)
        account = await self._apply(role, account_id, {
            "is_suspended": True,
            "suspension_reason": reason,
            "suspended_at": func.coalesce(model.suspended_at, datetime.utcnow()),
        })
        account = await self._finish(
            Transition.SUSPEND, account, actor,
            {"is_suspended": True, "reason": reason},
            EventType.ACCOUNT_SUSPENSION_CHANGED,
            with_remarks("Your account has been suspended", reason),
            title="Account suspended",
        )
        self.fanout.registry.evict_account(str(account.id), reason="Account suspended")
        return account

    async def unsuspend(self, role, account_id: str, actor: Optional[Actor] = None):
        role = AccountRole(role)
        account = await self._apply(role, account_id, {
            "is_suspended": False,
            "suspension_reason": None,
            "suspended_at": None,
        })
        return await self._finish(
            Transition.UNSUSPEND, account, actor,
            {"is_suspended": False, "reason": None},
            EventType.ACCOUNT_SUSPENSION_CHANGED,
            "Your account suspension has been lifted",
            title="Account reinstated",
        )

    async def deactivate(self, role, account_id: str, reason: Optional[str] = None,
                         actor: Optional[Actor] = None):
        role = AccountRole(role)
        self._refuse_self(Transition.DEACTIVATE, role, account_id, actor)
        account = await self._apply(role, account_id, {"is_active": False})
        account = await self._finish(
            Transition.DEACTIVATE, account, actor,
            {"is_active": False, "reason": reason},
            EventType.ACCOUNT_ACTIVATION_CHANGED,
            with_remarks("Your account has been deactivated", reason),
            title="Account deactivated",
        )
        self.fanout.registry.evict_account(str(account.id), reason="Account deactivated")
        return account

    async def reactivate(self, role, account_id: str, actor: Optional[Actor] = None):
        role = AccountRole(role)
        account = await self._apply(role, account_id, {"is_active": True})
        return await self._finish(
            Transition.REACTIVATE, account, actor,
            {"is_active": True, "reason": None},
            EventType.ACCOUNT_ACTIVATION_CHANGED,
            "Your account has been reactivated",
            title="Account reactivated",
        )

    async def delete_account(self, role, account_id: str, actor: Optional[Actor] = None) -> None:
        role = AccountRole(role)
        self._refuse_self(Transition.DELETE, role, account_id, actor)
        account = await self.store.find_by_id(role, account_id)
        if account is None:
            raise AccountNotFoundError(role.value, str(account_id))
        await self._remove(account, actor, "Your account has been deleted", self_service=False)

    async def close_own_account(self, account) -> None:
        """
        Self-service deletion: the same cascade, eviction and admin summary
        as an admin delete. The last remaining admin cannot close their account.
        """
        if account.role == AccountRole.ADMIN and await self.store.count_accounts(AccountRole.ADMIN) <= 1:
            raise PreconditionFailedError(
                "The last admin account cannot be closed",
                details={"account_id": str(account.id)}
            )
        actor = Actor(account.role, str(account.id), account.name)
        await self._remove(account, actor, "Your account has been closed", self_service=True)

    async def _remove(self, account, actor: Optional[Actor], message: str, self_service: bool) -> None:
        role = account.role
        account_id = str(account.id)
        summary = self._summary_fields(account)
        changes = {"self_service": True} if self_service else {}

        await self.store.delete(role, account_id)
        if not self_service:
            record_admin_action(self.session, actor, "account_deleted", role.value, account_id, summary)
        await self.session.commit()
        logger.log_transition(Transition.DELETE.value, role.value, account_id, changes=changes)

        await self.fanout.emit(DomainEvent(
            type=EventType.ACCOUNT_DELETED,
            target=TargetSelector.account(role, account_id),
            message=message,
            title="Account deleted",
            payload={"account_id": account_id, "role": role.value, **changes},
            actor=actor,
        ))
        await self._emit_summary(Transition.DELETE, summary, actor, changes)
        self.fanout.registry.evict_account(account_id, reason="Account deleted")

    # ==================== Internals ====================

    def _refuse_self(self, transition: Transition, role: AccountRole, account_id: str,
                     actor: Optional[Actor]) -> None:
        if actor is not None and actor.role == role and actor.account_id == str(account_id):
            raise PreconditionFailedError(
                f"You cannot {transition.value} your own account",
                details={"transition": transition.value}
            )

    async def _apply(self, role: AccountRole, account_id: str, fields: Dict[str, Any]):
        account = await self.store.update_status_fields(role, account_id, **fields)
        if account is None:
            raise AccountNotFoundError(role.value, str(account_id))
        return account

    @staticmethod
    def _summary_fields(account) -> Dict[str, Any]:
        return {
            "account_id": str(account.id),
            "role": account.role.value,
            "name": account.name,
            "email": account.email,
        }

    @staticmethod
    def _status_snapshot(account) -> Dict[str, Any]:
        return {
            "verification_status": account.verification_status.value,
            "approval_status": account.approval_status.value,
            "is_verified": account.is_verified,
            "is_active": account.is_active,
            "is_suspended": account.is_suspended,
        }

    async def _finish(
        self,
        transition: Transition,
        account,
        actor: Optional[Actor],
        payload: Dict[str, Any],
        event_type: EventType,
        message: str,
        title: str,
    ):
        """Audit, commit, then announce: private notice first, admin summary second"""
        record_admin_action(
            self.session, actor, f"account_{transition.value}",
            account.role.value, str(account.id), payload,
        )
        await self.session.commit()
        logger.log_transition(
            transition.value, account.role.value, str(account.id), changes=payload,
            actor_id=actor.account_id if actor else None,
        )

        private_payload = {
            "account_id": str(account.id),
            "role": account.role.value,
            **payload,
        }
        await self.fanout.emit(
            DomainEvent(
                type=event_type,
                target=TargetSelector.account(account.role, account.id),
                message=message,
                title=title,
                payload=private_payload,
                actor=actor,
            ),
            session=self.session,
        )
        await self._emit_summary(
            transition,
            {**self._summary_fields(account), **self._status_snapshot(account)},
            actor,
            payload,
        )
        return account

    async def _emit_summary(self, transition: Transition, summary: Dict[str, Any],
                            actor: Optional[Actor], changes: Dict[str, Any]) -> None:
        # Dashboard-only: the audit row is the durable admin trail
        await self.fanout.emit(DomainEvent(
            type=EventType.ACCOUNT_STATUS_UPDATED,
            target=TargetSelector.role_wide(AccountRole.ADMIN),
            message=f"{summary['role'].capitalize()} {summary['name']}: {transition.value} updated",
            title="Account status updated",
            payload={
                **summary,
                "transition": transition.value,
                "changes": changes,
                "actor_id": actor.account_id if actor else None,
            },
            persist=False,
            actor=actor,
        ))
