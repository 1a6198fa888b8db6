from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.account import AccountRole
from app.models.audit_log import AuditLog
from app.services.events import Actor


def record_admin_action(
    db: AsyncSession,
    actor: Optional[Actor],
    action: str,
    target_type: str,
    target_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Optional[AuditLog]:
    """
    Stage an audit row in the caller's transaction.

    Only admin actors are audited; the caller commits.
    """
    if actor is None or actor.role != AccountRole.ADMIN:
        return None
    log = AuditLog(
        admin_id=actor.account_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        details=details,
        ip_address=actor.ip_address,
        user_agent=actor.user_agent,
    )
    db.add(log)
    return log
