"""
Realtime domain events.

A DomainEvent describes a state change and who should hear about it. It is
transient: the fanout engine delivers it to whoever is connected and, for
durable event types, also stores a Notification row.

Wire form sent to clients:

    {"type", "channel", "timestamp", "message", "title", "data", "notification_id"?}
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple, Union

from app.models.account import AccountRole
from app.models.notification import NotificationType


class EventType(str, Enum):
    """Domain events fanned out to rooms"""
    # Account lifecycle (private room of the affected account)
    ACCOUNT_VERIFICATION_CHANGED = "account-verification-changed"
    ACCOUNT_APPROVAL_CHANGED = "account-approval-changed"
    ACCOUNT_SUSPENSION_CHANGED = "account-suspension-changed"
    ACCOUNT_ACTIVATION_CHANGED = "account-activation-changed"
    ACCOUNT_DELETED = "account-deleted"

    # Admin dashboard summary of any account transition
    ACCOUNT_STATUS_UPDATED = "account-status-updated"
    DOCUMENT_SUBMITTED = "document-submitted"

    # Offers and coupons
    OFFER_SUBMITTED = "offer-submitted"
    OFFER_APPROVED = "offer-approved"
    OFFER_REJECTED = "offer-rejected"
    OFFER_CREATED = "offer-created"
    COUPON_REDEEMED = "coupon-redeemed"

    # Messages
    ADMIN_MESSAGE = "admin-message"
    VENDOR_MESSAGE = "vendor-message"
    STUDENT_BROADCAST = "student-broadcast"

    # Presence
    PRESENCE_CHANGED = "presence-changed"


class ProtocolMessage(str, Enum):
    """Control frames exchanged on the socket itself, never fanned out"""
    JOIN = "join"
    CONNECTION_STATUS = "connection-status"
    REQUEST_STATS = "request-stats"
    ACTIVE_CONNECTIONS = "active-connections"
    PING = "ping"
    PONG = "pong"
    ERROR = "error"


class Channel(str, Enum):
    """What the client does with the event: inbox entry or dashboard refresh"""
    NOTIFICATION = "notification"
    DASHBOARD = "dashboard"


DURABLE_EVENT_TYPES: FrozenSet[EventType] = frozenset({
    EventType.COUPON_REDEEMED,
    EventType.OFFER_APPROVED,
    EventType.OFFER_REJECTED,
    EventType.ACCOUNT_VERIFICATION_CHANGED,
    EventType.ACCOUNT_APPROVAL_CHANGED,
    EventType.ACCOUNT_SUSPENSION_CHANGED,
    EventType.ACCOUNT_ACTIVATION_CHANGED,
    EventType.ADMIN_MESSAGE,
    EventType.VENDOR_MESSAGE,
    EventType.STUDENT_BROADCAST,
})

DASHBOARD_EVENT_TYPES: FrozenSet[EventType] = frozenset({
    EventType.ACCOUNT_STATUS_UPDATED,
    EventType.DOCUMENT_SUBMITTED,
    EventType.OFFER_SUBMITTED,
    EventType.PRESENCE_CHANGED,
})

NOTIFICATION_TYPES: Dict[EventType, NotificationType] = {
    EventType.ACCOUNT_VERIFICATION_CHANGED: NotificationType.ACCOUNT,
    EventType.ACCOUNT_APPROVAL_CHANGED: NotificationType.ACCOUNT,
    EventType.ACCOUNT_SUSPENSION_CHANGED: NotificationType.ACCOUNT,
    EventType.ACCOUNT_ACTIVATION_CHANGED: NotificationType.ACCOUNT,
    EventType.OFFER_APPROVED: NotificationType.OFFER,
    EventType.OFFER_REJECTED: NotificationType.OFFER,
    EventType.OFFER_CREATED: NotificationType.OFFER,
    EventType.COUPON_REDEEMED: NotificationType.OFFER,
    EventType.STUDENT_BROADCAST: NotificationType.ANNOUNCEMENT,
}


class TargetKind(str, Enum):
    ACCOUNT = "account"
    ROLE = "role"
    ALL = "all"


@dataclass(frozen=True)
class TargetSelector:
    """Who an event is addressed to: one account, every account of a role, or all"""
    kind: TargetKind
    role: Optional[AccountRole] = None
    account_id: Optional[str] = None

    def __post_init__(self):
        if self.kind == TargetKind.ACCOUNT and (self.role is None or not self.account_id):
            raise ValueError("An account target needs both role and account_id")
        if self.kind == TargetKind.ROLE and self.role is None:
            raise ValueError("A role target needs a role")

    @classmethod
    def account(cls, role: Union[AccountRole, str], account_id: str) -> "TargetSelector":
        return cls(TargetKind.ACCOUNT, AccountRole(role), str(account_id))

    @classmethod
    def role_wide(cls, role: Union[AccountRole, str]) -> "TargetSelector":
        return cls(TargetKind.ROLE, AccountRole(role))

    @classmethod
    def everyone(cls) -> "TargetSelector":
        return cls(TargetKind.ALL)


@dataclass(frozen=True)
class Actor:
    """Account that caused an event, plus request metadata for the audit trail"""
    role: AccountRole
    account_id: str
    name: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class DomainEvent:
    type: Union[EventType, str]
    target: TargetSelector
    message: str
    payload: Dict[str, Any] = field(default_factory=dict)
    title: Optional[str] = None
    channel: Optional[Channel] = None
    # None follows DURABLE_EVENT_TYPES
    persist: Optional[bool] = None
    notification_type: Optional[NotificationType] = None
    actor: Optional[Actor] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @property
    def event_type(self) -> Optional[EventType]:
        """The EventType member, or None for an unknown type"""
        try:
            return EventType(self.type)
        except ValueError:
            return None

    @property
    def is_durable(self) -> bool:
        if self.persist is not None:
            return self.persist
        return self.event_type in DURABLE_EVENT_TYPES

    @property
    def resolved_channel(self) -> Channel:
        if self.channel is not None:
            return self.channel
        if self.event_type in DASHBOARD_EVENT_TYPES:
            return Channel.DASHBOARD
        return Channel.NOTIFICATION

    @property
    def resolved_title(self) -> str:
        if self.title:
            return self.title
        name = self.event_type.value if self.event_type else str(self.type)
        return name.replace("-", " ").capitalize()

    @property
    def resolved_notification_type(self) -> NotificationType:
        if self.notification_type is not None:
            return self.notification_type
        return NOTIFICATION_TYPES.get(self.event_type, NotificationType.GENERAL)

    def to_wire(self, notification_id: Optional[str] = None) -> Dict[str, Any]:
        message = {
            "type": self.event_type.value if self.event_type else str(self.type),
            "channel": self.resolved_channel.value,
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "title": self.resolved_title,
            "data": self.payload,
        }
        if notification_id:
            message["notification_id"] = str(notification_id)
        return message


def protocol_message(kind: ProtocolMessage, data: Optional[Dict[str, Any]] = None,
                     message: Optional[str] = None) -> Dict[str, Any]:
    """Build a control frame in the same envelope as domain events"""
    frame: Dict[str, Any] = {
        "type": kind.value,
        "timestamp": datetime.utcnow().isoformat(),
        "data": data or {},
    }
    if message is not None:
        frame["message"] = message
    return frame


def identity_of(event: DomainEvent) -> Tuple[Optional[str], Optional[str]]:
    """(role, account_id) of the event's actor, for Notification.created_by_*"""
    if event.actor is None:
        return None, None
    return event.actor.role.value, event.actor.account_id
