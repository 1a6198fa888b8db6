"""
Connection Registry

In-memory index of live realtime connections: which account each
connection speaks for and which rooms it has joined.

All mutations run on the single event loop and never await, so the
indexes need no locking. Queries are snapshots and may be stale by the
time the caller uses them.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple, Union

from app.core.config import settings
from app.core.logging_config import logger
from app.models.account import AccountRole


@dataclass(frozen=True)
class CloseRequest:
    """Outbox sentinel: flush what is queued, then close the socket"""
    code: int
    reason: str = ""


@dataclass
class Connection:
    """One live socket and its outbound buffer"""
    connection_id: str
    outbox: asyncio.Queue
    websocket: Optional[Any] = None
    role: Optional[AccountRole] = None
    account_id: Optional[str] = None
    rooms: FrozenSet[str] = frozenset()
    connected_at: datetime = field(default_factory=datetime.utcnow)
    last_activity: datetime = field(default_factory=datetime.utcnow)
    dropped: int = 0
    sender_task: Optional[asyncio.Task] = None

    @property
    def identity(self) -> Optional[Tuple[AccountRole, str]]:
        if self.role is None or self.account_id is None:
            return None
        return self.role, self.account_id

    def enqueue(self, message: Dict[str, Any]) -> bool:
        """Queue a message without suspending; False when the buffer is full"""
        try:
            self.outbox.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    def request_close(self, code: int, reason: str = "") -> None:
        """Close after the queued messages are sent"""
        try:
            self.outbox.put_nowait(CloseRequest(code, reason))
        except asyncio.QueueFull:
            if self.sender_task is not None:
                self.sender_task.cancel()

    def pending_messages(self) -> List[Dict[str, Any]]:
        """Drain and return queued messages (skips close sentinels)"""
        messages = []
        while not self.outbox.empty():
            item = self.outbox.get_nowait()
            if not isinstance(item, CloseRequest):
                messages.append(item)
        return messages

    def start_sender(self) -> asyncio.Task:
        self.sender_task = asyncio.create_task(self._drain_outbox())
        return self.sender_task

    async def _drain_outbox(self) -> None:
        while True:
            item = await self.outbox.get()
            try:
                if isinstance(item, CloseRequest):
                    await self.websocket.close(code=item.code, reason=item.reason)
                    return
                await self.websocket.send_json(item)
                self.last_activity = datetime.utcnow()
            except Exception as e:
                # Transport already gone; the receive loop will unregister us
                logger.debug(f"Send failed on connection {self.connection_id}: {e}")
                return


class ConnectionRegistry:
    """
    Tracks live connections, their identities and room memberships.

    One instance per process, kept on ``app.state.connection_registry``.
    """

    def __init__(self, queue_size: Optional[int] = None):
        self.queue_size = queue_size or settings.REALTIME_QUEUE_SIZE
        self._connections: Dict[str, Connection] = {}
        # room -> connection ids
        self._rooms: Dict[str, Set[str]] = {}
        # account id -> connection ids
        self._accounts: Dict[str, Set[str]] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def connect(self, websocket: Optional[Any] = None) -> Connection:
        """Allocate a connection with no identity and no rooms"""
        connection = Connection(
            connection_id=uuid.uuid4().hex,
            outbox=asyncio.Queue(maxsize=self.queue_size),
            websocket=websocket,
        )
        self._connections[connection.connection_id] = connection
        logger.debug(f"Realtime connection opened: {connection.connection_id}")
        return connection

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def register(
        self,
        connection_id: str,
        role: Union[AccountRole, str],
        account_id: str,
        rooms: Iterable[str],
    ) -> Optional[Connection]:
        """
        Attach an identity and room set to a connection.

        Calling it again for the same connection replaces the previous
        identity and memberships.
        """
        connection = self._connections.get(connection_id)
        if connection is None:
            logger.warning(f"Register for unknown connection {connection_id}")
            return None

        self._detach(connection)

        connection.role = AccountRole(role)
        connection.account_id = str(account_id)
        connection.rooms = frozenset(rooms)
        connection.last_activity = datetime.utcnow()

        for room in connection.rooms:
            self._rooms.setdefault(room, set()).add(connection_id)
        self._accounts.setdefault(connection.account_id, set()).add(connection_id)

        logger.info(
            f"Realtime join: {connection.role.value} {connection.account_id}",
            extra={
                "event_type": "realtime_join",
                "connection_id": connection_id,
                "rooms": sorted(connection.rooms),
            }
        )
        return connection

    def unregister(self, connection_id: str) -> Optional[Connection]:
        """Forget a connection; unknown ids are ignored"""
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return None
        self._detach(connection)
        logger.debug(f"Realtime connection closed: {connection_id}")
        return connection

    def _detach(self, connection: Connection) -> None:
        for room in connection.rooms:
            members = self._rooms.get(room)
            if members is not None:
                members.discard(connection.connection_id)
                if not members:
                    del self._rooms[room]
        if connection.account_id is not None:
            owned = self._accounts.get(connection.account_id)
            if owned is not None:
                owned.discard(connection.connection_id)
                if not owned:
                    del self._accounts[connection.account_id]

    def is_online(self, account_id: str) -> bool:
        return bool(self._accounts.get(str(account_id)))

    def list_online(self, role: Union[AccountRole, str]) -> Set[str]:
        role = AccountRole(role)
        return {
            conn.account_id
            for conn in self._connections.values()
            if conn.role == role and conn.account_id is not None
        }

    def members(self, room: str) -> List[Connection]:
        return [
            self._connections[connection_id]
            for connection_id in self._rooms.get(room, ())
            if connection_id in self._connections
        ]

    def connections_for(self, account_id: str) -> List[Connection]:
        return [
            self._connections[connection_id]
            for connection_id in self._accounts.get(str(account_id), ())
        ]

    def counts(self) -> Dict[str, int]:
        """Connection counts per role, plus totals"""
        counts = {role.value: 0 for role in AccountRole}
        anonymous = 0
        for conn in self._connections.values():
            if conn.role is None:
                anonymous += 1
            else:
                counts[conn.role.value] += 1
        counts["anonymous"] = anonymous
        counts["total"] = len(self._connections)
        return counts

    def evict_account(self, account_id: str, code: int = 4003,
                      reason: str = "Account no longer active") -> List[Connection]:
        """Unregister every connection of an account and ask each socket to close"""
        evicted = []
        for connection in self.connections_for(account_id):
            self.unregister(connection.connection_id)
            connection.request_close(code, reason)
            evicted.append(connection)
        if evicted:
            logger.info(f"Evicted {len(evicted)} connection(s) of account {account_id}")
        return evicted

    def close_all(self, code: int = 1001, reason: str = "Server shutting down") -> int:
        connections = list(self._connections.values())
        for connection in connections:
            self.unregister(connection.connection_id)
            connection.request_close(code, reason)
        return len(connections)
