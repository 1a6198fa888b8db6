"""
Realtime Gateway - the WebSocket side of the fanout layer.

Connection lifecycle:

    accept ──► anonymous connection (receives nothing)
           ──► {"type": "join", "data": {"role", "account_id", "token"}}
               ├─ valid   → rooms joined, "connection-status" ack
               └─ invalid → "error" frame, close 4001
           ──► ping / pong / request-stats until the client leaves

Everything the server sends goes through the connection's outbox, so a
slow client only ever backs up its own buffer.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect

from app.core.config import settings
from app.core.database import get_session_local
from app.core.exceptions import InvalidTokenError
from app.core.logging_config import logger
from app.core.security import decode_token
from app.models.account import AccountRole
from app.services.account_lifecycle import can_authenticate
from app.services.account_store import AccountStore
from app.services.auth_service import AuthService
from app.services.connection_registry import Connection, ConnectionRegistry
from app.services.events import (
    Actor,
    DomainEvent,
    EventType,
    ProtocolMessage,
    TargetSelector,
    protocol_message,
)
from app.services.fanout import EventFanout

# Close codes
CLOSE_AUTH_FAILED = 4001
CLOSE_FORBIDDEN = 4003
CLOSE_POLICY_VIOLATION = 1008

PRESENCE_ROLES = (AccountRole.VENDOR, AccountRole.ADMIN)


class JoinRejected(Exception):
    pass


class RealtimeGateway:
    def __init__(
        self,
        registry: ConnectionRegistry,
        fanout: EventFanout,
        session_factory: Optional[Callable] = None,
        heartbeat_seconds: Optional[float] = None,
    ):
        self.registry = registry
        self.fanout = fanout
        self._session_factory = session_factory
        self.heartbeat_seconds = heartbeat_seconds or settings.REALTIME_HEARTBEAT_SECONDS

    @property
    def session_factory(self) -> Callable:
        if self._session_factory is None:
            self._session_factory = get_session_local()
        return self._session_factory

    @session_factory.setter
    def session_factory(self, factory: Callable) -> None:
        self._session_factory = factory

    def origin_allowed(self, websocket: WebSocket) -> bool:
        """Browsers always send Origin; non-browser clients may omit it"""
        origin = websocket.headers.get("origin")
        return origin is None or origin in settings.CORS_ORIGINS

    async def serve(self, websocket: WebSocket) -> None:
        if not self.origin_allowed(websocket):
            logger.warning(
                f"Rejected realtime handshake from origin {websocket.headers.get('origin')}",
                extra={"event_type": "realtime_origin_rejected"}
            )
            await websocket.close(code=CLOSE_POLICY_VIOLATION)
            return

        await websocket.accept()
        connection = self.registry.connect(websocket)
        connection.start_sender()
        closing = False

        try:
            while not closing:
                try:
                    message = await asyncio.wait_for(
                        websocket.receive_json(),
                        timeout=self.heartbeat_seconds
                    )
                except asyncio.TimeoutError:
                    connection.enqueue(protocol_message(ProtocolMessage.PING))
                    continue
                except ValueError:
                    connection.enqueue(protocol_message(
                        ProtocolMessage.ERROR, message="Messages must be JSON objects"
                    ))
                    continue

                closing = await self.handle_message(connection, message)
        except (WebSocketDisconnect, RuntimeError):
            pass
        except Exception as e:
            logger.log_error_with_context(e, context="realtime receive loop",
                                          connection_id=connection.connection_id)
        finally:
            await self.disconnect(connection, flush=closing)

    async def handle_message(self, connection: Connection, message: Any) -> bool:
        """Process one client frame; True means the connection is closing"""
        if not isinstance(message, dict):
            connection.enqueue(protocol_message(
                ProtocolMessage.ERROR, message="Messages must be JSON objects"
            ))
            return False

        kind = message.get("type")
        data = message.get("data") or {}
        connection.last_activity = datetime.utcnow()

        if kind == ProtocolMessage.JOIN.value:
            try:
                if not isinstance(data, dict):
                    raise JoinRejected("join data must be an object")
                await self.join(connection, data)
            except JoinRejected as e:
                connection.enqueue(protocol_message(ProtocolMessage.ERROR, message=str(e)))
                connection.request_close(CLOSE_AUTH_FAILED, "Authentication failed")
                return True
        elif kind == ProtocolMessage.PING.value:
            connection.enqueue(protocol_message(ProtocolMessage.PONG))
        elif kind == ProtocolMessage.PONG.value:
            pass
        elif kind == ProtocolMessage.REQUEST_STATS.value:
            self.send_stats(connection)
        else:
            connection.enqueue(protocol_message(
                ProtocolMessage.ERROR, message=f"Unknown message type: {kind}"
            ))
        return False

    async def authenticate(self, data: Dict[str, Any]):
        """Resolve the account behind a join request or raise JoinRejected"""
        token = data.get("token")
        role = data.get("role")
        account_id = data.get("account_id")
        if not token or not role or not account_id:
            raise JoinRejected("join requires role, account_id and token")

        try:
            role = AccountRole(role)
            claims = decode_token(token)
        except ValueError:
            raise JoinRejected(f"Unknown role: {data.get('role')}")
        except InvalidTokenError as e:
            raise JoinRejected(e.message)

        if claims["sub"] != str(account_id) or claims["role"] != role.value:
            raise JoinRejected("Token does not match the requested identity")

        async with self.session_factory() as session:
            account = await AccountStore(session).find_by_id(role, account_id)
            if account is None or not can_authenticate(account):
                raise JoinRejected("Account is not allowed to connect")
            sid = claims.get("sid")
            if sid and not await AuthService(session).is_session_active(sid):
                raise JoinRejected("Login session has ended")
        return account

    async def join(self, connection: Connection, data: Dict[str, Any]) -> Connection:
        account = await self.authenticate(data)
        role = account.role
        account_id = str(account.id)
        first_connection = not self.registry.is_online(account_id)
        previous_role, previous_id = connection.role, connection.account_id

        rooms = self.fanout.topology.join_rooms_for(role, account_id)
        self.registry.register(connection.connection_id, role, account_id, rooms)

        # Re-joining as someone else may take the previous account offline
        if previous_id is not None and previous_id != account_id and not self.registry.is_online(previous_id):
            self.announce_presence(previous_role, previous_id, None, online=False,
                                   exclude=connection.connection_id)
        connection.enqueue(protocol_message(
            ProtocolMessage.CONNECTION_STATUS,
            data={
                "connected": True,
                "connection_id": connection.connection_id,
                "role": role.value,
                "account_id": account_id,
                "rooms": sorted(rooms),
            },
            message="Joined realtime channel",
        ))

        if first_connection:
            self.announce_presence(role, account_id, account.name, online=True,
                                   exclude=connection.connection_id)
        return connection

    def send_stats(self, connection: Connection) -> None:
        if connection.role != AccountRole.ADMIN:
            connection.enqueue(protocol_message(
                ProtocolMessage.ERROR, message="Only admins can request connection stats"
            ))
            return
        connection.enqueue(protocol_message(
            ProtocolMessage.ACTIVE_CONNECTIONS,
            data={
                "counts": self.registry.counts(),
                "online": {
                    role.value: sorted(self.registry.list_online(role)) for role in AccountRole
                },
            },
        ))

    def announce_presence(self, role: AccountRole, account_id: str, name: Optional[str],
                          online: bool, exclude: Optional[str] = None) -> None:
        if role not in PRESENCE_ROLES:
            return
        self.fanout.publish(
            DomainEvent(
                type=EventType.PRESENCE_CHANGED,
                target=TargetSelector.role_wide(role),
                message=f"{name or account_id} is {'online' if online else 'offline'}",
                payload={
                    "account_id": account_id,
                    "role": role.value,
                    "online": online,
                },
                persist=False,
                actor=Actor(role, account_id, name),
            ),
            exclude=exclude,
        )

    async def disconnect(self, connection: Connection, flush: bool = False) -> None:
        # Evicted connections are already unregistered and have a close queued
        evicted = self.registry.unregister(connection.connection_id) is None

        if connection.account_id is not None and not self.registry.is_online(connection.account_id):
            self.announce_presence(connection.role, connection.account_id, None, online=False,
                                   exclude=connection.connection_id)

        task = connection.sender_task
        if task is None or task.done():
            return
        if flush or evicted:
            try:
                await asyncio.wait_for(task, timeout=5)
            except asyncio.TimeoutError:
                logger.debug(f"Sender of {connection.connection_id} did not flush in time")
        else:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
