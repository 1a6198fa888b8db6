"""
Unit Tests for the Realtime Gateway
Tests for: join handshake, control frames, presence, origin check, serve loop
"""
import asyncio

import pytest

from app.models.account import AccountRole
from app.services.auth_service import AuthService
from app.services.connection_registry import CloseRequest
from app.services.realtime_gateway import CLOSE_AUTH_FAILED, CLOSE_POLICY_VIOLATION


def join_frame(account, token):
    return {
        "type": "join",
        "data": {"role": account.role.value, "account_id": str(account.id), "token": token},
    }


def drain(connection):
    items = []
    while not connection.outbox.empty():
        items.append(connection.outbox.get_nowait())
    return items


class TestJoin:
    async def test_valid_join_registers_rooms_and_acks(self, gateway, registry, vendor, token_factory):
        connection = registry.connect()

        closing = await gateway.handle_message(connection, join_frame(vendor, token_factory(vendor)))

        assert closing is False
        assert registry.is_online(str(vendor.id))
        [ack] = connection.pending_messages()
        assert ack["type"] == "connection-status"
        assert ack["data"]["connected"] is True
        assert ack["data"]["connection_id"] == connection.connection_id
        assert ack["data"]["rooms"] == sorted([f"role:self:vendor:{vendor.id}", "role:all:vendor"])

    async def test_token_for_another_account_is_rejected(self, gateway, registry, vendor, approved_vendor,
                                                         token_factory):
        connection = registry.connect()

        closing = await gateway.handle_message(connection, join_frame(vendor, token_factory(approved_vendor)))

        assert closing is True
        assert not registry.is_online(str(vendor.id))
        error, close = drain(connection)
        assert error["type"] == "error"
        assert isinstance(close, CloseRequest)
        assert close.code == CLOSE_AUTH_FAILED

    async def test_garbage_token_is_rejected(self, gateway, registry, student):
        connection = registry.connect()

        assert await gateway.handle_message(connection, join_frame(student, "garbage")) is True
        assert connection.identity is None

    async def test_missing_fields_rejected(self, gateway, registry):
        connection = registry.connect()

        assert await gateway.handle_message(connection, {"type": "join", "data": {"role": "student"}}) is True

    @pytest.mark.parametrize("data", [["x"], "token", 42])
    async def test_non_object_join_data_is_rejected(self, gateway, registry, data):
        connection = registry.connect()

        closing = await gateway.handle_message(connection, {"type": "join", "data": data})

        assert closing is True
        error, close = drain(connection)
        assert error["type"] == "error"
        assert close.code == CLOSE_AUTH_FAILED

    async def test_suspended_account_cannot_join(self, gateway, registry, make_account, token_factory):
        account = await make_account(AccountRole.STUDENT, is_suspended=True)
        connection = registry.connect()

        assert await gateway.handle_message(connection, join_frame(account, token_factory(account))) is True
        assert not registry.is_online(str(account.id))

    async def test_logged_out_session_cannot_join(self, gateway, registry, db_session, student):
        auth = AuthService(db_session)
        result = await auth.login(student.email, "password123", AccountRole.STUDENT)
        await auth.logout(str(student.id), result.session_id)
        connection = registry.connect()

        assert await gateway.handle_message(connection, join_frame(student, result.access_token)) is True

    async def test_live_session_can_join(self, gateway, registry, db_session, student):
        result = await AuthService(db_session).login(student.email, "password123", AccountRole.STUDENT)
        connection = registry.connect()

        assert await gateway.handle_message(connection, join_frame(student, result.access_token)) is False
        assert registry.is_online(str(student.id))


class TestControlFrames:
    async def test_ping_gets_pong(self, gateway, registry):
        connection = registry.connect()

        await gateway.handle_message(connection, {"type": "ping"})

        assert [m["type"] for m in connection.pending_messages()] == ["pong"]

    async def test_unknown_type_gets_error(self, gateway, registry):
        connection = registry.connect()

        await gateway.handle_message(connection, {"type": "subscribe"})

        [error] = connection.pending_messages()
        assert error["type"] == "error"
        assert "subscribe" in error["message"]

    async def test_non_object_frame_gets_error(self, gateway, registry):
        connection = registry.connect()

        assert await gateway.handle_message(connection, ["join"]) is False
        assert connection.pending_messages()[0]["type"] == "error"

    async def test_stats_are_admin_only(self, gateway, registry, student, admin, join):
        student_conn = join(student)
        admin_conn = join(admin)

        await gateway.handle_message(student_conn, {"type": "request-stats"})
        await gateway.handle_message(admin_conn, {"type": "request-stats"})

        assert student_conn.pending_messages()[0]["type"] == "error"
        [stats] = admin_conn.pending_messages()
        assert stats["type"] == "active-connections"
        assert stats["data"]["counts"]["student"] == 1
        assert stats["data"]["online"]["admin"] == [str(admin.id)]


class TestPresence:
    async def test_first_connection_announces_to_role_peers(self, gateway, registry, admin, make_account,
                                                            token_factory, join):
        other_admin = await make_account(AccountRole.ADMIN)
        peer = join(other_admin)
        connection = registry.connect()

        await gateway.handle_message(connection, join_frame(admin, token_factory(admin)))

        [presence] = peer.pending_messages()
        assert presence["type"] == "presence-changed"
        assert presence["data"] == {"account_id": str(admin.id), "role": "admin", "online": True}
        assert [m["type"] for m in connection.pending_messages()] == ["connection-status"]

    async def test_second_tab_does_not_reannounce(self, gateway, registry, admin, make_account,
                                                  token_factory, join):
        peer = join(await make_account(AccountRole.ADMIN))
        join(admin)
        connection = registry.connect()

        await gateway.handle_message(connection, join_frame(admin, token_factory(admin)))

        assert peer.pending_messages() == []

    async def test_students_have_no_presence(self, gateway, registry, student, make_account,
                                             token_factory, join):
        peer = join(await make_account(AccountRole.STUDENT))

        await gateway.handle_message(registry.connect(), join_frame(student, token_factory(student)))

        assert peer.pending_messages() == []

    async def test_rejoin_as_other_account_announces_previous_offline(self, gateway, registry, admin,
                                                                      make_account, token_factory, join):
        peer = join(await make_account(AccountRole.ADMIN))
        connection = registry.connect()
        await gateway.handle_message(connection, join_frame(admin, token_factory(admin)))
        peer.pending_messages()

        other_admin = await make_account(AccountRole.ADMIN)
        await gateway.handle_message(connection, join_frame(other_admin, token_factory(other_admin)))

        presence = [m["data"] for m in peer.pending_messages()]
        assert {"account_id": str(admin.id), "role": "admin", "online": False} in presence
        assert {"account_id": str(other_admin.id), "role": "admin", "online": True} in presence
        assert not registry.is_online(str(admin.id))

    async def test_last_disconnect_announces_offline(self, gateway, registry, admin, make_account, join):
        peer = join(await make_account(AccountRole.ADMIN))
        connection = join(admin)

        await gateway.disconnect(connection)

        [presence] = peer.pending_messages()
        assert presence["data"]["online"] is False
        assert len(registry) == 1


class TestServe:
    async def test_disconnect_collects_cancelled_sender(self, gateway, registry, student, fake_socket):
        connection = registry.connect(fake_socket())
        rooms = gateway.fanout.topology.join_rooms_for(student.role, str(student.id))
        registry.register(connection.connection_id, student.role, str(student.id), rooms)
        task = connection.start_sender()

        await gateway.disconnect(connection)

        assert task.done()
        assert task.cancelled()
        assert len(registry) == 0

    async def test_disallowed_origin_is_closed_before_accept(self, gateway, fake_socket):
        websocket = fake_socket({"origin": "https://evil.example"})

        await gateway.serve(websocket)

        assert websocket.accepted is False
        assert websocket.closed[0] == CLOSE_POLICY_VIOLATION

    async def test_full_session(self, gateway, registry, fanout, vendor, token_factory, fake_socket, disconnect):
        websocket = fake_socket({"origin": "http://localhost:5173"})
        await websocket.incoming.put(join_frame(vendor, token_factory(vendor)))
        await websocket.incoming.put({"type": "ping"})

        task = asyncio.create_task(gateway.serve(websocket))
        sent = await websocket.wait_for_sent(2)
        assert [m["type"] for m in sent[:2]] == ["connection-status", "pong"]
        assert registry.is_online(str(vendor.id))

        await websocket.incoming.put(disconnect)
        await asyncio.wait_for(task, timeout=2)

        assert not registry.is_online(str(vendor.id))
        assert len(registry) == 0

    async def test_failed_join_closes_with_auth_code(self, gateway, registry, student, fake_socket):
        websocket = fake_socket()
        await websocket.incoming.put(join_frame(student, "bad-token"))

        await gateway.serve(websocket)

        assert websocket.sent[0]["type"] == "error"
        assert websocket.closed[0] == CLOSE_AUTH_FAILED
        assert len(registry) == 0


@pytest.mark.parametrize("origin,allowed", [
    (None, True),
    ("http://localhost:5173", True),
    ("http://localhost:3000", False),
])
def test_origin_allowed(gateway, fake_socket, origin, allowed):
    headers = {"origin": origin} if origin else {}
    assert gateway.origin_allowed(fake_socket(headers)) is allowed
