"""
Unit Tests for MessageService
"""
import uuid

import pytest
from sqlalchemy import select

from app.core.exceptions import AccountNotFoundError, ValidationError
from app.models.account import AccountRole
from app.models.audit_log import AuditLog
from app.models.notification import Notification
from app.services.events import Actor
from app.services.message_service import MessageService


@pytest.fixture
def messages(db_session, fanout):
    return MessageService(db_session, fanout)


@pytest.fixture
def actor(admin):
    return Actor(AccountRole.ADMIN, str(admin.id), admin.name)


class TestAdminMessage:
    async def test_direct_message_reaches_one_account(self, messages, db_session, actor, vendor,
                                                      make_account, join):
        target_conn = join(vendor)
        bystander = join(await make_account(AccountRole.VENDOR))

        report = await messages.send_admin_message(actor, "Please update your GST number",
                                                   role=AccountRole.VENDOR, account_id=str(vendor.id))

        assert report.delivered == 1
        [message] = target_conn.pending_messages()
        assert message["type"] == "admin-message"
        assert message["data"]["from"] == actor.name
        assert bystander.pending_messages() == []

        stored = await db_session.scalar(select(Notification).where(Notification.id == report.notification_id))
        assert stored.vendor_id == str(vendor.id)

    async def test_role_message(self, messages, actor, student, vendor, join):
        student_conn = join(student)
        vendor_conn = join(vendor)

        await messages.send_admin_message(actor, "Exam week", role="student")

        assert len(student_conn.pending_messages()) == 1
        assert vendor_conn.pending_messages() == []

    async def test_message_to_everyone(self, messages, actor, student, vendor, admin, join):
        conns = [join(student), join(vendor), join(admin)]

        report = await messages.send_admin_message(actor, "Maintenance tonight")

        assert report.delivered == 3
        assert all(len(conn.pending_messages()) == 1 for conn in conns)

    async def test_account_id_needs_role(self, messages, actor, vendor):
        with pytest.raises(ValidationError):
            await messages.send_admin_message(actor, "x", account_id=str(vendor.id))

    async def test_unknown_recipient(self, messages, actor):
        with pytest.raises(AccountNotFoundError):
            await messages.send_admin_message(actor, "x", role="vendor", account_id=str(uuid.uuid4()))

    async def test_message_is_audited(self, messages, db_session, actor):
        await messages.send_admin_message(actor, "hello", role="vendor")

        log = await db_session.scalar(select(AuditLog).where(AuditLog.action == "admin_message"))
        assert log.details["message"] == "hello"


async def test_student_broadcast_skips_other_roles(messages, actor, student, vendor, join):
    student_conn = join(student)
    vendor_conn = join(vendor)

    report = await messages.broadcast_to_students(actor, "Library open late", title="Notice")

    [message] = student_conn.pending_messages()
    assert message["type"] == "student-broadcast"
    assert message["title"] == "Notice"
    assert vendor_conn.pending_messages() == []
    assert report.notification_id is not None


async def test_vendor_message_reaches_admins(messages, approved_vendor, admin, join):
    admin_conn = join(admin)

    await messages.send_vendor_message(approved_vendor, "Need help with an offer")

    [message] = admin_conn.pending_messages()
    assert message["type"] == "vendor-message"
    assert message["data"]["vendor_id"] == str(approved_vendor.id)
