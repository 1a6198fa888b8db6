"""
Unit Tests for VerificationService
"""
import io
from unittest.mock import AsyncMock

import pytest

from app.core.config import settings
from app.core.exceptions import FileTooLargeError, InvalidFileTypeError
from app.models.account import AccountRole, VerificationStatus
from app.services.verification_service import VerificationService


@pytest.fixture
def storage():
    storage = AsyncMock()
    storage.upload.return_value = {"url": "https://files.test/k.pdf", "public_id": "k.pdf"}
    return storage


@pytest.fixture
def service(db_session, fanout, storage):
    return VerificationService(db_session, fanout, storage)


class TestValidate:
    def test_accepts_pdf(self, service):
        service.validate("student_id", "application/pdf", 1024)

    def test_unknown_document_type(self, service):
        with pytest.raises(InvalidFileTypeError):
            service.validate("selfie", "image/png", 10)

    def test_unsupported_mime_type(self, service):
        with pytest.raises(InvalidFileTypeError):
            service.validate("student_id", "text/html", 10)

    def test_too_large(self, service):
        with pytest.raises(FileTooLargeError):
            service.validate("student_id", "application/pdf", settings.MAX_UPLOAD_SIZE + 1)


async def test_submit_stores_document_and_notifies_admins(service, storage, approved_vendor, admin, join):
    admin_conn = join(admin)

    document = await service.submit_document(
        approved_vendor, "business_license", io.BytesIO(b"%PDF"), "licence.pdf", "application/pdf", 4
    )

    assert document.status == VerificationStatus.PENDING
    assert document.public_id == "k.pdf"
    assert storage.upload.await_args.kwargs["folder"] == f"verification/vendor/{approved_vendor.id}"
    [message] = admin_conn.pending_messages()
    assert message["type"] == "document-submitted"
    assert message["data"]["document_id"] == str(document.id)

    documents = await service.list_documents(AccountRole.VENDOR, str(approved_vendor.id))
    assert [d.id for d in documents] == [document.id]


async def test_invalid_upload_never_reaches_storage(service, storage, student):
    with pytest.raises(InvalidFileTypeError):
        await service.submit_document(student, "student_id", io.BytesIO(b"x"), "a.exe", "application/x-msdownload", 1)

    storage.upload.assert_not_awaited()
