"""
Verification Service - document uploads that precede an admin review.

Uploaded files go to the object store; the row keeps the URL and the
object key. Admins hear about each upload on their dashboard channel.
"""

from typing import BinaryIO, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import FileTooLargeError, InvalidFileTypeError
from app.core.logging_config import logger
from app.models.account import AccountRole
from app.models.verification_document import VerificationDocument
from app.services.events import Actor, DomainEvent, EventType, TargetSelector
from app.services.fanout import EventFanout
from app.utils.storage_client import StorageClient

ALLOWED_MIME_TYPES = {
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/webp",
}


class VerificationService:
    def __init__(self, session: AsyncSession, fanout: EventFanout, storage: StorageClient):
        self.session = session
        self.fanout = fanout
        self.storage = storage

    def validate(self, document_type: str, content_type: Optional[str], size: int) -> None:
        allowed_documents = settings.ALLOWED_DOCUMENT_TYPES
        if document_type not in allowed_documents:
            raise InvalidFileTypeError(document_type, allowed_documents)
        if content_type not in ALLOWED_MIME_TYPES:
            raise InvalidFileTypeError(content_type or "unknown", sorted(ALLOWED_MIME_TYPES))
        if size > settings.MAX_UPLOAD_SIZE:
            raise FileTooLargeError(size, settings.MAX_UPLOAD_SIZE)

    async def submit_document(
        self,
        account,
        document_type: str,
        file_obj: BinaryIO,
        filename: Optional[str],
        content_type: Optional[str],
        size: int,
    ) -> VerificationDocument:
        self.validate(document_type, content_type, size)

        role = account.role
        uploaded = await self.storage.upload(
            file_obj,
            folder=f"verification/{role.value}/{account.id}",
            filename=filename,
            content_type=content_type,
        )

        document = VerificationDocument(
            account_id=str(account.id),
            role=role.value,
            document_type=document_type,
            file_url=uploaded["url"],
            public_id=uploaded["public_id"],
            file_name=filename,
            file_size=size,
            mime_type=content_type,
        )
        self.session.add(document)
        await self.session.commit()
        logger.info(f"Verification document {document.id} uploaded by {role.value} {account.id}")

        await self.fanout.emit(DomainEvent(
            type=EventType.DOCUMENT_SUBMITTED,
            target=TargetSelector.role_wide(AccountRole.ADMIN),
            message=f"{account.name} submitted a {document_type.replace('_', ' ')} for review",
            title="Document submitted",
            payload={
                "document_id": str(document.id),
                "document_type": document_type,
                "account_id": str(account.id),
                "role": role.value,
                "name": account.name,
                "file_url": document.file_url,
            },
            actor=Actor(role, str(account.id), account.name),
        ))
        return document

    async def list_documents(self, role: AccountRole, account_id: str) -> List[VerificationDocument]:
        result = await self.session.execute(
            select(VerificationDocument)
            .where(
                VerificationDocument.account_id == str(account_id),
                VerificationDocument.role == AccountRole(role).value,
            )
            .order_by(VerificationDocument.uploaded_at.desc())
        )
        return result.scalars().all()
