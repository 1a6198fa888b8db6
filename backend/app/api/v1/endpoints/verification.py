"""
Verification document upload.

Students upload proof of enrolment, vendors upload business documents.
An admin reviews them through the account verification transition.
"""
from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from app.core.database import get_db
from app.models.account import AccountRole
from app.modules.auth.dependencies import get_fanout, get_storage, require_role
from app.schemas.verification import VerificationDocumentResponse
from app.services.fanout import EventFanout
from app.services.verification_service import VerificationService
from app.utils.storage_client import StorageClient

router = APIRouter()

get_document_owner = require_role(AccountRole.STUDENT, AccountRole.VENDOR)


@router.post("/documents", response_model=VerificationDocumentResponse,
             status_code=status.HTTP_201_CREATED)
async def upload_document(
    document_type: str = Form(...),
    file: UploadFile = File(...),
    account=Depends(get_document_owner),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
    storage: StorageClient = Depends(get_storage),
):
    document = await VerificationService(db, fanout, storage).submit_document(
        account,
        document_type=document_type,
        file_obj=file.file,
        filename=file.filename,
        content_type=file.content_type,
        size=file.size or 0,
    )
    return VerificationDocumentResponse.model_validate(document)


@router.get("/documents", response_model=List[VerificationDocumentResponse])
async def list_documents(
    account=Depends(get_document_owner),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
    storage: StorageClient = Depends(get_storage),
):
    documents = await VerificationService(db, fanout, storage).list_documents(account.role, str(account.id))
    return [VerificationDocumentResponse.model_validate(d) for d in documents]
