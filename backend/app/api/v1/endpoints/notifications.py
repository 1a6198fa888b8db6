from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models.notification import NotificationType
from app.modules.auth.dependencies import get_current_account
from app.schemas.notification import NotificationListResponse, NotificationResponse
from app.services.notification_service import NotificationService
from app.utils.pagination import PaginationParams, create_paginated_response, pagination_params

router = APIRouter()


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = Query(False),
    type: Optional[NotificationType] = Query(None),
    pagination: PaginationParams = Depends(pagination_params),
    account=Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    """Inbox of the current account: direct notifications plus broadcasts to its role"""
    service = NotificationService(db)
    items, total = await service.list_for(
        account.role, str(account.id),
        unread_only=unread_only,
        notification_type=type,
        page=pagination.page,
        limit=pagination.page_size,
    )
    response = create_paginated_response(items, total, pagination.page, pagination.page_size)
    response["unread_count"] = await service.unread_count(account.role, str(account.id))
    return response


@router.get("/unread-count")
async def unread_count(
    account=Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    count = await NotificationService(db).unread_count(account.role, str(account.id))
    return {"unread_count": count}


@router.put("/mark-all/read")
async def mark_all_read(
    account=Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    marked = await NotificationService(db).mark_all_read(account.role, str(account.id))
    return {"success": True, "marked": marked}


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: str,
    account=Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationService(db).mark_read(account.role, str(account.id), notification_id)


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    account=Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    await NotificationService(db).delete(account.role, str(account.id), notification_id)
    return {"success": True, "message": "Notification deleted"}
