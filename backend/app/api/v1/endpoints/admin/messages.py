from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.modules.auth.dependencies import get_actor, get_current_admin, get_fanout
from app.schemas.notification import AdminMessageRequest, BroadcastRequest, DeliveryResponse
from app.services.events import Actor
from app.services.fanout import DeliveryReport, EventFanout
from app.services.message_service import MessageService

router = APIRouter()


def delivery_response(report: DeliveryReport) -> DeliveryResponse:
    return DeliveryResponse(
        event_type=report.event_type,
        delivered=report.delivered,
        rooms=sorted(report.rooms),
        notification_id=report.notification_id,
    )


@router.post("/messages", response_model=DeliveryResponse)
async def send_admin_message(
    payload: AdminMessageRequest,
    actor: Actor = Depends(get_actor),
    current_admin=Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    """Message one account, every account of a role, or everyone"""
    report = await MessageService(db, fanout).send_admin_message(
        actor,
        payload.message,
        title=payload.title,
        role=payload.role,
        account_id=payload.account_id,
        data=payload.data,
    )
    return delivery_response(report)


@router.post("/broadcasts/students", response_model=DeliveryResponse)
async def broadcast_to_students(
    payload: BroadcastRequest,
    actor: Actor = Depends(get_actor),
    current_admin=Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    report = await MessageService(db, fanout).broadcast_to_students(
        actor, payload.message, title=payload.title, data=payload.data
    )
    return delivery_response(report)
