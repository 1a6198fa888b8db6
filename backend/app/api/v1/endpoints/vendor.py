from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.modules.auth.dependencies import get_current_vendor, get_fanout
from app.schemas.notification import BroadcastRequest, DeliveryResponse
from app.services.fanout import EventFanout
from app.services.message_service import MessageService

router = APIRouter()


@router.post("/messages", response_model=DeliveryResponse)
async def message_admins(
    payload: BroadcastRequest,
    vendor=Depends(get_current_vendor),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    """Send a message to the admin team"""
    report = await MessageService(db, fanout).send_vendor_message(
        vendor, payload.message, title=payload.title, data=payload.data
    )
    return DeliveryResponse(
        event_type=report.event_type,
        delivered=report.delivered,
        rooms=sorted(report.rooms),
        notification_id=report.notification_id,
    )
