"""
Admin offer moderation endpoints.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from app.core.database import get_db
from app.modules.auth.dependencies import get_actor, get_current_admin, get_fanout
from app.schemas.offer import OfferReject, OfferResponse, OfferStatsResponse
from app.services.events import Actor
from app.services.fanout import EventFanout
from app.services.offer_service import OfferService

router = APIRouter()


@router.get("/pending", response_model=List[OfferResponse])
async def list_pending_offers(
    current_admin=Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    offers = await OfferService(db, fanout).list_pending()
    return [OfferResponse.model_validate(o) for o in offers]


@router.get("/stats", response_model=OfferStatsResponse)
async def get_offer_stats(
    current_admin=Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    return await OfferService(db, fanout).offer_stats()


@router.post("/{offer_id}/approve", response_model=OfferResponse)
async def approve_offer(
    offer_id: str,
    actor: Actor = Depends(get_actor),
    current_admin=Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    """Publish an offer: the vendor is notified and students see it live"""
    offer = await OfferService(db, fanout).approve_offer(offer_id, actor)
    return OfferResponse.model_validate(offer)


@router.post("/{offer_id}/reject", response_model=OfferResponse)
async def reject_offer(
    offer_id: str,
    payload: OfferReject,
    actor: Actor = Depends(get_actor),
    current_admin=Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    offer = await OfferService(db, fanout).reject_offer(offer_id, payload.reason, actor)
    return OfferResponse.model_validate(offer)
