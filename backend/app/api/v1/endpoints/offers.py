"""
Offer endpoints - vendors publish, students browse and redeem.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from app.core.database import get_db
from app.modules.auth.dependencies import (
    get_current_account,
    get_current_student,
    get_current_vendor,
    get_fanout,
)
from app.schemas.offer import CouponResponse, OfferCreate, OfferListResponse, OfferResponse, OfferUpdate
from app.services.fanout import EventFanout
from app.services.offer_service import OfferService
from app.utils.pagination import PaginationParams, create_paginated_response, pagination_params

router = APIRouter()


@router.post("", response_model=OfferResponse, status_code=status.HTTP_201_CREATED)
async def create_offer(
    payload: OfferCreate,
    vendor=Depends(get_current_vendor),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    """Submit an offer for admin approval"""
    offer = await OfferService(db, fanout).create_offer(vendor, **payload.model_dump())
    return OfferResponse.model_validate(offer)


@router.get("/active", response_model=OfferListResponse)
async def list_active_offers(
    category: Optional[str] = Query(None),
    pagination: PaginationParams = Depends(pagination_params),
    account=Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    offers, total = await OfferService(db, fanout).list_active(
        category=category, page=pagination.page, limit=pagination.page_size
    )
    return create_paginated_response(
        [OfferResponse.model_validate(o) for o in offers], total, pagination.page, pagination.page_size
    )


@router.get("/mine", response_model=List[OfferResponse])
async def list_my_offers(
    vendor=Depends(get_current_vendor),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    offers = await OfferService(db, fanout).list_for_vendor(str(vendor.id))
    return [OfferResponse.model_validate(o) for o in offers]


@router.get("/coupons", response_model=List[CouponResponse])
async def list_my_coupons(
    student=Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    coupons = await OfferService(db, fanout).list_coupons_for_student(str(student.id))
    return [CouponResponse.model_validate(c) for c in coupons]


@router.post("/{offer_id}/redeem", response_model=CouponResponse, status_code=status.HTTP_201_CREATED)
async def redeem_offer(
    offer_id: str,
    student=Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    """
    Claim a coupon for an offer.

    The account must be an approved, active, unsuspended student, and the
    offer must still have redemptions left.
    """
    coupon = await OfferService(db, fanout).redeem(student, offer_id)
    return CouponResponse.model_validate(coupon)


@router.patch("/{offer_id}", response_model=OfferResponse)
async def update_offer(
    offer_id: str,
    payload: OfferUpdate,
    vendor=Depends(get_current_vendor),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    """Edit one of your offers; content changes send it back for approval"""
    offer = await OfferService(db, fanout).update_offer(vendor, offer_id, **payload.changes())
    return OfferResponse.model_validate(offer)


@router.post("/{offer_id}/toggle", response_model=OfferResponse)
async def toggle_offer(
    offer_id: str,
    vendor=Depends(get_current_vendor),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    """Pause or resume one of your offers"""
    offer = await OfferService(db, fanout).toggle_offer(vendor, offer_id)
    return OfferResponse.model_validate(offer)


@router.delete("/{offer_id}")
async def delete_offer(
    offer_id: str,
    vendor=Depends(get_current_vendor),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    await OfferService(db, fanout).delete_offer(vendor, offer_id)
    return {"message": "Offer deleted successfully", "success": True}
