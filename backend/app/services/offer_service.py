"""
Offer Service - vendor offers, admin moderation and student redemptions.

Flow:
    vendor creates offer (pending) ──► admins see "offer-submitted"
    admin approves ──► vendor gets "offer-approved", students get "offer-created"
    student redeems ──► coupon issued, vendor gets "coupon-redeemed"

Redemption takes a slot with one conditional UPDATE, so concurrent
redemptions can never exceed ``max_redemptions``.
"""

import secrets
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AlreadyRedeemedError,
    AuthorizationError,
    OfferNotFoundError,
    OfferUnavailableError,
    PreconditionFailedError,
    RedemptionNotAllowedError,
    ValidationError,
)
from app.core.logging_config import logger
from app.models.account import AccountRole, ApprovalStatus
from app.models.coupon import Coupon
from app.models.offer import DiscountType, Offer
from app.services.account_lifecycle import can_authenticate, redemption_block_reason
from app.services.audit import record_admin_action
from app.services.events import Actor, DomainEvent, EventType, TargetSelector
from app.services.fanout import EventFanout


# Edits to these send an offer back to moderation
REVIEWED_FIELDS = {"title", "description", "category", "discount", "discount_type", "code", "valid_until"}


def generate_coupon_code(prefix: Optional[str] = None) -> str:
    prefix = (prefix or "CP").upper()[:20]
    return f"{prefix}-{secrets.token_hex(4).upper()}"


def discount_label(offer: Offer) -> str:
    if offer.discount_type.value == "percentage":
        return f"{offer.discount:g}% off"
    return f"{offer.discount:g} off"


class OfferService:
    def __init__(self, session: AsyncSession, fanout: EventFanout):
        self.session = session
        self.fanout = fanout

    # ==================== Vendor ====================

    async def create_offer(self, vendor, **fields) -> Offer:
        if not can_authenticate(vendor) or vendor.approval_status != ApprovalStatus.APPROVED:
            raise AuthorizationError("Only approved vendors can create offers")

        offer = Offer(vendor_id=str(vendor.id), **fields)
        self.session.add(offer)
        await self.session.commit()
        logger.info(f"Offer {offer.id} submitted by vendor {vendor.id}")

        await self._announce_submission(offer, vendor)
        return offer

    async def _announce_submission(self, offer: Offer, vendor, resubmitted: bool = False) -> None:
        verb = "Updated" if resubmitted else "New"
        await self.fanout.emit(DomainEvent(
            type=EventType.OFFER_SUBMITTED,
            target=TargetSelector.role_wide(AccountRole.ADMIN),
            message=f"{verb} offer awaiting approval: {offer.title}",
            title="Offer submitted",
            payload={
                "offer_id": str(offer.id),
                "title": offer.title,
                "vendor_id": str(vendor.id),
                "vendor_name": vendor.business_name or vendor.name,
                "resubmitted": resubmitted,
            },
            actor=Actor(AccountRole.VENDOR, str(vendor.id), vendor.name),
        ))

    async def get_owned(self, vendor, offer_id: str) -> Offer:
        offer = await self.get(offer_id)
        if str(offer.vendor_id) != str(vendor.id):
            raise AuthorizationError("You can only manage your own offers")
        # redemptions are counted with a bulk UPDATE, so the cached row may be stale
        await self.session.refresh(offer)
        return offer

    async def update_offer(self, vendor, offer_id: str, **fields) -> Offer:
        """
        Edit an offer. Changing what students see on an approved or rejected
        offer sends it back to moderation.
        """
        offer = await self.get_owned(vendor, offer_id)
        limit = fields.get("max_redemptions", offer.max_redemptions)
        if limit and limit < offer.current_redemptions:
            raise ValidationError(
                f"max_redemptions cannot be below the {offer.current_redemptions} redemptions already made",
                field="max_redemptions",
            )
        if fields.get("discount_type", offer.discount_type) == DiscountType.PERCENTAGE \
                and fields.get("discount", offer.discount) > 100:
            raise ValidationError("Percentage discount cannot exceed 100", field="discount")

        changed = {key for key, value in fields.items() if getattr(offer, key) != value}
        for key in changed:
            setattr(offer, key, fields[key])

        resubmitted = bool(changed & REVIEWED_FIELDS) and offer.approval_status != ApprovalStatus.PENDING
        if resubmitted:
            offer.approval_status = ApprovalStatus.PENDING
            offer.approved_by = None
            offer.approved_at = None
            offer.rejection_reason = None
        await self.session.commit()
        logger.info(f"Offer {offer.id} updated by vendor {vendor.id}: {sorted(changed)}")

        if resubmitted:
            await self._announce_submission(offer, vendor, resubmitted=True)
        return offer

    async def toggle_offer(self, vendor, offer_id: str) -> Offer:
        """Pause or resume an offer; moderation state is unchanged"""
        offer = await self.get_owned(vendor, offer_id)
        offer.is_active = not offer.is_active
        await self.session.commit()
        logger.info(f"Offer {offer.id} {'resumed' if offer.is_active else 'paused'} by vendor {vendor.id}")
        return offer

    async def delete_offer(self, vendor, offer_id: str) -> None:
        """Offers that already issued coupons can only be paused"""
        offer = await self.get_owned(vendor, offer_id)
        if offer.current_redemptions:
            raise PreconditionFailedError(
                "Offers with redemptions cannot be deleted; pause the offer instead",
                details={"offer_id": str(offer.id), "current_redemptions": offer.current_redemptions},
            )
        await self.session.delete(offer)
        await self.session.commit()
        logger.info(f"Offer {offer_id} deleted by vendor {vendor.id}")

    async def offer_stats(self) -> dict:
        total = await self.session.scalar(select(func.count(Offer.id))) or 0
        active = await self.session.scalar(
            select(func.count(Offer.id)).where(Offer.is_active.is_(True))
        ) or 0
        pending = await self.session.scalar(
            select(func.count(Offer.id)).where(Offer.approval_status == ApprovalStatus.PENDING)
        ) or 0
        redemptions = await self.session.scalar(select(func.sum(Offer.current_redemptions))) or 0
        return {
            "total_offers": total,
            "active_offers": active,
            "inactive_offers": total - active,
            "pending_offers": pending,
            "total_redemptions": redemptions,
            "active_percentage": round(active * 100 / total) if total else 0,
        }

    async def list_for_vendor(self, vendor_id: str) -> List[Offer]:
        result = await self.session.execute(
            select(Offer).where(Offer.vendor_id == str(vendor_id)).order_by(Offer.created_at.desc())
        )
        return result.scalars().all()

    # ==================== Listing ====================

    def _available(self):
        now = datetime.utcnow()
        return (
            Offer.approval_status == ApprovalStatus.APPROVED,
            Offer.is_active.is_(True),
            or_(Offer.valid_until.is_(None), Offer.valid_until > now),
            or_(
                Offer.max_redemptions.is_(None),
                Offer.max_redemptions == 0,
                Offer.current_redemptions < Offer.max_redemptions,
            ),
        )

    async def list_active(self, category: Optional[str] = None, page: int = 1,
                          limit: int = 20) -> Tuple[List[Offer], int]:
        query = select(Offer).where(*self._available())
        if category:
            query = query.where(Offer.category == category)
        total = await self.session.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.session.execute(
            query.order_by(Offer.created_at.desc()).offset((page - 1) * limit).limit(limit)
        )
        return result.scalars().all(), total or 0

    async def list_pending(self) -> List[Offer]:
        result = await self.session.execute(
            select(Offer)
            .where(Offer.approval_status == ApprovalStatus.PENDING)
            .order_by(Offer.created_at.asc())
        )
        return result.scalars().all()

    async def get(self, offer_id: str) -> Offer:
        offer = await self.session.get(Offer, str(offer_id))
        if offer is None:
            raise OfferNotFoundError(str(offer_id))
        return offer

    # ==================== Moderation ====================

    async def approve_offer(self, offer_id: str, actor: Actor) -> Offer:
        offer = await self.get(offer_id)
        offer.approval_status = ApprovalStatus.APPROVED
        offer.approved_by = actor.account_id
        offer.approved_at = offer.approved_at or datetime.utcnow()
        offer.rejection_reason = None
        record_admin_action(self.session, actor, "offer_approved", "offer", str(offer.id),
                            {"title": offer.title, "vendor_id": str(offer.vendor_id)})
        await self.session.commit()

        payload = {
            "offer_id": str(offer.id),
            "title": offer.title,
            "vendor_id": str(offer.vendor_id),
            "discount": offer.discount,
            "discount_type": offer.discount_type.value,
            "category": offer.category,
        }
        await self.fanout.emit(
            DomainEvent(
                type=EventType.OFFER_APPROVED,
                target=TargetSelector.account(AccountRole.VENDOR, offer.vendor_id),
                message=f"Your offer '{offer.title}' has been approved",
                title="Offer approved",
                payload={**payload, "approval_status": ApprovalStatus.APPROVED.value},
                actor=actor,
            ),
            session=self.session,
        )
        await self.fanout.emit(DomainEvent(
            type=EventType.OFFER_CREATED,
            target=TargetSelector.everyone(),
            message=f"New offer: {offer.title} ({discount_label(offer)})",
            title="New offer available",
            payload=payload,
            actor=actor,
        ))
        return offer

    async def reject_offer(self, offer_id: str, reason: Optional[str], actor: Actor) -> Offer:
        offer = await self.get(offer_id)
        offer.approval_status = ApprovalStatus.REJECTED
        offer.rejection_reason = reason
        offer.approved_by = actor.account_id
        offer.approved_at = None
        record_admin_action(self.session, actor, "offer_rejected", "offer", str(offer.id),
                            {"title": offer.title, "reason": reason})
        await self.session.commit()

        message = f"Your offer '{offer.title}' was rejected"
        if reason:
            message = f"{message}: {reason}"
        await self.fanout.emit(
            DomainEvent(
                type=EventType.OFFER_REJECTED,
                target=TargetSelector.account(AccountRole.VENDOR, offer.vendor_id),
                message=message,
                title="Offer rejected",
                payload={
                    "offer_id": str(offer.id),
                    "title": offer.title,
                    "approval_status": ApprovalStatus.REJECTED.value,
                    "reason": reason,
                },
                actor=actor,
            ),
            session=self.session,
        )
        return offer

    # ==================== Redemption ====================

    async def redeem(self, student, offer_id: str) -> Coupon:
        reason = redemption_block_reason(student)
        if reason:
            raise RedemptionNotAllowedError(reason)

        offer = await self.get(offer_id)
        if offer.approval_status != ApprovalStatus.APPROVED or not offer.is_active:
            raise OfferUnavailableError(str(offer.id), "offer is not active")
        if offer.valid_until is not None and offer.valid_until <= datetime.utcnow():
            raise OfferUnavailableError(str(offer.id), "offer has expired")

        existing = await self.session.scalar(
            select(Coupon.id).where(Coupon.offer_id == str(offer.id), Coupon.student_id == str(student.id))
        )
        if existing is not None:
            raise AlreadyRedeemedError(str(offer.id))

        claimed = await self.session.execute(
            update(Offer)
            .where(Offer.id == str(offer.id), *self._available())
            .values(current_redemptions=Offer.current_redemptions + 1)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            raise OfferUnavailableError(str(offer.id), "redemption limit reached")

        coupon = Coupon(
            code=generate_coupon_code(offer.code),
            offer_id=str(offer.id),
            student_id=str(student.id),
            vendor_id=str(offer.vendor_id),
        )
        self.session.add(coupon)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise AlreadyRedeemedError(str(offer_id))

        logger.info(f"Coupon {coupon.code} issued to student {student.id} for offer {offer_id}")

        await self.fanout.emit(
            DomainEvent(
                type=EventType.COUPON_REDEEMED,
                target=TargetSelector.account(AccountRole.VENDOR, coupon.vendor_id),
                message=f"{student.name} claimed your offer '{offer.title}'",
                title="Coupon claimed",
                payload={
                    "coupon_id": str(coupon.id),
                    "code": coupon.code,
                    "offer_id": str(coupon.offer_id),
                    "offer_title": offer.title,
                    "student_id": str(student.id),
                    "student_name": student.name,
                },
                actor=Actor(AccountRole.STUDENT, str(student.id), student.name),
            ),
            session=self.session,
        )
        return coupon

    async def list_coupons_for_student(self, student_id: str) -> List[Coupon]:
        result = await self.session.execute(
            select(Coupon).where(Coupon.student_id == str(student_id)).order_by(Coupon.redeemed_at.desc())
        )
        return result.scalars().all()
