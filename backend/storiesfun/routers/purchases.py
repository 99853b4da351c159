"""
Story Purchase Router - read-access records and the STORIES payment handshake.

POST /pay runs in two steps. "create" returns an unsigned transfer for the
reader's wallet to sign; "confirm" submits the signed transaction and records
the purchase once the network confirms it.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.errors import APIError, bad_request
from ..core.logging import create_payment_logger, get_logger, log_purchase_event
from ..database import get_db
from ..models.purchases import (
    FREE_ACCESS_HASH,
    PaymentRequest,
    PaymentStep,
    PurchaseConfirmRequest,
    PurchaseLookupRequest,
    PurchaseStatus,
    StoryPurchase,
    serialize_purchase,
)
from ..models.stories import Story
from ..services.payment_service import PaymentError, payment_service

logger = get_logger(__name__)
payment_logger = create_payment_logger()

router = APIRouter()


async def find_completed_purchase(
    db: AsyncSession, story_id: int, wallet_address: str
) -> Optional[StoryPurchase]:
    result = await db.execute(
        select(StoryPurchase)
        .where(
            StoryPurchase.story_id == story_id,
            StoryPurchase.wallet_address == wallet_address,
            StoryPurchase.status == PurchaseStatus.COMPLETED.value,
        )
        .order_by(StoryPurchase.purchased_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_story_or_404(db: AsyncSession, story_id: int) -> Story:
    story = await db.get(Story, story_id)
    if not story:
        raise APIError(404, "STORY_NOT_FOUND", "Story not found")
    return story


async def record_purchase(
    db: AsyncSession,
    story_id: int,
    wallet_address: str,
    price_tokens: float,
    transaction_hash: str,
) -> StoryPurchase:
    """Insert a completed purchase; a reused transaction hash is a 409."""
    purchase = StoryPurchase(
        story_id=story_id,
        wallet_address=wallet_address,
        price_tokens=price_tokens,
        transaction_hash=transaction_hash,
        status=PurchaseStatus.COMPLETED.value,
    )
    db.add(purchase)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise APIError(
            409,
            "DUPLICATE_TRANSACTION",
            "This transaction has already been recorded",
        )
    return purchase


@router.post("/check")
async def check_purchase(payload: PurchaseLookupRequest, db: AsyncSession = Depends(get_db)):
    """Return the wallet's completed purchase of a story, if any."""
    if not payload.story_id or not payload.wallet_address:
        raise bad_request("Missing story_id or wallet_address")

    purchase = await find_completed_purchase(db, payload.story_id, payload.wallet_address)
    return {"success": True, "purchase": serialize_purchase(purchase)}


@router.get("/user")
async def user_purchases(
    wallet_address: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Completed purchases of a wallet, newest first."""
    if not wallet_address:
        raise bad_request("wallet_address is required")

    result = await db.execute(
        select(StoryPurchase)
        .where(
            StoryPurchase.wallet_address == wallet_address,
            StoryPurchase.status == PurchaseStatus.COMPLETED.value,
        )
        .order_by(StoryPurchase.purchased_at.desc(), StoryPurchase.id.desc())
    )
    purchases = result.scalars().all()
    return {
        "success": True,
        "data": {"purchases": [serialize_purchase(p) for p in purchases]},
    }


@router.post("/free")
async def unlock_free_story(payload: PurchaseLookupRequest, db: AsyncSession = Depends(get_db)):
    """Grant access to a story priced at zero."""
    if not payload.story_id or not payload.wallet_address:
        raise bad_request("Missing story_id or wallet_address")

    existing = await find_completed_purchase(db, payload.story_id, payload.wallet_address)
    if existing:
        return {
            "success": True,
            "message": "Story already unlocked",
            "alreadyPurchased": True,
        }

    story = await get_story_or_404(db, payload.story_id)
    if not story.is_free:
        raise APIError(403, "NOT_FREE", "This story is not free.")

    await record_purchase(db, story.id, payload.wallet_address, 0, FREE_ACCESS_HASH)
    log_purchase_event(payment_logger, "free_unlock", story.id, payload.wallet_address)

    return {
        "success": True,
        "message": "Free story unlocked",
        "price_tokens": 0,
    }


@router.post("/confirm")
async def confirm_purchase(payload: PurchaseConfirmRequest, db: AsyncSession = Depends(get_db)):
    """Record a purchase the client already confirmed on-chain."""
    if (
        not payload.story_id
        or not payload.wallet_address
        or not payload.price_tokens
        or not payload.transaction_hash
    ):
        raise bad_request(
            "Missing fields",
            "story_id, wallet_address, price_tokens and transaction_hash are required",
        )

    await get_story_or_404(db, payload.story_id)

    purchase = await record_purchase(
        db,
        payload.story_id,
        payload.wallet_address,
        payload.price_tokens,
        payload.transaction_hash,
    )
    log_purchase_event(
        payment_logger,
        "purchase_recorded",
        purchase.story_id,
        purchase.wallet_address,
        transaction_hash=purchase.transaction_hash,
    )
    return {"success": True, "data": serialize_purchase(purchase)}


@router.post("/pay")
async def pay_for_story(payload: PaymentRequest, db: AsyncSession = Depends(get_db)):
    """Create or confirm a STORIES payment for a story."""
    if not payload.story_id or not payload.wallet_address:
        raise bad_request("Missing required fields")

    try:
        if payload.step == PaymentStep.CREATE.value:
            quote = await payment_service.create_payment(payload.wallet_address, payload.story_id)
            return {"success": True, **quote.to_dict()}

        if payload.step == PaymentStep.CONFIRM.value:
            if not payload.signed_tx_base64:
                raise bad_request("Missing signed transaction")

            # Unknown stories are rejected before any funds move
            await get_story_or_404(db, payload.story_id)

            signature = await payment_service.submit_payment(payload.signed_tx_base64)
            await record_purchase(
                db,
                payload.story_id,
                payload.wallet_address,
                settings.story_usd_price,
                signature,
            )
            log_purchase_event(
                payment_logger,
                "payment_confirmed",
                payload.story_id,
                payload.wallet_address,
                transaction_hash=signature,
            )
            return {
                "success": True,
                "transaction_hash": signature,
                "amount_usd": settings.story_usd_price,
                "message": "Payment successfully processed",
            }

    except PaymentError as e:
        log_purchase_event(
            payment_logger,
            "payment_failed",
            payload.story_id,
            payload.wallet_address,
            step=payload.step,
            code=e.code,
        )
        raise APIError(e.status_code, e.code, e.message, **e.extra)

    raise bad_request("Invalid step parameter")
