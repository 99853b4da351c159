"""
Purchase Models - records granting a wallet read access to a story.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, String, text

from ..database import Base

FREE_ACCESS_HASH = "free-access"


class PurchaseStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentStep(str, Enum):
    CREATE = "create"
    CONFIRM = "confirm"


class StoryPurchase(Base):
    """Completed (or attempted) purchase of a story by a wallet."""

    __tablename__ = "story_purchases"

    id = Column(Integer, primary_key=True, autoincrement=True)
    story_id = Column(Integer, ForeignKey("stories.id"), nullable=False, index=True)
    wallet_address = Column(String(44), nullable=False, index=True)
    price_tokens = Column(Numeric(20, 9), default=0, nullable=False)
    transaction_hash = Column(String(100), nullable=False)
    status = Column(String(20), default=PurchaseStatus.COMPLETED.value, nullable=False)
    purchased_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        # Free unlocks all share the same placeholder hash
        Index(
            "uq_story_purchases_transaction_hash",
            "transaction_hash",
            unique=True,
            postgresql_where=text(f"transaction_hash <> '{FREE_ACCESS_HASH}'"),
            sqlite_where=text(f"transaction_hash <> '{FREE_ACCESS_HASH}'"),
        ),
        Index("idx_story_purchases_wallet_story", "wallet_address", "story_id"),
    )


def serialize_purchase(purchase: Optional[StoryPurchase]) -> Optional[Dict[str, Any]]:
    if purchase is None:
        return None
    return {
        "id": purchase.id,
        "story_id": purchase.story_id,
        "wallet_address": purchase.wallet_address,
        "price_tokens": float(purchase.price_tokens or 0),
        "transaction_hash": purchase.transaction_hash,
        "status": purchase.status,
        "purchased_at": purchase.purchased_at.isoformat() if purchase.purchased_at else None,
    }


class PurchaseLookupRequest(BaseModel):
    """Missing fields are reported by the handlers with purchase-specific errors."""

    model_config = ConfigDict(str_strip_whitespace=True)

    story_id: Optional[int] = Field(default=None, gt=0)
    wallet_address: Optional[str] = None


class PurchaseConfirmRequest(PurchaseLookupRequest):
    price_tokens: Optional[float] = Field(default=None, ge=0)
    transaction_hash: Optional[str] = Field(default=None, max_length=100)


class PaymentRequest(PurchaseLookupRequest):
    step: Optional[str] = None
    signed_tx_base64: Optional[str] = None
