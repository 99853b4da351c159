"""
Users Router - wallet-based account registration and sign-in.
"""

from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.errors import APIError, bad_request, not_found
from ..core.logging import get_logger
from ..core.security import create_access_token, validate_solana_address
from ..database import get_db
from ..models.users import SignupRequest, User, serialize_user
from .deps import find_user_by_wallet, get_current_user

logger = get_logger(__name__)

router = APIRouter()


@router.post("/signup", status_code=201)
async def signup(payload: SignupRequest, db: AsyncSession = Depends(get_db)):
    """Register a new user keyed by wallet address."""
    result = await db.execute(
        select(User).where(
            or_(
                User.username == payload.username,
                User.email == payload.email,
                User.wallet_address == payload.wallet_address,
            )
        ).limit(1)
    )
    existing = result.scalar_one_or_none()
    if existing:
        if existing.username == payload.username:
            conflict_field = "username"
        elif existing.email == payload.email:
            conflict_field = "email"
        else:
            conflict_field = "wallet_address"
        raise APIError(
            409,
            "User already exists",
            f"A user with this {conflict_field} already exists",
            conflict_field=conflict_field,
        )

    user = User(
        username=payload.username,
        email=payload.email,
        wallet_address=payload.wallet_address,
        avatar_url=payload.avatar_url or None,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise APIError(
            409,
            "Unique constraint violation",
            "Username, email, or wallet address already exists",
        )

    logger.info("user_registered", user_id=user.id, wallet_address=user.wallet_address)
    return JSONResponse(
        status_code=201,
        content={
            "success": True,
            "message": "User account created successfully",
            "data": {"user": serialize_user(user)},
        },
    )


@router.get("/signin")
async def signin(
    wallet_address: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Look up a user by wallet and issue an access token."""
    if not wallet_address or not wallet_address.strip():
        raise bad_request("Missing wallet address", "Please provide wallet_address parameter")

    wallet_address = wallet_address.strip()
    if not validate_solana_address(wallet_address):
        raise bad_request(
            "Invalid wallet address format",
            "Wallet address must be a valid Solana address",
        )

    user = await find_user_by_wallet(db, wallet_address)
    if not user:
        raise not_found("User not found", f"No user found with wallet address: {wallet_address}")

    expires = timedelta(minutes=settings.access_token_expire_minutes)
    token = create_access_token(
        {"sub": str(user.id), "wallet": user.wallet_address},
        expires_delta=expires,
    )
    logger.info("user_signed_in", user_id=user.id)

    return {
        "success": True,
        "message": "User authenticated successfully",
        "data": {
            "user": serialize_user(user),
            "access_token": token,
            "token_type": "bearer",
            "expires_in": int(expires.total_seconds()),
        },
    }


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    """Get the authenticated user's profile."""
    return {"success": True, "data": {"user": serialize_user(current_user)}}
