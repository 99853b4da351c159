"""
Shared lookups for route handlers: wallet -> user/admin resolution and
bearer-token authentication.
"""

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import APIError, forbidden, not_found
from ..core.security import verify_token
from ..database import get_db
from ..models.users import Admin, User

security = HTTPBearer(auto_error=False)


async def find_user_by_wallet(db: AsyncSession, wallet_address: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.wallet_address == wallet_address))
    return result.scalar_one_or_none()


async def find_admin_by_wallet(db: AsyncSession, wallet_address: Optional[str]) -> Optional[Admin]:
    if not wallet_address:
        return None
    result = await db.execute(select(Admin).where(Admin.wallet_address == wallet_address))
    return result.scalar_one_or_none()


async def require_user(db: AsyncSession, wallet_address: str) -> User:
    """User owning wallet_address, or a 404."""
    user = await find_user_by_wallet(db, wallet_address)
    if not user:
        raise not_found("User not found", "No user found with the provided wallet address")
    return user


async def require_admin(db: AsyncSession, wallet_address: Optional[str]) -> Admin:
    """Admin owning wallet_address; 401 without a wallet, 403 for a non-admin."""
    if not wallet_address:
        raise APIError(401, "Unauthorized", "wallet_address is required")
    admin = await find_admin_by_wallet(db, wallet_address)
    if not admin:
        raise forbidden("Access denied", "Admin privileges required")
    return admin


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Get current authenticated user from JWT token."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )

    payload = verify_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    try:
        user = await db.get(User, int(user_id))
    except (TypeError, ValueError):
        user = None

    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user
