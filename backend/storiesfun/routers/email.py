"""
Email Router - verification code delivery and checking.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import APIError, UpstreamError, bad_request
from ..core.logging import get_logger
from ..database import get_db
from ..models.users import EMAIL_PATTERN, User
from ..services.email_service import (
    EmailNotConfiguredError,
    OTPVerificationError,
    email_service,
)

logger = get_logger(__name__)

router = APIRouter()


class SendEmailRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, coerce_numbers_to_str=True)

    email: Optional[str] = None
    otp: Optional[str] = None


class OTPRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = None


def normalize_email(email: Optional[str]) -> str:
    email = (email or "").lower()
    if not email:
        raise bad_request("Missing email", "Email is required")
    if not EMAIL_PATTERN.match(email):
        raise bad_request("Invalid email", "Please provide a valid email address")
    return email


async def deliver(email: str, otp: Optional[str] = None) -> Optional[str]:
    """Send a caller-supplied code, or issue a new one when otp is None."""
    try:
        if otp is None:
            return await email_service.issue_otp(email)
        return await email_service.send_otp_email(email, otp)
    except EmailNotConfiguredError:
        raise APIError(500, "Email service not configured", "Email service not configured")
    except UpstreamError as e:
        raise APIError(
            500,
            "Failed to send verification email",
            "Failed to send verification email",
            details=e.detail[:500],
        )


@router.post("")
async def send_email(payload: SendEmailRequest):
    """Email a verification code chosen by the client."""
    if not payload.email or not payload.otp:
        raise bad_request("Missing fields", "Email and OTP are required")

    email_id = await deliver(payload.email, payload.otp)
    return {
        "success": True,
        "message": "Verification email sent successfully",
        "emailId": email_id,
    }


@router.post("/otp")
async def request_otp(payload: OTPRequest):
    """Generate a verification code server-side and email it."""
    email = normalize_email(payload.email)
    email_id = await deliver(email)
    return {
        "success": True,
        "message": "Verification email sent successfully",
        "emailId": email_id,
    }


@router.post("/otp/verify")
async def verify_otp(payload: SendEmailRequest, db: AsyncSession = Depends(get_db)):
    """Check a server-issued code and mark the matching user verified."""
    email = normalize_email(payload.email)
    if not payload.otp:
        raise bad_request("Missing fields", "Email and OTP are required")

    try:
        await email_service.verify_otp(email, payload.otp)
    except OTPVerificationError as e:
        raise bad_request("Invalid OTP", str(e))

    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user and not user.email_verified:
        user.email_verified = True
        await db.flush()
        logger.info("email_verified", user_id=user.id)

    return {
        "success": True,
        "message": "Email verified successfully",
        "data": {"email": email, "user_updated": user is not None},
    }
