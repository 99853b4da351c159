"""
Email Service

Sends account verification codes through the Resend REST API and keeps
server-issued codes in the cache until they are used or expire.
"""

import hmac
import math
import secrets
import time
from typing import Any, Dict, Optional

import aiohttp

from ..core.cache import cache_key, cache_manager
from ..core.config import settings
from ..core.errors import UpstreamError
from ..core.logging import get_logger

logger = get_logger(__name__)

OTP_SUBJECT = "Account Verification OTP"
OTP_LENGTH = 6
MAX_OTP_ATTEMPTS = 5


class EmailNotConfiguredError(Exception):
    """RESEND_API_KEY is not set."""


class OTPVerificationError(Exception):
    """The submitted code is wrong, expired or was never issued."""


def render_otp_email(otp: str) -> str:
    return (
        "<div style=\"font-family:Arial,sans-serif;max-width:480px;margin:0 auto\">"
        "<h2>Verify your Stories.fun account</h2>"
        "<p>Use the code below to finish verifying your email address.</p>"
        f"<p style=\"font-size:28px;font-weight:bold;letter-spacing:6px\">{otp}</p>"
        f"<p>This code expires in {settings.otp_ttl_seconds // 60} minutes. "
        "If you did not request it you can ignore this email.</p>"
        "</div>"
    )


def generate_otp(length: int = OTP_LENGTH) -> str:
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


class EmailService:
    """Resend client and OTP store."""

    def __init__(self):
        self.timeout = aiohttp.ClientTimeout(total=15)

    async def send_otp_email(self, email: str, otp: str) -> Optional[str]:
        """
        Send the verification email.

        Returns:
            The Resend email id
        """
        if not settings.resend_api_key:
            raise EmailNotConfiguredError("RESEND_API_KEY missing")

        payload = {
            "from": settings.email_from,
            "to": [email],
            "subject": OTP_SUBJECT,
            "html": render_otp_email(otp),
        }
        headers = {"Authorization": f"Bearer {settings.resend_api_key}"}

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(settings.resend_api_url, json=payload, headers=headers) as response:
                if response.status >= 400:
                    detail = await response.text()
                    logger.error("email_send_failed", status=response.status, detail=detail[:200])
                    raise UpstreamError("Resend", response.status, detail)
                data: Dict[str, Any] = await response.json()

        email_id = data.get("id")
        logger.info("email_sent", email_id=email_id)
        return email_id

    async def issue_otp(self, email: str) -> Optional[str]:
        """Generate a code, remember it, and email it. Returns the Resend email id."""
        otp = generate_otp()
        ttl = settings.otp_ttl_seconds
        await cache_manager.set_json(
            cache_key("otp", email),
            {"otp": otp, "attempts": 0, "expires_at": time.time() + ttl},
            expire=ttl,
        )
        try:
            return await self.send_otp_email(email, otp)
        except Exception:
            await cache_manager.delete(cache_key("otp", email))
            raise

    async def verify_otp(self, email: str, otp: str) -> None:
        """Check and consume a code issued by issue_otp."""
        key = cache_key("otp", email)
        entry = await cache_manager.get_json(key)
        if not entry:
            raise OTPVerificationError("Verification code expired or not found")

        remaining = float(entry.get("expires_at", 0)) - time.time()
        if remaining <= 0:
            await cache_manager.delete(key)
            raise OTPVerificationError("Verification code expired or not found")

        stored = str(entry.get("otp", ""))
        if not hmac.compare_digest(stored.encode("utf-8"), otp.encode("utf-8")):
            attempts = int(entry.get("attempts", 0)) + 1
            if attempts >= MAX_OTP_ATTEMPTS:
                await cache_manager.delete(key)
                logger.warning("otp_attempts_exhausted")
            else:
                # Wrong guesses keep the original expiry
                await cache_manager.set_json(
                    key,
                    {**entry, "attempts": attempts},
                    expire=max(1, math.ceil(remaining)),
                )
            raise OTPVerificationError("Invalid verification code")

        await cache_manager.delete(key)


email_service = EmailService()
