"""Logging helpers for Stories.fun."""

from __future__ import annotations

import logging
import sys
from typing import Any, Dict, Optional

import structlog

from .config import settings


def configure_logging() -> None:
    """Set up standard and structured logging."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            (
                structlog.processors.JSONRenderer()
                if settings.environment == "production"
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a configured logger."""
    return structlog.get_logger(name)


def create_payment_logger() -> structlog.stdlib.BoundLogger:
    """Dedicated logger for token payments."""
    return get_logger("payment")


def log_purchase_event(
    logger: structlog.stdlib.BoundLogger,
    event_type: str,
    story_id: Any,
    wallet_address: str,
    **kwargs: Any,
) -> None:
    """Log story purchase events with structured data."""
    logger.info(
        "purchase_event",
        event_type=event_type,
        story_id=story_id,
        wallet_address=wallet_address,
        **kwargs,
    )


def log_moderation_action(
    logger: structlog.stdlib.BoundLogger,
    admin: Dict[str, Any],
    action: str,
    story_id: int,
    reason: Optional[str] = None,
    **kwargs: Any,
) -> None:
    """Log admin moderation decisions."""
    logger.info(
        "moderation_action",
        admin_id=admin.get("admin_id"),
        admin_wallet=admin.get("wallet_address"),
        action=action,
        story_id=story_id,
        reason=reason,
        **kwargs,
    )
