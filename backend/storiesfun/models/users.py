"""
User Models - Database models for accounts and administrators.

This module defines:
- User: wallet-linked reader/author account
- Admin: privileged wallet allowed to moderate stories
- AdminAction: audit trail of moderation decisions
- Pydantic schemas for API requests
"""

import re
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from ..core.security import validate_solana_address
from ..database import Base

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# SQLAlchemy Models
class User(Base):
    """Reader/author account keyed by wallet address."""

    __tablename__ = "user"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    wallet_address = Column(String(44), unique=True, nullable=False, index=True)
    avatar_url = Column(String(512), nullable=True)
    email_verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, wallet={self.wallet_address[:8]}...)>"


class Admin(Base):
    """Wallet with moderation rights."""

    __tablename__ = "admin"

    admin_id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), nullable=True)
    admin_name = Column(String(100), nullable=True)
    wallet_address = Column(String(44), unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    @property
    def display_name(self) -> Optional[str]:
        return self.admin_name or self.username

    def __repr__(self):
        return f"<Admin(admin_id={self.admin_id}, wallet={self.wallet_address[:8]}...)>"


class AdminAction(Base):
    """Audit log entry for an admin decision."""

    __tablename__ = "admin_actions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    admin_id = Column(Integer, ForeignKey("admin.admin_id"), nullable=False, index=True)
    action_type = Column(String(20), nullable=False)  # approve, reject
    target_type = Column(String(20), nullable=False)  # story
    target_id = Column(Integer, nullable=False)
    details = Column(JSON, default=dict)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


def serialize_user(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "wallet_address": user.wallet_address,
        "avatar_url": user.avatar_url,
        "email": user.email,
        "email_verified": bool(user.email_verified),
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def serialize_author(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {
        "id": user.id,
        "username": user.username,
        "wallet_address": user.wallet_address,
    }


def serialize_admin(admin: Optional[Admin]) -> Optional[Dict[str, Any]]:
    if admin is None:
        return None
    return {
        "admin_id": admin.admin_id,
        "username": admin.display_name,
    }


# Pydantic Schemas for API
class SignupRequest(BaseModel):
    """Schema for creating a new user."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(..., min_length=1, max_length=50)
    email: str = Field(..., max_length=255)
    wallet_address: str
    avatar_url: Optional[str] = None

    @field_validator("username", "email")
    @classmethod
    def lowercase(cls, value: str) -> str:
        return value.lower()

    @field_validator("email")
    @classmethod
    def email_format(cls, value: str) -> str:
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Please provide a valid email address")
        return value

    @field_validator("wallet_address")
    @classmethod
    def wallet_format(cls, value: str) -> str:
        if not validate_solana_address(value):
            raise ValueError("wallet_address must be a valid Solana address")
        return value
