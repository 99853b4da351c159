"""
Story Models - stories, their moderation submissions and request schemas.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from ..database import Base
from .users import serialize_admin, serialize_author

TITLE_MAX_LENGTH = 255
CONTENT_MAX_LENGTH = 50_000
PREVIEW_LENGTH = 300


class StoryStatus(str, Enum):
    SUBMITTED = "submitted"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PUBLISHED = "published"


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    PUBLISHED = "published"
    REJECTED = "rejected"


class ModerationAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"

    @property
    def resulting_status(self) -> StoryStatus:
        return StoryStatus.PUBLISHED if self is ModerationAction.APPROVE else StoryStatus.REJECTED

    @property
    def past_tense(self) -> str:
        return "approved" if self is ModerationAction.APPROVE else "rejected"


# SQLAlchemy Models
class Story(Base):
    """User-authored story gated by an optional token price."""

    __tablename__ = "stories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    author_id = Column(Integer, ForeignKey("user.id"), nullable=False, index=True)
    title = Column(String(TITLE_MAX_LENGTH), nullable=False)
    content = Column(Text, nullable=False)
    price_tokens = Column(Numeric(20, 9), default=0, nullable=False)
    status = Column(String(20), default=StoryStatus.SUBMITTED.value, nullable=False, index=True)
    approve_by = Column(Integer, ForeignKey("admin.admin_id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=True)

    author = relationship("User", lazy="selectin")
    approver = relationship("Admin", lazy="selectin")

    __table_args__ = (
        Index("idx_stories_status_created", "status", "created_at"),
    )

    @property
    def is_free(self) -> bool:
        return float(self.price_tokens or 0) <= 0

    def __repr__(self):
        return f"<Story(id={self.id}, status={self.status})>"


class StorySubmission(Base):
    """One moderation round for a story."""

    __tablename__ = "story_submissions"

    submission_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=False)
    story_id = Column(Integer, ForeignKey("stories.id"), nullable=False, index=True)
    status = Column(String(20), default=SubmissionStatus.PENDING.value, nullable=False)
    rejection_reason = Column(Text, nullable=True)
    submitted_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    reviewed_at = Column(DateTime, nullable=True)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_story(
    story: Story,
    include_approver: bool = False,
) -> Dict[str, Any]:
    data = {
        "id": story.id,
        "title": story.title,
        "price_tokens": float(story.price_tokens or 0),
        "status": story.status,
        "created_at": _iso(story.created_at),
        "updated_at": _iso(story.updated_at),
        "author": serialize_author(story.author),
        "content": story.content,
    }
    if include_approver:
        data["approved_by"] = serialize_admin(story.approver)
    return data


def serialize_submission(submission: Optional[StorySubmission]) -> Optional[Dict[str, Any]]:
    if submission is None:
        return None
    return {
        "submission_id": submission.submission_id,
        "status": submission.status,
        "submitted_at": _iso(submission.submitted_at),
        "reviewed_at": _iso(submission.reviewed_at),
        "rejection_reason": submission.rejection_reason,
    }


def content_preview(content: str, length: int = PREVIEW_LENGTH) -> str:
    if len(content) <= length:
        return content
    return content[:length].rstrip() + "..."


# Pydantic Schemas for API
class StoryCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=TITLE_MAX_LENGTH)
    content: str = Field(..., min_length=1, max_length=CONTENT_MAX_LENGTH)
    price_tokens: float = Field(default=0, ge=0)
    wallet_address: str = Field(..., min_length=1)


class StoryUpdateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    wallet_address: str = Field(..., min_length=1)
    title: Optional[str] = Field(default=None, min_length=1, max_length=TITLE_MAX_LENGTH)
    content: Optional[str] = Field(default=None, min_length=1, max_length=CONTENT_MAX_LENGTH)
    price_tokens: Optional[float] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def require_change(self):
        if self.title is None and self.content is None and self.price_tokens is None:
            raise ValueError(
                "At least one field (title, content, or price_tokens) must be provided"
            )
        return self


class ModerationRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    wallet_address: Optional[str] = None
    story_id: int = Field(..., gt=0)
    action: ModerationAction
    reason: Optional[str] = Field(default=None, max_length=1000)
