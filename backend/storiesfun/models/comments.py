"""
Comment Models - threaded story comments and per-user likes.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from ..database import Base

COMMENT_MAX_LENGTH = 2000
DELETED_PLACEHOLDER = "[This comment has been deleted]"


class Comment(Base):
    """Comment on a story; replies point at their parent."""

    __tablename__ = "comments"

    comment_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=False, index=True)
    story_id = Column(Integer, ForeignKey("stories.id"), nullable=False, index=True)
    parent_comment_id = Column(Integer, ForeignKey("comments.comment_id"), nullable=True, index=True)
    content = Column(Text, nullable=False)
    like_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, nullable=True)

    user = relationship("User", lazy="selectin")

    def __repr__(self):
        return f"<Comment(comment_id={self.comment_id}, story_id={self.story_id})>"


class CommentLike(Base):
    __tablename__ = "comments_like"

    like_id = Column(Integer, primary_key=True, autoincrement=True)
    comment_id = Column(Integer, ForeignKey("comments.comment_id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("user.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("comment_id", "user_id", name="uq_comments_like_comment_user"),
    )


def serialize_comment(comment: Comment, replies: Optional[List[Comment]] = None) -> Dict[str, Any]:
    user = comment.user
    data = {
        "comment_id": comment.comment_id,
        "user_id": comment.user_id,
        "story_id": comment.story_id,
        "parent_comment_id": comment.parent_comment_id,
        "content": comment.content,
        "like_count": comment.like_count,
        "created_at": comment.created_at.isoformat() if comment.created_at else None,
        "updated_at": comment.updated_at.isoformat() if comment.updated_at else None,
        "user": {
            "id": user.id,
            "username": user.username,
            "avatar_url": user.avatar_url,
            "wallet_address": user.wallet_address,
        } if user else None,
    }
    if replies is not None:
        data["replies"] = [serialize_comment(reply) for reply in replies]
    return data


class CommentCreateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    story_id: int = Field(..., gt=0)
    content: str = Field(..., min_length=1, max_length=COMMENT_MAX_LENGTH)
    wallet_address: str = Field(..., min_length=1)
    parent_comment_id: Optional[int] = Field(default=None, gt=0)


class CommentUpdateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    content: str = Field(..., min_length=1, max_length=COMMENT_MAX_LENGTH)
    wallet_address: str = Field(..., min_length=1)


class CommentLikeRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    comment_id: int = Field(..., gt=0)
    wallet_address: str = Field(..., min_length=1)
