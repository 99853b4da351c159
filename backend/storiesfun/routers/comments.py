"""
Comments Router - threaded discussion on published stories.

Top-level comments are paginated; each carries its direct replies in
chronological order. Likes are one per user per comment and toggle.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Query
from fastapi.responses import JSONResponse
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import bad_request, forbidden, not_found
from ..core.logging import get_logger
from ..database import get_db
from ..models.comments import (
    DELETED_PLACEHOLDER,
    Comment,
    CommentCreateRequest,
    CommentLike,
    CommentLikeRequest,
    CommentUpdateRequest,
    serialize_comment,
)
from ..models.stories import Story, StoryStatus
from .deps import find_admin_by_wallet, find_user_by_wallet, require_user

logger = get_logger(__name__)

router = APIRouter()

EDIT_WINDOW = timedelta(hours=24)


async def fetch_replies(db: AsyncSession, parent_ids: List[int]) -> Dict[int, List[Comment]]:
    """Direct replies grouped by parent, oldest first."""
    if not parent_ids:
        return {}
    result = await db.execute(
        select(Comment)
        .where(Comment.parent_comment_id.in_(parent_ids))
        .order_by(Comment.created_at.asc(), Comment.comment_id.asc())
    )
    grouped: Dict[int, List[Comment]] = {parent_id: [] for parent_id in parent_ids}
    for reply in result.scalars():
        grouped[reply.parent_comment_id].append(reply)
    return grouped


async def get_comment_or_404(db: AsyncSession, comment_id: int) -> Comment:
    comment = await db.get(Comment, comment_id)
    if not comment:
        raise not_found("Comment not found", "Comment does not exist")
    return comment


@router.get("")
async def list_comments(
    story_id: Optional[int] = Query(None),
    limit: int = Query(20),
    offset: int = Query(0),
    sort_order: str = Query("desc"),
    db: AsyncSession = Depends(get_db),
):
    """Top-level comments of a story with their replies."""
    if story_id is None:
        raise bad_request("Missing story_id", "story_id parameter is required")
    if limit < 1 or limit > 100:
        raise bad_request("Invalid limit", "Limit must be between 1 and 100 comments per request")
    if offset < 0:
        raise bad_request("Invalid offset", "Offset must be a non-negative number")
    if sort_order not in ("asc", "desc"):
        raise bad_request("Invalid sort order", 'Sort order must be either "asc" or "desc"')

    story = await db.get(Story, story_id)
    if not story:
        raise not_found("Story not found", f"No story found with ID: {story_id}")

    ordering = Comment.created_at.asc() if sort_order == "asc" else Comment.created_at.desc()
    top_level = Comment.parent_comment_id.is_(None)
    result = await db.execute(
        select(Comment)
        .where(Comment.story_id == story_id, top_level)
        .order_by(ordering, Comment.comment_id.desc())
        .offset(offset)
        .limit(limit)
    )
    comments = result.scalars().all()

    total = await db.scalar(
        select(func.count()).select_from(Comment).where(Comment.story_id == story_id, top_level)
    ) or 0

    replies = await fetch_replies(db, [c.comment_id for c in comments])
    return {
        "success": True,
        "data": {
            "comments": [serialize_comment(c, replies.get(c.comment_id, [])) for c in comments],
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "has_more": total > offset + limit,
            },
        },
    }


@router.post("", status_code=201)
async def create_comment(payload: CommentCreateRequest, db: AsyncSession = Depends(get_db)):
    """Comment on a published story, or reply to an existing comment."""
    user = await require_user(db, payload.wallet_address)

    story = await db.get(Story, payload.story_id)
    if not story:
        raise not_found("Story not found", "Story does not exist")
    if story.status != StoryStatus.PUBLISHED.value:
        raise bad_request("Story not available", "Comments are only allowed on published stories")

    if payload.parent_comment_id is not None:
        parent = await db.get(Comment, payload.parent_comment_id)
        if not parent:
            raise not_found("Parent comment not found", "The comment you are replying to does not exist")
        if parent.story_id != story.id:
            raise bad_request("Invalid parent comment", "Parent comment belongs to a different story")

    comment = Comment(
        user_id=user.id,
        story_id=story.id,
        parent_comment_id=payload.parent_comment_id,
        content=payload.content,
        like_count=0,
    )
    comment.user = user
    db.add(comment)
    await db.flush()

    is_reply = payload.parent_comment_id is not None
    logger.info("comment_created", comment_id=comment.comment_id, story_id=story.id, is_reply=is_reply)
    return JSONResponse(
        status_code=201,
        content={
            "success": True,
            "message": "Reply posted successfully" if is_reply else "Comment posted successfully",
            "data": {"comment": serialize_comment(comment)},
        },
    )


@router.post("/like")
async def toggle_like(payload: CommentLikeRequest, db: AsyncSession = Depends(get_db)):
    """Like a comment, or remove an existing like."""
    user = await require_user(db, payload.wallet_address)
    comment = await get_comment_or_404(db, payload.comment_id)

    result = await db.execute(
        select(CommentLike).where(
            CommentLike.comment_id == comment.comment_id,
            CommentLike.user_id == user.id,
        )
    )
    existing = result.scalar_one_or_none()

    if existing:
        await db.delete(existing)
        comment.like_count = max(0, (comment.like_count or 0) - 1)
        user_liked = False
    else:
        db.add(CommentLike(comment_id=comment.comment_id, user_id=user.id))
        comment.like_count = (comment.like_count or 0) + 1
        user_liked = True

    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise bad_request("Like already recorded", "This comment was already liked")

    return {
        "success": True,
        "message": "Comment liked" if user_liked else "Comment unliked",
        "data": {
            "comment_id": comment.comment_id,
            "like_count": comment.like_count,
            "user_liked": user_liked,
        },
    }


@router.get("/like")
async def like_status(
    comment_ids: Optional[str] = Query(None),
    wallet_address: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Which of the given comments the wallet's user has liked."""
    if not wallet_address:
        raise bad_request("Missing wallet address", "wallet_address parameter is required")

    ids = []
    for raw in (comment_ids or "").split(","):
        raw = raw.strip()
        if not raw.isdecimal():
            continue
        try:
            ids.append(int(raw))
        except ValueError:
            continue
    if not ids:
        raise bad_request("Invalid comment_ids", "comment_ids must contain at least one valid id")

    status_map = {str(comment_id): False for comment_id in ids}
    user = await find_user_by_wallet(db, wallet_address)
    if user:
        result = await db.execute(
            select(CommentLike.comment_id).where(
                CommentLike.user_id == user.id,
                CommentLike.comment_id.in_(ids),
            )
        )
        for comment_id in result.scalars():
            status_map[str(comment_id)] = True

    return {"success": True, "data": {"like_status": status_map}}


@router.get("/{comment_id}")
async def get_comment(comment_id: int = Path(..., gt=0), db: AsyncSession = Depends(get_db)):
    comment = await get_comment_or_404(db, comment_id)
    replies = await fetch_replies(db, [comment.comment_id])
    return {
        "success": True,
        "data": {"comment": serialize_comment(comment, replies[comment.comment_id])},
    }


@router.put("/{comment_id}")
async def update_comment(
    payload: CommentUpdateRequest,
    comment_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
):
    """Edit one's own comment within 24 hours of posting."""
    user = await require_user(db, payload.wallet_address)
    comment = await get_comment_or_404(db, comment_id)

    if comment.user_id != user.id:
        raise forbidden("Access denied", "You can only edit your own comments")
    if datetime.utcnow() - comment.created_at > EDIT_WINDOW:
        raise bad_request(
            "Edit time expired",
            "Comments can only be edited within 24 hours of posting",
        )

    comment.content = payload.content
    comment.updated_at = datetime.utcnow()
    await db.flush()

    return {
        "success": True,
        "message": "Comment updated successfully",
        "data": {"comment": serialize_comment(comment)},
    }


@router.delete("/{comment_id}")
async def delete_comment(
    comment_id: int = Path(..., gt=0),
    wallet_address: Optional[str] = Query(None),
    admin: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """Delete a comment; comments with replies are blanked instead of removed."""
    if not wallet_address:
        raise bad_request("Missing wallet address", "wallet_address parameter is required")

    user = await require_user(db, wallet_address)
    comment = await get_comment_or_404(db, comment_id)

    is_admin = admin and await find_admin_by_wallet(db, wallet_address) is not None
    by_admin = comment.user_id != user.id
    if by_admin and not is_admin:
        raise forbidden("Access denied", "You can only delete your own comments")

    reply_count = await db.scalar(
        select(func.count()).select_from(Comment).where(Comment.parent_comment_id == comment.comment_id)
    ) or 0

    if reply_count:
        comment.content = DELETED_PLACEHOLDER
        comment.updated_at = datetime.utcnow()
        await db.flush()
        soft_deleted = True
    else:
        await db.execute(delete(CommentLike).where(CommentLike.comment_id == comment.comment_id))
        await db.delete(comment)
        await db.flush()
        soft_deleted = False

    logger.info(
        "comment_deleted",
        comment_id=comment_id,
        soft_deleted=soft_deleted,
        by_admin=by_admin,
    )
    return {
        "success": True,
        "message": "Comment deleted successfully",
        "data": {"comment_id": comment_id, "soft_deleted": soft_deleted},
    }
