"""
Stories Router - public story listing, authoring and reading.

Readers see the full content of a story when it is free, when they wrote it,
or when their wallet holds a completed purchase. Everyone else gets a preview.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import bad_request, forbidden, not_found
from ..core.logging import get_logger
from ..database import get_db
from ..models.purchases import PurchaseStatus, StoryPurchase
from ..models.stories import (
    Story,
    StoryCreateRequest,
    StoryStatus,
    StorySubmission,
    StoryUpdateRequest,
    SubmissionStatus,
    content_preview,
    serialize_story,
    serialize_submission,
)
from .deps import find_admin_by_wallet, require_user

logger = get_logger(__name__)

router = APIRouter()

SORT_FIELDS = {
    "created_at": Story.created_at,
    "title": Story.title,
    "price_tokens": Story.price_tokens,
}
STATUS_VALUES = [s.value for s in StoryStatus]


def validate_listing(limit: int, offset: int, sort_by: str, sort_order: str) -> None:
    """Shared pagination/sort checks for story listings."""
    if limit < 1 or limit > 100:
        raise bad_request("Invalid limit", "Limit must be between 1 and 100 stories per request")
    if offset < 0:
        raise bad_request("Invalid offset", "Offset must be a non-negative number")
    if sort_by not in SORT_FIELDS:
        raise bad_request(
            "Invalid sort field",
            f"Sort field must be one of: {', '.join(SORT_FIELDS)}",
        )
    if sort_order not in ("asc", "desc"):
        raise bad_request("Invalid sort order", 'Sort order must be either "asc" or "desc"')


def order_clause(sort_by: str, sort_order: str):
    column = SORT_FIELDS[sort_by]
    return column.asc() if sort_order == "asc" else column.desc()


async def has_completed_purchase(db: AsyncSession, story_id: int, wallet_address: str) -> bool:
    result = await db.execute(
        select(StoryPurchase.id).where(
            StoryPurchase.story_id == story_id,
            StoryPurchase.wallet_address == wallet_address,
            StoryPurchase.status == PurchaseStatus.COMPLETED.value,
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None


@router.get("")
async def list_stories(
    status: str = Query(StoryStatus.PUBLISHED.value),
    author_id: Optional[int] = Query(None),
    limit: int = Query(10),
    offset: int = Query(0),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    db: AsyncSession = Depends(get_db),
):
    """List stories with filtering and pagination."""
    validate_listing(limit, offset, sort_by, sort_order)
    if status not in STATUS_VALUES:
        raise bad_request("Invalid status", f"Status must be one of: {', '.join(STATUS_VALUES)}")

    query = select(Story).where(Story.status == status)
    if author_id is not None:
        query = query.where(Story.author_id == author_id)

    result = await db.execute(
        query.order_by(order_clause(sort_by, sort_order), Story.id.desc())
        .offset(offset)
        .limit(limit)
    )
    stories = result.scalars().all()

    total = await db.scalar(
        select(func.count()).select_from(Story).where(Story.status == status)
    ) or 0

    return {
        "success": True,
        "data": {
            "stories": [serialize_story(story) for story in stories],
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "has_more": total > offset + limit,
            },
            "filters": {
                "status": status,
                "author_id": author_id,
                "sort_by": sort_by,
                "sort_order": sort_order,
            },
        },
    }


@router.post("/create", status_code=201)
async def create_story(payload: StoryCreateRequest, db: AsyncSession = Depends(get_db)):
    """Submit a new story for moderation."""
    author = await require_user(db, payload.wallet_address)

    story = Story(
        author_id=author.id,
        title=payload.title,
        content=payload.content,
        price_tokens=payload.price_tokens,
        status=StoryStatus.SUBMITTED.value,
    )
    story.author = author
    db.add(story)
    await db.commit()

    # Rollback below expires loaded objects; capture the response first
    story_id = story.id
    story_data = serialize_story(story)

    submission = StorySubmission(
        user_id=author.id,
        story_id=story_id,
        status=SubmissionStatus.PENDING.value,
    )
    db.add(submission)
    try:
        await db.commit()
        submission_data = serialize_submission(submission)
    except Exception as e:
        await db.rollback()
        logger.error("submission_record_failed", story_id=story_id, error=str(e))
        submission_data = None

    logger.info("story_created", story_id=story_id, author_id=story_data["author"]["id"])
    return JSONResponse(
        status_code=201,
        content={
            "success": True,
            "message": "Story submitted successfully and is pending review",
            "data": {
                "story": story_data,
                "submission": submission_data,
            },
        },
    )


@router.get("/{story_id}")
async def get_story(
    story_id: int = Path(..., gt=0),
    wallet_address: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Read one story, gated by purchase for paid content."""
    story = await db.get(Story, story_id)
    if not story:
        raise not_found("Story not found", f"No story found with ID: {story_id}")

    wallet_address = wallet_address.strip() if wallet_address else None
    is_author = bool(wallet_address and story.author and story.author.wallet_address == wallet_address)

    if story.status != StoryStatus.PUBLISHED.value and not is_author:
        admin = await find_admin_by_wallet(db, wallet_address)
        if not admin:
            raise not_found("Story not found", f"No story found with ID: {story_id}")

    has_access = story.is_free or is_author
    if not has_access and wallet_address:
        has_access = await has_completed_purchase(db, story.id, wallet_address)

    data = serialize_story(story, include_approver=True)
    data["has_access"] = has_access
    data["is_author"] = is_author
    data["is_preview"] = not has_access
    if not has_access:
        data["content"] = content_preview(story.content)

    return {"success": True, "data": {"story": data}}


@router.put("/{story_id}/update")
async def update_story(
    payload: StoryUpdateRequest,
    story_id: int = Path(..., gt=0),
    db: AsyncSession = Depends(get_db),
):
    """Edit a published story; the edit goes back through moderation."""
    author = await require_user(db, payload.wallet_address)

    story = await db.get(Story, story_id)
    if not story:
        raise not_found("Story not found", f"No story found with ID: {story_id}")
    if story.author_id != author.id:
        raise forbidden("Access denied", "You can only update your own stories")
    if story.status != StoryStatus.PUBLISHED.value:
        raise bad_request(
            "Invalid story status",
            f"Only published stories can be updated. Current status: {story.status}",
        )

    updated_fields = []
    if payload.title is not None:
        story.title = payload.title
        updated_fields.append("title")
    if payload.content is not None:
        story.content = payload.content
        updated_fields.append("content")
    if payload.price_tokens is not None:
        story.price_tokens = payload.price_tokens
        updated_fields.append("price_tokens")

    story.status = StoryStatus.SUBMITTED.value
    story.approve_by = None
    story.approver = None

    submission = StorySubmission(
        user_id=author.id,
        story_id=story.id,
        status=SubmissionStatus.PENDING.value,
    )
    db.add(submission)
    await db.flush()

    logger.info("story_updated", story_id=story.id, fields=updated_fields)
    return {
        "success": True,
        "message": "Story updated and resubmitted for review",
        "data": {
            "story": serialize_story(story),
            "submission": serialize_submission(submission),
            "updated_fields": updated_fields,
        },
    }
