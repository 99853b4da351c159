"""
Admin Router - story moderation queue and review decisions.

Admins are identified by wallet address membership in the admin table.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import bad_request, not_found
from ..core.logging import get_logger, log_moderation_action
from ..database import get_db
from ..models.stories import (
    ModerationAction,
    ModerationRequest,
    Story,
    StoryStatus,
    StorySubmission,
    SubmissionStatus,
    serialize_story,
    serialize_submission,
)
from ..models.users import Admin, AdminAction
from .deps import require_admin
from .stories import STATUS_VALUES, order_clause, validate_listing

logger = get_logger(__name__)

router = APIRouter()


def admin_identity(admin: Admin) -> Dict[str, Any]:
    return {
        "admin_id": admin.admin_id,
        "name": admin.display_name,
        "wallet_address": admin.wallet_address,
    }


def synthesized_submission(story: Story) -> Dict[str, Any]:
    """Stand-in submission for stories that predate submission tracking."""
    return {
        "submission_id": story.id,
        "status": story.status,
        "submitted_at": story.created_at.isoformat() if story.created_at else None,
        "reviewed_at": None,
        "rejection_reason": None,
    }


async def latest_submissions(db: AsyncSession, story_ids) -> Dict[int, StorySubmission]:
    if not story_ids:
        return {}
    result = await db.execute(
        select(StorySubmission)
        .where(StorySubmission.story_id.in_(story_ids))
        .order_by(StorySubmission.submitted_at.desc(), StorySubmission.submission_id.desc())
    )
    latest: Dict[int, StorySubmission] = {}
    for submission in result.scalars():
        latest.setdefault(submission.story_id, submission)
    return latest


@router.get("")
async def review_queue(
    wallet_address: Optional[str] = Query(None),
    status: str = Query(StoryStatus.SUBMITTED.value),
    limit: int = Query(20),
    offset: int = Query(0),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    db: AsyncSession = Depends(get_db),
):
    """List stories awaiting (or past) moderation."""
    admin = await require_admin(db, wallet_address)

    validate_listing(limit, offset, sort_by, sort_order)
    if status not in STATUS_VALUES:
        raise bad_request("Invalid status", f"Status must be one of: {', '.join(STATUS_VALUES)}")

    result = await db.execute(
        select(Story)
        .where(Story.status == status)
        .order_by(order_clause(sort_by, sort_order), Story.id.desc())
        .offset(offset)
        .limit(limit)
    )
    stories = result.scalars().all()
    total = await db.scalar(
        select(func.count()).select_from(Story).where(Story.status == status)
    ) or 0

    submissions = await latest_submissions(db, [story.id for story in stories])
    items = []
    for story in stories:
        item = serialize_story(story, include_approver=True)
        submission = submissions.get(story.id)
        item["submission"] = (
            serialize_submission(submission) if submission else synthesized_submission(story)
        )
        items.append(item)

    return {
        "success": True,
        "data": {
            "stories": items,
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "has_more": total > offset + limit,
            },
            "filters": {"status": status, "sort_by": sort_by, "sort_order": sort_order},
            "admin": admin_identity(admin),
        },
    }


@router.post("")
async def moderate_story(payload: ModerationRequest, db: AsyncSession = Depends(get_db)):
    """Approve or reject a submitted story."""
    admin = await require_admin(db, payload.wallet_address)

    story = await db.get(Story, payload.story_id)
    if not story:
        raise not_found("Story not found", f"No story found with ID: {payload.story_id}")

    action: ModerationAction = payload.action
    if story.status != StoryStatus.SUBMITTED.value:
        raise bad_request(
            "Invalid story status",
            f"Cannot {action.value} story with status: {story.status}. "
            "Only submitted stories can be reviewed.",
        )

    reviewed_at = datetime.utcnow()
    story.status = action.resulting_status.value
    story.approve_by = admin.admin_id
    story.approver = admin

    submission_values = {
        "status": (
            SubmissionStatus.PUBLISHED.value
            if action is ModerationAction.APPROVE
            else SubmissionStatus.REJECTED.value
        ),
        "reviewed_at": reviewed_at,
    }
    if action is ModerationAction.REJECT:
        submission_values["rejection_reason"] = payload.reason

    await db.execute(
        update(StorySubmission)
        .where(
            StorySubmission.story_id == story.id,
            StorySubmission.status == SubmissionStatus.PENDING.value,
        )
        .values(**submission_values)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    # Rollback below expires loaded objects; capture the response first
    story_id = story.id
    story_data = serialize_story(story, include_approver=True)
    admin_data = admin_identity(admin)

    db.add(
        AdminAction(
            admin_id=admin_data["admin_id"],
            action_type=action.value,
            target_type="story",
            target_id=story_id,
            details={
                "previous_status": StoryStatus.SUBMITTED.value,
                "new_status": story_data["status"],
                "story_title": story_data["title"],
            },
            notes=payload.reason,
        )
    )
    try:
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error("admin_action_log_failed", story_id=story_id, error=str(e))

    log_moderation_action(
        logger,
        {"admin_id": admin_data["admin_id"], "wallet_address": admin_data["wallet_address"]},
        action.value,
        story_id,
        reason=payload.reason,
    )

    return {
        "success": True,
        "message": f"Story {action.past_tense} successfully",
        "data": {
            "story": story_data,
            "admin": admin_data,
        },
    }


@router.get("/{story_id}")
async def review_story(
    story_id: int = Path(..., gt=0),
    wallet_address: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Full story detail for review."""
    admin = await require_admin(db, wallet_address)

    story = await db.get(Story, story_id)
    if not story:
        raise not_found("Story not found", f"No story found with ID: {story_id}")

    result = await db.execute(
        select(StorySubmission)
        .where(StorySubmission.story_id == story.id)
        .order_by(StorySubmission.submitted_at.desc(), StorySubmission.submission_id.desc())
    )
    submissions = result.scalars().all()

    data = serialize_story(story, include_approver=True)
    data["author_id"] = story.author_id
    return {
        "success": True,
        "data": {
            "story": data,
            "submissions": [serialize_submission(s) for s in submissions],
            "admin": admin_identity(admin),
        },
    }
