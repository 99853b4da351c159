"""Database models; importing this package registers every table on Base.metadata."""

from .users import Admin, AdminAction, User
from .stories import Story, StoryStatus, StorySubmission, SubmissionStatus
from .comments import Comment, CommentLike
from .purchases import PurchaseStatus, StoryPurchase

__all__ = [
    "Admin",
    "AdminAction",
    "User",
    "Story",
    "StoryStatus",
    "StorySubmission",
    "SubmissionStatus",
    "Comment",
    "CommentLike",
    "PurchaseStatus",
    "StoryPurchase",
]
