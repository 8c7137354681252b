"""
Pydantic schemas for API request/response models and job reports.
"""

from .cron import CronReport
from .forum import DigestStatus, DigestUpdate, SubscriberResponse, SubscriptionStatus, TrackingStatus
from .post import DeleteResult, DiscussionCreate, DiscussionResponse, PostResponse, ReplyCreate
from .unread import CourseUnread, DiscussionUnread, ReadResult

__all__ = [
    "CronReport",
    "DigestStatus", "DigestUpdate", "SubscriberResponse", "SubscriptionStatus", "TrackingStatus",
    "DeleteResult", "DiscussionCreate", "DiscussionResponse", "PostResponse", "ReplyCreate",
    "CourseUnread", "DiscussionUnread", "ReadResult",
]
