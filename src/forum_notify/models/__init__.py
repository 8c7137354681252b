# src/forum_notify/models/__init__.py
"""SQLAlchemy models for the forum notification service."""

from .course import CapabilityOverride, Course, CourseGroup, CourseModule, Enrolment, GroupMember
from .forum import Discussion, Forum, Post
from .subscription import DigestPreference, QueueEntry, Subscription
from .system import SchedulerState
from .tracking import ReadRecord, TrackingOverride
from .user import User

__all__ = [
    "CapabilityOverride", "Course", "CourseGroup", "CourseModule", "Enrolment", "GroupMember",
    "Discussion", "Forum", "Post",
    "DigestPreference", "QueueEntry", "Subscription",
    "SchedulerState",
    "ReadRecord", "TrackingOverride",
    "User",
]
