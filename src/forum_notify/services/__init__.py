# src/forum_notify/services/__init__.py
"""Business logic services for forum read tracking and notifications."""

from .content import ForumContentService, PostThread
from .cron import ForumCron
from .host import DatabaseHost, HostServices
from .mail_composer import MailComposer
from .mailer import EmailTransport, RecordingTransport, SmtpTransport
from .read_state import ReadStateStore
from .rendering import ContentRenderer
from .subscriptions import SubscriptionRegistry
from .tracking_policy import TrackingPolicy
from .unread import UnreadAggregator

__all__ = [
    "ForumContentService",
    "PostThread",
    "ForumCron",
    "DatabaseHost",
    "HostServices",
    "MailComposer",
    "EmailTransport",
    "RecordingTransport",
    "SmtpTransport",
    "ReadStateStore",
    "ContentRenderer",
    "SubscriptionRegistry",
    "TrackingPolicy",
    "UnreadAggregator",
]
