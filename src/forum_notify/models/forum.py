# src/forum_notify/models/forum.py
"""SQLAlchemy models for forums, discussions and posts."""

from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, Integer, SmallInteger, String, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from forum_notify.db.session import Base

# Read tracking modes (forum.trackingtype).
TRACKING_OFF = 0
TRACKING_OPTIONAL = 1
TRACKING_FORCED = 2
TRACKING_TYPES = (TRACKING_OFF, TRACKING_OPTIONAL, TRACKING_FORCED)

# Subscription modes (forum.forcesubscribe).
SUBSCRIPTION_CHOOSE = 0
SUBSCRIPTION_FORCED = 1
SUBSCRIPTION_INITIAL = 2
SUBSCRIPTION_DISALLOWED = 3
SUBSCRIPTION_MODES = (
    SUBSCRIPTION_CHOOSE,
    SUBSCRIPTION_FORCED,
    SUBSCRIPTION_INITIAL,
    SUBSCRIPTION_DISALLOWED,
)

# Mail status of a post (post.mailed).
MAIL_PENDING = 0
MAIL_SENT = 1
MAIL_ERROR = 2
MAIL_STATUSES = (MAIL_PENDING, MAIL_SENT, MAIL_ERROR)

# Discussion group scope.
ALL_GROUPS = -1
NO_GROUPS = 0

# Body formats understood by the content renderer.
FORMAT_PLAIN = 0
FORMAT_HTML = 1
MESSAGE_FORMATS = (FORMAT_PLAIN, FORMAT_HTML)

FORUM_TYPES = ("general", "qanda", "news", "single", "eachuser", "blog")


def _check_choice(field: str, value: int, choices: tuple[int, ...]) -> int:
    if value not in choices:
        raise ValueError(f"{field} must be one of {choices}, got {value!r}")
    return value


class Forum(Base):
    """Discussion forum activity inside a course."""

    __tablename__ = "forum"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    course_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("course.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="general")
    name: Mapped[str] = mapped_column(Text, nullable=False)
    intro: Mapped[str] = mapped_column(Text, nullable=False, default="")
    trackingtype: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, default=TRACKING_OPTIONAL
    )
    forcesubscribe: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, default=SUBSCRIPTION_CHOOSE
    )

    @validates("type")
    def _validate_type(self, _key: str, value: str) -> str:
        if value not in FORUM_TYPES:
            raise ValueError(f"type must be one of {FORUM_TYPES}, got {value!r}")
        return value

    @validates("trackingtype")
    def _validate_trackingtype(self, key: str, value: int) -> int:
        return _check_choice(key, value, TRACKING_TYPES)

    @validates("forcesubscribe")
    def _validate_forcesubscribe(self, key: str, value: int) -> int:
        return _check_choice(key, value, SUBSCRIPTION_MODES)


class Discussion(Base):
    """A topic grouping posts; carries denormalized last-activity fields."""

    __tablename__ = "forum_discussion"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    forum_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("forum.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    firstpost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    userid: Mapped[int] = mapped_column(Integer, nullable=False)
    # -1 = visible to all groups, 0 = forum not in group mode, >0 = group id.
    groupid: Mapped[int] = mapped_column(Integer, nullable=False, default=ALL_GROUPS)
    # Visibility window; 0 means unbounded on that side.
    timestart: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    timeend: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    # Recomputed whenever the latest post changes.
    timemodified: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    usermodified: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    @validates("timestart", "timeend", "timemodified")
    def _validate_times(self, key: str, value: int) -> int:
        if value < 0:
            raise ValueError(f"{key} cannot be negative")
        return value

    @validates("groupid")
    def _validate_groupid(self, key: str, value: int) -> int:
        if value < ALL_GROUPS:
            raise ValueError(f"{key} must be -1, 0 or a group id")
        return value


class Post(Base):
    """Content item inside a discussion; ``parent == 0`` marks the first post."""

    __tablename__ = "forum_post"
    __table_args__ = (
        Index("ix_forum_post_mailed_created", "mailed", "created"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    discussion_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("forum_discussion.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    parent: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    userid: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    created: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    modified: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, index=True)
    mailed: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=MAIL_PENDING)
    mailnow: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    messageformat: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=FORMAT_HTML)

    @validates("mailed")
    def _validate_mailed(self, key: str, value: int) -> int:
        return _check_choice(key, value, MAIL_STATUSES)

    @validates("messageformat")
    def _validate_messageformat(self, key: str, value: int) -> int:
        return _check_choice(key, value, MESSAGE_FORMATS)

    @validates("parent")
    def _validate_parent(self, key: str, value: int) -> int:
        if value < 0:
            raise ValueError(f"{key} cannot be negative")
        return value

    @property
    def is_root(self) -> bool:
        """True for the first post of a discussion."""
        return self.parent == 0
