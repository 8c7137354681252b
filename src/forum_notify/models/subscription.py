# src/forum_notify/models/subscription.py
"""Models for forum subscriptions, digest preferences and the digest queue."""

from sqlalchemy import BigInteger, Integer, SmallInteger, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from forum_notify.db.session import Base
from forum_notify.models.user import DIGEST_MODES


class Subscription(Base):
    """Request to receive notifications for every post in a forum."""

    __tablename__ = "forum_subscription"
    __table_args__ = (UniqueConstraint("userid", "forum", name="uq_forum_subscription"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    userid: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    forum: Mapped[int] = mapped_column(Integer, nullable=False, index=True)


class DigestPreference(Base):
    """Per-forum digest override; no row reads as -1 ("use my default")."""

    __tablename__ = "forum_digest"
    __table_args__ = (UniqueConstraint("userid", "forum", name="uq_forum_digest"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    userid: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    forum: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    maildigest: Mapped[int] = mapped_column(SmallInteger, nullable=False)

    @validates("maildigest")
    def _validate_maildigest(self, key: str, value: int) -> int:
        if value not in DIGEST_MODES:
            raise ValueError(f"{key} must be one of {DIGEST_MODES}, got {value!r}")
        return value


class QueueEntry(Base):
    """Pending digest delivery of one post to one user."""

    __tablename__ = "forum_queue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    userid: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    discussionid: Mapped[int] = mapped_column(Integer, nullable=False)
    postid: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    # Creation time of the post, used for the retention cap and digest cutoff.
    timemodified: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
