# src/forum_notify/models/tracking.py
"""Models for per-user read state and tracking opt-outs."""

from sqlalchemy import BigInteger, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from forum_notify.db.session import Base


class ReadRecord(Base):
    """Explicit "user has read this post" marker.

    Discussion and forum ids are denormalized so that rollups and bulk deletes
    do not need to join through posts.
    """

    __tablename__ = "forum_read"
    __table_args__ = (UniqueConstraint("userid", "postid", name="uq_forum_read_user_post"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    userid: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    postid: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    discussionid: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    forumid: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    firstread: Mapped[int] = mapped_column(BigInteger, nullable=False)
    lastread: Mapped[int] = mapped_column(BigInteger, nullable=False)


class TrackingOverride(Base):
    """Opt-out of read tracking for one forum.

    The row existing means tracking is OFF for (user, forum); absence means the
    forum's default tracking policy applies.
    """

    __tablename__ = "forum_track_prefs"
    __table_args__ = (UniqueConstraint("userid", "forumid", name="uq_forum_track_prefs"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    userid: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    forumid: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
