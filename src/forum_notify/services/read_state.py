"""Per-user read state of forum posts.

Posts older than the "old post" cutoff count as read by definition, so no
explicit record is ever written for them and periodic pruning removes the ones
that aged past it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from forum_notify.core.settings import Settings, settings as default_settings
from forum_notify.db.time import unix_now
from forum_notify.models import Discussion, Forum, Post, ReadRecord, TrackingOverride, User
from forum_notify.models.forum import ALL_GROUPS
from forum_notify.services.errors import MissingFilterError
from forum_notify.services.tracking_policy import TrackingPolicy

logger = logging.getLogger(__name__)


def _chunks(values: Sequence[int], size: int) -> Iterator[Sequence[int]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


class ReadStateStore:
    """Persist and query which posts each user has read."""

    def __init__(
        self,
        db: Session,
        config: Settings | None = None,
        policy: TrackingPolicy | None = None,
    ) -> None:
        self.db = db
        self.settings = config or default_settings
        self.policy = policy or TrackingPolicy(db, self.settings)

    def cutoff(self, now: int | None = None) -> int:
        """Return the timestamp before which posts count as already read."""
        now = unix_now() if now is None else now
        return now - self.settings.old_post_seconds

    def is_post_old(self, post: Post, now: int | None = None) -> bool:
        return post.modified < self.cutoff(now)

    def is_read(self, user: User, post: Post, now: int | None = None) -> bool:
        """Return True if the post is old or the user has an explicit read record."""
        if self.is_post_old(post, now):
            return True
        return self._find(user.id, post.id) is not None

    def mark_read(self, user: User, post: Post, now: int | None = None) -> bool:
        """Record that ``user`` read ``post``; repeated calls only touch ``lastread``.

        Old posts are already read by definition and are left alone.
        """
        now = unix_now() if now is None else now
        if self.is_post_old(post, now):
            return True

        record = self._find(user.id, post.id)
        if record is not None:
            record.lastread = now
            self.db.commit()
            return True

        discussion = self.db.get(Discussion, post.discussion_id)
        if discussion is None:
            logger.warning("Post %s has no discussion; not marking it read", post.id)
            return False

        self.db.add(
            ReadRecord(
                userid=user.id,
                postid=post.id,
                discussionid=discussion.id,
                forumid=discussion.forum_id,
                firstread=now,
                lastread=now,
            )
        )
        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent writer inserted the same (user, post) pair first.
            self.db.rollback()
            self.db.execute(
                update(ReadRecord)
                .where(ReadRecord.userid == user.id, ReadRecord.postid == post.id)
                .values(lastread=now)
            )
            self.db.commit()
        return True

    def mark_many_read(self, user: User, post_ids: Iterable[int], now: int | None = None) -> bool:
        """Mark many posts read for ``user`` in batches.

        Existing records get ``lastread`` refreshed. New records are only
        inserted for posts newer than the cutoff in forums tracked for the user.
        """
        if not self.policy.is_trackable(user):
            return True

        now = unix_now() if now is None else now
        cutoff = self.cutoff(now)
        ids = sorted(set(post_ids))
        if not ids:
            return True

        for chunk in _chunks(ids, max(1, self.settings.read_batch_size)):
            existing = set(
                self.db.scalars(
                    select(ReadRecord.postid).where(
                        ReadRecord.userid == user.id,
                        ReadRecord.postid.in_(chunk),
                    )
                )
            )
            if existing:
                self.db.execute(
                    update(ReadRecord)
                    .where(ReadRecord.userid == user.id, ReadRecord.postid.in_(sorted(existing)))
                    .values(lastread=now)
                )

            missing = [post_id for post_id in chunk if post_id not in existing]
            if not missing:
                continue

            rows = self.db.execute(
                select(Post.id, Post.discussion_id, Discussion.forum_id)
                .join(Discussion, Discussion.id == Post.discussion_id)
                .join(Forum, Forum.id == Discussion.forum_id)
                .outerjoin(TrackingOverride, self.policy.override_join(user.id))
                .where(
                    Post.id.in_(missing),
                    Post.modified >= cutoff,
                    self.policy.tracked_clause(user),
                )
            ).all()
            self.db.add_all(
                ReadRecord(
                    userid=user.id,
                    postid=row.id,
                    discussionid=row.discussion_id,
                    forumid=row.forum_id,
                    firstread=now,
                    lastread=now,
                )
                for row in rows
            )

        self.db.commit()
        return True

    def mark_discussion_read(self, user: User, discussion_id: int, now: int | None = None) -> bool:
        """Mark every unread, non-stale post of a discussion as read."""
        now = unix_now() if now is None else now
        post_ids = self.db.scalars(
            select(Post.id)
            .outerjoin(ReadRecord, self._read_join(user.id))
            .where(
                Post.discussion_id == discussion_id,
                Post.modified >= self.cutoff(now),
                ReadRecord.id.is_(None),
            )
        ).all()
        return self.mark_many_read(user, post_ids, now)

    def mark_forum_read(
        self,
        user: User,
        forum_id: int,
        group_id: int | None = None,
        now: int | None = None,
    ) -> bool:
        """Mark every unread, non-stale post of a forum as read.

        With ``group_id`` only discussions of that group and those visible to
        all groups are included.
        """
        now = unix_now() if now is None else now
        stmt = (
            select(Post.id)
            .join(Discussion, Discussion.id == Post.discussion_id)
            .outerjoin(ReadRecord, self._read_join(user.id))
            .where(
                Discussion.forum_id == forum_id,
                Post.modified >= self.cutoff(now),
                ReadRecord.id.is_(None),
            )
        )
        if group_id is not None:
            stmt = stmt.where(Discussion.groupid.in_((group_id, ALL_GROUPS)))
        return self.mark_many_read(user, self.db.scalars(stmt).all(), now)

    def count_read_in_discussion(self, user: User, discussion_id: int, now: int | None = None) -> int:
        """Return how many non-stale posts of a discussion the user has read."""
        return self.db.scalar(
            select(func.count(ReadRecord.id))
            .select_from(ReadRecord)
            .join(Post, Post.id == ReadRecord.postid)
            .where(
                ReadRecord.userid == user.id,
                ReadRecord.discussionid == discussion_id,
                Post.modified >= self.cutoff(now),
            )
        ) or 0

    def delete_read_records(
        self,
        *,
        user_id: int | None = None,
        post_id: int | None = None,
        discussion_id: int | None = None,
        forum_id: int | None = None,
        commit: bool = True,
    ) -> int:
        """Delete read records matching every given filter.

        Raises:
            MissingFilterError: If no filter was supplied.
        """
        criteria = []
        if user_id is not None:
            criteria.append(ReadRecord.userid == user_id)
        if post_id is not None:
            criteria.append(ReadRecord.postid == post_id)
        if discussion_id is not None:
            criteria.append(ReadRecord.discussionid == discussion_id)
        if forum_id is not None:
            criteria.append(ReadRecord.forumid == forum_id)
        if not criteria:
            raise MissingFilterError("At least one of user, post, discussion or forum is required")

        result = self.db.execute(
            delete(ReadRecord)
            .where(and_(*criteria))
            .execution_options(synchronize_session=False)
        )
        if commit:
            self.db.commit()
        return result.rowcount or 0

    def prune_stale(self, now: int | None = None) -> int:
        """Delete records for posts that aged past the cutoff, and orphans.

        The oldest tracked post bounds the range scan over posts. Safe to run
        repeatedly and alongside writers.
        """
        cutoff = self.cutoff(now)
        removed = 0

        first = self.db.scalar(
            select(func.min(Post.modified))
            .select_from(Post)
            .join(ReadRecord, ReadRecord.postid == Post.id)
        )
        if first is not None and first < cutoff:
            stale_posts = select(Post.id).where(Post.modified >= first, Post.modified < cutoff)
            result = self.db.execute(
                delete(ReadRecord)
                .where(ReadRecord.postid.in_(stale_posts))
                .execution_options(synchronize_session=False)
            )
            removed += result.rowcount or 0

        orphaned = self.db.execute(
            delete(ReadRecord)
            .where(ReadRecord.postid.not_in(select(Post.id)))
            .execution_options(synchronize_session=False)
        )
        removed += orphaned.rowcount or 0

        self.db.commit()
        if removed:
            logger.info("Pruned %d stale read records (cutoff %d)", removed, cutoff)
        return removed

    def _find(self, user_id: int, post_id: int) -> ReadRecord | None:
        return self.db.scalars(
            select(ReadRecord).where(ReadRecord.userid == user_id, ReadRecord.postid == post_id)
        ).first()

    @staticmethod
    def _read_join(user_id: int):
        return and_(ReadRecord.postid == Post.id, ReadRecord.userid == user_id)
