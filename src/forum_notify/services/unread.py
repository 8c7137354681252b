"""Unread post counts at discussion, forum and course granularity."""

from __future__ import annotations

from sqlalchemy import ColumnElement, and_, func, or_, select, true
from sqlalchemy.orm import Session

from forum_notify.core.settings import Settings, settings as default_settings
from forum_notify.db.time import unix_now
from forum_notify.models import Course, CourseModule, Discussion, Forum, Post, ReadRecord, TrackingOverride, User
from forum_notify.models.course import GROUPMODE_SEPARATE
from forum_notify.models.forum import ALL_GROUPS
from forum_notify.services.host import (
    CAP_ACCESS_ALL_GROUPS,
    CAP_VIEW_HIDDEN_TIMED_POSTS,
    CapabilityCache,
    HostServices,
)
from forum_notify.services.tracking_policy import TrackingPolicy


class UnreadAggregator:
    """Count unread posts for a user.

    Course-wide counts are computed once per (user, course) and kept on the
    instance, so create one aggregator per request or job run.
    """

    def __init__(
        self,
        db: Session,
        host: HostServices,
        config: Settings | None = None,
        policy: TrackingPolicy | None = None,
    ) -> None:
        self.db = db
        self.settings = config or default_settings
        self.policy = policy or TrackingPolicy(db, self.settings)
        self.capabilities = CapabilityCache(host)
        self.host = host
        self._course_counts: dict[tuple[int, int], dict[int, int]] = {}
        self._forum_counts: dict[tuple[int, int], int] = {}

    def reset_cache(self) -> None:
        self._course_counts.clear()
        self._forum_counts.clear()
        self.capabilities.clear()

    def count_unread_in_discussion(self, user: User, discussion_id: int, now: int | None = None) -> int:
        """Return the number of unread posts in a discussion (0 when not tracked)."""
        now = unix_now() if now is None else now
        discussion = self.db.get(Discussion, discussion_id)
        if discussion is None:
            return 0
        forum = self.db.get(Forum, discussion.forum_id)
        if forum is None or not self.policy.is_tracked(user, forum):
            return 0

        return self.db.scalar(
            select(func.count(Post.id))
            .select_from(Post)
            .outerjoin(ReadRecord, and_(ReadRecord.postid == Post.id, ReadRecord.userid == user.id))
            .where(
                Post.discussion_id == discussion_id,
                Post.modified >= self._cutoff(now),
                ReadRecord.id.is_(None),
            )
        ) or 0

    def count_unread_in_forum(
        self,
        user: User,
        cm: CourseModule,
        course: Course,
        now: int | None = None,
    ) -> int:
        """Return the number of unread posts in the forum placed by ``cm``.

        In separate-groups mode only the user's groups and discussions open to
        all groups count, unless the user can access all groups.
        """
        now = unix_now() if now is None else now
        counts = self._counts_for_course(user, course.id, now)
        forum_id = cm.forum_id
        if forum_id not in counts:
            return 0

        if self.host.activity_group_mode(cm) != GROUPMODE_SEPARATE:
            return counts[forum_id]
        if self.capabilities.has_capability(CAP_ACCESS_ALL_GROUPS, course.id, user.id):
            return counts[forum_id]

        key = (user.id, forum_id)
        if key not in self._forum_counts:
            groups = self.host.user_groups(course.id, user.id) | {ALL_GROUPS}
            self._forum_counts[key] = self.db.scalar(
                self._unread_statement(user, course.id, now, func.count(Post.id)).where(
                    Forum.id == forum_id,
                    Discussion.groupid.in_(sorted(groups)),
                )
            ) or 0
        return self._forum_counts[key]

    def unread_map_for_course(self, user: User, course_id: int, now: int | None = None) -> dict[int, int]:
        """Return ``{forum_id: unread}`` for tracked forums of a course with unread posts."""
        now = unix_now() if now is None else now
        course = self.host.get_course(course_id)
        if course is None:
            return {}

        result: dict[int, int] = {}
        for forum_id, count in self._counts_for_course(user, course_id, now).items():
            cm = self.host.get_course_module(forum_id)
            if cm is not None:
                count = self.count_unread_in_forum(user, cm, course, now)
            if count:
                result[forum_id] = count
        return result

    def _counts_for_course(self, user: User, course_id: int, now: int) -> dict[int, int]:
        key = (user.id, course_id)
        if key not in self._course_counts:
            rows = self.db.execute(
                self._unread_statement(user, course_id, now, Forum.id, func.count(Post.id))
                .group_by(Forum.id)
            ).all()
            self._course_counts[key] = {forum_id: count for forum_id, count in rows}
        return self._course_counts[key]

    def _unread_statement(self, user: User, course_id: int, now: int, *columns):
        return (
            select(*columns)
            .select_from(Post)
            .join(Discussion, Discussion.id == Post.discussion_id)
            .join(Forum, Forum.id == Discussion.forum_id)
            .outerjoin(TrackingOverride, self.policy.override_join(user.id))
            .outerjoin(ReadRecord, and_(ReadRecord.postid == Post.id, ReadRecord.userid == user.id))
            .where(
                Forum.course_id == course_id,
                Post.modified >= self._cutoff(now),
                ReadRecord.id.is_(None),
                self.policy.tracked_clause(user),
                self._timed_clause(user, course_id, now),
            )
        )

    def _timed_clause(self, user: User, course_id: int, now: int) -> ColumnElement[bool]:
        if not self.settings.enable_timed_posts:
            return true()
        if self.capabilities.has_capability(CAP_VIEW_HIDDEN_TIMED_POSTS, course_id, user.id):
            return true()
        return or_(
            Discussion.userid == user.id,
            and_(
                Discussion.timestart <= now,
                or_(Discussion.timeend == 0, Discussion.timeend > now),
            ),
        )

    def _cutoff(self, now: int) -> int:
        return now - self.settings.old_post_seconds
