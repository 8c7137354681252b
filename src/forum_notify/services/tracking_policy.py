"""Decide whether read tracking applies to a user in a forum."""

from __future__ import annotations

import logging

from sqlalchemy import ColumnElement, and_, delete, false, or_, select
from sqlalchemy.orm import Session

from forum_notify.core.settings import Settings, settings as default_settings
from forum_notify.models import Forum, ReadRecord, TrackingOverride, User
from forum_notify.models.forum import TRACKING_FORCED, TRACKING_OPTIONAL

logger = logging.getLogger(__name__)


def is_guest(user: User | None, config: Settings) -> bool:
    """Return True for anonymous callers and the site guest account."""
    return user is None or not user.id or user.id == config.guest_user_id


class TrackingPolicy:
    """Resolve site config, forum mode, user preference and opt-out rows.

    Resolution never raises for configuration states: a site with tracking
    switched off simply answers ``False``.
    """

    def __init__(self, db: Session, config: Settings | None = None) -> None:
        self.db = db
        self.settings = config or default_settings

    def is_trackable(self, user: User | None, forum: Forum | None = None) -> bool:
        """Return True if ``user`` could have read tracking in ``forum``.

        Without a forum the question is "could any forum be tracked": forced
        forums may exist when the site allows forcing, otherwise it is down to
        the user's preference.
        """
        if not self.settings.trackreadposts:
            return False
        if is_guest(user, self.settings):
            return False

        if forum is None:
            if self.settings.allowforcedreadtracking:
                return True
            return bool(user.trackforums)

        optional = forum.trackingtype == TRACKING_OPTIONAL
        forced = forum.trackingtype == TRACKING_FORCED

        if self.settings.allowforcedreadtracking:
            return forced or (optional and bool(user.trackforums))
        # Forced forums degrade to optional when the site disallows forcing.
        return (forced or optional) and bool(user.trackforums)

    def is_tracked(self, user: User | None, forum: Forum) -> bool:
        """Return True if read state is currently recorded for ``user`` in ``forum``."""
        if not self.is_trackable(user, forum):
            return False

        optional = forum.trackingtype == TRACKING_OPTIONAL
        forced = forum.trackingtype == TRACKING_FORCED

        if self.settings.allowforcedreadtracking:
            return forced or (optional and not self.has_override(user.id, forum.id))
        return (optional or forced) and not self.has_override(user.id, forum.id)

    def tracked_clause(self, user: User | None) -> ColumnElement[bool]:
        """Return SQL criteria equivalent to :meth:`is_tracked` over ``Forum`` rows.

        The statement must outer join ``TrackingOverride`` using
        :meth:`override_join` for the same user.
        """
        if not self.is_trackable(user):
            return false()

        forced = Forum.trackingtype == TRACKING_FORCED
        optional = Forum.trackingtype == TRACKING_OPTIONAL
        no_override = TrackingOverride.id.is_(None)

        if self.settings.allowforcedreadtracking:
            if user.trackforums:
                return or_(forced, and_(optional, no_override))
            return forced
        return and_(or_(forced, optional), no_override)

    @staticmethod
    def override_join(user_id: int) -> ColumnElement[bool]:
        """ON clause joining a user's opt-out row to ``Forum``."""
        return and_(TrackingOverride.forumid == Forum.id, TrackingOverride.userid == user_id)

    def tracked_forum_ids(self, user: User, course_id: int) -> set[int]:
        """Return the ids of forums in a course that are tracked for ``user``."""
        rows = self.db.scalars(
            select(Forum.id)
            .outerjoin(TrackingOverride, self.override_join(user.id))
            .where(Forum.course_id == course_id, self.tracked_clause(user))
        )
        return set(rows)

    def has_override(self, user_id: int, forum_id: int) -> bool:
        """Return True if the user opted out of tracking ``forum_id``."""
        row = self.db.scalars(
            select(TrackingOverride.id).where(
                TrackingOverride.userid == user_id,
                TrackingOverride.forumid == forum_id,
            )
        ).first()
        return row is not None

    def untracked_forum_ids(self, user_id: int) -> set[int]:
        """Return the forums the user has opted out of."""
        rows = self.db.scalars(
            select(TrackingOverride.forumid).where(TrackingOverride.userid == user_id)
        )
        return set(rows)

    def start_tracking(self, user: User, forum: Forum) -> bool:
        """Remove the opt-out row so the forum's default policy applies again."""
        result = self.db.execute(
            delete(TrackingOverride).where(
                TrackingOverride.userid == user.id,
                TrackingOverride.forumid == forum.id,
            )
        )
        self.db.commit()
        return bool(result.rowcount)

    def stop_tracking(self, user: User, forum: Forum) -> bool:
        """Record an opt-out and drop the user's read records for the forum."""
        if not self.has_override(user.id, forum.id):
            self.db.add(TrackingOverride(userid=user.id, forumid=forum.id))
        self.db.execute(
            delete(ReadRecord).where(
                ReadRecord.userid == user.id,
                ReadRecord.forumid == forum.id,
            )
        )
        self.db.commit()
        logger.debug("User %s stopped tracking forum %s", user.id, forum.id)
        return True
