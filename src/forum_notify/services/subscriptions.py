"""Forum subscriptions and per-forum digest preferences."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from forum_notify.core.settings import Settings, settings as default_settings
from forum_notify.models import DigestPreference, Forum, Subscription, User
from forum_notify.models.forum import (
    SUBSCRIPTION_DISALLOWED,
    SUBSCRIPTION_FORCED,
    SUBSCRIPTION_INITIAL,
    SUBSCRIPTION_MODES,
)
from forum_notify.models.user import DIGEST_MODES, DIGEST_USE_DEFAULT
from forum_notify.services.errors import (
    InvalidDigestSettingError,
    InvalidSubscriptionModeError,
    SubscriptionDisallowedError,
    SubscriptionForcedError,
)
from forum_notify.services.host import (
    CAP_ALLOW_FORCE_SUBSCRIBE,
    CAP_MANAGE_SUBSCRIPTIONS,
    CapabilityCache,
    HostServices,
)

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """CRUD over subscriptions and digest preferences, honouring forum modes.

    Capability answers are memoized on the instance; keep one registry per
    request or job run.
    """

    def __init__(
        self,
        db: Session,
        host: HostServices,
        config: Settings | None = None,
        capabilities: CapabilityCache | None = None,
    ) -> None:
        self.db = db
        self.host = host
        self.settings = config or default_settings
        self.capabilities = capabilities or CapabilityCache(host)

    @staticmethod
    def is_forcesubscribed(forum: Forum) -> bool:
        return forum.forcesubscribe == SUBSCRIPTION_FORCED

    def is_subscribed(self, user: User, forum: Forum) -> bool:
        """Return True if notifications for ``forum`` go to ``user``."""
        if self.is_forcesubscribed(forum) and self.capabilities.has_capability(
            CAP_ALLOW_FORCE_SUBSCRIBE, forum.course_id, user.id
        ):
            return True
        return self._find(user.id, forum.id) is not None

    def subscribe(self, user: User, forum: Forum) -> Subscription:
        """Subscribe ``user`` to ``forum``; subscribing twice is harmless.

        Raises:
            SubscriptionDisallowedError: The forum disallows subscriptions and
                the user cannot manage them.
        """
        if forum.forcesubscribe == SUBSCRIPTION_DISALLOWED and not self.capabilities.has_capability(
            CAP_MANAGE_SUBSCRIPTIONS, forum.course_id, user.id
        ):
            raise SubscriptionDisallowedError(f"Forum {forum.id} does not allow subscriptions")

        subscription = self._add(user.id, forum.id)
        self.db.commit()
        return subscription

    def unsubscribe(self, user: User, forum: Forum) -> bool:
        """Remove the subscription and reset the user's digest choice for the forum.

        Raises:
            SubscriptionForcedError: Everyone is subscribed to the forum.
        """
        if self.is_forcesubscribed(forum):
            raise SubscriptionForcedError(f"Everyone is subscribed to forum {forum.id}")

        result = self.db.execute(
            delete(Subscription).where(
                Subscription.userid == user.id,
                Subscription.forum == forum.id,
            )
        )
        self.db.execute(
            delete(DigestPreference).where(
                DigestPreference.userid == user.id,
                DigestPreference.forum == forum.id,
            )
        )
        self.db.commit()
        return bool(result.rowcount)

    def potential_subscriber_ids(self, forum: Forum) -> list[int]:
        """Return ids of active enrolled users allowed to be force-subscribed."""
        return [
            user_id
            for user_id in self.host.enrolled_user_ids(forum.course_id)
            if self.capabilities.has_capability(CAP_ALLOW_FORCE_SUBSCRIBE, forum.course_id, user_id)
        ]

    def list_subscribers(self, forum: Forum, group_id: int | None = None) -> list[User]:
        """Return the users notifications for ``forum`` should go to.

        Forced forums return every potential subscriber; other forums return
        explicit subscribers who are still actively enrolled. Guest, deleted and
        suspended accounts never appear.
        """
        if self.is_forcesubscribed(forum):
            candidate_ids = set(self.potential_subscriber_ids(forum))
        else:
            enrolled = set(self.host.enrolled_user_ids(forum.course_id))
            subscribed = self.db.scalars(
                select(Subscription.userid).where(Subscription.forum == forum.id)
            )
            candidate_ids = enrolled.intersection(subscribed)

        if group_id is not None and group_id > 0:
            candidate_ids = {
                user_id for user_id in candidate_ids if self.host.is_group_member(group_id, user_id)
            }

        candidate_ids.discard(self.settings.guest_user_id)
        if not candidate_ids:
            return []

        users = self.db.scalars(
            select(User)
            .where(
                User.id.in_(sorted(candidate_ids)),
                User.deleted.is_(False),
                User.suspended.is_(False),
            )
            .order_by(User.id)
        )
        return list(users)

    def subscribed_forum_ids(self, user: User, course_id: int) -> set[int]:
        """Return the forums of a course whose notifications reach ``user``."""
        forums = self.db.scalars(select(Forum).where(Forum.course_id == course_id))
        return {forum.id for forum in forums if self.is_subscribed(user, forum)}

    def set_subscription_mode(self, forum: Forum, mode: int) -> Forum:
        """Change the forum's subscription mode.

        Switching to the initial mode subscribes every potential subscriber once;
        they can unsubscribe afterwards.
        """
        if mode not in SUBSCRIPTION_MODES:
            raise InvalidSubscriptionModeError(f"Unknown subscription mode {mode!r}")

        forum.forcesubscribe = mode
        if mode == SUBSCRIPTION_INITIAL:
            for user_id in self.potential_subscriber_ids(forum):
                if user_id != self.settings.guest_user_id:
                    self._add(user_id, forum.id)
        self.db.commit()
        return forum

    def get_digest(self, user: User, forum: Forum) -> int:
        """Return the stored digest choice, or -1 when the user default applies."""
        mode = self.db.scalars(
            select(DigestPreference.maildigest).where(
                DigestPreference.userid == user.id,
                DigestPreference.forum == forum.id,
            )
        ).first()
        return DIGEST_USE_DEFAULT if mode is None else mode

    def set_digest(self, user: User, forum: Forum, mode: int) -> int:
        """Store a digest choice for the forum; -1 reverts to the user default.

        Raises:
            InvalidDigestSettingError: ``mode`` is not -1, 0, 1 or 2. Nothing is
                written in that case.
        """
        if mode != DIGEST_USE_DEFAULT and mode not in DIGEST_MODES:
            raise InvalidDigestSettingError(f"Unknown digest mode {mode!r}")

        preference = self.db.scalars(
            select(DigestPreference).where(
                DigestPreference.userid == user.id,
                DigestPreference.forum == forum.id,
            )
        ).first()
        if mode == DIGEST_USE_DEFAULT:
            if preference is not None:
                self.db.delete(preference)
        elif preference is None:
            self.db.add(DigestPreference(userid=user.id, forum=forum.id, maildigest=mode))
        else:
            preference.maildigest = mode
        self.db.commit()
        return mode

    def effective_digest(self, user: User, forum: Forum) -> int:
        """Return the digest mode that applies to ``user`` in ``forum``."""
        mode = self.get_digest(user, forum)
        return user.maildigest if mode == DIGEST_USE_DEFAULT else mode

    def digest_map(self, forum_ids: Iterable[int]) -> dict[int, dict[int, int]]:
        """Return stored digest choices as ``{forum_id: {user_id: mode}}``."""
        ids = sorted(set(forum_ids))
        result: dict[int, dict[int, int]] = {forum_id: {} for forum_id in ids}
        if not ids:
            return result
        rows = self.db.execute(
            select(DigestPreference.forum, DigestPreference.userid, DigestPreference.maildigest)
            .where(DigestPreference.forum.in_(ids))
        )
        for forum_id, user_id, mode in rows:
            result[forum_id][user_id] = mode
        return result

    def _find(self, user_id: int, forum_id: int) -> Subscription | None:
        return self.db.scalars(
            select(Subscription).where(
                Subscription.userid == user_id,
                Subscription.forum == forum_id,
            )
        ).first()

    def _add(self, user_id: int, forum_id: int) -> Subscription:
        subscription = self._find(user_id, forum_id)
        if subscription is None:
            subscription = Subscription(userid=user_id, forum=forum_id)
            self.db.add(subscription)
            self.db.flush()
            logger.debug("User %s subscribed to forum %s", user_id, forum_id)
        return subscription
