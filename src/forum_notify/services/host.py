"""Collaborators owned by the host learning platform.

Capability checks, group membership, enrolment and course lookups belong to
the host. ``HostServices`` is the seam the forum services call through;
``DatabaseHost`` answers from the mirrored host tables kept in this database.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.orm import Session

from forum_notify.models import (
    CapabilityOverride,
    Course,
    CourseGroup,
    CourseModule,
    Enrolment,
    GroupMember,
    User,
)
from forum_notify.models.course import CAP_ALLOW, CAP_PROHIBIT, GROUPMODE_NONE

CAP_VIEW_DISCUSSION = "mod/forum:viewdiscussion"
CAP_ALLOW_FORCE_SUBSCRIBE = "mod/forum:allowforcesubscribe"
CAP_MANAGE_SUBSCRIPTIONS = "mod/forum:managesubscriptions"
CAP_VIEW_SUBSCRIBERS = "mod/forum:viewsubscribers"
CAP_VIEW_QANDA_WITHOUT_POSTING = "mod/forum:viewqandawithoutposting"
CAP_VIEW_HIDDEN_TIMED_POSTS = "mod/forum:viewhiddentimedposts"
CAP_REPLY_POST = "mod/forum:replypost"
CAP_START_DISCUSSION = "mod/forum:startdiscussion"
CAP_DELETE_ANY_POST = "mod/forum:deleteanypost"
CAP_ACCESS_ALL_GROUPS = "moodle/site:accessallgroups"
CAP_VIEW_HIDDEN_ACTIVITIES = "moodle/course:viewhiddenactivities"

# Capabilities an active enrolment grants unless an override prohibits them.
DEFAULT_ENROLLED_CAPABILITIES = frozenset(
    {
        CAP_VIEW_DISCUSSION,
        CAP_ALLOW_FORCE_SUBSCRIBE,
        CAP_REPLY_POST,
        CAP_START_DISCUSSION,
    }
)


class HostServices(ABC):
    """Black-box queries answered by the host platform."""

    @abstractmethod
    def has_capability(self, capability: str, course_id: int, user_id: int) -> bool:
        """Return True if the user holds ``capability`` in the course context."""

    @abstractmethod
    def is_group_member(self, group_id: int, user_id: int) -> bool: ...

    @abstractmethod
    def group_exists(self, group_id: int) -> bool: ...

    @abstractmethod
    def user_groups(self, course_id: int, user_id: int) -> set[int]:
        """Return ids of the course groups the user belongs to."""

    @abstractmethod
    def is_enrolled(self, course_id: int, user_id: int) -> bool: ...

    @abstractmethod
    def enrolled_user_ids(self, course_id: int) -> list[int]: ...

    @abstractmethod
    def get_user(self, user_id: int) -> User | None: ...

    @abstractmethod
    def get_course(self, course_id: int) -> Course | None: ...

    @abstractmethod
    def get_course_module(self, forum_id: int) -> CourseModule | None:
        """Return the course module placing ``forum_id`` in its course."""

    def activity_group_mode(self, cm: CourseModule | None) -> int:
        """Return the effective group mode of a course module."""
        if cm is None:
            return GROUPMODE_NONE
        return cm.groupmode


class DatabaseHost(HostServices):
    """Host collaborator backed by the mirrored host tables."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def has_capability(self, capability: str, course_id: int, user_id: int) -> bool:
        user = self.db.get(User, user_id)
        if user is None or user.deleted:
            return False

        permissions = self.db.scalars(
            select(CapabilityOverride.permission).where(
                CapabilityOverride.user_id == user_id,
                CapabilityOverride.capability == capability,
                CapabilityOverride.course_id.in_((course_id, 0)),
            )
        ).all()
        if CAP_PROHIBIT in permissions:
            return False
        if CAP_ALLOW in permissions:
            return True

        return capability in DEFAULT_ENROLLED_CAPABILITIES and self.is_enrolled(course_id, user_id)

    def is_group_member(self, group_id: int, user_id: int) -> bool:
        return self.db.get(GroupMember, (group_id, user_id)) is not None

    def group_exists(self, group_id: int) -> bool:
        return self.db.get(CourseGroup, group_id) is not None

    def user_groups(self, course_id: int, user_id: int) -> set[int]:
        rows = self.db.scalars(
            select(GroupMember.group_id)
            .join(CourseGroup, CourseGroup.id == GroupMember.group_id)
            .where(CourseGroup.course_id == course_id, GroupMember.user_id == user_id)
        )
        return set(rows)

    def is_enrolled(self, course_id: int, user_id: int) -> bool:
        enrolment = self.db.get(Enrolment, (course_id, user_id))
        return enrolment is not None and enrolment.active

    def enrolled_user_ids(self, course_id: int) -> list[int]:
        rows = self.db.scalars(
            select(Enrolment.user_id)
            .where(Enrolment.course_id == course_id, Enrolment.active.is_(True))
            .order_by(Enrolment.user_id)
        )
        return list(rows)

    def get_user(self, user_id: int) -> User | None:
        return self.db.get(User, user_id)

    def get_course(self, course_id: int) -> Course | None:
        return self.db.get(Course, course_id)

    def get_course_module(self, forum_id: int) -> CourseModule | None:
        return self.db.scalars(
            select(CourseModule).where(CourseModule.forum_id == forum_id)
        ).first()


class CapabilityCache:
    """Memoizes capability answers for the lifetime of one job run or request.

    Never share an instance across runs: overrides may change between them.
    """

    def __init__(self, host: HostServices) -> None:
        self.host = host
        self._answers: dict[tuple[str, int, int], bool] = {}

    def has_capability(self, capability: str, course_id: int, user_id: int) -> bool:
        key = (capability, course_id, user_id)
        if key not in self._answers:
            self._answers[key] = self.host.has_capability(capability, course_id, user_id)
        return self._answers[key]

    def clear(self) -> None:
        self._answers.clear()
