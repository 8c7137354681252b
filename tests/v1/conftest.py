# tests/v1/conftest.py
"""Fixtures shared by the HTTP endpoint tests."""

from __future__ import annotations

from collections.abc import Callable

import pytest
from sqlalchemy.orm import Session

from forum_notify.core.security import create_access_token
from forum_notify.db.time import unix_now
from forum_notify.models import CapabilityOverride, Course, Discussion, Forum, User


@pytest.fixture()
def fresh(make_discussion: Callable[..., Discussion]) -> Callable[..., Discussion]:
    """Create discussions timestamped against the wall clock the API uses."""

    def _make(forum: Forum, author: User, name: str = "Welcome", **fields) -> Discussion:
        return make_discussion(forum, author, name, created=unix_now() - 3600, **fields)

    return _make


@pytest.fixture()
def grant(db_session: Session) -> Callable[[User, Course, str], None]:
    """Return a helper granting a capability to a user in a course."""

    def _grant(user: User, course: Course, capability: str) -> None:
        db_session.add(CapabilityOverride(user_id=user.id, course_id=course.id, capability=capability))
        db_session.flush()

    return _grant


@pytest.fixture()
def other_token(other_student: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(other_student.id)}"}
