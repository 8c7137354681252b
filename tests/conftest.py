# tests/conftest.py
from __future__ import annotations

from collections.abc import Callable, Generator, Iterator
from itertools import count

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from forum_notify.core.security import create_access_token
from forum_notify.core.settings import Settings
from forum_notify.db.session import Base
from forum_notify.db.session import get_db as app_get_session
from forum_notify.main import app as fastapi_app
from forum_notify.models import (
    Course,
    CourseModule,
    Discussion,
    Enrolment,
    Forum,
    Post,
    User,
)
from forum_notify.models.forum import SUBSCRIPTION_CHOOSE, TRACKING_OPTIONAL
from forum_notify.services.host import DatabaseHost
from forum_notify.services.mailer import RecordingTransport

TEST_DB_URL = "sqlite://"

# Fixed clock for deterministic windows: 2025-10-09 08:53:20 UTC.
NOW = 1_760_000_000
HOUR = 3600
DAY = 24 * HOUR

_USER_COUNTER = count(1)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess: Session, trans) -> None:  # pragma: no cover - SQLAlchemy internals
        if trans.nested and not getattr(trans._parent, "nested", False):
            session.begin_nested()

    try:
        yield session
    finally:
        event.remove(session, "after_transaction_end", restart_savepoint)
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def test_settings() -> Settings:
    """Settings with forum defaults and a short old-post cutoff."""
    return Settings(
        trackreadposts=True,
        allowforcedreadtracking=False,
        oldpostdays=14,
        usermarksread=False,
        enable_timed_posts=False,
        maxeditingtime=1800,
        digestmailtime=17,
        site_timezone="UTC",
        guest_user_id=1,
        site_url="https://lms.example.com",
        site_shortname="LMS",
        site_name="Example LMS",
        noreply_address="noreply@lms.example.com",
        smtp_host=None,
    )


@pytest.fixture()
def host(db_session: Session) -> DatabaseHost:
    return DatabaseHost(db_session)


@pytest.fixture()
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    """Return a factory creating persisted users."""

    def _make(username: str | None = None, **fields) -> User:
        name = username or f"user{next(_USER_COUNTER)}"
        fields.setdefault("email", f"{name}@example.com")
        fields.setdefault("firstname", name.capitalize())
        fields.setdefault("lastname", "Tester")
        fields.setdefault("trackforums", True)
        user = User(username=name, **fields)
        db_session.add(user)
        db_session.flush()
        return user

    return _make


@pytest.fixture(autouse=True)
def guest(db_session: Session) -> User:
    """The site guest account; holds id 1 so other users never collide with it."""
    user = User(id=1, username="guest", email="guest@example.com", firstname="Guest", lastname="User")
    db_session.add(user)
    db_session.flush()
    return user


@pytest.fixture()
def course(db_session: Session) -> Course:
    course = Course(shortname="PY101", fullname="Python Fundamentals")
    db_session.add(course)
    db_session.flush()
    return course


@pytest.fixture()
def enrol(db_session: Session) -> Callable[..., None]:
    """Return a helper enrolling users in a course."""

    def _enrol(course: Course, *users: User, active: bool = True) -> None:
        for user in users:
            db_session.add(Enrolment(course_id=course.id, user_id=user.id, active=active))
        db_session.flush()

    return _enrol


@pytest.fixture()
def make_forum(db_session: Session) -> Callable[..., Forum]:
    """Return a factory creating a forum and its course module."""

    def _make(
        course: Course,
        name: str = "General discussion",
        *,
        trackingtype: int = TRACKING_OPTIONAL,
        forcesubscribe: int = SUBSCRIPTION_CHOOSE,
        forum_type: str = "general",
        **cm_fields,
    ) -> Forum:
        forum = Forum(
            course_id=course.id,
            name=name,
            type=forum_type,
            trackingtype=trackingtype,
            forcesubscribe=forcesubscribe,
        )
        db_session.add(forum)
        db_session.flush()
        db_session.add(CourseModule(course_id=course.id, forum_id=forum.id, **cm_fields))
        db_session.flush()
        return forum

    return _make


@pytest.fixture()
def make_discussion(db_session: Session) -> Callable[..., Discussion]:
    """Return a factory creating a discussion together with its first post."""

    def _make(
        forum: Forum,
        author: User,
        name: str = "Welcome",
        *,
        created: int = NOW - 2 * HOUR,
        **fields,
    ) -> Discussion:
        discussion = Discussion(
            forum_id=forum.id,
            course_id=forum.course_id,
            name=name,
            userid=author.id,
            timemodified=created,
            usermodified=author.id,
            **fields,
        )
        db_session.add(discussion)
        db_session.flush()
        first = Post(
            discussion_id=discussion.id,
            parent=0,
            userid=author.id,
            created=created,
            modified=created,
            subject=name,
            message=f"<p>{name} body</p>",
        )
        db_session.add(first)
        db_session.flush()
        discussion.firstpost = first.id
        db_session.flush()
        return discussion

    return _make


@pytest.fixture()
def make_post(db_session: Session) -> Callable[..., Post]:
    """Return a factory creating replies."""

    def _make(
        discussion: Discussion,
        author: User,
        *,
        created: int = NOW - 2 * HOUR,
        parent: int | None = None,
        subject: str = "Re: reply",
        **fields,
    ) -> Post:
        fields.setdefault("modified", created)
        post = Post(
            discussion_id=discussion.id,
            parent=discussion.firstpost if parent is None else parent,
            userid=author.id,
            created=created,
            subject=subject,
            message=fields.pop("message", f"<p>{subject}</p>"),
            **fields,
        )
        db_session.add(post)
        db_session.flush()
        return post

    return _make


@pytest.fixture()
def student(make_user: Callable[..., User]) -> User:
    return make_user("alice")


@pytest.fixture()
def other_student(make_user: Callable[..., User]) -> User:
    return make_user("bob")


@pytest.fixture()
def forum(course: Course, make_forum: Callable[..., Forum]) -> Forum:
    return make_forum(course)


@pytest.fixture()
def auth_token(student: User) -> dict[str, str]:
    """Return authorization headers for the primary test user."""
    token = create_access_token(student.id)
    return {"Authorization": f"Bearer {token}"}
