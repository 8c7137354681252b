# src/forum_notify/api/v1/endpoints/forums.py
"""Forum subscription, digest, tracking and discussion endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from forum_notify.api.v1.dependencies import (
    CurrentUserDep,
    ForumDep,
    HostDep,
    SessionDep,
    require_capability,
)
from forum_notify.models import Discussion, Forum, User
from forum_notify.schemas.forum import (
    DigestStatus,
    DigestUpdate,
    SubscriberResponse,
    SubscriptionStatus,
    TrackingStatus,
)
from forum_notify.schemas.post import DiscussionCreate, DiscussionResponse
from forum_notify.schemas.unread import ReadResult
from forum_notify.services.content import ForumContentService
from forum_notify.services.host import (
    CAP_START_DISCUSSION,
    CAP_VIEW_DISCUSSION,
    CAP_VIEW_SUBSCRIBERS,
)
from forum_notify.services.read_state import ReadStateStore
from forum_notify.services.subscriptions import SubscriptionRegistry
from forum_notify.services.tracking_policy import TrackingPolicy

router = APIRouter(prefix="/forums", tags=["forums"])


def _subscription_status(registry: SubscriptionRegistry, user: User, forum: Forum) -> SubscriptionStatus:
    return SubscriptionStatus(
        forum_id=forum.id,
        subscribed=registry.is_subscribed(user, forum),
        forced=registry.is_forcesubscribed(forum),
    )


def _tracking_status(policy: TrackingPolicy, user: User, forum: Forum) -> TrackingStatus:
    return TrackingStatus(
        forum_id=forum.id,
        trackable=policy.is_trackable(user, forum),
        tracked=policy.is_tracked(user, forum),
    )


@router.get("/{forum_id}/subscription", response_model=SubscriptionStatus)
async def get_subscription(
    forum: ForumDep,
    current_user: CurrentUserDep,
    db: SessionDep,
    host: HostDep,
) -> SubscriptionStatus:
    """Report whether the current user receives notifications for the forum."""
    return _subscription_status(SubscriptionRegistry(db, host), current_user, forum)


@router.post("/{forum_id}/subscription", response_model=SubscriptionStatus)
async def subscribe(
    forum: ForumDep,
    current_user: CurrentUserDep,
    db: SessionDep,
    host: HostDep,
) -> SubscriptionStatus:
    """Subscribe the current user to the forum."""
    require_capability(host, CAP_VIEW_DISCUSSION, forum.course_id, current_user)
    registry = SubscriptionRegistry(db, host)
    registry.subscribe(current_user, forum)
    return _subscription_status(registry, current_user, forum)


@router.delete("/{forum_id}/subscription", response_model=SubscriptionStatus)
async def unsubscribe(
    forum: ForumDep,
    current_user: CurrentUserDep,
    db: SessionDep,
    host: HostDep,
) -> SubscriptionStatus:
    """Unsubscribe the current user and reset their digest choice for the forum."""
    registry = SubscriptionRegistry(db, host)
    registry.unsubscribe(current_user, forum)
    return _subscription_status(registry, current_user, forum)


@router.put("/{forum_id}/digest", response_model=DigestStatus)
async def set_digest(
    payload: DigestUpdate,
    forum: ForumDep,
    current_user: CurrentUserDep,
    db: SessionDep,
    host: HostDep,
) -> DigestStatus:
    """Store the current user's digest choice for the forum."""
    registry = SubscriptionRegistry(db, host)
    mode = registry.set_digest(current_user, forum, payload.maildigest)
    return DigestStatus(
        forum_id=forum.id,
        maildigest=mode,
        effective=registry.effective_digest(current_user, forum),
    )


@router.get("/{forum_id}/tracking", response_model=TrackingStatus)
async def get_tracking(forum: ForumDep, current_user: CurrentUserDep, db: SessionDep) -> TrackingStatus:
    """Report whether read tracking applies to the current user in the forum."""
    return _tracking_status(TrackingPolicy(db), current_user, forum)


@router.post("/{forum_id}/tracking", response_model=TrackingStatus)
async def start_tracking(forum: ForumDep, current_user: CurrentUserDep, db: SessionDep) -> TrackingStatus:
    """Remove the current user's opt-out for the forum."""
    policy = TrackingPolicy(db)
    policy.start_tracking(current_user, forum)
    return _tracking_status(policy, current_user, forum)


@router.delete("/{forum_id}/tracking", response_model=TrackingStatus)
async def stop_tracking(forum: ForumDep, current_user: CurrentUserDep, db: SessionDep) -> TrackingStatus:
    """Opt the current user out of tracking the forum."""
    policy = TrackingPolicy(db)
    policy.stop_tracking(current_user, forum)
    return _tracking_status(policy, current_user, forum)


@router.post("/{forum_id}/read", response_model=ReadResult)
async def mark_forum_read(
    forum: ForumDep,
    current_user: CurrentUserDep,
    db: SessionDep,
    host: HostDep,
    group_id: int | None = None,
) -> ReadResult:
    """Mark every unread post of the forum as read, optionally for one group."""
    require_capability(host, CAP_VIEW_DISCUSSION, forum.course_id, current_user)
    ok = ReadStateStore(db).mark_forum_read(current_user, forum.id, group_id)
    return ReadResult(ok=ok)


@router.get("/{forum_id}/subscribers", response_model=list[SubscriberResponse])
async def list_subscribers(
    forum: ForumDep,
    current_user: CurrentUserDep,
    db: SessionDep,
    host: HostDep,
    group_id: int | None = None,
) -> list[User]:
    """List the users notifications for the forum go to."""
    require_capability(host, CAP_VIEW_SUBSCRIBERS, forum.course_id, current_user)
    return SubscriptionRegistry(db, host).list_subscribers(forum, group_id)


@router.post(
    "/{forum_id}/discussions",
    response_model=DiscussionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_discussion(
    payload: DiscussionCreate,
    forum: ForumDep,
    current_user: CurrentUserDep,
    db: SessionDep,
    host: HostDep,
) -> Discussion:
    """Start a new discussion in the forum."""
    require_capability(host, CAP_START_DISCUSSION, forum.course_id, current_user)
    return ForumContentService(db, host).add_discussion(
        forum,
        current_user,
        payload.subject,
        payload.message,
        messageformat=payload.messageformat,
        groupid=payload.groupid,
        mailnow=payload.mailnow,
        timestart=payload.timestart,
        timeend=payload.timeend,
    )
