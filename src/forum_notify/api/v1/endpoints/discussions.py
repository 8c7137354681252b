# src/forum_notify/api/v1/endpoints/discussions.py
"""Discussion read-state endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from forum_notify.api.v1.dependencies import (
    CurrentUserDep,
    DiscussionDep,
    HostDep,
    SessionDep,
    require_capability,
)
from forum_notify.schemas.unread import DiscussionUnread, ReadResult
from forum_notify.services.host import CAP_VIEW_DISCUSSION
from forum_notify.services.read_state import ReadStateStore
from forum_notify.services.unread import UnreadAggregator

router = APIRouter(prefix="/discussions", tags=["discussions"])


@router.post("/{discussion_id}/read", response_model=ReadResult)
async def mark_discussion_read(
    discussion: DiscussionDep,
    current_user: CurrentUserDep,
    db: SessionDep,
    host: HostDep,
) -> ReadResult:
    """Mark every unread post of the discussion as read."""
    require_capability(host, CAP_VIEW_DISCUSSION, discussion.course_id, current_user)
    ok = ReadStateStore(db).mark_discussion_read(current_user, discussion.id)
    return ReadResult(ok=ok)


@router.get("/{discussion_id}/unread", response_model=DiscussionUnread)
async def count_unread(
    discussion: DiscussionDep,
    current_user: CurrentUserDep,
    db: SessionDep,
    host: HostDep,
) -> DiscussionUnread:
    """Count the discussion's posts the current user has not read."""
    unread = UnreadAggregator(db, host).count_unread_in_discussion(current_user, discussion.id)
    return DiscussionUnread(discussion_id=discussion.id, unread=unread)
