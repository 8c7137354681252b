# src/forum_notify/api/v1/endpoints/posts.py
"""Post endpoints: read marks, replies and deletion."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status
from sqlalchemy.orm import Session

from forum_notify.api.v1.dependencies import (
    CurrentUserDep,
    HostDep,
    PostDep,
    SessionDep,
    require_capability,
)
from forum_notify.models import Discussion, Forum, Post
from forum_notify.schemas.post import DeleteResult, PostResponse, ReplyCreate
from forum_notify.schemas.unread import ReadResult
from forum_notify.services.content import ForumContentService
from forum_notify.services.host import CAP_DELETE_ANY_POST, CAP_REPLY_POST, CAP_VIEW_DISCUSSION
from forum_notify.services.read_state import ReadStateStore
from forum_notify.services.tracking_policy import TrackingPolicy

router = APIRouter(prefix="/posts", tags=["posts"])


def _discussion(db: Session, post: Post) -> Discussion:
    discussion = db.get(Discussion, post.discussion_id)
    if discussion is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Discussion not found")
    return discussion


def _course_id(db: Session, post: Post) -> int:
    return _discussion(db, post).course_id


@router.post("/{post_id}/read", response_model=ReadResult)
async def mark_post_read(
    post: PostDep,
    current_user: CurrentUserDep,
    db: SessionDep,
    host: HostDep,
) -> ReadResult:
    """Mark a single post as read by the current user.

    Nothing is recorded in forums where read tracking is off for the user.
    """
    discussion = _discussion(db, post)
    require_capability(host, CAP_VIEW_DISCUSSION, discussion.course_id, current_user)
    forum = db.get(Forum, discussion.forum_id)
    if forum is None or not TrackingPolicy(db).is_tracked(current_user, forum):
        return ReadResult(ok=False)
    return ReadResult(ok=ReadStateStore(db).mark_read(current_user, post))


@router.post(
    "/{post_id}/replies",
    response_model=PostResponse,
    status_code=status.HTTP_201_CREATED,
)
async def reply(
    payload: ReplyCreate,
    post: PostDep,
    current_user: CurrentUserDep,
    db: SessionDep,
    host: HostDep,
) -> Post:
    """Reply to a post."""
    require_capability(host, CAP_REPLY_POST, _course_id(db, post), current_user)
    return ForumContentService(db, host).add_post(
        post,
        current_user,
        payload.subject,
        payload.message,
        messageformat=payload.messageformat,
        mailnow=payload.mailnow,
    )


@router.delete("/{post_id}", response_model=DeleteResult)
async def delete_post(
    post: PostDep,
    current_user: CurrentUserDep,
    db: SessionDep,
    host: HostDep,
    children: bool = False,
) -> DeleteResult:
    """Delete a post; replies go too only when ``children`` is set."""
    if post.userid != current_user.id:
        require_capability(host, CAP_DELETE_ANY_POST, _course_id(db, post), current_user)
    was_root = post.is_root
    removed = ForumContentService(db, host).delete_post(post, children=children)
    return DeleteResult(deleted_posts=removed, discussion_deleted=was_root)
