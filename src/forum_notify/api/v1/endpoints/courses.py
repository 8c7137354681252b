# src/forum_notify/api/v1/endpoints/courses.py
"""Course-wide unread counts."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from forum_notify.api.v1.dependencies import CurrentUserDep, HostDep, SessionDep
from forum_notify.schemas.unread import CourseUnread
from forum_notify.services.unread import UnreadAggregator

router = APIRouter(prefix="/courses", tags=["courses"])


@router.get("/{course_id}/unread", response_model=CourseUnread)
async def unread_for_course(
    course_id: int,
    current_user: CurrentUserDep,
    db: SessionDep,
    host: HostDep,
) -> CourseUnread:
    """Return unread counts for every tracked forum of the course."""
    if host.get_course(course_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found")
    forums = UnreadAggregator(db, host).unread_map_for_course(current_user, course_id)
    return CourseUnread(course_id=course_id, forums=forums)
