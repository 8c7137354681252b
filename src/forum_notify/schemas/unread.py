"""Unread count and read-marking schemas."""

from pydantic import BaseModel


class DiscussionUnread(BaseModel):
    discussion_id: int
    unread: int


class CourseUnread(BaseModel):
    """Unread posts per tracked forum; forums with nothing unread are omitted."""

    course_id: int
    forums: dict[int, int]


class ReadResult(BaseModel):
    ok: bool
