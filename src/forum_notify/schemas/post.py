"""Discussion and post schemas."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class DiscussionCreate(BaseModel):
    """Schema for starting a discussion."""

    subject: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    messageformat: Literal[0, 1] = Field(1, description="0 plain text, 1 HTML")
    groupid: int = Field(-1, ge=-1, description="-1 all groups, 0 no groups, >0 group id")
    mailnow: bool = False
    timestart: int = Field(0, ge=0)
    timeend: int = Field(0, ge=0)


class ReplyCreate(BaseModel):
    """Schema for replying to a post."""

    subject: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    messageformat: Literal[0, 1] = 1
    mailnow: bool = False


class PostResponse(BaseModel):
    """Schema for post information returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    discussion_id: int
    parent: int
    userid: int
    created: int
    modified: int
    mailed: int
    mailnow: bool
    subject: str
    message: str
    messageformat: int


class DiscussionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    forum_id: int
    name: str
    firstpost: int
    userid: int
    groupid: int
    timemodified: int
    usermodified: int


class DeleteResult(BaseModel):
    deleted_posts: int
    discussion_deleted: bool
