"""Subscription, digest and tracking schemas."""

from pydantic import BaseModel, ConfigDict, Field


class SubscriptionStatus(BaseModel):
    """Whether notifications for a forum reach the current user."""

    forum_id: int
    subscribed: bool
    forced: bool


class DigestUpdate(BaseModel):
    """Per-forum digest choice; -1 reverts to the user's default."""

    maildigest: int = Field(..., description="-1 default, 0 none, 1 full, 2 subjects")


class DigestStatus(BaseModel):
    forum_id: int
    maildigest: int
    effective: int


class TrackingStatus(BaseModel):
    """Read tracking state of a forum for the current user."""

    forum_id: int
    trackable: bool
    tracked: bool


class SubscriberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    fullname: str
    email: str
