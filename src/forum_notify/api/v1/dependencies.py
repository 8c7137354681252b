"""Shared API dependencies for authentication and service construction."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from forum_notify.core.settings import settings
from forum_notify.db.session import get_db
from forum_notify.models import Discussion, Forum, Post, User
from forum_notify.services.host import DatabaseHost, HostServices

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    db: SessionDep,
) -> User:
    """Get the current authenticated user from JWT token.

    Raises:
        HTTPException: If token is invalid or user not found
    """
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err

    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError) as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err

    user = db.get(User, user_id)
    if user is None or user.deleted or user.suspended:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


def get_host(db: SessionDep) -> HostServices:
    """Return the host collaborator for this request."""
    return DatabaseHost(db)


# Type alias for current user dependency
CurrentUserDep = Annotated[User, Depends(get_current_user)]
HostDep = Annotated[HostServices, Depends(get_host)]


def get_forum_or_404(forum_id: int, db: SessionDep) -> Forum:
    forum = db.get(Forum, forum_id)
    if forum is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Forum not found")
    return forum


def get_discussion_or_404(discussion_id: int, db: SessionDep) -> Discussion:
    discussion = db.get(Discussion, discussion_id)
    if discussion is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Discussion not found")
    return discussion


def get_post_or_404(post_id: int, db: SessionDep) -> Post:
    post = db.get(Post, post_id)
    if post is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    return post


ForumDep = Annotated[Forum, Depends(get_forum_or_404)]
DiscussionDep = Annotated[Discussion, Depends(get_discussion_or_404)]
PostDep = Annotated[Post, Depends(get_post_or_404)]


def require_capability(host: HostServices, capability: str, course_id: int, user: User) -> None:
    """Raise 403 unless ``user`` holds ``capability`` in the course."""
    if not host.has_capability(capability, course_id, user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Missing capability {capability}",
        )
