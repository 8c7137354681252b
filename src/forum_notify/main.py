# src/forum_notify/main.py
"""Main entry point for the forum notification API."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from forum_notify.api.v1 import courses_router, discussions_router, forums_router, posts_router
from forum_notify.core.settings import settings
from forum_notify.services.errors import (
    ForumNotifyError,
    NotFoundError,
    PermissionDeniedError,
    PostHasRepliesError,
    SubscriptionDisallowedError,
    SubscriptionForcedError,
)

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Forum read tracking and subscription API",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(forums_router, prefix="/api/v1")
app.include_router(discussions_router, prefix="/api/v1")
app.include_router(posts_router, prefix="/api/v1")
app.include_router(courses_router, prefix="/api/v1")


def error_status(exc: ForumNotifyError) -> int:
    """Map a service error onto an HTTP status code."""
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, PermissionDeniedError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, SubscriptionDisallowedError | SubscriptionForcedError | PostHasRepliesError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, ValueError):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(ForumNotifyError)
async def forum_error_handler(_request: Request, exc: ForumNotifyError) -> JSONResponse:
    code = error_status(exc)
    if code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("Unhandled forum error: %s", exc)
    return JSONResponse(status_code=code, content={"detail": str(exc)})


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("forum_notify.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
