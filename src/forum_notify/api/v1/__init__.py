# src/forum_notify/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import courses_router, discussions_router, forums_router, posts_router

__all__ = [
    "courses_router",
    "discussions_router",
    "forums_router",
    "posts_router",
]
