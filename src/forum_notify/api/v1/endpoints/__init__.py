# src/forum_notify/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .courses import router as courses_router
from .discussions import router as discussions_router
from .forums import router as forums_router
from .posts import router as posts_router

__all__ = [
    "courses_router",
    "discussions_router",
    "forums_router",
    "posts_router",
]
