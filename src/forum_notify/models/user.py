# src/forum_notify/models/user.py
"""SQLAlchemy model mirroring the host platform's user accounts."""

from __future__ import annotations

from sqlalchemy import Boolean, Integer, SmallInteger, String, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from forum_notify.db.session import Base

# Site-wide digest preference (user.maildigest and forum_digest.maildigest).
DIGEST_USE_DEFAULT = -1
DIGEST_NONE = 0
DIGEST_FULL = 1
DIGEST_SUBJECTS = 2
DIGEST_MODES = (DIGEST_NONE, DIGEST_FULL, DIGEST_SUBJECTS)

MAILFORMAT_PLAIN = 0
MAILFORMAT_HTML = 1


class User(Base):
    """Account of a forum participant as known to the host platform."""

    __tablename__ = "forum_user"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(254), nullable=False, default="")
    firstname: Mapped[str] = mapped_column(Text, nullable=False, default="")
    lastname: Mapped[str] = mapped_column(Text, nullable=False, default="")
    mailformat: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=MAILFORMAT_HTML)
    # Default digest mode used when no per-forum preference exists.
    maildigest: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=DIGEST_NONE)
    trackforums: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    mark_read_on_notification: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    emailstop: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    suspended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @validates("maildigest")
    def _validate_maildigest(self, key: str, value: int) -> int:
        if value not in DIGEST_MODES:
            raise ValueError(f"{key} must be one of {DIGEST_MODES}, got {value!r}")
        return value

    @validates("mailformat")
    def _validate_mailformat(self, key: str, value: int) -> int:
        if value not in (MAILFORMAT_PLAIN, MAILFORMAT_HTML):
            raise ValueError(f"{key} must be 0 (plain) or 1 (html)")
        return value

    @property
    def fullname(self) -> str:
        """Return the display name used in mail headers and bodies."""
        name = f"{self.firstname} {self.lastname}".strip()
        return name or self.username

    @property
    def wants_html(self) -> bool:
        return self.mailformat == MAILFORMAT_HTML
