# src/forum_notify/models/system.py
"""System-level bookkeeping models."""


from sqlalchemy import BigInteger
from sqlalchemy.orm import Mapped, mapped_column

from forum_notify.db.session import Base


class SchedulerState(Base):
    """Singleton row remembering when the scheduled job last did its daily work."""

    __tablename__ = "scheduler_state"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, default=1)
    digest_last_run: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
