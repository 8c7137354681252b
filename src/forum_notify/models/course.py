# src/forum_notify/models/course.py
"""Host platform records the forum service needs to resolve context.

Courses, course modules, groups, enrolments and capability overrides are owned
by the host platform; this service keeps a read-mostly mirror of them.
"""

from sqlalchemy import ForeignKey, Integer, SmallInteger, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from forum_notify.db.session import Base

GROUPMODE_NONE = 0
GROUPMODE_SEPARATE = 1
GROUPMODE_VISIBLE = 2

CAP_ALLOW = 1
CAP_PROHIBIT = -1


class Course(Base):
    """A course hosting forum activities."""

    __tablename__ = "course"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shortname: Mapped[str] = mapped_column(String(255), nullable=False)
    fullname: Mapped[str] = mapped_column(Text, nullable=False)


class CourseModule(Base):
    """Placement of a forum inside a course, with its group settings."""

    __tablename__ = "course_module"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    course_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("course.id", ondelete="CASCADE"), nullable=False
    )
    forum_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    visible: Mapped[bool] = mapped_column(default=True, nullable=False)
    groupmode: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=GROUPMODE_NONE)
    groupingid: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    @validates("groupmode")
    def _validate_groupmode(self, key: str, value: int) -> int:
        if value not in (GROUPMODE_NONE, GROUPMODE_SEPARATE, GROUPMODE_VISIBLE):
            raise ValueError(f"{key} must be 0, 1 or 2")
        return value


class CourseGroup(Base):
    """Group of users inside a course."""

    __tablename__ = "course_group"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    course_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("course.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)


class GroupMember(Base):
    """Join table; presence implies membership."""

    __tablename__ = "group_member"

    group_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("course_group.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)


class Enrolment(Base):
    """Enrolment of a user in a course."""

    __tablename__ = "enrolment"

    course_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("course.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    active: Mapped[bool] = mapped_column(default=True, nullable=False)


class CapabilityOverride(Base):
    """Per-user allow/prohibit of a capability; course 0 applies site-wide."""

    __tablename__ = "capability_override"
    __table_args__ = (UniqueConstraint("user_id", "course_id", "capability"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    course_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    capability: Mapped[str] = mapped_column(String(100), nullable=False)
    permission: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=CAP_ALLOW)

    @validates("permission")
    def _validate_permission(self, key: str, value: int) -> int:
        if value not in (CAP_ALLOW, CAP_PROHIBIT):
            raise ValueError(f"{key} must be 1 (allow) or -1 (prohibit)")
        return value
