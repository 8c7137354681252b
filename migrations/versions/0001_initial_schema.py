"""initial forum schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create host mirror, forum content, read tracking and notification tables."""
    op.create_table(
        "forum_user",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("username", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=254), nullable=False),
        sa.Column("firstname", sa.Text(), nullable=False),
        sa.Column("lastname", sa.Text(), nullable=False),
        sa.Column("mailformat", sa.SmallInteger(), nullable=False),
        sa.Column("maildigest", sa.SmallInteger(), nullable=False),
        sa.Column("trackforums", sa.Boolean(), nullable=False),
        sa.Column("mark_read_on_notification", sa.Boolean(), nullable=False),
        sa.Column("emailstop", sa.Boolean(), nullable=False),
        sa.Column("deleted", sa.Boolean(), nullable=False),
        sa.Column("suspended", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
    )
    op.create_table(
        "course",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("shortname", sa.String(length=255), nullable=False),
        sa.Column("fullname", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "course_module",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("forum_id", sa.Integer(), nullable=False),
        sa.Column("visible", sa.Boolean(), nullable=False),
        sa.Column("groupmode", sa.SmallInteger(), nullable=False),
        sa.Column("groupingid", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["course_id"], ["course.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("forum_id"),
    )
    op.create_table(
        "course_group",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(["course_id"], ["course.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "group_member",
        sa.Column("group_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["group_id"], ["course_group.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("group_id", "user_id"),
    )
    op.create_table(
        "enrolment",
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["course_id"], ["course.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("course_id", "user_id"),
    )
    op.create_table(
        "capability_override",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("capability", sa.String(length=100), nullable=False),
        sa.Column("permission", sa.SmallInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "course_id", "capability"),
    )
    op.create_index("ix_capability_override_user_id", "capability_override", ["user_id"])

    op.create_table(
        "forum",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("intro", sa.Text(), nullable=False),
        sa.Column("trackingtype", sa.SmallInteger(), nullable=False),
        sa.Column("forcesubscribe", sa.SmallInteger(), nullable=False),
        sa.ForeignKeyConstraint(["course_id"], ["course.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_forum_course_id", "forum", ["course_id"])
    op.create_table(
        "forum_discussion",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("forum_id", sa.Integer(), nullable=False),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("firstpost", sa.Integer(), nullable=False),
        sa.Column("userid", sa.Integer(), nullable=False),
        sa.Column("groupid", sa.Integer(), nullable=False),
        sa.Column("timestart", sa.BigInteger(), nullable=False),
        sa.Column("timeend", sa.BigInteger(), nullable=False),
        sa.Column("timemodified", sa.BigInteger(), nullable=False),
        sa.Column("usermodified", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["forum_id"], ["forum.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_forum_discussion_forum_id", "forum_discussion", ["forum_id"])
    op.create_table(
        "forum_post",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("discussion_id", sa.Integer(), nullable=False),
        sa.Column("parent", sa.Integer(), nullable=False),
        sa.Column("userid", sa.Integer(), nullable=False),
        sa.Column("created", sa.BigInteger(), nullable=False),
        sa.Column("modified", sa.BigInteger(), nullable=False),
        sa.Column("mailed", sa.SmallInteger(), nullable=False),
        sa.Column("mailnow", sa.Boolean(), nullable=False),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("messageformat", sa.SmallInteger(), nullable=False),
        sa.ForeignKeyConstraint(["discussion_id"], ["forum_discussion.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_forum_post_discussion_id", "forum_post", ["discussion_id"])
    op.create_index("ix_forum_post_parent", "forum_post", ["parent"])
    op.create_index("ix_forum_post_userid", "forum_post", ["userid"])
    op.create_index("ix_forum_post_modified", "forum_post", ["modified"])
    op.create_index("ix_forum_post_mailed_created", "forum_post", ["mailed", "created"])

    op.create_table(
        "forum_read",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("userid", sa.Integer(), nullable=False),
        sa.Column("postid", sa.Integer(), nullable=False),
        sa.Column("discussionid", sa.Integer(), nullable=False),
        sa.Column("forumid", sa.Integer(), nullable=False),
        sa.Column("firstread", sa.BigInteger(), nullable=False),
        sa.Column("lastread", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("userid", "postid", name="uq_forum_read_user_post"),
    )
    for column in ("userid", "postid", "discussionid", "forumid"):
        op.create_index(f"ix_forum_read_{column}", "forum_read", [column])

    op.create_table(
        "forum_track_prefs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("userid", sa.Integer(), nullable=False),
        sa.Column("forumid", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("userid", "forumid", name="uq_forum_track_prefs"),
    )
    op.create_index("ix_forum_track_prefs_userid", "forum_track_prefs", ["userid"])
    op.create_index("ix_forum_track_prefs_forumid", "forum_track_prefs", ["forumid"])

    op.create_table(
        "forum_subscription",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("userid", sa.Integer(), nullable=False),
        sa.Column("forum", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("userid", "forum", name="uq_forum_subscription"),
    )
    op.create_index("ix_forum_subscription_userid", "forum_subscription", ["userid"])
    op.create_index("ix_forum_subscription_forum", "forum_subscription", ["forum"])

    op.create_table(
        "forum_digest",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("userid", sa.Integer(), nullable=False),
        sa.Column("forum", sa.Integer(), nullable=False),
        sa.Column("maildigest", sa.SmallInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("userid", "forum", name="uq_forum_digest"),
    )
    op.create_index("ix_forum_digest_userid", "forum_digest", ["userid"])
    op.create_index("ix_forum_digest_forum", "forum_digest", ["forum"])

    op.create_table(
        "forum_queue",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("userid", sa.Integer(), nullable=False),
        sa.Column("discussionid", sa.Integer(), nullable=False),
        sa.Column("postid", sa.Integer(), nullable=False),
        sa.Column("timemodified", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_forum_queue_userid", "forum_queue", ["userid"])
    op.create_index("ix_forum_queue_postid", "forum_queue", ["postid"])
    op.create_index("ix_forum_queue_timemodified", "forum_queue", ["timemodified"])

    op.create_table(
        "scheduler_state",
        sa.Column("id", sa.BigInteger(), nullable=False),
        sa.Column("digest_last_run", sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    """Drop every table created by :func:`upgrade`."""
    for table in (
        "scheduler_state",
        "forum_queue",
        "forum_digest",
        "forum_subscription",
        "forum_track_prefs",
        "forum_read",
        "forum_post",
        "forum_discussion",
        "forum",
        "capability_override",
        "enrolment",
        "group_member",
        "course_group",
        "course_module",
        "course",
        "forum_user",
    ):
        op.drop_table(table)
