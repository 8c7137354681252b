"""Create and delete forums, discussions and posts.

Deletes cascade into the read-tracking and notification tables so that no
read record or queue entry outlives the post it points at.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from forum_notify.core.settings import Settings, settings as default_settings
from forum_notify.db.time import unix_now
from forum_notify.models import (
    CourseModule,
    DigestPreference,
    Discussion,
    Forum,
    Post,
    QueueEntry,
    ReadRecord,
    Subscription,
    TrackingOverride,
    User,
)
from forum_notify.models.course import GROUPMODE_NONE
from forum_notify.models.forum import (
    ALL_GROUPS,
    FORMAT_HTML,
    SUBSCRIPTION_CHOOSE,
    SUBSCRIPTION_INITIAL,
    TRACKING_OPTIONAL,
)
from forum_notify.services.errors import PostHasRepliesError
from forum_notify.services.host import HostServices
from forum_notify.services.read_state import ReadStateStore
from forum_notify.services.subscriptions import SubscriptionRegistry
from forum_notify.services.tracking_policy import TrackingPolicy

logger = logging.getLogger(__name__)


class PostThread:
    """Parent to children adjacency map of one discussion's posts."""

    def __init__(self, posts: Iterable[Post]) -> None:
        self.posts = {post.id: post for post in posts}
        self.children: dict[int, list[int]] = defaultdict(list)
        for post_id in sorted(self.posts):
            self.children[self.posts[post_id].parent].append(post_id)

    @classmethod
    def for_discussion(cls, db: Session, discussion_id: int) -> PostThread:
        return cls(db.scalars(select(Post).where(Post.discussion_id == discussion_id)))

    def has_replies(self, post_id: int) -> bool:
        return bool(self.children.get(post_id))

    def walk(self, post_id: int) -> list[int]:
        """Return ``post_id`` and its descendants depth first, siblings by ascending id."""
        order: list[int] = []
        stack = [post_id]
        while stack:
            current = stack.pop()
            order.append(current)
            stack.extend(reversed(self.children.get(current, [])))
        return order

    def descendants(self, post_id: int) -> list[int]:
        return self.walk(post_id)[1:]


class ForumContentService:
    """Persistence for the content the notification pipeline consumes."""

    def __init__(
        self,
        db: Session,
        host: HostServices,
        config: Settings | None = None,
    ) -> None:
        self.db = db
        self.host = host
        self.settings = config or default_settings
        self.policy = TrackingPolicy(db, self.settings)
        self.read_state = ReadStateStore(db, self.settings, self.policy)

    def create_forum(
        self,
        course_id: int,
        name: str,
        *,
        forum_type: str = "general",
        intro: str = "",
        trackingtype: int = TRACKING_OPTIONAL,
        forcesubscribe: int = SUBSCRIPTION_CHOOSE,
        visible: bool = True,
        groupmode: int = GROUPMODE_NONE,
    ) -> Forum:
        """Create a forum and the course module placing it in its course.

        A forum created in the initial subscription mode subscribes everyone
        who may be subscribed.
        """
        forum = Forum(
            course_id=course_id,
            type=forum_type,
            name=name,
            intro=intro,
            trackingtype=trackingtype,
            forcesubscribe=SUBSCRIPTION_CHOOSE,
        )
        self.db.add(forum)
        self.db.flush()
        self.db.add(CourseModule(course_id=course_id, forum_id=forum.id, visible=visible, groupmode=groupmode))
        self.db.flush()

        registry = SubscriptionRegistry(self.db, self.host, self.settings)
        registry.set_subscription_mode(forum, forcesubscribe)
        if forcesubscribe == SUBSCRIPTION_INITIAL:
            logger.info("Forum %s created with initial subscriptions", forum.id)
        return forum

    def add_discussion(
        self,
        forum: Forum,
        author: User,
        subject: str,
        message: str,
        *,
        messageformat: int = FORMAT_HTML,
        groupid: int = ALL_GROUPS,
        mailnow: bool = False,
        timestart: int = 0,
        timeend: int = 0,
        now: int | None = None,
    ) -> Discussion:
        """Start a discussion with its root post."""
        now = unix_now() if now is None else now
        discussion = Discussion(
            forum_id=forum.id,
            course_id=forum.course_id,
            name=subject,
            userid=author.id,
            groupid=groupid,
            timestart=timestart,
            timeend=timeend,
            timemodified=now,
            usermodified=author.id,
        )
        self.db.add(discussion)
        self.db.flush()

        post = Post(
            discussion_id=discussion.id,
            parent=0,
            userid=author.id,
            created=now,
            modified=now,
            mailnow=mailnow,
            subject=subject,
            message=message,
            messageformat=messageformat,
        )
        self.db.add(post)
        self.db.flush()
        discussion.firstpost = post.id
        self.db.commit()

        self._mark_own_post_read(author, forum, post, now)
        return discussion

    def add_post(
        self,
        parent: Post,
        author: User,
        subject: str,
        message: str,
        *,
        messageformat: int = FORMAT_HTML,
        mailnow: bool = False,
        now: int | None = None,
    ) -> Post:
        """Reply to ``parent`` and bump the discussion's last-modified fields."""
        now = unix_now() if now is None else now
        post = Post(
            discussion_id=parent.discussion_id,
            parent=parent.id,
            userid=author.id,
            created=now,
            modified=now,
            mailnow=mailnow,
            subject=subject,
            message=message,
            messageformat=messageformat,
        )
        self.db.add(post)

        discussion = self.db.get(Discussion, parent.discussion_id)
        if discussion is not None:
            discussion.timemodified = now
            discussion.usermodified = author.id
        self.db.commit()

        if discussion is not None:
            forum = self.db.get(Forum, discussion.forum_id)
            if forum is not None:
                self._mark_own_post_read(author, forum, post, now)
        return post

    def delete_post(self, post: Post, children: bool = False) -> int:
        """Delete a post and return how many posts were removed.

        Deleting the root post removes the whole discussion.

        Raises:
            PostHasRepliesError: The post has replies and ``children`` is False.
        """
        discussion = self.db.get(Discussion, post.discussion_id)
        thread = PostThread.for_discussion(self.db, post.discussion_id)

        if post.is_root and discussion is not None:
            removed = len(thread.posts)
            self.delete_discussion(discussion)
            return removed

        if thread.has_replies(post.id) and not children:
            raise PostHasRepliesError(f"Post {post.id} has replies")

        # Deepest replies first.
        doomed = list(reversed(thread.walk(post.id)))
        self.db.execute(
            delete(ReadRecord)
            .where(ReadRecord.postid.in_(doomed))
            .execution_options(synchronize_session=False)
        )
        self.db.execute(
            delete(QueueEntry)
            .where(QueueEntry.postid.in_(doomed))
            .execution_options(synchronize_session=False)
        )
        for post_id in doomed:
            self.db.delete(thread.posts[post_id])
        self.db.flush()

        if discussion is not None:
            self._refresh_last_post(discussion)
        self.db.commit()
        logger.info("Deleted %d posts from discussion %s", len(doomed), post.discussion_id)
        return len(doomed)

    def delete_discussion(self, discussion: Discussion) -> None:
        """Delete a discussion, its posts, their read records and queued digests."""
        self.read_state.delete_read_records(discussion_id=discussion.id, commit=False)
        self.db.execute(
            delete(QueueEntry)
            .where(QueueEntry.discussionid == discussion.id)
            .execution_options(synchronize_session=False)
        )
        for post in self.db.scalars(select(Post).where(Post.discussion_id == discussion.id)):
            self.db.delete(post)
        self.db.delete(discussion)
        self.db.commit()

    def delete_forum(self, forum: Forum) -> None:
        """Delete a forum with everything attached to it."""
        for discussion in self.db.scalars(select(Discussion).where(Discussion.forum_id == forum.id)).all():
            self.delete_discussion(discussion)

        self.read_state.delete_read_records(forum_id=forum.id, commit=False)
        for model, column in (
            (Subscription, Subscription.forum),
            (DigestPreference, DigestPreference.forum),
            (TrackingOverride, TrackingOverride.forumid),
            (CourseModule, CourseModule.forum_id),
        ):
            self.db.execute(
                delete(model).where(column == forum.id).execution_options(synchronize_session=False)
            )
        self.db.delete(forum)
        self.db.commit()

    def _refresh_last_post(self, discussion: Discussion) -> None:
        latest = self.db.scalars(
            select(Post)
            .where(Post.discussion_id == discussion.id)
            .order_by(Post.modified.desc(), Post.id.desc())
            .limit(1)
        ).first()
        if latest is not None:
            discussion.timemodified = latest.modified
            discussion.usermodified = latest.userid

    def _mark_own_post_read(self, author: User, forum: Forum, post: Post, now: int) -> None:
        if self.policy.is_tracked(author, forum):
            self.read_state.mark_read(author, post, now)
