"""Scheduled notification job: immediate mails, the digest queue and daily digests.

One call to :meth:`ForumCron.run` performs a complete pass:

1. Pending posts inside the mailing window (or flagged ``mailnow``) are
   selected and flipped to *sent* before any delivery is attempted, so a crashed
   or repeated run can never mail the same post twice.
2. Each post is offered to the forum's subscribers who can see it. Users
   taking digests get a queue entry; everyone else gets a mail straight away.
3. Queue entries past the retention cap are purged.
4. Once a day, after the configured digest hour, queued entries are folded into
   one digest mail per user.

Missing rows and delivery failures are logged and counted in the returned
:class:`~forum_notify.schemas.cron.CronReport`; they never abort the run.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field

from jinja2 import TemplateError
from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.orm import Session

from forum_notify.core.settings import Settings, settings as default_settings
from forum_notify.db.time import digest_cutoff, unix_now
from forum_notify.models import (
    Course,
    CourseModule,
    Discussion,
    Forum,
    Post,
    QueueEntry,
    SchedulerState,
    User,
)
from forum_notify.models.course import GROUPMODE_NONE
from forum_notify.models.forum import MAIL_ERROR, MAIL_PENDING, MAIL_SENT
from forum_notify.models.user import DIGEST_NONE, DIGEST_SUBJECTS, DIGEST_USE_DEFAULT
from forum_notify.schemas.cron import CronReport
from forum_notify.services.host import (
    CAP_ACCESS_ALL_GROUPS,
    CAP_REPLY_POST,
    CAP_VIEW_DISCUSSION,
    CAP_VIEW_HIDDEN_ACTIVITIES,
    CAP_VIEW_HIDDEN_TIMED_POSTS,
    CAP_VIEW_QANDA_WITHOUT_POSTING,
    CapabilityCache,
    HostServices,
)
from forum_notify.services.mail_composer import ComposedMail, DigestEntry, DigestSection, MailComposer
from forum_notify.services.mailer import EmailTransport
from forum_notify.services.read_state import ReadStateStore
from forum_notify.services.subscriptions import SubscriptionRegistry
from forum_notify.services.tracking_policy import TrackingPolicy

logger = logging.getLogger(__name__)

MAIL_WINDOW_SECONDS = 48 * 3600
UPDATE_BATCH_SIZE = 500


@dataclass
class PostContext:
    """Rows a post needs before it can be mailed."""

    post: Post
    discussion: Discussion
    forum: Forum
    course: Course
    cm: CourseModule
    author: User


@dataclass
class RunCache:
    """Lookups memoized for a single run; never reused across runs."""

    capabilities: CapabilityCache
    discussions: dict[int, Discussion | None] = field(default_factory=dict)
    forums: dict[int, Forum | None] = field(default_factory=dict)
    courses: dict[int, Course | None] = field(default_factory=dict)
    cms: dict[int, CourseModule | None] = field(default_factory=dict)
    users: dict[int, User | None] = field(default_factory=dict)
    enrolled: dict[tuple[int, int], bool] = field(default_factory=dict)
    subscribers: dict[int, list[User]] = field(default_factory=dict)
    digests: dict[int, dict[int, int]] = field(default_factory=dict)
    first_posted: dict[tuple[int, int], int | None] = field(default_factory=dict)


class ForumCron:
    """Runs the notification pipeline against one database session."""

    def __init__(
        self,
        db: Session,
        host: HostServices,
        transport: EmailTransport,
        composer: MailComposer | None = None,
        config: Settings | None = None,
    ) -> None:
        self.db = db
        self.host = host
        self.transport = transport
        self.settings = config or default_settings
        self.composer = composer or MailComposer(self.settings)
        self.policy = TrackingPolicy(db, self.settings)
        self.read_state = ReadStateStore(db, self.settings, self.policy)

    def mail_window(self, now: int) -> tuple[int, int]:
        """Return ``(start, end)`` of the creation times mailed by a run at ``now``.

        Posts younger than the editing time are left for a later run so
        their authors can still change them.
        """
        end = now - self.settings.maxeditingtime
        return end - MAIL_WINDOW_SECONDS, end

    def select_unmailed_posts(self, now: int) -> list[Post]:
        """Return pending posts due for mailing, oldest modification first."""
        start, end = self.mail_window(now)
        stmt = (
            select(Post)
            .where(
                Post.mailed == MAIL_PENDING,
                or_(
                    Post.mailnow.is_(True),
                    and_(Post.created >= start, Post.created < end),
                ),
            )
            .order_by(Post.modified, Post.id)
        )
        if self.settings.enable_timed_posts:
            stmt = stmt.outerjoin(Discussion, Discussion.id == Post.discussion_id).where(
                or_(
                    Post.mailnow.is_(True),
                    Discussion.id.is_(None),
                    Discussion.timestart <= now,
                )
            )
        return list(self.db.scalars(stmt))

    def mark_posts_mailed(self, post_ids: Sequence[int], window_start: int) -> int:
        """Flip posts to sent and commit, before anything is delivered.

        Pending posts created before ``window_start`` missed their window and
        are retired the same way so they are never mailed late.
        """
        marked = 0
        ids = sorted(set(post_ids))
        for start in range(0, len(ids), UPDATE_BATCH_SIZE):
            chunk = ids[start:start + UPDATE_BATCH_SIZE]
            result = self.db.execute(
                update(Post)
                .where(Post.id.in_(chunk), Post.mailed == MAIL_PENDING)
                .values(mailed=MAIL_SENT)
                .execution_options(synchronize_session=False)
            )
            marked += result.rowcount or 0

        result = self.db.execute(
            update(Post)
            .where(
                Post.mailed == MAIL_PENDING,
                Post.created < window_start,
                Post.mailnow.is_(False),
            )
            .values(mailed=MAIL_SENT)
            .execution_options(synchronize_session=False)
        )
        marked += result.rowcount or 0
        self.db.commit()
        return marked

    async def run(self, now: int | None = None, prune: bool = False) -> CronReport:
        """Perform one full notification pass and return its counters."""
        now = unix_now() if now is None else now
        report = CronReport()
        cache = RunCache(capabilities=CapabilityCache(self.host))
        registry = SubscriptionRegistry(self.db, self.host, self.settings, cache.capabilities)

        posts = self.select_unmailed_posts(now)
        report.posts_selected = len(posts)
        window_start, _ = self.mail_window(now)
        report.posts_marked_mailed = self.mark_posts_mailed([post.id for post in posts], window_start)
        logger.info("Selected %d posts for mailing", len(posts))

        await self._process_posts(posts, now, cache, registry, report)
        report.queue_purged = self.purge_queue(now)

        state = self._scheduler_state()
        cutoff = digest_cutoff(now, self.settings.site_timezone, self.settings.digestmailtime)
        if now > cutoff and state.digest_last_run < cutoff:
            report.digest_ran = True
            await self._send_digests(now, cutoff, cache, registry, report)
            state.digest_last_run = now
            self.db.commit()

        if prune:
            report.pruned_read_records = self.read_state.prune_stale(now)

        logger.info(
            "Forum cron finished: %d sent, %d failed, %d queued, %d digests, %d skipped",
            report.mails_sent,
            report.mail_errors,
            report.queued,
            report.digests_sent,
            report.skipped,
        )
        return report

    def purge_queue(self, now: int) -> int:
        """Delete digest queue entries older than the retention cap."""
        result = self.db.execute(
            delete(QueueEntry)
            .where(QueueEntry.timemodified < now - self.settings.digest_retention_seconds)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount or 0

    async def _process_posts(
        self,
        posts: list[Post],
        now: int,
        cache: RunCache,
        registry: SubscriptionRegistry,
        report: CronReport,
    ) -> None:
        failed: set[int] = set()
        to_mark: dict[int, list[int]] = defaultdict(list)
        recipients: dict[int, User] = {}

        for post in posts:
            context = self._resolve(post.id, post.discussion_id, cache)
            if context is None:
                report.skipped += 1
                continue

            forum = context.forum
            if forum.id not in cache.subscribers:
                cache.subscribers[forum.id] = registry.list_subscribers(forum)
            digests = self._digest_prefs(forum.id, cache, registry)

            for user in cache.subscribers[forum.id]:
                if not self._can_see(user, context, now, cache):
                    continue

                mode = digests.get(user.id, DIGEST_USE_DEFAULT)
                if mode == DIGEST_USE_DEFAULT:
                    mode = user.maildigest
                if mode != DIGEST_NONE:
                    self.db.add(
                        QueueEntry(
                            userid=user.id,
                            discussionid=context.discussion.id,
                            postid=post.id,
                            timemodified=post.created,
                        )
                    )
                    report.queued += 1
                    continue

                if await self._send_post(user, context, cache, registry):
                    report.mails_sent += 1
                    if self._marks_read_on_send(user):
                        recipients[user.id] = user
                        to_mark[user.id].append(post.id)
                else:
                    report.mail_errors += 1
                    failed.add(post.id)

            self.db.commit()

        if failed:
            self.db.execute(
                update(Post)
                .where(Post.id.in_(sorted(failed)))
                .values(mailed=MAIL_ERROR)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()

        for user_id, post_ids in to_mark.items():
            self.read_state.mark_many_read(recipients[user_id], post_ids, now)

    async def _send_post(
        self,
        user: User,
        context: PostContext,
        cache: RunCache,
        registry: SubscriptionRegistry,
    ) -> bool:
        try:
            mail = self.composer.post_mail(
                course=context.course,
                forum=context.forum,
                discussion=context.discussion,
                post=context.post,
                author=context.author,
                recipient=user,
                can_reply=cache.capabilities.has_capability(CAP_REPLY_POST, context.course.id, user.id),
                can_unsubscribe=not registry.is_forcesubscribed(context.forum),
            )
        except (TemplateError, ValueError) as exc:
            logger.error("Could not render post %s for user %s: %s", context.post.id, user.id, exc)
            return False

        sent = await self._deliver(user, mail)
        if not sent:
            logger.error("Error sending post %s to user %s (%s)", context.post.id, user.id, user.email)
        return sent

    async def _send_digests(
        self,
        now: int,
        cutoff: int,
        cache: RunCache,
        registry: SubscriptionRegistry,
        report: CronReport,
    ) -> None:
        entries = self.db.scalars(
            select(QueueEntry).where(QueueEntry.timemodified < cutoff).order_by(QueueEntry.id)
        ).all()

        # user -> discussion -> post ids, both levels in first-seen order
        grouped: dict[int, dict[int, list[int]]] = {}
        for entry in entries:
            posts = grouped.setdefault(entry.userid, {}).setdefault(entry.discussionid, [])
            if entry.postid not in posts:
                posts.append(entry.postid)
        logger.info("Digest run: %d queued entries for %d users", len(entries), len(grouped))

        for user_id, discussions in grouped.items():
            self.db.execute(
                delete(QueueEntry)
                .where(QueueEntry.userid == user_id, QueueEntry.timemodified < cutoff)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()

            user = self._user(user_id, cache)
            if user is None or user.deleted or user.suspended:
                logger.warning("Skipping digest for missing or inactive user %s", user_id)
                report.skipped += 1
                continue

            sections, full_post_ids = self._digest_sections(user, discussions, now, cache, registry, report)
            if not sections:
                continue

            try:
                mail = self.composer.digest_mail(recipient=user, sections=sections)
            except (TemplateError, ValueError) as exc:
                logger.error("Could not render digest for user %s: %s", user.id, exc)
                report.digest_errors += 1
                continue

            if await self._deliver(user, mail):
                report.digests_sent += 1
                if full_post_ids and self._marks_read_on_send(user):
                    self.read_state.mark_many_read(user, full_post_ids, now)
            else:
                logger.error("Error sending digest to user %s (%s)", user.id, user.email)
                report.digest_errors += 1

    def _digest_sections(
        self,
        user: User,
        discussions: dict[int, list[int]],
        now: int,
        cache: RunCache,
        registry: SubscriptionRegistry,
        report: CronReport,
    ) -> tuple[list[DigestSection], list[int]]:
        sections: list[DigestSection] = []
        full_post_ids: list[int] = []

        for discussion_id, post_ids in discussions.items():
            posts = self.db.scalars(
                select(Post).where(Post.id.in_(post_ids)).order_by(Post.id)
            ).all()
            section: DigestSection | None = None
            full = True

            for post in posts:
                context = self._resolve(post.id, discussion_id, cache)
                if context is None:
                    report.skipped += 1
                    continue
                if not self._can_see(user, context, now, cache):
                    continue

                if section is None:
                    mode = self._digest_prefs(context.forum.id, cache, registry).get(
                        user.id, DIGEST_USE_DEFAULT
                    )
                    if mode == DIGEST_USE_DEFAULT:
                        mode = user.maildigest
                    section = DigestSection(
                        course=context.course,
                        forum=context.forum,
                        discussion=context.discussion,
                        can_unsubscribe=not registry.is_forcesubscribed(context.forum),
                    )
                    full = mode != DIGEST_SUBJECTS

                section.entries.append(DigestEntry(post=post, author=context.author, full=full))
                if full:
                    full_post_ids.append(post.id)

            if section is not None:
                sections.append(section)

        return sections, full_post_ids

    async def _deliver(self, user: User, mail: ComposedMail) -> bool:
        # A transport that raises only fails this one message.
        try:
            return await self.transport.send_message(
                mail.sender,
                user.email,
                mail.subject,
                mail.text,
                mail.html or None,
                mail.headers,
            )
        except Exception:
            logger.exception("Transport raised while mailing user %s", user.id)
            return False

    def _resolve(self, post_id: int, discussion_id: int, cache: RunCache) -> PostContext | None:
        """Load discussion, forum, course, course module and author of a post."""
        post = self.db.get(Post, post_id)
        if post is None:
            logger.warning("Post %s no longer exists", post_id)
            return None

        if discussion_id not in cache.discussions:
            cache.discussions[discussion_id] = self.db.get(Discussion, discussion_id)
        discussion = cache.discussions[discussion_id]
        if discussion is None:
            logger.warning("Could not find discussion %s for post %s", discussion_id, post_id)
            return None

        forum_id = discussion.forum_id
        if forum_id not in cache.forums:
            cache.forums[forum_id] = self.db.get(Forum, forum_id)
        forum = cache.forums[forum_id]
        if forum is None:
            logger.warning("Could not find forum %s for discussion %s", forum_id, discussion_id)
            return None

        if forum.course_id not in cache.courses:
            cache.courses[forum.course_id] = self.host.get_course(forum.course_id)
        course = cache.courses[forum.course_id]
        if course is None:
            logger.warning("Could not find course %s for forum %s", forum.course_id, forum_id)
            return None

        if forum_id not in cache.cms:
            cache.cms[forum_id] = self.host.get_course_module(forum_id)
        cm = cache.cms[forum_id]
        if cm is None:
            logger.warning("Could not find course module for forum %s", forum_id)
            return None

        author = self._user(post.userid, cache)
        if author is None:
            logger.warning("Could not find author %s of post %s", post.userid, post_id)
            return None

        return PostContext(post=post, discussion=discussion, forum=forum, course=course, cm=cm, author=author)

    def _user(self, user_id: int, cache: RunCache) -> User | None:
        if user_id not in cache.users:
            cache.users[user_id] = self.host.get_user(user_id)
        return cache.users[user_id]

    def _digest_prefs(self, forum_id: int, cache: RunCache, registry: SubscriptionRegistry) -> dict[int, int]:
        if forum_id not in cache.digests:
            cache.digests.update(registry.digest_map([forum_id]))
        return cache.digests[forum_id]

    def _marks_read_on_send(self, user: User) -> bool:
        return not self.settings.usermarksread and bool(user.mark_read_on_notification)

    def _can_see(self, user: User, context: PostContext, now: int, cache: RunCache) -> bool:
        """Return True if ``user`` may receive ``context.post`` by mail."""
        course_id = context.course.id
        has = cache.capabilities.has_capability

        # Users can lose their enrolment after subscribing.
        key = (course_id, user.id)
        if key not in cache.enrolled:
            cache.enrolled[key] = self.host.is_enrolled(course_id, user.id)
        if not cache.enrolled[key]:
            return False
        if user.emailstop:
            return False

        discussion = context.discussion
        if discussion.groupid > 0 and self.host.activity_group_mode(context.cm) != GROUPMODE_NONE:
            if not self.host.group_exists(discussion.groupid):
                return False
            if not self.host.is_group_member(discussion.groupid, user.id) and not has(
                CAP_ACCESS_ALL_GROUPS, course_id, user.id
            ):
                return False

        if not context.cm.visible and not has(CAP_VIEW_HIDDEN_ACTIVITIES, course_id, user.id):
            return False
        if not has(CAP_VIEW_DISCUSSION, course_id, user.id):
            return False

        if self.settings.enable_timed_posts and discussion.userid != user.id:
            hidden = discussion.timestart > now or (discussion.timeend and discussion.timeend < now)
            if hidden and not has(CAP_VIEW_HIDDEN_TIMED_POSTS, course_id, user.id):
                return False

        if context.forum.type == "qanda" and not has(CAP_VIEW_QANDA_WITHOUT_POSTING, course_id, user.id):
            return self._can_see_qanda(user, context, now, cache)
        return True

    def _can_see_qanda(self, user: User, context: PostContext, now: int, cache: RunCache) -> bool:
        # Replies stay hidden until the user has answered and the editing time has passed.
        post, discussion = context.post, context.discussion
        if post.id == discussion.firstpost or post.userid == user.id or discussion.userid == user.id:
            return True

        key = (discussion.id, user.id)
        if key not in cache.first_posted:
            cache.first_posted[key] = self.db.scalar(
                select(Post.created)
                .where(Post.discussion_id == discussion.id, Post.userid == user.id)
                .order_by(Post.created)
                .limit(1)
            )
        first_posted = cache.first_posted[key]
        return first_posted is not None and now - first_posted >= self.settings.maxeditingtime

    def _scheduler_state(self) -> SchedulerState:
        state = self.db.get(SchedulerState, 1)
        if state is None:
            state = SchedulerState(id=1, digest_last_run=0)
            self.db.add(state)
            self.db.commit()
        return state
