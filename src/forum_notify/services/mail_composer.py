"""Build notification and digest mails from Jinja2 templates."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import formataddr
from pathlib import Path
from urllib.parse import urlsplit
from zoneinfo import ZoneInfo

from jinja2 import Environment, FileSystemLoader, select_autoescape

from forum_notify.core.settings import Settings, settings as default_settings
from forum_notify.models import Course, Discussion, Forum, Post, User
from forum_notify.services.rendering import ContentRenderer

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "mail"


def header_value(text: str) -> str:
    """Collapse line breaks and runs of whitespace so user text fits on one header line."""
    return " ".join(text.split())


@dataclass
class ComposedMail:
    sender: str
    subject: str
    text: str
    html: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class DigestEntry:
    post: Post
    author: User
    full: bool
    text: str = ""
    html: str = ""


@dataclass
class DigestSection:
    """One discussion inside a digest mail."""

    course: Course
    forum: Forum
    discussion: Discussion
    can_unsubscribe: bool
    entries: list[DigestEntry] = field(default_factory=list)


class MailComposer:
    """Render per-post notifications and daily digests."""

    def __init__(
        self,
        config: Settings | None = None,
        renderer: ContentRenderer | None = None,
        template_dir: Path | None = None,
    ) -> None:
        self.settings = config or default_settings
        self.renderer = renderer or ContentRenderer()
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir or TEMPLATE_DIR)),
            autoescape=select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self.env.filters["userdate"] = self.userdate
        self.env.globals["urls"] = self

    @property
    def hostname(self) -> str:
        return urlsplit(self.settings.site_url).hostname or "localhost"

    def userdate(self, timestamp: int) -> str:
        """Format a UNIX time in the site timezone."""
        moment = datetime.fromtimestamp(timestamp, tz=ZoneInfo(self.settings.site_timezone))
        return moment.strftime("%A, %d %B %Y, %I:%M %p")

    def discuss_url(self, discussion: Discussion) -> str:
        return f"{self.settings.site_url}/mod/forum/discuss.php?d={discussion.id}"

    def forum_url(self, forum: Forum) -> str:
        return f"{self.settings.site_url}/mod/forum/view.php?f={forum.id}"

    def course_url(self, course: Course) -> str:
        return f"{self.settings.site_url}/course/view.php?id={course.id}"

    def reply_url(self, post: Post) -> str:
        return f"{self.settings.site_url}/mod/forum/post.php?reply={post.id}"

    def unsubscribe_url(self, forum: Forum) -> str:
        return f"{self.settings.site_url}/mod/forum/subscribe.php?id={forum.id}"

    def preferences_url(self, user: User) -> str:
        return f"{self.settings.site_url}/user/forum.php?id={user.id}"

    def message_id(self, post_id: int, user_id: int) -> str:
        """Stable per-recipient Message-ID so mail clients can thread replies."""
        digest = hashlib.sha256(f"{post_id}to{user_id}".encode()).hexdigest()
        return f"<{digest}@{self.hostname}>"

    def post_mail(
        self,
        *,
        course: Course,
        forum: Forum,
        discussion: Discussion,
        post: Post,
        author: User,
        recipient: User,
        can_reply: bool,
        can_unsubscribe: bool,
    ) -> ComposedMail:
        """Compose the immediate notification of ``post`` for ``recipient``."""
        context = self._post_context(
            course, forum, discussion, post, author, can_reply, can_unsubscribe, bare=False
        )
        text = self.env.get_template("post.txt").render(context)
        html = self.env.get_template("post.html").render(context) if recipient.wants_html else ""

        headers = {
            "Precedence": "Bulk",
            "List-Id": f'"{header_value(forum.name)}" <forum{forum.id}@{self.hostname}>',
            "List-Help": self.forum_url(forum),
            "Message-ID": self.message_id(post.id, recipient.id),
            "X-Course-Id": str(course.id),
            "X-Course-Name": header_value(course.fullname),
        }
        if can_unsubscribe:
            headers["List-Unsubscribe"] = f"<{self.unsubscribe_url(forum)}>"
        if post.parent:
            parent_id = self.message_id(post.parent, recipient.id)
            headers["In-Reply-To"] = parent_id
            headers["References"] = parent_id

        return ComposedMail(
            sender=formataddr(
                (header_value(f"{author.fullname} (via {self.settings.site_name})"), self.settings.noreply_address)
            ),
            subject=header_value(f"{course.shortname}: {post.subject}"),
            text=text,
            html=html,
            headers=headers,
        )

    def digest_mail(self, *, recipient: User, sections: list[DigestSection]) -> ComposedMail:
        """Compose the daily digest for ``recipient`` from grouped discussions."""
        for section in sections:
            for entry in section.entries:
                if not entry.full:
                    continue
                context = self._post_context(
                    section.course,
                    section.forum,
                    section.discussion,
                    entry.post,
                    entry.author,
                    can_reply=False,
                    can_unsubscribe=False,
                    bare=True,
                )
                entry.text = self.env.get_template("post.txt").render(context)
                entry.html = self.env.get_template("post.html").render(context)

        context = {
            "site_name": self.settings.site_name,
            "preferences_url": self.preferences_url(recipient),
            "sections": sections,
        }
        text = self.env.get_template("digest.txt").render(context)
        html = self.env.get_template("digest.html").render(context) if recipient.wants_html else ""
        return ComposedMail(
            sender=formataddr((header_value(self.settings.site_shortname), self.settings.noreply_address)),
            subject=header_value(f"{self.settings.site_shortname} forum digest"),
            text=text,
            html=html,
            headers={"Precedence": "Bulk"},
        )

    def _post_context(
        self,
        course: Course,
        forum: Forum,
        discussion: Discussion,
        post: Post,
        author: User,
        can_reply: bool,
        can_unsubscribe: bool,
        bare: bool,
    ) -> dict[str, object]:
        return {
            "course": course,
            "forum": forum,
            "discussion": discussion,
            "post": post,
            "author": author,
            "body": self.renderer.render(post.message, post.messageformat),
            "can_reply": can_reply,
            "can_unsubscribe": can_unsubscribe,
            "bare": bare,
        }
