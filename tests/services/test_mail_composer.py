# tests/services/test_mail_composer.py
"""Tests for post body rendering and mail composition."""

import pytest
from markupsafe import Markup

from forum_notify.models import Post
from forum_notify.models.forum import FORMAT_HTML, FORMAT_PLAIN
from forum_notify.models.user import MAILFORMAT_PLAIN
from forum_notify.services.mail_composer import DigestEntry, DigestSection, MailComposer, header_value
from forum_notify.services.mailer import build_message
from forum_notify.services.rendering import ContentRenderer
from tests.conftest import NOW


@pytest.fixture()
def composer(test_settings):
    return MailComposer(test_settings)


def test_plain_body_is_escaped_for_html() -> None:
    rendered = ContentRenderer().render("a < b\nsecond line", FORMAT_PLAIN)

    assert rendered.text == "a < b\nsecond line"
    assert rendered.html == Markup("a &lt; b<br />\nsecond line")


def test_html_body_strips_tags_for_text() -> None:
    rendered = ContentRenderer().render("<p>Hello <b>class</b></p>", FORMAT_HTML)

    assert rendered.text == "Hello class"
    assert str(rendered.html) == "<p>Hello <b>class</b></p>"


def test_unknown_body_format_is_rejected() -> None:
    with pytest.raises(ValueError):
        ContentRenderer().render("x", 99)


def test_message_id_is_stable_per_recipient(composer) -> None:
    first = composer.message_id(10, 2)

    assert first == composer.message_id(10, 2)
    assert first != composer.message_id(10, 3)
    assert first.startswith("<") and first.endswith("@lms.example.com>")


def test_userdate_uses_site_timezone(composer) -> None:
    assert composer.userdate(NOW) == "Thursday, 09 October 2025, 08:53 AM"


def test_post_mail_for_plain_text_reader(
    db_session, composer, course, forum, student, other_student, make_discussion
) -> None:
    student.mailformat = MAILFORMAT_PLAIN
    discussion = make_discussion(forum, other_student, "Exam dates")
    post = db_session.get(Post, discussion.firstpost)

    mail = composer.post_mail(
        course=course,
        forum=forum,
        discussion=discussion,
        post=post,
        author=other_student,
        recipient=student,
        can_reply=True,
        can_unsubscribe=False,
    )

    assert mail.subject == "PY101: Exam dates"
    assert mail.html == ""
    assert "PY101 -> Forums -> General discussion -> Exam dates" in mail.text
    assert f"https://lms.example.com/mod/forum/post.php?reply={post.id}" in mail.text
    assert "Unsubscribe" not in mail.text
    assert "List-Unsubscribe" not in mail.headers
    assert "In-Reply-To" not in mail.headers


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("Bad\nsubject", "Bad subject"), ("  Week 1\r\n  notes ", "Week 1 notes"), ("Plain", "Plain")],
)
def test_header_value_folds_line_breaks(raw, expected) -> None:
    assert header_value(raw) == expected


def test_post_mail_headers_stay_on_one_line(
    db_session, composer, course, forum, student, other_student, make_discussion
) -> None:
    course.fullname = "Python\nFundamentals"
    other_student.firstname = "Bob\r\nBcc: mallory@example.com"
    discussion = make_discussion(forum, other_student, "Exam\ndates")
    post = db_session.get(Post, discussion.firstpost)

    mail = composer.post_mail(
        course=course,
        forum=forum,
        discussion=discussion,
        post=post,
        author=other_student,
        recipient=student,
        can_reply=False,
        can_unsubscribe=True,
    )

    assert mail.subject == "PY101: Exam dates"
    assert mail.headers["X-Course-Name"] == "Python Fundamentals"
    for value in [mail.sender, mail.subject, *mail.headers.values()]:
        assert "\n" not in value and "\r" not in value


def test_digest_html_keeps_rendered_post_markup(
    db_session, composer, course, forum, student, other_student, make_discussion
) -> None:
    discussion = make_discussion(forum, other_student, "Lab <1>")
    post = db_session.get(Post, discussion.firstpost)
    section = DigestSection(course=course, forum=forum, discussion=discussion, can_unsubscribe=True)
    section.entries.append(DigestEntry(post=post, author=other_student, full=True))

    mail = composer.digest_mail(recipient=student, sections=[section])

    assert mail.subject == "LMS forum digest"
    assert "<p>Lab <1> body</p>" in mail.html
    assert "Lab &lt;1&gt;" in mail.html
    assert "https://lms.example.com/mod/forum/subscribe.php?id=" in mail.text


def test_build_message_adds_html_alternative() -> None:
    msg = build_message(
        "LMS <noreply@lms.example.com>",
        "alice@example.com",
        "Digest",
        "plain",
        "<p>html</p>",
        {"Precedence": "Bulk"},
    )

    assert msg["Precedence"] == "Bulk"
    assert msg.is_multipart()
    assert [part.get_content_type() for part in msg.iter_parts()] == ["text/plain", "text/html"]
