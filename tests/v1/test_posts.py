# tests/v1/test_posts.py
"""Tests for post endpoints."""

from fastapi import status
from sqlalchemy import func, select

from forum_notify.models import Discussion, Post, ReadRecord
from forum_notify.services.host import CAP_DELETE_ANY_POST


def test_mark_post_read(client, db_session, auth_token, student, other_student, course, forum, enrol, fresh) -> None:
    enrol(course, student)
    discussion = fresh(forum, other_student)

    response = client.post(f"/api/v1/posts/{discussion.firstpost}/read", headers=auth_token)

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"ok": True}
    count = db_session.scalar(select(func.count(ReadRecord.id)).where(ReadRecord.userid == student.id))
    assert count == 1


def test_mark_post_read_in_untracked_forum(
    client, db_session, auth_token, student, other_student, course, forum, enrol, fresh
) -> None:
    enrol(course, student)
    discussion = fresh(forum, other_student)
    client.delete(f"/api/v1/forums/{forum.id}/tracking", headers=auth_token)

    response = client.post(f"/api/v1/posts/{discussion.firstpost}/read", headers=auth_token)

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"ok": False}
    assert db_session.scalar(select(func.count(ReadRecord.id))) == 0


def test_mark_unknown_post_read(client, auth_token) -> None:
    response = client.post("/api/v1/posts/4242/read", headers=auth_token)
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_reply_to_post(client, auth_token, student, other_student, course, forum, enrol, fresh) -> None:
    enrol(course, student)
    discussion = fresh(forum, other_student)

    response = client.post(
        f"/api/v1/posts/{discussion.firstpost}/replies",
        json={"subject": "Re: Welcome", "message": "Thanks!", "messageformat": 0, "mailnow": True},
        headers=auth_token,
    )

    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["parent"] == discussion.firstpost
    assert data["discussion_id"] == discussion.id
    assert data["userid"] == student.id
    assert data["mailed"] == 0
    assert data["mailnow"] is True


def test_reply_with_unknown_message_format(
    client, auth_token, student, other_student, course, forum, enrol, fresh
) -> None:
    enrol(course, student)
    discussion = fresh(forum, other_student)

    response = client.post(
        f"/api/v1/posts/{discussion.firstpost}/replies",
        json={"subject": "Re: Welcome", "message": "Thanks!", "messageformat": 7},
        headers=auth_token,
    )

    assert response.status_code == 422


def test_reply_requires_enrolment(client, auth_token, other_student, forum, fresh) -> None:
    discussion = fresh(forum, other_student)

    response = client.post(
        f"/api/v1/posts/{discussion.firstpost}/replies",
        json={"subject": "Re: Welcome", "message": "Hi"},
        headers=auth_token,
    )

    assert response.status_code == status.HTTP_403_FORBIDDEN


class TestDeletePost:
    """Post deletion rules."""

    def test_owner_deletes_leaf_reply(self, client, db_session, auth_token, student, forum, fresh, make_post) -> None:
        discussion = fresh(forum, student)
        reply = make_post(discussion, student, created=discussion.timemodified)

        response = client.delete(f"/api/v1/posts/{reply.id}", headers=auth_token)

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"deleted_posts": 1, "discussion_deleted": False}
        assert db_session.scalar(select(func.count(Post.id)).where(Post.id == reply.id)) == 0

    def test_post_with_replies_needs_children_flag(
        self, client, auth_token, student, other_student, forum, fresh, make_post
    ) -> None:
        discussion = fresh(forum, other_student)
        mine = make_post(discussion, student, created=discussion.timemodified)
        make_post(discussion, other_student, parent=mine.id, created=discussion.timemodified)

        response = client.delete(f"/api/v1/posts/{mine.id}", headers=auth_token)
        assert response.status_code == status.HTTP_409_CONFLICT

        response = client.delete(f"/api/v1/posts/{mine.id}?children=true", headers=auth_token)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["deleted_posts"] == 2

    def test_other_users_post_needs_capability(
        self, client, db_session, auth_token, student, other_student, course, forum, enrol, grant, fresh
    ) -> None:
        enrol(course, student)
        discussion = fresh(forum, other_student)

        response = client.delete(f"/api/v1/posts/{discussion.firstpost}", headers=auth_token)
        assert response.status_code == status.HTTP_403_FORBIDDEN

        grant(student, course, CAP_DELETE_ANY_POST)
        response = client.delete(f"/api/v1/posts/{discussion.firstpost}", headers=auth_token)
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"deleted_posts": 1, "discussion_deleted": True}
        assert db_session.scalar(select(func.count(Discussion.id))) == 0
