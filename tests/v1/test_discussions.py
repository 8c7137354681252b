# tests/v1/test_discussions.py
"""Tests for discussion and course unread endpoints."""

from fastapi import status

from forum_notify.db.time import unix_now


def test_unread_counts_follow_read_marks(
    client, auth_token, student, other_student, course, forum, enrol, fresh, make_post
) -> None:
    enrol(course, student)
    discussion = fresh(forum, other_student)
    make_post(discussion, other_student, created=unix_now() - 600)

    response = client.get(f"/api/v1/discussions/{discussion.id}/unread", headers=auth_token)
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"discussion_id": discussion.id, "unread": 2}
    assert client.get(f"/api/v1/courses/{course.id}/unread", headers=auth_token).json() == {
        "course_id": course.id,
        "forums": {str(forum.id): 2},
    }

    response = client.post(f"/api/v1/discussions/{discussion.id}/read", headers=auth_token)
    assert response.json() == {"ok": True}

    assert client.get(f"/api/v1/discussions/{discussion.id}/unread", headers=auth_token).json()["unread"] == 0


def test_stale_posts_are_never_unread(client, auth_token, student, other_student, course, forum, enrol, make_discussion) -> None:
    enrol(course, student)
    discussion = make_discussion(forum, other_student, created=unix_now() - 30 * 24 * 3600)

    response = client.get(f"/api/v1/discussions/{discussion.id}/unread", headers=auth_token)

    assert response.json()["unread"] == 0


def test_mark_discussion_read_requires_access(client, auth_token, other_student, forum, fresh) -> None:
    discussion = fresh(forum, other_student)

    response = client.post(f"/api/v1/discussions/{discussion.id}/read", headers=auth_token)

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_unknown_discussion_and_course(client, auth_token) -> None:
    assert client.get("/api/v1/discussions/77/unread", headers=auth_token).status_code == status.HTTP_404_NOT_FOUND
    assert client.get("/api/v1/courses/77/unread", headers=auth_token).status_code == status.HTTP_404_NOT_FOUND
