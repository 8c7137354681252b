# tests/v1/test_forums.py
"""Tests for forum endpoints."""

import pytest
from fastapi import status
from sqlalchemy import select

from forum_notify.models import Discussion, ReadRecord
from forum_notify.models.forum import SUBSCRIPTION_DISALLOWED, SUBSCRIPTION_FORCED, TRACKING_OFF
from forum_notify.services.host import CAP_VIEW_SUBSCRIBERS


class TestSubscription:
    """Subscribe and unsubscribe through the API."""

    def test_subscribe_and_unsubscribe(self, client, auth_token, student, course, forum, enrol) -> None:
        enrol(course, student)
        url = f"/api/v1/forums/{forum.id}/subscription"

        assert client.get(url, headers=auth_token).json()["subscribed"] is False

        response = client.post(url, headers=auth_token)
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"forum_id": forum.id, "subscribed": True, "forced": False}

        response = client.delete(url, headers=auth_token)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["subscribed"] is False

    def test_subscribe_requires_course_access(self, client, auth_token, forum) -> None:
        response = client.post(f"/api/v1/forums/{forum.id}/subscription", headers=auth_token)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_forced_forum_cannot_be_left(self, client, auth_token, student, course, make_forum, enrol) -> None:
        enrol(course, student)
        forced = make_forum(course, "News", forcesubscribe=SUBSCRIPTION_FORCED)

        response = client.delete(f"/api/v1/forums/{forced.id}/subscription", headers=auth_token)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert client.get(f"/api/v1/forums/{forced.id}/subscription", headers=auth_token).json() == {
            "forum_id": forced.id,
            "subscribed": True,
            "forced": True,
        }

    def test_disallowed_forum_rejects_subscription(
        self, client, auth_token, student, course, make_forum, enrol
    ) -> None:
        enrol(course, student)
        closed = make_forum(course, "Staff only", forcesubscribe=SUBSCRIPTION_DISALLOWED)

        response = client.post(f"/api/v1/forums/{closed.id}/subscription", headers=auth_token)

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_unknown_forum_returns_404(self, client, auth_token) -> None:
        response = client.get("/api/v1/forums/999/subscription", headers=auth_token)
        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestDigest:
    def test_set_and_reset_digest(self, client, auth_token, forum) -> None:
        url = f"/api/v1/forums/{forum.id}/digest"

        response = client.put(url, json={"maildigest": 2}, headers=auth_token)
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"forum_id": forum.id, "maildigest": 2, "effective": 2}

        response = client.put(url, json={"maildigest": -1}, headers=auth_token)
        assert response.json() == {"forum_id": forum.id, "maildigest": -1, "effective": 0}

    def test_unknown_digest_mode_is_rejected(self, client, auth_token, forum) -> None:
        response = client.put(f"/api/v1/forums/{forum.id}/digest", json={"maildigest": 5}, headers=auth_token)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "Unknown digest mode" in response.json()["detail"]


class TestTracking:
    def test_stop_and_start_tracking(self, client, auth_token, forum) -> None:
        url = f"/api/v1/forums/{forum.id}/tracking"
        assert client.get(url, headers=auth_token).json() == {
            "forum_id": forum.id,
            "trackable": True,
            "tracked": True,
        }

        assert client.delete(url, headers=auth_token).json()["tracked"] is False
        assert client.post(url, headers=auth_token).json()["tracked"] is True

    def test_forum_with_tracking_off(self, client, auth_token, course, make_forum) -> None:
        off = make_forum(course, "Quiet", trackingtype=TRACKING_OFF)

        body = client.get(f"/api/v1/forums/{off.id}/tracking", headers=auth_token).json()

        assert body == {"forum_id": off.id, "trackable": False, "tracked": False}


def test_mark_forum_read(client, db_session, auth_token, student, other_student, course, forum, enrol, fresh) -> None:
    enrol(course, student)
    discussion = fresh(forum, other_student)

    response = client.post(f"/api/v1/forums/{forum.id}/read", headers=auth_token)

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"ok": True}
    read = db_session.scalars(select(ReadRecord.postid).where(ReadRecord.userid == student.id)).all()
    assert read == [discussion.firstpost]
    assert client.get(f"/api/v1/courses/{course.id}/unread", headers=auth_token).json() == {
        "course_id": course.id,
        "forums": {},
    }


class TestSubscribers:
    def test_listing_requires_capability(self, client, auth_token, student, course, forum, enrol) -> None:
        enrol(course, student)
        response = client.get(f"/api/v1/forums/{forum.id}/subscribers", headers=auth_token)
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_lists_subscribed_users(
        self, client, auth_token, other_token, student, other_student, course, forum, enrol, grant
    ) -> None:
        enrol(course, student, other_student)
        grant(student, course, CAP_VIEW_SUBSCRIBERS)
        client.post(f"/api/v1/forums/{forum.id}/subscription", headers=other_token)

        response = client.get(f"/api/v1/forums/{forum.id}/subscribers", headers=auth_token)

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == [
            {
                "id": other_student.id,
                "username": "bob",
                "fullname": "Bob Tester",
                "email": "bob@example.com",
            }
        ]


class TestStartDiscussion:
    def test_create_discussion(self, client, db_session, auth_token, student, course, forum, enrol) -> None:
        enrol(course, student)

        response = client.post(
            f"/api/v1/forums/{forum.id}/discussions",
            json={"subject": "Study group", "message": "<p>Who is in?</p>"},
            headers=auth_token,
        )

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["name"] == "Study group"
        assert data["userid"] == student.id
        assert data["groupid"] == -1
        assert db_session.get(Discussion, data["id"]).firstpost == data["firstpost"]

    def test_requires_enrolment(self, client, auth_token, forum) -> None:
        response = client.post(
            f"/api/v1/forums/{forum.id}/discussions",
            json={"subject": "Hi", "message": "Hello"},
            headers=auth_token,
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    @pytest.mark.parametrize(
        "payload",
        [
            {"subject": "", "message": "x"},
            {"subject": "Hi"},
            {"subject": "Hi", "message": "x", "messageformat": 7},
            {"subject": "Hi", "message": "x", "groupid": -2},
        ],
    )
    def test_invalid_payload(self, client, auth_token, student, course, forum, enrol, payload) -> None:
        enrol(course, student)
        response = client.post(f"/api/v1/forums/{forum.id}/discussions", json=payload, headers=auth_token)
        assert response.status_code == 422
