# tests/services/test_unread.py
"""Tests for unread post counting."""

import pytest

from forum_notify.models import CapabilityOverride, CourseGroup, GroupMember, TrackingOverride
from forum_notify.models.course import GROUPMODE_SEPARATE
from forum_notify.models.forum import TRACKING_OFF
from forum_notify.services.host import CAP_ACCESS_ALL_GROUPS, CAP_VIEW_HIDDEN_TIMED_POSTS
from forum_notify.services.read_state import ReadStateStore
from forum_notify.services.unread import UnreadAggregator
from tests.conftest import DAY, HOUR, NOW


@pytest.fixture()
def aggregator(db_session, host, test_settings):
    return UnreadAggregator(db_session, host, test_settings)


def test_discussion_count_excludes_read_and_old_posts(
    db_session, aggregator, test_settings, student, other_student, forum, make_discussion, make_post
) -> None:
    discussion = make_discussion(forum, other_student, created=NOW - HOUR)
    read_reply = make_post(discussion, other_student, created=NOW - HOUR)
    make_post(discussion, other_student, created=NOW - HOUR)
    make_post(discussion, other_student, created=NOW - 20 * DAY)
    ReadStateStore(db_session, test_settings).mark_read(student, read_reply, NOW)

    assert aggregator.count_unread_in_discussion(student, discussion.id, NOW) == 2


def test_untracked_forum_counts_zero(
    db_session, aggregator, student, other_student, course, make_forum, make_discussion
) -> None:
    off = make_forum(course, "Off", trackingtype=TRACKING_OFF)
    off_discussion = make_discussion(off, other_student, created=NOW - HOUR)
    opted = make_forum(course, "Opted out")
    opted_discussion = make_discussion(opted, other_student, created=NOW - HOUR)
    db_session.add(TrackingOverride(userid=student.id, forumid=opted.id))
    db_session.flush()

    assert aggregator.count_unread_in_discussion(student, off_discussion.id, NOW) == 0
    assert aggregator.count_unread_in_discussion(student, opted_discussion.id, NOW) == 0
    assert aggregator.unread_map_for_course(student, course.id, NOW) == {}


def test_course_map_lists_only_forums_with_unread(
    db_session, aggregator, test_settings, student, other_student, course, forum, make_forum, make_discussion
) -> None:
    make_discussion(forum, other_student, created=NOW - HOUR)
    quiet_forum = make_forum(course, "Quiet")
    quiet = make_discussion(quiet_forum, other_student, created=NOW - HOUR)
    ReadStateStore(db_session, test_settings).mark_discussion_read(student, quiet.id, NOW)

    assert aggregator.unread_map_for_course(student, course.id, NOW) == {forum.id: 1}


def test_separate_groups_limit_forum_count(
    db_session, host, test_settings, student, other_student, course, make_forum, make_discussion
) -> None:
    forum = make_forum(course, "Groups", groupmode=GROUPMODE_SEPARATE)
    mine = CourseGroup(course_id=course.id, name="Red")
    theirs = CourseGroup(course_id=course.id, name="Blue")
    db_session.add_all([mine, theirs])
    db_session.flush()
    db_session.add(GroupMember(group_id=mine.id, user_id=student.id))
    db_session.flush()
    make_discussion(forum, other_student, "Everyone", created=NOW - HOUR, groupid=-1)
    make_discussion(forum, other_student, "Red only", created=NOW - HOUR, groupid=mine.id)
    make_discussion(forum, other_student, "Blue only", created=NOW - HOUR, groupid=theirs.id)
    cm = host.get_course_module(forum.id)

    aggregator = UnreadAggregator(db_session, host, test_settings)
    assert aggregator.count_unread_in_forum(student, cm, course, NOW) == 2

    db_session.add(CapabilityOverride(user_id=student.id, course_id=course.id, capability=CAP_ACCESS_ALL_GROUPS))
    db_session.flush()
    assert UnreadAggregator(db_session, host, test_settings).count_unread_in_forum(student, cm, course, NOW) == 3


def test_course_counts_are_cached_until_reset(
    db_session, aggregator, host, student, other_student, course, forum, make_discussion, make_post
) -> None:
    discussion = make_discussion(forum, other_student, created=NOW - HOUR)
    cm = host.get_course_module(forum.id)
    assert aggregator.count_unread_in_forum(student, cm, course, NOW) == 1

    make_post(discussion, other_student, created=NOW - HOUR)
    assert aggregator.count_unread_in_forum(student, cm, course, NOW) == 1

    aggregator.reset_cache()
    assert aggregator.count_unread_in_forum(student, cm, course, NOW) == 2


def test_timed_discussions_hidden_until_visible(
    db_session, host, test_settings, student, other_student, course, forum, make_discussion
) -> None:
    test_settings.enable_timed_posts = True
    make_discussion(forum, other_student, "Now", created=NOW - HOUR)
    make_discussion(forum, other_student, "Later", created=NOW - HOUR, timestart=NOW + DAY)
    make_discussion(forum, other_student, "Expired", created=NOW - HOUR, timeend=NOW - 60)
    make_discussion(forum, student, "Own later", created=NOW - HOUR, timestart=NOW + DAY)

    counts = UnreadAggregator(db_session, host, test_settings).unread_map_for_course(student, course.id, NOW)
    assert counts == {forum.id: 2}

    db_session.add(
        CapabilityOverride(user_id=student.id, course_id=course.id, capability=CAP_VIEW_HIDDEN_TIMED_POSTS)
    )
    db_session.flush()
    counts = UnreadAggregator(db_session, host, test_settings).unread_map_for_course(student, course.id, NOW)
    assert counts == {forum.id: 4}
