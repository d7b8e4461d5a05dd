from datetime import timedelta

import pytest

from models import db
from models.audit_log import AuditLog
from models.class_session import ClassSession
from services.conflicts import (
    Window, check_windows, find_internal_conflict, has_external_conflict, has_internal_conflict,
)
from services.errors import ExternalCalendarUnavailable, SchedulingConflict

from conftest import future_slot


@pytest.fixture
def booked(teacher, student, make_subscription):
    sub = make_subscription(student)
    start = future_slot(hour=10)
    session = ClassSession(subscription_id=sub.id, student_id=student.id, teacher_id=teacher.id,
                           scheduled_at=start, duration_minutes=60, status="scheduled")
    db.session.add(session)
    db.session.commit()
    return session


def test_window_overlap_is_half_open():
    base = future_slot(hour=10)
    w = Window.of(base, 60)
    assert w.overlaps(base + timedelta(minutes=30), base + timedelta(minutes=90))
    assert not w.overlaps(base + timedelta(minutes=60), base + timedelta(minutes=120))
    assert not w.overlaps(base - timedelta(minutes=60), base)


def test_overlapping_window_conflicts(teacher, booked):
    start = booked.scheduled_at + timedelta(minutes=30)
    assert find_internal_conflict(teacher.id, start, start + timedelta(minutes=60)).id == booked.id


def test_back_to_back_is_allowed(teacher, booked):
    after = booked.ends_at
    before = booked.scheduled_at - timedelta(minutes=60)
    assert find_internal_conflict(teacher.id, after, after + timedelta(minutes=60)) is None
    assert find_internal_conflict(teacher.id, before, booked.scheduled_at) is None


def test_has_internal_conflict(teacher, booked):
    start = booked.scheduled_at
    assert has_internal_conflict(teacher.id, start + timedelta(minutes=59), start + timedelta(minutes=90))
    assert not has_internal_conflict(teacher.id, booked.ends_at, booked.ends_at + timedelta(minutes=60))
    assert not has_internal_conflict(teacher.id, start - timedelta(minutes=60), start)


def test_cancelled_sessions_do_not_block(teacher, booked):
    booked.status = "cancelled"
    db.session.commit()
    assert find_internal_conflict(teacher.id, booked.scheduled_at, booked.ends_at) is None


def test_other_teachers_sessions_do_not_block(make_user, booked):
    other = make_user("TEACHER")
    assert find_internal_conflict(other.id, booked.scheduled_at, booked.ends_at) is None


def test_check_windows_reports_offending_start(teacher, booked):
    clash = booked.scheduled_at + timedelta(minutes=15)
    windows = [Window.of(booked.scheduled_at - timedelta(days=1), 60), Window.of(clash, 60)]
    with pytest.raises(SchedulingConflict) as exc:
        check_windows(teacher.id, teacher.email, windows)
    assert exc.value.details["conflict_at"] == clash.isoformat() + "Z"
    assert clash.strftime("%Y-%m-%d") in exc.value.message


def test_candidates_overlapping_each_other_conflict(teacher):
    start = future_slot(days=3)
    with pytest.raises(SchedulingConflict):
        check_windows(teacher.id, teacher.email, [Window.of(start, 60), Window.of(start + timedelta(minutes=30), 60)])


def test_overlapping_candidates_report_the_later_request(teacher):
    start = future_slot(days=3, hour=10)
    # requested out of time order: 11:00, 12:00, 10:30
    windows = [
        Window.of(start + timedelta(hours=1), 60),
        Window.of(start + timedelta(hours=2), 60),
        Window.of(start + timedelta(minutes=30), 60),
    ]
    with pytest.raises(SchedulingConflict) as exc:
        check_windows(teacher.id, teacher.email, windows)
    assert exc.value.details["conflict_at"] == (start + timedelta(minutes=30)).isoformat() + "Z"


def test_external_busy_block_conflicts(teacher, providers):
    start = future_slot(days=4)
    providers.calendar.busy[teacher.email] = [(start, start + timedelta(minutes=30))]
    with pytest.raises(SchedulingConflict):
        check_windows(teacher.id, teacher.email, [Window.of(start, 60)], providers.calendar)


def test_has_external_conflict_without_calendar_is_false(teacher):
    start = future_slot()
    assert has_external_conflict(None, teacher.email, start, start + timedelta(hours=1)) is False


def test_calendar_outage_warns_and_proceeds(teacher, providers):
    providers.calendar.fail_checks = True
    check_windows(teacher.id, teacher.email, [Window.of(future_slot(days=5), 60)], providers.calendar)
    assert AuditLog.query.filter_by(action="EXTERNAL_CALENDAR_UNAVAILABLE").count() == 1


def test_calendar_outage_blocks_under_block_policy(app, teacher, providers):
    app.config["EXTERNAL_CALENDAR_FAILURE_POLICY"] = "block"
    providers.calendar.fail_checks = True
    with pytest.raises(ExternalCalendarUnavailable):
        check_windows(teacher.id, teacher.email, [Window.of(future_slot(days=5), 60)], providers.calendar)
