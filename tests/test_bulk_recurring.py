from datetime import date, datetime, time, timedelta

import pytest

from models import db
from models.class_session import ClassSession
from models.subscription import Subscription
from services import booking
from services.errors import QuotaExceeded, SchedulingConflict, ValidationFailed
from utils.timeutil import js_weekday, local_to_utc

from conftest import caller_for, future_slot, ts


def _used(sub_id):
    db.session.expire_all()
    return db.session.get(Subscription, sub_id).sessions_used


def test_bulk_books_all_and_sends_one_summary(login, teacher, student, make_subscription, providers):
    sub = make_subscription(student, total=10)
    dates = [future_slot(days=9), future_slot(days=3), future_slot(days=6)]

    resp = login(teacher).post("/sessions/bulk", json={"student_id": student.id, "sessions": [ts(d) for d in dates]})
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["message"] == "Successfully scheduled 3 sessions"
    assert len(body["sessions"]) == 3
    assert _used(sub.id) == 3

    assert len(providers.calendar.created) == 3
    assert len(providers.notifier.confirmations) == 1
    _, _, details = providers.notifier.confirmations[0]
    assert details["additional_classes"] == 2


def test_bulk_is_all_or_nothing_on_conflict(login, teacher, student, make_subscription):
    sub = make_subscription(student, total=10)
    taken = future_slot(days=5, hour=17)
    booking.book_session(caller_for(teacher), student.id, taken)
    used_before = _used(sub.id)

    dates = [future_slot(days=3, hour=17), future_slot(days=4, hour=17), taken + timedelta(minutes=30)]
    resp = login(teacher).post("/sessions/bulk", json={"student_id": student.id, "sessions": [ts(d) for d in dates]})

    assert resp.status_code == 409
    err = resp.get_json()
    assert taken.strftime("%Y-%m-%d") in err["error"]
    assert err["conflict_at"] == ts(taken + timedelta(minutes=30))
    assert ClassSession.query.count() == 1
    assert _used(sub.id) == used_before


def test_bulk_larger_than_remaining_quota(teacher, student, make_subscription):
    sub = make_subscription(student, total=10, used=8)
    with pytest.raises(QuotaExceeded) as exc:
        booking.book_bulk(caller_for(teacher), student.id, [future_slot(days=d) for d in (2, 3, 4)])
    assert exc.value.details == {"requested": 3, "available": 2}
    assert ClassSession.query.count() == 0
    assert _used(sub.id) == 8


def test_bulk_with_overlapping_candidates(teacher, student, make_subscription):
    make_subscription(student)
    start = future_slot(days=2)
    with pytest.raises(SchedulingConflict):
        booking.book_bulk(caller_for(teacher), student.id, [start, start + timedelta(minutes=45)])
    assert ClassSession.query.count() == 0


def test_bulk_requires_dates(login, teacher, student, make_subscription):
    make_subscription(student)
    resp = login(teacher).post("/sessions/bulk", json={"student_id": student.id, "sessions": []})
    assert resp.status_code == 400


def test_bulk_calendar_busy_blocks_whole_batch(teacher, student, make_subscription, providers):
    make_subscription(student)
    busy_day = future_slot(days=4, hour=12)
    providers.calendar.busy[teacher.email] = [(busy_day, busy_day + timedelta(hours=2))]
    with pytest.raises(SchedulingConflict):
        booking.book_bulk(caller_for(teacher), student.id, [future_slot(days=2, hour=12), busy_day])
    assert ClassSession.query.count() == 0


def test_expand_weekly_across_dst_change():
    starts = booking.expand_weekly(date(2026, 3, 2), 1, time(10, 0), "Europe/Madrid", end_date=date(2026, 3, 30))
    assert starts == [
        datetime(2026, 3, 2, 9, 0),
        datetime(2026, 3, 9, 9, 0),
        datetime(2026, 3, 16, 9, 0),
        datetime(2026, 3, 23, 9, 0),
        datetime(2026, 3, 30, 8, 0),
    ]


def test_expand_weekly_moves_to_first_matching_day():
    # 2026-03-04 is a Wednesday; 0 = Sunday
    starts = booking.expand_weekly(date(2026, 3, 4), 0, time(18, 30), "Europe/Madrid", end_date=date(2026, 3, 15))
    assert [s.date() for s in starts] == [date(2026, 3, 8), date(2026, 3, 15)]


def test_expand_weekly_respects_limit_and_until():
    starts = booking.expand_weekly(date(2026, 3, 2), 1, time(10, 0), "Europe/Madrid",
                                   until=datetime(2026, 12, 31), limit=3)
    assert len(starts) == 3
    starts = booking.expand_weekly(date(2026, 3, 2), 1, time(10, 0), "Europe/Madrid",
                                   until=datetime(2026, 3, 10))
    assert len(starts) == 2


def test_recurring_over_four_weeks(login, teacher, student, make_subscription):
    sub = make_subscription(student, total=20)
    first = (future_slot(days=1)).date()
    end = first + timedelta(days=27)

    resp = login(teacher).post("/sessions/recurring", json={
        "student_id": student.id,
        "day_of_week": 3,
        "time": "10:00",
        "start_date": first.isoformat(),
        "end_date": end.isoformat(),
    })
    assert resp.status_code == 201
    sessions = resp.get_json()["sessions"]
    assert len(sessions) == 4
    assert _used(sub.id) == 4
    for s in ClassSession.query.all():
        assert js_weekday(s.scheduled_at.date()) == 3
        assert s.scheduled_at == local_to_utc(s.scheduled_at.date(), time(10, 0), "Europe/Madrid")


def test_recurring_capped_by_remaining_quota(teacher, student, make_subscription):
    sub = make_subscription(student, total=10, used=8)
    first = future_slot(days=1).date()
    result = booking.book_recurring(caller_for(teacher), student.id, 2, time(9, 0), first,
                                    end_date=first + timedelta(days=60))
    assert len(result.sessions) == 2
    assert _used(sub.id) == 10


def test_recurring_bounded_by_subscription_end(teacher, student, make_subscription):
    sub = make_subscription(student, total=50, ends_in_days=20)
    result = booking.book_recurring(caller_for(teacher), student.id, 5, time(9, 0), future_slot(days=1).date())
    assert 2 <= len(result.sessions) <= 3
    assert all(s.scheduled_at <= sub.ends_at for s in result.sessions)


def test_recurring_conflict_writes_nothing(teacher, student, make_subscription):
    sub = make_subscription(student, total=20)
    first = future_slot(days=1).date()
    planned = booking.expand_weekly(first, 4, time(16, 0), "Europe/Madrid", end_date=first + timedelta(days=27))
    booking.book_session(caller_for(teacher), student.id, planned[2] + timedelta(minutes=30))
    used_before = _used(sub.id)

    with pytest.raises(SchedulingConflict):
        booking.book_recurring(caller_for(teacher), student.id, 4, time(16, 0), first,
                               end_date=first + timedelta(days=27))
    assert ClassSession.query.count() == 1
    assert _used(sub.id) == used_before


def test_recurring_rejects_bad_day(teacher, student, make_subscription):
    make_subscription(student)
    with pytest.raises(ValidationFailed):
        booking.book_recurring(caller_for(teacher), student.id, 7, time(9, 0), future_slot().date(),
                               end_date=future_slot(days=30).date())
