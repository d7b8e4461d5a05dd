"""Booking orchestrator.

authorize -> resolve subscription -> quota -> conflicts -> persist ->
reserve quota (CAS) -> dispatch side effects

Single, bulk and recurring requests all run through ``_book``; a batch is
all-or-nothing. Sessions are persisted before the quota reservation. A lost
compare-and-swap is retried against the fresh counter; if the reservation
still fails the rows just written are cancelled again (compensation),
so the caller sees either a booked class with its quota taken or nothing.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, List, Optional

from flask import current_app
from sqlalchemy import update

from integrations import get_providers
from models import db
from models.class_session import ClassSession
from models.subscription import Subscription
from models.user import User
from security.rbac import ADMIN, STUDENT, TEACHER, Caller, can_create_booking
from services import quota_ledger
from services.conflicts import Window, check_windows
from services.errors import (
    ConcurrentModification, Forbidden, NotFound, QuotaExceeded, SchedulingError, ValidationFailed,
)
from services.side_effects import dispatch, run_booking_effects, run_bulk_booking_effects
from utils.audit import log_event
from utils.timeutil import iso, js_weekday, local_to_utc, utcnow

logger = logging.getLogger(__name__)

COMPENSATION_REASON = "Booking aborted: quota reservation failed"


@dataclass
class BookingResult:
    sessions: List[ClassSession]
    subscription: Subscription


def _duration(duration_minutes) -> int:
    if duration_minutes is None:
        return int(current_app.config.get("DEFAULT_SESSION_MINUTES", 60))
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, (int, str)):
        raise ValidationFailed("duration_minutes must be an integer")
    try:
        value = int(duration_minutes)
    except ValueError:
        raise ValidationFailed("duration_minutes must be an integer")
    max_minutes = int(current_app.config.get("MAX_SESSION_MINUTES", 240))
    if value <= 0 or value > max_minutes:
        raise ValidationFailed(f"duration_minutes must be between 1 and {max_minutes}")
    return value


def _resolve_teacher(caller: Caller, teacher_id) -> User:
    if caller.role == STUDENT or caller.role is None:
        raise Forbidden("Only teachers and admins can schedule classes")

    target_id = teacher_id if (teacher_id is not None and caller.role == ADMIN) else caller.user_id
    if caller.role == TEACHER and teacher_id is not None and teacher_id != caller.user_id:
        raise Forbidden("Teachers can only schedule their own classes")
    if not can_create_booking(caller, target_id):
        raise Forbidden()

    teacher = db.session.get(User, target_id)
    if teacher is None:
        raise NotFound("Teacher not found")
    if not teacher.role_names & {TEACHER, ADMIN}:
        raise ValidationFailed("teacher_id does not belong to a teacher")
    return teacher


def _resolve_student(student_id) -> User:
    student = db.session.get(User, student_id)
    if student is None:
        raise NotFound("Student not found")
    return student


def _compensate(session_ids) -> None:
    db.session.rollback()
    db.session.execute(
        update(ClassSession)
        .where(ClassSession.id.in_(session_ids), ClassSession.status == "scheduled")
        .values(status="cancelled", cancellation_reason=COMPENSATION_REASON, cancelled_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    logger.warning("compensated %d session(s) after failed quota reservation: %s",
                   len(session_ids), session_ids)


def _reserve(subscription_id: int, count: int, expected_used: int) -> int:
    attempts = max(int(current_app.config.get("QUOTA_RESERVE_ATTEMPTS", 5)), 1)
    for attempt in range(1, attempts + 1):
        try:
            return quota_ledger.reserve(subscription_id, count, expected_used)
        except ConcurrentModification:
            if attempt == attempts:
                raise
            # another booking moved the counter; reserve() re-checks the quota against it
            expected_used = quota_ledger.current_used(subscription_id)
            logger.info("retrying quota reservation on subscription %s (attempt %d, used=%s)",
                        subscription_id, attempt + 1, expected_used)


def _book(caller: Caller, student_id: int, teacher_id, duration_minutes, kind: str,
          plan: Callable[[Subscription], List[datetime]], meeting_link=None,
          auto_create_meeting=True) -> BookingResult:
    duration = _duration(duration_minutes)
    teacher = _resolve_teacher(caller, teacher_id)
    student = _resolve_student(student_id)

    subscription = quota_ledger.get_active_subscription(student.id)
    expected_used = subscription.sessions_used
    remaining = subscription.sessions_total - expected_used
    if remaining <= 0:
        raise QuotaExceeded("No sessions remaining in subscription", available=0)

    starts = plan(subscription)
    if not starts:
        raise ValidationFailed("No sessions to schedule")
    if len(starts) > remaining:
        raise QuotaExceeded(
            f"Not enough sessions remaining. Tried to schedule {len(starts)}, but only {remaining} available.",
            requested=len(starts),
            available=remaining,
        )

    windows = [Window.of(start, duration) for start in starts]
    try:
        check_windows(teacher.id, teacher.email, windows, get_providers().calendar, user_id=caller.user_id)
    except SchedulingError as exc:
        log_event("BOOKING_FAIL_CONFLICT", user_id=caller.user_id, entity="teacher", entity_id=teacher.id,
                  metadata={"kind": kind, "error": exc.message})
        raise

    sessions = [
        ClassSession(
            subscription_id=subscription.id,
            student_id=student.id,
            teacher_id=teacher.id,
            scheduled_at=start,
            duration_minutes=duration,
            meeting_link=meeting_link or None,
            status="scheduled",
        )
        for start in starts
    ]
    db.session.add_all(sessions)
    db.session.commit()
    session_ids = [s.id for s in sessions]

    try:
        _reserve(subscription.id, len(sessions), expected_used)
    except Exception as exc:
        _compensate(session_ids)
        log_event("BOOKING_FAIL_QUOTA", user_id=caller.user_id, entity="subscription",
                  entity_id=subscription.id, metadata={"kind": kind, "error": str(exc), "sessions": session_ids})
        raise

    log_event(
        "BOOKING_CREATE" if kind == "single" else f"BOOKING_CREATE_{kind.upper()}",
        user_id=caller.user_id,
        entity="class_session",
        entity_id=session_ids[0],
        metadata={"count": len(session_ids), "session_ids": session_ids, "subscription_id": subscription.id},
    )
    logger.info("%s booking: %d session(s) for student %s with teacher %s",
                kind, len(session_ids), student.id, teacher.id)

    if len(session_ids) == 1:
        dispatch(run_booking_effects, session_ids[0], meeting_link, auto_create_meeting)
    else:
        dispatch(run_bulk_booking_effects, session_ids, meeting_link, auto_create_meeting)

    return BookingResult(sessions=sessions, subscription=db.session.get(Subscription, subscription.id))


# ---------- entry points ----------

def book_session(caller: Caller, student_id: int, scheduled_at: datetime, duration_minutes=None,
                 teacher_id=None, meeting_link=None, auto_create_meeting=True) -> BookingResult:
    return _book(caller, student_id, teacher_id, duration_minutes, "single",
                 lambda _sub: [scheduled_at], meeting_link, auto_create_meeting)


def book_bulk(caller: Caller, student_id: int, scheduled_ats: List[datetime], duration_minutes=None,
              teacher_id=None, meeting_link=None, auto_create_meeting=True) -> BookingResult:
    max_bulk = int(current_app.config.get("MAX_BULK_SESSIONS", 60))
    if not scheduled_ats:
        raise ValidationFailed("sessions must be a non-empty list of timestamps")
    if len(scheduled_ats) > max_bulk:
        raise ValidationFailed(f"At most {max_bulk} sessions per request")
    return _book(caller, student_id, teacher_id, duration_minutes, "bulk",
                 lambda _sub: list(scheduled_ats), meeting_link, auto_create_meeting)


def expand_weekly(start_date: date, day_of_week: int, at: time, tz_name: str,
                  end_date: Optional[date] = None, until: Optional[datetime] = None,
                  limit: Optional[int] = None) -> List[datetime]:
    """UTC start times for every `day_of_week` (0=Sunday) from start_date on.

    Bounded by `end_date` (inclusive, local) when given, otherwise by `until`
    (UTC), and by `limit` occurrences.
    """
    if end_date is None and until is None:
        raise ValueError("expand_weekly needs end_date or until")
    current = start_date
    while js_weekday(current) != day_of_week:
        current += timedelta(days=1)

    out = []
    while limit is None or len(out) < limit:
        if end_date is not None and current > end_date:
            break
        start = local_to_utc(current, at, tz_name)
        if end_date is None and start > until:
            break
        out.append(start)
        current += timedelta(weeks=1)
    return out


def book_recurring(caller: Caller, student_id: int, day_of_week: int, time_of_day: time, start_date: date,
                   end_date: Optional[date] = None, duration_minutes=None, teacher_id=None,
                   meeting_link=None, auto_create_meeting=True) -> BookingResult:
    if isinstance(day_of_week, bool) or not isinstance(day_of_week, int) or not 0 <= day_of_week <= 6:
        raise ValidationFailed("day_of_week must be 0-6 (0=Sunday)")
    if end_date is not None and end_date < start_date:
        raise ValidationFailed("end_date must not be before start_date")
    tz_name = current_app.config.get("SCHOOL_TIMEZONE", "Europe/Madrid")
    max_bulk = int(current_app.config.get("MAX_BULK_SESSIONS", 60))

    def plan(subscription):
        remaining = subscription.sessions_total - subscription.sessions_used
        dates = expand_weekly(
            start_date, day_of_week, time_of_day, tz_name,
            end_date=end_date,
            until=subscription.ends_at,
            limit=min(remaining, max_bulk),
        )
        if not dates:
            raise ValidationFailed("No valid dates found in the given range for this day of week")
        logger.info("recurring plan: %d date(s) from %s (first %s)", len(dates), start_date, iso(dates[0]))
        return dates

    return _book(caller, student_id, teacher_id, duration_minutes, "recurring", plan,
                 meeting_link, auto_create_meeting)
