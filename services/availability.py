"""Teacher weekly windows and the free-slot search built on them.

Availability is advisory: bookings are never checked against it.
"""
import logging
from datetime import date, time, timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from integrations import get_providers
from models import db
from models.availability import TeacherAvailability
from models.user import User
from security.rbac import ADMIN, TEACHER, Caller
from services.conflicts import Window, has_internal_conflict
from services.errors import Forbidden, NotFound, ValidationFailed
from utils.timeutil import js_weekday, local_to_utc

logger = logging.getLogger(__name__)


def _target_teacher(caller: Caller, teacher_id) -> int:
    if caller.role == ADMIN:
        return teacher_id or caller.user_id
    if caller.role == TEACHER:
        if teacher_id is not None and teacher_id != caller.user_id:
            raise Forbidden("Teachers can only manage their own availability")
        return caller.user_id
    raise Forbidden()


def list_windows(caller: Caller, teacher_id=None):
    target = _target_teacher(caller, teacher_id)
    return (
        TeacherAvailability.query
        .filter_by(teacher_id=target, is_active=True)
        .order_by(TeacherAvailability.day_of_week, TeacherAvailability.start_time)
        .all()
    )


def add_window(caller: Caller, day_of_week: int, start: time, end: time, teacher_id=None):
    """Returns (window, created). An identical existing window is returned as-is."""
    target = _target_teacher(caller, teacher_id)
    if isinstance(day_of_week, bool) or not isinstance(day_of_week, int) or not 0 <= day_of_week <= 6:
        raise ValidationFailed("day_of_week must be 0-6 (0=Sunday)")
    if end <= start:
        raise ValidationFailed("end_time must be after start_time")

    existing = TeacherAvailability.query.filter_by(
        teacher_id=target, day_of_week=day_of_week, start_time=start, end_time=end,
    ).first()
    if existing:
        if not existing.is_active:
            existing.is_active = True
            db.session.commit()
        return existing, False

    window = TeacherAvailability(teacher_id=target, day_of_week=day_of_week, start_time=start, end_time=end)
    db.session.add(window)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return TeacherAvailability.query.filter_by(
            teacher_id=target, day_of_week=day_of_week, start_time=start, end_time=end,
        ).first(), False
    return window, True


def remove_window(caller: Caller, window_id: int) -> None:
    window = db.session.get(TeacherAvailability, window_id)
    if window is None:
        raise NotFound("Availability window not found")
    if caller.role != ADMIN and window.teacher_id != caller.user_id:
        raise Forbidden()
    window.is_active = False
    db.session.commit()


def available_slots(teacher_id: int, day: date, duration_minutes: int):
    """Free [start, end) UTC slots for one local day, stepping by the duration."""
    teacher = db.session.get(User, teacher_id)
    if teacher is None:
        raise NotFound("Teacher not found")
    if duration_minutes <= 0:
        raise ValidationFailed("duration must be positive")

    tz_name = current_app.config.get("SCHOOL_TIMEZONE", "Europe/Madrid")
    step = timedelta(minutes=duration_minutes)
    windows = (
        TeacherAvailability.query
        .filter_by(teacher_id=teacher_id, day_of_week=js_weekday(day), is_active=True)
        .order_by(TeacherAvailability.start_time)
        .all()
    )

    candidates = []
    for w in windows:
        start = local_to_utc(day, w.start_time, tz_name)
        end = local_to_utc(day, w.end_time, tz_name)
        while start + step <= end:
            candidates.append(Window(start, start + step))
            start += step
    if not candidates:
        return []

    day_start = min(c.start for c in candidates)
    day_end = max(c.end for c in candidates)
    busy = []

    calendar = get_providers().calendar
    if calendar is not None and teacher.email:
        try:
            busy.extend(calendar.busy_blocks(teacher.email, day_start, day_end))
        except Exception as exc:
            # slot display falls back to internal data only
            logger.warning("free/busy lookup failed for teacher %s: %s", teacher_id, exc)

    return [
        c for c in candidates
        if not any(c.overlaps(b_start, b_end) for b_start, b_end in busy)
        and not has_internal_conflict(teacher_id, c.start, c.end)
    ]
