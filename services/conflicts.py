"""Double-booking detection for a teacher.

Overlap is the half-open test ``start < other_end and end > other_start``,
so back-to-back classes never conflict.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app

from models.class_session import ClassSession
from services.errors import ExternalCalendarUnavailable, SchedulingConflict
from utils.audit import log_event
from utils.timeutil import iso

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Window:
    start: datetime
    end: datetime

    @classmethod
    def of(cls, start: datetime, duration_minutes: int) -> "Window":
        return cls(start, start + timedelta(minutes=duration_minutes))

    def overlaps(self, other_start: datetime, other_end: datetime) -> bool:
        return self.start < other_end and self.end > other_start


def _max_duration() -> timedelta:
    return timedelta(minutes=int(current_app.config.get("MAX_SESSION_MINUTES", 240)))


def _active_sessions_between(teacher_id: int, start: datetime, end: datetime, exclude_ids=()):
    # Anything that starts before `end` and could still be running at `start`.
    q = ClassSession.query.filter(
        ClassSession.teacher_id == teacher_id,
        ClassSession.status != "cancelled",
        ClassSession.scheduled_at < end,
        ClassSession.scheduled_at > start - _max_duration(),
    )
    if exclude_ids:
        q = q.filter(ClassSession.id.notin_(list(exclude_ids)))
    return q.order_by(ClassSession.scheduled_at.asc()).all()


def find_internal_conflict(teacher_id: int, window_start: datetime, window_end: datetime, exclude_ids=()):
    window = Window(window_start, window_end)
    for existing in _active_sessions_between(teacher_id, window_start, window_end, exclude_ids):
        if window.overlaps(existing.scheduled_at, existing.ends_at):
            return existing
    return None


def has_internal_conflict(teacher_id: int, window_start: datetime, window_end: datetime) -> bool:
    return find_internal_conflict(teacher_id, window_start, window_end) is not None


def has_external_conflict(calendar, teacher_email: str, window_start: datetime, window_end: datetime) -> bool:
    """True when the teacher's external calendar is busy in the window.

    Provider errors propagate; callers apply the failure policy.
    """
    if calendar is None or not teacher_email:
        return False
    return not calendar.check_availability(teacher_email, window_start, window_end)


def _conflict_message(window: Window, where: str) -> str:
    return (
        f"Conflict detected on {window.start:%Y-%m-%d} at {window.start:%H:%M} UTC: "
        f"{where}"
    )


def check_windows(teacher_id: int, teacher_email, windows, calendar=None, user_id=None) -> None:
    """Validate every candidate window before anything is written.

    Raises SchedulingConflict for the first offending window in request
    order; for two candidates that overlap each other that is the one
    requested later. Zero windows written is the caller's job; this only reads.
    """
    windows = list(windows)
    if not windows:
        return

    # Candidates against each other
    for i, cur in enumerate(windows):
        if any(cur.overlaps(prev.start, prev.end) for prev in windows[:i]):
            raise SchedulingConflict(
                _conflict_message(cur, "two requested classes overlap."),
                conflict_at=iso(cur.start),
            )

    # Internal store, one query for the whole span
    span_start = min(w.start for w in windows)
    span_end = max(w.end for w in windows)
    existing = _active_sessions_between(teacher_id, span_start, span_end)
    for window in windows:
        for row in existing:
            if window.overlaps(row.scheduled_at, row.ends_at):
                raise SchedulingConflict(
                    _conflict_message(window, "the teacher already has a class."),
                    conflict_at=iso(window.start),
                    existing_session_id=row.id,
                )

    # External calendar
    if calendar is None or not teacher_email:
        return
    policy = current_app.config.get("EXTERNAL_CALENDAR_FAILURE_POLICY", "warn")
    for window in windows:
        try:
            busy = has_external_conflict(calendar, teacher_email, window.start, window.end)
        except Exception as exc:  # provider failures are not ours to classify
            if policy == "block":
                logger.error("external calendar check failed for teacher %s: %s", teacher_id, exc)
                raise ExternalCalendarUnavailable(
                    "Could not verify the teacher's calendar; try again later",
                    conflict_at=iso(window.start),
                ) from exc
            logger.warning(
                "EXTERNAL CALENDAR UNAVAILABLE for teacher %s, continuing with internal check only: %s",
                teacher_id, exc,
            )
            log_event(
                "EXTERNAL_CALENDAR_UNAVAILABLE",
                user_id=user_id,
                entity="teacher",
                entity_id=teacher_id,
                metadata={"error": str(exc), "window_start": iso(window.start)},
            )
            return
        if busy:
            raise SchedulingConflict(
                _conflict_message(window, "the teacher's calendar is busy."),
                conflict_at=iso(window.start),
            )
