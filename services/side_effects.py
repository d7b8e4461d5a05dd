"""Best-effort work that follows a booking or a cancellation.

Document creation, calendar/video link, link persistence and notification
each run in their own guard: a failing step is logged, audited as
SIDE_EFFECT_FAILED and skipped; the booking itself is never touched.

Jobs are handed to ``SideEffectDispatcher``. In ``thread`` mode they run on a
small pool inside a fresh app context and the HTTP response does not wait for
them; nothing cancels a job once submitted, so a host that kills workers early
will lose trailing steps. ``inline`` mode runs them in the caller.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional

from flask import current_app

from integrations import Party, get_providers
from integrations.google_docs import folder_url
from models import db
from models.class_session import ClassSession
from utils.audit import log_event
from utils.timeutil import utc_to_local

logger = logging.getLogger(__name__)

DISPATCHER_KEY = "lessonslot.side_effects"

OK = "ok"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class StepOutcome:
    step: str
    status: str
    session_id: Optional[int] = None
    error: Optional[str] = None


@dataclass
class SideEffectReport:
    session_ids: List[int]
    steps: List[StepOutcome] = field(default_factory=list)

    def record(self, step, status, session_id=None, error=None):
        self.steps.append(StepOutcome(step, status, session_id, error))

    def status_of(self, step, session_id=None):
        for outcome in self.steps:
            if outcome.step == step and (session_id is None or outcome.session_id == session_id):
                return outcome.status
        return None

    @property
    def failed(self) -> List[StepOutcome]:
        return [s for s in self.steps if s.status == FAILED]


class SideEffectDispatcher:
    def __init__(self, app, mode: str = "thread", max_workers: int = 4):
        self.app = app
        self.mode = mode
        self._executor = None
        if mode == "thread":
            self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="side-effects")

    def submit(self, fn, *args, **kwargs):
        if self._executor is None:
            return self._run_inline(fn, *args, **kwargs)
        future = self._executor.submit(self._run_in_context, fn, *args, **kwargs)
        future.add_done_callback(self._log_crash)
        return future

    def _run_inline(self, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except Exception:
            logger.exception("side-effect job %s crashed", getattr(fn, "__name__", fn))
            db.session.rollback()
            return None

    def _run_in_context(self, fn, *args, **kwargs):
        with self.app.app_context():
            try:
                return fn(*args, **kwargs)
            finally:
                db.session.remove()

    @staticmethod
    def _log_crash(future):
        exc = future.exception()
        if exc is not None:
            logger.error("side-effect job crashed: %r", exc, exc_info=exc)

    def shutdown(self, wait: bool = True):
        if self._executor is not None:
            self._executor.shutdown(wait=wait)


def init_dispatcher(app) -> SideEffectDispatcher:
    dispatcher = SideEffectDispatcher(
        app,
        mode=app.config.get("SIDE_EFFECT_MODE", "thread"),
        max_workers=int(app.config.get("SIDE_EFFECT_WORKERS", 4)),
    )
    app.extensions[DISPATCHER_KEY] = dispatcher
    return dispatcher


def dispatch(fn, *args, **kwargs):
    return current_app.extensions[DISPATCHER_KEY].submit(fn, *args, **kwargs)


# ---------- helpers ----------

def format_when(scheduled_at):
    local = utc_to_local(scheduled_at, current_app.config.get("SCHOOL_TIMEZONE", "Europe/Madrid"))
    return local.strftime("%A %d %B %Y"), local.strftime("%H:%M")


def _attempt(report: SideEffectReport, step: str, session_id, fn):
    try:
        result = fn()
    except Exception as exc:
        db.session.rollback()
        logger.error("side effect %s failed for session %s: %s", step, session_id, exc, exc_info=True)
        report.record(step, FAILED, session_id, str(exc))
        try:
            log_event(
                "SIDE_EFFECT_FAILED",
                entity="class_session",
                entity_id=session_id,
                metadata={"step": step, "error": str(exc)[:500]},
            )
        except Exception:
            db.session.rollback()
            logger.exception("could not audit failed step %s for session %s", step, session_id)
        return None
    report.record(step, OK if result is not None else SKIPPED, session_id)
    return result


def _create_document(providers, session, student):
    if providers.documents is None:
        logger.debug("no document provider, skipping class document for session %s", session.id)
        return None
    if not student or not student.drive_folder_id:
        logger.info("student %s has no Drive folder, skipping class document", session.student_id)
        return None
    return providers.documents.create_class_document(
        student_name=student.display_name,
        level=student.level,
        class_date=session.scheduled_at,
        parent_folder_id=student.drive_folder_id,
        index_doc_id=student.drive_index_doc_id,
    )


def _create_event(providers, session, student, teacher, document, auto_create_meeting):
    if not auto_create_meeting or providers.calendar is None:
        return None
    if not (student and student.email and teacher and teacher.email):
        logger.info("missing attendee email, skipping calendar event for session %s", session.id)
        return None
    description = "Spanish class"
    if document is not None:
        description += f"\n\nClass document:\n{document.document_link}"
    if student.drive_folder_id:
        description += f"\n\nStudent folder:\n{folder_url(student.drive_folder_id)}"
    return providers.calendar.create_event(
        summary=f"Clase de Español - {student.display_name}",
        attendees=[student.email, teacher.email],
        start=session.scheduled_at,
        end=session.ends_at,
        conferencing=True,
        description=description,
    )


def _persist_links(session_id, document, event, manual_meeting_link):
    if document is None and event is None:
        return None
    session = db.session.get(ClassSession, session_id)
    if document is not None:
        session.document_id = document.document_id
        session.document_link = document.document_link
    if event is not None:
        session.calendar_event_id = event.event_id or None
        session.calendar_html_link = event.html_link
        session.meeting_link = event.meeting_link or manual_meeting_link or session.meeting_link
    db.session.commit()
    return True


def _prepare_one(providers, report, session_id, manual_meeting_link, auto_create_meeting):
    session = db.session.get(ClassSession, session_id)
    if session is None:
        report.record("load", FAILED, session_id, "session not found")
        return None
    student, teacher = session.student, session.teacher

    document = _attempt(report, "document", session_id,
                        lambda: _create_document(providers, session, student))
    event = _attempt(report, "calendar", session_id,
                     lambda: _create_event(providers, session, student, teacher, document, auto_create_meeting))
    _attempt(report, "persist_links", session_id,
             lambda: _persist_links(session_id, document, event, manual_meeting_link))

    return {
        "scheduled_at": session.scheduled_at,
        "duration": session.duration_minutes,
        "meeting_link": (event.meeting_link if event else None) or manual_meeting_link,
        "document_link": document.document_link if document else None,
        "student": student,
        "teacher": teacher,
    }


def _notify_confirmation(providers, report, session_id, prepared, additional_classes=0):
    def send():
        if providers.notifier is None:
            return None
        date_str, time_str = format_when(prepared["scheduled_at"])
        details = {
            "date": date_str,
            "time": time_str,
            "duration": prepared["duration"],
            "meeting_link": prepared["meeting_link"],
            "document_link": prepared["document_link"],
            "additional_classes": additional_classes,
        }
        sent = providers.notifier.send_booking_confirmation(
            Party.from_user(prepared["student"]), Party.from_user(prepared["teacher"]), details,
        )
        if not sent:
            logger.warning("booking confirmation not (fully) delivered for session %s", session_id)
        return sent

    _attempt(report, "notify", session_id, send)


# ---------- jobs ----------

def run_booking_effects(session_id: int, manual_meeting_link=None, auto_create_meeting=True) -> SideEffectReport:
    providers = get_providers()
    report = SideEffectReport(session_ids=[session_id])
    prepared = _prepare_one(providers, report, session_id, manual_meeting_link, auto_create_meeting)
    if prepared is not None:
        _notify_confirmation(providers, report, session_id, prepared)
    logger.info("side effects for session %s done, %d failed step(s)", session_id, len(report.failed))
    return report


def run_bulk_booking_effects(session_ids, manual_meeting_link=None, auto_create_meeting=True,
                             delay_seconds=None) -> SideEffectReport:
    """Sequential per-class work with a pause between items, then one summary mail."""
    providers = get_providers()
    if delay_seconds is None:
        delay_seconds = float(current_app.config.get("BULK_SIDE_EFFECT_DELAY_SECONDS", 1.0))
    report = SideEffectReport(session_ids=list(session_ids))

    prepared_all = []
    for position, session_id in enumerate(session_ids):
        if position and delay_seconds > 0:
            time.sleep(delay_seconds)  # third-party rate limits
        prepared = _prepare_one(providers, report, session_id, manual_meeting_link, auto_create_meeting)
        if prepared is not None:
            prepared_all.append((session_id, prepared))

    if prepared_all:
        prepared_all.sort(key=lambda pair: pair[1]["scheduled_at"])
        first_id, first = prepared_all[0]
        _notify_confirmation(providers, report, first_id, first, additional_classes=len(prepared_all) - 1)

    logger.info("bulk side effects for %d session(s) done, %d failed step(s)",
                len(session_ids), len(report.failed))
    return report


def run_cancellation_effects(session_id: int, cancelled_by: str, reason=None) -> SideEffectReport:
    providers = get_providers()
    report = SideEffectReport(session_ids=[session_id])
    session = db.session.get(ClassSession, session_id)
    if session is None:
        report.record("load", FAILED, session_id, "session not found")
        return report

    def delete_event():
        if providers.calendar is None or not session.calendar_event_id:
            return None
        return providers.calendar.delete_event(session.calendar_event_id)

    def notify():
        if providers.notifier is None:
            return None
        date_str, time_str = format_when(session.scheduled_at)
        return providers.notifier.send_cancellation(
            Party.from_user(session.student),
            Party.from_user(session.teacher),
            {"date": date_str, "time": time_str, "reason": reason, "cancelled_by": cancelled_by},
        )

    _attempt(report, "delete_calendar_event", session_id, delete_event)
    _attempt(report, "notify", session_id, notify)
    return report
