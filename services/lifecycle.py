"""State changes after a class is booked.

    scheduled -> cancelled   student (>= CANCEL_CUTOFF_HOURS ahead), owning teacher, admin
    scheduled -> completed   owning teacher, admin
    scheduled -> no_show     owning teacher, admin
    update_notes             owning teacher, admin; any status

Transitions are conditional updates on ``status = 'scheduled'`` so two
concurrent cancels cannot both refund.
"""
import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import update

from models import db
from models.class_session import ClassSession
from models.user import User
from security.rbac import STUDENT, LIFECYCLE_ACTIONS, Caller, can_perform, can_view_session
from services import quota_ledger
from services.errors import Forbidden, InvalidTransition, NotFound, TooLateToCancel, ValidationFailed
from services.side_effects import dispatch, run_cancellation_effects
from utils.audit import log_event
from utils.timeutil import utcnow

logger = logging.getLogger(__name__)

_TARGET_STATUS = {"cancel": "cancelled", "complete": "completed", "no_show": "no_show"}


def load_session_for(caller: Caller, session_id) -> ClassSession:
    session = db.session.get(ClassSession, session_id)
    if session is None:
        raise NotFound("Session not found")
    if not can_view_session(caller, session):
        raise Forbidden()
    return session


def _transition(session: ClassSession, values: dict) -> None:
    values = dict(values, updated_at=utcnow())
    result = db.session.execute(
        update(ClassSession)
        .where(ClassSession.id == session.id, ClassSession.status == "scheduled")
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        db.session.refresh(session)
        raise InvalidTransition(f"Session is {session.status}, only scheduled sessions can change status")
    db.session.commit()
    db.session.refresh(session)


def perform_action(caller: Caller, session_id, action: str, reason=None, notes=None, now=None) -> ClassSession:
    if action not in LIFECYCLE_ACTIONS:
        raise ValidationFailed(f"Invalid action. Use one of: {', '.join(LIFECYCLE_ACTIONS)}")

    session = load_session_for(caller, session_id)
    if not can_perform(caller, session, action):
        if caller.role == STUDENT:
            raise Forbidden(f"Students cannot perform '{action}'")
        raise Forbidden()

    now = now or utcnow()

    if action == "cancel":
        _cancel(caller, session, reason, now)
    elif action == "update_notes":
        session.teacher_notes = notes or ""
        db.session.commit()
    else:
        values = {"status": _TARGET_STATUS[action], "completed_at": now}
        if action == "complete" and notes:
            values["teacher_notes"] = notes
        _transition(session, values)

    log_event(
        f"SESSION_{action.upper()}",
        user_id=caller.user_id,
        entity="class_session",
        entity_id=session.id,
        metadata={"reason": reason} if reason else None,
    )
    logger.info("session %s: %s by user %s (%s)", session.id, action, caller.user_id, caller.role)
    return session


def _cancel(caller: Caller, session: ClassSession, reason, now) -> None:
    if session.status != "scheduled":
        raise InvalidTransition(f"Session is {session.status}, only scheduled sessions can be cancelled")

    if caller.role == STUDENT:
        cutoff_hours = int(current_app.config.get("CANCEL_CUTOFF_HOURS", 24))
        if session.scheduled_at - now < timedelta(hours=cutoff_hours):
            raise TooLateToCancel(f"Sessions must be cancelled at least {cutoff_hours} hours in advance")

    _transition(session, {
        "status": "cancelled",
        "cancelled_at": now,
        "cancelled_by": caller.user_id,
        "cancellation_reason": (reason or "").strip()[:255] or None,
    })
    quota_ledger.release(session.subscription_id, 1)

    canceller = db.session.get(User, caller.user_id)
    dispatch(run_cancellation_effects, session.id,
             canceller.display_name if canceller else caller.role.lower(), reason)
