import logging
from datetime import timedelta

from flask import current_app

from integrations import Party, get_providers
from models import db
from models.class_session import ClassSession
from services.side_effects import format_when
from utils.audit import log_event
from utils.timeutil import utcnow

logger = logging.getLogger(__name__)


def send_due_reminders(now=None) -> dict:
    """Remind both parties of classes starting 23-25 hours from now.

    reminder_sent is set even when delivery fails so a flaky mailbox does not
    get the same reminder every run.
    """
    now = now or utcnow()
    window_start = now + timedelta(hours=current_app.config.get("REMINDER_WINDOW_START_HOURS", 23))
    window_end = now + timedelta(hours=current_app.config.get("REMINDER_WINDOW_END_HOURS", 25))
    notifier = get_providers().notifier

    result = {"processed": 0, "sent": 0, "failed": 0, "errors": []}

    sessions = (
        ClassSession.query
        .filter(
            ClassSession.status == "scheduled",
            ClassSession.reminder_sent.is_(False),
            ClassSession.scheduled_at >= window_start,
            ClassSession.scheduled_at <= window_end,
        )
        .order_by(ClassSession.scheduled_at.asc())
        .all()
    )
    logger.info("reminders: %d session(s) between %s and %s", len(sessions), window_start, window_end)

    for session in sessions:
        result["processed"] += 1
        student, teacher = session.student, session.teacher
        date_str, time_str = format_when(session.scheduled_at)
        common = {
            "date": date_str,
            "time": time_str,
            "meeting_link": session.meeting_link,
            "document_link": session.document_link,
        }

        for recipient, other in ((student, teacher), (teacher, student)):
            if notifier is None:
                break
            party = Party.from_user(recipient)
            if not party.email:
                result["failed"] += 1
                result["errors"].append(f"Session {session.id}: missing email address")
                continue
            try:
                ok = notifier.send_reminder(party, dict(common, with_name=Party.from_user(other).name))
            except Exception as exc:
                logger.error("reminder for session %s to %s crashed: %s", session.id, party.email, exc)
                ok = False
            if ok:
                result["sent"] += 1
            else:
                result["failed"] += 1
                result["errors"].append(f"Session {session.id}: failed to send to {party.email}")

        session.reminder_sent = True
        db.session.commit()

    if result["processed"]:
        log_event("REMINDERS_SENT", entity="job", metadata={k: result[k] for k in ("processed", "sent", "failed")})
    return result
