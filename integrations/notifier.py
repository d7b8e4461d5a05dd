"""Transactional class emails over the SMTP emailer.

Every method returns a bool and never raises: notifications are best effort.
"""
import logging

from integrations import Party
from utils.emailer import send_email

logger = logging.getLogger(__name__)


def _links(details: dict) -> str:
    lines = []
    if details.get("meeting_link"):
        lines.append(f"Video link: {details['meeting_link']}")
    if details.get("document_link"):
        lines.append(f"Class document: {details['document_link']}")
    return "\n".join(lines)


class EmailNotifier:
    def _deliver(self, to: Party, subject: str, body: str) -> bool:
        if not to.email:
            return False
        ok, err = send_email(to.email, subject, body)
        if not ok:
            logger.warning("notification to %s not sent: %s", to.email, err)
        return ok

    def send_booking_confirmation(self, student: Party, teacher: Party, details: dict) -> bool:
        when = f"{details['date']} at {details['time']} ({details['duration']} min)"
        extra = details.get("additional_classes") or 0
        if extra:
            when += f", plus {extra} more class{'es' if extra != 1 else ''} in this series"
        links = _links(details)

        student_body = f"Hi {student.name},\n\nYour class with {teacher.name} is confirmed for {when}.\n"
        teacher_body = f"Hi {teacher.name},\n\nA class with {student.name} has been scheduled for {when}.\n"
        if links:
            student_body += "\n" + links + "\n"
            teacher_body += "\n" + links + "\n"

        sent_student = self._deliver(student, f"Class confirmed - {details['date']}", student_body)
        sent_teacher = self._deliver(teacher, f"New class scheduled - {details['date']}", teacher_body)
        return sent_student and sent_teacher

    def send_cancellation(self, student: Party, teacher: Party, details: dict) -> bool:
        reason = details.get("reason") or "No reason given"
        body = (
            "The class on {date} at {time} has been cancelled by {by}.\n\nReason: {reason}\n"
        ).format(date=details["date"], time=details["time"], by=details.get("cancelled_by") or "the school",
                 reason=reason)
        subject = f"Class cancelled - {details['date']}"
        sent_student = self._deliver(student, subject, f"Hi {student.name},\n\n" + body)
        sent_teacher = self._deliver(teacher, subject, f"Hi {teacher.name},\n\n" + body)
        return sent_student and sent_teacher

    def send_reminder(self, recipient: Party, details: dict) -> bool:
        body = (
            f"Hi {recipient.name},\n\nReminder: you have a class with {details['with_name']} "
            f"on {details['date']} at {details['time']}.\n"
        )
        links = _links(details)
        if links:
            body += "\n" + links + "\n"
        return self._deliver(recipient, f"Class reminder - {details['date']}", body)
