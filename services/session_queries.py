from datetime import datetime
from typing import Optional

from models.class_session import ClassSession, SESSION_STATUSES
from security.rbac import ADMIN, STUDENT, TEACHER, Caller
from services.errors import ValidationFailed


def list_sessions(caller: Caller, student_id: Optional[int] = None, teacher_id: Optional[int] = None,
                  status: Optional[str] = None, date_from: Optional[datetime] = None,
                  date_to: Optional[datetime] = None, limit: int = 500):
    """Sessions visible to the caller; students and teachers only ever see their own."""
    q = ClassSession.query

    if caller.role == STUDENT:
        q = q.filter(ClassSession.student_id == caller.user_id)
    elif caller.role == TEACHER:
        q = q.filter(ClassSession.teacher_id == caller.user_id)
    elif caller.role != ADMIN:
        return []

    if student_id is not None and caller.role != STUDENT:
        q = q.filter(ClassSession.student_id == student_id)
    if teacher_id is not None:
        q = q.filter(ClassSession.teacher_id == teacher_id)
    if status:
        if status not in SESSION_STATUSES:
            raise ValidationFailed(f"status must be one of: {', '.join(SESSION_STATUSES)}")
        q = q.filter(ClassSession.status == status)
    if date_from is not None:
        q = q.filter(ClassSession.scheduled_at >= date_from)
    if date_to is not None:
        q = q.filter(ClassSession.scheduled_at <= date_to)

    return q.order_by(ClassSession.scheduled_at.asc()).limit(limit).all()
