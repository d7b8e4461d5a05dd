from utils.timeutil import iso


def session_to_dict(s):
    return {
        "id": s.id,
        "subscription_id": s.subscription_id,
        "student_id": s.student_id,
        "teacher_id": s.teacher_id,
        "scheduled_at": iso(s.scheduled_at),
        "ends_at": iso(s.ends_at),
        "duration_minutes": s.duration_minutes,
        "status": s.status,
        "meeting_link": s.meeting_link,
        "calendar_event_id": s.calendar_event_id,
        "document_id": s.document_id,
        "document_link": s.document_link,
        "teacher_notes": s.teacher_notes,
        "cancellation_reason": s.cancellation_reason,
        "cancelled_by": s.cancelled_by,
        "reminder_sent": s.reminder_sent,
        "created_at": iso(s.created_at),
        "updated_at": iso(s.updated_at),
        "completed_at": iso(s.completed_at),
        "cancelled_at": iso(s.cancelled_at),
    }


def subscription_to_dict(sub):
    return {
        "id": sub.id,
        "student_id": sub.student_id,
        "status": sub.status,
        "starts_at": iso(sub.starts_at),
        "ends_at": iso(sub.ends_at),
        "sessions_total": sub.sessions_total,
        "sessions_used": sub.sessions_used,
        "sessions_remaining": sub.sessions_remaining,
        "usable": sub.is_usable(),
        "created_at": iso(sub.created_at),
    }


def user_to_dict(user):
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role,
        "roles": sorted(user.role_names),
        "level": user.level,
    }
