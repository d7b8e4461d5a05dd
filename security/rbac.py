from dataclasses import dataclass
from functools import wraps

from flask import g, jsonify

STUDENT = "STUDENT"
TEACHER = "TEACHER"
ADMIN = "ADMIN"

LIFECYCLE_ACTIONS = ("cancel", "complete", "no_show", "update_notes")


@dataclass(frozen=True)
class Caller:
    """Who is asking: the authenticated user id and their effective role."""
    user_id: int
    role: str


def has_role(role_name: str) -> bool:
    user = getattr(g, "user", None)
    if not user:
        return False
    return role_name in user.role_names


def require_roles(*role_names: str):
    """
    Usage: @require_roles("TEACHER")
    ADMIN passes every check.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required"), 401

            user_roles = user.role_names
            if ADMIN not in user_roles and not user_roles.intersection(set(role_names)):
                return jsonify(error="Forbidden"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator


# ---------- capability predicates (no Flask needed) ----------

def can_create_booking(caller: Caller, teacher_id: int) -> bool:
    """Teachers book for themselves; admins for anyone; students never."""
    if caller.role == ADMIN:
        return True
    if caller.role == TEACHER:
        return teacher_id == caller.user_id
    return False


def can_view_session(caller: Caller, session) -> bool:
    if caller.role == ADMIN:
        return True
    return caller.user_id in (session.student_id, session.teacher_id)


def can_perform(caller: Caller, session, action: str) -> bool:
    if caller.role == ADMIN:
        return True
    if caller.role == TEACHER and session.teacher_id == caller.user_id:
        return True
    if action == "cancel" and caller.role == STUDENT and session.student_id == caller.user_id:
        return True
    return False
