from flask import Blueprint, request, jsonify

from routes.parsing import bool_field, date_field, int_field, time_field, timestamp_field
from routes.serializers import session_to_dict, subscription_to_dict
from services import booking, lifecycle
from services.errors import ValidationFailed
from services.session_queries import list_sessions
from utils.auth_context import current_caller, login_required

sessions_bp = Blueprint("sessions", __name__, url_prefix="/sessions")


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationFailed("JSON object body required")
    return data


def _meeting_link(data: dict):
    link = data.get("meeting_link")
    if link is None:
        return None
    if not isinstance(link, str):
        raise ValidationFailed("meeting_link must be a string")
    return link.strip() or None


def _booked_response(result, status=201, message=None):
    payload = {
        "sessions": [session_to_dict(s) for s in result.sessions],
        "subscription": subscription_to_dict(result.subscription),
    }
    if len(result.sessions) == 1 and message is None:
        payload["session"] = payload["sessions"][0]
    if message:
        payload["message"] = message
    return jsonify(payload), status


# ---------- query ----------
@sessions_bp.get("")
@login_required
def get_sessions():
    args = request.args
    rows = list_sessions(
        current_caller(),
        student_id=int_field(args, "student_id", required=False),
        teacher_id=int_field(args, "teacher_id", required=False),
        status=args.get("status") or None,
        date_from=timestamp_field(args["from"], "from") if args.get("from") else None,
        date_to=timestamp_field(args["to"], "to") if args.get("to") else None,
    )
    return jsonify(sessions=[session_to_dict(s) for s in rows]), 200


@sessions_bp.get("/<int:session_id>")
@login_required
def get_session(session_id: int):
    session = lifecycle.load_session_for(current_caller(), session_id)
    return jsonify(session=session_to_dict(session)), 200


# ---------- TEACHER/ADMIN: book one class ----------
@sessions_bp.post("")
@login_required
def create_session():
    data = _body()
    result = booking.book_session(
        current_caller(),
        student_id=int_field(data, "student_id"),
        scheduled_at=timestamp_field(data.get("scheduled_at"), "scheduled_at"),
        duration_minutes=data.get("duration_minutes"),
        teacher_id=int_field(data, "teacher_id", required=False),
        meeting_link=_meeting_link(data),
        auto_create_meeting=bool_field(data, "auto_create_meeting", True),
    )
    return _booked_response(result)


# ---------- TEACHER/ADMIN: explicit list of dates ----------
@sessions_bp.post("/bulk")
@login_required
def create_bulk_sessions():
    data = _body()
    dates = data.get("sessions")
    if not isinstance(dates, list) or not dates:
        raise ValidationFailed("student_id and a non-empty sessions list of timestamps are required")
    result = booking.book_bulk(
        current_caller(),
        student_id=int_field(data, "student_id"),
        scheduled_ats=[timestamp_field(d, "sessions[]") for d in dates],
        duration_minutes=data.get("duration_minutes"),
        teacher_id=int_field(data, "teacher_id", required=False),
        meeting_link=_meeting_link(data),
        auto_create_meeting=bool_field(data, "auto_create_meeting", True),
    )
    return _booked_response(result, message=f"Successfully scheduled {len(result.sessions)} sessions")


# ---------- TEACHER/ADMIN: weekly series ----------
@sessions_bp.post("/recurring")
@login_required
def create_recurring_sessions():
    data = _body()
    result = booking.book_recurring(
        current_caller(),
        student_id=int_field(data, "student_id"),
        day_of_week=int_field(data, "day_of_week"),
        time_of_day=time_field(data.get("time"), "time"),
        start_date=date_field(data.get("start_date"), "start_date"),
        end_date=date_field(data.get("end_date"), "end_date", required=False),
        duration_minutes=data.get("duration_minutes"),
        teacher_id=int_field(data, "teacher_id", required=False),
        meeting_link=_meeting_link(data),
        auto_create_meeting=bool_field(data, "auto_create_meeting", True),
    )
    return _booked_response(result, message=f"Successfully scheduled {len(result.sessions)} sessions")


# ---------- lifecycle: cancel / complete / no_show / update_notes ----------
@sessions_bp.post("/<int:session_id>/action")
@login_required
def session_action(session_id: int):
    data = _body()
    action = data.get("action")
    if not action or not isinstance(action, str):
        raise ValidationFailed("action is required")
    for field in ("reason", "notes"):
        if data.get(field) is not None and not isinstance(data[field], str):
            raise ValidationFailed(f"{field} must be a string")
    session = lifecycle.perform_action(
        current_caller(),
        session_id,
        action.strip(),
        reason=data.get("reason"),
        notes=data.get("notes"),
    )
    return jsonify(success=True, session=session_to_dict(session)), 200
