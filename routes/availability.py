from flask import Blueprint, current_app, jsonify, request

from routes.parsing import date_field, int_field, time_field
from services import availability
from services.errors import ValidationFailed
from utils.auth_context import current_caller, login_required
from utils.timeutil import iso

availability_bp = Blueprint("availability", __name__, url_prefix="/availability")


def _window_to_dict(w):
    return {
        "id": w.id,
        "teacher_id": w.teacher_id,
        "day_of_week": w.day_of_week,
        "start_time": w.start_time.strftime("%H:%M"),
        "end_time": w.end_time.strftime("%H:%M"),
        "is_active": w.is_active,
    }


@availability_bp.get("")
@login_required
def get_windows():
    rows = availability.list_windows(current_caller(), int_field(request.args, "teacher_id", required=False))
    return jsonify(availability=[_window_to_dict(w) for w in rows]), 200


@availability_bp.post("")
@login_required
def add_window():
    data = request.get_json(silent=True) or {}
    window, created = availability.add_window(
        current_caller(),
        day_of_week=int_field(data, "day_of_week"),
        start=time_field(data.get("start_time"), "start_time"),
        end=time_field(data.get("end_time"), "end_time"),
        teacher_id=int_field(data, "teacher_id", required=False),
    )
    if not created:
        return jsonify(message="Availability window already exists", availability=_window_to_dict(window)), 200
    return jsonify(message="Availability window added", availability=_window_to_dict(window)), 201


@availability_bp.delete("/<int:window_id>")
@login_required
def remove_window(window_id: int):
    availability.remove_window(current_caller(), window_id)
    return jsonify(message="Availability window removed"), 200


@availability_bp.get("/slots")
@login_required
def get_slots():
    args = request.args
    teacher_id = int_field(args, "teacher_id")
    day = date_field(args.get("date"), "date")
    duration = int_field(args, "duration", required=False) or current_app.config.get("DEFAULT_SESSION_MINUTES", 60)
    if duration > current_app.config.get("MAX_SESSION_MINUTES", 240):
        raise ValidationFailed("duration is too long")

    slots = availability.available_slots(teacher_id, day, duration)
    return jsonify(
        teacher_id=teacher_id,
        date=day.isoformat(),
        duration_minutes=duration,
        slots=[{"start": iso(s.start), "end": iso(s.end)} for s in slots],
    ), 200
