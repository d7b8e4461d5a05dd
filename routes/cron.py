import hmac

from flask import Blueprint, current_app, jsonify, request

from services.reminders import send_due_reminders

cron_bp = Blueprint("cron", __name__, url_prefix="/cron")


def _authorized() -> bool:
    secret = current_app.config.get("CRON_SECRET")
    if not secret:
        return False
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return False
    return hmac.compare_digest(header[len("Bearer "):], secret)


@cron_bp.post("/send-reminders")
def send_reminders():
    if not _authorized():
        return jsonify(error="Unauthorized"), 401
    result = send_due_reminders()
    return jsonify(success=True, **result), 200
