from flask import Blueprint, jsonify, g, request

from models import db
from models.user import User, ROLE_PRECEDENCE
from routes.parsing import int_field, timestamp_field
from routes.serializers import subscription_to_dict, user_to_dict
from security.rbac import require_roles
from services import subscriptions
from services.errors import NotFound, ValidationFailed
from utils.audit import log_event
from utils.seed import grant_role

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


@admin_bp.post("/subscriptions")
@require_roles("ADMIN")
def create_subscription():
    data = request.get_json(silent=True) or {}
    sub = subscriptions.create_subscription(
        g.user.id,
        student_id=int_field(data, "student_id"),
        sessions_total=int_field(data, "sessions_total"),
        starts_at=timestamp_field(data.get("starts_at"), "starts_at"),
        ends_at=timestamp_field(data.get("ends_at"), "ends_at"),
        status=data.get("status") or "active",
    )
    return jsonify(subscription=subscription_to_dict(sub)), 201


@admin_bp.get("/subscriptions")
@require_roles("ADMIN")
def list_subscriptions():
    rows = subscriptions.list_subscriptions(int_field(request.args, "student_id", required=False))
    return jsonify(subscriptions=[subscription_to_dict(s) for s in rows]), 200


@admin_bp.post("/subscriptions/<int:subscription_id>/status")
@require_roles("ADMIN")
def update_subscription_status(subscription_id: int):
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if not isinstance(status, str) or not status:
        raise ValidationFailed("status is required")
    sub = subscriptions.set_status(g.user.id, subscription_id, status.strip().lower())
    return jsonify(subscription=subscription_to_dict(sub)), 200


@admin_bp.post("/users/<int:user_id>/roles")
@require_roles("ADMIN")
def add_user_role(user_id: int):
    data = request.get_json(silent=True) or {}
    role = (data.get("role") or "").strip().upper()
    if role not in ROLE_PRECEDENCE:
        raise ValidationFailed(f"role must be one of {', '.join(ROLE_PRECEDENCE)}")

    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")

    granted = grant_role(user, role)
    if granted:
        log_event("ROLE_GRANTED", user_id=g.user.id, entity="user", entity_id=user.id, metadata={"role": role})
    return jsonify(user=user_to_dict(user), granted=granted), 200
