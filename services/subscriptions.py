"""Admin provisioning of subscriptions. Payment integration is handled elsewhere;
this is the operational path for granting and adjusting plans."""
from models import db
from models.subscription import Subscription, SUBSCRIPTION_STATUSES
from models.user import User
from services.errors import NotFound, ValidationFailed
from services.quota_ledger import get_active_subscription
from utils.audit import log_event


def create_subscription(admin_id: int, student_id: int, sessions_total: int, starts_at, ends_at, status="active"):
    if db.session.get(User, student_id) is None:
        raise NotFound("Student not found")
    if isinstance(sessions_total, bool) or not isinstance(sessions_total, int) or sessions_total <= 0:
        raise ValidationFailed("sessions_total must be a positive integer")
    if ends_at <= starts_at:
        raise ValidationFailed("ends_at must be after starts_at")
    if status not in SUBSCRIPTION_STATUSES:
        raise ValidationFailed(f"status must be one of {', '.join(SUBSCRIPTION_STATUSES)}")

    sub = Subscription(
        student_id=student_id,
        status=status,
        starts_at=starts_at,
        ends_at=ends_at,
        sessions_total=sessions_total,
        sessions_used=0,
    )
    db.session.add(sub)
    db.session.commit()
    log_event(
        "SUBSCRIPTION_CREATE", user_id=admin_id, entity="subscription", entity_id=sub.id,
        metadata={"student_id": student_id, "sessions_total": sessions_total, "status": status},
    )
    return sub


def set_status(admin_id: int, subscription_id: int, status: str):
    if status not in SUBSCRIPTION_STATUSES:
        raise ValidationFailed(f"status must be one of {', '.join(SUBSCRIPTION_STATUSES)}")
    sub = db.session.get(Subscription, subscription_id)
    if sub is None:
        raise NotFound("Subscription not found")
    previous = sub.status
    sub.status = status
    db.session.commit()
    log_event(
        "SUBSCRIPTION_STATUS", user_id=admin_id, entity="subscription", entity_id=sub.id,
        metadata={"from": previous, "to": status},
    )
    return sub


def list_subscriptions(student_id=None):
    q = Subscription.query
    if student_id is not None:
        q = q.filter_by(student_id=student_id)
    return q.order_by(Subscription.created_at.desc(), Subscription.id.desc()).all()


def current_for(student_id: int):
    return get_active_subscription(student_id)
