from models.db import db
from utils.timeutil import utcnow

SUBSCRIPTION_STATUSES = ("active", "paused", "cancelled", "expired", "pending")


class Subscription(db.Model):
    __tablename__ = "subscriptions"

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default="pending")
    starts_at = db.Column(db.DateTime, nullable=False)
    ends_at = db.Column(db.DateTime, nullable=False)

    # Only the quota ledger writes sessions_used; 0 <= sessions_used <= sessions_total
    sessions_total = db.Column(db.Integer, nullable=False, default=0)
    sessions_used = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint("sessions_used >= 0", name="ck_subscriptions_used_nonneg"),
        db.CheckConstraint("sessions_used <= sessions_total", name="ck_subscriptions_used_le_total"),
    )

    @property
    def sessions_remaining(self) -> int:
        return max(self.sessions_total - self.sessions_used, 0)

    def is_usable(self, now=None) -> bool:
        now = now or utcnow()
        return self.status == "active" and self.ends_at >= now
