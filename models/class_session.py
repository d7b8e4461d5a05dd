from datetime import timedelta

from models.db import db
from utils.timeutil import utcnow

SESSION_STATUSES = ("scheduled", "completed", "cancelled", "no_show")


class ClassSession(db.Model):
    """One scheduled class between a student and a teacher."""
    __tablename__ = "class_sessions"

    id = db.Column(db.Integer, primary_key=True)

    subscription_id = db.Column(db.Integer, db.ForeignKey("subscriptions.id"), nullable=False, index=True)
    student_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    scheduled_at = db.Column(db.DateTime, nullable=False, index=True)  # naive UTC
    duration_minutes = db.Column(db.Integer, nullable=False, default=60)

    status = db.Column(db.String(20), nullable=False, default="scheduled", index=True)

    meeting_link = db.Column(db.String(500), nullable=True)
    calendar_event_id = db.Column(db.String(255), nullable=True)
    calendar_html_link = db.Column(db.String(500), nullable=True)
    document_id = db.Column(db.String(255), nullable=True)
    document_link = db.Column(db.String(500), nullable=True)

    teacher_notes = db.Column(db.Text, nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)
    cancelled_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reminder_sent = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    completed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    subscription = db.relationship("Subscription", backref=db.backref("sessions", lazy=True))
    student = db.relationship("User", foreign_keys=[student_id])
    teacher = db.relationship("User", foreign_keys=[teacher_id])

    __table_args__ = (
        db.CheckConstraint("duration_minutes > 0", name="ck_class_sessions_duration_pos"),
        db.Index("ix_class_sessions_teacher_time", "teacher_id", "scheduled_at"),
    )

    @property
    def ends_at(self):
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)
