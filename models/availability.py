from models.db import db
from utils.timeutil import utcnow


class TeacherAvailability(db.Model):
    """Recurring weekly window; display only, not enforced when booking."""
    __tablename__ = "teacher_availability"

    id = db.Column(db.Integer, primary_key=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    day_of_week = db.Column(db.Integer, nullable=False)  # 0=Sunday .. 6=Saturday
    start_time = db.Column(db.Time, nullable=False)      # wall clock in SCHOOL_TIMEZONE
    end_time = db.Column(db.Time, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("teacher_id", "day_of_week", "start_time", "end_time", name="uq_teacher_window"),
        db.CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_availability_dow"),
    )
