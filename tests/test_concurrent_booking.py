import threading
from datetime import timedelta

import pytest

from app import create_app
from models import db
from models.class_session import ClassSession
from models.subscription import Subscription
from models.user import User
from security.password import hash_password
from security.rbac import Caller
from services import booking
from services.errors import QuotaExceeded
from utils.seed import grant_role, seed_roles
from utils.timeutil import utcnow

from conftest import PASSWORD, TestConfig, future_slot

THREADS = 6


@pytest.fixture
def file_app(tmp_path, providers):
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'race.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30}}

    app = create_app(FileConfig, providers=providers)
    with app.app_context():
        db.create_all()
        seed_roles()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _user(email, role, **extra):
    user = User(email=email, password_hash=hash_password(PASSWORD), full_name=email.split("@")[0], **extra)
    db.session.add(user)
    db.session.commit()
    grant_role(user, role)
    return user.id


def test_parallel_bookings_share_the_remaining_quota(file_app):
    with file_app.app_context():
        teacher_ids = [_user(f"teacher{i}@example.com", "TEACHER") for i in range(THREADS)]
        student_id = _user("student@example.com", "STUDENT")
        now = utcnow()
        sub = Subscription(student_id=student_id, status="active", starts_at=now, ends_at=now + timedelta(days=60),
                           sessions_total=5, sessions_used=2)
        db.session.add(sub)
        db.session.commit()
        sub_id = sub.id
        db.session.remove()

    start = future_slot(days=3, hour=11)
    barrier = threading.Barrier(THREADS, timeout=10)
    outcomes = []
    lock = threading.Lock()

    def book(teacher_id):
        with file_app.app_context():
            try:
                barrier.wait()
                booking.book_session(Caller(teacher_id, "TEACHER"), student_id, start)
                result = "booked"
            except QuotaExceeded:
                result = "quota_exceeded"
            except Exception as exc:  # surfaced by the assertion below
                result = repr(exc)
            finally:
                db.session.remove()
            with lock:
                outcomes.append(result)

    threads = [threading.Thread(target=book, args=(tid,)) for tid in teacher_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert sorted(outcomes) == ["booked"] * 3 + ["quota_exceeded"] * 3
    with file_app.app_context():
        assert db.session.get(Subscription, sub_id).sessions_used == 5
        assert ClassSession.query.filter_by(status="scheduled").count() == 3
