# tests/conftest.py

from datetime import timedelta

import pytest

from app import create_app
from config import Config
from integrations import Providers
from integrations.google_calendar import CalendarEvent
from integrations.google_docs import ClassDocument, document_url
from models import db
from models.subscription import Subscription
from models.user import User
from security.password import hash_password
from security.rbac import Caller
from utils.seed import grant_role, seed_roles
from utils.timeutil import utcnow

PASSWORD = "correct-horse-1"


class TestConfig(Config):
    __test__ = False

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SIDE_EFFECT_MODE = "inline"
    CSRF_ENABLED = False
    BCRYPT_ROUNDS = 4
    BULK_SIDE_EFFECT_DELAY_SECONDS = 0
    CRON_SECRET = "test-cron-secret"
    SCHOOL_TIMEZONE = "Europe/Madrid"
    EXTERNAL_CALENDAR_FAILURE_POLICY = "warn"
    GOOGLE_CLIENT_ID = None
    GOOGLE_REFRESH_TOKEN = None
    LOG_LEVEL = "WARNING"


# --- Fake collaborators ---
class FakeCalendar:
    def __init__(self):
        self.busy = {}
        self.fail_checks = False
        self.fail_create = False
        self.created = []
        self.deleted = []

    def busy_blocks(self, email, start, end):
        if self.fail_checks:
            raise RuntimeError("calendar unreachable")
        return [(s, e) for s, e in self.busy.get(email, []) if s < end and e > start]

    def check_availability(self, email, start, end):
        return not self.busy_blocks(email, start, end)

    def create_event(self, summary, attendees, start, end, conferencing=True, description=None):
        if self.fail_create:
            raise RuntimeError("calendar unreachable")
        n = len(self.created) + 1
        self.created.append({"summary": summary, "attendees": list(attendees), "start": start, "end": end,
                             "description": description})
        return CalendarEvent(
            event_id=f"evt-{n}",
            meeting_link=f"https://meet.google.com/fake-{n}",
            html_link=f"https://calendar.google.com/event?eid=evt-{n}",
        )

    def delete_event(self, event_id):
        self.deleted.append(event_id)
        return True


class FakeDocuments:
    def __init__(self):
        self.fail = False
        self.created = []

    def create_class_document(self, student_name, level, class_date, parent_folder_id, index_doc_id=None):
        if self.fail:
            raise RuntimeError("drive quota exceeded")
        doc_id = f"doc-{len(self.created) + 1}"
        self.created.append({"student_name": student_name, "level": level, "folder": parent_folder_id})
        return ClassDocument(document_id=doc_id, document_link=document_url(doc_id))


class FakeNotifier:
    def __init__(self):
        self.confirmations = []
        self.cancellations = []
        self.reminders = []
        self.deliver = True

    def send_booking_confirmation(self, student, teacher, details):
        self.confirmations.append((student, teacher, details))
        return self.deliver

    def send_cancellation(self, student, teacher, details):
        self.cancellations.append((student, teacher, details))
        return self.deliver

    def send_reminder(self, recipient, details):
        self.reminders.append((recipient, details))
        return self.deliver


@pytest.fixture
def providers():
    return Providers(calendar=FakeCalendar(), documents=FakeDocuments(), notifier=FakeNotifier())


@pytest.fixture
def app(providers):
    app = create_app(TestConfig, providers=providers)
    with app.app_context():
        db.create_all()
        seed_roles()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


# --- Factories ---
@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(role="STUDENT", email=None, full_name=None, **extra):
        counter["n"] += 1
        user = User(
            email=email or f"{role.lower()}{counter['n']}@example.com",
            password_hash=hash_password(PASSWORD),
            full_name=full_name or f"{role.title()} {counter['n']}",
            **extra,
        )
        db.session.add(user)
        db.session.commit()
        grant_role(user, role)
        return user

    return _make


@pytest.fixture
def make_subscription(app):
    def _make(student, total=10, used=0, status="active", ends_in_days=60):
        now = utcnow()
        sub = Subscription(
            student_id=student.id,
            status=status,
            starts_at=now - timedelta(days=1),
            ends_at=now + timedelta(days=ends_in_days),
            sessions_total=total,
            sessions_used=used,
        )
        db.session.add(sub)
        db.session.commit()
        return sub

    return _make


@pytest.fixture
def teacher(make_user):
    return make_user("TEACHER", email="teacher@example.com", full_name="Laura Teacher")


@pytest.fixture
def student(make_user):
    return make_user("STUDENT", email="student@example.com", full_name="Sam Student",
                     drive_folder_id="folder-1")


@pytest.fixture
def admin(make_user):
    return make_user("ADMIN", email="admin@example.com", full_name="Ada Admin")


@pytest.fixture
def login(app):
    """Returns a test client already logged in as `user`."""
    def _login(user):
        c = app.test_client()
        resp = c.post("/auth/login", json={"email": user.email, "password": PASSWORD})
        assert resp.status_code == 200, resp.get_json()
        return c

    return _login


def caller_for(user):
    return Caller(user_id=user.id, role=user.role)


def future_slot(days=7, hour=10, minute=0):
    """A naive-UTC datetime `days` from now at hour:minute."""
    return (utcnow() + timedelta(days=days)).replace(hour=hour, minute=minute, second=0, microsecond=0)


def ts(dt):
    return dt.isoformat() + "Z"
