import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as lessonslot.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "lessonslot.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "lessonslot_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 30 minutes
    IDLE_TIMEOUT_SECONDS = 30 * 60

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", "false")

    # Double-submit CSRF check on state-changing requests
    CSRF_ENABLED = True
    CSRF_COOKIE_NAME = "csrf_token"
    CSRF_HEADER_NAME = "X-CSRF-Token"
    CSRF_EXEMPT_PATHS = ("/auth/login", "/auth/register", "/health", "/cron/send-reminders")

    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
    PASSWORD_MIN_LEN = 8

    # Scheduling policy
    CANCEL_CUTOFF_HOURS = 24
    DEFAULT_SESSION_MINUTES = 60
    MAX_SESSION_MINUTES = 240
    MAX_BULK_SESSIONS = 60
    # Lost quota compare-and-swap attempts before a booking is rolled back
    QUOTA_RESERVE_ATTEMPTS = int(os.getenv("QUOTA_RESERVE_ATTEMPTS", "5"))
    SCHOOL_TIMEZONE = os.getenv("SCHOOL_TIMEZONE", "Europe/Madrid")

    # "warn": proceed with the internal check only; "block": refuse the booking
    EXTERNAL_CALENDAR_FAILURE_POLICY = os.getenv("EXTERNAL_CALENDAR_FAILURE_POLICY", "warn")

    # Side effects (documents, calendar, email) after a booking
    SIDE_EFFECT_MODE = os.getenv("SIDE_EFFECT_MODE", "thread")  # thread | inline
    SIDE_EFFECT_WORKERS = int(os.getenv("SIDE_EFFECT_WORKERS", "4"))
    BULK_SIDE_EFFECT_DELAY_SECONDS = float(os.getenv("BULK_SIDE_EFFECT_DELAY_SECONDS", "1.0"))

    # Google Calendar / Drive / Docs (OAuth refresh token of the school account)
    GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
    GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
    GOOGLE_REFRESH_TOKEN = os.getenv("GOOGLE_REFRESH_TOKEN")
    GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "primary")
    GOOGLE_TEMPLATE_DOC_ID = os.getenv("GOOGLE_TEMPLATE_DOC_ID")
    GOOGLE_HTTP_TIMEOUT = float(os.getenv("GOOGLE_HTTP_TIMEOUT", "15"))

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", "true")

    # Reminder job: sessions starting between 23h and 25h from now
    REMINDER_WINDOW_START_HOURS = 23
    REMINDER_WINDOW_END_HOURS = 25
    CRON_SECRET = os.getenv("CRON_SECRET")

    # Basic app settings
    DEBUG = False
