from .health import health_bp
from .auth import auth_bp
from .sessions import sessions_bp
from .availability import availability_bp
from .subscriptions import subscriptions_bp
from .admin import admin_bp
from .cron import cron_bp
