from .db import db
from .user import User, Role, user_roles
from .auth_session import AuthSession
from .audit_log import AuditLog
from .subscription import Subscription
from .class_session import ClassSession
from .availability import TeacherAvailability
