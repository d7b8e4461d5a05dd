from functools import wraps
from flask import g, jsonify
from security.rbac import Caller
from security.session import get_session_from_request
from models import db
from models.user import User


def load_current_user():
    sess = get_session_from_request()
    if not sess:
        g.user = None
        g.session = None
        return
    g.session = sess
    g.user = db.session.get(User, sess.user_id)


def current_caller():
    user = getattr(g, "user", None)
    if user is None:
        return None
    return Caller(user_id=user.id, role=user.role)


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error="Authentication required"), 401
        if g.user.role is None:
            return jsonify(error="Forbidden"), 403
        return fn(*args, **kwargs)
    return wrapper
