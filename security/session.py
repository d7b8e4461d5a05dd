import hashlib
import hmac
import secrets
from datetime import timedelta
from flask import request, current_app, jsonify

from models import db
from models.auth_session import AuthSession
from utils.timeutil import utcnow


def _hash_token(token: str) -> str:
    # SHA-256 is fine for hashing random session tokens
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _client_ip():
    return request.headers.get("X-Forwarded-For", request.remote_addr)


def create_session(user_id: int) -> str:
    """
    Creates a server-side session and returns the RAW token (to set as cookie).
    Only the hash is stored in DB.
    """
    raw_token = secrets.token_urlsafe(32)

    lifetime = current_app.config.get("SESSION_LIFETIME_SECONDS", 28800)
    row = AuthSession(
        user_id=user_id,
        token_hash=_hash_token(raw_token),
        expires_at=utcnow() + timedelta(seconds=lifetime),
        ip=_client_ip(),
        user_agent=(request.headers.get("User-Agent") or "")[:255],
    )
    db.session.add(row)
    db.session.commit()
    return raw_token


def get_session_from_request():
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "lessonslot_session")
    raw_token = request.cookies.get(cookie_name)
    if not raw_token:
        return None

    now = utcnow()
    sess = (
        AuthSession.query
        .filter_by(token_hash=_hash_token(raw_token), revoked=False)
        .first()
    )
    if not sess:
        return None

    # Absolute expiry
    if sess.expires_at <= now:
        return None

    # Idle timeout
    idle_seconds = current_app.config.get("IDLE_TIMEOUT_SECONDS", 1800)
    last_seen = sess.last_seen_at or sess.created_at
    if (last_seen + timedelta(seconds=idle_seconds)) <= now:
        return None

    sess.last_seen_at = now
    db.session.commit()
    return sess


def revoke_session(raw_token: str) -> bool:
    if not raw_token:
        return False
    sess = AuthSession.query.filter_by(token_hash=_hash_token(raw_token)).first()
    if not sess:
        return False
    sess.revoked = True
    db.session.commit()
    return True



def revoke_all_sessions(user_id: int) -> int:
    sessions = AuthSession.query.filter_by(user_id=user_id, revoked=False).all()
    for s in sessions:
        s.revoked = True
    db.session.commit()
    return len(sessions)


# ---------- CSRF (double-submit cookie) ----------

def issue_csrf_token(resp):
    token = secrets.token_urlsafe(32)
    resp.set_cookie(
        current_app.config.get("CSRF_COOKIE_NAME", "csrf_token"),
        token,
        httponly=False,  # must be readable by client JS
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        path="/",
    )
    return resp


def require_csrf():
    cookie_token = request.cookies.get(current_app.config.get("CSRF_COOKIE_NAME", "csrf_token"))
    header_token = request.headers.get(current_app.config.get("CSRF_HEADER_NAME", "X-CSRF-Token"))
    if not cookie_token or not header_token or not hmac.compare_digest(cookie_token, header_token):
        return jsonify(error="CSRF validation failed"), 403
    return None