from flask import Blueprint, request, jsonify, current_app, g

from models import db
from models.user import User, STUDENT_ROLE
from routes.serializers import user_to_dict
from security.password import hash_password, verify_password, password_problems
from security.session import create_session, revoke_session, revoke_all_sessions, issue_csrf_token
from utils.audit import log_event
from utils.auth_context import login_required
from utils.seed import grant_role

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= 255


@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    full_name = data.get("full_name")

    if not _is_valid_email(email):
        return jsonify(error="Invalid email"), 400
    problems = password_problems(password)
    if problems:
        return jsonify(error="Password does not meet policy", details=problems), 400
    if full_name is not None and (not isinstance(full_name, str) or len(full_name.strip()) > 120):
        return jsonify(error="Invalid full_name"), 400

    if User.query.filter_by(email=email).first():
        log_event("REGISTER_FAIL_EMAIL_EXISTS", metadata={"email": email})
        return jsonify(error="Email already registered"), 409

    user = User(email=email, password_hash=hash_password(password),
                full_name=full_name.strip() if full_name else None)
    db.session.add(user)
    db.session.flush()
    grant_role(user, STUDENT_ROLE)

    log_event("REGISTER_SUCCESS", user_id=user.id)
    return jsonify(message="Registered successfully", id=user.id), 201


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    user = User.query.filter_by(email=email).first()
    if not user or not verify_password(password, user.password_hash):
        log_event("LOGIN_FAIL", user_id=user.id if user else None, metadata={"email": email})
        return jsonify(error="Invalid credentials"), 401

    # Rotate: revoke any existing sessions for this user
    revoked_count = revoke_all_sessions(user.id)

    raw_token = create_session(user.id)
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "lessonslot_session")

    resp = jsonify(message="Login OK", user=user_to_dict(user))
    resp.set_cookie(
        cookie_name,
        raw_token,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=current_app.config.get("SESSION_LIFETIME_SECONDS", 8 * 60 * 60),
        path="/",
    )
    resp = issue_csrf_token(resp)

    log_event("LOGIN_SUCCESS", user_id=user.id, metadata={"revoked_sessions": revoked_count})
    return resp, 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(user_to_dict(g.user)), 200


@auth_bp.post("/logout")
@login_required
def logout():
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "lessonslot_session")
    revoke_session(request.cookies.get(cookie_name))
    log_event("LOGOUT", user_id=g.user.id)

    resp = jsonify(message="Logged out")
    resp.delete_cookie(cookie_name, path="/")
    return resp, 200
