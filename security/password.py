import bcrypt
from flask import current_app


def hash_password(plain_password: str) -> str:
    if not isinstance(plain_password, str) or len(plain_password) == 0:
        raise ValueError("Password must be a non-empty string")

    rounds = int(current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(plain_password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    if not plain_password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def password_problems(plain_password) -> list:
    """Registration rules; empty list means acceptable."""
    if not isinstance(plain_password, str):
        return ["Password must be a string"]
    problems = []
    min_len = int(current_app.config.get("PASSWORD_MIN_LEN", 8))
    if len(plain_password) < min_len:
        problems.append(f"Password must be at least {min_len} characters")
    # bcrypt silently truncates beyond 72 bytes
    if len(plain_password.encode("utf-8")) > 72:
        problems.append("Password must be at most 72 bytes")
    return problems
