"""Request-body coercion; every failure is a 400 ValidationFailed."""
from datetime import date, time

from services.errors import ValidationFailed
from utils.timeutil import parse_iso


def int_field(data: dict, name: str, required: bool = True):
    value = data.get(name)
    if value is None or value == "":
        if required:
            raise ValidationFailed(f"{name} is required")
        return None
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationFailed(f"{name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{name} must be an integer")


def timestamp_field(value, name: str):
    if value is None or value == "":
        raise ValidationFailed(f"{name} is required")
    try:
        return parse_iso(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"Invalid {name}. Use ISO 8601, e.g. 2026-02-20T10:00:00Z")


def date_field(value, name: str, required: bool = True):
    if value is None or value == "":
        if required:
            raise ValidationFailed(f"{name} is required")
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationFailed(f"Invalid {name}. Use YYYY-MM-DD")


def time_field(value, name: str):
    if not value:
        raise ValidationFailed(f"{name} is required")
    try:
        return time.fromisoformat(str(value))
    except ValueError:
        raise ValidationFailed(f"Invalid {name}. Use HH:MM")


def bool_field(data: dict, name: str, default: bool):
    value = data.get(name)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise ValidationFailed(f"{name} must be a boolean")
