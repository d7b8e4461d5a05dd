"""Business errors raised by the scheduling services.

Routes never build error responses for these by hand; the app-level handler
renders ``{"error": message, "code": code}`` with ``status_code``.
"""


class SchedulingError(Exception):
    status_code = 400
    code = "scheduling_error"

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        payload.update({k: v for k, v in self.details.items() if v is not None})
        return payload


class ValidationFailed(SchedulingError):
    code = "validation_failed"


class NoActiveSubscription(SchedulingError):
    code = "no_active_subscription"

    def __init__(self, message: str = "Student has no active subscription", **details):
        super().__init__(message, **details)


class QuotaExceeded(SchedulingError):
    code = "quota_exceeded"


class TooLateToCancel(SchedulingError):
    code = "too_late_to_cancel"


class InvalidTransition(SchedulingError):
    code = "invalid_transition"


class Forbidden(SchedulingError):
    status_code = 403
    code = "forbidden"

    def __init__(self, message: str = "Forbidden", **details):
        super().__init__(message, **details)


class NotFound(SchedulingError):
    status_code = 404
    code = "not_found"


class SchedulingConflict(SchedulingError):
    status_code = 409
    code = "conflict"


class ConcurrentModification(SchedulingError):
    status_code = 409
    code = "concurrent_modification"


class ExternalCalendarUnavailable(SchedulingError):
    status_code = 409
    code = "external_calendar_unavailable"
