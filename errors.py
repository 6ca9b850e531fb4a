"""
Error kinds raised by the result access and submission workflows.

Each error carries an HTTP status, a machine-readable ``reason`` and a human
message. The client relies on ``reason`` to pick its remediation screen
(retry PIN, pay fees, wait for publication), so denials are never collapsed
into one generic error.
"""


class ServiceError(Exception):
    status_code = 500
    default_reason = "server_error"

    def __init__(self, message: str, reason: str = None):
        super().__init__(message)
        self.message = message
        self.reason = reason or self.default_reason

    def to_dict(self):
        return {"message": self.message, "reason": self.reason}


class NotFound(ServiceError):
    status_code = 404
    default_reason = "not_found"


class Forbidden(ServiceError):
    status_code = 403
    default_reason = "forbidden"


class ValidationError(ServiceError):
    status_code = 400
    default_reason = "validation_error"


class InvalidRange(ServiceError):
    status_code = 400
    default_reason = "invalid_range"


class Conflict(ServiceError):
    status_code = 409
    default_reason = "stale_result"


class UnresolvedGrade(Exception):
    """No grading band contains the score."""

    def __init__(self, score):
        super().__init__(f"No grading band matches score {score}")
        self.score = score
