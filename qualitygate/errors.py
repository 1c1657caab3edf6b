from __future__ import annotations


class QualityGateError(Exception):
    """Base for errors surfaced to callers with a stable code and HTTP status."""

    code = "INTERNAL_ERROR"
    http_status = 500

    def __init__(self, message: str, *, code: str | None = None, retryable: bool = False) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.retryable = retryable

    def to_dict(self) -> dict[str, object]:
        return {"code": self.code, "message": self.message, "retryable": self.retryable}


class ConstraintViolation(QualityGateError):
    code = "CONSTRAINT_VIOLATION"
    http_status = 409


class NotFound(QualityGateError):
    code = "NOT_FOUND"
    http_status = 404


class BadRequest(QualityGateError):
    code = "BAD_REQUEST"
    http_status = 400


class InvalidState(QualityGateError):
    code = "INVALID_STATE"
    http_status = 409


class Forbidden(QualityGateError):
    code = "FORBIDDEN"
    http_status = 403
