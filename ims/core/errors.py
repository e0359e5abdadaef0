# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Domain error taxonomy.

Raised by the service layer, never caught there; the HTTP layer maps each
kind to a stable status code and error code so callers can tell "nothing to
show" apart from "not allowed right now" and "not your incident".
"""


class IMSError(Exception):
    """Base class for every error surfaced to callers."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class NotFoundError(IMSError):
    status_code = 404
    code = "not_found"


class InvalidTransitionError(IMSError):
    status_code = 409
    code = "invalid_transition"

    def __init__(self, current, target, message: str = ""):
        self.current = current
        self.target = target
        super().__init__(
            message or f"Cannot transition from '{_value(current)}' to '{_value(target)}'"
        )


class ForbiddenError(IMSError):
    status_code = 403
    code = "forbidden"


class ValidationError(IMSError):
    status_code = 422
    code = "validation_error"


class AuditIntegrityError(IMSError):
    status_code = 409
    code = "audit_integrity_failed"


def _value(status) -> str:
    return getattr(status, "value", status)
