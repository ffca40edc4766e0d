"""
Typed failures for the capture pipeline.

Every fatal failure carries an HTTP status, a distinct machine-readable reason and a
retryable flag, so a client can choose between an upgrade prompt, a retry button
and a generic error without parsing messages. Optional persistence steps do not
raise; they produce PersistenceWarning records instead.
"""

from dataclasses import asdict, dataclass
from typing import Any, Literal

UpstreamKind = Literal["auth", "rate_limit", "timeout", "empty", "invalid_output", "failure"]

_UPSTREAM_STATUS: dict[str, int] = {
    "auth": 401,
    "rate_limit": 429,
    "timeout": 504,
    "empty": 502,
    "invalid_output": 502,
    "failure": 502,
}


class DaylightError(Exception):
    status_code: int = 500
    reason: str = "internal_error"
    retryable: bool = False

    def __init__(self, message: str, *, kind: str | None = None, **details: Any):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.details = details

    def to_response(self) -> dict[str, Any]:
        body = {
            "detail": self.message,
            "reason": self.reason,
            "retryable": self.retryable,
        }
        if self.kind:
            body["kind"] = self.kind
        if self.details:
            body.update(self.details)
        return body


class Unauthorized(DaylightError):
    status_code = 401
    reason = "unauthorized"


class LimitReached(DaylightError):
    """Usage gate denial. Fatal to the request, says nothing about account health."""

    status_code = 403
    reason = "limit_reached"


class InputValidationError(DaylightError):
    status_code = 400
    reason = "validation_error"


class NotFoundError(DaylightError):
    """Row missing or owned by someone else; the two cases are indistinguishable."""

    status_code = 404
    reason = "not_found"


class UpstreamError(DaylightError):
    reason = "upstream_error"

    def __init__(self, message: str, *, kind: UpstreamKind = "failure", **details: Any):
        super().__init__(message, kind=kind, **details)
        self.status_code = _UPSTREAM_STATUS[kind]
        self.retryable = kind != "auth"


class ServiceUnavailable(DaylightError):
    """The server cannot take background work right now (shutting down)."""

    status_code = 503
    reason = "service_unavailable"
    retryable = True


class PersistenceError(DaylightError):
    """A required insert failed (parent events, suggested evidence, communications)."""

    status_code = 500
    reason = "persistence_error"
    retryable = True


@dataclass
class PersistenceWarning:
    """An optional child insert that failed and was skipped."""

    step: str
    message: str
    rows: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
