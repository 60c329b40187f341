"""Error taxonomy shared by the job engine and the tool surface."""
from __future__ import annotations

from typing import Any, Dict, List, Optional


class JobError(Exception):
    """Caller-facing failure translated into a structured error response."""

    code = "job_error"
    status_code = 400

    def __init__(self, message: str, *, details: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = list(details) if details else []

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = list(self.details)
        return payload


class ValidationError(JobError):
    code = "validation_error"
    status_code = 400


class NotFoundError(JobError):
    code = "not_found"
    status_code = 404


class InvalidStateError(JobError):
    code = "invalid_state"
    status_code = 409


class UpstreamError(JobError):
    """The generation service failed or returned an unusable response.

    Raised by the collaborator inside a worker and recorded on the job; it
    never reaches the caller of a status or save operation.
    """

    code = "upstream_error"
    status_code = 502


class PersistenceError(JobError):
    code = "io_error"
    status_code = 500


class UnavailableError(JobError):
    """The runner has been shut down and accepts no new work."""

    code = "unavailable"
    status_code = 503


class JobStateError(RuntimeError):
    """Illegal job status transition: an internal consistency bug."""


__all__ = [
    "InvalidStateError",
    "JobError",
    "JobStateError",
    "NotFoundError",
    "PersistenceError",
    "UnavailableError",
    "UpstreamError",
    "ValidationError",
]
