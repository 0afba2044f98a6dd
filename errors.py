# errors.py
"""Error taxonomy for the reconciliation engine.

Per-resource errors (conflict, rejection, readiness failure/timeout) are
collected by the driver into the report. ManifestInvalid is the only one that
aborts a run, and it is raised before any network call.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ReconcileError(Exception):
    """Base class for every error raised by the engine."""

    def __init__(
        self,
        message: str,
        ref: Optional[Any] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.ref = ref
        self.cause = cause

    def __str__(self) -> str:
        result = self.message
        if self.ref is not None:
            result = f"{self.ref}: {result}"
        if self.cause is not None:
            result += f" (caused by: {self.cause})"
        return result

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "ref": str(self.ref) if self.ref is not None else None,
        }


class ManifestInvalid(ReconcileError):
    """Malformed input manifest (missing kind/name, bad apiVersion)."""


class ApplyConflict(ReconcileError):
    """Field-ownership conflict on a non-forced apply."""


class ApplyRejected(ReconcileError):
    """Server-side semantic rejection (schema, admission, missing dependency)."""


class ReadinessFailed(ReconcileError):
    """The resource reported an explicit negative condition."""


class ReadinessTimeout(ReconcileError):
    """No terminal condition before the deadline."""


class TransportTransient(ReconcileError):
    """Network or server-side error that may go away on its own."""

    def __init__(
        self,
        message: str,
        ref: Optional[Any] = None,
        cause: Optional[BaseException] = None,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message, ref=ref, cause=cause)
        self.status = status
