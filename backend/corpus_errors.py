"""
Retyrment - Engine Errors
=========================
Structured error kinds raised by the reconciliation engine.

The engine never returns display strings for failures. Callers (the API,
or any UI) translate `kind` and `details` into user-facing messages.
"""

from typing import Any, Dict, Optional


class ReconciliationError(Exception):
    """Base class for failures the engine reports to its caller."""

    kind = "reconciliation_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.kind,
            "message": self.message,
            "details": self.details,
        }


class InvalidInputError(ReconciliationError):
    """A mandatory input (e.g. the retirement projection) is missing or unusable."""

    kind = "invalid_input"


class TimelineIntegrityError(ReconciliationError):
    """
    The upstream projection does not form a continuous yearly timeline.

    Raised for non-monotonic years, duplicates, or gaps in the merged
    sequence. It is a data fault in the projection and is not recovered
    locally.
    """

    kind = "timeline_integrity"
