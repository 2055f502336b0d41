"""
Error taxonomy for the moderation core.

Caller-input faults (``ValidationError``, ``NotFoundError``) are flagged with
``is_client_error = True`` so an outer HTTP or command layer can map them to
4xx-style responses; everything else is a system fault.

Propagation rules:
- ``DecodeError`` is recovered per audit row and never aborts a batch.
- ``StorageError`` is raised after the failed transaction has been rolled back.
- ``EnforcementError`` is logged and reported on the escalation outcome; the
  ledger and audit trail are not rolled back.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ModerationError(Exception):
    """Base class for every error raised by strikewarden."""

    code: str = "INTERNAL_ERROR"
    is_client_error: bool = False

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the error body shape used by the API layer."""
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = dict(self.details)
        return body


class ValidationError(ModerationError):
    """Out-of-range amount, count, pagination or export parameter."""

    code = "VALIDATION_ERROR"
    is_client_error = True


class NotFoundError(ModerationError):
    """Unknown group, user or audit event."""

    code = "NOT_FOUND"
    is_client_error = True


class StorageError(ModerationError):
    """An atomic write failed and was rolled back."""

    code = "DATABASE_ERROR"


class DecodeError(ModerationError):
    """An audit payload could not be parsed into a known variant."""

    code = "DECODE_ERROR"


class EnforcementError(ModerationError):
    """An external enforcement call (mute, kick, ban, message) failed."""

    code = "ENFORCEMENT_ERROR"

    def __init__(self, message: str, *, action: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details=details)
        self.action = action
