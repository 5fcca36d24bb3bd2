"""Domain error taxonomy for the matching core.

``ValidationError`` and ``PolicyDenied`` are caller-facing and never worth
retrying. ``TransientStorageError`` (see ``repositories.exceptions``) is safe
to retry with the same idempotency key. ``IsolationViolation`` is a privacy
defect and is always logged before it propagates.
"""

from __future__ import annotations

import logging
from typing import Optional

from .models.quota import DenialReason

LOGGER = logging.getLogger("uvicorn.error")


class GlimpseError(Exception):
    """Base class for all domain errors."""


class ValidationError(GlimpseError):
    """Malformed request: reject immediately, never retry."""


class SelfLike(ValidationError):
    def __init__(self) -> None:
        super().__init__("a profile cannot like itself")


class InvalidContext(ValidationError):
    pass


class PolicyDenied(GlimpseError):
    """Terminal for the current attempt; carries a machine-checkable reason."""

    def __init__(
        self,
        reason: DenialReason,
        message: str = "",
        *,
        retry_after_ms: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> None:
        super().__init__(message or reason.value)
        self.reason = reason
        self.retry_after_ms = retry_after_ms
        self.limit = limit

    def as_detail(self) -> dict:
        detail = {"code": self.reason.value, "message": str(self)}
        if self.retry_after_ms is not None:
            detail["retryAfterMs"] = self.retry_after_ms
        if self.limit is not None:
            detail["limit"] = self.limit
        return detail


class CooldownActive(PolicyDenied):
    def __init__(
        self,
        retry_after_ms: Optional[int] = None,
        message: str = "this profile was liked too recently",
    ) -> None:
        super().__init__(DenialReason.COOLDOWN_ACTIVE, message, retry_after_ms=retry_after_ms)


class QuotaDenied(PolicyDenied):
    pass


class NotFound(GlimpseError):
    """Generic not-found. The message never says which of several lookups failed."""

    def __init__(self, what: str = "resource") -> None:
        super().__init__(f"{what} not found")


class NotPermitted(GlimpseError):
    """The caller may not perform this transition on this resource."""


class IsolationViolation(GlimpseError):
    """An operation tried to cross a profile boundary."""

    def __init__(self, operation: str, *profile_ids: str) -> None:
        super().__init__(f"isolation violation in {operation}")
        self.operation = operation
        self.profile_ids = profile_ids
        LOGGER.critical(
            "Isolation violation during %s involving profiles=%s; operation aborted",
            operation,
            ",".join(profile_ids),
        )


__all__ = [
    "CooldownActive",
    "GlimpseError",
    "InvalidContext",
    "IsolationViolation",
    "NotFound",
    "NotPermitted",
    "PolicyDenied",
    "QuotaDenied",
    "SelfLike",
    "ValidationError",
]
