from __future__ import annotations

from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from .models import SoftWarning


class OvertimeError(Exception):
    """Base exception for overtime workflow failures."""


class ValidationError(OvertimeError):
    """Raised when input data is invalid or violates a request invariant."""


class InvalidTransition(ValidationError):
    """Raised when an operation is not legal in the request's current status."""


class PermissionDenied(OvertimeError):
    """Raised when the acting user lacks the role or ownership for an action."""


class RecordNotFound(OvertimeError):
    def __init__(self, record_id: str):
        super().__init__(f"Overtime request {record_id} not found")
        self.record_id = record_id


class ConfirmationRequired(OvertimeError):
    """Soft warnings were raised and the caller has not confirmed them."""

    def __init__(self, warnings: List[SoftWarning]):
        super().__init__("; ".join(w.message for w in warnings))
        self.warnings = list(warnings)


class PersistenceError(OvertimeError):
    """Raised when the record store reports a failed write."""
