"""Exceptions raised by the settlement services."""

from __future__ import annotations

from typing import Iterable


class SettlementError(RuntimeError):
    """Base class for settlement failures that map to client errors."""


class SettlementValidationError(SettlementError):
    """Raised when a request combination is not valid."""


class SettlementNotFoundError(SettlementError):
    """Raised when an entity is missing or belongs to another tenant."""


class SettlementConflictError(SettlementError):
    """Raised when an existing period blocks the creation of a new one."""

    def __init__(self, message: str, *, existing_status: str | None = None) -> None:
        super().__init__(message)
        self.existing_status = existing_status


class SettlementStateError(SettlementError):
    """Raised when an operation is not allowed in the period's current state."""

    def __init__(self, message: str, *, current: str, required: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.current = current
        self.required = tuple(required)


class CostAllocationError(SettlementError):
    """Raised when the costs of a settlement cannot be allocated to operator funds."""
