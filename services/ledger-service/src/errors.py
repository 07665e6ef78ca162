"""Domain exceptions shared by the stores, the reconciler, and the HTTP layer."""

from __future__ import annotations


class LedgerError(RuntimeError):
    """Base class for every failure the ledger surfaces to callers."""


class ValidationError(LedgerError):
    """Raised when payment/expense/budget input is malformed."""

    def __init__(self, message: str, errors: list[dict] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class NotFoundError(LedgerError):
    """Raised when an operation addresses an id the store does not hold."""

    def __init__(self, entity: str, entity_id: int) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class StoreError(LedgerError):
    """Raised when the underlying persistence layer fails."""
