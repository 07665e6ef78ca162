from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

BACKLOG_MARKER = "(Automatic - Backlog)"
LIVE_MARKER = "(Automatic)"

MAX_DESCRIPTION_LENGTH = 100

_CENTS = Decimal("0.01")


class Frequency(str, Enum):
    """How often a recurring payment falls due."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


def quantize_amount(value: Decimal | str | float | int) -> Decimal:
    """Normalize a monetary value to two fractional digits."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP)


def encode_active(flag: bool) -> str:
    return "true" if flag else "false"


def decode_active(raw: str | bool) -> bool:
    if isinstance(raw, bool):
        return raw
    return raw.strip().lower() == "true"


@dataclass(frozen=True, slots=True)
class Expense:
    id: int
    description: str
    category: str
    amount: Decimal
    date: date
    created_at: datetime
    # Ownership key, only set on expenses materialized from a recurring payment.
    recurring_payment_id: int | None = None
    occurrence_date: date | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "category": self.category,
            "amount": f"{self.amount:.2f}",
            "date": self.date.isoformat(),
            "created_at": self.created_at.isoformat(),
            "recurring_payment_id": self.recurring_payment_id,
            "occurrence_date": self.occurrence_date.isoformat() if self.occurrence_date else None,
        }


@dataclass(frozen=True, slots=True)
class Budget:
    id: int
    category: str
    limit: Decimal
    month: str  # YYYY-MM

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "limit": f"{self.limit:.2f}",
            "month": self.month,
        }


@dataclass(frozen=True, slots=True)
class RecurringPayment:
    """
    A payment that repeats on a fixed calendar schedule.

    `next_due_date` is the reconciliation cursor: every occurrence before it has
    already been materialized as an Expense, and it is never older than
    `start_date`.
    """

    id: int
    description: str
    category: str
    amount: Decimal
    frequency: Frequency
    start_date: date
    next_due_date: date
    is_active: bool
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "category": self.category,
            "amount": f"{self.amount:.2f}",
            "frequency": self.frequency.value,
            "start_date": self.start_date.isoformat(),
            "next_due_date": self.next_due_date.isoformat(),
            "is_active": encode_active(self.is_active),
            "created_at": self.created_at.isoformat(),
        }
