"""
Backlog reconciliation for recurring payments.

Given a payment and the current time, the reconciler walks every occurrence
from the payment's cursor through today, materializes one expense for each
occurrence that does not already have one, and moves the cursor one period
past the last occurrence it looked at.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterator, List

from shared.observability.privacy import hash_payload

from clock import Clock, SystemClock
from duplicate_guard import is_already_materialized
from ledger_model import BACKLOG_MARKER, LIVE_MARKER, Expense, RecurringPayment
from occurrences import advance, occurrences
from persistence.store import LedgerStore

logger = logging.getLogger(__name__)


class PaymentLocks:
    """Per-payment mutexes so one payment is never reconciled by two callers at once."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = defaultdict(threading.Lock)

    @contextmanager
    def hold(self, payment_id: int) -> Iterator[None]:
        with self._guard:
            lock = self._locks[payment_id]
        with lock:
            yield

    def discard(self, payment_id: int) -> None:
        """Forget the lock of a payment that no longer exists."""
        with self._guard:
            self._locks.pop(payment_id, None)

    def __contains__(self, payment_id: object) -> bool:
        with self._guard:
            return payment_id in self._locks


# Shared by every reconciler in the process; stores are created per request.
DEFAULT_PAYMENT_LOCKS = PaymentLocks()


@dataclass(slots=True)
class ReconcileResult:
    payment_id: int
    next_due_date: date
    created_expenses: List[Expense] = field(default_factory=list)


def describe_occurrence(description: str, occurrence: date, today: date) -> str:
    marker = BACKLOG_MARKER if occurrence < today else LIVE_MARKER
    return f"{description} {marker}"


class BacklogReconciler:
    def __init__(
        self,
        store: LedgerStore,
        clock: Clock | None = None,
        locks: PaymentLocks | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._locks = locks or DEFAULT_PAYMENT_LOCKS

    def reconcile(self, payment: RecurringPayment, now: datetime | None = None) -> ReconcileResult:
        """
        Materialize every missing occurrence of `payment` up to `now`.

        The stored payment is re-read under the payment's lock so a caller that
        waited on a concurrent reconciliation starts from the advanced cursor.
        A store failure stops the loop and propagates; expenses created before
        it stay committed and the cursor is left where it was, so a retry
        resumes from the same occurrence and skips what already exists.
        """

        now = now or self._clock.now()
        today = now.date()

        with self._locks.hold(payment.id):
            current = self._store.get_recurring_payment(payment.id)
            cursor = max(current.next_due_date, current.start_date)
            existing = self._store.list_expenses()

            created: List[Expense] = []
            skipped = 0
            last_considered: date | None = None
            for occurrence in occurrences(current.frequency, cursor, today):
                last_considered = occurrence
                if is_already_materialized(existing, current.description, occurrence, current.id):
                    skipped += 1
                    continue
                created.append(
                    self._store.create_expense(
                        description=describe_occurrence(current.description, occurrence, today),
                        category=current.category,
                        amount=current.amount,
                        date=occurrence,
                        recurring_payment_id=current.id,
                        occurrence_date=occurrence,
                    )
                )

            next_due_date = advance(current.frequency, last_considered) if last_considered else cursor
            self._store.update_recurring_payment(current.id, next_due_date=next_due_date)

        logger.info(
            {
                "event": "recurring_payment_reconciled",
                "payment_id": current.id,
                "description_hash": hash_payload(current.description),
                "frequency": current.frequency.value,
                "cursor": cursor.isoformat(),
                "next_due_date": next_due_date.isoformat(),
                "created_count": len(created),
                "skipped_count": skipped,
            }
        )
        return ReconcileResult(payment_id=current.id, next_due_date=next_due_date, created_expenses=created)
