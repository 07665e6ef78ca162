"""Entry points that trigger reconciliation: registration and batch processing."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Tuple

from shared.observability.privacy import hash_payload

from clock import Clock, SystemClock
from errors import LedgerError
from ledger_model import Expense, RecurringPayment
from persistence.store import LedgerStore
from reconciler import DEFAULT_PAYMENT_LOCKS, BacklogReconciler, PaymentLocks, ReconcileResult
from schemas import RecurringPaymentCreate, RecurringPaymentUpdate, changed_fields, parse_payload

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PaymentFailure:
    payment_id: int
    error: str


@dataclass(slots=True)
class ProcessSummary:
    processed_count: int = 0
    created_expenses: List[Expense] = field(default_factory=list)
    failures: List[PaymentFailure] = field(default_factory=list)


def due_since(store: LedgerStore, now: datetime) -> List[RecurringPayment]:
    """Active payments whose cursor has arrived, oldest backlog first."""
    due = store.list_active_recurring_payments_due_by(now.date())
    return sorted(due, key=lambda payment: (payment.next_due_date, payment.id))


class RecurringPaymentProcessor:
    """Trigger surface used by the HTTP layer and the periodic scheduler."""

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock | None = None,
        locks: PaymentLocks | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._locks = locks or DEFAULT_PAYMENT_LOCKS
        self._reconciler = BacklogReconciler(store, self._clock, self._locks)

    def register(
        self,
        payload: RecurringPaymentCreate | Mapping[str, Any],
        now: datetime | None = None,
    ) -> Tuple[RecurringPayment, List[Expense]]:
        """
        Create a recurring payment and immediately catch up its backlog.

        Payments registered as paused are stored without reconciliation; their
        backlog is picked up by batch processing once they are resumed.
        """

        data = parse_payload(RecurringPaymentCreate, payload)
        payment = self._store.create_recurring_payment(
            description=data.description,
            category=data.category,
            amount=data.amount,
            frequency=data.frequency,
            start_date=data.start_date,
            is_active=data.is_active,
        )
        logger.info(
            {
                "event": "recurring_payment_registered",
                "payment_id": payment.id,
                "description_hash": hash_payload(payment.description),
                "frequency": payment.frequency.value,
                "start_date": payment.start_date.isoformat(),
                "is_active": payment.is_active,
            }
        )
        if not payment.is_active:
            return payment, []

        result = self._reconciler.reconcile(payment, now or self._clock.now())
        return self._store.get_recurring_payment(payment.id), result.created_expenses

    def reconcile(self, payment_id: int, now: datetime | None = None) -> ReconcileResult:
        payment = self._store.get_recurring_payment(payment_id)
        return self._reconciler.reconcile(payment, now or self._clock.now())

    def process_all(self, now: datetime | None = None) -> ProcessSummary:
        """
        Reconcile every due payment, one after another.

        A failure on one payment is recorded and the batch moves on; that
        payment's cursor stays put so the next run retries it.
        """

        now = now or self._clock.now()
        summary = ProcessSummary()
        for payment in due_since(self._store, now):
            try:
                result = self._reconciler.reconcile(payment, now)
            except Exception as exc:
                event = {
                    "event": "recurring_payment_failed",
                    "payment_id": payment.id,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                }
                if isinstance(exc, LedgerError):
                    logger.error(event)
                else:
                    logger.exception(event)
                summary.failures.append(PaymentFailure(payment_id=payment.id, error=str(exc)))
                continue
            summary.processed_count += 1
            summary.created_expenses.extend(result.created_expenses)

        logger.info(
            {
                "event": "recurring_payments_processed",
                "now": now.isoformat(),
                "processed_count": summary.processed_count,
                "created_count": len(summary.created_expenses),
                "failure_count": len(summary.failures),
            }
        )
        return summary

    def update(
        self,
        payment_id: int,
        payload: RecurringPaymentUpdate | Mapping[str, Any],
    ) -> RecurringPayment:
        """
        Apply user edits. The cursor is only touched when a later start date
        would leave it behind the start of the schedule.
        """

        fields = changed_fields(parse_payload(RecurringPaymentUpdate, payload))
        current = self._store.get_recurring_payment(payment_id)
        start_date = fields.get("start_date")
        if start_date is not None and current.next_due_date < start_date:
            fields["next_due_date"] = start_date
        if not fields:
            return current
        return self._store.update_recurring_payment(payment_id, **fields)

    def set_active(self, payment_id: int, active: bool) -> RecurringPayment:
        payment = self._store.update_recurring_payment(payment_id, is_active=active)
        logger.info({"event": "recurring_payment_toggled", "payment_id": payment_id, "is_active": active})
        return payment

    def delete(self, payment_id: int) -> None:
        """Remove the schedule; expenses it already materialized are kept."""
        with self._locks.hold(payment_id):
            self._store.delete_recurring_payment(payment_id)
        self._locks.discard(payment_id)
        logger.info({"event": "recurring_payment_deleted", "payment_id": payment_id})
