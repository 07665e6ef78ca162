from datetime import date, datetime
from decimal import Decimal
from typing import Any

import pytest

from errors import NotFoundError, StoreError, ValidationError
from processing import RecurringPaymentProcessor, due_since
from reconciler import PaymentLocks

NOW = datetime(2024, 4, 10, 9, 30)


class FailingDescriptionStore:
    """Fails every expense creation whose description starts with `prefix`."""

    def __init__(self, inner, prefix: str, error: Exception | None = None) -> None:
        self._inner = inner
        self._prefix = prefix
        self._error = error or StoreError("constraint violated")

    def create_expense(self, **kwargs: Any):
        if kwargs["description"].startswith(self._prefix):
            raise self._error
        return self._inner.create_expense(**kwargs)

    def __getattr__(self, name: str):
        return getattr(self._inner, name)


def netflix_payload(**overrides: Any) -> dict[str, Any]:
    payload = {
        "description": "Netflix",
        "category": "Intrattenimento",
        "amount": "12.99",
        "frequency": "monthly",
        "start_date": "2024-01-10",
    }
    payload.update(overrides)
    return payload


def test_register_materializes_backlog_immediately(store, clock):
    processor = RecurringPaymentProcessor(store, clock)

    payment, created = processor.register(netflix_payload())

    assert [e.date for e in created] == [date(2024, 1, 10), date(2024, 2, 10), date(2024, 3, 10), date(2024, 4, 10)]
    assert created[-1].description == "Netflix (Automatic)"
    assert payment.next_due_date == date(2024, 5, 10)
    assert payment.amount == Decimal("12.99")


def test_register_paused_payment_skips_backlog(store, clock):
    processor = RecurringPaymentProcessor(store, clock)

    payment, created = processor.register(netflix_payload(is_active=False))

    assert created == []
    assert payment.is_active is False
    assert payment.next_due_date == date(2024, 1, 10)


@pytest.mark.parametrize(
    "overrides",
    [
        {"amount": "0"},
        {"amount": "-5.00"},
        {"amount": "1.999"},
        {"frequency": "daily"},
        {"description": ""},
        {"description": "x" * 101},
        {"category": ""},
        {"start_date": "not-a-date"},
    ],
)
def test_register_rejects_invalid_input_before_touching_store(store, clock, overrides):
    processor = RecurringPaymentProcessor(store, clock)

    with pytest.raises(ValidationError) as exc_info:
        processor.register(netflix_payload(**overrides))

    assert exc_info.value.errors
    assert store.list_recurring_payments() == []
    assert store.list_expenses() == []


def test_process_all_with_nothing_due_returns_empty_summary(store, clock):
    summary = RecurringPaymentProcessor(store, clock).process_all(NOW)

    assert summary.processed_count == 0
    assert summary.created_expenses == []
    assert summary.failures == []


def test_process_all_catches_up_and_is_idempotent(store, clock):
    payment = store.create_recurring_payment(
        description="Palestra",
        category="Salute",
        amount=Decimal("40.00"),
        frequency="monthly",
        start_date=date(2024, 2, 1),
    )
    processor = RecurringPaymentProcessor(store, clock)

    first = processor.process_all(NOW)
    second = processor.process_all(NOW)

    assert first.processed_count == 1
    assert [e.date for e in first.created_expenses] == [date(2024, 2, 1), date(2024, 3, 1), date(2024, 4, 1)]
    assert second.processed_count == 0
    assert second.created_expenses == []
    assert store.get_recurring_payment(payment.id).next_due_date == date(2024, 5, 1)


def test_due_since_orders_oldest_backlog_first_and_skips_inactive(store, clock):
    def create(description: str, start: date, active: bool = True):
        return store.create_recurring_payment(
            description=description,
            category="Bollette",
            amount=Decimal("10.00"),
            frequency="monthly",
            start_date=start,
            is_active=active,
        )

    later = create("Luce", date(2024, 3, 1))
    earliest = create("Gas", date(2024, 1, 5))
    tie = create("Acqua", date(2024, 3, 1))
    create("Vecchio abbonamento", date(2020, 1, 1), active=False)
    create("Futuro", date(2024, 12, 1))

    due = due_since(store, NOW)

    assert [p.id for p in due] == [earliest.id, later.id, tie.id]


def test_paused_payment_is_skipped_until_resumed(store, clock):
    processor = RecurringPaymentProcessor(store, clock)
    payment, _ = processor.register(netflix_payload(start_date="2024-04-10"))

    processor.set_active(payment.id, False)
    paused_summary = processor.process_all(datetime(2024, 7, 15))
    processor.set_active(payment.id, True)
    resumed_summary = processor.process_all(datetime(2024, 7, 15))

    assert paused_summary.processed_count == 0
    assert [e.date for e in resumed_summary.created_expenses] == [date(2024, 5, 10), date(2024, 6, 10), date(2024, 7, 10)]


@pytest.mark.parametrize(
    "error",
    [StoreError("constraint violated"), ValueError("'quarterly' is not a valid Frequency")],
    ids=["store-error", "unexpected-error"],
)
def test_one_failing_payment_does_not_abort_the_batch(store, clock, error):
    for description in ("Gym", "Rent"):
        store.create_recurring_payment(
            description=description,
            category="Altro",
            amount=Decimal("100.00"),
            frequency="monthly",
            start_date=date(2024, 3, 1),
        )
    gym, rent = sorted(store.list_recurring_payments(), key=lambda p: p.id)

    summary = RecurringPaymentProcessor(FailingDescriptionStore(store, "Gym", error), clock).process_all(NOW)

    assert summary.processed_count == 1
    assert [(f.payment_id, f.error) for f in summary.failures] == [(gym.id, str(error))]
    assert {e.description for e in summary.created_expenses} == {"Rent (Automatic - Backlog)"}
    assert store.get_recurring_payment(gym.id).next_due_date == date(2024, 3, 1)
    assert store.get_recurring_payment(rent.id).next_due_date == date(2024, 5, 1)


def test_update_keeps_cursor_ahead_of_start_date(store, clock):
    processor = RecurringPaymentProcessor(store, clock)
    payment, _ = processor.register(netflix_payload(start_date="2024-06-01"))

    moved = processor.update(payment.id, {"start_date": "2024-08-01", "amount": "15.49"})

    assert moved.start_date == date(2024, 8, 1)
    assert moved.next_due_date == date(2024, 8, 1)
    assert moved.amount == Decimal("15.49")


def test_update_with_no_fields_returns_payment_unchanged(store, clock):
    processor = RecurringPaymentProcessor(store, clock)
    payment, _ = processor.register(netflix_payload())

    assert processor.update(payment.id, {}) == store.get_recurring_payment(payment.id)


def test_delete_keeps_materialized_expenses(store, clock):
    processor = RecurringPaymentProcessor(store, clock)
    payment, created = processor.register(netflix_payload())

    processor.delete(payment.id)

    assert len(store.list_expenses()) == len(created) == 4
    with pytest.raises(NotFoundError):
        store.get_recurring_payment(payment.id)
    with pytest.raises(NotFoundError):
        processor.delete(payment.id)


def test_delete_releases_the_payment_lock(store, clock):
    locks = PaymentLocks()
    processor = RecurringPaymentProcessor(store, clock, locks)
    payment, _ = processor.register(netflix_payload())
    assert payment.id in locks

    processor.delete(payment.id)

    assert payment.id not in locks
