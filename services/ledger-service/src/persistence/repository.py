"""Relational ledger store built on a SQLAlchemy session."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any, Iterator, List, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clock import Clock, SystemClock
from errors import NotFoundError, StoreError
from ledger_model import (
    Budget,
    Expense,
    Frequency,
    RecurringPayment,
    decode_active,
    encode_active,
    quantize_amount,
)
from persistence.models import BudgetRecord, ExpenseRecord, RecurringPaymentRecord
from persistence.store import BUDGET_FIELDS, EXPENSE_FIELDS, RECURRING_PAYMENT_FIELDS, check_fields

logger = logging.getLogger(__name__)

_Record = TypeVar("_Record", ExpenseRecord, BudgetRecord, RecurringPaymentRecord)


def _to_expense(record: ExpenseRecord) -> Expense:
    return Expense(
        id=record.id,
        description=record.description,
        category=record.category,
        amount=quantize_amount(record.amount),
        date=record.date,
        created_at=record.created_at,
        recurring_payment_id=record.recurring_payment_id,
        occurrence_date=record.occurrence_date,
    )


def _to_budget(record: BudgetRecord) -> Budget:
    return Budget(
        id=record.id,
        category=record.category,
        limit=quantize_amount(record.limit),
        month=record.month,
    )


def _to_payment(record: RecurringPaymentRecord) -> RecurringPayment:
    return RecurringPayment(
        id=record.id,
        description=record.description,
        category=record.category,
        amount=quantize_amount(record.amount),
        frequency=Frequency(record.frequency),
        start_date=record.start_date,
        next_due_date=record.next_due_date,
        is_active=decode_active(record.is_active),
        created_at=record.created_at,
    )


class SqlLedgerStore:
    """Thin repository that encapsulates persistence operations."""

    name = "sql"

    def __init__(self, db: Session, clock: Clock | None = None):
        self._db = db
        self._clock = clock or SystemClock()

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.error({"event": "store_failure", "operation": operation, "error": str(exc)})
            raise StoreError(f"{operation} failed: {exc}") from exc

    def _load(self, model: type[_Record], entity: str, record_id: int) -> _Record:
        # Refresh from the database so a cursor advanced by another session is seen.
        record = self._db.get(model, record_id, populate_existing=True)
        if record is None:
            raise NotFoundError(entity, record_id)
        return record

    def _commit(self, record: _Record) -> _Record:
        self._db.add(record)
        self._db.commit()
        self._db.refresh(record)
        return record

    # Expenses

    def list_expenses(self) -> List[Expense]:
        with self._guard("list_expenses"):
            stmt = select(ExpenseRecord).order_by(ExpenseRecord.date.desc(), ExpenseRecord.id.desc())
            return [_to_expense(record) for record in self._db.scalars(stmt)]

    def get_expense(self, expense_id: int) -> Expense:
        with self._guard("get_expense"):
            return _to_expense(self._load(ExpenseRecord, "expense", expense_id))

    def create_expense(
        self,
        *,
        description: str,
        category: str,
        amount: Decimal,
        date: date,
        recurring_payment_id: int | None = None,
        occurrence_date: date | None = None,
    ) -> Expense:
        record = ExpenseRecord(
            description=description,
            category=category,
            amount=quantize_amount(amount),
            date=date,
            created_at=self._clock.now(),
            recurring_payment_id=recurring_payment_id,
            occurrence_date=occurrence_date,
        )
        with self._guard("create_expense"):
            return _to_expense(self._commit(record))

    def update_expense(self, expense_id: int, **fields: Any) -> Expense:
        check_fields("expense", fields, EXPENSE_FIELDS)
        with self._guard("update_expense"):
            record = self._load(ExpenseRecord, "expense", expense_id)
            for key, value in fields.items():
                setattr(record, key, quantize_amount(value) if key == "amount" else value)
            return _to_expense(self._commit(record))

    def delete_expense(self, expense_id: int) -> None:
        with self._guard("delete_expense"):
            self._db.delete(self._load(ExpenseRecord, "expense", expense_id))
            self._db.commit()

    def list_expenses_for_recurring_payment(self, payment_id: int) -> List[Expense]:
        with self._guard("list_expenses_for_recurring_payment"):
            stmt = (
                select(ExpenseRecord)
                .where(ExpenseRecord.recurring_payment_id == payment_id)
                .order_by(ExpenseRecord.date, ExpenseRecord.id)
            )
            return [_to_expense(record) for record in self._db.scalars(stmt)]

    # Budgets

    def list_budgets(self) -> List[Budget]:
        with self._guard("list_budgets"):
            stmt = select(BudgetRecord).order_by(BudgetRecord.id)
            return [_to_budget(record) for record in self._db.scalars(stmt)]

    def get_budget(self, budget_id: int) -> Budget:
        with self._guard("get_budget"):
            return _to_budget(self._load(BudgetRecord, "budget", budget_id))

    def find_budget(self, category: str, month: str) -> Budget | None:
        with self._guard("find_budget"):
            stmt = (
                select(BudgetRecord)
                .where(BudgetRecord.category == category, BudgetRecord.month == month)
                .order_by(BudgetRecord.id)
                .limit(1)
            )
            record = self._db.scalars(stmt).first()
            return _to_budget(record) if record is not None else None

    def create_budget(self, *, category: str, limit: Decimal, month: str) -> Budget:
        record = BudgetRecord(category=category, limit=quantize_amount(limit), month=month)
        with self._guard("create_budget"):
            return _to_budget(self._commit(record))

    def update_budget(self, budget_id: int, **fields: Any) -> Budget:
        check_fields("budget", fields, BUDGET_FIELDS)
        with self._guard("update_budget"):
            record = self._load(BudgetRecord, "budget", budget_id)
            for key, value in fields.items():
                setattr(record, key, quantize_amount(value) if key == "limit" else value)
            return _to_budget(self._commit(record))

    # Recurring payments

    def list_recurring_payments(self) -> List[RecurringPayment]:
        with self._guard("list_recurring_payments"):
            stmt = select(RecurringPaymentRecord).order_by(
                RecurringPaymentRecord.next_due_date, RecurringPaymentRecord.id
            )
            return [_to_payment(record) for record in self._db.scalars(stmt)]

    def get_recurring_payment(self, payment_id: int) -> RecurringPayment:
        with self._guard("get_recurring_payment"):
            return _to_payment(self._load(RecurringPaymentRecord, "recurring_payment", payment_id))

    def create_recurring_payment(
        self,
        *,
        description: str,
        category: str,
        amount: Decimal,
        frequency: Frequency,
        start_date: date,
        is_active: bool = True,
    ) -> RecurringPayment:
        record = RecurringPaymentRecord(
            description=description,
            category=category,
            amount=quantize_amount(amount),
            frequency=Frequency(frequency).value,
            start_date=start_date,
            next_due_date=start_date,
            is_active=encode_active(is_active),
            created_at=self._clock.now(),
        )
        with self._guard("create_recurring_payment"):
            return _to_payment(self._commit(record))

    def update_recurring_payment(self, payment_id: int, **fields: Any) -> RecurringPayment:
        check_fields("recurring_payment", fields, RECURRING_PAYMENT_FIELDS)
        with self._guard("update_recurring_payment"):
            record = self._load(RecurringPaymentRecord, "recurring_payment", payment_id)
            for key, value in fields.items():
                if key == "amount":
                    value = quantize_amount(value)
                elif key == "frequency":
                    value = Frequency(value).value
                elif key == "is_active":
                    value = encode_active(decode_active(value))
                setattr(record, key, value)
            return _to_payment(self._commit(record))

    def delete_recurring_payment(self, payment_id: int) -> None:
        with self._guard("delete_recurring_payment"):
            self._db.delete(self._load(RecurringPaymentRecord, "recurring_payment", payment_id))
            self._db.commit()

    def list_active_recurring_payments_due_by(self, due_by: date) -> List[RecurringPayment]:
        with self._guard("list_active_recurring_payments_due_by"):
            stmt = (
                select(RecurringPaymentRecord)
                .where(
                    RecurringPaymentRecord.is_active == encode_active(True),
                    RecurringPaymentRecord.next_due_date <= due_by,
                )
                .order_by(RecurringPaymentRecord.next_due_date, RecurringPaymentRecord.id)
            )
            return [_to_payment(record) for record in self._db.scalars(stmt)]
