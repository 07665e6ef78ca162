from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date
from decimal import Decimal
from itertools import count
from typing import Any, Dict, List

from clock import Clock, SystemClock
from errors import NotFoundError
from ledger_model import Budget, Expense, Frequency, RecurringPayment, decode_active, quantize_amount
from persistence.store import BUDGET_FIELDS, EXPENSE_FIELDS, RECURRING_PAYMENT_FIELDS, check_fields


class MemoryLedgerStore:
    """
    Transient ledger backed by id-indexed dicts.

    Records are frozen dataclasses, so callers can never mutate stored state.
    Id assignment and insertion happen under one lock per store instance.
    """

    name = "memory"

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._lock = threading.RLock()
        self._expenses: Dict[int, Expense] = {}
        self._budgets: Dict[int, Budget] = {}
        self._payments: Dict[int, RecurringPayment] = {}
        self._expense_ids = count(1)
        self._budget_ids = count(1)
        self._payment_ids = count(1)

    # Expenses

    def list_expenses(self) -> List[Expense]:
        with self._lock:
            expenses = list(self._expenses.values())
        return sorted(expenses, key=lambda e: (e.date, e.id), reverse=True)

    def get_expense(self, expense_id: int) -> Expense:
        with self._lock:
            expense = self._expenses.get(expense_id)
        if expense is None:
            raise NotFoundError("expense", expense_id)
        return expense

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
        with self._lock:
            expense = Expense(
                id=next(self._expense_ids),
                description=description,
                category=category,
                amount=quantize_amount(amount),
                date=date,
                created_at=self._clock.now(),
                recurring_payment_id=recurring_payment_id,
                occurrence_date=occurrence_date,
            )
            self._expenses[expense.id] = expense
        return expense

    def update_expense(self, expense_id: int, **fields: Any) -> Expense:
        check_fields("expense", fields, EXPENSE_FIELDS)
        if "amount" in fields:
            fields["amount"] = quantize_amount(fields["amount"])
        with self._lock:
            updated = replace(self.get_expense(expense_id), **fields)
            self._expenses[expense_id] = updated
        return updated

    def delete_expense(self, expense_id: int) -> None:
        with self._lock:
            if self._expenses.pop(expense_id, None) is None:
                raise NotFoundError("expense", expense_id)

    def list_expenses_for_recurring_payment(self, payment_id: int) -> List[Expense]:
        with self._lock:
            owned = [e for e in self._expenses.values() if e.recurring_payment_id == payment_id]
        return sorted(owned, key=lambda e: (e.date, e.id))

    # Budgets

    def list_budgets(self) -> List[Budget]:
        with self._lock:
            return [self._budgets[key] for key in sorted(self._budgets)]

    def get_budget(self, budget_id: int) -> Budget:
        with self._lock:
            budget = self._budgets.get(budget_id)
        if budget is None:
            raise NotFoundError("budget", budget_id)
        return budget

    def find_budget(self, category: str, month: str) -> Budget | None:
        for budget in self.list_budgets():
            if budget.category == category and budget.month == month:
                return budget
        return None

    def create_budget(self, *, category: str, limit: Decimal, month: str) -> Budget:
        with self._lock:
            budget = Budget(
                id=next(self._budget_ids),
                category=category,
                limit=quantize_amount(limit),
                month=month,
            )
            self._budgets[budget.id] = budget
        return budget

    def update_budget(self, budget_id: int, **fields: Any) -> Budget:
        check_fields("budget", fields, BUDGET_FIELDS)
        if "limit" in fields:
            fields["limit"] = quantize_amount(fields["limit"])
        with self._lock:
            updated = replace(self.get_budget(budget_id), **fields)
            self._budgets[budget_id] = updated
        return updated

    # Recurring payments

    def list_recurring_payments(self) -> List[RecurringPayment]:
        with self._lock:
            payments = list(self._payments.values())
        return sorted(payments, key=lambda p: (p.next_due_date, p.id))

    def get_recurring_payment(self, payment_id: int) -> RecurringPayment:
        with self._lock:
            payment = self._payments.get(payment_id)
        if payment is None:
            raise NotFoundError("recurring_payment", payment_id)
        return payment

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
        with self._lock:
            payment = RecurringPayment(
                id=next(self._payment_ids),
                description=description,
                category=category,
                amount=quantize_amount(amount),
                frequency=Frequency(frequency),
                start_date=start_date,
                next_due_date=start_date,
                is_active=is_active,
                created_at=self._clock.now(),
            )
            self._payments[payment.id] = payment
        return payment

    def update_recurring_payment(self, payment_id: int, **fields: Any) -> RecurringPayment:
        check_fields("recurring_payment", fields, RECURRING_PAYMENT_FIELDS)
        if "amount" in fields:
            fields["amount"] = quantize_amount(fields["amount"])
        if "frequency" in fields:
            fields["frequency"] = Frequency(fields["frequency"])
        if "is_active" in fields:
            fields["is_active"] = decode_active(fields["is_active"])
        with self._lock:
            updated = replace(self.get_recurring_payment(payment_id), **fields)
            self._payments[payment_id] = updated
        return updated

    def delete_recurring_payment(self, payment_id: int) -> None:
        with self._lock:
            if self._payments.pop(payment_id, None) is None:
                raise NotFoundError("recurring_payment", payment_id)

    def list_active_recurring_payments_due_by(self, due_by: date) -> List[RecurringPayment]:
        return [
            payment
            for payment in self.list_recurring_payments()
            if payment.is_active and payment.next_due_date <= due_by
        ]
