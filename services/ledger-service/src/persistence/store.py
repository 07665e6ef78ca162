"""Capability interface every ledger backend implements."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, List, Protocol, runtime_checkable

from ledger_model import Budget, Expense, Frequency, RecurringPayment


@runtime_checkable
class LedgerStore(Protocol):
    """
    Persistence contract consumed by the reconciler and the HTTP layer.

    Implementations must make successful writes visible to subsequent reads in
    the same process, raise `NotFoundError` for unknown ids without side
    effects, and wrap backend failures in `StoreError`. The reconciliation test
    suite runs against every implementation.
    """

    name: str

    # Expenses
    def list_expenses(self) -> List[Expense]:
        """Return every expense, newest date first."""
        ...

    def get_expense(self, expense_id: int) -> Expense:
        ...

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
        ...

    def update_expense(self, expense_id: int, **fields: Any) -> Expense:
        ...

    def delete_expense(self, expense_id: int) -> None:
        ...

    def list_expenses_for_recurring_payment(self, payment_id: int) -> List[Expense]:
        ...

    # Budgets
    def list_budgets(self) -> List[Budget]:
        ...

    def get_budget(self, budget_id: int) -> Budget:
        ...

    def find_budget(self, category: str, month: str) -> Budget | None:
        ...

    def create_budget(self, *, category: str, limit: Decimal, month: str) -> Budget:
        ...

    def update_budget(self, budget_id: int, **fields: Any) -> Budget:
        ...

    # Recurring payments
    def list_recurring_payments(self) -> List[RecurringPayment]:
        """Return every recurring payment ordered by (next_due_date, id)."""
        ...

    def get_recurring_payment(self, payment_id: int) -> RecurringPayment:
        ...

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
        """Persist a payment whose cursor starts at `start_date`."""
        ...

    def update_recurring_payment(self, payment_id: int, **fields: Any) -> RecurringPayment:
        ...

    def delete_recurring_payment(self, payment_id: int) -> None:
        ...

    def list_active_recurring_payments_due_by(self, due_by: date) -> List[RecurringPayment]:
        """Active payments with next_due_date <= due_by, ordered by (next_due_date, id)."""
        ...


EXPENSE_FIELDS = frozenset({"description", "category", "amount", "date"})
BUDGET_FIELDS = frozenset({"category", "limit", "month"})
RECURRING_PAYMENT_FIELDS = frozenset(
    {"description", "category", "amount", "frequency", "start_date", "next_due_date", "is_active"}
)


def check_fields(entity: str, fields: dict[str, Any], allowed: frozenset[str]) -> None:
    unknown = sorted(set(fields) - allowed)
    if unknown:
        raise ValueError(f"Cannot update {entity} fields: {', '.join(unknown)}")
