from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from ledger_model import BACKLOG_MARKER, LIVE_MARKER, Expense


def _owned_by(expense: Expense, payment_id: int | None, occurrence_date: date) -> bool:
    return (
        payment_id is not None
        and expense.recurring_payment_id == payment_id
        and expense.occurrence_date == occurrence_date
    )


def _matches_by_text(expense: Expense, recurring_description: str, occurrence_date: date) -> bool:
    if expense.recurring_payment_id is not None:
        return False
    description = expense.description
    return (
        expense.date == occurrence_date
        and recurring_description in description
        and (BACKLOG_MARKER in description or LIVE_MARKER in description)
    )


def is_already_materialized(
    existing_expenses: Iterable[Expense],
    recurring_description: str,
    occurrence_date: date,
    payment_id: int | None = None,
) -> bool:
    """
    Report whether an expense already exists for this occurrence.

    Expenses carrying an ownership key are matched exactly on
    (recurring_payment_id, occurrence_date). Expenses without one (imported or
    created before the key existed) fall back to the text heuristic: same date,
    description containing the payment's description and an automatic marker.
    A user-typed expense that happens to look like an automatic one is treated
    as materialized; that false positive is accepted.
    """

    for expense in existing_expenses:
        if _owned_by(expense, payment_id, occurrence_date):
            return True
        if _matches_by_text(expense, recurring_description, occurrence_date):
            return True
    return False
