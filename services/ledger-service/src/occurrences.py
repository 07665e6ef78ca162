"""
Calendar arithmetic for recurring payments.

Monthly and yearly steps use `relativedelta`, which clamps the day to the last
day of the target month. Each step starts from the previous occurrence, so a
clamp carries forward: Jan 31 -> Feb 29 -> Mar 29 (2024).
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from errors import ValidationError
from ledger_model import Frequency

_STEPS = {
    Frequency.WEEKLY: timedelta(days=7),
    Frequency.MONTHLY: relativedelta(months=+1),
    Frequency.YEARLY: relativedelta(years=+1),
}


def coerce_frequency(value: Frequency | str) -> Frequency:
    try:
        return Frequency(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown frequency '{value}'") from exc


def advance(frequency: Frequency | str, current: date) -> date:
    """Return the occurrence one period after `current`."""
    return current + _STEPS[coerce_frequency(frequency)]


class Occurrences(Iterable[date]):
    """
    Ordered due dates from `start` (inclusive) through `upper_bound` (inclusive).

    Iterating twice starts over from `start`; the bounds are never mutated.
    """

    def __init__(self, frequency: Frequency | str, start: date, upper_bound: date) -> None:
        self.frequency = coerce_frequency(frequency)
        self.start = start
        self.upper_bound = upper_bound

    def __iter__(self) -> Iterator[date]:
        current = self.start
        while current <= self.upper_bound:
            yield current
            current = advance(self.frequency, current)

    def __repr__(self) -> str:
        return f"Occurrences({self.frequency.value!r}, {self.start!s}, {self.upper_bound!s})"


def occurrences(frequency: Frequency | str, start: date, upper_bound: date) -> Occurrences:
    return Occurrences(frequency, start, upper_bound)
