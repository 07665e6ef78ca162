"""SQLAlchemy models for persisted expenses, budgets, and recurring payments."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, DateTime, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class ExpenseRecord(Base):
    """A single dated expense, entered by a user or materialized from a recurring payment."""

    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)

    # Deliberately not a ForeignKey: deleting a recurring payment keeps its expenses.
    recurring_payment_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    occurrence_date: Mapped[Optional[dt.date]] = mapped_column(Date, nullable=True)

    __table_args__ = (Index("ix_expenses_recurring_occurrence", "recurring_payment_id", "occurrence_date"),)


class BudgetRecord(Base):
    """Monthly spending limit for one category."""

    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    limit: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)  # YYYY-MM


class RecurringPaymentRecord(Base):
    """Schedule for a payment that repeats weekly, monthly, or yearly."""

    __tablename__ = "recurring_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    description: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    frequency: Mapped[str] = mapped_column(String(16), nullable=False)
    start_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    next_due_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    is_active: Mapped[str] = mapped_column(String(5), nullable=False, default="true")
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (Index("ix_recurring_payments_due", "is_active", "next_due_date"),)
