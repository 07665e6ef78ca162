"""Persistence primitives for the ledger service."""

from persistence.database import (
    DB_URL_ENV_VAR,
    build_engine,
    get_engine,
    get_session_factory,
    init_db,
)
from persistence.memory_store import MemoryLedgerStore
from persistence.models import Base, BudgetRecord, ExpenseRecord, RecurringPaymentRecord
from persistence.repository import SqlLedgerStore
from persistence.store import LedgerStore

__all__ = [
    "Base",
    "BudgetRecord",
    "DB_URL_ENV_VAR",
    "ExpenseRecord",
    "LedgerStore",
    "MemoryLedgerStore",
    "RecurringPaymentRecord",
    "SqlLedgerStore",
    "build_engine",
    "get_engine",
    "get_session_factory",
    "init_db",
]
