"""Pytest configuration for ledger-service tests.

Ensures the service's own src directory and the shared services package are on
sys.path, and provides a `store` fixture that runs each test against both the
in-memory and the SQLite-backed ledger.
"""

import sys
from datetime import datetime
from pathlib import Path

import pytest

SERVICE_SRC = Path(__file__).resolve().parents[1] / "src"
SERVICES_ROOT = Path(__file__).resolve().parents[2]

for path in (SERVICE_SRC, SERVICES_ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from sqlalchemy.orm import sessionmaker  # noqa: E402

from clock import FixedClock  # noqa: E402
from persistence.database import build_engine, init_db  # noqa: E402
from persistence.memory_store import MemoryLedgerStore  # noqa: E402
from persistence.repository import SqlLedgerStore  # noqa: E402

NOW = datetime(2024, 4, 10, 9, 30)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def sql_engine(tmp_path: Path):
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(sql_engine):
    return sessionmaker(bind=sql_engine, autoflush=False, expire_on_commit=False, future=True)


@pytest.fixture(params=["memory", "sql"])
def store(request, clock: FixedClock):
    if request.param == "memory":
        yield MemoryLedgerStore(clock)
        return

    factory = request.getfixturevalue("session_factory")
    with factory() as session:
        yield SqlLedgerStore(session, clock)
