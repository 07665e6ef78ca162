#!/usr/bin/env python3
"""
Batch processor for recurring payments.

Meant for cron or a platform scheduler: reconciles every due recurring payment
against the configured ledger database and prints a summary report.
"""

import argparse
import json
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

REPO_ROOT = Path(__file__).resolve().parents[1]
SERVICES_ROOT = REPO_ROOT / "services"
for path in (SERVICES_ROOT / "ledger-service" / "src", SERVICES_ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from sqlalchemy.orm import sessionmaker  # noqa: E402

from shared.observability.telemetry import configure_logging  # noqa: E402

from clock import FixedClock, SystemClock  # noqa: E402
from persistence.database import build_engine, init_db  # noqa: E402
from persistence.repository import SqlLedgerStore  # noqa: E402
from processing import ProcessSummary, RecurringPaymentProcessor  # noqa: E402
from settings import get_database_url  # noqa: E402


def build_report(summary: ProcessSummary, now: datetime, duration_seconds: float) -> Dict[str, Any]:
    return {
        "timestamp": now.isoformat(),
        "processed_payments": summary.processed_count,
        "created_expenses": [expense.to_dict() for expense in summary.created_expenses],
        "failures": [{"payment_id": f.payment_id, "error": f.error} for f in summary.failures],
        "duration_seconds": round(duration_seconds, 3),
    }


def run(database_url: str, now: Optional[datetime]) -> Dict[str, Any]:
    clock = FixedClock(now) if now else SystemClock()
    engine = build_engine(database_url)
    init_db(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)

    started = time.perf_counter()
    try:
        with factory() as session:
            summary = RecurringPaymentProcessor(SqlLedgerStore(session, clock), clock).process_all()
    finally:
        engine.dispose()
    return build_report(summary, clock.now(), time.perf_counter() - started)


def main() -> None:
    parser = argparse.ArgumentParser(description="Materialize expenses for every due recurring payment")
    parser.add_argument("--db-url", default=None, help="SQLAlchemy URL (default: LEDGER_DB_URL or the local SQLite file)")
    parser.add_argument("--now", type=datetime.fromisoformat, default=None, help="Reconcile as of this ISO datetime")
    parser.add_argument("--output", type=Path, help="Write the JSON report to this file")

    args = parser.parse_args()
    configure_logging("ledger-batch")

    report = run(args.db_url or get_database_url(), args.now)

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        with open(args.output, "w") as f:
            json.dump(report, f, indent=2)
        print(f"Report saved to: {args.output}")

    print("=" * 60)
    print("Recurring Payment Processing")
    print("=" * 60)
    print(f"As of: {report['timestamp']}")
    print(f"Payments processed: {report['processed_payments']}")
    print(f"Expenses created: {len(report['created_expenses'])}")
    print(f"Failures: {len(report['failures'])}")
    print("=" * 60)

    # Exit with error code if any payment failed so the scheduler retries/alerts
    if report["failures"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
