"""
Ledger Service records expenses and budgets and keeps recurring payments
materialized as dated expenses.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

SRC_DIR = Path(__file__).resolve().parent
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

SERVICES_ROOT = SRC_DIR.parents[1]
if str(SERVICES_ROOT) not in sys.path:
    sys.path.insert(0, str(SERVICES_ROOT))

from shared.observability.privacy import redact_fields
from shared.observability.telemetry import (
    bind_request_context,
    ensure_request_id,
    reset_request_context,
    setup_telemetry,
    traced,
)

from clock import Clock, SystemClock
from errors import NotFoundError, StoreError, ValidationError
from persistence.database import get_session_factory, init_db
from persistence.memory_store import MemoryLedgerStore
from persistence.repository import SqlLedgerStore
from persistence.store import LedgerStore
from processing import ProcessSummary, RecurringPaymentProcessor, due_since
from schemas import (
    BudgetCreate,
    BudgetUpdate,
    ExpenseCreate,
    ExpenseUpdate,
    RecurringPaymentCreate,
    RecurringPaymentUpdate,
    changed_fields,
)
from settings import LedgerSettings, LedgerSettingsError, load_ledger_settings

logger = logging.getLogger(__name__)

try:
    SETTINGS: LedgerSettings = load_ledger_settings()
except LedgerSettingsError as exc:
    logger.error("Failed to load ledger settings: %s", exc)
    raise

app = FastAPI(title="Ledger Service")
setup_telemetry(app, service_name="ledger-service")
app.state.clock = SystemClock()
app.state.memory_store = MemoryLedgerStore(app.state.clock)
app.state.scheduler_task = None


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    request_id = ensure_request_id(request)
    token = bind_request_context(request_id)
    try:
        response = await call_next(request)
        response.headers.setdefault("x-request-id", request_id)
        return response
    finally:
        reset_request_context(token)


app.add_middleware(
    CORSMiddleware,
    allow_origins=list(SETTINGS.cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)


def error_response(status_code: int, error_code: str, details: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error_code, "details": details},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]
    return error_response(400, "validation_error", errors)


@app.exception_handler(ValidationError)
async def ledger_validation_handler(_: Request, exc: ValidationError) -> JSONResponse:
    return error_response(400, "validation_error", exc.errors or str(exc))


@app.exception_handler(NotFoundError)
async def not_found_handler(_: Request, exc: NotFoundError) -> JSONResponse:
    return error_response(404, f"{exc.entity}_not_found", str(exc))


@app.exception_handler(StoreError)
async def store_error_handler(_: Request, exc: StoreError) -> JSONResponse:
    logger.error({"event": "store_error_response", "error": str(exc)})
    return error_response(500, "store_error", "The ledger store is unavailable.")


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_store(request: Request) -> Generator[LedgerStore, None, None]:
    """FastAPI dependency yielding the configured ledger backend."""
    clock = request.app.state.clock
    if SETTINGS.store_backend == "memory":
        yield request.app.state.memory_store
        return

    session = get_session_factory()()
    try:
        yield SqlLedgerStore(session, clock)
    finally:
        session.close()


def get_processor(
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> RecurringPaymentProcessor:
    return RecurringPaymentProcessor(store, clock)


def _summary_payload(summary: ProcessSummary) -> Dict[str, Any]:
    return {
        "processed": len(summary.created_expenses),
        "processed_payments": summary.processed_count,
        "expenses": [expense.to_dict() for expense in summary.created_expenses],
        "failures": [{"payment_id": f.payment_id, "error": f.error} for f in summary.failures],
    }


def _process_due_once() -> ProcessSummary:
    """Run one batch against a store built outside the request cycle."""
    clock: Clock = app.state.clock
    if SETTINGS.store_backend == "memory":
        return RecurringPaymentProcessor(app.state.memory_store, clock).process_all()

    session = get_session_factory()()
    try:
        return RecurringPaymentProcessor(SqlLedgerStore(session, clock), clock).process_all()
    finally:
        session.close()


async def _periodic_processing(interval_seconds: float) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            with traced("ledger.process_due", trigger="scheduler"):
                await run_in_threadpool(_process_due_once)
        except Exception as exc:
            logger.exception(
                {
                    "event": "scheduled_processing_failed",
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                }
            )


@app.on_event("startup")
async def on_startup() -> None:
    """Initialize persistence and catch up recurring payments before serving requests."""
    if SETTINGS.store_backend == "sql":
        init_db()
    if SETTINGS.process_on_startup:
        with traced("ledger.process_due", trigger="startup"):
            await run_in_threadpool(_process_due_once)
    if SETTINGS.process_interval_seconds > 0:
        app.state.scheduler_task = asyncio.create_task(_periodic_processing(SETTINGS.process_interval_seconds))


@app.on_event("shutdown")
async def on_shutdown() -> None:
    task: Optional[asyncio.Task] = app.state.scheduler_task
    if task is not None:
        task.cancel()
        app.state.scheduler_task = None


@app.get("/health")
def health_check() -> dict:
    return {"status": "ok", "service": "ledger-service", "store": SETTINGS.store_backend}


# ------------------------------
# Expenses
# ------------------------------


@app.get("/api/expenses")
def list_expenses(store: LedgerStore = Depends(get_store)) -> List[Dict[str, Any]]:
    return [expense.to_dict() for expense in store.list_expenses()]


@app.get("/api/expenses/{expense_id}")
def get_expense(expense_id: int, store: LedgerStore = Depends(get_store)) -> Dict[str, Any]:
    return store.get_expense(expense_id).to_dict()


@app.post("/api/expenses", status_code=201)
def create_expense(payload: ExpenseCreate, store: LedgerStore = Depends(get_store)) -> Dict[str, Any]:
    expense = store.create_expense(
        description=payload.description,
        category=payload.category,
        amount=payload.amount,
        date=payload.date,
    )
    logger.info({"event": "expense_created", **redact_fields(expense.to_dict())})
    return expense.to_dict()


@app.put("/api/expenses/{expense_id}")
def update_expense(
    expense_id: int,
    payload: ExpenseUpdate,
    store: LedgerStore = Depends(get_store),
) -> Dict[str, Any]:
    fields = changed_fields(payload)
    if not fields:
        return store.get_expense(expense_id).to_dict()
    return store.update_expense(expense_id, **fields).to_dict()


@app.delete("/api/expenses/{expense_id}", status_code=204)
def delete_expense(expense_id: int, store: LedgerStore = Depends(get_store)) -> Response:
    store.delete_expense(expense_id)
    return Response(status_code=204)


# ------------------------------
# Budgets
# ------------------------------


@app.get("/api/budgets")
def list_budgets(store: LedgerStore = Depends(get_store)) -> List[Dict[str, Any]]:
    return [budget.to_dict() for budget in store.list_budgets()]


@app.get("/api/budgets/lookup", response_model=None)
def lookup_budget(
    category: str,
    month: str,
    store: LedgerStore = Depends(get_store),
) -> Dict[str, Any] | JSONResponse:
    budget = store.find_budget(category, month)
    if budget is None:
        return error_response(404, "budget_not_found", f"No budget for {category} in {month}.")
    return budget.to_dict()


@app.post("/api/budgets", response_model=None)
def upsert_budget(payload: BudgetCreate, store: LedgerStore = Depends(get_store)) -> JSONResponse:
    """Create the (category, month) budget, or overwrite the limit of the existing one."""
    existing = store.find_budget(payload.category, payload.month)
    if existing is not None:
        budget = store.update_budget(existing.id, limit=payload.limit)
        return JSONResponse(status_code=200, content=budget.to_dict())

    budget = store.create_budget(category=payload.category, limit=payload.limit, month=payload.month)
    return JSONResponse(status_code=201, content=budget.to_dict())


@app.put("/api/budgets/{budget_id}", response_model=None)
def update_budget(
    budget_id: int,
    payload: BudgetUpdate,
    store: LedgerStore = Depends(get_store),
) -> Dict[str, Any] | JSONResponse:
    """Edit a budget; moving it onto another budget's (category, month) is refused."""
    fields = changed_fields(payload)
    current = store.get_budget(budget_id)
    if not fields:
        return current.to_dict()

    category = fields.get("category", current.category)
    month = fields.get("month", current.month)
    clash = store.find_budget(category, month)
    if clash is not None and clash.id != budget_id:
        return error_response(
            409,
            "budget_conflict",
            f"Budget {clash.id} already covers {category} in {month}.",
        )
    return store.update_budget(budget_id, **fields).to_dict()


# ------------------------------
# Recurring payments
# ------------------------------


@app.get("/api/recurring-payments")
def list_recurring_payments(store: LedgerStore = Depends(get_store)) -> List[Dict[str, Any]]:
    return [payment.to_dict() for payment in store.list_recurring_payments()]


@app.get("/api/recurring-payments/due")
def list_due_payments(
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> List[Dict[str, Any]]:
    return [payment.to_dict() for payment in due_since(store, clock.now())]


@app.post("/api/recurring-payments", status_code=201)
def create_recurring_payment(
    payload: RecurringPaymentCreate,
    processor: RecurringPaymentProcessor = Depends(get_processor),
) -> Dict[str, Any]:
    """Register a recurring payment and materialize its backlog right away."""
    payment, created = processor.register(payload)
    return {
        **payment.to_dict(),
        "created_expenses": [expense.to_dict() for expense in created],
    }


@app.post("/api/recurring-payments/process")
def process_recurring_payments(
    processor: RecurringPaymentProcessor = Depends(get_processor),
) -> Dict[str, Any]:
    with traced("ledger.process_due", trigger="http"):
        summary = processor.process_all()
    return _summary_payload(summary)


@app.put("/api/recurring-payments/{payment_id}")
def update_recurring_payment(
    payment_id: int,
    payload: RecurringPaymentUpdate,
    processor: RecurringPaymentProcessor = Depends(get_processor),
) -> Dict[str, Any]:
    return processor.update(payment_id, payload).to_dict()


@app.delete("/api/recurring-payments/{payment_id}", status_code=204)
def delete_recurring_payment(
    payment_id: int,
    processor: RecurringPaymentProcessor = Depends(get_processor),
) -> Response:
    processor.delete(payment_id)
    return Response(status_code=204)


@app.post("/api/recurring-payments/{payment_id}/pause")
def pause_recurring_payment(
    payment_id: int,
    processor: RecurringPaymentProcessor = Depends(get_processor),
) -> Dict[str, Any]:
    return processor.set_active(payment_id, False).to_dict()


@app.post("/api/recurring-payments/{payment_id}/resume")
def resume_recurring_payment(
    payment_id: int,
    processor: RecurringPaymentProcessor = Depends(get_processor),
) -> Dict[str, Any]:
    return processor.set_active(payment_id, True).to_dict()


@app.post("/api/recurring-payments/{payment_id}/reconcile")
def reconcile_recurring_payment(
    payment_id: int,
    processor: RecurringPaymentProcessor = Depends(get_processor),
) -> Dict[str, Any]:
    """Manually re-run reconciliation for one payment, regardless of whether it is due."""
    result = processor.reconcile(payment_id)
    return {
        "payment_id": result.payment_id,
        "next_due_date": result.next_due_date.isoformat(),
        "created_expenses": [expense.to_dict() for expense in result.created_expenses],
    }


__all__ = ["app", "get_clock", "get_store"]
