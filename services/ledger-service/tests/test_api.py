from datetime import datetime
from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient

from main import app, get_store


@pytest.fixture
def client(store, clock) -> TestClient:
    previous_clock = app.state.clock
    app.state.clock = clock
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()
    app.state.clock = previous_clock


def netflix_payload(**overrides: Any) -> Dict[str, Any]:
    payload = {
        "description": "Netflix",
        "category": "Intrattenimento",
        "amount": "12.99",
        "frequency": "monthly",
        "start_date": "2024-01-10",
    }
    payload.update(overrides)
    return payload


def test_health_route_reports_ledger_service(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["service"] == "ledger-service"
    assert response.headers.get("x-request-id")


def test_request_id_is_echoed(client: TestClient) -> None:
    response = client.get("/health", headers={"x-request-id": "req-123"})

    assert response.headers["x-request-id"] == "req-123"


def test_expense_crud_round(client: TestClient) -> None:
    created = client.post(
        "/api/expenses",
        json={"description": "Spesa", "category": "Alimentari", "amount": "45.2", "date": "2024-04-02"},
    )
    assert created.status_code == 201
    expense = created.json()
    assert expense["amount"] == "45.20"

    updated = client.put(f"/api/expenses/{expense['id']}", json={"amount": "50.00"})
    assert updated.status_code == 200
    assert updated.json()["amount"] == "50.00"

    assert client.delete(f"/api/expenses/{expense['id']}").status_code == 204
    missing = client.get(f"/api/expenses/{expense['id']}")
    assert missing.status_code == 404
    assert missing.json()["error"] == "expense_not_found"


def test_invalid_expense_is_rejected_with_validation_error(client: TestClient) -> None:
    response = client.post(
        "/api/expenses",
        json={"description": "", "category": "Alimentari", "amount": "-1", "date": "2024-04-02"},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "validation_error"
    assert {detail["field"] for detail in body["details"]} == {"description", "amount"}


def test_budget_post_upserts_on_category_and_month(client: TestClient) -> None:
    first = client.post("/api/budgets", json={"category": "Alimentari", "limit": "300", "month": "2024-04"})
    second = client.post("/api/budgets", json={"category": "Alimentari", "limit": "350", "month": "2024-04"})

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["id"] == first.json()["id"]
    assert second.json()["limit"] == "350.00"
    assert len(client.get("/api/budgets").json()) == 1

    lookup = client.get("/api/budgets/lookup", params={"category": "Alimentari", "month": "2024-04"})
    assert lookup.json()["limit"] == "350.00"
    assert client.get("/api/budgets/lookup", params={"category": "Salute", "month": "2024-04"}).status_code == 404


def test_budget_month_format_is_validated(client: TestClient) -> None:
    response = client.post("/api/budgets", json={"category": "Alimentari", "limit": "300", "month": "2024-13"})

    assert response.status_code == 400


def test_budget_edit_cannot_collide_with_another_month(client: TestClient) -> None:
    client.post("/api/budgets", json={"category": "Cibo", "limit": "300", "month": "2024-04"})
    may = client.post("/api/budgets", json={"category": "Cibo", "limit": "320", "month": "2024-05"}).json()

    response = client.put(f"/api/budgets/{may['id']}", json={"month": "2024-04"})

    assert response.status_code == 409
    assert response.json()["error"] == "budget_conflict"
    pairs = sorted((b["category"], b["month"]) for b in client.get("/api/budgets").json())
    assert pairs == [("Cibo", "2024-04"), ("Cibo", "2024-05")]


def test_budget_edit_may_keep_its_own_category_and_month(client: TestClient) -> None:
    budget = client.post("/api/budgets", json={"category": "Cibo", "limit": "300", "month": "2024-04"}).json()

    same_key = client.put(f"/api/budgets/{budget['id']}", json={"category": "Cibo", "limit": "280"})
    moved = client.put(f"/api/budgets/{budget['id']}", json={"month": "2024-06"})

    assert same_key.status_code == 200
    assert same_key.json()["limit"] == "280.00"
    assert moved.status_code == 200
    assert moved.json()["month"] == "2024-06"


def test_long_category_names_are_accepted(client: TestClient) -> None:
    category = "Manutenzione straordinaria dell'appartamento al mare e del box auto"
    response = client.post(
        "/api/expenses",
        json={"description": "Idraulico", "category": category, "amount": "180", "date": "2024-04-02"},
    )

    assert response.status_code == 201
    assert response.json()["category"] == category


def test_creating_recurring_payment_materializes_backlog(client: TestClient) -> None:
    response = client.post("/api/recurring-payments", json=netflix_payload())

    assert response.status_code == 201
    body = response.json()
    assert body["next_due_date"] == "2024-05-10"
    assert body["is_active"] == "true"
    assert [e["date"] for e in body["created_expenses"]] == ["2024-01-10", "2024-02-10", "2024-03-10", "2024-04-10"]
    assert body["created_expenses"][-1]["description"] == "Netflix (Automatic)"

    expenses = client.get("/api/expenses").json()
    assert len(expenses) == 4


def test_recurring_payment_with_unknown_frequency_is_rejected(client: TestClient) -> None:
    response = client.post("/api/recurring-payments", json=netflix_payload(frequency="daily"))

    assert response.status_code == 400
    assert client.get("/api/recurring-payments").json() == []


def test_process_with_nothing_due(client: TestClient) -> None:
    response = client.post("/api/recurring-payments/process")

    assert response.status_code == 200
    assert response.json() == {"processed": 0, "processed_payments": 0, "expenses": [], "failures": []}


def test_process_after_time_passes(client: TestClient, clock) -> None:
    client.post("/api/recurring-payments", json=netflix_payload())
    clock.advance_to(datetime(2024, 6, 10, 8, 0))

    due = client.get("/api/recurring-payments/due").json()
    processed = client.post("/api/recurring-payments/process").json()
    again = client.post("/api/recurring-payments/process").json()

    assert [p["next_due_date"] for p in due] == ["2024-05-10"]
    assert [e["date"] for e in processed["expenses"]] == ["2024-05-10", "2024-06-10"]
    assert processed["processed_payments"] == 1
    assert again["processed"] == 0


def test_pause_resume_and_delete(client: TestClient, clock) -> None:
    payment = client.post("/api/recurring-payments", json=netflix_payload()).json()
    paused = client.post(f"/api/recurring-payments/{payment['id']}/pause").json()
    assert paused["is_active"] == "false"

    clock.advance_to(datetime(2024, 5, 20))
    assert client.get("/api/recurring-payments/due").json() == []

    resumed = client.post(f"/api/recurring-payments/{payment['id']}/resume").json()
    assert resumed["is_active"] == "true"
    assert len(client.get("/api/recurring-payments/due").json()) == 1

    assert client.delete(f"/api/recurring-payments/{payment['id']}").status_code == 204
    assert len(client.get("/api/expenses").json()) == 4
    assert client.delete(f"/api/recurring-payments/{payment['id']}").json()["error"] == "recurring_payment_not_found"


def test_manual_reconcile_creates_nothing_when_up_to_date(client: TestClient) -> None:
    payment = client.post("/api/recurring-payments", json=netflix_payload()).json()

    response = client.post(f"/api/recurring-payments/{payment['id']}/reconcile")

    assert response.status_code == 200
    assert response.json()["created_expenses"] == []
    assert response.json()["next_due_date"] == "2024-05-10"
