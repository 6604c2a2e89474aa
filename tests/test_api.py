import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, StorageFailure
from main import app, get_db


@pytest.fixture
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


GROCERIES = {
    "amount": 100,
    "date": "2024-03-05",
    "description": "Groceries",
    "category": "Food",
    "type": "expense",
}


def test_create_then_list_round_trip(client: TestClient) -> None:
    resp = client.post("/api/transactions", json=GROCERIES)
    assert resp.status_code == 201
    created = resp.json()
    assert created["amount"] == 100
    assert created["recurring"] is False
    assert created["recurringType"] is None

    listed = client.get("/api/transactions", params={"month": "2024-03"}).json()
    assert len(listed) == 1
    item = listed[0]
    assert item["id"] == created["id"]
    for key in ("amount", "date", "description", "category"):
        assert item[key] == GROCERIES[key]


def test_create_requires_fields(client: TestClient) -> None:
    payload = dict(GROCERIES)
    del payload["description"]
    resp = client.post("/api/transactions", json=payload)
    assert resp.status_code == 400
    assert resp.json() == {"error": "All fields are required."}


def test_create_rejects_unknown_category(client: TestClient) -> None:
    resp = client.post("/api/transactions", json={**GROCERIES, "category": "Fod"})
    assert resp.status_code == 400
    assert "Invalid category 'Fod'" in resp.json()["error"]


def test_create_rejects_non_positive_amount(client: TestClient) -> None:
    resp = client.post("/api/transactions", json={**GROCERIES, "amount": 0})
    assert resp.status_code == 400
    assert "error" in resp.json()


def test_recurring_expansion_in_listing(client: TestClient) -> None:
    client.post(
        "/api/transactions",
        json={
            **GROCERIES,
            "date": "2024-01-01",
            "recurring": True,
            "recurringType": "weekly",
        },
    )
    listed = client.get("/api/transactions", params={"month": "2024-01"}).json()
    assert [item["date"] for item in listed] == [
        "2024-01-29",
        "2024-01-22",
        "2024-01-15",
        "2024-01-08",
        "2024-01-01",
    ]
    templates = client.get(
        "/api/transactions", params={"month": "2024-01", "expand": "false"}
    ).json()
    assert len(templates) == 1


def test_update_by_body_and_path(client: TestClient) -> None:
    txn_id = client.post("/api/transactions", json=GROCERIES).json()["id"]

    resp = client.put("/api/transactions", json={**GROCERIES, "id": txn_id, "amount": 55})
    assert resp.status_code == 200
    assert resp.json()["amount"] == 55

    resp = client.put(f"/api/transactions/{txn_id}", json={**GROCERIES, "amount": 60})
    assert resp.status_code == 200
    assert resp.json()["amount"] == 60

    resp = client.put("/api/transactions/999", json=GROCERIES)
    assert resp.status_code == 404
    assert resp.json() == {"error": "Transaction not found."}


def test_delete_by_body(client: TestClient) -> None:
    txn_id = client.post("/api/transactions", json=GROCERIES).json()["id"]

    resp = client.request("DELETE", "/api/transactions", json={"id": txn_id})
    assert resp.status_code == 200
    assert resp.json() == {"success": True}

    resp = client.request("DELETE", "/api/transactions", json={"id": txn_id})
    assert resp.status_code == 404
    assert resp.json()["error"] == "Transaction not found."


def test_budgets_require_month(client: TestClient) -> None:
    resp = client.get("/api/budgets")
    assert resp.status_code == 400
    assert resp.json() == {"error": "Month is required (yyyy-MM)."}


def test_budget_post_requires_all_fields(client: TestClient) -> None:
    resp = client.post("/api/budgets", json={"category": "Food", "month": "2024-03"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "All fields are required."}


def test_budget_upsert_and_list(client: TestClient) -> None:
    body = {"category": "Food", "month": "2024-03", "amount": 80}
    first = client.post("/api/budgets", json=body).json()
    second = client.post("/api/budgets", json=body).json()
    assert first["id"] == second["id"]

    listed = client.get("/api/budgets", params={"month": "2024-03"}).json()
    assert listed == [{"id": first["id"], "category": "Food", "month": "2024-03", "amount": 80.0}]

    resp = client.delete(f"/api/budgets/{first['id']}")
    assert resp.json() == {"success": True}
    assert client.get("/api/budgets", params={"month": "2024-03"}).json() == []


def test_comparison_and_insights_end_to_end(client: TestClient) -> None:
    client.post("/api/transactions", json=GROCERIES)
    client.post("/api/budgets", json={"category": "Food", "month": "2024-03", "amount": 80})

    rows = client.get("/api/budgets/comparison", params={"month": "2024-03"}).json()
    assert len(rows) == 9
    assert rows[0] == {
        "category": "Food",
        "budgetAmount": 80.0,
        "actualAmount": 100.0,
        "overBudget": True,
        "progressRatio": 1.0,
    }

    body = client.get("/api/insights", params={"month": "2024-03"}).json()
    assert body["month"] == "2024-03"
    assert (
        "Consider increasing your Food budget. You are consistently over budget."
        in body["insights"]
    )


def test_summary(client: TestClient) -> None:
    client.post("/api/transactions", json=GROCERIES)
    client.post(
        "/api/transactions",
        json={**GROCERIES, "amount": 1000, "category": "Other", "type": "income"},
    )
    body = client.get("/api/summary", params={"month": "2024-03"}).json()
    assert body["totals"] == {"income": 1000.0, "expense": 100.0, "netSavings": 900.0}
    assert body["categoryTotals"] == [{"category": "Food", "total": 100.0}]
    assert body["monthlySeries"] == [{"month": "2024-03", "total": 100.0}]
    assert body["savingsSeries"] == [
        {"month": "2024-03", "income": 1000.0, "expense": 100.0, "savings": 900.0}
    ]
    assert len(body["recent"]) == 2


def test_csv_exports(client: TestClient) -> None:
    client.post("/api/transactions", json={**GROCERIES, "description": "=SUM(A1)"})
    client.post("/api/budgets", json={"category": "Food", "month": "2024-03", "amount": 80})

    resp = client.get("/api/transactions/export.csv", params={"month": "2024-03"})
    assert resp.status_code == 200
    lines = resp.text.splitlines()
    assert lines[0] == "date,amount,description,category,type"
    assert lines[1] == "2024-03-05,100.00,\t=SUM(A1),Food,expense"

    resp = client.get("/api/budgets/export.csv", params={"month": "2024-03"})
    assert 'filename="budgets-2024-03.csv"' in resp.headers["content-disposition"]
    assert resp.text.splitlines() == ["category,month,amount", "Food,2024-03,80.00"]


def test_storage_failure_is_a_generic_error(client: TestClient, monkeypatch) -> None:
    def broken_find(self):
        raise StorageFailure("Storage failure during find_transactions")

    monkeypatch.setattr("services.TransactionService.find", broken_find)
    resp = client.get("/api/transactions", params={"month": "2024-03"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Storage is unavailable, please try again later."}


def test_invalid_month_is_rejected(client: TestClient) -> None:
    resp = client.get("/api/summary", params={"month": "March"})
    assert resp.status_code == 400
    assert "expected yyyy-MM" in resp.json()["error"]


def test_amount_too_large_for_storage_is_rejected(client: TestClient) -> None:
    resp = client.post("/api/transactions", json={**GROCERIES, "amount": 1e17})
    assert resp.status_code == 400
    assert "amount" in resp.json()["error"]

    body = {"category": "Food", "month": "2024-03", "amount": 1e17}
    resp = client.post("/api/budgets", json=body)
    assert resp.status_code == 400
    assert "error" in resp.json()


@pytest.mark.parametrize("param", ["minAmount", "maxAmount"])
@pytest.mark.parametrize("raw", ["Infinity", "NaN", "-inf"])
def test_non_finite_amount_filter_is_rejected(
    client: TestClient, param: str, raw: str
) -> None:
    resp = client.get("/api/transactions", params={"month": "2024-03", param: raw})
    assert resp.status_code == 400
    assert resp.json() == {"error": f"Invalid amount '{raw}'"}


@pytest.mark.parametrize(
    "path", ["/api/summary", "/api/insights", "/api/budgets/comparison"]
)
def test_month_outside_supported_years_is_rejected(client: TestClient, path: str) -> None:
    resp = client.get(path, params={"month": "0001-01"})
    assert resp.status_code == 400
    assert "year must be between 1970 and 3000" in resp.json()["error"]
