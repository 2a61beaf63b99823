from decimal import Decimal
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from main import app, get_budget
from services import ReportService


@pytest.fixture
def client(tmp_path) -> Iterator[TestClient]:
    path = tmp_path / "api.db"
    ReportService.open(path, is_new=True).close()

    def override_budget():
        budget = ReportService.open(path)
        try:
            yield budget
        finally:
            budget.close()

    app.dependency_overrides[get_budget] = override_budget
    yield TestClient(app)
    app.dependency_overrides.clear()


def category_id(client: TestClient, name: str) -> int:
    return next(c["id"] for c in client.get("/api/categories").json() if c["name"] == name)


def add_transaction(client: TestClient, when: str, category: str, amount: str, who: str):
    return client.post(
        "/api/transactions",
        json={
            "transaction_date": f"{when}T00:00:00",
            "category_id": category_id(client, category),
            "amount": amount,
            "description": f"{category} entry",
            "created_by": who,
        },
    )


def test_categories_crud(client) -> None:
    listed = client.get("/api/categories").json()
    assert len(listed) == 18
    income = client.get("/api/categories", params={"type": "income"}).json()
    assert [c["name"] for c in income] == ["Rental Income", "Salary"]

    created = client.post("/api/categories", json={"name": "Pets", "type": 2})
    assert created.status_code == 201
    pets = created.json()
    assert pets["name"] == "Pets"
    assert pets["type"] == 2

    updated = client.put(
        f"/api/categories/{pets['id']}", json={"name": "Pet care", "type": "expense"}
    )
    assert updated.status_code == 200
    assert updated.json()["name"] == "Pet care"

    assert client.delete(f"/api/categories/{pets['id']}").status_code == 204
    assert client.get(f"/api/categories/{pets['id']}").status_code == 404


def test_category_errors(client) -> None:
    assert client.post("/api/categories", json={"name": "  ", "type": 2}).status_code == 422
    assert client.get("/api/categories", params={"type": "bogus"}).status_code == 400
    assert client.delete("/api/categories/9999").status_code == 404
    assert (
        client.put("/api/categories/9999", json={"name": "x", "type": 1}).status_code
        == 404
    )

    add_transaction(client, "2024-01-01", "Salary", "100", "A")
    conflict = client.delete(f"/api/categories/{category_id(client, 'Salary')}")
    assert conflict.status_code == 409


def test_transactions_crud(client) -> None:
    created = add_transaction(client, "2024-01-02", "Food & Dining", "150", "B")
    assert created.status_code == 201
    txn = created.json()
    assert Decimal(str(txn["amount"])) == Decimal("150")
    assert txn["created_by"] == "B"

    fetched = client.get(f"/api/transactions/{txn['id']}").json()
    assert fetched["description"] == "Food & Dining entry"

    updated = client.put(
        f"/api/transactions/{txn['id']}",
        json={
            "transaction_date": "2024-01-03T00:00:00",
            "category_id": txn["category_id"],
            "amount": "175.50",
            "description": "Bigger shop",
            "created_by": "B",
        },
    )
    assert updated.status_code == 200
    assert Decimal(str(updated.json()["amount"])) == Decimal("175.50")

    assert client.delete(f"/api/transactions/{txn['id']}").status_code == 204
    assert client.get(f"/api/transactions/{txn['id']}").status_code == 404
    assert client.delete(f"/api/transactions/{txn['id']}").status_code == 404


def test_transaction_errors(client) -> None:
    bad_amount = client.post(
        "/api/transactions",
        json={
            "transaction_date": "2024-01-01T00:00:00",
            "category_id": 1,
            "amount": "0",
            "description": "Nothing",
            "created_by": "A",
        },
    )
    assert bad_amount.status_code == 422

    unknown = client.post(
        "/api/transactions",
        json={
            "transaction_date": "2024-01-01T00:00:00",
            "category_id": 999,
            "amount": "5",
            "description": "Lost",
            "created_by": "A",
        },
    )
    assert unknown.status_code == 404


def test_transaction_listing_filters(client) -> None:
    add_transaction(client, "2024-01-01", "Salary", "5000", "A")
    add_transaction(client, "2024-02-02", "Food & Dining", "150", "B")

    assert len(client.get("/api/transactions").json()) == 2
    by_b = client.get("/api/transactions", params={"created_by": "B"}).json()
    assert [t["created_by"] for t in by_b] == ["B"]

    january = client.get(
        "/api/transactions",
        params={"period": "custom", "start": "2024-01-01", "end": "2024-01-31"},
    ).json()
    assert [t["created_by"] for t in january] == ["A"]

    bad = client.get("/api/transactions", params={"period": "custom"})
    assert bad.status_code == 400


def test_reports(client) -> None:
    add_transaction(client, "2024-01-01", "Salary", "5000", "A")
    add_transaction(client, "2024-01-02", "Food & Dining", "150", "B")

    items = client.get("/api/reports/items").json()
    assert [i["amount"] for i in items] == [5000, -150]
    assert [i["balance"] for i in items] == [5000, 4850]

    by_month = client.get("/api/reports/by-month").json()
    assert [(m["month"], m["total"]) for m in by_month] == [("2024/01", 4850)]

    by_category = client.get("/api/reports/by-category").json()
    assert [g["category"] for g in by_category] == ["Food & Dining", "Salary"]

    salary_id = category_id(client, "Salary")
    only_salary = client.get(
        "/api/reports/items", params={"category_id": salary_id}
    ).json()
    assert [i["category"] for i in only_salary] == ["Salary"]

    grid = client.get("/api/reports/by-category-and-month").json()
    assert grid["totals"]["label"] == "TOTALS"
    assert [t["category"] for t in grid["totals"]["totals"]] == [
        "Salary",
        "Food & Dining",
    ]

    creators = client.get("/api/reports/creators").json()
    assert [(c["created_by"], c["transaction_count"]) for c in creators] == [
        ("A", 1),
        ("B", 1),
    ]

    mine = client.get("/api/reports/creators/B").json()
    assert [(i["amount"], i["balance"]) for i in mine] == [(-150, -150)]

    future = client.get(
        "/api/reports/items",
        params={"period": "custom", "start": "2030-01-01", "end": "2030-12-31"},
    ).json()
    assert future == []


def test_items_csv_export(client) -> None:
    add_transaction(client, "2024-01-01", "Salary", "5000", "A")

    response = client.get("/api/reports/items.csv")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="budget_all.csv"' in response.headers["content-disposition"]
    lines = response.text.splitlines()
    assert lines[0] == "Date,Category,Type,Description,Amount,Balance,CreatedBy"
    assert lines[1] == "2024-01-01,Salary,Income,Salary entry,5000.00,5000.00,A"


def test_transaction_dates_are_stored_as_utc(client) -> None:
    created = client.post(
        "/api/transactions",
        json={
            "transaction_date": "2024-01-01T23:30:00-02:00",
            "category_id": category_id(client, "Salary"),
            "amount": "10",
            "description": "Late pay",
            "created_by": "A",
        },
    )
    assert created.status_code == 201

    fetched = client.get(f"/api/transactions/{created.json()['id']}").json()
    assert fetched["transaction_date"] == "2024-01-02T01:30:00"


def test_oversized_amount_is_rejected(client) -> None:
    response = client.post(
        "/api/transactions",
        json={
            "transaction_date": "2024-01-01T00:00:00",
            "category_id": category_id(client, "Salary"),
            "amount": "1234567890123456.78",
            "description": "Too much",
            "created_by": "A",
        },
    )
    assert response.status_code == 422
    assert client.get("/api/transactions").json() == []
