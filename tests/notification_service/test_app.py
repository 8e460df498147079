from datetime import date, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from services.notification_service.app import app, get_user_directory
from services.notification_service.models import UserInfo
from tests.utils import FakeUserDirectory, configure_sqlite_env


@pytest.fixture()
def client(tmp_path: Path):
    configure_sqlite_env("NOTIFICATION_DB_URL", tmp_path / "notifications.db")
    users = FakeUserDirectory({"7": UserInfo(name="Eve", guardian_email="parent@example.com")})
    app.dependency_overrides[get_user_directory] = lambda: users
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def create_loan(client: TestClient, book_id: str = "42"):
    payload = {
        "user_id": "7",
        "email_guardian": "parent@example.com",
        "book_id": book_id,
        "book_name": "Demo Book",
        "loan_return": (date.today() + timedelta(days=14)).isoformat(),
    }
    return client.post("/loans/", json=payload)


def test_health(client: TestClient):
    assert client.get("/health").json() == {"status": "ok", "service": "alerts-notifications"}


def test_loan_fine_and_close_flow(client: TestClient, outbox):
    created = create_loan(client)
    assert created.status_code == 201

    duplicate = create_loan(client)
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "LOAN_ALREADY_ACTIVE"

    fine_resp = client.post(
        "/fines/", json={"user_id": "7", "book_id": "42", "amount": 3000, "fine_type": "DAMAGE"}
    )
    assert fine_resp.status_code == 201
    fine = fine_resp.json()
    assert fine["status"] == "PENDING"

    blocked = client.delete("/loans/42", params={"user_id": "7"})
    assert blocked.status_code == 400
    assert blocked.json()["detail"] == "FINE_PENDING"

    user_fines = client.get("/users/7/fines").json()
    assert [item["book_name"] for item in user_fines] == ["Demo Book"]

    assert client.post(f"/fines/{fine['fine_id']}/close").status_code == 204
    assert client.delete("/loans/42", params={"user_id": "7"}).status_code == 204

    types = [item["notification_type"] for item in client.get("/users/7/notifications").json()]
    assert types == ["BOOK_LOAN", "FINE", "FINE_PAID", "BOOK_LOAN_RETURNED"]
    assert len(outbox) == 4


def test_return_book(client: TestClient, outbox):
    create_loan(client, book_id="9")

    resp = client.post("/loans/9/return", json={"bad_condition": True})

    assert resp.status_code == 204
    assert "malas condiciones" in outbox[-1].body
    assert client.post("/loans/9/return", json={}).status_code == 404


def test_missing_records_map_to_404(client: TestClient):
    missing_loan = client.delete("/loans/nope", params={"user_id": "7"})
    assert missing_loan.status_code == 404
    assert missing_loan.json()["detail"] == "LOAN_NOT_FOUND"

    missing_fine = client.post("/fines/55/close")
    assert missing_fine.status_code == 404
    assert missing_fine.json()["detail"] == "FINE_NOT_FOUND"


def test_unknown_user_maps_to_bad_gateway(client: TestClient, outbox):
    payload = {
        "user_id": "8",
        "email_guardian": "someone@example.com",
        "book_id": "42",
        "book_name": "Demo Book",
        "loan_return": date.today().isoformat(),
    }
    assert client.post("/loans/", json=payload).status_code == 201

    resp = client.post("/fines/", json={"user_id": "8", "book_id": "42", "amount": 10, "fine_type": "DAMAGE"})

    assert resp.status_code == 502
    assert resp.json()["detail"] == "User 8 not found"
    assert client.get("/fines/active").json()["total_items"] == 0


def test_active_fines_page(client: TestClient):
    for book in range(4):
        create_loan(client, book_id=str(book))
        client.post(
            "/fines/", json={"user_id": "7", "book_id": str(book), "amount": 100, "fine_type": "RETARDMENT"}
        )

    page = client.get("/fines/active", params={"page_size": 3, "page_number": 1}).json()
    assert page["current_page"] == 1
    assert page["total_pages"] == 2
    assert page["total_items"] == 4
    assert len(page["data"]) == 1

    today = client.get("/fines/active", params={"date": date.today().isoformat()}).json()
    assert today["total_items"] == 4
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    assert client.get("/fines/active", params={"date": yesterday}).json()["total_items"] == 0
