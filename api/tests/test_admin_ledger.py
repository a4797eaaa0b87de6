from __future__ import annotations

import os

import pytest
from fastapi.testclient import TestClient

from jobledger.core.config import get_settings

HEARTBEAT = {
    "user_id": "device-owner",
    "url": "https://device-owner.ngrok.app",
    "cpu_cores": 2,
    "cpu_load": 0.1,
    "ram_total": 4.0,
    "ram_used": 1.0,
    "disk_free": 10.0,
    "status": "ACTIVE",
}


@pytest.fixture
def admin_key() -> str:
    os.environ["JL_ADMIN_API_KEY"] = "admin-secret"
    get_settings.cache_clear()
    yield "admin-secret"
    os.environ.pop("JL_ADMIN_API_KEY", None)
    get_settings.cache_clear()


def test_ledger_statement_requires_configured_key(api_client: TestClient) -> None:
    response = api_client.get("/admin/ledger/requester-1", headers={"Api-Key": "anything"})
    assert response.status_code == 503


def test_ledger_statement_rejects_wrong_key(api_client: TestClient, admin_key: str) -> None:
    missing = api_client.get("/admin/ledger/requester-1")
    wrong = api_client.get("/admin/ledger/requester-1", headers={"Api-Key": "nope"})

    assert missing.status_code == 403
    assert wrong.status_code == 403
    assert wrong.json() == {"detail": "Unauthorized"}


def test_ledger_statement_reconciles_budget(api_client: TestClient, admin_key: str) -> None:
    api_client.post("/heartbeat", json=HEARTBEAT)
    for cost_usd in (0.1, 0.25):
        response = api_client.post(
            "/submit-job",
            json={
                "requester": "requester-1",
                "device_id": "device-owner",
                "filename": "main.py",
                "lang": "python",
                "code": "print(1)",
                "cost_usd": cost_usd,
            },
        )
        assert response.status_code == 200

    response = api_client.get("/admin/ledger/device-owner", headers={"Api-Key": admin_key})

    assert response.status_code == 200
    body = response.json()
    assert [entry["amount_cents"] for entry in body["entries"]] == [10, 25]
    assert body["received_cents"] == 35
    assert body["sent_cents"] == 0
    assert body["starting_earned_cents"] == 1000
    assert body["budget"] == {"spent_cents": 0, "earned_cents": 1035}
    assert body["reconciled"] is True
