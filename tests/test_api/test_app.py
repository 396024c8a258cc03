"""Tests for the HTTP API: real service and database, mocked Gmail."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from src.agent.service import DealService
from src.api.app import create_app
from src.config import Settings
from src.gmail.client import GmailAuthError
from src.gmail.types import GmailMessage
from src.processing.classifier import HeuristicClassifier
from src.storage.db import DealDatabase


USER = {"X-User-Id": "u1"}


# ── Fixtures ───────────────────────────────────────────────────────────────────


@pytest.fixture
def gmail() -> MagicMock:
    message = GmailMessage(
        id="m1",
        thread_id="t1",
        subject="Paid partnership",
        sender="sender@brand.test",
        snippet="",
        body="We offer $1,200 for 2 Reels.",
    )
    mock = MagicMock()
    mock.list_message_ids = AsyncMock(return_value=["m1"])
    mock.get_message = AsyncMock(return_value=message)
    return mock


@pytest.fixture
def service(db: DealDatabase, gmail: MagicMock) -> DealService:
    @asynccontextmanager
    async def factory(access_token: str, refresh_token: str | None) -> AsyncIterator[MagicMock]:
        yield gmail

    return DealService(
        Settings(google_client_id="id", google_client_secret="secret"),
        db,
        HeuristicClassifier(),
        gmail_factory=factory,
    )


@pytest.fixture
def client(service: DealService) -> TestClient:
    return TestClient(create_app(service))


def scanned_deal_id(client: TestClient) -> str:
    client.post("/api/auth/token", json={"accessToken": "access-1"}, headers=USER)
    client.post("/api/scan", headers=USER)
    return client.get("/api/deals", headers=USER).json()["deals"][0]["id"]


# ── Auth ───────────────────────────────────────────────────────────────────────


class TestAuth:
    def test_health_is_open(self, client: TestClient) -> None:
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_missing_user_header(self, client: TestClient) -> None:
        assert client.get("/api/deals").status_code == 401

    def test_blank_user_header(self, client: TestClient) -> None:
        assert client.get("/api/deals", headers={"X-User-Id": "  "}).status_code == 401

    def test_api_key_required_when_configured(self, service: DealService) -> None:
        service.settings.api_key = "secret-key"
        client = TestClient(create_app(service))

        assert client.get("/api/deals", headers=USER).status_code == 401
        bearer = {**USER, "Authorization": "Bearer secret-key"}
        assert client.get("/api/deals", headers=bearer).status_code == 200
        api_key = {**USER, "X-API-Key": "secret-key"}
        assert client.get("/api/deals", headers=api_key).status_code == 200
        wrong = {**USER, "X-API-Key": "nope"}
        assert client.get("/api/deals", headers=wrong).status_code == 401

    def test_api_key_prefix_and_empty_bearer_rejected(self, service: DealService) -> None:
        service.settings.api_key = "secret-key"
        client = TestClient(create_app(service))

        prefix = {**USER, "X-API-Key": "secret"}
        assert client.get("/api/deals", headers=prefix).status_code == 401
        empty = {**USER, "Authorization": "Bearer "}
        assert client.get("/api/deals", headers=empty).status_code == 401


# ── Tokens ─────────────────────────────────────────────────────────────────────


class TestStoreToken:
    def test_stores_tokens(self, client: TestClient, db: DealDatabase) -> None:
        resp = client.post(
            "/api/auth/token",
            json={"accessToken": "access-1", "refreshToken": "refresh-1"},
            headers=USER,
        )
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        user = db.get_user("u1")
        assert user is not None
        assert user.refresh_token == "refresh-1"

    def test_snake_case_fields_accepted(self, client: TestClient, db: DealDatabase) -> None:
        resp = client.post("/api/auth/token", json={"access_token": "access-2"}, headers=USER)
        assert resp.status_code == 200
        assert db.get_user("u1").access_token == "access-2"  # type: ignore[union-attr]

    def test_missing_access_token(self, client: TestClient) -> None:
        resp = client.post("/api/auth/token", json={}, headers=USER)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Access token is required"


# ── Scan ───────────────────────────────────────────────────────────────────────


class TestScan:
    def test_without_token_requires_reauth(self, client: TestClient) -> None:
        resp = client.post("/api/scan", headers=USER)
        assert resp.status_code == 401
        assert resp.json()["error"] == "reauth_required"

    def test_expired_credentials_require_reauth(
        self, client: TestClient, gmail: MagicMock
    ) -> None:
        gmail.list_message_ids = AsyncMock(side_effect=GmailAuthError())
        client.post("/api/auth/token", json={"accessToken": "stale"}, headers=USER)

        resp = client.post("/api/scan", headers=USER)

        assert resp.status_code == 401
        assert resp.json() == {
            "error": "reauth_required",
            "message": "Gmail authentication expired. Please sign in again.",
        }

    def test_scan_summary(self, client: TestClient) -> None:
        client.post("/api/auth/token", json={"accessToken": "access-1"}, headers=USER)

        resp = client.post("/api/scan", headers=USER)

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["deals_created"] == 1
        assert body["total_messages"] == 1
        assert body["last_sync_at"]

    def test_unexpected_failure_is_500(self, service: DealService, gmail: MagicMock) -> None:
        gmail.list_message_ids = AsyncMock(side_effect=RuntimeError("boom"))
        client = TestClient(create_app(service), raise_server_exceptions=False)
        client.post("/api/auth/token", json={"accessToken": "access-1"}, headers=USER)

        resp = client.post("/api/scan", headers=USER)

        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}

    def test_clear_cache(self, client: TestClient) -> None:
        client.post("/api/auth/token", json={"accessToken": "access-1"}, headers=USER)
        client.post("/api/scan", headers=USER)

        resp = client.delete("/api/scan/cache", headers=USER)

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "cleared": 1}


# ── Deals ──────────────────────────────────────────────────────────────────────


class TestDeals:
    def test_empty_list(self, client: TestClient) -> None:
        resp = client.get("/api/deals", headers=USER)
        assert resp.status_code == 200
        assert resp.json() == {"deals": [], "message": "No deals found"}

    def test_list_after_scan(self, client: TestClient) -> None:
        scanned_deal_id(client)

        body = client.get("/api/deals", headers=USER).json()

        assert body["message"] == "Deals retrieved successfully"
        deal = body["deals"][0]
        assert deal["subject"] == "Paid partnership"
        assert deal["from"] == "sender@brand.test"
        assert deal["type"] == "Brand Deal"
        assert deal["status"] == "New"
        assert deal["deliverables"] == ["2 reels"]
        assert deal["messageIds"] == ["m1"]

    def test_list_scoped_to_user(self, client: TestClient) -> None:
        scanned_deal_id(client)
        body = client.get("/api/deals", headers={"X-User-Id": "u2"}).json()
        assert body["deals"] == []

    def test_list_filters(self, client: TestClient) -> None:
        scanned_deal_id(client)
        assert client.get("/api/deals?status=Booked", headers=USER).json()["deals"] == []
        assert len(client.get("/api/deals?type=Brand%20Deal", headers=USER).json()["deals"]) == 1

    def test_update_status(self, client: TestClient) -> None:
        deal_id = scanned_deal_id(client)

        resp = client.put(f"/api/deals/{deal_id}", json={"status": "In Progress"}, headers=USER)

        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert resp.json()["deal"]["status"] == "In Progress"

    def test_update_requires_status(self, client: TestClient) -> None:
        deal_id = scanned_deal_id(client)
        resp = client.put(f"/api/deals/{deal_id}", json={}, headers=USER)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Status is required"

    def test_update_invalid_status(self, client: TestClient) -> None:
        deal_id = scanned_deal_id(client)
        resp = client.put(f"/api/deals/{deal_id}", json={"status": "Pending"}, headers=USER)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid status"

    def test_update_other_users_deal(self, client: TestClient) -> None:
        deal_id = scanned_deal_id(client)
        resp = client.put(
            f"/api/deals/{deal_id}", json={"status": "Booked"}, headers={"X-User-Id": "u2"}
        )
        assert resp.status_code == 404

    def test_delete(self, client: TestClient) -> None:
        deal_id = scanned_deal_id(client)

        resp = client.delete(f"/api/deals/{deal_id}", headers=USER)

        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert client.get("/api/deals", headers=USER).json()["deals"] == []

    def test_delete_missing(self, client: TestClient) -> None:
        resp = client.delete("/api/deals/missing", headers=USER)
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Deal not found"
