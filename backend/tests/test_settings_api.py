"""API tests for merchant settings and webhook endpoint management."""

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from creditledger.main import app
from tests.conftest import MERCHANT_HEADERS, OTHER_MERCHANT_HEADERS


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


class TestMerchantSettings:
    def test_defaults_when_unconfigured(self, client):
        response = client.get("/v1/settings/", headers=MERCHANT_HEADERS)
        assert response.status_code == 200
        body = response.json()
        assert body["merchant_id"] == "merchant-main"
        assert body["note_prefix"] == "CN"
        assert body["currency"] == "USD"
        assert body["default_expiry_days"] is None

    def test_update_and_issue(self, client):
        response = client.put(
            "/v1/settings/",
            json={"note_prefix": "SHOP", "default_expiry_days": 30, "currency": "eur"},
            headers=MERCHANT_HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["currency"] == "EUR"

        issued = client.post(
            "/v1/credit_notes/",
            json={"owner_ref": "cust-1", "amount": "10.00"},
            headers=MERCHANT_HEADERS,
        ).json()
        assert issued["note_number"].startswith("SHOP-")
        assert issued["currency"] == "EUR"
        assert issued["expires_at"] is not None

    def test_partial_update_keeps_other_fields(self, client):
        client.put("/v1/settings/", json={"note_prefix": "AB"}, headers=MERCHANT_HEADERS)
        client.put("/v1/settings/", json={"default_expiry_days": 7}, headers=MERCHANT_HEADERS)
        body = client.get("/v1/settings/", headers=MERCHANT_HEADERS).json()
        assert body["note_prefix"] == "AB"
        assert body["default_expiry_days"] == 7

    @pytest.mark.parametrize(
        "payload",
        [
            {"note_prefix": "cn"},
            {"note_prefix": "A"},
            {"note_prefix": "WAY-TOO-LONG"},
            {"default_expiry_days": 0},
            {"currency": "EURO"},
        ],
    )
    def test_invalid(self, client, payload):
        response = client.put("/v1/settings/", json=payload, headers=MERCHANT_HEADERS)
        assert response.status_code == 422

    def test_settings_are_per_merchant(self, client):
        client.put("/v1/settings/", json={"note_prefix": "ZZ"}, headers=MERCHANT_HEADERS)
        body = client.get("/v1/settings/", headers=OTHER_MERCHANT_HEADERS).json()
        assert body["note_prefix"] == "CN"


class TestWebhookEndpoints:
    def test_create_list_delete(self, client):
        created = client.post(
            "/v1/webhook_endpoints/",
            json={"url": "https://hooks.example.com/ledger"},
            headers=MERCHANT_HEADERS,
        )
        assert created.status_code == 201
        endpoint = created.json()
        assert endpoint["status"] == "active"

        listing = client.get("/v1/webhook_endpoints/", headers=MERCHANT_HEADERS).json()
        assert [e["id"] for e in listing] == [endpoint["id"]]
        assert client.get("/v1/webhook_endpoints/", headers=OTHER_MERCHANT_HEADERS).json() == []

        response = client.delete(
            f"/v1/webhook_endpoints/{endpoint['id']}", headers=OTHER_MERCHANT_HEADERS
        )
        assert response.status_code == 404
        response = client.delete(
            f"/v1/webhook_endpoints/{endpoint['id']}", headers=MERCHANT_HEADERS
        )
        assert response.status_code == 204

    def test_invalid_url(self, client):
        response = client.post(
            "/v1/webhook_endpoints/", json={"url": "ftp://nope"}, headers=MERCHANT_HEADERS
        )
        assert response.status_code == 422

    def test_delete_unknown(self, client):
        response = client.delete(f"/v1/webhook_endpoints/{uuid4()}", headers=MERCHANT_HEADERS)
        assert response.status_code == 404
