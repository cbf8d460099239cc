"""
ORACLE RELAY — API Tests
Drives the FastAPI surface through TestClient with scripted providers.
"""
import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock

from oracle_relay.api.app import create_app
from oracle_relay.data.errors import LedgerUnavailable
from oracle_relay.ledger.memory import InMemoryLedger
from oracle_relay.services import OracleRelayServices
from oracle_relay.tests.fakes import USER


@pytest.fixture
def services(test_settings, fake_adapters):
    return OracleRelayServices(test_settings, ledger=InMemoryLedger(), adapters=fake_adapters)


@pytest.fixture
def client(services):
    with TestClient(create_app(services)) as client:
        yield client


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_api_health_reports_unreachable_downstream(client):
    body = client.get("/api/health").json()
    assert body["status"] == "ok"
    assert body["ledger"] == {"backend": "memory", "healthy": True}
    assert body["schemas_registered"] is True
    assert body["downstream"]["reachable"] is False
    assert body["publisher"]["state"] == "STOPPED"


def test_get_price(client):
    body = client.get("/api/prices/btc").json()
    assert body["symbol"] == "BTC"
    assert body["display_price"] == "50000.00"
    assert body["source"] == "COINGECKO"
    assert body["price"] == "5000000000000"


def test_unknown_symbol_is_404(client):
    response = client.get("/api/prices/XYZ")
    assert response.status_code == 404
    assert "XYZ" in response.json()["detail"]


def test_publish_reports_partial_failure(client):
    response = client.post("/api/publish", json={"symbols": ["BTC", "XYZ"]})
    assert response.status_code == 200
    body = response.json()
    assert body["published"] == ["BTC"]
    assert list(body["failed"]) == ["XYZ"]


def test_publish_defaults_to_configured_symbols(client):
    body = client.post("/api/publish").json()
    assert body["published"] == ["BTC", "ETH"]


def test_config_update_changes_priority(client):
    response = client.post("/api/publisher/config", json={"priority": "ONCHAIN_FIRST"})
    assert response.status_code == 200
    assert response.json()["priority"] == "ONCHAIN_FIRST"

    assert client.get("/api/prices/BTC").json()["source"] == "DIA"
    assert client.get("/api/publisher/status").json()["config"]["priority"] == "ONCHAIN_FIRST"


def test_config_rejects_negative_delay(client):
    assert client.post("/api/publisher/config", json={"symbol_delay_ms": -1}).status_code == 422


def test_start_twice_conflicts(client):
    response = client.post("/api/publisher/start", json={"symbols": ["BTC"], "interval_ms": 60000})
    assert response.status_code == 200
    assert response.json()["running"] is True

    assert client.post("/api/publisher/start").status_code == 409

    stopped = client.post("/api/publisher/stop").json()
    assert stopped["state"] == "STOPPED"
    assert client.post("/api/publisher/stop").status_code == 200


def test_alert_lifecycle(client):
    created = client.post("/api/alerts", json={
        "user_address": USER,
        "asset": "btc",
        "condition": "BELOW",
        "threshold_price": "52500.00",
    })
    assert created.status_code == 200
    alert_id = created.json()["alert_id"]

    active = client.get("/api/alerts", params={"asset": "BTC"}).json()
    assert active["count"] == 1
    assert active["alerts"][0]["display_threshold"] == "52500.00"

    checked = client.post("/api/alerts/check", json={"asset": "BTC"}).json()
    assert checked["triggered"] == [alert_id]
    assert checked["price"] == "5000000000000"

    again = client.post("/api/alerts/check", json={"asset": "BTC", "price": "40000"}).json()
    assert again["triggered"] == []

    assert client.get("/api/alerts").json()["count"] == 0
    triggered = client.get("/api/alerts/triggered", params={"user": USER}).json()
    assert [a["alert_id"] for a in triggered["alerts"]] == [alert_id]


def test_invalid_condition_rejected(client):
    response = client.post("/api/alerts", json={
        "user_address": USER, "asset": "BTC", "condition": "SIDEWAYS", "threshold_price": "1",
    })
    assert response.status_code == 422


def test_ledger_failure_is_502(client, services):
    services.ledger.submit = AsyncMock(side_effect=LedgerUnavailable("rpc down"))
    response = client.post("/api/alerts", json={
        "user_address": USER, "asset": "BTC", "condition": "ABOVE", "threshold_price": "1",
    })
    assert response.status_code == 502
    assert "rpc down" in response.json()["detail"]
