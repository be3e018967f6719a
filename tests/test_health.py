import pytest


@pytest.mark.anyio("asyncio")
async def test_healthcheck(client):
    response = await client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] in {"ok", "degraded"}
    assert payload["db_status"] in {"ok", "error"}
    assert payload["mpesa_credentials_configured"] is True
    assert payload["mpesa_base_url"] == "https://daraja.test"
    assert isinstance(payload["scheduler_config_enabled"], bool)
    assert isinstance(payload["scheduler_running"], bool)
    assert "last_reconciliation" in payload


@pytest.mark.anyio("asyncio")
async def test_health_degrades_on_db_failure(monkeypatch, client):
    def broken_ping():
        raise RuntimeError("DB down")

    monkeypatch.setattr("app.db.ping", broken_ping)

    response = await client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["db_status"] == "error"


@pytest.mark.anyio("asyncio")
async def test_health_reports_missing_credentials(monkeypatch, client):
    from app.config import get_settings

    monkeypatch.setattr(get_settings(), "MPESA_PASSKEY", None)

    response = await client.get("/health")
    assert response.json()["mpesa_credentials_configured"] is False
