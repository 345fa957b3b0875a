"""HTTP surface tests.

The app is driven through `httpx.AsyncClient` + `ASGITransport` so requests run on the test's
event loop (the aiosqlite engine is bound to it); services are injected with
`dependency_overrides` instead of the lifespan wiring.
"""
import asyncio
import uuid

import httpx
import pytest

from sendcore import main
from sendcore.clients.provider import Submitted
from sendcore.deps import get_services
from sendcore.main import app
from sendcore.models import AccountType
from sendcore.services.factory import build_services

from factories import ScriptedGateway, approved_sender, fund

BIZ = "biz_http"
HEADERS = {"X-Business-Id": BIZ}
SEND_URL = "https://provider.test/clientapi/send-message/"


@pytest.fixture
async def client(services, session_factory):
    app.dependency_overrides[get_services] = lambda: services
    app.state.session_factory = session_factory
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://sendcore.test") as c:
        yield c
    app.dependency_overrides.clear()
    app.state.session_factory = None


@pytest.mark.asyncio
async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True, "db": True}
    assert r.headers.get("X-Request-Id")


@pytest.mark.asyncio
async def test_business_header_required(client):
    r = await client.get("/credits/balances")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_send_success(client, ledger, session_factory, respx_mock):
    await approved_sender(session_factory, BIZ, "AEGIS")
    await fund(ledger, BIZ, 1)
    respx_mock.get(SEND_URL).mock(return_value=httpx.Response(200, text="1701|ext-h"))

    r = await client.post("/sms/send", json={"recipient": "0241234567", "message": "hello", "sender_id": "AEGIS"}, headers=HEADERS)

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] is True
    assert body["data"]["status"] == "SENT"
    assert body["data"]["external_id"] == "ext-h"
    assert body["data"]["recipient"] == "233241234567"

    r = await client.get(f"/sms/{body['data']['id']}", headers=HEADERS)
    assert r.status_code == 200
    assert r.json()["status"] == "SENT"
    assert r.json()["segments"] == 1


@pytest.mark.asyncio
async def test_send_rejection_is_400(client, session_factory):
    await approved_sender(session_factory, BIZ, "AEGIS")
    r = await client.post("/sms/send", json={"recipient": "0241234567", "message": "hello"}, headers=HEADERS)
    assert r.status_code == 400
    body = r.json()
    assert body["reason"] == "insufficient_credits"
    assert body["details"] == {"required_credits": 1, "current_balance": 0, "additional_needed": 1}


@pytest.mark.asyncio
async def test_send_missing_fields(client):
    r = await client.post("/sms/send", json={"recipient": "0241234567"}, headers=HEADERS)
    assert r.status_code == 400
    assert r.json()["reason"] == "missing_fields"


@pytest.mark.asyncio
async def test_send_provider_failure_is_502(client, ledger, session_factory, respx_mock):
    await approved_sender(session_factory, BIZ, "AEGIS")
    await fund(ledger, BIZ, 1)
    respx_mock.get(SEND_URL).mock(return_value=httpx.Response(500, text="oops"))

    r = await client.post("/sms/send", json={"recipient": "0241234567", "message": "hello"}, headers=HEADERS)

    assert r.status_code == 502
    body = r.json()
    assert body["success"] is False
    assert body["data"]["status"] == "FAILED"
    assert body["data"]["id"]


@pytest.mark.asyncio
async def test_bulk_endpoint(client, ledger, session_factory, respx_mock):
    await approved_sender(session_factory, BIZ, "AEGIS")
    await fund(ledger, BIZ, 2)
    respx_mock.get(SEND_URL).mock(return_value=httpx.Response(200, text="1701|ext"))

    r = await client.post("/sms/bulk", json={"recipients": ["0241234567", "0551234567"], "message": "hi"}, headers=HEADERS)

    assert r.status_code == 200
    assert r.json()["summary"]["sent"] == 2


@pytest.mark.asyncio
async def test_unknown_message_is_404(client):
    r = await client.get(f"/sms/{uuid.uuid4()}", headers=HEADERS)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_purchase_and_transfer(client, ledger):
    r = await client.post("/credits/purchase", json={"account_type": "WALLET", "amount": 10}, headers=HEADERS)
    assert r.status_code == 200
    assert r.json()["balances"]["WALLET"] == 10

    r = await client.post("/credits/purchase", json={"account_type": "SERVICE", "amount": 10}, headers=HEADERS)
    assert r.status_code == 400

    r = await client.post(
        "/credits/transfer",
        json={"from_account": "WALLET", "to_account": "SMS", "amount": 4, "description": "move"},
        headers=HEADERS,
    )
    assert r.status_code == 200
    assert r.json()["balances"] == {"SMS": 4, "SERVICE": 0, "WALLET": 6}

    r = await client.post(
        "/credits/transfer",
        json={"from_account": "WALLET", "to_account": "SMS", "amount": 100},
        headers=HEADERS,
    )
    assert r.status_code == 400
    assert await ledger.current_balance(BIZ, AccountType.WALLET) == 6

    r = await client.get("/credits/transactions", params={"account_type": "SMS"}, headers=HEADERS)
    assert r.status_code == 200
    assert r.json()["total"] == 1
    assert r.json()["items"][0]["type"] == "TRANSFER_IN"


@pytest.mark.asyncio
async def test_sender_id_lifecycle(client):
    r = await client.post("/sender-ids/", json={"name": "My Shop"}, headers=HEADERS)
    assert r.status_code == 201, r.text
    created = r.json()
    assert created["status"] == "PENDING"
    assert created["whitelist_status"] == "NOT_SUBMITTED"

    r = await client.post("/sender-ids/", json={"name": "My Shop"}, headers=HEADERS)
    assert r.status_code == 409

    r = await client.post("/sender-ids/", json={"name": "x"}, headers=HEADERS)
    assert r.status_code == 400

    r = await client.get("/sender-ids/", headers=HEADERS)
    assert [s["name"] for s in r.json()] == ["My Shop"]

    r = await client.delete(f"/sender-ids/{created['id']}", headers=HEADERS)
    assert r.status_code == 204
    r = await client.delete(f"/sender-ids/{created['id']}", headers=HEADERS)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_sms_requests_are_tagged_with_the_provider(client, services, monkeypatch):
    tagged = []
    monkeypatch.setattr(main, "set_log_provider", tagged.append)
    monkeypatch.setattr(app.state, "services", services, raising=False)

    await client.get(f"/sms/{uuid.uuid4()}", headers=HEADERS)
    assert tagged == [services.gateway.provider_name, None]

    tagged.clear()
    await client.get("/credits/balances", headers=HEADERS)
    assert tagged == [None]


@pytest.mark.asyncio
async def test_shutdown_waits_for_in_flight_sends(settings, ledger, session_factory, monkeypatch):
    await approved_sender(session_factory, BIZ, "AEGIS")
    await fund(ledger, BIZ, 1)
    entered, release = asyncio.Event(), asyncio.Event()

    async def stall():
        entered.set()
        await release.wait()

    gateway = ScriptedGateway(Submitted("ext-s"), hook=stall)
    monkeypatch.setattr(main, "get_settings", lambda: settings)
    monkeypatch.setattr(main, "build_services", lambda sf, s: build_services(sf, s, gateway=gateway))

    lifespan = main.lifespan(app)
    await lifespan.__aenter__()
    try:
        caller = asyncio.create_task(
            app.state.services.orchestrator.send_message(BIZ, "0241234567", "hello", "AEGIS")
        )
        await entered.wait()
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        shutdown = asyncio.create_task(lifespan.__aexit__(None, None, None))
        await asyncio.sleep(0.01)
        assert not shutdown.done()
        release.set()
        await shutdown
    finally:
        app.state.services = None
        app.state.session_factory = None
        app.state.engine = None

    assert await ledger.current_balance(BIZ, AccountType.SMS) == 0


@pytest.mark.asyncio
async def test_otp_send_verify_and_history(client, services, ledger, session_factory, respx_mock, monkeypatch):
    await approved_sender(session_factory, BIZ, "AEGIS")
    await fund(ledger, BIZ, 1)
    respx_mock.get(SEND_URL).mock(return_value=httpx.Response(200, text="1701|ext-otp"))
    monkeypatch.setattr(services.otp, "code_factory", lambda: "135790")

    r = await client.post("/otp/send", json={"phone": "0241234567"}, headers=HEADERS)
    assert r.status_code == 201, r.text
    data = r.json()["data"]
    assert data["phone"] == "233241234567"
    assert data["cost"] == 1
    assert "135790" not in r.text

    r = await client.post("/otp/verify", json={"phone": "0241234567", "code": "111111"}, headers=HEADERS)
    assert r.status_code == 400
    r = await client.post("/otp/verify", json={"phone": "0241234567"}, headers=HEADERS)
    assert r.status_code == 400
    r = await client.post("/otp/verify", json={"phone": "0241234567", "code": "135790"}, headers=HEADERS)
    assert r.status_code == 200
    assert r.json()["success"] is True

    r = await client.get("/otp/history", headers=HEADERS)
    assert r.json()["total"] == 1
    assert r.json()["items"][0]["status"] == "USED"
    assert r.json()["items"][0]["sms_message_id"] == data["sms_id"]


@pytest.mark.asyncio
async def test_otp_send_without_credits_is_400(client, session_factory):
    await approved_sender(session_factory, BIZ, "AEGIS")
    r = await client.post("/otp/send", json={"phone": "0241234567"}, headers=HEADERS)
    assert r.status_code == 400
    assert r.json()["reason"] == "insufficient_credits"
