import httpx
import pytest

from sendcore.clients.provider import Failed, OutcomeCategory, ProviderGateway, Submitted

BASE = "https://provider.test/clientapi"
SEND_URL = f"{BASE}/send-message/"


@pytest.fixture
def gw():
    return ProviderGateway(BASE, "k-123", timeout=2)


@pytest.mark.asyncio
async def test_send_builds_wire_request_and_parses_success(gw, respx_mock):
    route = respx_mock.get(SEND_URL).mock(return_value=httpx.Response(200, text="1701|ext-42|233241234567|queued"))
    out = await gw.send("233241234567", "hello", "AEGIS", "cid-1")
    assert route.called
    params = route.calls.last.request.url.params
    assert params["key"] == "k-123"
    assert params["type"] == "0"
    assert params["dlr"] == "1"
    assert params["destination"] == "233241234567"
    assert params["source"] == "AEGIS"
    assert params["message"] == "hello"
    assert isinstance(out, Submitted)
    assert out.external_id == "ext-42"


@pytest.mark.asyncio
async def test_local_validation_short_circuits_without_network(gw, respx_mock):
    out = await gw.send("0241234567", "hello", "AEGIS", "cid-2")
    assert not respx_mock.calls
    assert isinstance(out, Failed)
    assert out.category is OutcomeCategory.INVALID_PARAMETERS
    assert out.error_code == "1702"

    out = await gw.send("233241234567", "hello", "My Shop", "cid-3")
    assert out.category is OutcomeCategory.INVALID_PARAMETERS
    assert not respx_mock.calls


@pytest.mark.asyncio
async def test_missing_sender_uses_default(respx_mock):
    gw = ProviderGateway(BASE, "k", default_sender_id="Sendexa")
    route = respx_mock.get(SEND_URL).mock(return_value=httpx.Response(200, text="1701|x"))
    await gw.send("233241234567", "hello", None, "cid-4")
    assert route.calls.last.request.url.params["source"] == "Sendexa"


@pytest.mark.asyncio
async def test_timeout_maps_to_timeout(gw, respx_mock):
    respx_mock.get(SEND_URL).mock(side_effect=httpx.ConnectTimeout("slow"))
    out = await gw.send("233241234567", "hello", "AEGIS", "cid-5")
    assert isinstance(out, Failed)
    assert out.category is OutcomeCategory.TIMEOUT


@pytest.mark.asyncio
async def test_connection_error_maps_to_provider_error(gw, respx_mock):
    respx_mock.get(SEND_URL).mock(side_effect=httpx.ConnectError("refused"))
    out = await gw.send("233241234567", "hello", "AEGIS", "cid-6")
    assert out.category is OutcomeCategory.PROVIDER_ERROR


@pytest.mark.asyncio
async def test_non_2xx_without_code_is_provider_error(gw, respx_mock):
    respx_mock.get(SEND_URL).mock(return_value=httpx.Response(503, text="<html>down</html>"))
    out = await gw.send("233241234567", "hello", "AEGIS", "cid-7")
    assert out.category is OutcomeCategory.PROVIDER_ERROR
    assert out.message.startswith("HTTP 503")


@pytest.mark.asyncio
async def test_non_2xx_with_code_uses_table(gw, respx_mock):
    respx_mock.get(SEND_URL).mock(return_value=httpx.Response(400, json={"code": "1707", "message": "bad source"}))
    out = await gw.send("233241234567", "hello", "AEGIS", "cid-8")
    assert out.category is OutcomeCategory.INVALID_SENDER


@pytest.mark.asyncio
async def test_garbage_2xx_is_failed(gw, respx_mock):
    respx_mock.get(SEND_URL).mock(return_value=httpx.Response(200, text="maintenance"))
    out = await gw.send("233241234567", "hello", "AEGIS", "cid-9")
    assert out.category is OutcomeCategory.FAILED


@pytest.mark.asyncio
async def test_delivery_status_best_effort(gw, respx_mock):
    url = f"{BASE}/delivery-status/"
    respx_mock.get(url).mock(return_value=httpx.Response(200, text="1701|DELIVRD"))
    status = await gw.get_delivery_status("ext-1")
    assert status.status == "delivered"


@pytest.mark.asyncio
async def test_delivery_status_failure_is_unknown(gw, respx_mock):
    url = f"{BASE}/delivery-status/"
    respx_mock.get(url).mock(side_effect=httpx.ConnectError("down"))
    status = await gw.get_delivery_status("ext-1")
    assert status.status == "unknown"
    assert status.error


@pytest.mark.asyncio
async def test_check_balance(gw, respx_mock):
    url = f"{BASE}/check-balance/"
    route = respx_mock.get(url).mock(return_value=httpx.Response(200, text="1701|125.50"))
    bal = await gw.check_balance()
    assert route.calls.last.request.url.params["action"] == "balance"
    assert bal.balance == pytest.approx(125.5)
    assert bal.currency == "GHS"
    assert bal.error is None


@pytest.mark.asyncio
async def test_check_balance_error_code(gw, respx_mock):
    url = f"{BASE}/check-balance/"
    respx_mock.get(url).mock(return_value=httpx.Response(200, text="1709"))
    bal = await gw.check_balance()
    assert bal.balance == 0
    assert bal.error == "User validation failed"
