import json

import httpx
import pytest

from recharge_api.core.settings import Settings
from recharge_api.services.notifications import (
    InMemoryMessagingBackend,
    LoggingMessagingBackend,
    ZApiWhatsAppBackend,
    build_messaging_backend,
    normalize_phone,
)


def _backend(handler, **overrides) -> ZApiWhatsAppBackend:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    options = {
        "api_key": "token-123",
        "instance_id": "inst-9",
        "client_token": "client-secret",
        "base_url": "https://zapi.test/",
    }
    options.update(overrides)
    return ZApiWhatsAppBackend(http_client=client, **options)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("(11) 98765-4321", "5511987654321"),
        ("5511987654321", "5511987654321"),
        ("+55 11 98765 4321", "5511987654321"),
        ("", ""),
        (None, ""),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.asyncio
async def test_zapi_send_posts_text_message():
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["client_token"] = request.headers.get("Client-Token")
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"zaapId": "z-1", "messageId": "msg-77"})

    result = await _backend(handler).send("(11) 98765-4321", "hello")

    assert result.success is True
    assert result.message_id == "msg-77"
    assert captured["url"] == "https://zapi.test/instances/inst-9/token/token-123/send-text"
    assert captured["client_token"] == "client-secret"
    assert captured["body"] == {"phone": "5511987654321", "message": "hello"}


@pytest.mark.asyncio
async def test_zapi_send_reports_http_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "instance offline"})

    result = await _backend(handler).send("11987654321", "hello")

    assert result.success is False
    assert result.error == "http 500"


@pytest.mark.asyncio
async def test_zapi_send_reports_timeouts():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow gateway", request=request)

    result = await _backend(handler).send("11987654321", "hello")

    assert result.success is False
    assert result.error == "timeout"


@pytest.mark.asyncio
async def test_zapi_send_rejects_empty_phone_without_request():
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("no request expected")

    result = await _backend(handler).send("", "hello")

    assert result.success is False
    assert result.error == "invalid phone number"


@pytest.mark.asyncio
async def test_zapi_check_connection():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/status")
        return httpx.Response(200, json={"connected": True})

    assert await _backend(handler).check_connection() is True


@pytest.mark.asyncio
async def test_logging_backend_never_reports_delivery():
    result = await LoggingMessagingBackend().send("11987654321", "hello")

    assert result.success is False


@pytest.mark.asyncio
async def test_in_memory_backend_records_messages():
    backend = InMemoryMessagingBackend()

    first = await backend.send("1", "a")
    second = await backend.send("2", "b")

    assert (first.message_id, second.message_id) == ("mem-1", "mem-2")
    assert backend.sent_messages == [("1", "a"), ("2", "b")]


def test_build_messaging_backend_selects_gateway():
    configured = Settings(whatsapp_enabled=True, zapi_api_key="key", zapi_instance_id="inst")
    incomplete = Settings(whatsapp_enabled=True, zapi_api_key="", zapi_instance_id="")
    disabled = Settings(whatsapp_enabled=False, zapi_api_key="key", zapi_instance_id="inst")

    assert isinstance(build_messaging_backend(configured), ZApiWhatsAppBackend)
    assert isinstance(build_messaging_backend(incomplete), LoggingMessagingBackend)
    assert isinstance(build_messaging_backend(disabled), LoggingMessagingBackend)
