"""Outbound messaging backends for customer notifications."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, List, Protocol

import httpx
from loguru import logger

if TYPE_CHECKING:
    from recharge_api.core.settings import Settings


@dataclass(slots=True)
class DispatchResult:
    """Outcome reported by a messaging backend for one message."""

    success: bool
    message_id: str | None = None
    error: str | None = None


class MessagingBackend(Protocol):
    """Send a text message to a phone number."""

    provider_label: str

    async def send(self, phone_number: str, message: str) -> DispatchResult:
        ...


def normalize_phone(phone_number: str | None, *, country_code: str = "55") -> str:
    """Keep digits only and prefix the country code when it is missing."""

    digits = "".join(ch for ch in (phone_number or "") if ch.isdigit())
    if not digits:
        return ""
    if country_code and not digits.startswith(country_code):
        digits = f"{country_code}{digits}"
    return digits


class ZApiWhatsAppBackend:
    """WhatsApp delivery through the Z-API HTTP gateway."""

    provider_label = "zapi-whatsapp"

    def __init__(
        self,
        *,
        api_key: str,
        instance_id: str,
        client_token: str = "",
        base_url: str = "https://api.z-api.io",
        country_code: str = "55",
        timeout_seconds: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._instance_id = instance_id
        self._client_token = client_token
        self._base_url = base_url.rstrip("/")
        self._country_code = country_code
        self._timeout_seconds = timeout_seconds
        self._http_client = http_client

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> "ZApiWhatsAppBackend":
        return cls(
            api_key=settings.zapi_api_key,
            instance_id=settings.zapi_instance_id,
            client_token=settings.zapi_client_token,
            base_url=settings.zapi_base_url,
            country_code=settings.whatsapp_country_code,
            timeout_seconds=settings.messaging_timeout_seconds,
            http_client=http_client,
        )

    @property
    def _instance_url(self) -> str:
        return f"{self._base_url}/instances/{self._instance_id}/token/{self._api_key}"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._client_token:
            headers["Client-Token"] = self._client_token
        return headers

    async def send(self, phone_number: str, message: str) -> DispatchResult:
        phone = normalize_phone(phone_number, country_code=self._country_code)
        if not phone:
            return DispatchResult(success=False, error="invalid phone number")

        close_client = False
        client = self._http_client
        if client is None:
            client = httpx.AsyncClient(timeout=self._timeout_seconds)
            close_client = True

        try:
            response = await client.post(
                f"{self._instance_url}/send-text",
                json={"phone": phone, "message": message},
                headers=self._headers(),
            )
            response.raise_for_status()
            payload: dict[str, Any] = response.json() if response.content else {}
        except httpx.TimeoutException as exc:
            logger.warning("WhatsApp dispatch timed out", provider=self.provider_label, error=str(exc))
            return DispatchResult(success=False, error="timeout")
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "WhatsApp dispatch rejected",
                provider=self.provider_label,
                status_code=exc.response.status_code,
            )
            return DispatchResult(success=False, error=f"http {exc.response.status_code}")
        except (httpx.HTTPError, ValueError) as exc:
            logger.exception("WhatsApp dispatch failed", provider=self.provider_label, error=str(exc))
            return DispatchResult(success=False, error=str(exc) or exc.__class__.__name__)
        finally:
            if close_client:
                await client.aclose()

        message_id = payload.get("messageId") or payload.get("id")
        return DispatchResult(success=True, message_id=str(message_id) if message_id else None)

    async def check_connection(self) -> bool:
        """Return whether the gateway reports the instance as connected."""

        close_client = False
        client = self._http_client
        if client is None:
            client = httpx.AsyncClient(timeout=self._timeout_seconds)
            close_client = True

        try:
            response = await client.get(f"{self._instance_url}/status", headers=self._headers())
            response.raise_for_status()
            return bool(response.json().get("connected", False))
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("WhatsApp connection check failed", provider=self.provider_label, error=str(exc))
            return False
        finally:
            if close_client:
                await client.aclose()


class LoggingMessagingBackend:
    """Fallback used while no gateway is configured; reports every send as failed."""

    provider_label = "log-only"

    async def send(self, phone_number: str, message: str) -> DispatchResult:
        logger.info(
            "Messaging gateway not configured; message not delivered",
            provider=self.provider_label,
            phone_suffix=phone_number[-4:] if phone_number else "",
            length=len(message),
        )
        return DispatchResult(success=False, error="messaging not configured")


@dataclass
class InMemoryMessagingBackend:
    """Stores outbound messages for inspection in tests."""

    sent_messages: List[tuple[str, str]]
    fail_with: str | None
    provider_label: str

    def __init__(self, *, fail_with: str | None = None) -> None:
        self.sent_messages = []
        self.fail_with = fail_with
        self.provider_label = "in-memory"

    async def send(self, phone_number: str, message: str) -> DispatchResult:
        if self.fail_with:
            return DispatchResult(success=False, error=self.fail_with)
        self.sent_messages.append((phone_number, message))
        return DispatchResult(success=True, message_id=f"mem-{len(self.sent_messages)}")


def build_messaging_backend(settings: "Settings") -> MessagingBackend:
    """Return the configured gateway, or the logging fallback when incomplete."""

    if settings.whatsapp_configured:
        return ZApiWhatsAppBackend.from_settings(settings)
    if settings.whatsapp_enabled:
        logger.warning(
            "WhatsApp enabled without Z-API credentials; falling back to log-only messaging",
            has_api_key=bool(settings.zapi_api_key),
            has_instance_id=bool(settings.zapi_instance_id),
        )
    return LoggingMessagingBackend()
