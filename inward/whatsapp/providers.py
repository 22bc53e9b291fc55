"""WhatsApp provider transports over httpx."""
from typing import List, Optional, Tuple
import uuid

import httpx

from inward.core.config import settings
from inward.core.logging import get_logger
from inward.whatsapp.base import SendResult, normalize_phone_number


logger = get_logger(__name__)


class MockTransport:
    """Logs messages instead of sending them. Used in development and tests."""

    name = "mock"

    def __init__(self, fail_for: Optional[set] = None):
        self.sent: List[Tuple[str, str]] = []
        self.fail_for = fail_for or set()

    async def send(self, to: str, message: str) -> SendResult:
        if to in self.fail_for:
            logger.info(f"Mock WhatsApp send to {to} failed on request")
            return SendResult(success=False, error="Mock delivery failure")
        self.sent.append((to, message))
        logger.info(f"Mock WhatsApp message to {to} ({len(message)} chars)")
        return SendResult(success=True, provider_message_id=f"mock-{uuid.uuid4().hex[:10]}")


class HttpTransport:
    """Shared POST-with-retry plumbing for the HTTP providers."""

    name = "http"
    MAX_ATTEMPTS = 2

    def __init__(self, config, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client

    def missing_fields(self) -> List[str]:
        return []

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._request(self._client, url, **kwargs)
        async with httpx.AsyncClient(timeout=settings.WHATSAPP_TIMEOUT_SECONDS) as client:
            return await self._request(client, url, **kwargs)

    async def _request(self, client: httpx.AsyncClient, url: str, **kwargs) -> httpx.Response:
        for attempt in range(self.MAX_ATTEMPTS):
            try:
                return await client.post(url, **kwargs)
            except httpx.TimeoutException:
                if attempt + 1 < self.MAX_ATTEMPTS:
                    logger.warning(f"{self.name} request timed out (attempt {attempt + 1}). Retrying...")
                    continue
                raise

    async def send(self, to: str, message: str) -> SendResult:
        missing = self.missing_fields()
        if missing:
            return SendResult(success=False, error=f"{self.name} configuration is incomplete: {', '.join(missing)}")

        phone = normalize_phone_number(to, settings.WHATSAPP_DEFAULT_COUNTRY_CODE)
        try:
            response = await self._deliver(phone, message)
        except httpx.HTTPError as e:
            logger.error(f"{self.name} transport error: {type(e).__name__}: {e}")
            return SendResult(success=False, error=f"{type(e).__name__}: {e}")

        if response.is_error:
            logger.error(f"{self.name} rejected message with status {response.status_code}: {response.text}")
            return SendResult(success=False, error=f"HTTP {response.status_code}: {response.text[:200]}")
        return SendResult(success=True, provider_message_id=self._message_id(response))

    async def _deliver(self, phone: str, message: str) -> httpx.Response:
        raise NotImplementedError

    def _message_id(self, response: httpx.Response) -> Optional[str]:
        return None


class CloudApiTransport(HttpTransport):
    """Meta WhatsApp Cloud API (Graph API ``/messages``)."""

    name = "cloud-api"

    def missing_fields(self) -> List[str]:
        return [f for f in ("phone_number_id", "access_token") if not getattr(self.config, f, None)]

    async def _deliver(self, phone: str, message: str) -> httpx.Response:
        url = f"{settings.WHATSAPP_CLOUD_API_BASE_URL.rstrip('/')}/{self.config.phone_number_id}/messages"
        payload = {
            "messaging_product": "whatsapp",
            "to": phone,
            "type": "text",
            "text": {"preview_url": False, "body": message},
        }
        headers = {"Authorization": f"Bearer {self.config.access_token}"}
        return await self._post(url, json=payload, headers=headers)

    def _message_id(self, response: httpx.Response) -> Optional[str]:
        try:
            return (response.json().get("messages") or [{}])[0].get("id")
        except ValueError:
            return None


class TwilioTransport(HttpTransport):
    """Twilio Programmable Messaging with ``whatsapp:`` addresses."""

    name = "twilio"

    def missing_fields(self) -> List[str]:
        return [f for f in ("account_sid", "auth_token", "from_number") if not getattr(self.config, f, None)]

    async def _deliver(self, phone: str, message: str) -> httpx.Response:
        sid = self.config.account_sid
        url = f"{settings.TWILIO_API_BASE_URL.rstrip('/')}/Accounts/{sid}/Messages.json"
        sender = normalize_phone_number(self.config.from_number, settings.WHATSAPP_DEFAULT_COUNTRY_CODE)
        data = {
            "From": f"whatsapp:+{sender}",
            "To": f"whatsapp:+{phone}",
            "Body": message,
        }
        return await self._post(url, data=data, auth=(sid, self.config.auth_token))

    def _message_id(self, response: httpx.Response) -> Optional[str]:
        try:
            return response.json().get("sid")
        except ValueError:
            return None


class WebhookTransport(HttpTransport):
    """Tenant-supplied HTTP endpoint receiving ``{to, message}``."""

    name = "custom"

    def missing_fields(self) -> List[str]:
        return [] if self.config.webhook_url else ["webhook_url"]

    async def _deliver(self, phone: str, message: str) -> httpx.Response:
        headers = {}
        if self.config.api_key:
            headers["X-API-Key"] = self.config.api_key
        payload = {"to": phone, "message": message, "from": self.config.from_number}
        return await self._post(self.config.webhook_url, json=payload, headers=headers)
