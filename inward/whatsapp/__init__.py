"""WhatsApp transports used by the notification gateway."""
from typing import Optional

import httpx

from inward.core.enums import WhatsAppProviderName
from inward.whatsapp.base import SendResult, WhatsAppTransport, normalize_phone_number, sanitize_payload
from inward.whatsapp.providers import (
    MockTransport, CloudApiTransport, TwilioTransport, WebhookTransport
)


_PROVIDERS = {
    WhatsAppProviderName.CLOUD_API: CloudApiTransport,
    WhatsAppProviderName.TWILIO: TwilioTransport,
    WhatsAppProviderName.CUSTOM: WebhookTransport,
}


def build_transport(config, client: Optional[httpx.AsyncClient] = None) -> WhatsAppTransport:
    """Instantiate the transport named by ``config.provider``.

    Raises ValueError for an unknown provider name.
    """
    provider = WhatsAppProviderName(config.provider)
    if provider == WhatsAppProviderName.MOCK:
        return MockTransport()
    return _PROVIDERS[provider](config, client=client)


__all__ = [
    "SendResult",
    "WhatsAppTransport",
    "MockTransport",
    "CloudApiTransport",
    "TwilioTransport",
    "WebhookTransport",
    "build_transport",
    "normalize_phone_number",
    "sanitize_payload",
]
