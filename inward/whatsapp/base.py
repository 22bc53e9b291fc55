"""Transport contract shared by the WhatsApp providers."""
import re
from dataclasses import dataclass
from typing import Any, Optional, Protocol


@dataclass
class SendResult:
    success: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None


class WhatsAppTransport(Protocol):
    name: str

    async def send(self, to: str, message: str) -> SendResult:
        ...


SENSITIVE_KEYS = {"access_token", "auth_token", "api_key", "authorization", "token"}


def _mask_value(value: Any) -> Any:
    if value is None:
        return None
    text = str(value)
    if len(text) <= 4:
        return "****"
    return f"****{text[-4:]}"


def sanitize_payload(payload: dict) -> dict:
    """Mask credentials before a payload is logged or returned to a client."""
    def _sanitize(value: Any) -> Any:
        if isinstance(value, dict):
            return {
                key: _mask_value(inner) if key.lower() in SENSITIVE_KEYS else _sanitize(inner)
                for key, inner in value.items()
            }
        if isinstance(value, list):
            return [_sanitize(item) for item in value]
        return value

    return _sanitize(payload)


def normalize_phone_number(phone: str, country_code: str = "91") -> str:
    """Digits-only international form; bare 10-digit numbers get ``country_code``.

    ``0`` + 10 digits is treated as a national trunk prefix and replaced.
    Anything else is assumed to already carry a country code.
    """
    cleaned = re.sub(r"\D", "", phone or "")
    if re.fullmatch(r"\d{10}", cleaned):
        return country_code + cleaned
    if re.fullmatch(r"0\d{10}", cleaned):
        return country_code + cleaned[1:]
    return cleaned
