"""JWT verification helpers.

Tokens are issued by the external auth provider (Supabase style). This module
only decodes them; ``create_access_token`` exists for tooling and tests.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import jwt, JWTError
from pydantic import BaseModel, ConfigDict, ValidationError
import uuid

from inward.core.config import settings
from inward.core.logging import get_logger


logger = get_logger(__name__)


class TokenPayload(BaseModel):
    """JWT token payload compliant with Supabase JWT."""
    model_config = ConfigDict(extra="allow")

    sub: str  # user_id
    email: Optional[str] = None
    # Tenant hint only; the resolver re-derives it from memberships
    tenant_id: Optional[str] = None
    type: Optional[str] = "access"
    exp: datetime
    iat: datetime
    aud: Optional[str] = None
    iss: Optional[str] = None
    app_metadata: dict = {}
    user_metadata: dict = {}


def create_access_token(
    user_id: str,
    tenant_id: Optional[str] = None,
    email: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a new access token."""
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    payload = {
        "sub": user_id,
        "email": email,
        "tenant_id": tenant_id,
        "type": "access",
        "exp": expire,
        "iat": now,
        "jti": str(uuid.uuid4()),
    }

    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[TokenPayload]:
    """Decode and validate a Supabase JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_aud": False},
        )
    except JWTError as e:
        logger.info(f"Token decode error: {e}")
        return None

    # Custom claims may live in app_metadata (Supabase Admin API setups)
    app_meta = payload.get("app_metadata") or {}
    user_meta = payload.get("user_metadata") or {}
    if not payload.get("tenant_id"):
        payload["tenant_id"] = app_meta.get("tenant_id") or user_meta.get("tenant_id")

    try:
        return TokenPayload(**payload)
    except ValidationError as e:
        logger.info(f"Token payload rejected: {e}")
        return None
