"""Application dependencies for dependency injection."""
from datetime import datetime, timezone
from typing import Annotated, Optional
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from inward.core.database import get_db
from inward.core.security import decode_token, TokenPayload
from inward.core.logging import get_logger
from inward.models.user import User
from inward.services.notifications import NotificationDispatcher, get_notification_dispatcher
from inward.services.tenant_resolver import TenantContext, resolve_tenant_context
from inward.services.workflow import VehicleWorkflow


security = HTTPBearer()
logger = get_logger(__name__)


async def get_current_token(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    """Validate and decode the JWT token from the Authorization header."""
    token = credentials.credentials
    payload = decode_token(token)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload.type != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type. Access token required.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload


async def get_current_user(
    token: TokenPayload = Depends(get_current_token),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Load the staff account behind the token. Accounts are never auto-created."""
    result = await db.execute(
        select(User).where(User.id == token.sub)
    )
    user = result.scalar_one_or_none()

    if user is None:
        logger.warning(f"Token subject {token.sub} has no user record")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is inactive",
        )

    user.last_seen_at = datetime.now(timezone.utc)
    await db.commit()
    return user


async def get_tenant_context(
    token: TokenPayload = Depends(get_current_token),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-ID"),
) -> TenantContext:
    """Resolve the tenant scope for the current request.

    The X-Tenant-ID header is an explicit workspace selection; the token's
    tenant claim is only a hint. Both are checked against memberships.
    """
    return await resolve_tenant_context(
        db,
        user,
        requested_tenant_id=(x_tenant_id or "").strip() or None,
        hinted_tenant_id=token.tenant_id,
    )


def get_workflow(db: AsyncSession = Depends(get_db)) -> VehicleWorkflow:
    return VehicleWorkflow(db)


# Type aliases for cleaner dependency injection
CurrentToken = Annotated[TokenPayload, Depends(get_current_token)]
CurrentUser = Annotated[User, Depends(get_current_user)]
TenantCtx = Annotated[TenantContext, Depends(get_tenant_context)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
Workflow = Annotated[VehicleWorkflow, Depends(get_workflow)]
Dispatcher = Annotated[NotificationDispatcher, Depends(get_notification_dispatcher)]
