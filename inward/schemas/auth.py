"""Authentication schemas."""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel

from inward.core.enums import UserRole


class MembershipResponse(BaseModel):
    """A workspace the user belongs to."""
    tenant_id: str
    tenant_name: str
    workspace_slug: str
    role: UserRole
    is_primary_admin: bool = False


class UserResponse(BaseModel):
    """User response schema."""
    id: str
    email: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    is_active: bool
    is_super_admin: bool = False
    created_at: datetime
    last_seen_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MeResponse(BaseModel):
    """Current user with the tenant scope resolved for this request."""
    user: UserResponse
    tenant_id: Optional[str] = None
    role: UserRole
    is_super_admin: bool
    capabilities: List[str]
    visible_statuses: Optional[List[str]] = None
    memberships: List[MembershipResponse]
