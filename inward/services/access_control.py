"""Role -> capability policy.

The policy table is the single authority on what each tenant role may do.
Checks are pure and run before any read-modify-write so a denial never
leaves a partial update behind.
"""
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from inward.core.enums import UserRole, VehicleStatus
from inward.core.exceptions import AuthorizationError
from inward.core.logging import context_extra, get_logger
from inward.services.lifecycle import TOGGLEABLE_STATUSES, ACCOUNTING_STATUSES, TERMINAL_STATUSES


logger = get_logger(__name__)


class Capability(str, Enum):
    CREATE_VEHICLE = "create_vehicle"
    ADVANCE_INSTALL_STATUS = "advance_install_status"
    TOGGLE_PRODUCT_COMPLETION = "toggle_product_completion"
    VIEW_FINANCIALS = "view_financials"
    SET_INVOICE_NUMBER = "set_invoice_number"
    MARK_ACCOUNTANT_COMPLETE = "mark_accountant_complete"
    RECORD_DISCOUNT = "record_discount"
    MARK_DELIVERED = "mark_delivered"
    MANAGE_TENANT_CONFIG = "manage_tenant_config"


POLICY: Dict[UserRole, FrozenSet[Capability]] = {
    UserRole.ADMIN: frozenset(Capability),
    UserRole.MANAGER: frozenset({
        Capability.CREATE_VEHICLE,
        Capability.ADVANCE_INSTALL_STATUS,
        Capability.TOGGLE_PRODUCT_COMPLETION,
        Capability.VIEW_FINANCIALS,
        Capability.MARK_DELIVERED,
    }),
    UserRole.COORDINATOR: frozenset({
        Capability.CREATE_VEHICLE,
        Capability.MARK_DELIVERED,
    }),
    # Installers walk the install stages one step at a time or by completing products
    UserRole.INSTALLER: frozenset({
        Capability.ADVANCE_INSTALL_STATUS,
        Capability.TOGGLE_PRODUCT_COMPLETION,
    }),
    UserRole.ACCOUNTANT: frozenset({
        Capability.VIEW_FINANCIALS,
        Capability.SET_INVOICE_NUMBER,
        Capability.MARK_ACCOUNTANT_COMPLETE,
        Capability.RECORD_DISCOUNT,
    }),
}

# Statuses each role works on; None means every status
_VISIBLE_STATUSES: Dict[UserRole, Optional[FrozenSet[VehicleStatus]]] = {
    UserRole.ADMIN: None,
    UserRole.MANAGER: None,
    UserRole.COORDINATOR: None,
    UserRole.INSTALLER: TOGGLEABLE_STATUSES,
    UserRole.ACCOUNTANT: ACCOUNTING_STATUSES | TERMINAL_STATUSES,
}

FINANCIAL_FIELDS = frozenset({
    "invoice_number",
    "discount",
    "financials",
})


def _coerce_role(role: Any) -> Optional[UserRole]:
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(str(role).strip().lower())
    except ValueError:
        return None


def is_allowed(role: Any, capability: Capability) -> bool:
    """Return True if ``role`` holds ``capability``. Unknown roles hold nothing."""
    parsed = _coerce_role(role)
    if parsed is None:
        return False
    return capability in POLICY.get(parsed, frozenset())


def require(ctx, capability: Capability) -> None:
    """Raise AuthorizationError unless the context's role holds ``capability``."""
    if is_allowed(ctx.role, capability):
        return
    logger.warning(
        f"Access denied: role={ctx.role} capability={capability.value}",
        extra=context_extra(ctx),
    )
    role_label = ctx.role.value if isinstance(ctx.role, UserRole) else ctx.role
    raise AuthorizationError(
        f"Role '{role_label}' is not allowed to {capability.value.replace('_', ' ')}",
        code=f"forbidden_{capability.value}",
    )


def visible_statuses(role: Any) -> Optional[FrozenSet[VehicleStatus]]:
    """Statuses whose vehicles ``role`` may list; None means unrestricted."""
    parsed = _coerce_role(role)
    if parsed is None:
        return frozenset()
    return _VISIBLE_STATUSES[parsed]


def can_view_status(role: Any, status: VehicleStatus) -> bool:
    allowed = visible_statuses(role)
    return allowed is None or status in allowed


def redact_vehicle(role: Any, data: Dict[str, Any]) -> Dict[str, Any]:
    """Strip financial fields (and product prices) for roles without financial access."""
    if is_allowed(role, Capability.VIEW_FINANCIALS):
        return data
    redacted = {key: value for key, value in data.items() if key not in FINANCIAL_FIELDS}
    redacted["products"] = [
        {key: value for key, value in item.items() if key != "price"}
        for item in data.get("products") or []
    ]
    return redacted
