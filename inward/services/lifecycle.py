"""Vehicle lifecycle state graph.

Pure functions only: which statuses exist, their order, and which edges are
legal. Applying a transition to a stored record is done by
``inward.services.workflow``.
"""
from typing import FrozenSet, Optional, Union

from inward.core.enums import VehicleStatus
from inward.core.exceptions import InvalidTransitionError


ORDERED_STATUSES = (
    VehicleStatus.PENDING,
    VehicleStatus.IN_PROGRESS,
    VehicleStatus.UNDER_INSTALLATION,
    VehicleStatus.INSTALLATION_COMPLETE,
    VehicleStatus.COMPLETED,
    VehicleStatus.DELIVERED,
)

# Product completion may be toggled only while the vehicle is being fitted
TOGGLEABLE_STATUSES: FrozenSet[VehicleStatus] = frozenset({
    VehicleStatus.PENDING,
    VehicleStatus.IN_PROGRESS,
    VehicleStatus.UNDER_INSTALLATION,
})

TERMINAL_STATUSES: FrozenSet[VehicleStatus] = frozenset({
    VehicleStatus.DELIVERED,
    VehicleStatus.COMPLETE_AND_DELIVERED,
})

# Accountant-owned stage: invoice number and discount live here
ACCOUNTING_STATUSES: FrozenSet[VehicleStatus] = frozenset({
    VehicleStatus.INSTALLATION_COMPLETE,
    VehicleStatus.COMPLETED,
})

INSTALL_SEGMENT: FrozenSet[VehicleStatus] = TOGGLEABLE_STATUSES | {VehicleStatus.INSTALLATION_COMPLETE}

COMPLETED_LIKE_STATUSES: FrozenSet[VehicleStatus] = frozenset({
    VehicleStatus.COMPLETED,
}) | TERMINAL_STATUSES


def parse_status(value: Union[str, VehicleStatus]) -> VehicleStatus:
    """Coerce a raw value to a VehicleStatus or fail with InvalidTransitionError."""
    if isinstance(value, VehicleStatus):
        return value
    try:
        return VehicleStatus(str(value).strip().lower())
    except ValueError:
        raise InvalidTransitionError(
            f"Unknown status '{value}'",
            target=str(value),
            code="unknown_status",
        )


def rank(status: VehicleStatus) -> int:
    """Position of a status in the lifecycle; the legacy alias ranks as delivered."""
    if status == VehicleStatus.COMPLETE_AND_DELIVERED:
        return ORDERED_STATUSES.index(VehicleStatus.DELIVERED)
    return ORDERED_STATUSES.index(status)


def is_terminal(status: VehicleStatus) -> bool:
    return status in TERMINAL_STATUSES


def next_status(status: VehicleStatus) -> Optional[VehicleStatus]:
    if is_terminal(status):
        return None
    return ORDERED_STATUSES[rank(status) + 1]


def validate_transition(current: VehicleStatus, target: VehicleStatus) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is a single forward step."""
    if is_terminal(current):
        raise InvalidTransitionError(
            f"Vehicle is already {current.value}; no further status changes are allowed",
            current=current.value,
            target=target.value,
            code="terminal_status",
        )
    if target == current:
        raise InvalidTransitionError(
            f"Vehicle is already {current.value}",
            current=current.value,
            target=target.value,
            code="already_in_status",
        )
    target_rank = rank(target)
    current_rank = rank(current)
    if target_rank <= current_rank:
        raise InvalidTransitionError(
            f"Cannot move from {current.value} back to {target.value}",
            current=current.value,
            target=target.value,
            code="backward_transition",
        )
    if target_rank != current_rank + 1:
        raise InvalidTransitionError(
            f"Cannot skip from {current.value} to {target.value}; next status is "
            f"{ORDERED_STATUSES[current_rank + 1].value}",
            current=current.value,
            target=target.value,
            code="skipped_transition",
        )
