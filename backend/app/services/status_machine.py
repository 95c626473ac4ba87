"""Allowed asset status transitions and the side effects tied to them."""

from __future__ import annotations

from typing import Mapping

from ..models.asset import AssetStatus
from .errors import InvalidStatusTransition

S = AssetStatus

#: Statuses that require an assignee.
ASSIGNMENT_STATUSES = frozenset({S.ASSIGNED, S.IN_USE})

#: Entering one of these clears the assignee in the same commit.
UNASSIGNING_STATUSES = frozenset({S.DISPOSED, S.LOST, S.DAMAGED, S.AVAILABLE})

TERMINAL_STATUSES = frozenset({S.DISPOSED, S.LOST})

_OUT_OF_SERVICE = frozenset({S.UNDER_REPAIR, S.MAINTENANCE, S.DISPOSED, S.LOST, S.DAMAGED})

TRANSITIONS: Mapping[AssetStatus, frozenset[AssetStatus]] = {
    S.AVAILABLE: frozenset({S.ASSIGNED, S.IN_USE, S.IN_TRANSIT}) | _OUT_OF_SERVICE,
    S.ASSIGNED: frozenset({S.AVAILABLE, S.IN_USE}) | _OUT_OF_SERVICE,
    S.IN_USE: frozenset({S.AVAILABLE, S.ASSIGNED}) | _OUT_OF_SERVICE,
    S.IN_TRANSIT: frozenset({S.AVAILABLE, S.LOST, S.DAMAGED}),
    S.UNDER_REPAIR: frozenset(
        {S.AVAILABLE, S.ASSIGNED, S.IN_USE, S.MAINTENANCE, S.DISPOSED, S.LOST, S.DAMAGED}
    ),
    S.MAINTENANCE: frozenset(
        {S.AVAILABLE, S.ASSIGNED, S.IN_USE, S.UNDER_REPAIR, S.DISPOSED, S.LOST, S.DAMAGED}
    ),
    S.DAMAGED: frozenset({S.AVAILABLE, S.UNDER_REPAIR, S.DISPOSED, S.LOST}),
    S.DISPOSED: frozenset(),
    S.LOST: frozenset(),
}


def can_transition(current: AssetStatus, target: AssetStatus) -> bool:
    if current == target:
        return True
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(current: AssetStatus, target: AssetStatus) -> None:
    """Raise :class:`InvalidStatusTransition` unless ``current -> target`` is allowed."""

    if can_transition(current, target):
        return
    if current in TERMINAL_STATUSES:
        message = f"Asset is {current.value}; no further status changes are allowed."
    else:
        message = f"Cannot move an asset from {current.value} to {target.value}."
    raise InvalidStatusTransition(
        message,
        field="status",
        current_status=current.value,
        requested_status=target.value,
        allowed=sorted(status.value for status in TRANSITIONS.get(current, frozenset())),
    )


def clears_assignment(target: AssetStatus) -> bool:
    return target in UNASSIGNING_STATUSES


def requires_assignee(target: AssetStatus) -> bool:
    return target in ASSIGNMENT_STATUSES
