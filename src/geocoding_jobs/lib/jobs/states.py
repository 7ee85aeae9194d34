"""Geocoding job states, kinds, and the allowed state transitions."""

from enum import StrEnum

from geocoding_jobs.lib.jobs.errors import InvalidTransitionError


class GeocodingState(StrEnum):
    """Lifecycle state of a geocoding record."""

    PENDING = "pending"
    SUBMITTED = "submitted"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class GeocodingKind(StrEnum):
    """Geocoding mode; decides the backend and whether usage is billed."""

    HIGH_RESOLUTION = "high-resolution"
    ADMIN0 = "admin0"
    ADMIN1 = "admin1"
    NAMEDPLACE = "namedplace"
    POSTALCODE = "postalcode"
    IPADDRESS = "ipaddress"


class GeometryType(StrEnum):
    """Geometry produced by the internal backend."""

    POINT = "point"
    POLYGON = "polygon"


BILLABLE_KIND = GeocodingKind.HIGH_RESOLUTION

TERMINAL_STATES: frozenset[GeocodingState] = frozenset(
    {GeocodingState.COMPLETED, GeocodingState.FAILED, GeocodingState.CANCELLED}
)

_TRANSITIONS: dict[GeocodingState, frozenset[GeocodingState]] = {
    GeocodingState.PENDING: frozenset(
        {GeocodingState.SUBMITTED, GeocodingState.COMPLETED, GeocodingState.FAILED, GeocodingState.CANCELLED}
    ),
    GeocodingState.SUBMITTED: frozenset({GeocodingState.COMPLETED, GeocodingState.FAILED, GeocodingState.CANCELLED}),
    GeocodingState.COMPLETED: frozenset(),
    GeocodingState.FAILED: frozenset(),
    GeocodingState.CANCELLED: frozenset(),
}


def is_terminal(state: str) -> bool:
    """Return True if no further transition is possible from ``state``."""
    return GeocodingState(state) in TERMINAL_STATES


def can_transition(current: str, target: str) -> bool:
    """Return True if ``current`` may move to ``target``."""
    return GeocodingState(target) in _TRANSITIONS[GeocodingState(current)]


def ensure_transition(current: str, target: str) -> GeocodingState:
    """Validate a state change.

    Pending may complete directly (nothing to geocode); submitted never
    returns to pending.

    Args:
        current: The record's present state.
        target: The requested state.

    Returns:
        The target state as a GeocodingState.

    Raises:
        InvalidTransitionError: If the change is not allowed.
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(str(current), str(target))
    return GeocodingState(target)
