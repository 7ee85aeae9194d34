"""Geocoding job library: states, transitions, validation, and errors.

Public API:
    - GeocodingState / GeocodingKind / GeometryType: Enumerations
    - BILLABLE_KIND: The only kind whose usage is billed
    - TERMINAL_STATES / is_terminal / can_transition / ensure_transition: State machine rules
    - validate_geocoding: Field validation before any backend contact
    - GeocodingError and subclasses: Error taxonomy
"""

from geocoding_jobs.lib.jobs.errors import (
    GeocodingError,
    GeocodingTimeoutError,
    GeocodingValidationError,
    InvalidTransitionError,
    QuotaUninitializedError,
)
from geocoding_jobs.lib.jobs.states import (
    BILLABLE_KIND,
    TERMINAL_STATES,
    GeocodingKind,
    GeocodingState,
    GeometryType,
    can_transition,
    ensure_transition,
    is_terminal,
)
from geocoding_jobs.lib.jobs.validation import validate_geocoding

__all__ = [
    "BILLABLE_KIND",
    "TERMINAL_STATES",
    "GeocodingError",
    "GeocodingKind",
    "GeocodingState",
    "GeocodingTimeoutError",
    "GeocodingValidationError",
    "GeometryType",
    "InvalidTransitionError",
    "QuotaUninitializedError",
    "can_transition",
    "ensure_transition",
    "is_terminal",
    "validate_geocoding",
]
