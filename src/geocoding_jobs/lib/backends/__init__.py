"""Backend library: pluggable execution backends for geocoding jobs.

Public API:
    - Backend: Abstract backend interface (submit / status / cancel / fetch_results)
    - BackendStatus / BackendResults / SourceRow / RowMatch: Backend data types
    - BackendError / BackendSubmitError / BackendPollError / CancelError: Backend errors
    - ExternalBackend: Paid HTTP batch backend for high-resolution jobs
    - InternalBackend: Free gazetteer-backed backend for boundary kinds
    - Gazetteer: Named boundary reference data
    - resolve_backend: Choose the backend for a geocoding kind
    - load_gazetteer: Load the configured gazetteer (cached per path)
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from geocoding_jobs.lib.backends.base import (
    Backend,
    BackendError,
    BackendPollError,
    BackendResults,
    BackendStatus,
    BackendSubmitError,
    CancelError,
    RowMatch,
    SourceRow,
)
from geocoding_jobs.lib.backends.external import ExternalBackend
from geocoding_jobs.lib.backends.gazetteer import Gazetteer
from geocoding_jobs.lib.backends.internal import InternalBackend
from geocoding_jobs.lib.jobs.errors import GeocodingValidationError
from geocoding_jobs.lib.jobs.states import GeocodingKind

if TYPE_CHECKING:
    from geocoding_jobs.core.config import Settings


@lru_cache(maxsize=4)
def load_gazetteer(path: str | None) -> Gazetteer:
    """Load the gazetteer at ``path``, or an empty one when no path is configured."""
    if not path:
        return Gazetteer()
    return Gazetteer.from_geojson(path)


def resolve_backend(
    kind: str,
    geometry_type: str | None,
    settings: Settings,
    *,
    gazetteer: Gazetteer | None = None,
) -> Backend:
    """Build the backend for a geocoding kind.

    High-resolution jobs go to the external backend; every other kind is
    handled by the internal backend, which needs a geometry type.

    Args:
        kind: Geocoding kind.
        geometry_type: Geometry to produce (required for internal kinds).
        settings: Application settings.
        gazetteer: Reference data for the internal backend; defaults to the
            configured gazetteer file.

    Returns:
        A new backend instance.

    Raises:
        GeocodingValidationError: If an internal kind has no geometry type.
    """
    if kind == GeocodingKind.HIGH_RESOLUTION:
        return ExternalBackend(
            base_url=settings.external_geocoder_url,
            api_key=settings.external_geocoder_api_key,
            timeout=settings.external_geocoder_timeout,
        )

    if geometry_type is None:
        raise GeocodingValidationError({"geometry_type": [f"is required for {kind} geocodings"]})
    if gazetteer is None:
        gazetteer = load_gazetteer(settings.internal_gazetteer_path)
    return InternalBackend(kind=kind, geometry_type=geometry_type, gazetteer=gazetteer)


__all__ = [
    "Backend",
    "BackendError",
    "BackendPollError",
    "BackendResults",
    "BackendStatus",
    "BackendSubmitError",
    "CancelError",
    "ExternalBackend",
    "Gazetteer",
    "InternalBackend",
    "RowMatch",
    "SourceRow",
    "load_gazetteer",
    "resolve_backend",
]
