"""Field validation for geocoding records, run before any backend contact."""

from geocoding_jobs.lib.jobs.errors import GeocodingValidationError
from geocoding_jobs.lib.jobs.states import GeocodingKind, GeometryType

_KINDS = frozenset(kind.value for kind in GeocodingKind)
_GEOMETRY_TYPES = frozenset(geometry.value for geometry in GeometryType)


def validate_geocoding(
    *,
    formatter: str | None,
    kind: str | None,
    geometry_type: str | None = None,
    run_timeout: float | None = None,
) -> None:
    """Validate the user-supplied fields of a geocoding record.

    Args:
        formatter: Row template, e.g. ``"{street}, {city}"``.
        kind: Geocoding kind.
        geometry_type: Geometry produced for non high-resolution kinds.
        run_timeout: Optional per-record timeout in seconds.

    Raises:
        GeocodingValidationError: With every failing field and its messages.
    """
    errors: dict[str, list[str]] = {}

    if formatter is None or not formatter.strip():
        errors.setdefault("formatter", []).append("is not present")

    if kind not in _KINDS:
        errors.setdefault("kind", []).append("is not in range or set")
    elif kind != GeocodingKind.HIGH_RESOLUTION:
        if geometry_type is None:
            errors.setdefault("geometry_type", []).append(f"is required for {kind} geocodings")
        elif geometry_type not in _GEOMETRY_TYPES:
            errors.setdefault("geometry_type", []).append("is not in range or set")

    if run_timeout is not None and run_timeout <= 0:
        errors.setdefault("run_timeout", []).append("must be greater than 0")

    if errors:
        raise GeocodingValidationError(errors)
