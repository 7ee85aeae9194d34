"""Error taxonomy for geocoding job creation and execution."""


class GeocodingError(Exception):
    """Base class for geocoding engine errors."""


class GeocodingValidationError(GeocodingError):
    """Raised when a geocoding record fails validation.

    Args:
        errors: Mapping of field name to the validation messages for that field.
    """

    def __init__(self, errors: dict[str, list[str]]) -> None:
        self.errors = errors
        details = "; ".join(f"{field} {', '.join(messages)}" for field, messages in errors.items())
        super().__init__(f"Geocoding validation failed: {details}")


class QuotaUninitializedError(GeocodingError):
    """Raised when a quota pool or backend is needed but not available."""


class GeocodingTimeoutError(GeocodingError, TimeoutError):
    """Raised when a submitted job does not finish before its run timeout."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Geocoding did not finish within {timeout}s")


class InvalidTransitionError(GeocodingError):
    """Raised when a state change is not allowed by the job state machine."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot move geocoding from {current!r} to {target!r}")
