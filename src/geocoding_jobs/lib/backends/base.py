"""Abstract geocoding backend interface for pluggable job execution."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from shapely.geometry.base import BaseGeometry

from geocoding_jobs.lib.formatter import FormatterExpression


class BackendStatus(StrEnum):
    """Status of a job as reported by the backend."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class SourceRow:
    """One geocodable row of the tenant table."""

    row_id: int
    values: dict[str, Any]


@dataclass(frozen=True)
class RowMatch:
    """Geocoding outcome for one row; ``geometry`` is None when nothing matched."""

    row_id: int
    geometry: BaseGeometry | None = None


@dataclass
class BackendResults:
    """Counters and per-row outcomes of a finished backend job."""

    processed_rows: int
    cache_hits: int = 0
    real_rows: int = 0
    matches: list[RowMatch] = field(default_factory=list)

    def __post_init__(self) -> None:
        for name in ("processed_rows", "cache_hits", "real_rows"):
            if getattr(self, name) < 0:
                msg = f"{name} must be non-negative, got {getattr(self, name)}"
                raise ValueError(msg)
        if self.real_rows > self.processed_rows + self.cache_hits:
            msg = f"real_rows ({self.real_rows}) exceeds attempted rows ({self.processed_rows + self.cache_hits})"
            raise ValueError(msg)


class BackendError(Exception):
    """Raised when a geocoding backend cannot be contacted or understood.

    Args:
        provider_name: Name of the failing backend.
        message: Human-readable error description.
        status_code: Optional HTTP status code from the backend.
    """

    def __init__(self, provider_name: str, message: str, status_code: int | None = None) -> None:
        self.provider_name = provider_name
        self.message = message
        self.status_code = status_code
        super().__init__(f"{provider_name}: {message}")


class BackendSubmitError(BackendError):
    """Submitting the job to the backend failed."""


class BackendPollError(BackendError):
    """Polling status or fetching results failed, or the backend reported failure."""


class CancelError(BackendError):
    """The backend refused or failed to cancel a job."""


class Backend(ABC):
    """Abstract geocoding backend. All backends must implement this.

    Any object exposing the same coroutines is accepted by the job runner.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Unique name identifying this backend."""

    @property
    def is_configured(self) -> bool:
        """Whether this backend has all required configuration (e.g., URL and API key)."""
        return True

    @abstractmethod
    async def submit(self, expression: FormatterExpression, rows: list[SourceRow]) -> str:
        """Start a geocoding job.

        Args:
            expression: Compiled formatter used to build each row's query.
            rows: Rows to geocode.

        Returns:
            Backend-assigned job identifier.

        Raises:
            BackendSubmitError: If the job could not be started.
        """

    @abstractmethod
    async def status(self, remote_id: str) -> BackendStatus:
        """Return the current status of a submitted job.

        Raises:
            BackendPollError: If the status could not be obtained.
        """

    @abstractmethod
    async def cancel(self, remote_id: str) -> bool:
        """Ask the backend to stop a job.

        Returns:
            True if the backend accepted the cancellation.

        Raises:
            CancelError: If the backend could not be reached.
        """

    @abstractmethod
    async def fetch_results(self, remote_id: str) -> BackendResults:
        """Fetch the results of a completed job.

        Raises:
            BackendPollError: If the results could not be obtained.
        """
