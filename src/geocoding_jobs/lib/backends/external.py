"""External (paid) geocoding backend.

Talks to a batch geocoding service over HTTP. The service accepts a batch of
rendered queries, processes them asynchronously, and exposes status and
results per job:

    POST   {base_url}/jobs               -> {"id": "..."}
    GET    {base_url}/jobs/{id}          -> {"status": "running" | "completed" | "failed" | ...}
    DELETE {base_url}/jobs/{id}          -> 2xx when cancelled
    GET    {base_url}/jobs/{id}/results  -> {"processed_rows", "cache_hits", "results": [...]}
"""

import httpx
from loguru import logger
from shapely.geometry import Point

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
from geocoding_jobs.lib.formatter import FormatterExpression

DEFAULT_TIMEOUT = 30.0

# Remote status → backend status mapping
_STATUS_MAP: dict[str, BackendStatus] = {
    "accepted": BackendStatus.PENDING,
    "submitted": BackendStatus.PENDING,
    "pending": BackendStatus.PENDING,
    "running": BackendStatus.PENDING,
    "completed": BackendStatus.COMPLETED,
    "failed": BackendStatus.FAILED,
    "cancelled": BackendStatus.FAILED,
    "deleted": BackendStatus.FAILED,
}


class ExternalBackend(Backend):
    """HTTP batch geocoding backend used for high-resolution jobs."""

    def __init__(
        self,
        base_url: str | None,
        api_key: str | None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._base_url = (base_url or "").rstrip("/")
        self._api_key = api_key
        self._timeout = timeout

    @property
    def provider_name(self) -> str:
        return "external"

    @property
    def is_configured(self) -> bool:
        return bool(self._base_url and self._api_key)

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    async def submit(self, expression: FormatterExpression, rows: list[SourceRow]) -> str:
        """Submit rendered row queries as a new batch job.

        Raises:
            BackendSubmitError: On transport, HTTP, or response errors.
        """
        payload = {
            "rows": [{"id": row.row_id, "query": expression.render(row.values)} for row in rows],
        }
        data = await self._request("POST", "/jobs", BackendSubmitError, json=payload)
        remote_id = data.get("id")
        if not remote_id:
            raise BackendSubmitError(self.provider_name, "Response did not include a job id")
        logger.info(f"External geocoding job {remote_id} submitted with {len(rows)} rows")
        return str(remote_id)

    async def status(self, remote_id: str) -> BackendStatus:
        """Return the job status.

        Raises:
            BackendPollError: On transport errors or an unrecognized status.
        """
        data = await self._request("GET", f"/jobs/{remote_id}", BackendPollError)
        raw_status = str(data.get("status", "")).lower()
        status = _STATUS_MAP.get(raw_status)
        if status is None:
            raise BackendPollError(self.provider_name, f"Unrecognized job status {raw_status!r}")
        return status

    async def cancel(self, remote_id: str) -> bool:
        """Cancel the job.

        Raises:
            CancelError: On transport or HTTP errors.
        """
        await self._request("DELETE", f"/jobs/{remote_id}", CancelError, expect_json=False)
        return True

    async def fetch_results(self, remote_id: str) -> BackendResults:
        """Fetch counters and per-row coordinates of a completed job.

        Raises:
            BackendPollError: On transport errors or malformed results.
        """
        data = await self._request("GET", f"/jobs/{remote_id}/results", BackendPollError)
        return self._parse_results(data)

    def _parse_results(self, data: dict) -> BackendResults:
        """Parse a results payload into BackendResults."""
        try:
            matches: list[RowMatch] = []
            for entry in data.get("results", []):
                latitude = entry.get("latitude")
                longitude = entry.get("longitude")
                geometry = None
                if latitude is not None and longitude is not None:
                    geometry = Point(float(longitude), float(latitude))
                matches.append(RowMatch(row_id=int(entry["id"]), geometry=geometry))

            real_rows = sum(1 for match in matches if match.geometry is not None)
            return BackendResults(
                processed_rows=int(data.get("processed_rows", 0)),
                cache_hits=int(data.get("cache_hits", 0)),
                real_rows=int(data.get("real_rows", real_rows)),
                matches=matches,
            )
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Failed to parse external geocoder results: {e}")
            raise BackendPollError(self.provider_name, f"Failed to parse results: {e}") from e

    async def _request(
        self,
        method: str,
        path: str,
        error_cls: type[BackendError],
        *,
        expect_json: bool = True,
        **kwargs: object,
    ) -> dict:
        """Send a request, translating every failure into ``error_cls``."""
        try:
            async with httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout) as client:
                response = await client.request(method, path, headers=self._headers, **kwargs)  # type: ignore[arg-type]
                response.raise_for_status()

            if not expect_json:
                return {}
            data = response.json()
            if not isinstance(data, dict):
                raise error_cls(self.provider_name, "Response body is not a JSON object")
            return data

        except httpx.TimeoutException as e:
            logger.warning(f"External geocoder timeout on {method} {path}")
            raise error_cls(self.provider_name, "Request timed out") from e
        except httpx.HTTPStatusError as e:
            logger.warning(f"External geocoder HTTP error {e.response.status_code} on {method} {path}")
            raise error_cls(
                self.provider_name,
                f"Backend returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.ConnectError as e:
            logger.warning("External geocoder connection error")
            raise error_cls(self.provider_name, "Connection to geocoding backend failed") from e
        except BackendError:
            raise
        except Exception as e:
            logger.exception("External geocoder unexpected error")
            raise error_cls(self.provider_name, f"Unexpected error: {e}") from e
