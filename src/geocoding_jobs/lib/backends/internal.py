"""Internal (free) geocoding backend.

Matches each row's rendered query against a gazetteer of named boundaries
(countries, regions, places, postal codes, IP ranges). Work runs as an
asyncio task per submitted job so the runner can poll it like a remote
service.
"""

import asyncio
import uuid

from loguru import logger

from geocoding_jobs.lib.backends.base import (
    Backend,
    BackendPollError,
    BackendResults,
    BackendStatus,
    RowMatch,
    SourceRow,
)
from geocoding_jobs.lib.backends.gazetteer import Gazetteer
from geocoding_jobs.lib.formatter import FormatterExpression
from geocoding_jobs.lib.jobs.states import GeometryType

# Rows matched between yields to the event loop
_CHUNK_SIZE = 500


class InternalBackend(Backend):
    """Gazetteer-backed backend for administrative and place kinds."""

    def __init__(self, kind: str, geometry_type: str, gazetteer: Gazetteer | None = None) -> None:
        self.kind = kind
        self.geometry_type = GeometryType(geometry_type)
        self._gazetteer = gazetteer if gazetteer is not None else Gazetteer()
        self._jobs: dict[str, asyncio.Task[BackendResults]] = {}

    @property
    def provider_name(self) -> str:
        return "internal"

    async def submit(self, expression: FormatterExpression, rows: list[SourceRow]) -> str:
        remote_id = str(uuid.uuid4())
        self._jobs[remote_id] = asyncio.create_task(self._geocode(expression, rows))
        logger.debug(f"Internal geocoding {remote_id} started for {len(rows)} rows ({self.kind})")
        return remote_id

    async def status(self, remote_id: str) -> BackendStatus:
        task = self._get_task(remote_id)
        if not task.done():
            return BackendStatus.PENDING
        if task.cancelled() or task.exception() is not None:
            return BackendStatus.FAILED
        return BackendStatus.COMPLETED

    async def cancel(self, remote_id: str) -> bool:
        task = self._jobs.get(remote_id)
        if task is None:
            # Started by another backend instance; nothing runs here
            logger.debug(f"Internal geocoding {remote_id} is not running here; nothing to stop")
            return True
        task.cancel()
        return True

    async def fetch_results(self, remote_id: str) -> BackendResults:
        task = self._get_task(remote_id)
        if not task.done():
            raise BackendPollError(self.provider_name, f"Job {remote_id} has not finished")
        if task.cancelled():
            raise BackendPollError(self.provider_name, f"Job {remote_id} was cancelled")
        error = task.exception()
        if error is not None:
            raise BackendPollError(self.provider_name, f"Job {remote_id} failed: {error}") from error
        return task.result()

    def _get_task(self, remote_id: str) -> asyncio.Task[BackendResults]:
        task = self._jobs.get(remote_id)
        if task is None:
            raise BackendPollError(self.provider_name, f"Unknown job {remote_id}")
        return task

    async def _geocode(self, expression: FormatterExpression, rows: list[SourceRow]) -> BackendResults:
        matches: list[RowMatch] = []
        real_rows = 0
        for index, row in enumerate(rows, start=1):
            geometry = self._gazetteer.lookup(self.kind, expression.render(row.values))
            if geometry is not None:
                if self.geometry_type == GeometryType.POINT and geometry.geom_type != "Point":
                    geometry = geometry.representative_point()
                real_rows += 1
            matches.append(RowMatch(row_id=row.row_id, geometry=geometry))
            if index % _CHUNK_SIZE == 0:
                await asyncio.sleep(0)

        return BackendResults(processed_rows=len(rows), cache_hits=0, real_rows=real_rows, matches=matches)
