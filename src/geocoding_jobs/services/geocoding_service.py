"""Geocoding service: creates geocoding jobs and drives them to a terminal state.

``GeocodingRunner`` owns the lifecycle of one record: it counts processable
rows, submits them to the backend chosen for the record's kind, polls until
the backend finishes or the run timeout expires, ingests results, and bills
credits. Failures never escape ``run()``/``cancel()``; they end in a
terminal state plus one error-sink notification.
"""

import asyncio
import contextlib
import uuid
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from geocoding_jobs.core.background import BackgroundTaskRunner, task_runner
from geocoding_jobs.core.config import Settings
from geocoding_jobs.core.database import session_scope
from geocoding_jobs.core.notifier import ErrorSink, LoguruErrorSink
from geocoding_jobs.lib.backends import (
    Backend,
    BackendPollError,
    BackendStatus,
    CancelError,
    Gazetteer,
    resolve_backend,
)
from geocoding_jobs.lib.formatter import compile_formatter
from geocoding_jobs.lib.jobs.errors import (
    GeocodingError,
    GeocodingTimeoutError,
    QuotaUninitializedError,
)
from geocoding_jobs.lib.jobs.states import (
    BILLABLE_KIND,
    GeocodingKind,
    GeocodingState,
    ensure_transition,
    is_terminal,
)
from geocoding_jobs.lib.jobs.validation import validate_geocoding
from geocoding_jobs.models.geocoding import Geocoding
from geocoding_jobs.models.tenant import Tenant
from geocoding_jobs.services.quota_service import finalize_used_credits, get_max_geocodable_rows
from geocoding_jobs.services.table_service import SqlTableDataProvider, TableDataProvider

CANCEL_MAX_ATTEMPTS = 5

# Runners with a run in flight in this process, so cancel() can reach them
_active_runners: dict[uuid.UUID, "GeocodingRunner"] = {}


class QuotaExceededError(GeocodingError):
    """Raised when a hard-limited pool has no quota left for a billable job."""


async def create_geocoding_job(
    session: AsyncSession,
    *,
    tenant_id: uuid.UUID,
    formatter: str,
    kind: str = GeocodingKind.HIGH_RESOLUTION.value,
    geometry_type: str | None = None,
    table_name: str | None = None,
    run_timeout: float | None = None,
    settings: Settings | None = None,
) -> Geocoding:
    """Validate and persist a new pending geocoding.

    Args:
        session: Database session.
        tenant_id: Owner of the job and of the quota pool it bills against.
        formatter: Row template, e.g. ``"{address}, {city}"``.
        kind: Geocoding kind.
        geometry_type: Geometry for non high-resolution kinds.
        table_name: Tenant table holding the rows to geocode.
        run_timeout: Seconds allowed between submission and completion.
        settings: Application settings (for the default run timeout).

    Returns:
        The created Geocoding in ``pending`` state.

    Raises:
        GeocodingValidationError: If any field is invalid.
        QuotaUninitializedError: If the tenant does not exist.
    """
    validate_geocoding(formatter=formatter, kind=kind, geometry_type=geometry_type, run_timeout=run_timeout)

    tenant = await session.get(Tenant, tenant_id)
    if tenant is None:
        msg = f"Tenant {tenant_id} does not exist"
        raise QuotaUninitializedError(msg)

    if run_timeout is None and settings is not None:
        run_timeout = settings.geocoding_run_timeout

    job = Geocoding(
        tenant_id=tenant_id,
        formatter=formatter,
        kind=kind,
        geometry_type=geometry_type,
        table_name=table_name,
        state=GeocodingState.PENDING.value,
        processable_rows=0,
        processed_rows=0,
        cache_hits=0,
        real_rows=0,
        used_credits=0,
    )
    if run_timeout is not None:
        job.run_timeout = run_timeout
    session.add(job)
    await session.commit()
    logger.info(f"Geocoding {job.id} created for tenant {tenant_id} ({kind}, table {table_name})")
    return job


async def get_geocoding_job(session: AsyncSession, job_id: uuid.UUID) -> Geocoding | None:
    """Get a geocoding by ID."""
    result = await session.execute(select(Geocoding).where(Geocoding.id == job_id))
    return result.scalar_one_or_none()


async def list_geocoding_jobs(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    *,
    state: str | None = None,
) -> list[Geocoding]:
    """List a tenant's geocodings, newest first, optionally filtered by state."""
    query = select(Geocoding).where(Geocoding.tenant_id == tenant_id)
    if state is not None:
        query = query.where(Geocoding.state == state)
    result = await session.execute(query.order_by(Geocoding.created_at.desc()))
    return list(result.scalars().all())


class GeocodingRunner:
    """Drives one geocoding record through the job state machine.

    The backend is resolved once, when the runner is built, and kept for the
    runner's lifetime. One run may be in flight per runner; ``cancel()`` may
    be called concurrently with it.

    Args:
        session: Database session used for every change to the record.
        job: The geocoding record.
        backend: Execution backend for the record's kind.
        table_provider: Source of processable rows.
        error_sink: Receives failures caught at the run/cancel boundary.
        settings: Application settings.
    """

    def __init__(
        self,
        session: AsyncSession,
        job: Geocoding,
        *,
        backend: Backend,
        table_provider: TableDataProvider,
        error_sink: ErrorSink,
        settings: Settings,
    ) -> None:
        self.job = job
        self._session = session
        self._backend = backend
        self._table_provider = table_provider
        self._error_sink = error_sink
        self._settings = settings
        self._session_lock = asyncio.Lock()
        self._run_lock = asyncio.Lock()
        self._cancelled = asyncio.Event()
        self._log = logger.bind(geocoding_id=str(job.id), tenant_id=str(job.tenant_id))

    @property
    def backend(self) -> Backend:
        return self._backend

    async def run(self) -> Geocoding:
        """Run the geocoding to a terminal state.

        Returns:
            The geocoding record; inspect ``state`` for the outcome.
        """
        if self._run_lock.locked():
            self._log.warning(f"Geocoding {self.job.id} is already running; ignoring second run")
            return self.job

        async with self._run_lock:
            if self.job.state != GeocodingState.PENDING:
                self._log.warning(f"Geocoding {self.job.id} is {self.job.state}; only pending geocodings run")
                return self.job
            try:
                await self._run()
            except GeocodingTimeoutError as e:
                await self._fail(e, failure="timeout")
            except QuotaExceededError as e:
                await self._fail(e, failure="quota")
            except Exception as e:
                await self._fail(e, failure="backend")
        return self.job

    async def cancel(self) -> Geocoding:
        """Cancel the geocoding.

        The backend is asked to stop the job up to CANCEL_MAX_ATTEMPTS times;
        if every attempt fails the error is reported once. The record ends
        ``cancelled`` either way, and an in-flight run discards whatever it
        receives afterwards.

        Returns:
            The geocoding record.
        """
        job = self.job
        async with self._session_lock:
            if await self._reload(for_update=False):
                self._log.info(f"Geocoding {job.id} already {job.state}; nothing to cancel")
                return job

        self._cancelled.set()
        if job.remote_id is not None:
            await self._cancel_remote(job.remote_id)

        async with self._session_lock:
            if not await self._reload():
                await self._transition(GeocodingState.CANCELLED, finished_at=datetime.now(UTC))
                self._log.info(f"Geocoding {job.id} cancelled")
        return job

    async def _run(self) -> None:
        job = self.job

        async with self._session_lock:
            if await self._reload():
                self._log.info(f"Geocoding {job.id} became {job.state} before it started; not running")
                return
            processable = await self._table_provider.processable_row_count(job)
            if processable == 0:
                await self._transition(
                    GeocodingState.COMPLETED,
                    processable_rows=0,
                    processed_rows=0,
                    cache_hits=0,
                    real_rows=0,
                    used_credits=0,
                    finished_at=datetime.now(UTC),
                )
                self._log.info(f"Geocoding {job.id} has no processable rows; completed without backend")
                return

            if not self._backend.is_configured:
                msg = f"Backend {self._backend.provider_name!r} is not configured"
                raise QuotaUninitializedError(msg)

            expression = compile_formatter(job.formatter)
            limit = None
            if job.kind == BILLABLE_KIND:
                limit = await get_max_geocodable_rows(self._session, job.tenant_id, excluding=job.id)
                if limit is not None and limit <= 0:
                    msg = f"Tenant {job.tenant_id} has no geocoding quota left"
                    raise QuotaExceededError(msg)
            rows = await self._table_provider.fetch_rows(job, expression.fields, limit)

        remote_id = await self._backend.submit(expression, rows)

        async with self._session_lock:
            if self._cancelled.is_set() or await self._reload():
                job.remote_id = remote_id
                await self._session.commit()
                self._log.info(f"Geocoding {job.id} was cancelled during submission; cancelling {remote_id}")
                await self._cancel_remote(remote_id)
                return
            await self._transition(
                GeocodingState.SUBMITTED,
                processable_rows=processable,
                remote_id=remote_id,
                started_at=datetime.now(UTC),
            )
        self._log.info(f"Geocoding {job.id} submitted to {self._backend.provider_name} as {remote_id} ({len(rows)} rows)")

        status = await self._wait_for_backend(remote_id)
        if status is None:
            self._log.info(f"Geocoding {job.id} cancelled while waiting; discarding backend status")
            return
        if status == BackendStatus.FAILED:
            raise BackendPollError(self._backend.provider_name, f"Job {remote_id} reported failure")

        results = await self._backend.fetch_results(remote_id)

        async with self._session_lock:
            if self._cancelled.is_set() or await self._reload():
                self._log.info(f"Geocoding {job.id} is {job.state}; discarding results of {remote_id}")
                return
            await self._table_provider.store_results(job, results)
            await finalize_used_credits(self._session, job, results)

        self._log.info(
            f"Geocoding {job.id} completed: {job.processed_rows} processed, {job.cache_hits} cache hits, "
            f"{job.real_rows} geocoded, {job.used_credits} credits"
        )

    async def _wait_for_backend(self, remote_id: str) -> BackendStatus | None:
        """Poll until the backend finishes, the run is cancelled (None), or the deadline passes.

        Raises:
            GeocodingTimeoutError: If the run timeout expires first.
        """
        deadline = asyncio.timeout(self.job.run_timeout)
        try:
            async with deadline:
                while True:
                    status = await self._backend.status(remote_id)
                    if self._cancelled.is_set():
                        return None
                    if status != BackendStatus.PENDING:
                        return status
                    with contextlib.suppress(TimeoutError):
                        await asyncio.wait_for(self._cancelled.wait(), timeout=self._settings.geocoding_poll_interval)
                    if self._cancelled.is_set():
                        return None
        except TimeoutError as e:
            if deadline.expired():
                raise GeocodingTimeoutError(self.job.run_timeout) from e
            raise

    async def _cancel_remote(self, remote_id: str) -> bool:
        last_error: BaseException | None = None
        for attempt in range(1, CANCEL_MAX_ATTEMPTS + 1):
            try:
                if await self._backend.cancel(remote_id):
                    self._log.info(f"Backend job {remote_id} cancelled on attempt {attempt}")
                    return True
                last_error = CancelError(self._backend.provider_name, f"Cancellation of {remote_id} was refused")
            except Exception as e:
                last_error = e
            self._log.warning(f"Cancel attempt {attempt}/{CANCEL_MAX_ATTEMPTS} for {remote_id} failed: {last_error}")
            if attempt < CANCEL_MAX_ATTEMPTS and self._settings.geocoding_cancel_backoff:
                await asyncio.sleep(self._settings.geocoding_cancel_backoff)

        error = last_error
        if not isinstance(error, CancelError):
            error = CancelError(
                self._backend.provider_name,
                f"Cancellation of {remote_id} failed after {CANCEL_MAX_ATTEMPTS} attempts: {last_error}",
            )
            error.__cause__ = last_error
        self._report(error, failure="cancel")
        return False

    async def _transition(self, target: GeocodingState, **fields: Any) -> None:
        """Apply a state change and its field updates in one commit."""
        state = ensure_transition(self.job.state, target)
        for name, value in fields.items():
            setattr(self.job, name, value)
        self.job.state = state.value
        await self._session.commit()

    async def _reload(self, *, for_update: bool = True) -> bool:
        """Re-read the record and tell whether it is already terminal.

        Another session or process may have cancelled it since this runner
        last committed. With ``for_update`` the row stays locked until the
        next commit.
        """
        await self._session.refresh(self.job, with_for_update=for_update)
        return is_terminal(self.job.state)

    async def _fail(self, exc: Exception, *, failure: str) -> None:
        job = self.job
        if self._cancelled.is_set():
            self._log.info(f"Geocoding {job.id} cancelled; ignoring {type(exc).__name__}: {exc}")
            return

        async with self._session_lock:
            try:
                await self._session.rollback()
                if await self._reload():
                    self._log.info(f"Geocoding {job.id} already {job.state}; ignoring {type(exc).__name__}: {exc}")
                    return
                await self._transition(
                    GeocodingState.FAILED,
                    error_message=f"{type(exc).__name__}: {exc}",
                    finished_at=datetime.now(UTC),
                )
            except SQLAlchemyError:
                self._log.exception(f"Could not persist failure of geocoding {job.id}")

        if failure == "timeout":
            self._log.warning(f"Geocoding {job.id} timed out after {job.run_timeout}s")
        else:
            self._log.error(f"Geocoding {job.id} failed: {type(exc).__name__}: {exc}")
        self._report(exc, failure=failure)

    def _report(self, exc: BaseException, *, failure: str) -> None:
        context = {
            "geocoding_id": str(self.job.id),
            "tenant_id": str(self.job.tenant_id),
            "kind": self.job.kind,
            "failure": failure,
        }
        with contextlib.suppress(Exception):
            self._error_sink.notify(exc, context)


def build_runner(
    session: AsyncSession,
    job: Geocoding,
    *,
    settings: Settings,
    error_sink: ErrorSink | None = None,
    table_provider: TableDataProvider | None = None,
    backend: Backend | None = None,
    gazetteer: Gazetteer | None = None,
) -> GeocodingRunner:
    """Build a runner for a geocoding, resolving its backend from the kind.

    Raises:
        GeocodingValidationError: If the record's kind needs a geometry type it lacks.
    """
    if backend is None:
        backend = resolve_backend(job.kind, job.geometry_type, settings, gazetteer=gazetteer)
    return GeocodingRunner(
        session,
        job,
        backend=backend,
        table_provider=table_provider if table_provider is not None else SqlTableDataProvider(session, settings),
        error_sink=error_sink if error_sink is not None else LoguruErrorSink(),
        settings=settings,
    )


async def run_geocoding_job(
    job_id: uuid.UUID,
    *,
    settings: Settings,
    error_sink: ErrorSink | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> Geocoding | None:
    """Load a geocoding in its own session and run it to a terminal state.

    Returns:
        The geocoding, or None if it does not exist.
    """
    scope = session_factory() if session_factory is not None else session_scope()
    async with scope as session:
        job = await get_geocoding_job(session, job_id)
        if job is None:
            logger.warning(f"Geocoding {job_id} not found; nothing to run")
            return None

        runner = build_runner(session, job, settings=settings, error_sink=error_sink)
        _active_runners[job_id] = runner
        try:
            return await runner.run()
        finally:
            _active_runners.pop(job_id, None)


def start_geocoding_job(
    job_id: uuid.UUID,
    *,
    settings: Settings,
    error_sink: ErrorSink | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    runner: BackgroundTaskRunner = task_runner,
) -> str:
    """Schedule a geocoding run in the background and return immediately.

    Raises:
        DuplicateTaskError: If a run for the same geocoding is already in flight.
    """
    return runner.submit_task(
        str(job_id),
        run_geocoding_job(job_id, settings=settings, error_sink=error_sink, session_factory=session_factory),
    )


async def cancel_geocoding_job(
    session: AsyncSession,
    job_id: uuid.UUID,
    *,
    settings: Settings,
    error_sink: ErrorSink | None = None,
) -> Geocoding | None:
    """Cancel a geocoding, signalling its in-flight run when there is one in this process.

    Returns:
        The geocoding, or None if it does not exist.
    """
    active = _active_runners.get(job_id)
    if active is not None:
        return await active.cancel()

    job = await get_geocoding_job(session, job_id)
    if job is None:
        return None
    return await build_runner(session, job, settings=settings, error_sink=error_sink).cancel()
