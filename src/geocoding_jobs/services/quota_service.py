"""Quota service: loads quota pools from the database and bills finished jobs.

A tenant that belongs to an organization draws from the organization's pool
(quota, block price, soft-limit flag); otherwise it draws from its own.
Usage of a pool is the number of rows attempted by its billable,
non-cancelled geocodings since the pool's billing period start.
"""

import asyncio
import uuid
import weakref
from datetime import UTC, datetime

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from geocoding_jobs.lib.backends.base import BackendResults
from geocoding_jobs.lib.jobs.errors import QuotaUninitializedError
from geocoding_jobs.lib.jobs.states import BILLABLE_KIND, GeocodingState, ensure_transition
from geocoding_jobs.lib.quota import QuotaSnapshot, calculate_used_credits, max_geocodable_rows, price
from geocoding_jobs.models.geocoding import Geocoding
from geocoding_jobs.models.tenant import Organization, Tenant

DEFAULT_BLOCK_SIZE = 1000

# One lock per quota pool, alive only while someone holds a reference
_pool_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def pool_lock(pool_key: str) -> asyncio.Lock:
    """Return the lock serializing credit finalization for a quota pool."""
    lock = _pool_locks.get(pool_key)
    if lock is None:
        lock = asyncio.Lock()
        _pool_locks[pool_key] = lock
    return lock


class TenantQuotaStore:
    """Quota pool of one tenant, read through a database session.

    Args:
        session: Database session.
        tenant_id: Tenant whose pool is consulted.
        block_size: Credits per priced block.
    """

    def __init__(self, session: AsyncSession, tenant_id: uuid.UUID, block_size: int = DEFAULT_BLOCK_SIZE) -> None:
        self._session = session
        self._tenant_id = tenant_id
        self._block_size = block_size

    async def _load_owner(self, *, for_update: bool = False) -> tuple[Tenant, Organization | None]:
        """Load the tenant and, if it has one, its organization (optionally row-locked)."""
        tenant = await self._session.get(Tenant, self._tenant_id, with_for_update=for_update)
        if tenant is None:
            msg = f"Tenant {self._tenant_id} does not exist; no quota pool available"
            raise QuotaUninitializedError(msg)
        organization = None
        if tenant.organization_id is not None:
            organization = await self._session.get(Organization, tenant.organization_id, with_for_update=for_update)
        return tenant, organization

    async def pool_key(self) -> str:
        """Identifier of the pool, shared by all members of an organization."""
        tenant, organization = await self._load_owner()
        if organization is not None:
            return f"organization:{organization.id}"
        return f"tenant:{tenant.id}"

    async def quota(self) -> int:
        tenant, organization = await self._load_owner()
        return (organization or tenant).geocoding_quota

    async def soft_limit(self) -> bool:
        tenant, organization = await self._load_owner()
        return (organization or tenant).soft_geocoding_limit

    async def hard_limit(self) -> bool:
        return not await self.soft_limit()

    async def other_jobs_used_credits(self, excluding: uuid.UUID | None = None) -> int:
        """Rows attempted by the pool's billable, non-cancelled jobs other than ``excluding``."""
        tenant, organization = await self._load_owner()
        return await self._usage(tenant, organization, excluding)

    async def snapshot(self, excluding: uuid.UUID | None = None, *, for_update: bool = False) -> QuotaSnapshot:
        """Read the pool's quota state in one go.

        Args:
            excluding: Geocoding to leave out of the usage sum (the one being billed).
            for_update: Lock the pool owner rows until the transaction ends.
        """
        tenant, organization = await self._load_owner(for_update=for_update)
        owner = organization or tenant
        return QuotaSnapshot(
            quota=owner.geocoding_quota,
            soft_limit=owner.soft_geocoding_limit,
            prior_usage=await self._usage(tenant, organization, excluding),
            block_price=owner.geocoding_block_price,
            block_size=self._block_size,
        )

    async def _usage(self, tenant: Tenant, organization: Organization | None, excluding: uuid.UUID | None) -> int:
        query = select(func.coalesce(func.sum(Geocoding.processed_rows + Geocoding.cache_hits), 0)).where(
            Geocoding.kind == BILLABLE_KIND.value,
            Geocoding.state != GeocodingState.CANCELLED.value,
        )
        if organization is not None:
            members = select(Tenant.id).where(Tenant.organization_id == organization.id)
            query = query.where(Geocoding.tenant_id.in_(members))
        else:
            query = query.where(Geocoding.tenant_id == tenant.id)
        if excluding is not None:
            query = query.where(Geocoding.id != excluding)

        period_start = (organization or tenant).geocoding_period_start
        if period_start is not None:
            query = query.where(Geocoding.created_at >= period_start)

        result = await self._session.execute(query)
        return int(result.scalar_one())


async def get_max_geocodable_rows(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    *,
    excluding: uuid.UUID | None = None,
) -> int | None:
    """Return the rows a tenant may still geocode, or None when soft-limited.

    Args:
        session: Database session.
        tenant_id: Tenant ID.
        excluding: Geocoding whose own usage should not count.
    """
    snapshot = await TenantQuotaStore(session, tenant_id).snapshot(excluding)
    return max_geocodable_rows(snapshot)


async def get_used_credits(session: AsyncSession, job: Geocoding) -> int:
    """Compute (without storing) the credits a geocoding would be billed."""
    snapshot = await TenantQuotaStore(session, job.tenant_id).snapshot(job.id)
    return calculate_used_credits(job.kind, job.attempted_rows, snapshot)


async def get_job_price(session: AsyncSession, job: Geocoding, block_size: int = DEFAULT_BLOCK_SIZE) -> float:
    """Price of a geocoding's billed credits at its pool's block price."""
    snapshot = await TenantQuotaStore(session, job.tenant_id, block_size=block_size).snapshot(job.id)
    return price(job.used_credits or 0, snapshot.block_price, snapshot.block_size)


async def finalize_used_credits(session: AsyncSession, job: Geocoding, results: BackendResults) -> Geocoding:
    """Store a finished job's counters, bill it, and mark it completed.

    Credit computation reads the usage of the pool's other jobs, so it is
    serialized per pool: an in-process lock plus row locks on the pool owner
    for databases that support them. The counters, credits, and state change
    are committed together.

    Args:
        session: Database session.
        job: The geocoding being completed.
        results: Counters reported by the backend.

    Returns:
        The completed geocoding.

    Raises:
        QuotaUninitializedError: If the job's tenant does not exist.
        InvalidTransitionError: If the job can no longer complete.
    """
    store = TenantQuotaStore(session, job.tenant_id)
    key = await store.pool_key()

    async with pool_lock(key):
        # Another session may have cancelled the job since it was loaded
        await session.refresh(job, with_for_update=True)
        state = ensure_transition(job.state, GeocodingState.COMPLETED)
        snapshot = await store.snapshot(job.id, for_update=True)

        attempted = results.processed_rows + results.cache_hits
        job.processed_rows = results.processed_rows
        job.cache_hits = results.cache_hits
        job.real_rows = results.real_rows
        job.used_credits = calculate_used_credits(job.kind, attempted, snapshot)
        job.state = state.value
        job.finished_at = datetime.now(UTC)
        await session.commit()

    logger.info(
        f"Geocoding {job.id} billed {job.used_credits} credits "
        f"({attempted} attempted, {snapshot.prior_usage} prior, quota {snapshot.quota})"
    )
    return job
