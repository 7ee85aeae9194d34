"""Shared test fixtures for async database, sessions, tenants, and tenant tables."""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from geocoding_jobs.core.config import Settings
from geocoding_jobs.models.base import Base
from geocoding_jobs.models.geocoding import Geocoding
from geocoding_jobs.models.tenant import Organization, Tenant

ADDRESSES_DDL = """
CREATE TABLE addresses (
    cartodb_id INTEGER PRIMARY KEY,
    address TEXT,
    city TEXT,
    cartodb_georef_status BOOLEAN,
    the_geom TEXT
)
"""


@pytest.fixture
def settings() -> Settings:
    """Test application settings with fast polling and a configured external backend."""
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        database_url="sqlite+aiosqlite:///:memory:",
        geocoding_poll_interval=0.01,
        external_geocoder_url="http://geocoder.test",
        external_geocoder_api_key="test-key",
    )


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an in-memory async SQLite engine with the schema and an ``addresses`` table."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text(ADDRESSES_DDL))

    yield engine

    async with engine.begin() as conn:
        await conn.execute(text("DROP TABLE addresses"))
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest.fixture
async def async_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """Create a per-test async session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def tenant(async_session: AsyncSession) -> Tenant:
    """A hard-limited tenant with a quota of 200 rows and 1500 per 1000-credit block."""
    tenant = Tenant(
        id=uuid.uuid4(),
        username="alice",
        geocoding_quota=200,
        geocoding_block_price=1500,
        soft_geocoding_limit=False,
    )
    async_session.add(tenant)
    await async_session.commit()
    return tenant


@pytest.fixture
async def soft_tenant(async_session: AsyncSession) -> Tenant:
    """A soft-limited tenant with the same quota as ``tenant``."""
    tenant = Tenant(
        id=uuid.uuid4(),
        username="bob",
        geocoding_quota=200,
        geocoding_block_price=1500,
        soft_geocoding_limit=True,
    )
    async_session.add(tenant)
    await async_session.commit()
    return tenant


@pytest.fixture
async def organization(async_session: AsyncSession) -> Organization:
    """An organization with a shared pool of 150 rows and two member tenants."""
    org = Organization(
        id=uuid.uuid4(),
        name="acme",
        geocoding_quota=150,
        geocoding_block_price=2000,
        soft_geocoding_limit=False,
    )
    async_session.add(org)
    for username in ("carol", "dave"):
        async_session.add(
            Tenant(
                id=uuid.uuid4(),
                username=username,
                geocoding_quota=10_000,
                geocoding_block_price=1,
                soft_geocoding_limit=True,
                organization_id=org.id,
            )
        )
    await async_session.commit()
    return org


@pytest.fixture
def geocoding_factory(async_session: AsyncSession) -> Callable[..., Awaitable[Geocoding]]:
    """Persist a geocoding record with sensible defaults; keyword arguments override columns."""

    async def _create(tenant: Tenant, **overrides: object) -> Geocoding:
        values: dict[str, object] = {
            "id": uuid.uuid4(),
            "tenant_id": tenant.id,
            "table_name": "addresses",
            "formatter": "{address}, {city}",
            "kind": "high-resolution",
            "state": "pending",
            "run_timeout": 900.0,
        }
        values.update(overrides)
        job = Geocoding(**values)
        async_session.add(job)
        await async_session.commit()
        return job

    return _create


@pytest.fixture
def insert_addresses(async_session: AsyncSession) -> Callable[..., Awaitable[None]]:
    """Insert rows into the ``addresses`` tenant table."""

    async def _insert(rows: list[dict[str, object]]) -> None:
        for row in rows:
            values = {"cartodb_georef_status": None, "the_geom": None, "address": None, "city": None, **row}
            await async_session.execute(
                text(
                    "INSERT INTO addresses (cartodb_id, address, city, cartodb_georef_status, the_geom) "
                    "VALUES (:cartodb_id, :address, :city, :cartodb_georef_status, :the_geom)"
                ),
                values,
            )
        await async_session.commit()

    return _insert
