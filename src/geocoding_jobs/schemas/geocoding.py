"""Pydantic v2 schemas for geocoding jobs and quota reports."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field, computed_field

from geocoding_jobs.lib.jobs.states import GeocodingKind, GeometryType
from geocoding_jobs.lib.quota import failed_rows, successful_rows


class GeocodingCreateRequest(BaseModel):
    """Request to create a geocoding job over a tenant table."""

    tenant_id: uuid.UUID
    table_name: str = Field(..., pattern=r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")
    formatter: str = Field(..., min_length=1, description="Row template, e.g. '{address}, {city}'")
    kind: GeocodingKind = GeocodingKind.HIGH_RESOLUTION
    geometry_type: GeometryType | None = None
    run_timeout: float | None = Field(default=None, gt=0)


class GeocodingResponse(BaseModel):
    """Response schema for a geocoding job."""

    model_config = {"from_attributes": True}

    id: uuid.UUID
    tenant_id: uuid.UUID
    table_name: str | None = None
    formatter: str
    kind: str
    geometry_type: str | None = None
    state: str
    processable_rows: int = 0
    processed_rows: int = 0
    cache_hits: int = 0
    real_rows: int = 0
    used_credits: int = 0
    price: float | None = None
    run_timeout: float
    remote_id: str | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def failed_rows(self) -> int:
        return failed_rows(self.processable_rows, self.real_rows)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def successful_rows(self) -> int:
        return successful_rows(self.real_rows)


class QuotaResponse(BaseModel):
    """Quota state of the pool a tenant geocodes against."""

    tenant_id: uuid.UUID
    pool: str
    quota: int
    soft_limit: bool
    used: int
    max_geocodable_rows: int | None = Field(
        default=None,
        description="Rows that can still be geocoded; null when the pool has a soft limit",
    )
