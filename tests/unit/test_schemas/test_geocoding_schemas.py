"""Unit tests for geocoding request and response schemas."""

import uuid

import pytest
from pydantic import ValidationError

from geocoding_jobs.schemas.geocoding import GeocodingCreateRequest, GeocodingResponse, QuotaResponse


class TestGeocodingCreateRequest:
    """Tests for GeocodingCreateRequest."""

    def test_defaults_to_high_resolution(self) -> None:
        request = GeocodingCreateRequest(tenant_id=uuid.uuid4(), table_name="addresses", formatter="{address}")
        assert request.kind == "high-resolution"
        assert request.geometry_type is None
        assert request.run_timeout is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"table_name": "bad name"},
            {"formatter": ""},
            {"kind": "streetview"},
            {"geometry_type": "line"},
            {"run_timeout": 0},
        ],
    )
    def test_rejects_invalid_fields(self, overrides: dict) -> None:
        values = {"tenant_id": uuid.uuid4(), "table_name": "addresses", "formatter": "{address}", **overrides}
        with pytest.raises(ValidationError):
            GeocodingCreateRequest(**values)


class TestGeocodingResponse:
    """Tests for GeocodingResponse."""

    @pytest.mark.asyncio
    async def test_from_model(self, tenant, geocoding_factory) -> None:
        job = await geocoding_factory(tenant, state="completed", processable_rows=155, real_rows=150, used_credits=3)

        response = GeocodingResponse.model_validate(job)
        response.price = 4.5
        data = response.model_dump()

        assert data["id"] == job.id
        assert data["state"] == "completed"
        assert data["failed_rows"] == 5
        assert data["successful_rows"] == 150
        assert data["price"] == 4.5


class TestQuotaResponse:
    """Tests for QuotaResponse."""

    def test_soft_limit_has_no_row_cap(self) -> None:
        response = QuotaResponse(
            tenant_id=uuid.uuid4(), pool="tenant:x", quota=200, soft_limit=True, used=300, max_geocodable_rows=None
        )
        assert response.model_dump()["max_geocodable_rows"] is None
