"""Unit tests for backend selection and gazetteer loading."""

import pytest

from geocoding_jobs.core.config import Settings
from geocoding_jobs.lib.backends import (
    ExternalBackend,
    Gazetteer,
    InternalBackend,
    load_gazetteer,
    resolve_backend,
)
from geocoding_jobs.lib.jobs.errors import GeocodingValidationError


class TestResolveBackend:
    """Tests for resolve_backend()."""

    def test_high_resolution_uses_external(self, settings: Settings) -> None:
        backend = resolve_backend("high-resolution", None, settings)
        assert isinstance(backend, ExternalBackend)
        assert backend.provider_name == "external"
        assert backend.is_configured

    @pytest.mark.parametrize("kind", ["admin0", "admin1", "namedplace", "postalcode", "ipaddress"])
    def test_other_kinds_use_internal(self, kind: str, settings: Settings) -> None:
        backend = resolve_backend(kind, "polygon", settings, gazetteer=Gazetteer())
        assert isinstance(backend, InternalBackend)
        assert backend.kind == kind
        assert backend.provider_name == "internal"

    def test_internal_kind_without_geometry_type_raises(self, settings: Settings) -> None:
        with pytest.raises(GeocodingValidationError) as exc_info:
            resolve_backend("admin0", None, settings)
        assert "geometry_type" in exc_info.value.errors

    def test_each_call_builds_a_new_backend(self, settings: Settings) -> None:
        assert resolve_backend("high-resolution", None, settings) is not resolve_backend(
            "high-resolution", None, settings
        )

    def test_external_unconfigured_without_credentials(self) -> None:
        settings = Settings(_env_file=None, database_url="sqlite+aiosqlite:///:memory:")  # type: ignore[call-arg]
        backend = resolve_backend("high-resolution", None, settings)
        assert backend.is_configured is False


class TestLoadGazetteer:
    """Tests for load_gazetteer()."""

    def test_no_path_gives_empty_gazetteer(self) -> None:
        assert len(load_gazetteer(None)) == 0

    def test_loaded_once_per_path(self, tmp_path) -> None:
        path = tmp_path / "places.geojson"
        path.write_text('{"type": "FeatureCollection", "features": []}', encoding="utf-8")
        assert load_gazetteer(str(path)) is load_gazetteer(str(path))
