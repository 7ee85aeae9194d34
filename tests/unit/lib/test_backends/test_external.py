"""Unit tests for the external HTTP batch backend."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from shapely.geometry import Point

from geocoding_jobs.lib.backends import (
    BackendPollError,
    BackendStatus,
    BackendSubmitError,
    CancelError,
    ExternalBackend,
    SourceRow,
)
from geocoding_jobs.lib.formatter import compile_formatter


def _response(payload: object = None, status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "error", request=MagicMock(), response=MagicMock(status_code=status_code)
        )
    return response


@pytest.fixture
def backend() -> ExternalBackend:
    return ExternalBackend(base_url="http://geocoder.test/", api_key="test-key", timeout=1.0)


class TestExternalBackendConfig:
    """Tests for ExternalBackend configuration."""

    def test_configured_with_url_and_key(self, backend: ExternalBackend) -> None:
        assert backend.is_configured is True
        assert backend.provider_name == "external"

    @pytest.mark.parametrize(("url", "key"), [(None, "k"), ("http://geocoder.test", None), ("", "")])
    def test_not_configured(self, url: str | None, key: str | None) -> None:
        assert ExternalBackend(base_url=url, api_key=key).is_configured is False


class TestExternalBackendSubmit:
    """Tests for ExternalBackend.submit()."""

    async def test_posts_rendered_queries(self, backend: ExternalBackend) -> None:
        rows = [SourceRow(1, {"street": "Gran Via 1", "city": "Madrid"}), SourceRow(2, {"street": None})]

        with patch("httpx.AsyncClient.request", new_callable=AsyncMock) as mock_request:
            mock_request.return_value = _response({"id": "job-123"})
            remote_id = await backend.submit(compile_formatter("{street}, {city}"), rows)

        assert remote_id == "job-123"
        method, path = mock_request.call_args.args
        assert (method, path) == ("POST", "/jobs")
        assert mock_request.call_args.kwargs["json"] == {
            "rows": [{"id": 1, "query": "Gran Via 1, Madrid"}, {"id": 2, "query": ", "}]
        }
        assert mock_request.call_args.kwargs["headers"] == {"Authorization": "Bearer test-key"}

    async def test_missing_id_raises(self, backend: ExternalBackend) -> None:
        with (
            patch("httpx.AsyncClient.request", new_callable=AsyncMock, return_value=_response({})),
            pytest.raises(BackendSubmitError, match="job id"),
        ):
            await backend.submit(compile_formatter("{a}"), [])

    async def test_timeout_raises_submit_error(self, backend: ExternalBackend) -> None:
        with (
            patch("httpx.AsyncClient.request", new_callable=AsyncMock) as mock_request,
            pytest.raises(BackendSubmitError, match="timed out"),
        ):
            mock_request.side_effect = httpx.TimeoutException("timed out")
            await backend.submit(compile_formatter("{a}"), [])

    async def test_connect_error_raises_submit_error(self, backend: ExternalBackend) -> None:
        with (
            patch("httpx.AsyncClient.request", new_callable=AsyncMock) as mock_request,
            pytest.raises(BackendSubmitError, match="Connection"),
        ):
            mock_request.side_effect = httpx.ConnectError("refused")
            await backend.submit(compile_formatter("{a}"), [])


class TestExternalBackendStatus:
    """Tests for ExternalBackend.status()."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("running", BackendStatus.PENDING),
            ("ACCEPTED", BackendStatus.PENDING),
            ("completed", BackendStatus.COMPLETED),
            ("failed", BackendStatus.FAILED),
            ("cancelled", BackendStatus.FAILED),
        ],
    )
    async def test_status_mapping(self, backend: ExternalBackend, raw: str, expected: BackendStatus) -> None:
        with patch("httpx.AsyncClient.request", new_callable=AsyncMock, return_value=_response({"status": raw})):
            assert await backend.status("job-1") == expected

    async def test_unrecognized_status_raises(self, backend: ExternalBackend) -> None:
        with (
            patch("httpx.AsyncClient.request", new_callable=AsyncMock, return_value=_response({"status": "paused"})),
            pytest.raises(BackendPollError, match="Unrecognized"),
        ):
            await backend.status("job-1")

    async def test_http_error_keeps_status_code(self, backend: ExternalBackend) -> None:
        with (
            patch("httpx.AsyncClient.request", new_callable=AsyncMock, return_value=_response(status_code=503)),
            pytest.raises(BackendPollError) as exc_info,
        ):
            await backend.status("job-1")
        assert exc_info.value.status_code == 503

    async def test_non_object_body_raises(self, backend: ExternalBackend) -> None:
        with (
            patch("httpx.AsyncClient.request", new_callable=AsyncMock, return_value=_response(["completed"])),
            pytest.raises(BackendPollError, match="not a JSON object"),
        ):
            await backend.status("job-1")


class TestExternalBackendCancel:
    """Tests for ExternalBackend.cancel()."""

    async def test_cancel_sends_delete(self, backend: ExternalBackend) -> None:
        with patch("httpx.AsyncClient.request", new_callable=AsyncMock, return_value=_response()) as mock_request:
            assert await backend.cancel("job-1") is True
        assert mock_request.call_args.args == ("DELETE", "/jobs/job-1")

    async def test_cancel_http_error_raises_cancel_error(self, backend: ExternalBackend) -> None:
        with (
            patch("httpx.AsyncClient.request", new_callable=AsyncMock, return_value=_response(status_code=409)),
            pytest.raises(CancelError),
        ):
            await backend.cancel("job-1")


class TestExternalBackendResults:
    """Tests for ExternalBackend.fetch_results()."""

    async def test_parses_counters_and_points(self, backend: ExternalBackend) -> None:
        payload = {
            "processed_rows": 2,
            "cache_hits": 1,
            "results": [
                {"id": 1, "latitude": 40.42, "longitude": -3.70},
                {"id": 2, "latitude": None, "longitude": None},
                {"id": 3, "latitude": "41.38", "longitude": "2.17"},
            ],
        }
        with patch("httpx.AsyncClient.request", new_callable=AsyncMock, return_value=_response(payload)):
            results = await backend.fetch_results("job-1")

        assert results.processed_rows == 2
        assert results.cache_hits == 1
        assert results.real_rows == 2
        assert results.matches[0].geometry == Point(-3.70, 40.42)
        assert results.matches[1].geometry is None
        assert results.matches[2].row_id == 3

    async def test_malformed_results_raise(self, backend: ExternalBackend) -> None:
        payload = {"processed_rows": 1, "results": [{"latitude": 1.0, "longitude": 2.0}]}
        with (
            patch("httpx.AsyncClient.request", new_callable=AsyncMock, return_value=_response(payload)),
            pytest.raises(BackendPollError, match="parse"),
        ):
            await backend.fetch_results("job-1")

    async def test_real_rows_above_attempted_rejected(self, backend: ExternalBackend) -> None:
        payload = {"processed_rows": 1, "cache_hits": 0, "real_rows": 5, "results": []}
        with (
            patch("httpx.AsyncClient.request", new_callable=AsyncMock, return_value=_response(payload)),
            pytest.raises(BackendPollError, match="parse"),
        ):
            await backend.fetch_results("job-1")
