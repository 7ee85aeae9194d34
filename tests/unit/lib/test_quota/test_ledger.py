"""Unit tests for quota and billing arithmetic."""

import pytest

from geocoding_jobs.lib.quota import (
    QuotaSnapshot,
    calculate_used_credits,
    failed_rows,
    max_geocodable_rows,
    price,
    successful_rows,
)
from geocoding_jobs.models.geocoding import Geocoding


def _snapshot(**overrides: object) -> QuotaSnapshot:
    values: dict[str, object] = {"quota": 200, "soft_limit": False, "prior_usage": 0, "block_price": 1500}
    values.update(overrides)
    return QuotaSnapshot(**values)  # type: ignore[arg-type]


class TestMaxGeocodableRows:
    """Tests for max_geocodable_rows()."""

    def test_hard_limit_returns_remaining_quota(self) -> None:
        assert max_geocodable_rows(_snapshot(prior_usage=100)) == 100

    def test_hard_limit_nothing_used(self) -> None:
        assert max_geocodable_rows(_snapshot()) == 200

    def test_hard_limit_never_negative(self) -> None:
        assert max_geocodable_rows(_snapshot(prior_usage=350)) == 0

    def test_soft_limit_is_unbounded(self) -> None:
        assert max_geocodable_rows(_snapshot(soft_limit=True, prior_usage=350)) is None

    def test_hard_limit_property(self) -> None:
        assert _snapshot().hard_limit is True
        assert _snapshot(soft_limit=True).hard_limit is False


class TestCalculateUsedCredits:
    """Tests for calculate_used_credits()."""

    @pytest.mark.parametrize(
        ("prior", "attempted", "expected"),
        [
            (0, 200, 0),
            (100, 150, 50),
            (250, 100, 100),
            (0, 5010, 4810),
            (0, 0, 0),
        ],
    )
    def test_billable_kind(self, prior: int, attempted: int, expected: int) -> None:
        snapshot = _snapshot(prior_usage=prior)
        assert calculate_used_credits("high-resolution", attempted, snapshot) == expected

    @pytest.mark.parametrize("kind", ["admin0", "admin1", "namedplace", "postalcode", "ipaddress"])
    def test_non_billable_kinds_are_free(self, kind: str) -> None:
        assert calculate_used_credits(kind, 5000, _snapshot(prior_usage=1000)) == 0

    def test_never_exceeds_attempted(self) -> None:
        snapshot = _snapshot(quota=0, prior_usage=10_000)
        assert calculate_used_credits("high-resolution", 42, snapshot) == 42

    def test_soft_limit_does_not_change_billing(self) -> None:
        snapshot = _snapshot(soft_limit=True, prior_usage=100)
        assert calculate_used_credits("high-resolution", 150, snapshot) == 50


class TestPrice:
    """Tests for price()."""

    def test_block_price(self) -> None:
        assert price(100, 1500, 1000) == 150

    def test_fractional_price_is_not_rounded(self) -> None:
        assert price(3, 1500, 1000) == 4.5

    def test_zero_credits(self) -> None:
        assert price(0, 1500, 1000) == 0.0
        assert isinstance(price(0, 1500, 1000), float)

    def test_zero_block_price(self) -> None:
        assert price(100, 0, 1000) == 0


class TestRowCounts:
    """Tests for failed_rows() and successful_rows()."""

    def test_failed_rows(self) -> None:
        assert failed_rows(155, 150) == 5

    def test_failed_rows_never_negative(self) -> None:
        assert failed_rows(10, 20) == 0

    def test_failed_rows_handles_none(self) -> None:
        assert failed_rows(None, None) == 0

    def test_successful_rows(self) -> None:
        assert successful_rows(150) == 150
        assert successful_rows(None) == 0

    @pytest.mark.parametrize(
        ("processed", "cache_hits", "real", "processable", "failed", "successful"),
        [
            (0, 100, 100, 100, 0, 100),
            (10, 150, 155, 160, 5, 155),
            (100, 0, 100, 100, 0, 100),
            (0, 0, 0, 0, 0, 0),
            (100, 0, 0, 100, 100, 0),
        ],
    )
    def test_record_row_counts(self, processed, cache_hits, real, processable, failed, successful) -> None:
        job = Geocoding(
            processed_rows=processed, cache_hits=cache_hits, real_rows=real, processable_rows=processable
        )
        assert job.failed_rows == failed
        assert job.successful_rows == successful
