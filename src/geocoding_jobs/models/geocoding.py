"""Geocoding model: one geocoding job over a tenant table and its billing record."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import CheckConstraint, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from geocoding_jobs.lib.jobs.states import GeocodingKind, GeocodingState
from geocoding_jobs.lib.quota import failed_rows, successful_rows
from geocoding_jobs.models.base import Base, UUIDMixin

DEFAULT_RUN_TIMEOUT = 900.0  # seconds


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Geocoding(Base, UUIDMixin):
    """Tracks a geocoding job from submission to billing.

    Records are mutated only by the job runner and are kept after they reach
    a terminal state as the audit trail for billed credits.
    """

    __tablename__ = "geocodings"
    __table_args__ = (
        CheckConstraint("used_credits >= 0", name="ck_geocodings_used_credits_non_negative"),
        CheckConstraint("processed_rows >= 0 AND cache_hits >= 0 AND real_rows >= 0", name="ck_geocodings_counts"),
    )

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    table_name: Mapped[str | None] = mapped_column(String(63), nullable=True)
    formatter: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[str] = mapped_column(
        String(20), nullable=False, default=GeocodingKind.HIGH_RESOLUTION.value, server_default="high-resolution"
    )
    geometry_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=GeocodingState.PENDING.value, server_default="pending", index=True
    )

    # Row counters
    processable_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    processed_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    cache_hits: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    real_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    used_credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    run_timeout: Mapped[float] = mapped_column(Float, nullable=False, default=DEFAULT_RUN_TIMEOUT)
    remote_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, server_default=func.now(), nullable=False
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def attempted_rows(self) -> int:
        """Rows sent to the backend: processed ones plus those served from cache."""
        return (self.processed_rows or 0) + (self.cache_hits or 0)

    @property
    def failed_rows(self) -> int:
        return failed_rows(self.processable_rows, self.real_rows)

    @property
    def successful_rows(self) -> int:
        return successful_rows(self.real_rows)
