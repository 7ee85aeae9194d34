"""Tenant and Organization models: owners of geocoding quota pools."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from geocoding_jobs.models.base import Base, UUIDMixin


class Organization(Base, UUIDMixin):
    """Group of tenants sharing one geocoding quota pool."""

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    geocoding_quota: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    # Price per block of credits (see Settings.geocoding_block_size)
    geocoding_block_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    soft_geocoding_limit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    geocoding_period_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    members: Mapped[list["Tenant"]] = relationship(back_populates="organization")


class Tenant(Base, UUIDMixin):
    """Account owning tables and geocoding records."""

    __tablename__ = "tenants"

    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    geocoding_quota: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    geocoding_block_price: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    soft_geocoding_limit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    geocoding_period_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    organization_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    organization: Mapped[Organization | None] = relationship(back_populates="members", lazy="selectin")
