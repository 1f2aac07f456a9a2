from __future__ import annotations
from datetime import datetime

from sqlalchemy import String, Integer, Boolean, DateTime, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import gen_id
from app.models.base import Base, TimestampMixin

CITY_IMPORT_STATUSES = ("pending", "processing", "completed", "failed")


class City(TimestampMixin, Base):
    __tablename__ = "cities"
    __table_args__ = (
        Index("ix_cities_active_name", "is_active", "name"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("cty"))

    name: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)  # e.g. "navi-mumbai"
    state: Mapped[str] = mapped_column(String(120), nullable=False, default="Unknown")
    country: Mapped[str] = mapped_column(String(120), nullable=False, default="India")

    # {"type": "Point", "coordinates": [lng, lat]}
    center: Mapped[dict] = mapped_column(JSON, nullable=False)
    pincode_ranges: Mapped[list] = mapped_column(JSON, nullable=False, default=list)  # [{"start", "end"}]

    # aggregate metadata, refreshed after every successful import
    total_areas: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_sub_areas: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_pincodes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_imported_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    import_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    imported_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
