from __future__ import annotations

from sqlalchemy import String, Integer, Boolean, JSON, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import gen_id
from app.models.base import Base, TimestampMixin


class Pincode(TimestampMixin, Base):
    __tablename__ = "pincodes"
    __table_args__ = (
        Index("ix_pincodes_city_serviceable", "city_id", "is_serviceable"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("pin"))
    pincode: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    city_id: Mapped[str | None] = mapped_column(String, ForeignKey("cities.id", ondelete="CASCADE"), nullable=True, index=True)

    # Area ids in insertion order; serviceability falls back to the first one
    area_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    location: Mapped[dict] = mapped_column(JSON, nullable=False)  # Point, [lng, lat]

    is_serviceable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    district: Mapped[str | None] = mapped_column(String(120), nullable=True)
    state: Mapped[str | None] = mapped_column(String(120), nullable=True)
    total_sub_areas: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    primary_area: Mapped[str | None] = mapped_column(String(1000), nullable=True)
