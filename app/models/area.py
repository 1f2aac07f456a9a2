from __future__ import annotations

from sqlalchemy import String, Integer, Float, Boolean, JSON, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import gen_id
from app.models.base import Base, TimestampMixin

AREA_TYPES = ("district", "locality", "zone", "region", "service_area")


class Area(TimestampMixin, Base):
    """
    All post offices sharing one pincode inside one city.
    """
    __tablename__ = "areas"
    __table_args__ = (
        UniqueConstraint("city_id", "name", name="uq_area_city_name"),
        UniqueConstraint("city_id", "slug", name="uq_area_city_slug"),
        Index("ix_areas_city_serviceable", "city_id", "is_serviceable"),
        Index("ix_areas_pincode_city", "pincode", "city_id"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("are"))
    city_id: Mapped[str] = mapped_column(String, ForeignKey("cities.id", ondelete="CASCADE"), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(1000), nullable=False)
    slug: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="locality")

    centroid: Mapped[dict] = mapped_column(JSON, nullable=False)  # Point, [lng, lat]
    pincode: Mapped[int] = mapped_column(Integer, nullable=False)

    total_sub_areas: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    district: Mapped[str | None] = mapped_column(String(120), nullable=True)
    state: Mapped[str | None] = mapped_column(String(120), nullable=True)
    average_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    average_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    is_serviceable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
