from __future__ import annotations

from sqlalchemy import String, Integer, Boolean, JSON, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.core.ids import gen_id
from app.models.base import Base, TimestampMixin

SUB_AREA_TYPES = ("post_office", "sub_post_office", "head_post_office", "locality", "landmark")


class SubArea(TimestampMixin, Base):
    __tablename__ = "sub_areas"
    __table_args__ = (
        UniqueConstraint("city_id", "slug", name="uq_sub_area_city_slug"),
        Index("ix_sub_areas_city_pincode", "city_id", "pincode"),
        Index("ix_sub_areas_area_serviceable", "area_id", "is_serviceable"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("sar"))
    area_id: Mapped[str] = mapped_column(String, ForeignKey("areas.id", ondelete="CASCADE"), nullable=False, index=True)
    city_id: Mapped[str] = mapped_column(String, ForeignKey("cities.id", ondelete="CASCADE"), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(260), nullable=False)  # "<name>-<pincode>-<ordinal>"
    pincode: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="post_office")

    # Point [lng, lat]; [0, 0] when the post office could not be geocoded
    location: Mapped[dict] = mapped_column(JSON, nullable=False)
    # branch_type|delivery_status|district|state|division|region as reported by the postal index
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    is_serviceable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
