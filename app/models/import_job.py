from __future__ import annotations
from datetime import datetime

from sqlalchemy import String, Integer, DateTime, JSON, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.core.ids import gen_id
from app.models.base import Base, TimestampMixin

JOB_ACTIVE_STATUSES = ("started", "processing")
JOB_TERMINAL_STATUSES = ("completed", "failed", "cancelled")


class ImportJob(TimestampMixin, Base):
    """
    One run of the fetch-and-persist pipeline for a single city.

    Frozen once the status reaches completed|failed|cancelled.
    """
    __tablename__ = "import_jobs"
    __table_args__ = (
        Index("ix_import_jobs_city_created", "city_id", "created_at"),
        Index("ix_import_jobs_status_created", "status", "created_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("imp"))
    city_id: Mapped[str] = mapped_column(String, ForeignKey("cities.id", ondelete="CASCADE"), nullable=False, index=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="started")

    total_pincodes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_pincodes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful_pincodes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_pincodes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    areas_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sub_areas_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pincodes_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    errors: Mapped[list] = mapped_column(JSON, nullable=False, default=list)  # [{pincode, error, timestamp}]

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_seconds: Mapped[float | None] = mapped_column(nullable=True)

    imported_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False, default="india_post_nominatim")
    config: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
