from alembic import op
import sqlalchemy as sa

revision = "0001_location_hierarchy"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "cities",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("slug", sa.String(length=120), nullable=False),
        sa.Column("state", sa.String(length=120), nullable=False),
        sa.Column("country", sa.String(length=120), nullable=False),
        sa.Column("center", sa.JSON(), nullable=False),
        sa.Column("pincode_ranges", sa.JSON(), nullable=False),
        sa.Column("total_areas", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_sub_areas", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_pincodes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_imported_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("import_status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("imported_by", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("slug", name="uq_cities_slug"),
    )
    op.create_index("ix_cities_name", "cities", ["name"])
    op.create_index("ix_cities_active_name", "cities", ["is_active", "name"])

    op.create_table(
        "areas",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("city_id", sa.String(), sa.ForeignKey("cities.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=1000), nullable=False),
        sa.Column("slug", sa.String(length=200), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False, server_default="locality"),
        sa.Column("centroid", sa.JSON(), nullable=False),
        sa.Column("pincode", sa.Integer(), nullable=False),
        sa.Column("total_sub_areas", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("district", sa.String(length=120), nullable=True),
        sa.Column("state", sa.String(length=120), nullable=True),
        sa.Column("average_latitude", sa.Float(), nullable=True),
        sa.Column("average_longitude", sa.Float(), nullable=True),
        sa.Column("is_serviceable", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("city_id", "name", name="uq_area_city_name"),
        sa.UniqueConstraint("city_id", "slug", name="uq_area_city_slug"),
    )
    op.create_index("ix_areas_city_id", "areas", ["city_id"])
    op.create_index("ix_areas_city_serviceable", "areas", ["city_id", "is_serviceable"])
    op.create_index("ix_areas_pincode_city", "areas", ["pincode", "city_id"])

    op.create_table(
        "sub_areas",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("area_id", sa.String(), sa.ForeignKey("areas.id", ondelete="CASCADE"), nullable=False),
        sa.Column("city_id", sa.String(), sa.ForeignKey("cities.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("slug", sa.String(length=260), nullable=False),
        sa.Column("pincode", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False, server_default="post_office"),
        sa.Column("location", sa.JSON(), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("is_serviceable", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("city_id", "slug", name="uq_sub_area_city_slug"),
    )
    op.create_index("ix_sub_areas_area_id", "sub_areas", ["area_id"])
    op.create_index("ix_sub_areas_city_id", "sub_areas", ["city_id"])
    op.create_index("ix_sub_areas_pincode", "sub_areas", ["pincode"])
    op.create_index("ix_sub_areas_city_pincode", "sub_areas", ["city_id", "pincode"])
    op.create_index("ix_sub_areas_area_serviceable", "sub_areas", ["area_id", "is_serviceable"])

    op.create_table(
        "pincodes",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("pincode", sa.Integer(), nullable=False),
        sa.Column("city_id", sa.String(), sa.ForeignKey("cities.id", ondelete="CASCADE"), nullable=True),
        sa.Column("area_ids", sa.JSON(), nullable=False),
        sa.Column("location", sa.JSON(), nullable=False),
        sa.Column("is_serviceable", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("district", sa.String(length=120), nullable=True),
        sa.Column("state", sa.String(length=120), nullable=True),
        sa.Column("total_sub_areas", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("primary_area", sa.String(length=1000), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("pincode", name="uq_pincodes_pincode"),
    )
    op.create_index("ix_pincodes_city_id", "pincodes", ["city_id"])
    op.create_index("ix_pincodes_city_serviceable", "pincodes", ["city_id", "is_serviceable"])

    op.create_table(
        "import_jobs",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("city_id", sa.String(), sa.ForeignKey("cities.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="started"),
        sa.Column("total_pincodes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("processed_pincodes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("successful_pincodes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_pincodes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("percentage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("areas_created", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sub_areas_created", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("pincodes_created", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("errors", sa.JSON(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_seconds", sa.Float(), nullable=True),
        sa.Column("imported_by", sa.String(length=64), nullable=True),
        sa.Column("source", sa.String(length=32), nullable=False, server_default="india_post_nominatim"),
        sa.Column("config", sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_import_jobs_city_id", "import_jobs", ["city_id"])
    op.create_index("ix_import_jobs_city_created", "import_jobs", ["city_id", "created_at"])
    op.create_index("ix_import_jobs_status_created", "import_jobs", ["status", "created_at"])


def downgrade():
    op.drop_index("ix_import_jobs_status_created", table_name="import_jobs")
    op.drop_index("ix_import_jobs_city_created", table_name="import_jobs")
    op.drop_index("ix_import_jobs_city_id", table_name="import_jobs")
    op.drop_table("import_jobs")

    op.drop_index("ix_pincodes_city_serviceable", table_name="pincodes")
    op.drop_index("ix_pincodes_city_id", table_name="pincodes")
    op.drop_table("pincodes")

    op.drop_index("ix_sub_areas_area_serviceable", table_name="sub_areas")
    op.drop_index("ix_sub_areas_city_pincode", table_name="sub_areas")
    op.drop_index("ix_sub_areas_pincode", table_name="sub_areas")
    op.drop_index("ix_sub_areas_city_id", table_name="sub_areas")
    op.drop_index("ix_sub_areas_area_id", table_name="sub_areas")
    op.drop_table("sub_areas")

    op.drop_index("ix_areas_pincode_city", table_name="areas")
    op.drop_index("ix_areas_city_serviceable", table_name="areas")
    op.drop_index("ix_areas_city_id", table_name="areas")
    op.drop_table("areas")

    op.drop_index("ix_cities_active_name", table_name="cities")
    op.drop_index("ix_cities_name", table_name="cities")
    op.drop_table("cities")
