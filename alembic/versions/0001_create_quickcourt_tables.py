from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "facilities",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("facility_type", sa.String(), nullable=False),
        sa.Column("address", sa.String(), nullable=False),
        sa.Column("city", sa.String(), nullable=False),
        sa.Column("state", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("is_verified", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_facilities_owner_id", "facilities", ["owner_id"], unique=False)
    op.create_index("ix_facilities_facility_type", "facilities", ["facility_type"], unique=False)
    op.create_index("ix_facilities_status", "facilities", ["status"], unique=False)

    op.create_table(
        "facility_schedules",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("facility_id", sa.String(36), sa.ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("price_per_hour", sa.Numeric(8, 2), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False),
        sa.Column("max_capacity", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("facility_id", "day_of_week", "start_time", "end_time", name="uq_facility_schedules_slot"),
        sa.CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_facility_schedules_day"),
        sa.CheckConstraint("start_time < end_time", name="ck_facility_schedules_range"),
    )
    op.create_index("ix_facility_schedules_facility_id", "facility_schedules", ["facility_id"], unique=False)

    op.create_table(
        "facility_pricing",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("facility_id", sa.String(36), sa.ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False),
        sa.Column("pricing_type", sa.String(), nullable=False),
        sa.Column("base_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("facility_id", "pricing_type", name="uq_facility_pricing_type"),
    )
    op.create_index("ix_facility_pricing_facility_id", "facility_pricing", ["facility_id"], unique=False)

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("facility_id", sa.String(36), sa.ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False),
        sa.Column("customer_id", sa.String(), nullable=False),
        sa.Column("time_slot_id", sa.String(36), sa.ForeignKey("facility_schedules.id", ondelete="SET NULL"), nullable=True),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("total_hours", sa.Numeric(4, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("payment_status", sa.String(), nullable=False),
        sa.Column("special_requests", sa.Text(), nullable=True),
        sa.Column("owner_notes", sa.Text(), nullable=True),
        sa.Column("customer_notes", sa.Text(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_by", sa.String(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("idempotency_key", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("customer_id", "idempotency_key", name="uq_bookings_idempotency"),
        sa.CheckConstraint("start_time < end_time", name="ck_bookings_range"),
    )
    op.create_index("ix_bookings_facility_date", "bookings", ["facility_id", "booking_date"], unique=False)
    op.create_index("ix_bookings_customer_id", "bookings", ["customer_id"], unique=False)
    op.create_index("ix_bookings_status", "bookings", ["status"], unique=False)

    op.create_table(
        "booking_notifications",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("booking_id", sa.String(36), sa.ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("notification_type", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_booking_notifications_booking_id", "booking_notifications", ["booking_id"], unique=False)
    op.create_index("ix_booking_notifications_user_id", "booking_notifications", ["user_id"], unique=False)


def downgrade():
    op.drop_index("ix_booking_notifications_user_id", table_name="booking_notifications")
    op.drop_index("ix_booking_notifications_booking_id", table_name="booking_notifications")
    op.drop_table("booking_notifications")

    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_customer_id", table_name="bookings")
    op.drop_index("ix_bookings_facility_date", table_name="bookings")
    op.drop_table("bookings")

    op.drop_index("ix_facility_pricing_facility_id", table_name="facility_pricing")
    op.drop_table("facility_pricing")

    op.drop_index("ix_facility_schedules_facility_id", table_name="facility_schedules")
    op.drop_table("facility_schedules")

    op.drop_index("ix_facilities_status", table_name="facilities")
    op.drop_index("ix_facilities_facility_type", table_name="facilities")
    op.drop_index("ix_facilities_owner_id", table_name="facilities")
    op.drop_table("facilities")
