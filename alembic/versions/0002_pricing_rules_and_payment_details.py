from alembic import op
import sqlalchemy as sa

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade():
    # server defaults backfill existing pricing rows
    op.add_column(
        "facility_pricing",
        sa.Column("peak_hour_multiplier", sa.Numeric(3, 2), nullable=False, server_default="1.00"),
    )
    op.add_column(
        "facility_pricing",
        sa.Column("weekend_multiplier", sa.Numeric(3, 2), nullable=False, server_default="1.00"),
    )
    op.add_column(
        "facility_pricing",
        sa.Column("minimum_booking_hours", sa.Integer(), nullable=False, server_default="1"),
    )
    op.add_column(
        "facility_pricing",
        sa.Column("maximum_booking_hours", sa.Integer(), nullable=False, server_default="24"),
    )
    op.create_check_constraint(
        "ck_facility_pricing_hours",
        "facility_pricing",
        "minimum_booking_hours >= 1 AND maximum_booking_hours >= minimum_booking_hours",
    )

    op.add_column("bookings", sa.Column("payment_method", sa.String(), nullable=True))
    op.add_column("bookings", sa.Column("transaction_id", sa.String(), nullable=True))


def downgrade():
    op.drop_column("bookings", "transaction_id")
    op.drop_column("bookings", "payment_method")

    op.drop_constraint("ck_facility_pricing_hours", "facility_pricing", type_="check")
    op.drop_column("facility_pricing", "maximum_booking_hours")
    op.drop_column("facility_pricing", "minimum_booking_hours")
    op.drop_column("facility_pricing", "weekend_multiplier")
    op.drop_column("facility_pricing", "peak_hour_multiplier")
