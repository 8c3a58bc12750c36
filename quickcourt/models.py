import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
    Index,
)

from .db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


class FacilityType(str, enum.Enum):
    BASKETBALL_COURT = "basketball_court"
    TENNIS_COURT = "tennis_court"
    VOLLEYBALL_COURT = "volleyball_court"
    BADMINTON_COURT = "badminton_court"
    SOCCER_FIELD = "soccer_field"
    BASEBALL_FIELD = "baseball_field"
    SWIMMING_POOL = "swimming_pool"
    GYM = "gym"
    MULTI_SPORT = "multi_sport"
    OTHER = "other"


class FacilityStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"
    CLOSED = "closed"
    BANNED = "banned"


class PricingType(str, enum.Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    SEASONAL = "seasonal"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class NotificationType(str, enum.Enum):
    BOOKING_CONFIRMATION = "booking_confirmation"
    BOOKING_REMINDER = "booking_reminder"
    BOOKING_CANCELLATION = "booking_cancellation"
    FACILITY_UPDATE = "facility_update"
    MAINTENANCE_ALERT = "maintenance_alert"
    REVIEW_RECEIVED = "review_received"
    NEW_BOOKING = "new_booking"
    STATUS_UPDATE = "status_update"


# Bookings in these states hold their time range.
ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING.value, BookingStatus.APPROVED.value)


class Facility(Base):
    __tablename__ = "facilities"

    id = Column(String(36), primary_key=True, default=_uuid)
    owner_id = Column(String, nullable=False, index=True)
    name = Column(String, unique=True, nullable=False)
    description = Column(Text, nullable=True)
    facility_type = Column(String, nullable=False, index=True)
    address = Column(String, nullable=False)
    city = Column(String, nullable=False)
    state = Column(String, nullable=False)

    status = Column(String, nullable=False, default=FacilityStatus.ACTIVE.value, index=True)
    is_verified = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class FacilitySchedule(Base):
    __tablename__ = "facility_schedules"
    __table_args__ = (
        UniqueConstraint(
            "facility_id", "day_of_week", "start_time", "end_time",
            name="uq_facility_schedules_slot",
        ),
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_facility_schedules_day"),
        CheckConstraint("start_time < end_time", name="ck_facility_schedules_range"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    facility_id = Column(String(36), ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False, index=True)

    day_of_week = Column(Integer, nullable=False)  # 0=Sunday .. 6=Saturday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    price_per_hour = Column(Numeric(8, 2), nullable=False, default=50)
    is_available = Column(Boolean, nullable=False, default=True)
    max_capacity = Column(Integer, nullable=False, default=10)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class FacilityPricing(Base):
    __tablename__ = "facility_pricing"
    __table_args__ = (
        UniqueConstraint("facility_id", "pricing_type", name="uq_facility_pricing_type"),
        CheckConstraint(
            "minimum_booking_hours >= 1 AND maximum_booking_hours >= minimum_booking_hours",
            name="ck_facility_pricing_hours",
        ),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    facility_id = Column(String(36), ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False, index=True)
    pricing_type = Column(String, nullable=False, default=PricingType.HOURLY.value)
    base_price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    peak_hour_multiplier = Column(Numeric(3, 2), nullable=False, default=1)
    weekend_multiplier = Column(Numeric(3, 2), nullable=False, default=1)
    minimum_booking_hours = Column(Integer, nullable=False, default=1)
    maximum_booking_hours = Column(Integer, nullable=False, default=24)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_facility_date", "facility_id", "booking_date"),
        UniqueConstraint("customer_id", "idempotency_key", name="uq_bookings_idempotency"),
        CheckConstraint("start_time < end_time", name="ck_bookings_range"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    facility_id = Column(String(36), ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False)
    customer_id = Column(String, nullable=False, index=True)
    time_slot_id = Column(String(36), ForeignKey("facility_schedules.id", ondelete="SET NULL"), nullable=True)

    booking_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    total_hours = Column(Numeric(4, 2), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)

    status = Column(String, nullable=False, default=BookingStatus.PENDING.value, index=True)
    payment_status = Column(String, nullable=False, default=PaymentStatus.PENDING.value)
    payment_method = Column(String, nullable=True)
    transaction_id = Column(String, nullable=True)

    special_requests = Column(Text, nullable=True)
    owner_notes = Column(Text, nullable=True)
    customer_notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(String, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    idempotency_key = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class BookingNotification(Base):
    __tablename__ = "booking_notifications"

    id = Column(String(36), primary_key=True, default=_uuid)
    booking_id = Column(String(36), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    notification_type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
