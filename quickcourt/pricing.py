from datetime import date, time
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import config
from .conflicts import compute_duration
from .errors import ValidationError
from .models import FacilityPricing, FacilitySchedule, PricingType

CENTS = Decimal("0.01")


def day_of_week(d: date) -> int:
    """0=Sunday .. 6=Saturday, as stored on schedule slots."""
    return (d.weekday() + 1) % 7


def is_weekend(d: date) -> bool:
    return day_of_week(d) in (0, 6)


def hours_as_decimal(start: time, end: time) -> Decimal:
    return Decimal(str(compute_duration(start, end))).quantize(CENTS, rounding=ROUND_HALF_UP)


def total_amount(rate: Decimal, start: time, end: time) -> Decimal:
    hours = Decimal(str(compute_duration(start, end)))
    return (Decimal(rate) * hours).quantize(CENTS, rounding=ROUND_HALF_UP)


async def find_matching_slot(
    db: AsyncSession,
    facility_id: str,
    booking_date: date,
    start_time: time,
    end_time: time,
) -> FacilitySchedule | None:
    """Available slot on the booking's weekday that covers the whole range."""
    res = await db.execute(
        select(FacilitySchedule)
        .where(
            FacilitySchedule.facility_id == facility_id,
            FacilitySchedule.day_of_week == day_of_week(booking_date),
            FacilitySchedule.is_available.is_(True),
            FacilitySchedule.start_time <= start_time,
            FacilitySchedule.end_time >= end_time,
        )
        .order_by(FacilitySchedule.start_time)
        .limit(1)
    )
    return res.scalar_one_or_none()


async def get_hourly_pricing(db: AsyncSession, facility_id: str) -> FacilityPricing | None:
    res = await db.execute(
        select(FacilityPricing).where(
            FacilityPricing.facility_id == facility_id,
            FacilityPricing.pricing_type == PricingType.HOURLY.value,
        )
    )
    return res.scalar_one_or_none()


async def check_booking_length(db: AsyncSession, facility_id: str, start_time: time, end_time: time) -> None:
    """Enforce the facility's minimum/maximum booking hours, if it has pricing rules."""
    pricing = await get_hourly_pricing(db, facility_id)
    if pricing is None:
        return

    hours = compute_duration(start_time, end_time)
    if hours < pricing.minimum_booking_hours:
        raise ValidationError(f"Bookings must be at least {pricing.minimum_booking_hours} hour(s)")
    if hours > pricing.maximum_booking_hours:
        raise ValidationError(f"Bookings must be at most {pricing.maximum_booking_hours} hour(s)")


async def facility_default_rate(db: AsyncSession, facility_id: str, booking_date: date) -> Decimal:
    pricing = await get_hourly_pricing(db, facility_id)
    if pricing is None:
        return config.DEFAULT_PRICE_PER_HOUR

    rate = Decimal(pricing.base_price)
    if is_weekend(booking_date):
        rate = (rate * Decimal(pricing.weekend_multiplier)).quantize(CENTS, rounding=ROUND_HALF_UP)
    return rate


async def resolve_rate(
    db: AsyncSession,
    facility_id: str,
    booking_date: date,
    start_time: time,
    end_time: time,
) -> tuple[Decimal, FacilitySchedule | None]:
    # slot prices are already per weekday, so the weekend multiplier only scales the base price
    slot = await find_matching_slot(db, facility_id, booking_date, start_time, end_time)
    if slot is not None:
        return Decimal(slot.price_per_hour), slot
    return await facility_default_rate(db, facility_id, booking_date), None
