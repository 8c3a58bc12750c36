from datetime import date, datetime, time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import ValidationError
from .models import ACTIVE_BOOKING_STATUSES, Booking


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    """Half-open overlap: [a_start, a_end) and [b_start, b_end) share time.

    Ranges that only touch at an endpoint do not overlap.
    """
    return a_start < b_end and a_end > b_start


def compute_duration(start: time, end: time) -> float:
    """Elapsed hours between two times of the same day."""
    delta = datetime.combine(date.min, end) - datetime.combine(date.min, start)
    seconds = delta.total_seconds()
    if seconds <= 0:
        raise ValidationError("end_time must be after start_time")
    return seconds / 3600


def validate_interval(start: time, end: time) -> None:
    if end <= start:
        raise ValidationError("end_time must be after start_time")


async def has_conflict(
    db: AsyncSession,
    facility_id: str,
    booking_date: date,
    start_time: time,
    end_time: time,
    exclude_booking_id: str | None = None,
) -> bool:
    stmt = select(Booking.id).where(
        Booking.facility_id == facility_id,
        Booking.booking_date == booking_date,
        Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        Booking.start_time < end_time,
        Booking.end_time > start_time,
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(Booking.id != exclude_booking_id)

    res = await db.execute(stmt.limit(1))
    return res.scalar_one_or_none() is not None
