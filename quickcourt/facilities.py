import logging
from datetime import date, time
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .conflicts import validate_interval
from .errors import AuthorizationError, NotFoundError, ValidationError
from .models import (
    Booking,
    Facility,
    FacilityPricing,
    FacilitySchedule,
    FacilityStatus,
    FacilityType,
    PricingType,
)
from .pricing import day_of_week, get_hourly_pricing
from .rbac import ROLE_OWNER, Actor, require_facility_manager, require_role

logger = logging.getLogger(__name__)

_FACILITY_TYPES = {t.value for t in FacilityType}
_FACILITY_STATUSES = {s.value for s in FacilityStatus}


async def get_facility(db: AsyncSession, facility_id: str, for_update: bool = False) -> Facility:
    stmt = select(Facility).where(Facility.id == facility_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    res = await db.execute(stmt)
    facility = res.scalar_one_or_none()
    if not facility:
        raise NotFoundError("Facility not found")
    return facility


async def get_visible_facility(db: AsyncSession, facility_id: str, actor: Optional[Actor]) -> Facility:
    """Active facilities are public; others only to their owner and admins."""
    facility = await get_facility(db, facility_id)
    if facility.status == FacilityStatus.ACTIVE.value:
        return facility
    if actor and (actor.is_privileged or facility.owner_id == actor.user_id):
        return facility
    raise NotFoundError("Facility not found")


async def create_facility(
    db: AsyncSession,
    actor: Actor,
    name: str,
    facility_type: str,
    address: str,
    city: str,
    state: str,
    description: Optional[str] = None,
    owner_id: Optional[str] = None,
) -> Facility:
    require_role(actor, [ROLE_OWNER, "admin"])

    if facility_type not in _FACILITY_TYPES:
        raise ValidationError(f"Invalid facility type: {facility_type}")

    # admins may register a facility on an owner's behalf
    if actor.is_admin and owner_id:
        resolved_owner = owner_id
    else:
        resolved_owner = actor.user_id

    res = await db.execute(select(Facility.id).where(Facility.name == name))
    if res.scalar_one_or_none():
        raise ValidationError("Facility name already exists")

    facility = Facility(
        owner_id=resolved_owner,
        name=name,
        description=description,
        facility_type=facility_type,
        address=address,
        city=city,
        state=state,
        status=FacilityStatus.ACTIVE.value,
        is_verified=False,
    )
    db.add(facility)
    await db.commit()
    logger.info("Facility %s created by %s", facility.id, actor.user_id)
    return facility


async def list_facilities(
    db: AsyncSession,
    actor: Optional[Actor] = None,
    facility_type: Optional[str] = None,
    city: Optional[str] = None,
) -> List[Facility]:
    stmt = select(Facility)
    if actor is None:
        stmt = stmt.where(Facility.status == FacilityStatus.ACTIVE.value)
    elif not actor.is_privileged:
        stmt = stmt.where(
            or_(
                Facility.status == FacilityStatus.ACTIVE.value,
                Facility.owner_id == actor.user_id,
            )
        )
    if facility_type:
        stmt = stmt.where(Facility.facility_type == facility_type)
    if city:
        stmt = stmt.where(Facility.city == city)

    res = await db.execute(stmt.order_by(Facility.name))
    return list(res.scalars().all())


async def set_facility_status(db: AsyncSession, actor: Actor, facility_id: str, new_status: str) -> Facility:
    if new_status not in _FACILITY_STATUSES:
        raise ValidationError(f"Invalid facility status: {new_status}")

    facility = await get_facility(db, facility_id)
    require_facility_manager(actor, facility)

    if new_status == FacilityStatus.BANNED.value and not actor.is_admin:
        raise AuthorizationError("Only an administrator can ban a facility")
    if facility.status == FacilityStatus.BANNED.value and not actor.is_admin:
        raise AuthorizationError("Only an administrator can lift a ban")

    if facility.status != new_status:
        old = facility.status
        facility.status = new_status
        await db.commit()
        logger.info("Facility %s status %s -> %s by %s", facility.id, old, new_status, actor.user_id)
    return facility


async def verify_facility(db: AsyncSession, actor: Actor, facility_id: str, verified: bool = True) -> Facility:
    if not actor.is_admin:
        raise AuthorizationError("Only an administrator can verify facilities")
    facility = await get_facility(db, facility_id)
    facility.is_verified = verified
    await db.commit()
    return facility


async def set_hourly_pricing(
    db: AsyncSession,
    actor: Actor,
    facility_id: str,
    base_price: Decimal,
    currency: str = "USD",
    weekend_multiplier: Optional[Decimal] = None,
    peak_hour_multiplier: Optional[Decimal] = None,
    minimum_booking_hours: Optional[int] = None,
    maximum_booking_hours: Optional[int] = None,
) -> FacilityPricing:
    """Create or update the facility's hourly pricing; omitted rules keep their current value."""
    if base_price < 0:
        raise ValidationError("base_price must not be negative")
    for name, value in (("weekend_multiplier", weekend_multiplier), ("peak_hour_multiplier", peak_hour_multiplier)):
        if value is not None and value <= 0:
            raise ValidationError(f"{name} must be positive")

    facility = await get_facility(db, facility_id)
    require_facility_manager(actor, facility)

    pricing = await get_hourly_pricing(db, facility_id)

    if minimum_booking_hours is None:
        minimum_booking_hours = pricing.minimum_booking_hours if pricing else 1
    if maximum_booking_hours is None:
        maximum_booking_hours = pricing.maximum_booking_hours if pricing else 24
    if minimum_booking_hours < 1 or maximum_booking_hours < minimum_booking_hours:
        raise ValidationError("Booking hours must satisfy 1 <= minimum <= maximum")

    if pricing is None:
        pricing = FacilityPricing(
            facility_id=facility_id,
            pricing_type=PricingType.HOURLY.value,
            weekend_multiplier=Decimal("1.00"),
            peak_hour_multiplier=Decimal("1.00"),
        )
        db.add(pricing)

    pricing.base_price = base_price
    pricing.currency = currency
    pricing.minimum_booking_hours = minimum_booking_hours
    pricing.maximum_booking_hours = maximum_booking_hours
    if weekend_multiplier is not None:
        pricing.weekend_multiplier = weekend_multiplier
    if peak_hour_multiplier is not None:
        pricing.peak_hour_multiplier = peak_hour_multiplier

    await db.commit()
    return pricing


# ---- Schedule slots ----

def _validate_slot(day: int, start_time: time, end_time: time) -> None:
    if day < 0 or day > 6:
        raise ValidationError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
    validate_interval(start_time, end_time)


async def _slot_exists(
    db: AsyncSession,
    facility_id: str,
    day: int,
    start_time: time,
    end_time: time,
    exclude_slot_id: Optional[str] = None,
) -> bool:
    stmt = select(FacilitySchedule.id).where(
        FacilitySchedule.facility_id == facility_id,
        FacilitySchedule.day_of_week == day,
        FacilitySchedule.start_time == start_time,
        FacilitySchedule.end_time == end_time,
    )
    if exclude_slot_id:
        stmt = stmt.where(FacilitySchedule.id != exclude_slot_id)
    res = await db.execute(stmt)
    return res.first() is not None


async def add_schedule_slot(
    db: AsyncSession,
    actor: Actor,
    facility_id: str,
    day: int,
    start_time: time,
    end_time: time,
    price_per_hour: Decimal = Decimal("50.00"),
    is_available: bool = True,
    max_capacity: int = 10,
    description: Optional[str] = None,
) -> FacilitySchedule:
    _validate_slot(day, start_time, end_time)
    if price_per_hour < 0:
        raise ValidationError("price_per_hour must not be negative")

    facility = await get_facility(db, facility_id)
    require_facility_manager(actor, facility)

    if await _slot_exists(db, facility_id, day, start_time, end_time):
        raise ValidationError("Schedule slot already exists")

    slot = FacilitySchedule(
        facility_id=facility_id,
        day_of_week=day,
        start_time=start_time,
        end_time=end_time,
        price_per_hour=price_per_hour,
        is_available=is_available,
        max_capacity=max_capacity,
        description=description,
    )
    db.add(slot)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ValidationError("Schedule slot already exists")
    return slot


async def get_schedule_slot(db: AsyncSession, slot_id: str) -> FacilitySchedule:
    res = await db.execute(select(FacilitySchedule).where(FacilitySchedule.id == slot_id))
    slot = res.scalar_one_or_none()
    if not slot:
        raise NotFoundError("Schedule slot not found")
    return slot


async def update_schedule_slot(db: AsyncSession, actor: Actor, slot_id: str, **changes) -> FacilitySchedule:
    slot = await get_schedule_slot(db, slot_id)
    facility = await get_facility(db, slot.facility_id)
    require_facility_manager(actor, facility)

    # description is the only field that may be cleared
    changes = {k: v for k, v in changes.items() if v is not None or k == "description"}
    day = changes.get("day_of_week", slot.day_of_week)
    start_time = changes.get("start_time", slot.start_time)
    end_time = changes.get("end_time", slot.end_time)
    _validate_slot(day, start_time, end_time)

    price = changes.get("price_per_hour")
    if price is not None and price < 0:
        raise ValidationError("price_per_hour must not be negative")

    if await _slot_exists(db, slot.facility_id, day, start_time, end_time, exclude_slot_id=slot.id):
        raise ValidationError("Schedule slot already exists")

    for field in ("day_of_week", "start_time", "end_time", "price_per_hour",
                  "is_available", "max_capacity", "description"):
        if field in changes:
            setattr(slot, field, changes[field])

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ValidationError("Schedule slot already exists")
    return slot


async def remove_schedule_slot(db: AsyncSession, actor: Actor, slot_id: str) -> None:
    slot = await get_schedule_slot(db, slot_id)
    facility = await get_facility(db, slot.facility_id)
    require_facility_manager(actor, facility)

    # bookings outlive the slot they were priced from
    await db.execute(
        update(Booking).where(Booking.time_slot_id == slot.id).values(time_slot_id=None)
    )
    await db.delete(slot)
    await db.commit()


async def list_schedule_slots(
    db: AsyncSession,
    facility_id: str,
    for_date: Optional[date] = None,
    available_only: bool = False,
) -> List[FacilitySchedule]:
    await get_facility(db, facility_id)

    stmt = select(FacilitySchedule).where(FacilitySchedule.facility_id == facility_id)
    if for_date is not None:
        stmt = stmt.where(FacilitySchedule.day_of_week == day_of_week(for_date))
    if available_only:
        stmt = stmt.where(FacilitySchedule.is_available.is_(True))

    res = await db.execute(
        stmt.order_by(FacilitySchedule.day_of_week, FacilitySchedule.start_time)
    )
    return list(res.scalars().all())
