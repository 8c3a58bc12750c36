"""
Booking lifecycle.

Creating or moving a booking runs its conflict check and write inside
``booking_locks.hold(facility_id, booking_date)`` so two callers can never
both pass the check for overlapping ranges. Notifications and domain events
are emitted after the write commits and are returned to the caller on the
``BookingOutcome``.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .conflicts import has_conflict, validate_interval
from .errors import (
    AuthorizationError,
    BookingError,
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from .events import (
    BOOKING_CREATED,
    BOOKING_PAYMENT_UPDATED,
    BOOKING_RESCHEDULED,
    BOOKING_STATUS_UPDATED,
    booking_payload,
    build_event,
    to_json,
)
from .facilities import get_facility
from .locks import BookingLocks, booking_locks
from .models import (
    Booking,
    BookingNotification,
    BookingStatus,
    Facility,
    FacilityStatus,
    PaymentStatus,
)
from .notifications import notify_customer_of_status, notify_owner_of_new_booking
from .pricing import check_booking_length, hours_as_decimal, resolve_rate, total_amount
from .rabbitmq import publisher
from .rbac import ROLE_OWNER, Actor, SYSTEM_ACTOR

logger = logging.getLogger(__name__)

STATUS_TRANSITIONS = {
    BookingStatus.PENDING.value: {
        BookingStatus.APPROVED.value,
        BookingStatus.DENIED.value,
        BookingStatus.CANCELLED.value,
    },
    BookingStatus.APPROVED.value: {
        BookingStatus.CANCELLED.value,
        BookingStatus.COMPLETED.value,
    },
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING.value: {
        PaymentStatus.PAID.value,
        PaymentStatus.REFUNDED.value,
        PaymentStatus.FAILED.value,
    },
    PaymentStatus.PAID.value: {PaymentStatus.REFUNDED.value},
}


@dataclass
class BookingOutcome:
    booking: Booking
    notifications: List[BookingNotification] = field(default_factory=list)
    # False when an idempotent retry returned an existing booking
    created: bool = True


async def _publish(event_type: str, booking: Booking, **extra):
    event = build_event(event_type, {**booking_payload(booking), **extra})
    await publisher.publish(event_type, to_json(event))


def _can_view(actor: Actor, booking: Booking, facility: Facility) -> bool:
    if actor.is_privileged:
        return True
    return booking.customer_id == actor.user_id or facility.owner_id == actor.user_id


async def _load(db: AsyncSession, booking_id: str, actor: Actor) -> tuple[Booking, Facility]:
    res = await db.execute(select(Booking).where(Booking.id == booking_id))
    booking = res.scalar_one_or_none()
    if not booking:
        raise NotFoundError("Booking not found")

    facility = await get_facility(db, booking.facility_id)
    if not _can_view(actor, booking, facility):
        raise NotFoundError("Booking not found")
    return booking, facility


async def get_booking(db: AsyncSession, booking_id: str, actor: Actor) -> Booking:
    booking, _ = await _load(db, booking_id, actor)
    return booking


async def _find_by_idempotency_key(db: AsyncSession, customer_id: str, key: str) -> Optional[Booking]:
    res = await db.execute(
        select(Booking).where(
            Booking.customer_id == customer_id,
            Booking.idempotency_key == key,
        )
    )
    return res.scalar_one_or_none()


def _replay(
    existing: Booking,
    facility_id: str,
    booking_date: date,
    start_time: time,
    end_time: time,
) -> BookingOutcome:
    same_request = (
        existing.facility_id == facility_id
        and existing.booking_date == booking_date
        and existing.start_time == start_time
        and existing.end_time == end_time
    )
    if not same_request:
        raise ValidationError("Idempotency key was already used for a different booking")
    logger.info("Idempotent replay of booking %s", existing.id)
    return BookingOutcome(booking=existing, created=False)


async def create_booking(
    db: AsyncSession,
    facility_id: str,
    customer_id: str,
    booking_date: date,
    start_time: time,
    end_time: time,
    special_requests: Optional[str] = None,
    actor: Optional[Actor] = None,
    idempotency_key: Optional[str] = None,
    locks: BookingLocks = booking_locks,
) -> BookingOutcome:
    validate_interval(start_time, end_time)

    if actor is not None and not actor.is_privileged and actor.user_id != customer_id:
        raise AuthorizationError("Bookings can only be created for yourself")

    async with locks.hold(facility_id, booking_date):
        try:
            if idempotency_key:
                existing = await _find_by_idempotency_key(db, customer_id, idempotency_key)
                if existing is not None:
                    return _replay(existing, facility_id, booking_date, start_time, end_time)

            facility = await get_facility(db, facility_id, for_update=True)
            if facility.status != FacilityStatus.ACTIVE.value:
                raise ValidationError("Facility is not accepting bookings")

            await check_booking_length(db, facility_id, start_time, end_time)

            if await has_conflict(db, facility_id, booking_date, start_time, end_time):
                raise ConflictError("Requested time overlaps an existing booking")

            rate, slot = await resolve_rate(db, facility_id, booking_date, start_time, end_time)

            booking = Booking(
                facility_id=facility_id,
                customer_id=customer_id,
                time_slot_id=slot.id if slot else None,
                booking_date=booking_date,
                start_time=start_time,
                end_time=end_time,
                total_hours=hours_as_decimal(start_time, end_time),
                total_amount=total_amount(rate, start_time, end_time),
                status=BookingStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                special_requests=special_requests,
                idempotency_key=idempotency_key,
            )
            db.add(booking)
            try:
                await db.commit()
            except IntegrityError:
                # same key committed meanwhile under another (facility, date) lock
                await db.rollback()
                existing = None
                if idempotency_key:
                    existing = await _find_by_idempotency_key(db, customer_id, idempotency_key)
                if existing is None:
                    raise
                return _replay(existing, facility_id, booking_date, start_time, end_time)
        except BookingError:
            await db.rollback()
            raise

    logger.info(
        "Booking %s created for facility %s on %s %s-%s",
        booking.id, facility_id, booking_date, start_time, end_time,
    )

    outcome = BookingOutcome(booking=booking)
    notification = await notify_owner_of_new_booking(db, booking, facility.owner_id)
    if notification is not None:
        outcome.notifications.append(notification)

    await _publish(BOOKING_CREATED, booking, owner_id=facility.owner_id)
    return outcome


def _authorize_status_change(actor: Actor, booking: Booking, facility: Facility, new_status: str):
    is_owner = actor.role == ROLE_OWNER and facility.owner_id == actor.user_id

    if new_status in (BookingStatus.APPROVED.value, BookingStatus.DENIED.value):
        if not (is_owner or actor.is_admin):
            raise AuthorizationError("Only the facility owner can approve or deny bookings")
    elif new_status == BookingStatus.CANCELLED.value:
        if not (booking.customer_id == actor.user_id or actor.is_admin):
            raise AuthorizationError("Only the customer can cancel this booking")
    elif new_status == BookingStatus.COMPLETED.value:
        if not (is_owner or actor.is_privileged):
            raise AuthorizationError("Only the facility owner can complete bookings")


async def set_booking_status(
    db: AsyncSession,
    booking_id: str,
    new_status: str,
    actor: Actor,
    reason: Optional[str] = None,
    locks: BookingLocks = booking_locks,
) -> BookingOutcome:
    if new_status not in {s.value for s in BookingStatus}:
        raise ValidationError(f"Invalid booking status: {new_status}")

    booking, facility = await _load(db, booking_id, actor)
    lock_date = booking.booking_date

    async with locks.hold(booking.facility_id, lock_date):
        try:
            # re-read under the lock, a concurrent change may have landed
            await db.refresh(booking)
            old_status = booking.status

            if new_status not in STATUS_TRANSITIONS.get(old_status, set()):
                raise StateError(f"Cannot change booking from {old_status} to {new_status}")

            _authorize_status_change(actor, booking, facility, new_status)

            booking.status = new_status
            if new_status == BookingStatus.CANCELLED.value:
                booking.cancelled_by = actor.user_id
                booking.cancelled_at = datetime.now(timezone.utc)
                booking.cancellation_reason = reason
            await db.commit()
        except BookingError:
            await db.rollback()
            raise

    logger.info("Booking %s status %s -> %s by %s", booking.id, old_status, new_status, actor.user_id)

    outcome = BookingOutcome(booking=booking, created=False)
    notification = await notify_customer_of_status(db, booking)
    if notification is not None:
        outcome.notifications.append(notification)

    await _publish(BOOKING_STATUS_UPDATED, booking, previous_status=old_status, changed_by=actor.user_id)
    return outcome


async def reschedule_booking(
    db: AsyncSession,
    booking_id: str,
    actor: Actor,
    booking_date: date,
    start_time: time,
    end_time: time,
    locks: BookingLocks = booking_locks,
) -> BookingOutcome:
    """
    Move a pending booking, checking the new range against every other booking.

    Both the current and the target date are locked so a concurrent status
    change on the current date cannot land between the check and the move.
    """
    validate_interval(start_time, end_time)

    booking, facility = await _load(db, booking_id, actor)
    if not (booking.customer_id == actor.user_id or actor.is_admin):
        raise AuthorizationError("Only the customer can reschedule this booking")

    held_dates = {booking.booking_date, booking_date}
    async with locks.hold_dates(booking.facility_id, held_dates):
        try:
            await db.refresh(booking)
            if booking.booking_date not in held_dates:
                raise ConflictError("Booking was moved concurrently, retry")
            if booking.status != BookingStatus.PENDING.value:
                raise StateError(f"Only pending bookings can be rescheduled, got {booking.status}")

            facility = await get_facility(db, booking.facility_id, for_update=True)
            if facility.status != FacilityStatus.ACTIVE.value:
                raise ValidationError("Facility is not accepting bookings")

            await check_booking_length(db, booking.facility_id, start_time, end_time)

            if await has_conflict(
                db, booking.facility_id, booking_date, start_time, end_time,
                exclude_booking_id=booking.id,
            ):
                raise ConflictError("Requested time overlaps an existing booking")

            rate, slot = await resolve_rate(db, booking.facility_id, booking_date, start_time, end_time)

            booking.booking_date = booking_date
            booking.start_time = start_time
            booking.end_time = end_time
            booking.time_slot_id = slot.id if slot else None
            booking.total_hours = hours_as_decimal(start_time, end_time)
            booking.total_amount = total_amount(rate, start_time, end_time)
            await db.commit()
        except BookingError:
            await db.rollback()
            raise

    logger.info("Booking %s moved to %s %s-%s", booking.id, booking_date, start_time, end_time)
    await _publish(BOOKING_RESCHEDULED, booking, owner_id=facility.owner_id)
    return BookingOutcome(booking=booking, created=False)


async def update_booking_notes(
    db: AsyncSession,
    booking_id: str,
    actor: Actor,
    customer_notes: Optional[str] = None,
    special_requests: Optional[str] = None,
    owner_notes: Optional[str] = None,
) -> Booking:
    booking, facility = await _load(db, booking_id, actor)

    is_customer = booking.customer_id == actor.user_id
    is_owner = facility.owner_id == actor.user_id

    if (customer_notes is not None or special_requests is not None) and not (is_customer or actor.is_admin):
        raise AuthorizationError("Only the customer can edit customer notes")
    if owner_notes is not None and not (is_owner or actor.is_admin):
        raise AuthorizationError("Only the facility owner can edit owner notes")

    if customer_notes is not None:
        booking.customer_notes = customer_notes
    if special_requests is not None:
        booking.special_requests = special_requests
    if owner_notes is not None:
        booking.owner_notes = owner_notes

    await db.commit()
    return booking


async def set_payment_status(
    db: AsyncSession,
    booking_id: str,
    new_payment_status: str,
    actor: Actor = SYSTEM_ACTOR,
    transaction_id: Optional[str] = None,
    payment_method: Optional[str] = None,
) -> Booking:
    if not actor.is_privileged:
        raise AuthorizationError("Only the payment system can change payment status")
    if new_payment_status not in {s.value for s in PaymentStatus}:
        raise ValidationError(f"Invalid payment status: {new_payment_status}")

    booking, _ = await _load(db, booking_id, actor)
    old = booking.payment_status
    if new_payment_status not in PAYMENT_TRANSITIONS.get(old, set()):
        raise StateError(f"Cannot change payment from {old} to {new_payment_status}")

    booking.payment_status = new_payment_status
    if transaction_id:
        booking.transaction_id = transaction_id
    if payment_method:
        booking.payment_method = payment_method
    await db.commit()
    logger.info("Booking %s payment %s -> %s", booking.id, old, new_payment_status)

    await _publish(BOOKING_PAYMENT_UPDATED, booking, previous_payment_status=old)
    return booking


async def list_bookings(
    db: AsyncSession,
    actor: Actor,
    facility_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    status: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[Booking]:
    if date_from and date_to and date_from > date_to:
        raise ValidationError("date_from must not be after date_to")

    stmt = select(Booking)
    if not actor.is_privileged:
        owned = select(Facility.id).where(Facility.owner_id == actor.user_id)
        stmt = stmt.where(
            or_(Booking.customer_id == actor.user_id, Booking.facility_id.in_(owned))
        )

    if facility_id:
        stmt = stmt.where(Booking.facility_id == facility_id)
    if customer_id:
        stmt = stmt.where(Booking.customer_id == customer_id)
    if date_from:
        stmt = stmt.where(Booking.booking_date >= date_from)
    if date_to:
        stmt = stmt.where(Booking.booking_date <= date_to)
    if status:
        stmt = stmt.where(Booking.status == status)

    stmt = stmt.order_by(Booking.booking_date, Booking.start_time).limit(limit).offset(offset)
    res = await db.execute(stmt)
    return list(res.scalars().all())
