from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from . import bookings as booking_service
from . import facilities as facility_service
from . import notifications as notification_service
from .conflicts import has_conflict, validate_interval
from .db import get_db
from .rbac import Actor
from .schemas import (
    BookingOutcomeResponse,
    BookingResponse,
    ConflictCheckRequest,
    ConflictCheckResponse,
    CreateBookingRequest,
    CreateFacility,
    CreateScheduleSlot,
    FacilityResponse,
    MarkAllReadResponse,
    NotificationResponse,
    PricingResponse,
    RescheduleBookingRequest,
    ScheduleSlotResponse,
    SetBookingStatusRequest,
    SetFacilityStatus,
    SetPaymentStatusRequest,
    SetPricing,
    UpdateBookingNotes,
    UpdateScheduleSlot,
    VerifyFacility,
)
from .security import get_current_actor

router = APIRouter()


def _outcome(outcome: booking_service.BookingOutcome) -> BookingOutcomeResponse:
    return BookingOutcomeResponse(
        booking=BookingResponse.model_validate(outcome.booking),
        notifications=[NotificationResponse.model_validate(n) for n in outcome.notifications],
        created=outcome.created,
    )


# ================= FACILITIES =================

@router.post("/facilities", response_model=FacilityResponse, status_code=status.HTTP_201_CREATED, tags=["Facilities"])
async def create_facility(
    data: CreateFacility,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await facility_service.create_facility(
        db,
        actor,
        name=data.name,
        facility_type=data.facility_type.value,
        address=data.address,
        city=data.city,
        state=data.state,
        description=data.description,
        owner_id=data.owner_id,
    )


@router.get("/facilities", response_model=List[FacilityResponse], tags=["Facilities"])
async def list_facilities(
    facility_type: Optional[str] = None,
    city: Optional[str] = None,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await facility_service.list_facilities(db, actor, facility_type=facility_type, city=city)


@router.get("/facilities/{facility_id}", response_model=FacilityResponse, tags=["Facilities"])
async def get_facility(
    facility_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await facility_service.get_visible_facility(db, facility_id, actor)


@router.put("/facilities/{facility_id}/status", response_model=FacilityResponse, tags=["Facilities"])
async def set_facility_status(
    facility_id: str,
    data: SetFacilityStatus,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await facility_service.set_facility_status(db, actor, facility_id, data.status.value)


@router.post("/facilities/{facility_id}/verify", response_model=FacilityResponse, tags=["Facilities"])
async def verify_facility(
    facility_id: str,
    data: VerifyFacility,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await facility_service.verify_facility(db, actor, facility_id, data.is_verified)


@router.put("/facilities/{facility_id}/pricing", response_model=PricingResponse, tags=["Facilities"])
async def set_pricing(
    facility_id: str,
    data: SetPricing,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await facility_service.set_hourly_pricing(
        db,
        actor,
        facility_id,
        data.base_price,
        data.currency,
        weekend_multiplier=data.weekend_multiplier,
        peak_hour_multiplier=data.peak_hour_multiplier,
        minimum_booking_hours=data.minimum_booking_hours,
        maximum_booking_hours=data.maximum_booking_hours,
    )


# ================= SCHEDULES =================

@router.get("/facilities/{facility_id}/schedules", response_model=List[ScheduleSlotResponse], tags=["Schedules"])
async def list_schedules(
    facility_id: str,
    date: Optional[date] = None,
    available_only: bool = False,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    await facility_service.get_visible_facility(db, facility_id, actor)
    return await facility_service.list_schedule_slots(
        db, facility_id, for_date=date, available_only=available_only
    )


@router.post(
    "/facilities/{facility_id}/schedules",
    response_model=ScheduleSlotResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Schedules"],
)
async def add_schedule(
    facility_id: str,
    data: CreateScheduleSlot,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await facility_service.add_schedule_slot(
        db,
        actor,
        facility_id,
        day=data.day_of_week,
        start_time=data.start_time,
        end_time=data.end_time,
        price_per_hour=data.price_per_hour,
        is_available=data.is_available,
        max_capacity=data.max_capacity,
        description=data.description,
    )


@router.put("/schedules/{slot_id}", response_model=ScheduleSlotResponse, tags=["Schedules"])
async def update_schedule(
    slot_id: str,
    data: UpdateScheduleSlot,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await facility_service.update_schedule_slot(db, actor, slot_id, **data.model_dump(exclude_unset=True))


@router.delete("/schedules/{slot_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Schedules"])
async def remove_schedule(
    slot_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    await facility_service.remove_schedule_slot(db, actor, slot_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/facilities/{facility_id}/conflicts", response_model=ConflictCheckResponse, tags=["Bookings"])
async def check_conflict(
    facility_id: str,
    data: ConflictCheckRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    validate_interval(data.start_time, data.end_time)
    await facility_service.get_visible_facility(db, facility_id, actor)
    conflict = await has_conflict(
        db,
        facility_id,
        data.booking_date,
        data.start_time,
        data.end_time,
        exclude_booking_id=data.exclude_booking_id,
    )
    return ConflictCheckResponse(
        facility_id=facility_id,
        booking_date=data.booking_date,
        start_time=data.start_time,
        end_time=data.end_time,
        has_conflict=conflict,
    )


# ================= BOOKINGS =================

@router.post("/bookings", response_model=BookingOutcomeResponse, tags=["Bookings"])
async def create_booking(
    data: CreateBookingRequest,
    response: Response,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    customer_id = data.customer_id if (actor.is_privileged and data.customer_id) else actor.user_id

    outcome = await booking_service.create_booking(
        db,
        facility_id=data.facility_id,
        customer_id=customer_id,
        booking_date=data.booking_date,
        start_time=data.start_time,
        end_time=data.end_time,
        special_requests=data.special_requests,
        actor=actor,
        idempotency_key=idempotency_key,
    )
    response.status_code = status.HTTP_201_CREATED if outcome.created else status.HTTP_200_OK
    return _outcome(outcome)


@router.get("/bookings", response_model=List[BookingResponse], tags=["Bookings"])
async def list_bookings(
    facility_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    status: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.list_bookings(
        db,
        actor,
        facility_id=facility_id,
        customer_id=customer_id,
        date_from=date_from,
        date_to=date_to,
        status=status,
        limit=min(max(limit, 1), 500),
        offset=max(offset, 0),
    )


@router.get("/bookings/{booking_id}", response_model=BookingResponse, tags=["Bookings"])
async def get_booking(
    booking_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.get_booking(db, booking_id, actor)


@router.put("/bookings/{booking_id}/status", response_model=BookingOutcomeResponse, tags=["Bookings"])
async def set_booking_status(
    booking_id: str,
    data: SetBookingStatusRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    outcome = await booking_service.set_booking_status(
        db, booking_id, data.status.value, actor, reason=data.reason
    )
    return _outcome(outcome)


@router.put("/bookings/{booking_id}/schedule", response_model=BookingOutcomeResponse, tags=["Bookings"])
async def reschedule_booking(
    booking_id: str,
    data: RescheduleBookingRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    outcome = await booking_service.reschedule_booking(
        db, booking_id, actor, data.booking_date, data.start_time, data.end_time
    )
    return _outcome(outcome)


@router.patch("/bookings/{booking_id}/notes", response_model=BookingResponse, tags=["Bookings"])
async def update_booking_notes(
    booking_id: str,
    data: UpdateBookingNotes,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.update_booking_notes(
        db,
        booking_id,
        actor,
        customer_notes=data.customer_notes,
        special_requests=data.special_requests,
        owner_notes=data.owner_notes,
    )


@router.put("/bookings/{booking_id}/payment", response_model=BookingResponse, tags=["Bookings"])
async def set_payment_status(
    booking_id: str,
    data: SetPaymentStatusRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.set_payment_status(
        db,
        booking_id,
        data.payment_status.value,
        actor,
        transaction_id=data.transaction_id,
        payment_method=data.payment_method,
    )


# ================= NOTIFICATIONS =================

@router.get("/notifications", response_model=List[NotificationResponse], tags=["Notifications"])
async def list_notifications(
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await notification_service.list_notifications(
        db, actor, unread_only=unread_only, limit=min(max(limit, 1), 200), offset=max(offset, 0)
    )


@router.post("/notifications/read-all", response_model=MarkAllReadResponse, tags=["Notifications"])
async def mark_all_read(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    updated = await notification_service.mark_all_notifications_read(db, actor)
    return MarkAllReadResponse(updated=updated)


@router.post("/notifications/{notification_id}/read", response_model=NotificationResponse, tags=["Notifications"])
async def mark_read(
    notification_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await notification_service.mark_notification_read(db, actor, notification_id)
