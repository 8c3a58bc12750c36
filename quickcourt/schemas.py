from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .models import BookingStatus, FacilityStatus, FacilityType, PaymentStatus


class _ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ---- Facilities ----

class CreateFacility(BaseModel):
    name: str
    facility_type: FacilityType
    address: str
    city: str
    state: str
    description: Optional[str] = None
    owner_id: Optional[str] = None


class FacilityResponse(_ORMModel):
    id: str
    owner_id: str
    name: str
    description: Optional[str] = None
    facility_type: str
    address: str
    city: str
    state: str
    status: str
    is_verified: bool


class SetFacilityStatus(BaseModel):
    status: FacilityStatus


class VerifyFacility(BaseModel):
    is_verified: bool = True


class SetPricing(BaseModel):
    base_price: Decimal = Field(ge=0)
    currency: str = "USD"
    weekend_multiplier: Optional[Decimal] = Field(default=None, gt=0, le=Decimal("9.99"))
    peak_hour_multiplier: Optional[Decimal] = Field(default=None, gt=0, le=Decimal("9.99"))
    minimum_booking_hours: Optional[int] = Field(default=None, ge=1, le=24)
    maximum_booking_hours: Optional[int] = Field(default=None, ge=1, le=24)


class PricingResponse(_ORMModel):
    facility_id: str
    pricing_type: str
    base_price: Decimal
    currency: str
    weekend_multiplier: Decimal
    peak_hour_multiplier: Decimal
    minimum_booking_hours: int
    maximum_booking_hours: int


# ---- Schedule slots ----

class CreateScheduleSlot(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    price_per_hour: Decimal = Field(default=Decimal("50.00"), ge=0)
    is_available: bool = True
    max_capacity: int = Field(default=10, ge=1)
    description: Optional[str] = None

    @model_validator(mode="after")
    def _check_range(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class UpdateScheduleSlot(BaseModel):
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    price_per_hour: Optional[Decimal] = Field(default=None, ge=0)
    is_available: Optional[bool] = None
    max_capacity: Optional[int] = Field(default=None, ge=1)
    description: Optional[str] = None


class ScheduleSlotResponse(_ORMModel):
    id: str
    facility_id: str
    day_of_week: int
    start_time: time
    end_time: time
    price_per_hour: Decimal
    is_available: bool
    max_capacity: int
    description: Optional[str] = None


# ---- Bookings ----

class CreateBookingRequest(BaseModel):
    facility_id: str
    booking_date: date
    start_time: time
    end_time: time
    special_requests: Optional[str] = None
    # admins may book on behalf of a customer
    customer_id: Optional[str] = None


class ConflictCheckRequest(BaseModel):
    booking_date: date
    start_time: time
    end_time: time
    exclude_booking_id: Optional[str] = None


class ConflictCheckResponse(BaseModel):
    facility_id: str
    booking_date: date
    start_time: time
    end_time: time
    has_conflict: bool


class SetBookingStatusRequest(BaseModel):
    status: BookingStatus
    reason: Optional[str] = None


class RescheduleBookingRequest(BaseModel):
    booking_date: date
    start_time: time
    end_time: time


class UpdateBookingNotes(BaseModel):
    customer_notes: Optional[str] = None
    special_requests: Optional[str] = None
    owner_notes: Optional[str] = None


class SetPaymentStatusRequest(BaseModel):
    payment_status: PaymentStatus
    transaction_id: Optional[str] = None
    payment_method: Optional[str] = None


class NotificationResponse(_ORMModel):
    id: str
    booking_id: str
    user_id: str
    notification_type: str
    title: str
    message: str
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class BookingResponse(_ORMModel):
    id: str
    facility_id: str
    customer_id: str
    time_slot_id: Optional[str] = None
    booking_date: date
    start_time: time
    end_time: time
    total_hours: Decimal
    total_amount: Decimal
    status: str
    payment_status: str
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    special_requests: Optional[str] = None
    owner_notes: Optional[str] = None
    customer_notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BookingOutcomeResponse(BaseModel):
    booking: BookingResponse
    notifications: List[NotificationResponse] = Field(default_factory=list)
    created: bool = True


class MarkAllReadResponse(BaseModel):
    updated: int
