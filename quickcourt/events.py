import json
import uuid
from datetime import datetime, timezone

EXCHANGE_NAME = "domain_events"

BOOKING_CREATED = "booking.created"
BOOKING_STATUS_UPDATED = "booking.status_updated"
BOOKING_RESCHEDULED = "booking.rescheduled"
BOOKING_PAYMENT_UPDATED = "booking.payment_updated"

PAYMENT_SUCCEEDED = "payment.succeeded"
PAYMENT_FAILED = "payment.failed"
PAYMENT_REFUNDED = "payment.refunded"


def build_event(event_type: str, data: dict) -> dict:
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "data": data,
    }


def to_json(event: dict) -> str:
    return json.dumps(event, separators=(",", ":"), ensure_ascii=False, default=str)


def booking_payload(booking) -> dict:
    return {
        "booking_id": booking.id,
        "facility_id": booking.facility_id,
        "customer_id": booking.customer_id,
        "booking_date": booking.booking_date.isoformat(),
        "start_time": booking.start_time.isoformat(),
        "end_time": booking.end_time.isoformat(),
        "status": booking.status,
        "payment_status": booking.payment_status,
        "transaction_id": booking.transaction_id,
        "total_amount": str(booking.total_amount),
    }
