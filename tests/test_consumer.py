"""
Tests for applying payment events from the message bus.
"""

import pytest

from quickcourt.bookings import create_booking, get_booking
from quickcourt.consumer import apply_payment_event
from quickcourt.events import build_event
from quickcourt.rbac import SYSTEM_ACTOR

from conftest import BOOKING_DATE, t


async def _booking(db, facility, customer):
    outcome = await create_booking(
        db, facility.id, customer.user_id, BOOKING_DATE, t("09:00"), t("10:00"), actor=customer
    )
    return outcome.booking


@pytest.mark.asyncio
async def test_payment_succeeded_marks_paid(db_session, facility, customer):
    booking = await _booking(db_session, facility, customer)

    changed = await apply_payment_event(db_session, build_event("payment.succeeded", {"booking_id": booking.id}))

    assert changed is True
    assert (await get_booking(db_session, booking.id, SYSTEM_ACTOR)).payment_status == "paid"


@pytest.mark.asyncio
async def test_refund_after_payment(db_session, facility, customer):
    booking = await _booking(db_session, facility, customer)

    await apply_payment_event(db_session, build_event("payment.succeeded", {"booking_id": booking.id}))
    changed = await apply_payment_event(db_session, build_event("payment.refunded", {"booking_id": booking.id}))

    assert changed is True
    assert (await get_booking(db_session, booking.id, SYSTEM_ACTOR)).payment_status == "refunded"


@pytest.mark.asyncio
async def test_replayed_event_is_ignored(db_session, facility, customer):
    booking = await _booking(db_session, facility, customer)
    event = build_event("payment.succeeded", {"booking_id": booking.id})

    assert await apply_payment_event(db_session, event) is True
    assert await apply_payment_event(db_session, event) is False
    assert (await get_booking(db_session, booking.id, SYSTEM_ACTOR)).payment_status == "paid"


@pytest.mark.asyncio
async def test_unknown_booking_is_ignored(db_session):
    assert await apply_payment_event(db_session, build_event("payment.failed", {"booking_id": "missing"})) is False


@pytest.mark.asyncio
async def test_unrelated_event_is_ignored(db_session, facility, customer):
    booking = await _booking(db_session, facility, customer)

    assert await apply_payment_event(db_session, build_event("user.created", {"booking_id": booking.id})) is False
    assert await apply_payment_event(db_session, {"event_type": "payment.succeeded", "data": {}}) is False


@pytest.mark.asyncio
async def test_payment_details_recorded(db_session, facility, customer):
    booking = await _booking(db_session, facility, customer)

    event = build_event(
        "payment.succeeded",
        {"booking_id": booking.id, "transaction_id": "pi_3Nx", "payment_method": "card"},
    )
    await apply_payment_event(db_session, event)

    stored = await get_booking(db_session, booking.id, SYSTEM_ACTOR)
    assert stored.transaction_id == "pi_3Nx"
    assert stored.payment_method == "card"
