"""
Tests for booking creation: pricing, notifications, conflicts, idempotency
and concurrent requests for the same facility and date.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from quickcourt import facilities as facility_service
from quickcourt import notifications as notification_service
from quickcourt.bookings import create_booking, get_booking, list_bookings
from quickcourt.conflicts import overlaps
from quickcourt.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from quickcourt.models import ACTIVE_BOOKING_STATUSES, Booking, BookingNotification

from conftest import BOOKING_DATE, t


async def _book(db, facility, actor, start, end, booking_date=BOOKING_DATE, **kwargs):
    return await create_booking(
        db, facility.id, actor.user_id, booking_date, t(start), t(end), actor=actor, **kwargs
    )


class TestCreateBooking:
    @pytest.mark.asyncio
    async def test_creates_pending_booking(self, db_session, facility, customer):
        outcome = await _book(db_session, facility, customer, "09:00", "10:30", special_requests="Bring balls")

        booking = outcome.booking
        assert outcome.created is True
        assert booking.id is not None
        assert booking.status == "pending"
        assert booking.payment_status == "pending"
        assert booking.customer_id == customer.user_id
        assert booking.total_hours == Decimal("1.50")
        assert booking.special_requests == "Bring balls"

    @pytest.mark.asyncio
    async def test_default_rate_applies_without_slot_or_pricing(self, db_session, facility, customer):
        outcome = await _book(db_session, facility, customer, "09:00", "10:30")

        assert outcome.booking.time_slot_id is None
        assert outcome.booking.total_amount == Decimal("75.00")

    @pytest.mark.asyncio
    async def test_covering_slot_sets_rate(self, db_session, facility, owner, customer):
        slot = await facility_service.add_schedule_slot(
            db_session, owner, facility.id, day=1, start_time=t("08:00"), end_time=t("12:00"),
            price_per_hour=Decimal("80.00"),
        )

        outcome = await _book(db_session, facility, customer, "09:00", "10:30")

        assert outcome.booking.time_slot_id == slot.id
        assert outcome.booking.total_amount == Decimal("120.00")

    @pytest.mark.asyncio
    async def test_hourly_pricing_used_when_no_slot_covers(self, db_session, facility, owner, customer):
        await facility_service.add_schedule_slot(
            db_session, owner, facility.id, day=1, start_time=t("08:00"), end_time=t("10:00"),
            price_per_hour=Decimal("80.00"),
        )
        await facility_service.set_hourly_pricing(db_session, owner, facility.id, Decimal("40.00"))

        # runs past the end of the slot
        outcome = await _book(db_session, facility, customer, "09:00", "10:30")

        assert outcome.booking.time_slot_id is None
        assert outcome.booking.total_amount == Decimal("60.00")

    @pytest.mark.asyncio
    async def test_unavailable_slot_is_not_used_for_pricing(self, db_session, facility, owner, customer):
        await facility_service.add_schedule_slot(
            db_session, owner, facility.id, day=1, start_time=t("08:00"), end_time=t("12:00"),
            price_per_hour=Decimal("80.00"), is_available=False,
        )

        outcome = await _book(db_session, facility, customer, "09:00", "10:00")

        assert outcome.booking.time_slot_id is None
        assert outcome.booking.total_amount == Decimal("50.00")

    @pytest.mark.asyncio
    async def test_owner_is_notified(self, db_session, facility, owner, customer):
        outcome = await _book(db_session, facility, customer, "09:00", "10:30")

        assert len(outcome.notifications) == 1
        notification = outcome.notifications[0]
        assert notification.user_id == owner.user_id
        assert notification.notification_type == "new_booking"
        assert notification.title == "New Booking Request"
        assert notification.message == "You have a new booking request for 2025-06-02 from 09:00 to 10:30"
        assert notification.is_read is False

        stored = await notification_service.list_booking_notifications(db_session, outcome.booking.id)
        assert [n.id for n in stored] == [notification.id]

    @pytest.mark.asyncio
    async def test_booking_created_event_published(self, db_session, facility, owner, customer, published):
        outcome = await _book(db_session, facility, customer, "09:00", "10:00")

        assert len(published) == 1
        routing_key, body = published[0]
        assert routing_key == "booking.created"
        assert outcome.booking.id in body
        assert owner.user_id in body

    @pytest.mark.asyncio
    async def test_overlap_raises_conflict_without_side_effects(self, db_session, facility, customer, other_customer):
        await _book(db_session, facility, customer, "09:00", "10:00")

        with pytest.raises(ConflictError) as exc_info:
            await _book(db_session, facility, other_customer, "09:30", "10:30")
        assert exc_info.value.status_code == 409

        bookings = (await db_session.execute(select(Booking))).scalars().all()
        assert len(bookings) == 1
        notifications = (await db_session.execute(select(BookingNotification))).scalars().all()
        assert len(notifications) == 1

    @pytest.mark.asyncio
    async def test_adjacent_bookings_both_succeed(self, db_session, facility, customer, other_customer):
        await _book(db_session, facility, customer, "09:00", "10:00")
        outcome = await _book(db_session, facility, other_customer, "10:00", "11:00")

        assert outcome.booking.status == "pending"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("start,end", [("10:00", "10:00"), ("11:00", "09:00")])
    async def test_invalid_interval_rejected(self, db_session, facility, customer, start, end):
        with pytest.raises(ValidationError):
            await _book(db_session, facility, customer, start, end)

    @pytest.mark.asyncio
    async def test_unknown_facility(self, db_session, customer):
        with pytest.raises(NotFoundError):
            await create_booking(
                db_session, "missing", customer.user_id, BOOKING_DATE, t("09:00"), t("10:00"), actor=customer
            )

    @pytest.mark.asyncio
    async def test_inactive_facility_rejects_bookings(self, db_session, facility, owner, customer):
        await facility_service.set_facility_status(db_session, owner, facility.id, "maintenance")

        with pytest.raises(ValidationError):
            await _book(db_session, facility, customer, "09:00", "10:00")

    @pytest.mark.asyncio
    async def test_customer_cannot_book_for_someone_else(self, db_session, facility, customer, other_customer):
        with pytest.raises(AuthorizationError):
            await create_booking(
                db_session, facility.id, other_customer.user_id, BOOKING_DATE, t("09:00"), t("10:00"),
                actor=customer,
            )

    @pytest.mark.asyncio
    async def test_admin_can_book_on_behalf_of_customer(self, db_session, facility, admin, customer):
        outcome = await create_booking(
            db_session, facility.id, customer.user_id, BOOKING_DATE, t("09:00"), t("10:00"), actor=admin
        )

        assert outcome.booking.customer_id == customer.user_id

    @pytest.mark.asyncio
    async def test_notification_failure_keeps_booking(self, db_session, facility, customer, monkeypatch):
        async def broken_create_notification(*args, **kwargs):
            raise RuntimeError("notification store unavailable")

        monkeypatch.setattr(notification_service, "create_notification", broken_create_notification)

        outcome = await _book(db_session, facility, customer, "09:00", "10:00")

        assert outcome.notifications == []
        res = await db_session.execute(select(Booking).where(Booking.id == outcome.booking.id))
        assert res.scalar_one().status == "pending"


class TestIdempotentCreate:
    @pytest.mark.asyncio
    async def test_retry_returns_existing_booking(self, db_session, facility, customer, published):
        first = await _book(db_session, facility, customer, "09:00", "10:00", idempotency_key="req-1")
        retry = await _book(db_session, facility, customer, "09:00", "10:00", idempotency_key="req-1")

        assert retry.created is False
        assert retry.booking.id == first.booking.id
        assert retry.notifications == []
        assert [key for key, _ in published] == ["booking.created"]

        bookings = (await db_session.execute(select(Booking))).scalars().all()
        assert len(bookings) == 1

    @pytest.mark.asyncio
    async def test_key_reused_for_different_request(self, db_session, facility, customer):
        await _book(db_session, facility, customer, "09:00", "10:00", idempotency_key="req-1")

        with pytest.raises(ValidationError):
            await _book(db_session, facility, customer, "11:00", "12:00", idempotency_key="req-1")

    @pytest.mark.asyncio
    async def test_keys_are_scoped_per_customer(self, db_session, facility, customer, other_customer):
        await _book(db_session, facility, customer, "09:00", "10:00", idempotency_key="req-1")
        outcome = await _book(db_session, facility, other_customer, "11:00", "12:00", idempotency_key="req-1")

        assert outcome.created is True

    @pytest.mark.asyncio
    async def test_concurrent_reuse_across_dates(self, session_maker, facility, customer):
        # different dates take different locks, so only the unique key stops the second insert
        async def attempt(booking_date):
            async with session_maker() as session:
                return await _book(
                    session, facility, customer, "09:00", "10:00",
                    booking_date=booking_date, idempotency_key="req-1",
                )

        results = await asyncio.gather(
            attempt(BOOKING_DATE), attempt(date(2025, 6, 3)), return_exceptions=True
        )

        created = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(created) == 1 and created[0].created is True
        assert len(failures) == 1
        assert isinstance(failures[0], ValidationError)

        async with session_maker() as session:
            bookings = (await session.execute(select(Booking))).scalars().all()
        assert len(bookings) == 1

    @pytest.mark.asyncio
    async def test_concurrent_identical_retries_replay(self, session_maker, facility, customer):
        async def attempt():
            async with session_maker() as session:
                return await _book(session, facility, customer, "09:00", "10:00", idempotency_key="req-1")

        first, second = await asyncio.gather(attempt(), attempt())

        assert first.booking.id == second.booking.id
        assert sorted([first.created, second.created]) == [False, True]


class TestPricingRules:
    @pytest.mark.asyncio
    async def test_booking_length_limits(self, db_session, facility, owner, customer):
        await facility_service.set_hourly_pricing(
            db_session, owner, facility.id, Decimal("40.00"),
            minimum_booking_hours=2, maximum_booking_hours=3,
        )

        with pytest.raises(ValidationError):
            await _book(db_session, facility, customer, "09:00", "10:00")
        with pytest.raises(ValidationError):
            await _book(db_session, facility, customer, "09:00", "12:30")

        outcome = await _book(db_session, facility, customer, "09:00", "11:30")
        assert outcome.booking.total_amount == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_rejected_length_creates_nothing(self, db_session, facility, owner, customer):
        await facility_service.set_hourly_pricing(
            db_session, owner, facility.id, Decimal("40.00"), minimum_booking_hours=2
        )

        with pytest.raises(ValidationError):
            await _book(db_session, facility, customer, "09:00", "10:00")

        assert (await db_session.execute(select(Booking))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_weekend_multiplier_scales_hourly_price(self, db_session, facility, owner, customer):
        await facility_service.set_hourly_pricing(
            db_session, owner, facility.id, Decimal("40.00"), weekend_multiplier=Decimal("1.50")
        )

        saturday = await _book(db_session, facility, customer, "09:00", "10:00", booking_date=date(2025, 6, 7))
        sunday = await _book(db_session, facility, customer, "09:00", "10:00", booking_date=date(2025, 6, 8))
        monday = await _book(db_session, facility, customer, "09:00", "10:00")

        assert saturday.booking.total_amount == Decimal("60.00")
        assert sunday.booking.total_amount == Decimal("60.00")
        assert monday.booking.total_amount == Decimal("40.00")

    @pytest.mark.asyncio
    async def test_weekend_slot_price_is_not_multiplied(self, db_session, facility, owner, customer):
        await facility_service.set_hourly_pricing(
            db_session, owner, facility.id, Decimal("40.00"), weekend_multiplier=Decimal("2.00")
        )
        await facility_service.add_schedule_slot(
            db_session, owner, facility.id, day=6, start_time=t("08:00"), end_time=t("12:00"),
            price_per_hour=Decimal("70.00"),
        )

        outcome = await _book(db_session, facility, customer, "09:00", "10:00", booking_date=date(2025, 6, 7))

        assert outcome.booking.total_amount == Decimal("70.00")


class TestConcurrentCreate:
    @pytest.mark.asyncio
    async def test_overlapping_requests_only_one_wins(self, session_maker, facility, customer, other_customer):
        async def attempt(actor, start, end):
            async with session_maker() as session:
                return await _book(session, facility, actor, start, end)

        results = await asyncio.gather(
            attempt(customer, "09:00", "10:00"),
            attempt(other_customer, "09:30", "10:30"),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], ConflictError)

        async with session_maker() as session:
            bookings = (await session.execute(select(Booking))).scalars().all()
        assert len(bookings) == 1

    @pytest.mark.asyncio
    async def test_many_requests_never_overlap(self, session_maker, facility, customer):
        ranges = [
            ("08:00", "09:00"), ("08:30", "09:30"), ("09:00", "10:00"), ("09:30", "11:00"),
            ("10:00", "10:30"), ("10:15", "12:00"), ("11:00", "12:00"), ("08:00", "12:00"),
        ]

        async def attempt(start, end):
            async with session_maker() as session:
                return await _book(session, facility, customer, start, end)

        results = await asyncio.gather(*(attempt(s, e) for s, e in ranges), return_exceptions=True)
        assert all(isinstance(r, ConflictError) for r in results if isinstance(r, Exception))

        async with session_maker() as session:
            res = await session.execute(
                select(Booking).where(Booking.status.in_(ACTIVE_BOOKING_STATUSES))
            )
            active = res.scalars().all()

        assert active
        for i, a in enumerate(active):
            for b in active[i + 1:]:
                assert not overlaps(a.start_time, a.end_time, b.start_time, b.end_time)

    @pytest.mark.asyncio
    async def test_different_dates_do_not_block_each_other(self, session_maker, facility, customer, other_customer):
        async def attempt(actor, booking_date):
            async with session_maker() as session:
                return await _book(session, facility, actor, "09:00", "10:00", booking_date=booking_date)

        first, second = await asyncio.gather(
            attempt(customer, BOOKING_DATE),
            attempt(other_customer, date(2025, 6, 3)),
        )

        assert first.created and second.created


class TestReadBookings:
    @pytest.mark.asyncio
    async def test_customer_and_owner_can_read(self, db_session, facility, owner, customer):
        outcome = await _book(db_session, facility, customer, "09:00", "10:00")

        assert (await get_booking(db_session, outcome.booking.id, customer)).id == outcome.booking.id
        assert (await get_booking(db_session, outcome.booking.id, owner)).id == outcome.booking.id

    @pytest.mark.asyncio
    async def test_unrelated_users_cannot_read(self, db_session, facility, customer, other_customer, other_owner):
        outcome = await _book(db_session, facility, customer, "09:00", "10:00")

        with pytest.raises(NotFoundError):
            await get_booking(db_session, outcome.booking.id, other_customer)
        with pytest.raises(NotFoundError):
            await get_booking(db_session, outcome.booking.id, other_owner)

    @pytest.mark.asyncio
    async def test_list_is_scoped_to_actor(
        self, db_session, facility, owner, other_owner, customer, other_customer, admin
    ):
        await _book(db_session, facility, customer, "09:00", "10:00")
        await _book(db_session, facility, other_customer, "11:00", "12:00")

        assert len(await list_bookings(db_session, customer)) == 1
        assert len(await list_bookings(db_session, other_customer)) == 1
        assert len(await list_bookings(db_session, owner)) == 2
        assert len(await list_bookings(db_session, other_owner)) == 0
        assert len(await list_bookings(db_session, admin)) == 2

    @pytest.mark.asyncio
    async def test_list_filters(self, db_session, facility, owner, customer):
        await _book(db_session, facility, customer, "11:00", "12:00")
        await _book(db_session, facility, customer, "09:00", "10:00")
        await _book(db_session, facility, customer, "09:00", "10:00", booking_date=date(2025, 6, 9))

        same_day = await list_bookings(
            db_session, owner, facility_id=facility.id, date_from=BOOKING_DATE, date_to=BOOKING_DATE
        )
        assert [b.start_time for b in same_day] == [t("09:00"), t("11:00")]

        assert len(await list_bookings(db_session, owner, status="approved")) == 0
        assert len(await list_bookings(db_session, owner, date_from=date(2025, 6, 5))) == 1

    @pytest.mark.asyncio
    async def test_list_rejects_inverted_date_range(self, db_session, customer):
        with pytest.raises(ValidationError):
            await list_bookings(db_session, customer, date_from=date(2025, 6, 9), date_to=BOOKING_DATE)
