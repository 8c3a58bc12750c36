"""
Booking notifications.

Notifications are written after the booking change they announce has been
committed, so a failure here never undoes the booking itself.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import NotFoundError
from .models import Booking, BookingNotification, NotificationType
from .rbac import Actor

logger = logging.getLogger(__name__)


def _fmt_time(t) -> str:
    return t.strftime("%H:%M")


def new_booking_message(booking: Booking) -> tuple[str, str]:
    return (
        "New Booking Request",
        f"You have a new booking request for {booking.booking_date.isoformat()} "
        f"from {_fmt_time(booking.start_time)} to {_fmt_time(booking.end_time)}",
    )


def status_update_message(booking: Booking) -> tuple[str, str]:
    return (
        f"Booking {booking.status}",
        f"Your booking for {booking.booking_date.isoformat()} has been {booking.status}",
    )


async def create_notification(
    db: AsyncSession,
    booking_id: str,
    user_id: str,
    notification_type: str,
    title: str,
    message: str,
) -> BookingNotification:
    """
    Add a notification to the session and flush it.

    Raises:
        ValueError: If a required field is missing
    """
    if not booking_id:
        raise ValueError("booking_id is required")
    if not user_id:
        raise ValueError("user_id is required")
    if notification_type not in {t.value for t in NotificationType}:
        raise ValueError(f"Unknown notification type: {notification_type}")
    if not title:
        raise ValueError("title is required")
    if not message:
        raise ValueError("message is required")

    notification = BookingNotification(
        booking_id=booking_id,
        user_id=user_id,
        notification_type=notification_type,
        title=title,
        message=message,
        is_read=False,
    )
    db.add(notification)
    await db.flush()
    return notification


async def emit_notification(
    db: AsyncSession,
    booking: Booking,
    user_id: str,
    notification_type: str,
    title: str,
    message: str,
) -> Optional[BookingNotification]:
    """Create and commit a notification; returns None if that failed."""
    try:
        notification = await create_notification(
            db,
            booking_id=booking.id,
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            message=message,
        )
        await db.commit()
        return notification
    except Exception:
        logger.exception(
            "Failed to store %s notification for booking %s", notification_type, booking.id
        )
        await db.rollback()
        # rollback expires everything in the session, including the committed booking
        await db.refresh(booking)
        return None


async def notify_owner_of_new_booking(
    db: AsyncSession, booking: Booking, owner_id: str
) -> Optional[BookingNotification]:
    title, message = new_booking_message(booking)
    return await emit_notification(
        db, booking, owner_id, NotificationType.NEW_BOOKING.value, title, message
    )


async def notify_customer_of_status(
    db: AsyncSession, booking: Booking
) -> Optional[BookingNotification]:
    title, message = status_update_message(booking)
    return await emit_notification(
        db, booking, booking.customer_id, NotificationType.STATUS_UPDATE.value, title, message
    )


async def list_notifications(
    db: AsyncSession,
    actor: Actor,
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> List[BookingNotification]:
    stmt = select(BookingNotification).where(BookingNotification.user_id == actor.user_id)
    if unread_only:
        stmt = stmt.where(BookingNotification.is_read.is_(False))
    stmt = stmt.order_by(BookingNotification.created_at.desc()).limit(limit).offset(offset)
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def list_booking_notifications(db: AsyncSession, booking_id: str) -> List[BookingNotification]:
    res = await db.execute(
        select(BookingNotification)
        .where(BookingNotification.booking_id == booking_id)
        .order_by(BookingNotification.created_at)
    )
    return list(res.scalars().all())


async def mark_notification_read(
    db: AsyncSession, actor: Actor, notification_id: str
) -> BookingNotification:
    res = await db.execute(
        select(BookingNotification).where(
            BookingNotification.id == notification_id,
            BookingNotification.user_id == actor.user_id,
        )
    )
    notification = res.scalar_one_or_none()
    if not notification:
        raise NotFoundError("Notification not found")

    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.now(timezone.utc)
        await db.commit()
    return notification


async def mark_all_notifications_read(db: AsyncSession, actor: Actor) -> int:
    res = await db.execute(
        update(BookingNotification)
        .where(
            BookingNotification.user_id == actor.user_id,
            BookingNotification.is_read.is_(False),
        )
        .values(is_read=True, read_at=datetime.now(timezone.utc))
    )
    await db.commit()
    return res.rowcount or 0
