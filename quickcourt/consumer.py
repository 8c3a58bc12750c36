import asyncio
import json
import logging

import aio_pika
from sqlalchemy.ext.asyncio import AsyncSession

from . import db as db_module
from . import redis_client as redis_module
from .bookings import set_payment_status
from .config import RABBIT_URL
from .errors import BookingError
from .events import EXCHANGE_NAME, PAYMENT_FAILED, PAYMENT_REFUNDED, PAYMENT_SUCCEEDED
from .models import PaymentStatus
from .rbac import SYSTEM_ACTOR

logger = logging.getLogger(__name__)

QUEUE_NAME = "quickcourt_booking_payment_events"

PAYMENT_EVENT_STATUS = {
    PAYMENT_SUCCEEDED: PaymentStatus.PAID.value,
    PAYMENT_FAILED: PaymentStatus.FAILED.value,
    PAYMENT_REFUNDED: PaymentStatus.REFUNDED.value,
}
ROUTING_KEYS = list(PAYMENT_EVENT_STATUS)

IDEMPOTENCY_TTL_SECONDS = 24 * 60 * 60
RETRY_SECONDS = 5


async def _already_processed(event_id: str) -> bool:
    client = redis_module.redis_client
    if client is None:
        return False
    key = f"processed_event:{event_id}"
    # SET NX: only the first delivery claims the key
    claimed = await client.set(key, "1", ex=IDEMPOTENCY_TTL_SECONDS, nx=True)
    return not claimed


async def apply_payment_event(db: AsyncSession, payload: dict) -> bool:
    """Apply one payment event; returns True if the booking changed."""
    event_type = payload.get("event_type")
    data = payload.get("data") or {}
    booking_id = data.get("booking_id")

    new_status = PAYMENT_EVENT_STATUS.get(event_type)
    if new_status is None or not booking_id:
        return False

    try:
        await set_payment_status(
            db,
            booking_id,
            new_status,
            actor=SYSTEM_ACTOR,
            transaction_id=data.get("transaction_id"),
            payment_method=data.get("payment_method"),
        )
    except BookingError as e:
        # replays and out-of-order events land here; the booking keeps its state
        logger.info("Ignoring %s for booking %s: %s", event_type, booking_id, e.detail)
        return False
    return True


async def handle_message(message: aio_pika.IncomingMessage):
    async with message.process(requeue=False):
        try:
            payload = json.loads(message.body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("Dropping unparseable message on %s", QUEUE_NAME)
            return

        event_id = payload.get("event_id")
        if not event_id or payload.get("event_type") not in PAYMENT_EVENT_STATUS:
            return

        if await _already_processed(event_id):
            return

        async with db_module.SessionLocal() as db:
            await apply_payment_event(db, payload)


async def _connect_and_consume():
    connection = await aio_pika.connect_robust(RABBIT_URL)
    channel = await connection.channel()
    await channel.set_qos(prefetch_count=50)

    exchange = await channel.declare_exchange(
        EXCHANGE_NAME, aio_pika.ExchangeType.TOPIC, durable=True
    )

    queue = await channel.declare_queue(QUEUE_NAME, durable=True)
    for rk in ROUTING_KEYS:
        await queue.bind(exchange, routing_key=rk)

    await queue.consume(handle_message)
    logger.info("Payment event consumer started")
    return connection


async def start_consumer_with_retry(stop_event: asyncio.Event):
    if not RABBIT_URL:
        return None

    while not stop_event.is_set():
        try:
            return await _connect_and_consume()
        except Exception as e:
            logger.warning("Consumer connect failed, retrying in %ss: %s", RETRY_SECONDS, e)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=RETRY_SECONDS)
            except asyncio.TimeoutError:
                continue

    return None
