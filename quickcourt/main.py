import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import LOG_LEVEL
from .consumer import start_consumer_with_retry
from .errors import BookingError
from .middleware import RequestLoggingMiddleware
from .rabbitmq import publisher
from .routes import router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "System", "description": "Operational endpoints."},
    {"name": "Facilities", "description": "Facilities, their status and pricing."},
    {"name": "Schedules", "description": "Weekly availability windows per facility."},
    {"name": "Bookings", "description": "Booking creation, conflicts and lifecycle."},
    {"name": "Notifications", "description": "Booking notifications for the current user."},
]

app = FastAPI(title="QuickCourt Booking Service", openapi_tags=OPENAPI_TAGS)
app.add_middleware(RequestLoggingMiddleware)
app.include_router(router)

_consumer_task: asyncio.Task | None = None
_stop_event = asyncio.Event()


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.get("/health", tags=["System"])
async def health():
    return {"status": "ok", "service": "quickcourt-booking", "events_enabled": publisher.enabled}


@app.on_event("startup")
async def startup():
    global _consumer_task
    # Never crash the service if RabbitMQ is temporarily unavailable
    try:
        await publisher.connect()
    except Exception as e:
        logger.warning("RabbitMQ connect failed at startup; continuing without events: %s", e)

    _consumer_task = asyncio.create_task(start_consumer_with_retry(_stop_event))


@app.on_event("shutdown")
async def shutdown():
    _stop_event.set()
    if _consumer_task:
        try:
            conn = await _consumer_task
            if conn and not conn.is_closed:
                await conn.close()
        except Exception as e:
            logger.warning("Error closing consumer connection: %s", e)
    try:
        await publisher.close()
    except Exception as e:
        logger.warning("Error closing publisher: %s", e)
