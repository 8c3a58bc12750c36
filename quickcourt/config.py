import os
from decimal import Decimal

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL environment variable is not set")

JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM") or "HS256"

RABBIT_URL = os.getenv("RABBIT_URL")  # optional in dev, required if you want events
REDIS_URL = os.getenv("REDIS_URL")  # optional, enables the cross-worker booking lock

DEFAULT_PRICE_PER_HOUR = Decimal(os.getenv("DEFAULT_PRICE_PER_HOUR") or "50.00")
BOOKING_LOCK_TIMEOUT_SECONDS = float(os.getenv("BOOKING_LOCK_TIMEOUT_SECONDS") or "5")
# expiry of the Redis lock key; keep it above the slowest booking write
BOOKING_LOCK_TTL_SECONDS = float(os.getenv("BOOKING_LOCK_TTL_SECONDS") or "30")

LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").upper()
SQL_ECHO = (os.getenv("SQL_ECHO") or "").lower() in ("1", "true", "yes")
