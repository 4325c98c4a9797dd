import os

BOOKING_DB = os.getenv("BOOKING_DB")
if not BOOKING_DB:
    raise RuntimeError("BOOKING_DB environment variable is not set")

BOOKING_DB_ECHO = (os.getenv("BOOKING_DB_ECHO") or "").lower() in ("1", "true", "yes")

JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM") or "HS256"

if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET environment variable is not set")

# optional: events are disabled without a broker, dedup is disabled without redis
RABBIT_URL = os.getenv("RABBIT_URL")
REDIS_URL = os.getenv("REDIS_URL")

SERVICE_NAME = "booking-service"
