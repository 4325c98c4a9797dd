import random
import re
from datetime import datetime

from . import lifecycle

BOOKING_NUMBER_PREFIX = "MB"
MAX_ATTEMPTS = 3

BOOKING_NUMBER_RE = re.compile(r"^MB-\d{8}-\d{6}-\d{4}$")

_rng = random.SystemRandom()


def generate_booking_number(now: datetime | None = None, rng=None) -> str:
    """MB-<YYYYMMDD>-<HHMMSS>-<4 random digits>, UTC."""
    now = now or lifecycle.utcnow()
    suffix = (rng or _rng).randint(1000, 9999)
    return f"{BOOKING_NUMBER_PREFIX}-{now:%Y%m%d}-{now:%H%M%S}-{suffix}"


def is_booking_number(value: str) -> bool:
    return bool(BOOKING_NUMBER_RE.match(value or ""))
