import asyncio
import json

import aio_pika
from dateutil import parser
from sqlalchemy import select

from shared.idempotency import claim_event, release_event
from shared.rabbitmq import connect, declare_exchange

from . import lifecycle
from .config import RABBIT_URL
from .errors import ConcurrentModificationError
from .db import SessionLocal
from .models import Booking
from .redis_client import redis_client
from .services import guarded_write

QUEUE_NAME = "booking_service_payment_events"
ROUTING_KEYS = ["payment.completed", "payment.failed"]

RETRY_SECONDS = 5


def _event_time(value):
    if not value:
        return lifecycle.utcnow()
    try:
        return lifecycle.as_utc(parser.isoparse(value))
    except (TypeError, ValueError):
        return lifecycle.utcnow()


async def _find_booking(db, data: dict) -> Booking | None:
    booking_id = data.get("booking_id")
    booking_number = data.get("booking_number")

    if booking_id is not None:
        try:
            stmt = select(Booking).where(Booking.id == int(booking_id))
        except (TypeError, ValueError):
            return None
    elif booking_number:
        stmt = select(Booking).where(Booking.booking_number == booking_number)
    else:
        return None

    res = await db.execute(stmt.execution_options(populate_existing=True))
    return res.scalar_one_or_none()


def _payment_details(data: dict) -> dict:
    """Method, transaction id and gateway as reported by the ledger, when present."""
    details = data.get("payment_details") or {}
    changes = {}

    method = data.get("payment_method")
    if method in lifecycle.PAYMENT_METHODS:
        changes["payment_method"] = method

    transaction_id = details.get("transaction_id") or data.get("transaction_id")
    if transaction_id:
        changes["payment_transaction_id"] = str(transaction_id)

    gateway = details.get("gateway") or data.get("gateway")
    if gateway:
        changes["payment_gateway"] = str(gateway)

    return changes


async def apply_payment_event(db, event_type: str, data: dict) -> bool:
    """
    Mirror the payment ledger's outcome onto the booking.
    Returns True when the booking changed. A failure never overrides a payment
    that already succeeded.
    """
    booking = await _find_booking(db, data)
    if not booking:
        return False

    if event_type == "payment.completed":
        if booking.is_paid:
            return False
        changes = {
            "payment_status": lifecycle.PAYMENT_PAID,
            "is_paid": True,
            "paid_at": _event_time(data.get("paid_at")),
        }
        changes.update(_payment_details(data))

    elif event_type == "payment.failed":
        if booking.is_paid or booking.payment_status == lifecycle.PAYMENT_FAILED:
            return False
        changes = {"payment_status": lifecycle.PAYMENT_FAILED}

    else:
        return False

    await guarded_write(db, booking, changes)
    return True


async def handle_payload(payload: dict, redis=None, session_factory=SessionLocal) -> bool:
    event_id = payload.get("event_id")
    event_type = payload.get("event_type")
    data = payload.get("data") or {}

    if not event_id or event_type not in ROUTING_KEYS:
        return False

    if not await claim_event(redis, event_id):
        return False

    try:
        async with session_factory() as db:
            return await apply_payment_event(db, event_type, data)
    except Exception:
        # let the redelivery be processed again
        await release_event(redis, event_id)
        raise


async def handle_message(message: aio_pika.IncomingMessage):
    async with message.process(requeue=False, ignore_processed=True):
        try:
            payload = json.loads(message.body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            print("[booking-service] dropping malformed payment event")
            return

        if not isinstance(payload, dict):
            return

        try:
            await handle_payload(payload, redis=redis_client)
        except ConcurrentModificationError:
            # a request wrote the booking first, the redelivery sees the new version
            await message.nack(requeue=True)
        except Exception as e:
            print(f"[booking-service] dropping payment event {payload.get('event_id')}: {e!r}")
            await message.reject(requeue=False)


async def _connect_and_consume():
    connection = await connect(RABBIT_URL)
    if connection is None:
        raise RuntimeError("RABBIT_URL not set; cannot start consumer")

    channel = await connection.channel()
    await channel.set_qos(prefetch_count=50)

    exchange = await declare_exchange(channel)
    queue = await channel.declare_queue(QUEUE_NAME, durable=True)
    for rk in ROUTING_KEYS:
        await queue.bind(exchange, routing_key=rk)

    await queue.consume(handle_message)
    print("[booking-service] payment event consumer started")
    return connection


async def start_consumer_with_retry(stop_event: asyncio.Event):
    while not stop_event.is_set():
        try:
            return await _connect_and_consume()
        except Exception as e:
            print(f"[booking-service] consumer connect failed, retrying in {RETRY_SECONDS}s: {e}")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=RETRY_SECONDS)
            except asyncio.TimeoutError:
                continue

    return None
