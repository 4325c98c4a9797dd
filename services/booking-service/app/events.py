import json
import uuid
from datetime import datetime, timezone


def build_event(event_type: str, data: dict) -> dict:
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "data": data,
    }


def to_json(event: dict) -> str:
    return json.dumps(event, separators=(",", ":"), ensure_ascii=False, default=str)


def booking_event_data(booking, **extra) -> dict:
    data = {
        "booking_id": booking.id,
        "booking_number": booking.booking_number,
        "service_id": booking.service_id,
        "mechanic_id": booking.mechanic_id,
        "customer_id": booking.customer_id,
        "status": booking.status,
        "scheduled_date": booking.scheduled_date.isoformat(),
        "scheduled_time": booking.scheduled_time,
        "total_amount": booking.total_amount,
        "payment_status": booking.payment_status,
    }
    data.update(extra)
    return data
