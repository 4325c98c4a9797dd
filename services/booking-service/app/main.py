import asyncio
from fastapi import FastAPI

from .config import RABBIT_URL, SERVICE_NAME
from .consumer import start_consumer_with_retry
from .errors import register_exception_handlers
from .middleware import RequestLoggingMiddleware
from .publisher import publisher
from .routes import router

OPENAPI_TAGS = [
    {"name": "System", "description": "Operational endpoints."},
    {"name": "Bookings", "description": "Booking lifecycle, reviews, refunds, reschedules and disputes."},
]

app = FastAPI(title="Booking Service", openapi_tags=OPENAPI_TAGS)
app.add_middleware(RequestLoggingMiddleware)
register_exception_handlers(app)
app.include_router(router)

_consumer_conn = None
_consumer_task = None
_stop_event = asyncio.Event()


@app.get("/health", tags=["System"])
async def health():
    return {"status": "ok", "service": SERVICE_NAME, "events_enabled": publisher.enabled}


async def _start_consumer():
    global _consumer_conn
    _consumer_conn = await start_consumer_with_retry(_stop_event)


@app.on_event("startup")
async def startup():
    global _consumer_task
    # Never crash the service if RabbitMQ is temporarily unavailable
    try:
        await publisher.connect()
    except Exception as e:
        print(f"[booking-service] RabbitMQ connect failed at startup; continuing without events: {e}")

    if RABBIT_URL:
        _consumer_task = asyncio.create_task(_start_consumer())


@app.on_event("shutdown")
async def shutdown():
    _stop_event.set()
    if _consumer_task:
        try:
            await _consumer_task
        except Exception as e:
            print(f"[booking-service] consumer task ended with error: {e}")
    try:
        if _consumer_conn and not _consumer_conn.is_closed:
            await _consumer_conn.close()
    except Exception as e:
        print(f"[booking-service] consumer close failed: {e}")
    try:
        await publisher.close()
    except Exception as e:
        print(f"[booking-service] publisher close failed: {e}")
