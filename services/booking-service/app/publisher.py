import aio_pika

from shared.rabbitmq import connect, declare_exchange

from .config import RABBIT_URL
from .events import booking_event_data, build_event, to_json


class RabbitPublisher:
    def __init__(self, rabbit_url: str | None = RABBIT_URL):
        self.rabbit_url = rabbit_url
        self.enabled = bool(rabbit_url)
        self._connection: aio_pika.RobustConnection | None = None
        self._channel: aio_pika.abc.AbstractChannel | None = None
        self._exchange: aio_pika.abc.AbstractExchange | None = None

    async def connect(self):
        if not self.enabled:
            return

        if self._connection and not self._connection.is_closed:
            return

        try:
            self._connection = await connect(self.rabbit_url)
            self._channel = await self._connection.channel()
            self._exchange = await declare_exchange(self._channel)
        except Exception as e:
            print(f"[booking-service] RabbitMQ connect failed: {e}")
            self._connection = None
            self._channel = None
            self._exchange = None
            raise

    async def publish(self, routing_key: str, message_body: str):
        if not self.enabled:
            return

        try:
            await self.connect()
        except Exception:
            return

        if not self._exchange:
            return

        try:
            msg = aio_pika.Message(
                body=message_body.encode("utf-8"),
                content_type="application/json",
                delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            )
            await self._exchange.publish(msg, routing_key=routing_key)
        except Exception as e:
            print(f"[booking-service] RabbitMQ publish failed ({routing_key}): {e}")

    async def publish_booking(self, event_type: str, booking, **extra):
        event = build_event(event_type, booking_event_data(booking, **extra))
        await self.publish(event_type, to_json(event))

    async def close(self):
        try:
            if self._connection and not self._connection.is_closed:
                await self._connection.close()
        finally:
            self._connection = None
            self._channel = None
            self._exchange = None


publisher = RabbitPublisher()
