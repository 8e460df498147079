import json
import logging
from typing import Awaitable, Callable, Iterable

import aio_pika

EXCHANGE_NAME = "library.events"

logger = logging.getLogger(__name__)


def decode_event(body: bytes) -> dict:
    """Parse a message body into ``{"type": ..., "payload": {...}}``."""
    data = json.loads(body)
    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise ValueError("Event without a type")
    payload = data.get("payload") or {}
    if not isinstance(payload, dict):
        raise ValueError("Event payload must be an object")
    return {"type": data["type"], "payload": payload}


async def consume_events(
    amqp_url: str,
    queue_name: str,
    binding_keys: Iterable[str],
    handler: Callable[[dict], Awaitable[None]],
) -> None:
    """Continuously consume events and dispatch them to the handler.

    Messages that cannot be decoded are rejected without requeueing. A handler
    error rejects its message the same way and then stops the consumer.
    """
    connection = await aio_pika.connect_robust(amqp_url)
    async with connection:
        channel = await connection.channel()
        exchange = await channel.declare_exchange(
            EXCHANGE_NAME, aio_pika.ExchangeType.TOPIC, durable=True
        )
        queue = await channel.declare_queue(queue_name, durable=True)
        for binding_key in binding_keys:
            await queue.bind(exchange, routing_key=binding_key)

        async with queue.iterator() as queue_iter:
            async for message in queue_iter:
                try:
                    event = decode_event(message.body)
                except ValueError:
                    logger.warning("Dropping malformed message %s", message.message_id)
                    await message.reject(requeue=False)
                    continue
                async with message.process():
                    await handler(event)
