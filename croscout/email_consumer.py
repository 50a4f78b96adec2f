import asyncio
import json

import aio_pika
import structlog

from .config import settings
from .notifications import ROUTING_KEY, deliver
from .rabbitmq import EXCHANGE_NAME
from .redis_client import redis_client

logger = structlog.get_logger(__name__)

QUEUE_NAME = "croscout_outbound_email"

IDEMPOTENCY_TTL_SECONDS = 60 * 60 * 24
RETRY_SECONDS = 5


async def _already_processed(event_id: str) -> bool:
    if redis_client is None:
        return False
    key = f"processed_event:{event_id}"
    # SET NX: only the first delivery of an event wins
    created = await redis_client.set(key, "1", ex=IDEMPOTENCY_TTL_SECONDS, nx=True)
    return not created


async def handle_message(message: aio_pika.IncomingMessage):
    async with message.process(requeue=False):
        try:
            payload = json.loads(message.body.decode("utf-8"))
        except Exception:
            logger.warning("email_event_unreadable")
            return

        event_id = payload.get("event_id")
        data = payload.get("data") or {}

        if payload.get("event_type") != ROUTING_KEY or not event_id or not data.get("to"):
            return

        if await _already_processed(event_id):
            return

        if not await deliver(data):
            logger.error("email_dropped", event_id=event_id, to=data.get("to"), subject=data.get("subject"))


async def _connect_and_consume():
    connection = await aio_pika.connect_robust(settings.rabbit_url)
    channel = await connection.channel()
    await channel.set_qos(prefetch_count=10)

    exchange = await channel.declare_exchange(EXCHANGE_NAME, aio_pika.ExchangeType.TOPIC, durable=True)
    queue = await channel.declare_queue(QUEUE_NAME, durable=True)
    await queue.bind(exchange, routing_key=ROUTING_KEY)

    await queue.consume(handle_message)
    logger.info("email_consumer_started", queue=QUEUE_NAME)
    return connection


async def start_consumer_with_retry(stop_event: asyncio.Event):
    while not stop_event.is_set():
        try:
            return await _connect_and_consume()
        except Exception as e:
            logger.warning("email_consumer_connect_failed", retry_in=RETRY_SECONDS, error=str(e))
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=RETRY_SECONDS)
            except asyncio.TimeoutError:
                continue

    return None
