"""
Outbound email as a task.

``notify`` never raises: the message goes to the ``notification.email``
routing key when RabbitMQ is configured (see ``email_consumer``), otherwise it
is delivered by an in-process task that retries a few times and logs the
outcome. ``drain`` waits for in-process deliveries still running.
"""
import asyncio

import structlog

from . import mailer
from .events import build_event, to_json
from .rabbitmq import publisher

logger = structlog.get_logger(__name__)

ROUTING_KEY = "notification.email"
MAX_ATTEMPTS = 3
RETRY_SECONDS = 2.0

_pending: set[asyncio.Task] = set()


def _payload(to, subject: str, text: str, html: str | None) -> dict:
    recipients = [to] if isinstance(to, str) else [r for r in to if r]
    return {"to": recipients, "subject": subject, "text": text, "html": html}


async def deliver(payload: dict, attempts: int = MAX_ATTEMPTS) -> bool:
    for attempt in range(1, attempts + 1):
        try:
            await mailer.send_email(payload["to"], payload["subject"], payload["text"], payload.get("html"))
            logger.info("email_sent", to=payload["to"], subject=payload["subject"])
            return True
        except Exception as e:
            logger.warning(
                "email_send_failed",
                to=payload["to"],
                subject=payload["subject"],
                attempt=attempt,
                error=str(e),
            )
            if attempt < attempts:
                await asyncio.sleep(RETRY_SECONDS * attempt)
    return False


async def notify(to, subject: str, text: str, html: str | None = None):
    payload = _payload(to, subject, text, html)
    if not payload["to"]:
        logger.warning("email_skipped_no_recipient", subject=subject)
        return

    event = build_event(ROUTING_KEY, payload)
    if await publisher.publish(ROUTING_KEY, to_json(event)):
        return

    task = asyncio.create_task(deliver(payload))
    _pending.add(task)
    task.add_done_callback(_pending.discard)


async def send_now(to, subject: str, text: str, html: str | None = None):
    """Send inline; raises when the email is the whole point of the request."""
    payload = _payload(to, subject, text, html)
    await mailer.send_email(payload["to"], payload["subject"], payload["text"], payload["html"])
    logger.info("email_sent", to=payload["to"], subject=subject)


async def drain():
    if _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)
