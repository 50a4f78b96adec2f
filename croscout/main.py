import asyncio

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from . import notifications
from .config import settings
from .db import engine
from .email_consumer import start_consumer_with_retry
from .errors import register_exception_handlers
from .log import configure_logging
from .middleware import RequestLoggingMiddleware
from .rabbitmq import publisher
from .redis_client import redis_client
from .routes import auth, bookings, dashboard, email_verification, favorites, properties, transactions, users
from .translation import cb_translation

configure_logging()
logger = structlog.get_logger(__name__)

OPENAPI_TAGS = [
    {"name": "System", "description": "Operational endpoints."},
    {"name": "Auth", "description": "Registration, login, password reset and Google sign-in."},
    {"name": "Email verification", "description": "Email ownership checks."},
    {"name": "Users", "description": "Profiles and account administration."},
    {"name": "Properties", "description": "Listings and their feedback."},
    {"name": "Favorites", "description": "A guest's saved properties."},
    {"name": "Bookings", "description": "Booking lifecycle and payment-detail exchange."},
    {"name": "Transactions", "description": "Payments recorded at booking confirmation."},
    {"name": "Dashboard", "description": "Role-scoped statistics."},
]

app = FastAPI(title="Croscout API", openapi_tags=OPENAPI_TAGS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

for module in (auth, email_verification, properties, users, favorites, bookings, transactions, dashboard):
    app.include_router(module.router)

_consumer_conn = None
_consumer_task = None
_stop_event = asyncio.Event()


@app.get("/", response_class=PlainTextResponse, tags=["System"])
async def home():
    return "Welcome to Croscout server"


@app.get("/health", tags=["System"])
async def health():
    return {
        "status": "ok",
        "service": "croscout-api",
        "events_enabled": publisher.enabled,
        "translation_breaker": await cb_translation.status(),
    }


async def _run_consumer():
    global _consumer_conn
    _consumer_conn = await start_consumer_with_retry(_stop_event)


@app.on_event("startup")
async def startup():
    global _consumer_task
    try:
        await publisher.connect()
    except Exception as e:
        logger.warning("rabbitmq_unavailable_at_startup", error=str(e))

    if settings.rabbit_url:
        _consumer_task = asyncio.create_task(_run_consumer())

    logger.info("startup_complete", events_enabled=publisher.enabled)


@app.on_event("shutdown")
async def shutdown():
    _stop_event.set()
    if _consumer_task:
        try:
            await _consumer_task
        except Exception:
            logger.exception("email_consumer_task_failed")
    try:
        if _consumer_conn and not _consumer_conn.is_closed:
            await _consumer_conn.close()
    except Exception:
        logger.exception("email_consumer_close_failed")

    await notifications.drain()

    try:
        await publisher.close()
    except Exception:
        logger.exception("rabbitmq_close_failed")

    if redis_client is not None:
        await redis_client.aclose()
    await engine.dispose()
