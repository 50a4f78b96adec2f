import os
import uuid

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./croscout-test.db")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["RABBIT_URL"] = ""
os.environ["REDIS_URL"] = ""
os.environ["LOG_JSON"] = "false"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from croscout import mailer, notifications
from croscout.db import Base, get_db
from croscout.main import app
from croscout.models import Property, User
from croscout.security import create_access_token, hash_password


@pytest.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'croscout.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    """Every email the app tries to send, instead of talking to SMTP."""
    sent = []

    async def fake_send_email(to, subject, text, html=None):
        sent.append({"to": list(to) if not isinstance(to, str) else [to], "subject": subject, "text": text})

    monkeypatch.setattr(mailer, "send_email", fake_send_email)
    monkeypatch.setattr(notifications, "RETRY_SECONDS", 0)
    return sent


@pytest.fixture
def make_user(session_factory):
    async def _make(role="user", email=None, password="secret123", name=None, **fields):
        if role == "agent":
            fields.setdefault("tax_number", "DE123456789")
        async with session_factory() as session:
            user = User(
                name=name or f"{role.title()} Person",
                email=email or f"{role}-{uuid.uuid4().hex[:8]}@example.com",
                password=hash_password(password) if password else None,
                role=role,
                **fields,
            )
            session.add(user)
            await session.commit()
            return user

    return _make


@pytest.fixture
def make_property(session_factory):
    async def _make(owner, **fields):
        values = {
            "name": "Sea View Apartment",
            "description": "Bright flat close to the beach.",
            "amenities": ["wifi", "kitchen"],
            "price_per_night": 120.0,
            "location": "Split",
            "state": "Dalmatia",
            "property_type": "apartment",
            "guests": 4,
            "property_images": ["https://img.example.com/1.jpg"],
        }
        values.update(fields)
        async with session_factory() as session:
            prop = Property(owner_id=owner.id, **values)
            session.add(prop)
            await session.commit()
            return prop

    return _make


def auth_header(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}
