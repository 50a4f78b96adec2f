import secrets
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

import httpx
import structlog
from fastapi import HTTPException
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .models import User

logger = structlog.get_logger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"

HTTP_TIMEOUT = 5.0
STATE_TTL = timedelta(minutes=10)


def _require_configured():
    if not (settings.google_client_id and settings.google_client_secret and settings.google_callback_url):
        raise HTTPException(status_code=503, detail="Google sign-in is not configured")


def build_state() -> str:
    # signed, short-lived state so the callback needs no server-side session
    payload = {"nonce": secrets.token_urlsafe(16), "exp": datetime.now(timezone.utc) + STATE_TTL}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_state(state: str | None):
    if not state:
        raise HTTPException(status_code=400, detail="Missing OAuth state")
    try:
        jwt.decode(state, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise HTTPException(status_code=400, detail="Invalid or expired OAuth state")


def authorization_url() -> str:
    _require_configured()
    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": settings.google_callback_url,
        "response_type": "code",
        "scope": "openid email profile",
        "state": build_state(),
        "prompt": "select_account",
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def fetch_profile(code: str) -> dict:
    _require_configured()
    try:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            token_resp = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": settings.google_client_id,
                    "client_secret": settings.google_client_secret,
                    "redirect_uri": settings.google_callback_url,
                    "grant_type": "authorization_code",
                },
            )
            token_resp.raise_for_status()
            access_token = token_resp.json().get("access_token")
            if not access_token:
                raise HTTPException(status_code=401, detail="Google did not return an access token")

            profile_resp = await client.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            profile_resp.raise_for_status()
            return profile_resp.json()
    except httpx.TimeoutException:
        raise HTTPException(status_code=504, detail="Timeout talking to Google")
    except httpx.HTTPStatusError as e:
        logger.warning("google_oauth_rejected", status=e.response.status_code)
        raise HTTPException(status_code=401, detail="Google sign-in failed")
    except httpx.HTTPError as e:
        logger.warning("google_oauth_unreachable", error=str(e))
        raise HTTPException(status_code=502, detail="Google sign-in unavailable")


async def link_google_account(db: AsyncSession, profile: dict) -> User:
    """Find the user by Google subject, then by email; create one otherwise."""
    sub = profile.get("sub")
    email = profile.get("email")
    if not sub or not email:
        raise HTTPException(status_code=400, detail="Google profile has no subject or email")

    res = await db.execute(select(User).where(User.google_id == sub))
    user = res.scalar_one_or_none()

    if not user:
        res = await db.execute(select(User).where(User.email == email))
        user = res.scalar_one_or_none()
        if user:
            user.google_id = sub
        else:
            user = User(
                google_id=sub,
                name=profile.get("name") or email.split("@")[0],
                email=email,
                password=None,
                role="user",
                image=profile.get("picture"),
                is_email_verified=bool(profile.get("email_verified")),
            )
            db.add(user)
        await db.commit()
        logger.info("google_account_linked", user_id=user.id)

    return user
