import structlog
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import emails, oauth
from ..config import settings
from ..db import get_db
from ..models import User
from ..notifications import send_now
from ..schemas import ForgotPassword, Login, Register, ResetPassword, UserOut, dump
from ..security import (
    create_access_token,
    hash_password,
    is_expired,
    issue_one_time_token,
    verify_password,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def _login_payload(user: User, message: str) -> dict:
    return {
        "success": True,
        "message": message,
        "token": f"Bearer {create_access_token(user)}",
        "user": dump(UserOut, user),
    }


@router.post("/register", status_code=201)
async def register(data: Register, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.email == data.email))
    if result.scalar_one_or_none():
        raise HTTPException(
            status_code=409,
            detail="Email already exist. Please use a different email or log in",
        )

    if data.role == "agent" and not data.tax_number:
        raise HTTPException(status_code=400, detail="Tax number is required for agents.")

    user = User(
        name=data.name,
        email=data.email,
        password=hash_password(data.password),
        role=data.role,
        tax_number=data.tax_number if data.role == "agent" else None,
    )
    db.add(user)
    await db.commit()

    logger.info("user_registered", user_id=user.id, role=user.role)
    return {"success": True, "message": "User registered successfully."}


@router.post("/login")
async def login(data: Login, db: AsyncSession = Depends(get_db)):
    if not data.email or not data.password:
        raise HTTPException(status_code=400, detail="Email or Password is required")

    result = await db.execute(select(User).where(User.email == data.email))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if not user.password:
        raise HTTPException(
            status_code=401,
            detail="This account signs in with Google. Please continue with Google.",
        )

    if not verify_password(data.password, user.password):
        raise HTTPException(status_code=401, detail="Wrong password")

    return _login_payload(user, "Login in successfully")


@router.get("/logout")
async def logout():
    # tokens are stateless; the client discards its copy
    return {"is_logout": True}


@router.post("/forgot-password")
async def forgot_password(data: ForgotPassword, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.email == data.email))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    token, expires = issue_one_time_token()
    user.reset_password_token = token
    user.reset_password_expires = expires
    await db.commit()

    client_url = (data.client_url or settings.client_url or "http://localhost:3000").rstrip("/")
    try:
        await send_now(user.email, **emails.password_reset(f"{client_url}/reset-password/{token}"))
    except Exception as e:
        logger.error("password_reset_email_failed", user_id=user.id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to send reset email")

    return {"success": True, "message": "Password reset link sent to your email."}


@router.post("/reset-password")
async def reset_password(data: ResetPassword, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.reset_password_token == data.token))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(status_code=400, detail="Invalid or expired token. Resend again")

    if is_expired(user.reset_password_expires):
        raise HTTPException(status_code=400, detail="Token has expired. Resend again")

    user.password = hash_password(data.new_password)
    user.reset_password_token = None
    user.reset_password_expires = None
    await db.commit()

    return {"success": True, "message": "Password reset successful"}


@router.get("/google")
async def google_login():
    return RedirectResponse(oauth.authorization_url())


@router.get("/google/callback")
async def google_callback(code: str, state: str | None = None, db: AsyncSession = Depends(get_db)):
    oauth.verify_state(state)
    profile = await oauth.fetch_profile(code)
    user = await oauth.link_google_account(db, profile)
    return _login_payload(user, "Login in successfully")
