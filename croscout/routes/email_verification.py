import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import emails
from ..config import settings
from ..db import get_db
from ..models import User
from ..notifications import send_now
from ..security import get_current_user, is_expired, issue_one_time_token

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/email-verification", tags=["Email verification"])


@router.post("/send-verification-email")
async def send_verification_email(user=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    account = await db.get(User, user["id"])
    if not account:
        raise HTTPException(status_code=404, detail="User not found")

    token, expires = issue_one_time_token()
    account.verify_email_token = token
    account.verify_email_expires = expires
    await db.commit()

    client_url = (settings.client_url or "http://localhost:3000").rstrip("/")
    try:
        await send_now(account.email, **emails.verify_email(f"{client_url}/verify-email?token={token}"))
    except Exception as e:
        logger.error("verification_email_failed", user_id=account.id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to send verification email")

    return {"success": True, "message": "Verification email sent"}


@router.get("/verify-email")
async def verify_email(token: str, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.verify_email_token == token))
    account = result.scalar_one_or_none()

    if not account or is_expired(account.verify_email_expires):
        raise HTTPException(status_code=400, detail="Invalid or expired verification token")

    account.is_email_verified = True
    account.verify_email_token = None
    account.verify_email_expires = None
    await db.commit()

    return {"success": True, "message": "Email verified successfully"}
