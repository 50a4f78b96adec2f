from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..models import Booking, Property, Transaction, User
from ..schemas import BookingListItem, dump_many
from ..security import get_current_user

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"], dependencies=[Depends(get_current_user)])

LATEST_BOOKINGS = 4


async def _count(db: AsyncSession, stmt) -> int:
    return (await db.execute(stmt)).scalar_one()


async def _latest_bookings(db: AsyncSession, owner_id: int | None = None) -> list[dict]:
    stmt = select(Booking)
    if owner_id is not None:
        stmt = stmt.where(Booking.owner_id == owner_id)
    stmt = stmt.order_by(Booking.created_at.desc(), Booking.id.desc()).limit(LATEST_BOOKINGS)
    res = await db.execute(stmt)
    return dump_many(BookingListItem, res.scalars().all())


@router.get("/stats/{user_id}")
async def dashboard_stats(user_id: int, db: AsyncSession = Depends(get_db)):
    account = await db.get(User, user_id)
    if not account:
        raise HTTPException(status_code=404, detail="User not found.")

    if account.role == "admin":
        stats = {
            "user_count": await _count(db, select(func.count(User.id))),
            "property_count": await _count(db, select(func.count(Property.id))),
            "total_revenue": await _count(db, select(func.coalesce(func.sum(Transaction.amount), 0))),
            "latest_bookings": await _latest_bookings(db),
        }
    elif account.role == "agent":
        stats = {
            "agent_properties": await _count(
                db, select(func.count(Property.id)).where(Property.owner_id == user_id)
            ),
            "agent_revenue": await _count(
                db,
                select(func.coalesce(func.sum(Transaction.amount), 0)).where(Transaction.agent_id == user_id),
            ),
            "agent_bookings": await _count(
                db, select(func.count(Booking.id)).where(Booking.owner_id == user_id)
            ),
            "latest_agent_bookings": await _latest_bookings(db, owner_id=user_id),
        }
    else:
        raise HTTPException(status_code=403, detail="Only admins and agents can access this endpoint.")

    return {"success": True, "stats": stats}
