from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..models import Favorite, Property, User
from ..schemas import FavoriteToggle, PropertySummary, dump_many
from ..security import get_current_user

router = APIRouter(prefix="/api/favorites", tags=["Favorites"], dependencies=[Depends(get_current_user)])


async def _get_user(db: AsyncSession, user_id: int) -> User:
    account = await db.get(User, user_id)
    if not account:
        raise HTTPException(status_code=404, detail="User not found")
    return account


async def _favorite_rows(db: AsyncSession, user_id: int) -> list[Favorite]:
    res = await db.execute(select(Favorite).where(Favorite.user_id == user_id).order_by(Favorite.id))
    return list(res.scalars().all())


@router.post("/{user_id}")
async def toggle_favorite(user_id: int, data: FavoriteToggle, db: AsyncSession = Depends(get_db)):
    account = await _get_user(db, user_id)

    if account.role in ("agent", "admin"):
        raise HTTPException(status_code=403, detail="Forbidden access")

    if not await db.get(Property, data.property_id):
        raise HTTPException(status_code=404, detail="Property not found")

    res = await db.execute(
        select(Favorite).where(Favorite.user_id == account.id, Favorite.property_id == data.property_id)
    )
    existing = res.scalar_one_or_none()

    if existing:
        await db.delete(existing)
        await db.commit()
        return {"success": True, "is_add": False, "message": "Removed the property from the favorite list"}

    db.add(Favorite(user_id=account.id, property_id=data.property_id))
    await db.commit()
    return {"success": True, "is_add": True, "message": "Added the property to the favorite list"}


@router.get("/{user_id}")
async def get_favorites(user_id: int, db: AsyncSession = Depends(get_db)):
    await _get_user(db, user_id)
    rows = await _favorite_rows(db, user_id)
    return {"success": True, "favorite_list": dump_many(PropertySummary, [r.property for r in rows])}


@router.delete("/{user_id}")
async def delete_favorite(user_id: int, data: FavoriteToggle, db: AsyncSession = Depends(get_db)):
    await _get_user(db, user_id)
    rows = await _favorite_rows(db, user_id)

    if not rows:
        raise HTTPException(status_code=404, detail="Property not found in the favorite list in the user")

    for row in rows:
        if row.property_id == data.property_id:
            await db.delete(row)
    await db.commit()

    return {"success": True, "message": "Favorite deleted successfully"}


@router.get("/{user_id}/check-favorite")
async def check_favorite(user_id: int, property_id: int, db: AsyncSession = Depends(get_db)):
    await _get_user(db, user_id)

    res = await db.execute(
        select(Favorite.id).where(Favorite.user_id == user_id, Favorite.property_id == property_id)
    )
    return {"success": True, "is_in_favorites": res.scalar_one_or_none() is not None}
