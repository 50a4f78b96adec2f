from typing import Literal, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_db
from ..models import Booking, Feedback, Property, User
from ..rbac import require_role
from ..schemas import (
    FeedbackCreate,
    FeedbackOut,
    FeedbackWithUser,
    PropertyCreate,
    PropertyDetail,
    PropertyOut,
    PropertyUpdate,
    dump,
    dump_many,
)
from ..security import get_current_user
from ..translation import FEEDBACK_FIELDS, PROPERTY_FIELDS, translate_many, translate_one

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/properties", tags=["Properties"])

DEFAULT_LIMIT = 20


async def _get_property(db: AsyncSession, property_id: int) -> Property:
    res = await db.execute(select(Property).where(Property.id == property_id))
    prop = res.scalar_one_or_none()
    if not prop:
        raise HTTPException(status_code=404, detail="Property not found")
    return prop


def _require_owner_or_admin(user: dict, prop: Property):
    if user.get("role") != "admin" and user.get("id") != prop.owner_id:
        raise HTTPException(status_code=403, detail="Only the owner can change this property")


@router.post("", status_code=201)
async def create_property(data: PropertyCreate, user=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    require_role(user, ["agent", "admin"])

    owner_id = data.owner_id or user["id"]
    if owner_id != user["id"] and user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Agents can only list their own properties")

    owner = await db.get(User, owner_id)
    if not owner:
        raise HTTPException(status_code=404, detail="Owner not found")

    prop = Property(**data.model_dump(exclude={"owner_id"}), owner_id=owner.id)
    db.add(prop)
    await db.commit()

    logger.info("property_created", property_id=prop.id, owner_id=owner.id)
    return {"success": True, "message": "Property Created Successfully", "property_id": prop.id}


@router.get("")
async def list_properties(
    location: Optional[str] = None,
    guest: Optional[int] = Query(default=None, ge=0),
    category: Optional[str] = None,
    price: Optional[Literal["asc", "desc"]] = None,
    alphabate: Optional[Literal["asc", "desc"]] = None,
    newest: bool = False,
    limit: int = Query(default=DEFAULT_LIMIT, ge=1),
    lang: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    stmt = select(Property)

    if location:
        stmt = stmt.where(Property.state.icontains(location, autoescape=True))
    if guest is not None:
        stmt = stmt.where(Property.guests >= guest)
    if category:
        stmt = stmt.where(Property.property_type.icontains(category, autoescape=True))

    order = []
    if alphabate:
        order.append(Property.state.asc() if alphabate == "asc" else Property.state.desc())
    if price:
        order.append(Property.price_per_night.asc() if price == "asc" else Property.price_per_night.desc())
    if newest:
        order.append(Property.id.desc())
    if not order:
        order.append(Property.id.asc())

    res = await db.execute(stmt.order_by(*order).limit(limit))
    properties = dump_many(PropertyOut, res.scalars().all())

    return {"success": True, "properties": await translate_many(properties, PROPERTY_FIELDS, lang)}


@router.get("/user/{email}")
async def properties_by_user(email: str, user=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    res = await db.execute(select(User).where(User.email == email))
    owner = res.scalar_one_or_none()
    if not owner:
        raise HTTPException(status_code=404, detail="User not found")

    res = await db.execute(select(Property).where(Property.owner_id == owner.id).order_by(Property.id))
    return {"success": True, "properties": dump_many(PropertyDetail, res.scalars().all())}


@router.post("/feedback", status_code=201)
async def create_feedback(data: FeedbackCreate, user=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    prop = await _get_property(db, data.property_id)

    res = await db.execute(
        select(Booking.status).where(Booking.guest_id == user["id"], Booking.property_id == prop.id)
    )
    statuses = set(res.scalars().all())

    if not statuses:
        raise HTTPException(
            status_code=404,
            detail="Need to booking first, otherwise you can't provide a review for this property.",
        )
    if "confirmed" not in statuses:
        raise HTTPException(
            status_code=404,
            detail="Your booking request is pending, Please wait until the booking is confirmed.",
        )

    feedback = Feedback(property_id=prop.id, user_id=user["id"], rating=data.rating, comment=data.comment)
    prop.feedbacks.append(feedback)
    await db.commit()

    logger.info("feedback_created", feedback_id=feedback.id, property_id=prop.id)
    return {"success": True, "message": "Feedback created successfully", "feedback": dump(FeedbackOut, feedback)}


@router.get("/{property_id}")
async def get_property(property_id: int, lang: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    prop = await _get_property(db, property_id)
    return {"success": True, "property": await translate_one(dump(PropertyDetail, prop), PROPERTY_FIELDS, lang)}


@router.get("/{property_id}/feedbacks")
async def get_feedbacks(property_id: int, lang: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    res = await db.execute(
        select(Feedback).where(Feedback.property_id == property_id).order_by(Feedback.id)
    )
    feedbacks = dump_many(FeedbackWithUser, res.scalars().all())
    if not feedbacks:
        raise HTTPException(status_code=404, detail="Feedback not found")

    return {"success": True, "feedbacks": await translate_many(feedbacks, FEEDBACK_FIELDS, lang)}


@router.put("/{property_id}")
async def update_property(
    property_id: int,
    data: PropertyUpdate,
    user=Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No update data provided")

    prop = await _get_property(db, property_id)
    _require_owner_or_admin(user, prop)

    for field, value in changes.items():
        setattr(prop, field, value)
    await db.commit()

    return {"success": True, "message": "Updated Successfully"}


@router.delete("/{property_id}")
async def delete_property(property_id: int, user=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    prop = await _get_property(db, property_id)
    _require_owner_or_admin(user, prop)

    await db.delete(prop)
    await db.commit()

    return {"success": True, "message": "Property deleted successfully"}
