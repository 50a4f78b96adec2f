from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import bookings
from ..db import get_db
from ..models import Booking, User
from ..schemas import (
    BookingDetail,
    BookingListItem,
    BookingOut,
    CreateBookingRequest,
    ManageBookingRequest,
    PaymentDetailsRequest,
    TransactionIdRequest,
    dump,
    dump_many,
)
from ..security import get_current_user
from ..translation import BOOKING_FIELDS, translate_many, translate_one

router = APIRouter(prefix="/api/bookings", tags=["Bookings"], dependencies=[Depends(get_current_user)])


@router.post("", status_code=201)
async def create_booking(data: CreateBookingRequest, db: AsyncSession = Depends(get_db)):
    booking = await bookings.create_booking(db, data)
    return {"success": True, "message": "Booking successfully created", "booking": dump(BookingOut, booking)}


@router.get("")
async def list_bookings(lang: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    res = await db.execute(select(Booking).order_by(Booking.id))
    items = dump_many(BookingListItem, res.scalars().all())
    return {"success": True, "bookings": await translate_many(items, BOOKING_FIELDS, lang)}


@router.get("/user/{user_id}")
async def bookings_by_role(user_id: int, lang: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    account = await db.get(User, user_id)
    if not account:
        raise HTTPException(status_code=404, detail="User not found.")

    found = await bookings.bookings_for_user(db, account)
    if not found:
        raise HTTPException(status_code=404, detail="No bookings found")

    items = dump_many(BookingListItem, found)
    return {"success": True, "bookings": await translate_many(items, BOOKING_FIELDS, lang)}


@router.get("/me")
async def my_bookings(lang: Optional[str] = None, user=Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await bookings_by_role(user["id"], lang, db)


@router.get("/{booking_id}")
async def get_booking(booking_id: int, lang: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    booking = await bookings.get_booking(db, booking_id)
    detail = dump(BookingDetail, booking)
    return {"success": True, "booking": await translate_one(detail, BOOKING_FIELDS, lang)}


@router.put("/{booking_id}")
async def manage_booking(booking_id: int, data: ManageBookingRequest, db: AsyncSession = Depends(get_db)):
    message = await bookings.manage_booking(db, booking_id, data.action)
    return {"success": True, "message": message}


@router.delete("/{booking_id}")
async def delete_booking(booking_id: int, db: AsyncSession = Depends(get_db)):
    await bookings.delete_booking(db, booking_id)
    return {"success": True, "message": "Booking deleted successfully."}


@router.put("/{booking_id}/payment-details")
async def update_payment_details(booking_id: int, data: PaymentDetailsRequest, db: AsyncSession = Depends(get_db)):
    booking = await bookings.update_payment_details(db, booking_id, data)
    return {"success": True, "message": "Payment details updated", "booking": dump(BookingOut, booking)}


@router.post("/{booking_id}/transaction-id")
async def submit_transaction_id(booking_id: int, data: TransactionIdRequest, db: AsyncSession = Depends(get_db)):
    booking = await bookings.submit_transaction_id(db, booking_id, data)
    return {"success": True, "message": "Transaction ID updated successfully", "booking": dump(BookingOut, booking)}
