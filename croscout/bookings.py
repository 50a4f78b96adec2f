from datetime import datetime

import structlog
from fastapi import HTTPException
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from . import emails
from .models import BookedDate, Booking, Property, Transaction, User
from .notifications import notify
from .schemas import CreateBookingRequest, PaymentDetailsRequest, TransactionIdRequest

logger = structlog.get_logger(__name__)

PAYMENT_REQUEST_MISSING = (
    "You haven't sent a Payment Request with Payment Details to the user. "
    "Please send the payment request before updating the status."
)
TRANSACTION_ID_MISSING = (
    "Transaction ID has not been received yet. "
    "Please wait until the Transaction ID is received before updating the status."
)


async def get_booking(db: AsyncSession, booking_id: int) -> Booking:
    res = await db.execute(
        select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
    )
    booking = res.scalar_one_or_none()
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found.")
    return booking


async def find_overlapping(db: AsyncSession, property_id: int, start: datetime, end: datetime) -> Booking | None:
    res = await db.execute(
        select(Booking)
        .where(
            Booking.property_id == property_id,
            Booking.status != "cancelled",
            Booking.start_date <= end,
            Booking.end_date >= start,
        )
        .limit(1)
    )
    return res.scalar_one_or_none()


def _drop_booked_range(prop: Property | None, booking: Booking):
    if prop is None:
        return
    prop.booked_dates = [
        d for d in prop.booked_dates
        if not (d.start_date == booking.start_date and d.end_date == booking.end_date)
    ]


async def create_booking(db: AsyncSession, data: CreateBookingRequest) -> Booking:
    if data.end_date < data.start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")

    # the row lock serializes overlap check + insert per property
    res = await db.execute(
        select(Property).where(Property.id == data.property_id).with_for_update()
    )
    prop = res.scalar_one_or_none()
    if not prop:
        raise HTTPException(status_code=404, detail="Property not found.")

    if prop.owner_id != data.owner_id:
        raise HTTPException(status_code=400, detail="Owner does not match the property owner.")

    if not await db.get(User, data.guest_id):
        raise HTTPException(status_code=404, detail="Guest not found.")

    if await find_overlapping(db, prop.id, data.start_date, data.end_date):
        raise HTTPException(status_code=409, detail="Property already booked for the selected dates.")

    booking = Booking(
        guest_id=data.guest_id,
        owner_id=data.owner_id,
        property_id=prop.id,
        price=data.price,
        total_guests=data.total_guests,
        start_date=data.start_date,
        end_date=data.end_date,
        status="pending",
    )
    db.add(booking)
    prop.booked_dates.append(BookedDate(start_date=data.start_date, end_date=data.end_date))
    await db.commit()

    logger.info("booking_created", booking_id=booking.id, property_id=prop.id, guest_id=data.guest_id)

    if prop.owner:
        await notify(prop.owner.email, **emails.new_booking(prop.owner.name))

    return booking


async def manage_booking(db: AsyncSession, booking_id: int, action: str) -> str:
    booking = await get_booking(db, booking_id)

    if action == "confirm":
        if booking.status == "confirmed":
            raise HTTPException(status_code=409, detail="Already confirmed this booking")
        if not booking.agent_paypal_email:
            raise HTTPException(status_code=400, detail=PAYMENT_REQUEST_MISSING)
        if not booking.user_transaction_id:
            raise HTTPException(status_code=400, detail=TRANSACTION_ID_MISSING)

        # conditional write: of two concurrent confirms only one matches the row
        res = await db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.status != "confirmed")
            .values(status="confirmed")
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            await db.rollback()
            raise HTTPException(status_code=409, detail="Already confirmed this booking")

        db.add(
            Transaction(
                booking_id=booking.id,
                user_id=booking.guest_id,
                agent_id=booking.owner_id,
                amount=float(booking.price),
                transaction_id=booking.user_transaction_id,
                payment_method="Paypal",
            )
        )
        await db.commit()
        booking = await get_booking(db, booking_id)
        message = "Your booking has been confirmed."

    elif action == "cancel":
        if booking.status == "confirmed":
            raise HTTPException(
                status_code=409,
                detail="This booking has already been confirmed. Cancellation is not allowed at this stage.",
            )

        _drop_booked_range(booking.property, booking)
        booking.status = "cancelled"
        await db.flush()
        # cancelled bookings are not retained
        await db.delete(booking)
        await db.commit()
        message = "Your booking has been cancelled."

    else:
        raise HTTPException(status_code=400, detail="Invalid action.")

    logger.info("booking_transition", booking_id=booking_id, status=booking.status)

    recipients = [u.email for u in (booking.guest, booking.owner) if u]
    guest_name = booking.guest.name if booking.guest else "there"
    await notify(recipients, **emails.booking_status(guest_name, booking_id, booking.status))

    return message


async def update_payment_details(db: AsyncSession, booking_id: int, data: PaymentDetailsRequest) -> Booking:
    booking = await get_booking(db, booking_id)

    # conditional write: a concurrent request cannot overwrite the first value
    res = await db.execute(
        update(Booking)
        .where(
            Booking.id == booking_id,
            Booking.agent_paypal_email.is_(None),
            Booking.payment_instruction.is_(None),
        )
        .values(
            agent_paypal_email=str(data.agent_paypal_email),
            payment_instruction=data.payment_instruction,
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Payment details already exist.")
    await db.commit()
    booking = await get_booking(db, booking_id)

    if booking.guest:
        await notify(
            booking.guest.email,
            **emails.payment_requested(
                booking.guest.name, booking.id, booking.agent_paypal_email, booking.payment_instruction
            ),
        )
    return booking


async def submit_transaction_id(db: AsyncSession, booking_id: int, data: TransactionIdRequest) -> Booking:
    booking = await get_booking(db, booking_id)

    res = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.user_transaction_id.is_(None))
        .values(user_transaction_id=data.user_transaction_id)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Transaction ID already exists.")
    await db.commit()
    booking = await get_booking(db, booking_id)

    if booking.owner:
        await notify(
            booking.owner.email,
            **emails.transaction_submitted(booking.owner.name, booking.id, booking.user_transaction_id),
        )
    return booking


async def delete_booking(db: AsyncSession, booking_id: int):
    booking = await get_booking(db, booking_id)
    _drop_booked_range(booking.property, booking)
    await db.delete(booking)
    await db.commit()
    logger.info("booking_deleted", booking_id=booking_id)


async def bookings_for_user(db: AsyncSession, user: User) -> list[Booking]:
    if user.role == "user":
        column = Booking.guest_id
    elif user.role == "agent":
        column = Booking.owner_id
    else:
        return []

    res = await db.execute(select(Booking).where(column == user.id).order_by(Booking.id))
    return list(res.scalars().all())
