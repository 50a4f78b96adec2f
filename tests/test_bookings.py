import asyncio

import pytest
from fastapi import HTTPException
from sqlalchemy import func, select

from croscout import bookings, notifications
from croscout.models import BookedDate, Booking, Transaction

from conftest import auth_header


@pytest.fixture
async def listing(make_user, make_property):
    agent = await make_user(role="agent", name="Ana Agent")
    guest = await make_user(role="user", name="Gus Guest")
    prop = await make_property(agent)
    return agent, guest, prop


async def book(client, guest, prop, start, end, price="480"):
    return await client.post(
        "/api/bookings",
        json={
            "guest_id": guest.id,
            "owner_id": prop.owner_id,
            "property_id": prop.id,
            "price": price,
            "total_guests": 2,
            "start_date": start,
            "end_date": end,
        },
        headers=auth_header(guest),
    )


async def test_create_booking_starts_pending_and_notifies_owner(client, listing, outbox):
    agent, guest, prop = listing

    resp = await book(client, guest, prop, "2025-06-01", "2025-06-05")
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["booking"]["status"] == "pending"
    assert body["booking"]["agent_paypal_email"] is None

    await notifications.drain()
    assert [m["to"] for m in outbox] == [[agent.email]]

    detail = await client.get(f"/api/properties/{prop.id}")
    booked = detail.json()["property"]["booked_dates"]
    assert len(booked) == 1
    assert booked[0]["start_date"].startswith("2025-06-01")


async def test_overlapping_request_is_rejected(client, listing):
    _, guest, prop = listing

    assert (await book(client, guest, prop, "2025-06-01", "2025-06-05")).status_code == 201

    resp = await book(client, guest, prop, "2025-06-04", "2025-06-08")
    assert resp.status_code == 409
    assert resp.json() == {"success": False, "error": "Property already booked for the selected dates."}

    resp = await book(client, guest, prop, "2025-06-06", "2025-06-10")
    assert resp.status_code == 201


async def test_shared_boundary_day_counts_as_overlap(client, listing):
    _, guest, prop = listing

    assert (await book(client, guest, prop, "2025-06-01", "2025-06-05")).status_code == 201
    assert (await book(client, guest, prop, "2025-06-05", "2025-06-07")).status_code == 409
    assert (await book(client, guest, prop, "2025-05-28", "2025-06-01")).status_code == 409


async def test_same_dates_on_another_property_are_fine(client, listing, make_property):
    agent, guest, prop = listing
    other = await make_property(agent, name="Mountain Cabin")

    assert (await book(client, guest, prop, "2025-06-01", "2025-06-05")).status_code == 201
    assert (await book(client, guest, other, "2025-06-01", "2025-06-05")).status_code == 201


async def test_rejects_end_before_start(client, listing):
    _, guest, prop = listing
    resp = await book(client, guest, prop, "2025-06-05", "2025-06-01")
    assert resp.status_code == 400


async def test_rejects_owner_that_does_not_own_the_property(client, listing, make_user):
    _, guest, prop = listing
    stranger = await make_user(role="agent")

    resp = await client.post(
        "/api/bookings",
        json={
            "guest_id": guest.id,
            "owner_id": stranger.id,
            "property_id": prop.id,
            "price": 100,
            "total_guests": 1,
            "start_date": "2025-06-01",
            "end_date": "2025-06-02",
        },
        headers=auth_header(guest),
    )
    assert resp.status_code == 400


async def test_unknown_property_is_404(client, listing):
    _, guest, prop = listing
    resp = await client.post(
        "/api/bookings",
        json={
            "guest_id": guest.id,
            "owner_id": prop.owner_id,
            "property_id": 9999,
            "price": "100",
            "total_guests": 1,
            "start_date": "2025-06-01",
            "end_date": "2025-06-02",
        },
        headers=auth_header(guest),
    )
    assert resp.status_code == 404
    assert resp.json()["error"] == "Property not found."


async def test_booking_routes_require_a_token(client):
    resp = await client.get("/api/bookings")
    assert resp.status_code == 401
    assert resp.json() == {"success": False, "error": "Unauthorized Access"}

    resp = await client.get("/api/bookings", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid or expired token"


async def test_confirm_needs_payment_request_then_transaction_id(client, listing, session_factory):
    agent, guest, prop = listing
    booking_id = (await book(client, guest, prop, "2025-07-01", "2025-07-04")).json()["booking"]["id"]

    resp = await client.put(f"/api/bookings/{booking_id}", json={"action": "confirm"}, headers=auth_header(agent))
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("You haven't sent a Payment Request")

    resp = await client.put(
        f"/api/bookings/{booking_id}/payment-details",
        json={"agent_paypal_email": "pay@agent.example.com", "payment_instruction": "Pay within 24 hours"},
        headers=auth_header(agent),
    )
    assert resp.status_code == 200
    assert resp.json()["booking"]["agent_paypal_email"] == "pay@agent.example.com"

    resp = await client.put(f"/api/bookings/{booking_id}", json={"action": "confirm"}, headers=auth_header(agent))
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Transaction ID has not been received yet")

    resp = await client.post(
        f"/api/bookings/{booking_id}/transaction-id",
        json={"user_transaction_id": "PAYPAL-TX-42"},
        headers=auth_header(guest),
    )
    assert resp.status_code == 200

    resp = await client.put(f"/api/bookings/{booking_id}", json={"action": "confirm"}, headers=auth_header(agent))
    assert resp.status_code == 200
    assert resp.json()["message"] == "Your booking has been confirmed."

    async with session_factory() as session:
        booking = await session.get(Booking, booking_id)
        assert booking.status == "confirmed"
        txs = (await session.execute(select(Transaction))).scalars().all()

    assert len(txs) == 1
    assert txs[0].booking_id == booking_id
    assert txs[0].user_id == guest.id
    assert txs[0].agent_id == agent.id
    assert txs[0].amount == 480.0
    assert txs[0].transaction_id == "PAYPAL-TX-42"
    assert txs[0].payment_method == "Paypal"


async def _confirmed_booking(client, agent, guest, prop):
    booking_id = (await book(client, guest, prop, "2025-08-01", "2025-08-03")).json()["booking"]["id"]
    await client.put(
        f"/api/bookings/{booking_id}/payment-details",
        json={"agent_paypal_email": "pay@agent.example.com", "payment_instruction": "PayPal friends"},
        headers=auth_header(agent),
    )
    await client.post(
        f"/api/bookings/{booking_id}/transaction-id",
        json={"user_transaction_id": "TX-1"},
        headers=auth_header(guest),
    )
    resp = await client.put(f"/api/bookings/{booking_id}", json={"action": "confirm"}, headers=auth_header(agent))
    assert resp.status_code == 200
    return booking_id


async def test_confirming_twice_is_a_conflict(client, listing, session_factory):
    agent, guest, prop = listing
    booking_id = await _confirmed_booking(client, agent, guest, prop)

    resp = await client.put(f"/api/bookings/{booking_id}", json={"action": "confirm"}, headers=auth_header(agent))
    assert resp.status_code == 409
    assert resp.json()["error"] == "Already confirmed this booking"

    async with session_factory() as session:
        count = (await session.execute(select(func.count(Transaction.id)))).scalar_one()
    assert count == 1


async def test_confirmed_booking_cannot_be_cancelled(client, listing):
    agent, guest, prop = listing
    booking_id = await _confirmed_booking(client, agent, guest, prop)

    resp = await client.put(f"/api/bookings/{booking_id}", json={"action": "cancel"}, headers=auth_header(guest))
    assert resp.status_code == 409

    resp = await client.get(f"/api/bookings/{booking_id}", headers=auth_header(guest))
    assert resp.json()["booking"]["status"] == "confirmed"


async def test_cancel_removes_booking_and_frees_dates(client, listing, session_factory, outbox):
    agent, guest, prop = listing
    booking_id = (await book(client, guest, prop, "2025-06-01", "2025-06-05")).json()["booking"]["id"]
    await notifications.drain()
    outbox.clear()

    resp = await client.put(f"/api/bookings/{booking_id}", json={"action": "cancel"}, headers=auth_header(guest))
    assert resp.status_code == 200
    assert resp.json()["message"] == "Your booking has been cancelled."

    async with session_factory() as session:
        assert await session.get(Booking, booking_id) is None
        ranges = (await session.execute(select(BookedDate))).scalars().all()
    assert ranges == []

    await notifications.drain()
    assert sorted(outbox[0]["to"]) == sorted([guest.email, agent.email])

    assert (await book(client, guest, prop, "2025-06-02", "2025-06-04")).status_code == 201


async def test_unknown_action_is_rejected(client, listing):
    _, guest, prop = listing
    booking_id = (await book(client, guest, prop, "2025-06-01", "2025-06-05")).json()["booking"]["id"]

    resp = await client.put(f"/api/bookings/{booking_id}", json={"action": "archive"}, headers=auth_header(guest))
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid action."


async def test_payment_details_and_transaction_id_are_write_once(client, listing):
    agent, guest, prop = listing
    booking_id = (await book(client, guest, prop, "2025-06-01", "2025-06-05")).json()["booking"]["id"]
    details = {"agent_paypal_email": "pay@agent.example.com", "payment_instruction": "First"}

    assert (
        await client.put(f"/api/bookings/{booking_id}/payment-details", json=details, headers=auth_header(agent))
    ).status_code == 200

    resp = await client.put(
        f"/api/bookings/{booking_id}/payment-details",
        json={**details, "payment_instruction": "Second"},
        headers=auth_header(agent),
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "Payment details already exist."

    tx_url = f"/api/bookings/{booking_id}/transaction-id"
    assert (await client.post(tx_url, json={"user_transaction_id": "A"}, headers=auth_header(guest))).status_code == 200
    resp = await client.post(tx_url, json={"user_transaction_id": "B"}, headers=auth_header(guest))
    assert resp.status_code == 409

    booking = (await client.get(f"/api/bookings/{booking_id}", headers=auth_header(guest))).json()["booking"]
    assert booking["payment_instruction"] == "First"
    assert booking["user_transaction_id"] == "A"


async def test_payment_details_need_a_valid_email(client, listing):
    agent, guest, prop = listing
    booking_id = (await book(client, guest, prop, "2025-06-01", "2025-06-05")).json()["booking"]["id"]

    resp = await client.put(
        f"/api/bookings/{booking_id}/payment-details",
        json={"agent_paypal_email": "not-an-email", "payment_instruction": "x"},
        headers=auth_header(agent),
    )
    assert resp.status_code == 400
    assert resp.json()["success"] is False


async def test_booking_detail_embeds_parties_without_passwords(client, listing):
    agent, guest, prop = listing
    booking_id = (await book(client, guest, prop, "2025-06-01", "2025-06-05")).json()["booking"]["id"]

    resp = await client.get(f"/api/bookings/{booking_id}", headers=auth_header(guest))
    assert resp.status_code == 200
    booking = resp.json()["booking"]
    assert booking["guest"]["email"] == guest.email
    assert booking["owner"]["email"] == agent.email
    assert booking["property"]["name"] == prop.name
    assert "password" not in booking["guest"]
    assert "password" not in booking["owner"]

    assert (await client.get("/api/bookings/9999", headers=auth_header(guest))).status_code == 404


async def test_bookings_by_role(client, listing, make_user):
    agent, guest, prop = listing
    await book(client, guest, prop, "2025-06-01", "2025-06-05")
    admin = await make_user(role="admin")

    guest_view = await client.get(f"/api/bookings/user/{guest.id}", headers=auth_header(guest))
    assert [b["guest"]["name"] for b in guest_view.json()["bookings"]] == ["Gus Guest"]

    agent_view = await client.get(f"/api/bookings/user/{agent.id}", headers=auth_header(agent))
    assert len(agent_view.json()["bookings"]) == 1

    mine = await client.get("/api/bookings/me", headers=auth_header(agent))
    assert mine.json()["bookings"] == agent_view.json()["bookings"]

    resp = await client.get(f"/api/bookings/user/{admin.id}", headers=auth_header(admin))
    assert resp.status_code == 404
    assert resp.json()["error"] == "No bookings found"


async def test_delete_booking_frees_dates(client, listing):
    _, guest, prop = listing
    booking_id = (await book(client, guest, prop, "2025-06-01", "2025-06-05")).json()["booking"]["id"]

    resp = await client.delete(f"/api/bookings/{booking_id}", headers=auth_header(guest))
    assert resp.status_code == 200

    detail = await client.get(f"/api/properties/{prop.id}")
    assert detail.json()["property"]["booked_dates"] == []
    assert (await client.delete(f"/api/bookings/{booking_id}", headers=auth_header(guest))).status_code == 404


async def test_concurrent_confirms_create_one_transaction(client, listing, session_factory):
    agent, guest, prop = listing
    booking_id = (await book(client, guest, prop, "2025-09-01", "2025-09-04")).json()["booking"]["id"]
    await client.put(
        f"/api/bookings/{booking_id}/payment-details",
        json={"agent_paypal_email": "pay@agent.example.com", "payment_instruction": "PayPal friends"},
        headers=auth_header(agent),
    )
    await client.post(
        f"/api/bookings/{booking_id}/transaction-id",
        json={"user_transaction_id": "TX-RACE"},
        headers=auth_header(guest),
    )

    async def confirm():
        async with session_factory() as session:
            return await bookings.manage_booking(session, booking_id, "confirm")

    results = await asyncio.gather(confirm(), confirm(), return_exceptions=True)
    await notifications.drain()

    assert results.count("Your booking has been confirmed.") == 1
    conflicts = [r for r in results if isinstance(r, HTTPException)]
    assert [c.status_code for c in conflicts] == [409]

    async with session_factory() as session:
        count = (
            await session.execute(select(func.count(Transaction.id)).where(Transaction.booking_id == booking_id))
        ).scalar_one()
    assert count == 1


@pytest.mark.parametrize("price", ["nan", "inf", "-inf", "1e309"])
async def test_non_finite_price_is_rejected(client, listing, price):
    _, guest, prop = listing
    resp = await book(client, guest, prop, "2025-06-01", "2025-06-05", price=price)
    assert resp.status_code == 400
    assert resp.json()["success"] is False
