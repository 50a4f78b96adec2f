from datetime import datetime, timedelta, timezone

import pytest

from croscout.models import Booking, Transaction

from conftest import auth_header


@pytest.fixture
async def marketplace(make_user, make_property, session_factory):
    admin = await make_user(role="admin")
    agent = await make_user(role="agent")
    other_agent = await make_user(role="agent")
    guest = await make_user()
    prop = await make_property(agent)
    other_prop = await make_property(other_agent)

    base = datetime(2025, 1, 1, tzinfo=timezone.utc)
    async with session_factory() as session:
        for i in range(5):
            booking = Booking(
                guest_id=guest.id,
                owner_id=agent.id,
                property_id=prop.id,
                price="200",
                total_guests=2,
                start_date=base + timedelta(days=10 * i),
                end_date=base + timedelta(days=10 * i + 2),
                status="confirmed" if i < 2 else "pending",
                created_at=base + timedelta(hours=i),
            )
            session.add(booking)
        session.add(
            Booking(
                guest_id=guest.id,
                owner_id=other_agent.id,
                property_id=other_prop.id,
                price="50",
                total_guests=1,
                start_date=base,
                end_date=base + timedelta(days=1),
                created_at=base + timedelta(hours=10),
            )
        )
        session.add_all(
            [
                Transaction(user_id=guest.id, agent_id=agent.id, amount=200, transaction_id="T1"),
                Transaction(user_id=guest.id, agent_id=agent.id, amount=200, transaction_id="T2"),
                Transaction(user_id=guest.id, agent_id=other_agent.id, amount=50, transaction_id="T3"),
            ]
        )
        await session.commit()

    return admin, agent, guest


async def test_admin_stats(client, marketplace):
    admin, _, _ = marketplace
    resp = await client.get(f"/api/dashboard/stats/{admin.id}", headers=auth_header(admin))
    assert resp.status_code == 200
    stats = resp.json()["stats"]
    assert stats["user_count"] == 4
    assert stats["property_count"] == 2
    assert stats["total_revenue"] == 450
    assert len(stats["latest_bookings"]) == 4
    assert stats["latest_bookings"][0]["price"] == "50"


async def test_agent_stats_are_scoped_to_the_agent(client, marketplace):
    _, agent, _ = marketplace
    resp = await client.get(f"/api/dashboard/stats/{agent.id}", headers=auth_header(agent))
    stats = resp.json()["stats"]
    assert stats["agent_properties"] == 1
    assert stats["agent_revenue"] == 400
    assert stats["agent_bookings"] == 5
    assert len(stats["latest_agent_bookings"]) == 4
    assert all(b["owner_id"] == agent.id for b in stats["latest_agent_bookings"])


async def test_guest_has_no_dashboard(client, marketplace):
    _, _, guest = marketplace
    resp = await client.get(f"/api/dashboard/stats/{guest.id}", headers=auth_header(guest))
    assert resp.status_code == 403


async def test_transactions_by_role(client, marketplace):
    admin, agent, guest = marketplace

    resp = await client.get(f"/api/transactions/{guest.id}", headers=auth_header(guest))
    assert len(resp.json()["transactions"]) == 3

    resp = await client.get(f"/api/transactions/{agent.id}", headers=auth_header(agent))
    assert [t["transaction_id"] for t in resp.json()["transactions"]] == ["T1", "T2"]

    resp = await client.get(f"/api/transactions/{admin.id}", headers=auth_header(admin))
    assert resp.status_code == 404

    resp = await client.get("/api/transactions", headers=auth_header(admin))
    assert len(resp.json()["transactions"]) == 3
