"""Tests for the correction and transportation endpoints."""

from datetime import date

from httpx import AsyncClient

BASE = "/api/v1/attendance"


async def test_correct_entry(async_client: AsyncClient, directory, act_as, make_entry):
    entry = await make_entry(directory.alice, date(2024, 6, 3), status="APPROVED")
    foreign = await make_entry(directory.carol, date(2024, 6, 3))

    act_as(directory.manager)
    resp = await async_client.post(f"{BASE}/update/{entry.id}", json={"note": "x"})
    assert resp.status_code == 403

    act_as(directory.owner)
    resp = await async_client.post(
        f"{BASE}/update/{entry.id}",
        json={"clock_out": "2024-06-03T19:30:00+09:00", "leave_type": "special", "transportation": 800},
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["status"] == "PENDING"
    assert data["approved_by"] is None
    assert data["worked_hours"] == 9.5
    assert data["leave_type"] == "SPECIAL"
    assert data["transportation_cost"] == 800.0

    resp = await async_client.post(f"{BASE}/update/{entry.id}", json={"leave_type": "HOLIDAY"})
    assert resp.status_code == 422

    resp = await async_client.post(f"{BASE}/update/{entry.id}", json={})
    assert resp.status_code == 422
    assert resp.json()["kind"] == "validation"

    resp = await async_client.post(f"{BASE}/update/{foreign.id}", json={"note": "x"})
    assert resp.status_code == 403


async def test_bulk_transportation(async_client: AsyncClient, directory, act_as, make_entry):
    await make_entry(directory.alice, date(2024, 6, 3))
    await make_entry(directory.bob, date(2024, 6, 3), status="APPROVED")

    act_as(directory.bob)
    resp = await async_client.post(
        f"{BASE}/bulk-transportation",
        json={"rows": [{"user_id": directory.bob.id, "date": "2024-06-03", "amount": 1}]},
    )
    assert resp.status_code == 403

    act_as(directory.owner)
    resp = await async_client.post(
        f"{BASE}/bulk-transportation",
        json={
            "registrations": [
                {"userId": directory.alice.id, "date": "2024-06-03", "amount": 640},
                {"userId": directory.bob.id, "date": "2024-06-03", "transportation": 320},
                {"userId": directory.bob.id, "date": "2024-06-10", "amount": 320},
                {"userId": directory.carol.id, "date": "2024-06-03", "amount": 100},
            ]
        },
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["updated_count"] == 2
    assert data["total_requested"] == 4
    assert [(f["user_id"], f["date"], f["kind"]) for f in data["failures"]] == [
        (directory.bob.id, "2024-06-10", "not_found"),
        (directory.carol.id, "2024-06-03", "permission_denied"),
    ]

    resp = await async_client.post(f"{BASE}/bulk-transportation", json={"rows": []})
    assert resp.status_code == 422

    act_as(directory.alice)
    resp = await async_client.get(f"{BASE}/monthly-stats/2024/6")
    assert resp.json()["transportation_cost"] == 640.0
