"""Tests for the punch endpoints."""

from httpx import AsyncClient

BASE = "/api/v1/attendance"


async def _clock_in(client: AsyncClient, day: str = "2024-06-03", **extra) -> dict:
    resp = await client.post(f"{BASE}/clock-in", json={"date": day, **extra})
    assert resp.status_code == 201, resp.text
    return resp.json()


async def test_clock_in_and_out(async_client: AsyncClient, directory, act_as):
    act_as(directory.alice)
    entry = await _clock_in(async_client, location="HQ")
    assert entry["status"] == "PENDING"
    assert entry["user_name"] == "Alice Anders"
    assert entry["clock_in_location"] == "HQ"
    assert entry["date"] == "2024-06-03"

    resp = await async_client.patch(f"{BASE}/clock-out/{entry['id']}", json={"location": "HQ"})
    assert resp.status_code == 200
    assert resp.json()["clock_out"] is not None

    resp = await async_client.patch(f"{BASE}/clock-out/{entry['id']}")
    assert resp.status_code == 409
    assert resp.json()["kind"] == "invalid_state"


async def test_clock_out_of_another_users_entry(async_client: AsyncClient, directory, act_as):
    act_as(directory.alice)
    entry = await _clock_in(async_client)

    act_as(directory.bob)
    resp = await async_client.patch(f"{BASE}/clock-out/{entry['id']}")
    assert resp.status_code == 404
    assert "not found" in resp.json()["detail"].lower()


async def test_break_start_and_end(async_client: AsyncClient, directory, act_as):
    act_as(directory.alice)
    entry = await _clock_in(async_client)

    resp = await async_client.post(f"{BASE}/break-start/{entry['id']}", json={"reason": "Lunch"})
    assert resp.status_code == 201
    record = resp.json()
    assert record["reason"] == "Lunch"
    assert record["end_time"] is None

    resp = await async_client.post(f"{BASE}/break-start/{entry['id']}")
    assert resp.status_code == 409

    resp = await async_client.patch(f"{BASE}/break-end/{record['id']}")
    assert resp.status_code == 200
    assert resp.json()["duration_minutes"] == 0

    resp = await async_client.patch(f"{BASE}/break-end/{record['id']}")
    assert resp.status_code == 409


async def test_reclock_in_keeps_one_entry_per_day(async_client: AsyncClient, directory, act_as):
    act_as(directory.alice)
    first = await _clock_in(async_client)
    await async_client.patch(f"{BASE}/clock-out/{first['id']}")
    second = await _clock_in(async_client)
    assert second["id"] == first["id"]
    assert second["clock_out"] is None

    resp = await async_client.get(f"{BASE}/entries")
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 1
    assert data["total_pages"] == 1


async def test_list_entries_filters(async_client: AsyncClient, directory, act_as):
    act_as(directory.alice)
    await _clock_in(async_client, "2024-06-03")
    await _clock_in(async_client, "2024-06-10")

    resp = await async_client.get(f"{BASE}/entries", params={"startDate": "2024-06-05", "limit": 5})
    data = resp.json()
    assert data["total"] == 1
    assert data["items"][0]["date"] == "2024-06-10"

    resp = await async_client.get(f"{BASE}/entries", params={"status": "bogus"})
    assert resp.status_code == 422


async def test_work_report(async_client: AsyncClient, directory, act_as):
    act_as(directory.alice)
    entry = await _clock_in(async_client)

    resp = await async_client.post(
        f"{BASE}/work-reports/{entry['id']}",
        json={"project_id": directory.apollo.id, "description": "Sprint planning", "hours": 1.5},
    )
    assert resp.status_code == 201
    assert resp.json()["project_name"] == "Apollo"

    resp = await async_client.post(
        f"{BASE}/work-reports/{entry['id']}",
        json={"project_id": directory.zephyr.id, "description": "Not ours"},
    )
    assert resp.status_code == 403


async def test_punch_payload_validation(async_client: AsyncClient, directory, act_as):
    act_as(directory.alice)
    resp = await async_client.post(f"{BASE}/clock-in", json={"location": "x" * 201})
    assert resp.status_code == 422

    resp = await async_client.post(f"{BASE}/clock-in", json={"date": "1999-01-01"})
    assert resp.status_code == 422
    assert resp.json()["kind"] == "validation"
