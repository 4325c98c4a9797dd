from datetime import timedelta

from conftest import BOOKING_DATE, auth_header


def _create_payload(service, scheduled_date=BOOKING_DATE, **overrides):
    payload = {
        "service_id": service.id,
        "scheduled_date": scheduled_date.isoformat(),
        "scheduled_time": "10:30",
        "service_location": {
            "address": "House 12, Road 5, Dhanmondi, Dhaka",
            "coordinates": {"lat": 23.74, "lng": 90.37},
        },
        "service_requirements": ["  brake check ", ""],
    }
    payload.update(overrides)
    return payload


async def _create(client, people, service, **overrides):
    res = await client.post(
        "/bookings", json=_create_payload(service, **overrides), headers=auth_header(people.customer)
    )
    assert res.status_code == 201, res.text
    return res.json()["data"]["booking"]


async def test_health(client):
    res = await client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok", "service": "booking-service", "events_enabled": False}


async def test_create_booking_envelope(client, people, service):
    res = await client.post("/bookings", json=_create_payload(service), headers=auth_header(people.customer))

    assert res.status_code == 201
    body = res.json()
    assert body["status"] == "success"
    booking = body["data"]["booking"]
    assert booking["status"] == "pending"
    assert booking["booking_number"].startswith("MB-")
    assert booking["total_amount"] == 500
    assert booking["service_requirements"] == ["brake check"]
    assert booking["service_location"]["coordinates"] == {"lat": 23.74, "lng": 90.37}
    assert booking["status_history"][0]["note"] == "Booking created"
    assert booking["service"]["title"] == "Engine tune-up"
    assert booking["mechanic"]["full_name"] == "Selim"
    assert booking["customer"]["id"] == people.customer.id
    assert booking["additional_charges_total"] == 0
    assert booking["is_overdue"] is False
    assert booking["payment"]["method"] == "cash"
    assert res.headers.get("X-Request-Id")


async def test_missing_token_is_401(client, service):
    res = await client.post("/bookings", json=_create_payload(service))
    assert res.status_code == 401
    assert res.json()["status"] == "error"


async def test_garbage_token_is_401(client):
    res = await client.get("/bookings", headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401


async def test_mechanic_cannot_create_bookings(client, people, service):
    res = await client.post("/bookings", json=_create_payload(service), headers=auth_header(people.mechanic))
    assert res.status_code == 403


async def test_bad_time_is_a_validation_error(client, people, service):
    res = await client.post(
        "/bookings", json=_create_payload(service, scheduled_time="25:00"), headers=auth_header(people.customer)
    )
    assert res.status_code == 400
    body = res.json()
    assert body["status"] == "error"
    assert body["message"] == "Invalid request data"


async def test_conflict_is_reported(client, people, service):
    await _create(client, people, service)
    res = await client.post(
        "/bookings", json=_create_payload(service), headers=auth_header(people.other_customer)
    )
    assert res.status_code == 400
    assert res.json()["message"] == "Mechanic is not available on the scheduled date"


async def test_get_booking_visibility(client, people, service):
    booking = await _create(client, people, service)
    url = f"/bookings/{booking['id']}"

    assert (await client.get(url, headers=auth_header(people.customer))).status_code == 200
    assert (await client.get(url, headers=auth_header(people.mechanic))).status_code == 200
    assert (await client.get(url, headers=auth_header(people.admin))).status_code == 200
    assert (await client.get(url, headers=auth_header(people.other_customer))).status_code == 403
    assert (await client.get("/bookings/9999", headers=auth_header(people.admin))).status_code == 404


async def test_status_flow_over_http(client, people, service):
    booking = await _create(client, people, service)
    url = f"/bookings/{booking['id']}/status"

    res = await client.patch(url, json={"status": "confirmed"}, headers=auth_header(people.customer))
    assert res.status_code == 403

    res = await client.patch(url, json={"status": "completed"}, headers=auth_header(people.mechanic))
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid status transition from pending to completed"

    res = await client.patch(url, json={"status": "bogus"}, headers=auth_header(people.mechanic))
    assert res.status_code == 400

    for step in ("confirmed", "in_progress", "completed"):
        res = await client.patch(url, json={"status": step}, headers=auth_header(people.mechanic))
        assert res.status_code == 200, res.text

    booking = res.json()["data"]["booking"]
    assert booking["status"] == "completed"
    assert booking["actual_duration"] is not None

    res = await client.post(
        f"/bookings/{booking['id']}/review",
        json={"rating": 5, "review": "Quick and tidy"},
        headers=auth_header(people.customer),
    )
    assert res.status_code == 200
    assert res.json()["data"]["mechanic_rating"] == {"average_rating": 5.0, "total_reviews": 1}


async def test_cancel_without_body(client, people, service):
    booking = await _create(client, people, service)
    res = await client.patch(f"/bookings/{booking['id']}/cancel", headers=auth_header(people.customer))

    assert res.status_code == 200
    assert res.json()["data"]["booking"]["status"] == "cancelled"
    assert res.json()["data"]["booking"]["cancellation"]["cancelled_by"] == people.customer.id


async def test_list_is_scoped_and_paginated(client, people, service, other_service):
    for day in range(3):
        await _create(client, people, service, scheduled_date=BOOKING_DATE + timedelta(days=day))
    await client.post(
        "/bookings", json=_create_payload(other_service), headers=auth_header(people.other_customer)
    )

    res = await client.get("/bookings", params={"limit": 2}, headers=auth_header(people.customer))
    body = res.json()
    assert res.status_code == 200
    assert body["results"] == 2
    assert body["pagination"] == {
        "current_page": 1,
        "total_pages": 2,
        "total_items": 3,
        "has_next": True,
        "has_prev": False,
    }

    res = await client.get(
        "/bookings",
        params={"date": BOOKING_DATE.isoformat(), "sort_by": "scheduled_date", "sort_order": "asc"},
        headers=auth_header(people.customer),
    )
    assert res.json()["results"] == 1

    res = await client.get("/bookings", params={"sort_by": "address"}, headers=auth_header(people.customer))
    assert res.status_code == 400

    res = await client.get("/bookings/admin/all", headers=auth_header(people.admin))
    assert res.json()["pagination"]["total_items"] == 4

    res = await client.get("/bookings/admin/all", headers=auth_header(people.customer))
    assert res.status_code == 403


async def test_stats_endpoints(client, people, service):
    await _create(client, people, service)

    res = await client.get("/bookings/stats", headers=auth_header(people.mechanic))
    assert res.status_code == 200
    assert res.json()["data"]["stats"]["pending"] == 1

    res = await client.get("/bookings/admin/stats", headers=auth_header(people.admin))
    assert res.json()["data"]["stats"]["total"] == 1

    res = await client.get("/bookings/admin/stats", headers=auth_header(people.mechanic))
    assert res.status_code == 403


async def test_reschedule_round_trip(client, people, service):
    booking = await _create(client, people, service)
    url = f"/bookings/{booking['id']}/reschedule"
    new_date = (BOOKING_DATE + timedelta(days=2)).isoformat()

    res = await client.post(
        url, json={"new_date": new_date, "new_time": "15:00"}, headers=auth_header(people.mechanic)
    )
    assert res.status_code == 200
    assert res.json()["data"]["booking"]["reschedule"]["status"] == "requested"

    res = await client.patch(url, json={"action": "accept"}, headers=auth_header(people.customer))
    booking = res.json()["data"]["booking"]
    assert booking["scheduled_date"] == new_date
    assert booking["reschedule"]["status"] == "accepted"


async def test_dispute_over_http(client, people, service):
    booking = await _create(client, people, service)
    base = f"/bookings/{booking['id']}"
    await client.patch(f"{base}/status", json={"status": "confirmed"}, headers=auth_header(people.mechanic))

    res = await client.post(f"{base}/charges", json={"description": "Filter", "amount": 80}, headers=auth_header(people.mechanic))
    assert res.json()["data"]["booking"]["total_amount"] == 580

    res = await client.post(f"{base}/dispute", json={"reason": "Overpriced"}, headers=auth_header(people.customer))
    assert res.json()["data"]["booking"]["status"] == "disputed"

    res = await client.patch(f"{base}/dispute", json={"action": "resolve"}, headers=auth_header(people.mechanic))
    assert res.status_code == 403

    res = await client.patch(
        f"{base}/dispute",
        json={"action": "resolve", "resolution": "Charge waived"},
        headers=auth_header(people.admin),
    )
    booking = res.json()["data"]["booking"]
    assert booking["status"] == "resolved"
    assert booking["dispute"] == {"reason": "Overpriced", "status": "resolved", "resolution": "Charge waived"}
