import pytest

from .conftest import at, iso


def create_booking(api, headers, service, when):
    return api.post(
        "/bookings",
        json={
            "professional_id": service.professional_id,
            "service_id": service.id,
            "scheduled_for": iso(when),
        },
        headers=headers,
    )


class TestBookings:
    def test_create_and_read(self, api, client_headers, service):
        resp = create_booking(api, client_headers, service, at(10))
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "PENDING"
        assert body["duration_minutes_snapshot"] == 30

        resp = api.get(f"/bookings/{body['id']}", headers=client_headers)
        assert resp.status_code == 200
        assert resp.json()["id"] == body["id"]

    def test_naive_datetime_is_rejected(self, api, client_headers, service):
        resp = api.post(
            "/bookings",
            json={
                "professional_id": service.professional_id,
                "service_id": service.id,
                "scheduled_for": "2026-10-19T10:00:00",
            },
            headers=client_headers,
        )
        assert resp.status_code == 422

    def test_missing_identity(self, api, service):
        assert create_booking(api, {}, service, at(10)).status_code == 401

    def test_professional_cannot_create(self, api, pro_headers, service):
        resp = create_booking(api, pro_headers, service, at(10))
        assert resp.status_code == 403
        assert resp.json() == {"detail": "Only clients can request bookings."}

    def test_conflict(self, api, client_headers, service):
        create_booking(api, client_headers, service, at(10))
        resp = create_booking(api, client_headers, service, at(10, 15))
        assert resp.status_code == 409

    def test_not_found(self, api, client_headers):
        assert api.get("/bookings/999", headers=client_headers).status_code == 404

    def test_invalid_transition(self, api, client_headers, pro_headers, service):
        booking_id = create_booking(api, client_headers, service, at(10)).json()["id"]
        resp = api.patch(f"/bookings/{booking_id}/status", json={"status": "COMPLETED"}, headers=pro_headers)
        assert resp.status_code == 400

    def test_accept_start_complete(self, api, client_headers, pro_headers, service, clock):
        booking_id = create_booking(api, client_headers, service, at(10)).json()["id"]

        resp = api.patch(f"/bookings/{booking_id}/status", json={"status": "ACCEPTED"}, headers=pro_headers)
        assert resp.status_code == 200
        assert resp.json()["started_at"] is None

        clock.set(at(10, 5))
        resp = api.post(f"/bookings/{booking_id}/start", headers=pro_headers)
        assert resp.status_code == 200
        assert resp.json()["started_at"] is not None

        resp = api.get("/session", headers=pro_headers)
        assert resp.json()["mode"] == "ACTIVE"
        assert resp.json()["booking"]["id"] == booking_id

        resp = api.patch(f"/bookings/{booking_id}/status", json={"status": "COMPLETED"}, headers=pro_headers)
        assert resp.json()["status"] == "COMPLETED"

        resp = api.patch(f"/bookings/{booking_id}/status", json={"status": "CANCELLED"}, headers=pro_headers)
        assert resp.status_code == 400

    def test_start_pending_booking(self, api, client_headers, pro_headers, service, clock):
        booking_id = create_booking(api, client_headers, service, at(10)).json()["id"]
        clock.set(at(10))
        resp = api.post(f"/bookings/{booking_id}/start", headers=pro_headers)
        assert resp.status_code == 400
        assert "accept" in resp.json()["detail"]

    def test_list(self, api, client_headers, pro_headers, service):
        create_booking(api, client_headers, service, at(10))
        resp = api.get(
            "/bookings",
            params={"from": iso(at(0)), "to": iso(at(0, days=1))},
            headers=pro_headers,
        )
        assert resp.status_code == 200
        assert len(resp.json()) == 1

    def test_delete_not_allowed(self, api, client_headers, service):
        booking_id = create_booking(api, client_headers, service, at(10)).json()["id"]
        assert api.delete(f"/bookings/{booking_id}", headers=client_headers).status_code == 405


class TestAvailability:
    def test_slots(self, api, client_headers, service):
        create_booking(api, client_headers, service, at(10))
        resp = api.get(
            "/availability",
            params={
                "professional_id": service.professional_id,
                "service_id": service.id,
                "from": iso(at(9)),
                "to": iso(at(11)),
            },
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["step_minutes"] == 15
        assert len(body["slots"]) == 4  # 09:00, 09:15, 09:30, 10:30

    def test_inverted_window(self, api, service):
        resp = api.get(
            "/availability",
            params={
                "professional_id": service.professional_id,
                "service_id": service.id,
                "from": iso(at(11)),
                "to": iso(at(9)),
            },
        )
        assert resp.status_code == 400


class TestCalendarBlocks:
    def test_create_conflict_list_delete(self, api, pro_headers):
        payload = {"starts_at": iso(at(12)), "ends_at": iso(at(13)), "note": " Lunch "}
        resp = api.post("/calendar/blocks", json=payload, headers=pro_headers)
        assert resp.status_code == 201
        block = resp.json()
        assert block["note"] == "Lunch"

        resp = api.post(
            "/calendar/blocks",
            json={"starts_at": iso(at(12, 30)), "ends_at": iso(at(13, 30))},
            headers=pro_headers,
        )
        assert resp.status_code == 409

        resp = api.get("/calendar/blocks", headers=pro_headers)
        assert [b["id"] for b in resp.json()] == [block["id"]]

        assert api.delete(f"/calendar/blocks/{block['id']}", headers=pro_headers).status_code == 204
        assert api.delete(f"/calendar/blocks/{block['id']}", headers=pro_headers).status_code == 204

    def test_replace(self, api, pro_headers):
        block_id = api.post(
            "/calendar/blocks",
            json={"starts_at": iso(at(12)), "ends_at": iso(at(13))},
            headers=pro_headers,
        ).json()["id"]
        resp = api.put(
            f"/calendar/blocks/{block_id}",
            json={"starts_at": iso(at(14)), "ends_at": iso(at(15))},
            headers=pro_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["starts_at"].startswith("2026-10-19T14:00:00")

    def test_too_short(self, api, pro_headers):
        resp = api.post(
            "/calendar/blocks",
            json={"starts_at": iso(at(12)), "ends_at": iso(at(12, 5))},
            headers=pro_headers,
        )
        assert resp.status_code == 400

    def test_clients_are_refused(self, api, client_headers):
        assert api.get("/calendar/blocks", headers=client_headers).status_code == 403


class TestWorkingHours:
    def test_get_and_update(self, api, pro_headers):
        resp = api.get("/pro/working-hours", headers=pro_headers)
        assert resp.status_code == 200
        assert resp.json()["working_hours"]["mon"] == [["09:00", "17:00"]]

        resp = api.put(
            "/pro/working-hours",
            json={
                "working_hours": {"mon": {"enabled": True, "start": "10:00", "end": "14:00"}},
                "time_zone": "Europe/Berlin",
            },
            headers=pro_headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["time_zone"] == "Europe/Berlin"
        assert body["working_hours"]["mon"] == [["10:00", "14:00"]]
        assert body["working_hours"]["tue"] == []

    def test_invalid_hours(self, api, pro_headers):
        resp = api.put(
            "/pro/working-hours",
            json={"working_hours": {"mon": [["17:00", "09:00"]]}},
            headers=pro_headers,
        )
        assert resp.status_code == 400

    def test_invalid_time_zone(self, api, pro_headers):
        resp = api.put(
            "/pro/working-hours",
            json={"working_hours": {}, "time_zone": "Mars/Olympus"},
            headers=pro_headers,
        )
        assert resp.status_code == 422


def test_session_idle(api, pro_headers):
    resp = api.get("/session", headers=pro_headers)
    assert resp.status_code == 200
    assert resp.json() == {"mode": "IDLE", "booking": None}


def test_session_of_other_professional(api, pro_headers, other_professional):
    resp = api.get("/session", params={"professional_id": other_professional.id}, headers=pro_headers)
    assert resp.status_code == 403


def test_health(api):
    assert api.get("/health").json() == {"db": True, "redis": None}
