import pytest


def _booking_body(network, **overrides):
    body = {
        "booking": {
            "origin_depot_id": network.origin.id,
            "destination_depot_id": network.dest.id,
            "payment_method": "to_pay",
            "delivery_type": "home_topay",
            "delivery_charges": "20",
            "sender_name": "Ravi",
            "sender_phone": "9000000009",
        },
        "receivers": [
            {
                "name": "Asha",
                "phone": "9800000001",
                "address": "12 Car Street",
                "packages": [{"package_id": network.medium.id, "quantity": 2}],
            }
        ],
    }
    body["booking"].update(overrides)
    return body


def _create_booking(client, network, **overrides):
    resp = client.post("/api/bookings", json=_booking_body(network, **overrides))
    assert resp.status_code == 201
    return resp.get_json()["booking"]


def _trip_body(network, booking_ids, forwarding=False):
    return {
        "driver_name": "Manju",
        "vehicle_number": "KA13AB1234",
        "origin_depot_id": network.hub.id if forwarding else network.origin.id,
        "destination_depot_id": network.dest.id if forwarding else network.hub.id,
        "is_forwarding": forwarding,
        "booking_ids": booking_ids,
    }


class TestBookingEndpoints:
    def test_create_booking(self, client, network):
        booking = _create_booking(client, network)

        assert booking["receipt_number"].startswith("DRT-")
        assert booking["total_amount"] == pytest.approx(320.0)
        assert booking["receivers"][0]["packages"][0]["package_size"] == "Medium Box"

    def test_create_booking_validation_error(self, client, network):
        body = _booking_body(network)
        body["receivers"][0]["packages"][0]["quantity"] = 0

        resp = client.post("/api/bookings", json=body)

        assert resp.status_code == 400
        assert resp.get_json()["success"] is False

    def test_sequential_validation_error_is_400(self, app, client, network):
        app.config["BOOKING_WRITE_MODE"] = "sequential"
        body = _booking_body(network)
        body["receivers"][0]["phone"] = ""

        resp = client.post("/api/bookings", json=body)

        data = resp.get_json()
        assert resp.status_code == 400
        assert data["compensated"] is True

    @pytest.mark.parametrize("mode", ["atomic", "sequential"])
    def test_non_finite_quantity_is_400(self, app, client, network, mode):
        app.config["BOOKING_WRITE_MODE"] = mode
        body = _booking_body(network)
        body["receivers"][0]["packages"][0]["quantity"] = "nan"

        resp = client.post("/api/bookings", json=body)

        assert resp.status_code == 400
        assert resp.get_json()["success"] is False

    def test_non_finite_price_is_400(self, client, network):
        body = _booking_body(network)
        body["receivers"][0]["packages"][0]["price"] = "nan"

        resp = client.post("/api/bookings", json=body)

        assert resp.status_code == 400

    def test_get_booking(self, client, network):
        created = _create_booking(client, network)

        resp = client.get(f"/api/bookings/{created['id']}")

        assert resp.status_code == 200
        assert resp.get_json()["booking"]["id"] == created["id"]

    def test_get_unknown_booking(self, client, app):
        resp = client.get("/api/bookings/DRT-01012020-001")
        assert resp.status_code == 404

    def test_status_update_reports_trip_completion(self, client, network):
        booking = _create_booking(client, network)
        trip_resp = client.post("/api/trips", json=_trip_body(network, [booking["id"]]))
        trip_id = trip_resp.get_json()["trip"]["id"]

        resp = client.post(
            f"/api/bookings/{booking['id']}/status",
            json={"status": "delivered", "collected_method": "cash"},
        )

        data = resp.get_json()
        assert resp.status_code == 200
        assert data["trip_completed"] is True
        assert data["booking"]["to_pay_collected_method"] == "cash"

        trips = client.get("/api/trips").get_json()["trips"]
        assert trips[0]["id"] == trip_id
        assert trips[0]["status"] == "completed"

    def test_status_update_rejects_unknown_status(self, client, network):
        booking = _create_booking(client, network)
        resp = client.post(f"/api/bookings/{booking['id']}/status", json={"status": "lost"})
        assert resp.status_code == 400


class TestTripEndpoints:
    def test_create_trip(self, client, network):
        booking = _create_booking(client, network)

        resp = client.post("/api/trips", json=_trip_body(network, [booking["id"]]))

        data = resp.get_json()
        assert resp.status_code == 201
        assert data["trip"]["trip_number"].startswith("TRP-")
        assert data["trip"]["status"] == "in_transit"
        assert data["bookings"] == [booking["id"]]

    def test_create_trip_requires_driver(self, client, network):
        body = _trip_body(network, [])
        body["driver_name"] = ""
        resp = client.post("/api/trips", json=body)
        assert resp.status_code == 400

    def test_list_trips_with_progress(self, client, network):
        booking = _create_booking(client, network)
        client.post("/api/trips", json=_trip_body(network, [booking["id"]]))

        trips = client.get("/api/trips").get_json()["trips"]

        assert trips[0]["progress"] == {"total": 1, "delivered": 0, "is_completed": False}

    def test_trip_bookings_and_links(self, client, network):
        booking = _create_booking(client, network)
        trip_id = client.post("/api/trips", json=_trip_body(network, [booking["id"]])).get_json()["trip"]["id"]

        listing = client.get(f"/api/trips/{trip_id}/bookings").get_json()
        report = client.get(f"/api/trips/{trip_id}/links").get_json()["report"]

        assert [b["id"] for b in listing["bookings"]] == [booking["id"]]
        assert report["consistent"] is True
        assert report["fk_only"] == []

    def test_unknown_trip(self, client, app):
        assert client.get("/api/trips/TRP-01012020-001/bookings").status_code == 404

    def test_manifest_pdf(self, client, network):
        booking = _create_booking(client, network)
        trip_id = client.post("/api/trips", json=_trip_body(network, [booking["id"]])).get_json()["trip"]["id"]

        resp = client.get(f"/api/trips/{trip_id}/manifest.pdf")

        assert resp.status_code == 200
        assert resp.mimetype == "application/pdf"
        assert resp.data.startswith(b"%PDF")
        resp.close()


class TestDepotEndpoints:
    def test_forwarding_candidates(self, client, network):
        booking = _create_booking(client, network)
        client.post("/api/trips", json=_trip_body(network, [booking["id"]]))

        resp = client.get(f"/api/depots/{network.hub.id}/forwarding-candidates")
        assert [b["id"] for b in resp.get_json()["bookings"]] == [booking["id"]]

        client.post("/api/trips", json=_trip_body(network, [booking["id"]], forwarding=True))

        resp = client.get(f"/api/depots/{network.hub.id}/forwarding-candidates")
        assert resp.get_json()["bookings"] == []

    def test_unknown_depot(self, client, app):
        assert client.get("/api/depots/999/forwarding-candidates").status_code == 404


class TestAdvancePaymentEndpoint:
    def test_record_payment(self, client, app):
        resp = client.post(
            "/api/advance-payments",
            json={"customer_name": "Ravi Traders", "customer_phone": "9000000009", "amount": 1500},
        )

        data = resp.get_json()
        assert resp.status_code == 201
        assert data["payment"]["receipt_number"].startswith("ADV-")

    def test_rejects_bad_amount(self, client, app):
        resp = client.post(
            "/api/advance-payments",
            json={"customer_name": "Ravi Traders", "customer_phone": "9000000009", "amount": 0},
        )
        assert resp.status_code == 400
