from sqlalchemy.exc import SQLAlchemyError

from courier.models import db, Booking
from courier.trips import create_trip, eligible_for_forwarding, forwarding_candidates
from courier.trips import assignment as assignment_module


def _fk_update_fails(*args, **kwargs):
    raise SQLAlchemyError("simulated")


def _arrive_at_hub(make_booking, trip_fields, network, count=1):
    """Book to MNG and carry the bookings BLR -> HSN on an origin trip."""
    bookings = [make_booking() for _ in range(count)]
    origin_trip = create_trip(trip_fields(), [b.id for b in bookings])
    return bookings, origin_trip


def _forward(trip_fields, network, booking_ids, mode=None):
    return create_trip(
        trip_fields(origin=network.hub, destination=network.dest, forwarding=True),
        booking_ids,
        mode=mode,
    )


class TestEligibility:
    def test_inbound_trip_link_does_not_exclude(self, make_booking, trip_fields, network):
        (booking,), origin_trip = _arrive_at_hub(make_booking, trip_fields, network)

        b = db.session.get(Booking, booking.id)
        assert b.trip_id == origin_trip.id
        assert booking.id in eligible_for_forwarding(network.hub.id)

    def test_forwarded_booking_is_excluded(self, make_booking, trip_fields, network):
        (booking,), _ = _arrive_at_hub(make_booking, trip_fields, network)

        _forward(trip_fields, network, [booking.id])

        assert booking.id not in eligible_for_forwarding(network.hub.id)

    def test_exclusion_comes_from_junction_not_status(self, make_booking, trip_fields, network):
        (booking,), _ = _arrive_at_hub(make_booking, trip_fields, network)
        _forward(trip_fields, network, [booking.id])

        # status alone would make it eligible again
        b = db.session.get(Booking, booking.id)
        b.status = "reached_depot"
        db.session.commit()

        assert booking.id not in eligible_for_forwarding(network.hub.id)

    def test_excluded_even_when_fk_update_failed(self, make_booking, trip_fields, network, monkeypatch):
        (booking,), origin_trip = _arrive_at_hub(make_booking, trip_fields, network)
        monkeypatch.setattr(assignment_module, "_update_booking_links", _fk_update_fails)

        _forward(trip_fields, network, [booking.id], mode="two_step")

        b = db.session.get(Booking, booking.id)
        assert b.trip_id == origin_trip.id
        assert b.status == "in_transit"
        assert booking.id not in eligible_for_forwarding(network.hub.id)

    def test_only_some_bookings_forwarded(self, make_booking, trip_fields, network):
        (b1, b2), _ = _arrive_at_hub(make_booking, trip_fields, network, count=2)

        _forward(trip_fields, network, [b1.id])

        assert eligible_for_forwarding(network.hub.id) == {b2.id}

    def test_forwarding_trip_from_another_depot_does_not_count(self, make_booking, trip_fields, network):
        (booking,), _ = _arrive_at_hub(make_booking, trip_fields, network)

        create_trip(
            trip_fields(origin=network.origin, destination=network.dest, forwarding=True),
            [booking.id],
        )
        b = db.session.get(Booking, booking.id)
        b.status = "reached_depot"
        db.session.commit()

        assert booking.id in eligible_for_forwarding(network.hub.id)

    def test_status_must_be_in_transit_or_reached(self, make_booking, network):
        booking = make_booking()  # still "booked"
        assert booking.id not in eligible_for_forwarding(network.hub.id)

    def test_destination_must_be_a_forwarding_target(self, make_booking, trip_fields, network):
        booking = make_booking(destination_depot_id=network.hub.id)
        create_trip(trip_fields(), [booking.id])

        assert booking.id not in eligible_for_forwarding(network.hub.id)

    def test_depot_without_routes(self, make_booking, trip_fields, network):
        _arrive_at_hub(make_booking, trip_fields, network)
        assert eligible_for_forwarding(network.dest.id) == set()


class TestCandidates:
    def test_candidates_newest_first(self, make_booking, trip_fields, network):
        (b1, b2, b3), _ = _arrive_at_hub(make_booking, trip_fields, network, count=3)
        _forward(trip_fields, network, [b2.id])

        assert [b.id for b in forwarding_candidates(network.hub.id)] == [b3.id, b1.id]
