import pytest

from courier.bookings import (
    add_package_line,
    delete_package_line,
    edit_delivered_booking,
    update_booking_status,
    update_package_line,
)
from courier.errors import BookingValidationError, NotFoundError
from courier.models import db, Booking, ReceiverPackage


def _booking_with_two_lines(make_booking, network):
    # 2 x Medium Box (150) + 1 x custom at 60, no delivery charges
    return make_booking(
        receivers=[
            {
                "name": "Asha",
                "phone": "9800000001",
                "address": "12 Car Street",
                "packages": [
                    {"package_id": network.medium.id, "quantity": 2},
                    {"package_id": "custom", "quantity": 1, "price": 60, "description": "Pickle jar"},
                ],
            }
        ]
    )


class TestLineHooks:
    def test_add_line_recomputes_total(self, make_booking, network):
        booking = _booking_with_two_lines(make_booking, network)
        assert booking.total_amount == pytest.approx(360.0)

        add_package_line(booking.receivers[0].id, {"package_id": "custom", "quantity": 2, "price": 15})

        refreshed = db.session.get(Booking, booking.id)
        assert refreshed.total_amount == pytest.approx(390.0)
        assert refreshed.subtotal == pytest.approx(390.0)
        assert len(refreshed.package_lines) == 3

    def test_add_line_resolves_catalogue_price(self, make_booking, network):
        booking = _booking_with_two_lines(make_booking, network)

        line = add_package_line(booking.receivers[0].id, {"package_id": network.small.id, "quantity": 1})

        # depot override for Small Box at MNG
        assert line.price_per_unit == pytest.approx(100.0)
        assert db.session.get(Booking, booking.id).total_amount == pytest.approx(460.0)

    def test_update_quantity_recomputes_total(self, make_booking, network):
        booking = _booking_with_two_lines(make_booking, network)
        medium_line = booking.receivers[0].packages[0]

        update_package_line(medium_line.id, quantity=3)

        assert db.session.get(Booking, booking.id).total_amount == pytest.approx(510.0)

    def test_update_price_recomputes_total(self, make_booking, network):
        booking = _booking_with_two_lines(make_booking, network)
        custom_line = booking.receivers[0].packages[1]

        update_package_line(custom_line.id, price_per_unit=90)

        assert db.session.get(Booking, booking.id).total_amount == pytest.approx(390.0)

    def test_update_rejects_bad_quantity(self, make_booking, network):
        booking = _booking_with_two_lines(make_booking, network)
        line_id = booking.receivers[0].packages[0].id

        with pytest.raises(BookingValidationError):
            update_package_line(line_id, quantity=0)

        db.session.rollback()
        assert db.session.get(ReceiverPackage, line_id).quantity == 2

    def test_switching_package_reprices_line(self, make_booking, network):
        booking = _booking_with_two_lines(make_booking, network)
        medium_line = booking.receivers[0].packages[0]

        line = update_package_line(medium_line.id, package_id=network.small.id)

        # depot override for Small Box at MNG, not the stored Medium Box price
        assert line.price_per_unit == pytest.approx(100.0)
        assert line.package_size == "Small Box"
        assert db.session.get(Booking, booking.id).total_amount == pytest.approx(260.0)

    def test_switching_package_keeps_explicit_price(self, make_booking, network):
        booking = _booking_with_two_lines(make_booking, network)
        medium_line = booking.receivers[0].packages[0]

        line = update_package_line(medium_line.id, package_id=network.small.id, price=55)

        assert line.price_per_unit == pytest.approx(55.0)
        assert line.package_size == "Small Box"

    def test_update_rejects_non_finite_quantity(self, make_booking, network):
        booking = _booking_with_two_lines(make_booking, network)
        line_id = booking.receivers[0].packages[0].id

        with pytest.raises(BookingValidationError):
            update_package_line(line_id, quantity="nan")

    def test_delete_line_recomputes_total(self, make_booking, network):
        booking = _booking_with_two_lines(make_booking, network)
        custom_line = booking.receivers[0].packages[1]

        total = delete_package_line(custom_line.id)

        assert total == pytest.approx(300.0)
        assert db.session.get(Booking, booking.id).total_amount == pytest.approx(300.0)
        assert db.session.get(ReceiverPackage, custom_line.id) is None

    def test_missing_line(self, app):
        with pytest.raises(NotFoundError):
            delete_package_line(424242)


class TestEditDeliveredBooking:
    def test_only_delivered_bookings(self, make_booking):
        booking = make_booking()

        with pytest.raises(BookingValidationError):
            edit_delivered_booking(booking.id, {"sender_name": "Someone else"})

    def test_replaces_sender_and_receivers(self, make_booking, network):
        booking = make_booking()
        update_booking_status(booking.id, "delivered")

        edited = edit_delivered_booking(
            booking.id,
            {
                "sender_name": "Ravi Kumar",
                "receivers": [
                    {
                        "name": "Chetan",
                        "phone": "9800000003",
                        "address": "7 Market Road",
                        "packages": [{"package_id": "custom", "quantity": 4, "price": 25}],
                    },
                    {
                        "name": "Deepa",
                        "phone": "9800000004",
                        "address": "9 Fort Road",
                        "packages": [{"package_id": network.medium.id, "quantity": 1}],
                    },
                ],
            },
        )

        assert edited.sender_name == "Ravi Kumar"
        assert [r.receiver_name for r in edited.receivers] == ["Chetan", "Deepa"]
        assert [r.receiver_order for r in edited.receivers] == [1, 2]
        assert edited.total_amount == pytest.approx(250.0)
        assert ReceiverPackage.query.count() == 2
