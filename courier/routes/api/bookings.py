from flask import jsonify, request

from courier.bookings import BookingWriter, update_booking_status
from courier.errors import NotFoundError
from courier.models import db, Booking
from courier.routes.api.serializers import booking_payload
from . import api_bp


@api_bp.route("/bookings", methods=["POST"])
def create_booking():
    """
    Body: {"booking": {...header...}, "receivers": [{name, phone, address, packages: [...]}]}
    (the header fields may also sit at the top level next to "receivers").
    """
    payload = request.get_json(silent=True) or {}

    fields = payload.get("booking")
    if not isinstance(fields, dict):
        fields = {k: v for k, v in payload.items() if k != "receivers"}
    receivers = payload.get("receivers") or []

    booking = BookingWriter().create(fields, receivers)
    return jsonify({"success": True, "booking": booking_payload(booking)}), 201


@api_bp.route("/bookings/<booking_id>", methods=["GET"])
def get_booking(booking_id: str):
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError("Booking", booking_id)
    return jsonify({"success": True, "booking": booking_payload(booking)})


@api_bp.route("/bookings/<booking_id>/status", methods=["POST"])
def set_booking_status(booking_id: str):
    payload = request.get_json(silent=True) or {}
    booking, trip_completed = update_booking_status(
        booking_id,
        payload.get("status"),
        collected_method=payload.get("collected_method"),
    )
    return jsonify(
        {
            "success": True,
            "booking": booking_payload(booking, with_receivers=False),
            "trip_completed": trip_completed,
        }
    )
