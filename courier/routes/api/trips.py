from flask import jsonify, request, send_file

from courier.errors import NotFoundError
from courier.manifests import clean_filename_keep_spaces, generate_trip_manifest_pdf
from courier.models import db, Trip
from courier.routes.api.serializers import booking_payload, trip_payload
from courier.trips import (
    bookings_for_trip,
    create_trip,
    trip_link_report,
    trips_with_progress,
)
from . import api_bp


def _trip_or_404(trip_id: str) -> Trip:
    trip = db.session.get(Trip, trip_id)
    if trip is None:
        raise NotFoundError("Trip", trip_id)
    return trip


@api_bp.route("/trips", methods=["POST"])
def create_trip_view():
    payload = request.get_json(silent=True) or {}
    booking_ids = payload.get("booking_ids") or []
    fields = {k: v for k, v in payload.items() if k != "booking_ids"}

    trip = create_trip(fields, booking_ids)
    bookings = bookings_for_trip(trip.id)
    return (
        jsonify(
            {
                "success": True,
                "trip": trip_payload(trip),
                "bookings": [b.id for b in bookings],
            }
        ),
        201,
    )


@api_bp.route("/trips", methods=["GET"])
def list_trips():
    rows = []
    for item in trips_with_progress():
        data = trip_payload(item["trip"])
        data["progress"] = {
            "total": item["total"],
            "delivered": item["delivered"],
            "is_completed": item["is_completed"],
        }
        rows.append(data)
    return jsonify({"success": True, "trips": rows})


@api_bp.route("/trips/<trip_id>/bookings", methods=["GET"])
def trip_bookings(trip_id: str):
    _trip_or_404(trip_id)
    bookings = bookings_for_trip(trip_id)
    return jsonify(
        {
            "success": True,
            "trip_id": trip_id,
            "bookings": [booking_payload(b, with_receivers=False) for b in bookings],
        }
    )


@api_bp.route("/trips/<trip_id>/links", methods=["GET"])
def trip_links(trip_id: str):
    _trip_or_404(trip_id)
    return jsonify({"success": True, "report": trip_link_report(trip_id)})


@api_bp.route("/trips/<trip_id>/manifest.pdf", methods=["GET"])
def trip_manifest(trip_id: str):
    trip = _trip_or_404(trip_id)
    pdf_path = generate_trip_manifest_pdf(trip.id)
    return send_file(
        str(pdf_path),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=clean_filename_keep_spaces(f"Manifest {trip.trip_number}.pdf"),
    )
