from flask import jsonify

from courier.errors import NotFoundError
from courier.models import db, Depot
from courier.routes.api.serializers import booking_payload
from courier.trips import forwarding_candidates
from . import api_bp


@api_bp.route("/depots/<int:depot_id>/forwarding-candidates", methods=["GET"])
def depot_forwarding_candidates(depot_id: int):
    """Bookings at this depot that can still go out on a forwarding trip."""
    depot = db.session.get(Depot, depot_id)
    if depot is None:
        raise NotFoundError("Depot", depot_id)

    bookings = forwarding_candidates(depot_id)
    return jsonify(
        {
            "success": True,
            "depot_id": depot_id,
            "bookings": [booking_payload(b, with_receivers=False) for b in bookings],
        }
    )
