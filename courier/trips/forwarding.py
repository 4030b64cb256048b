# courier/trips/forwarding.py
from __future__ import annotations

from typing import List, Set

import structlog
from sqlalchemy import select

from courier.models import db, Booking, DepotRoute, Trip, TripBooking

logger = structlog.get_logger(__name__)

FORWARDABLE_STATUSES = ("in_transit", "reached_depot")


def forwarding_destinations(depot_id: int) -> List[int]:
    """Depots `depot_id` forwards goods on to."""
    return list(
        db.session.execute(
            select(DepotRoute.forwarding_depot_id).where(DepotRoute.origin_depot_id == depot_id)
        ).scalars()
    )


def forwarding_trip_ids(depot_id: int) -> List[str]:
    """Every forwarding trip that started at `depot_id`, whatever its status."""
    return list(
        db.session.execute(
            select(Trip.id).where(
                Trip.origin_depot_id == depot_id,
                Trip.trip_type == "forwarding",
            )
        ).scalars()
    )


def forwarded_booking_ids(depot_id: int) -> Set[str]:
    trip_ids = forwarding_trip_ids(depot_id)
    if not trip_ids:
        return set()
    return set(
        db.session.execute(
            select(TripBooking.booking_id).where(TripBooking.trip_id.in_(trip_ids))
        ).scalars()
    )


def _eligible_query(depot_id: int):
    destinations = forwarding_destinations(depot_id)
    if not destinations:
        return None, set()

    already = forwarded_booking_ids(depot_id)
    query = Booking.query.filter(
        Booking.status.in_(FORWARDABLE_STATUSES),
        Booking.destination_depot_id.in_(destinations),
    )
    return query, already


def eligible_for_forwarding(depot_id: int) -> Set[str]:
    """
    Booking ids that may still be loaded on a forwarding trip out of `depot_id`.

    Rule:
    - status is in_transit or reached_depot
    - destination depot is one `depot_id` forwards to (DepotRoute)
    - not already in the TripBooking rows of a forwarding trip from `depot_id`

    A booking's trip_id plays no part: after its origin leg it still
    points at the inbound trip.
    """
    query, already = _eligible_query(depot_id)
    if query is None:
        return set()

    ids = {row[0] for row in query.with_entities(Booking.id).all()}
    eligible = ids - already
    logger.debug(
        "forwarding_eligibility",
        depot_id=depot_id,
        candidates=len(ids),
        already_forwarded=len(ids & already),
    )
    return eligible


def forwarding_candidates(depot_id: int) -> List[Booking]:
    """Eligible bookings, newest first."""
    query, already = _eligible_query(depot_id)
    if query is None:
        return []
    bookings = query.order_by(Booking.created_at.desc(), Booking.id.desc()).all()
    return [b for b in bookings if b.id not in already]
