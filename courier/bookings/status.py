# courier/bookings/status.py
from __future__ import annotations

from datetime import datetime
from typing import Optional, Tuple

import structlog
from sqlalchemy.exc import SQLAlchemyError

from courier.bookings.validation import normalize_booking_status, normalize_collected_method
from courier.errors import NotFoundError
from courier.models import db, Booking
from courier.trips.completion import run_completion_detectors

logger = structlog.get_logger(__name__)


def update_booking_status(
    booking_id: str,
    status: str,
    collected_method: Optional[str] = None,
) -> Tuple[Booking, bool]:
    """
    Move a booking to `status` and commit.

    Rule:
    - status must be one of BOOKING_STATUSES
    - delivered_at is stamped on the transition into delivered
    - collected_method (cash/online) records to-pay collection
    - after the commit, a transition into "delivered" runs the completion
      detectors; their outcome never affects this update

    Returns (booking, trip_completed).
    """
    status = normalize_booking_status(status)
    method = normalize_collected_method(collected_method)

    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError("Booking", booking_id)

    previous = booking.status
    now = datetime.utcnow()

    booking.status = status
    if status == "delivered" and previous != "delivered":
        booking.delivered_at = now
    if method:
        booking.to_pay_collected_method = method
        booking.to_pay_collected_at = now

    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info(
        "booking_status_changed",
        booking_id=booking_id,
        previous=previous,
        status=status,
        trip_id=booking.trip_id,
    )

    trip_completed = False
    if status == "delivered" and previous != "delivered":
        trip_completed = run_completion_detectors(booking_id)

    return booking, trip_completed
