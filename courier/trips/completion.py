# courier/trips/completion.py
from __future__ import annotations

from datetime import datetime
from typing import Optional, Tuple

import structlog
from flask import current_app
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from courier.models import db, Booking, Depot, Trip

logger = structlog.get_logger(__name__)

COMPLETION_VARIANTS = ("all", "managed")

# Trips in these states are never auto-completed.
_FINAL_TRIP_STATUSES = ("completed", "cancelled")


def _delivery_counts(trip_id: str) -> Tuple[int, int]:
    total, delivered = db.session.execute(
        select(
            func.count(Booking.id),
            func.coalesce(func.sum(case((Booking.status == "delivered", 1), else_=0)), 0),
        ).where(Booking.trip_id == trip_id)
    ).one()
    return int(total or 0), int(delivered or 0)


def _managed_delivery_counts(trip_id: str) -> Tuple[int, int]:
    """Only home deliveries to managed depots count."""
    qualifying = (
        (Depot.type == "managed") & (Booking.delivery_type != "pickup")
    )
    total, delivered = db.session.execute(
        select(
            func.coalesce(func.sum(case((qualifying, 1), else_=0)), 0),
            func.coalesce(
                func.sum(case((qualifying & (Booking.status == "delivered"), 1), else_=0)),
                0,
            ),
        )
        .select_from(Booking)
        .outerjoin(Depot, Booking.destination_depot_id == Depot.id)
        .where(Booking.trip_id == trip_id)
    ).one()
    return int(total or 0), int(delivered or 0)


def _mark_trip_completed(trip_id: str, variant: str, total: int) -> bool:
    now = datetime.utcnow()
    result = db.session.execute(
        update(Trip)
        .where(Trip.id == trip_id, Trip.status.notin_(_FINAL_TRIP_STATUSES))
        .values(status="completed", completed_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()

    if result.rowcount:
        logger.info("trip_auto_completed", trip_id=trip_id, variant=variant, total=total)
        return True
    return False


# =============================================================================
# Detectors
# =============================================================================

def on_booking_delivered(booking_id: str) -> bool:
    """
    Complete the booking's trip once every booking on it is delivered.

    Returns True when this call completed the trip. Never raises on
    database errors: they are logged and nothing is changed.
    """
    try:
        trip_id = db.session.execute(
            select(Booking.trip_id).where(Booking.id == booking_id)
        ).scalar_one_or_none()
        if trip_id is None:
            return False

        total, delivered = _delivery_counts(trip_id)
        if total == 0 or delivered != total:
            return False

        return _mark_trip_completed(trip_id, "all", total)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("completion_check_failed", booking_id=booking_id, variant="all")
        return False


def check_managed_completion(trip_id: Optional[str]) -> bool:
    """
    Stricter variant: only bookings bound for managed depots with home
    delivery qualify. Zero qualifying bookings never completes a trip.
    """
    if trip_id is None:
        return False
    try:
        total, delivered = _managed_delivery_counts(trip_id)
        if total == 0 or delivered != total:
            return False

        return _mark_trip_completed(trip_id, "managed", total)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("completion_check_failed", trip_id=trip_id, variant="managed")
        return False


def configured_variants() -> Tuple[str, ...]:
    raw = current_app.config.get("COMPLETION_VARIANTS", "all,managed")
    if isinstance(raw, str):
        raw = raw.split(",")
    variants = tuple(v.strip().lower() for v in raw if v and v.strip())
    unknown = [v for v in variants if v not in COMPLETION_VARIANTS]
    if unknown:
        raise ValueError(f"Unknown completion variant(s): {', '.join(unknown)}")
    return variants


def run_completion_detectors(booking_id: str) -> bool:
    """Post-commit hook for a booking that just became delivered."""
    completed = False
    variants = configured_variants()

    if "all" in variants:
        completed = on_booking_delivered(booking_id) or completed

    if "managed" in variants:
        try:
            trip_id = db.session.execute(
                select(Booking.trip_id).where(Booking.id == booking_id)
            ).scalar_one_or_none()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("completion_check_failed", booking_id=booking_id, variant="managed")
            return completed
        completed = check_managed_completion(trip_id) or completed

    return completed
