# courier/trips/assignment.py
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

import structlog
from flask import current_app
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from courier.errors import NotFoundError, TripAssignmentError, ValidationError
from courier.models import db, Booking, Trip, TripBooking, TRIP_STATUSES
from courier.numbering import next_serial

logger = structlog.get_logger(__name__)

ASSIGNMENT_MODES = ("transactional", "two_step")

# Newest booking first; receipt number breaks ties within the same instant.
_NEWEST_FIRST = (Booking.created_at.desc(), Booking.id.desc())


def _assignment_mode(mode: Optional[str] = None) -> str:
    mode = (mode or current_app.config.get("TRIP_ASSIGNMENT_MODE") or "transactional").lower()
    if mode not in ASSIGNMENT_MODES:
        raise ValueError(f"Unknown trip assignment mode: {mode!r}")
    return mode


def _dedupe(booking_ids: Optional[Iterable[str]]) -> List[str]:
    seen = set()
    out = []
    for bid in booking_ids or []:
        bid = (str(bid) if bid is not None else "").strip()
        if bid and bid not in seen:
            seen.add(bid)
            out.append(bid)
    return out


def _parse_trip_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(fields, dict):
        raise ValidationError("Trip fields must be an object.")

    driver_name = (fields.get("driver_name") or "").strip()
    vehicle_number = (fields.get("vehicle_number") or "").strip().upper()
    if not driver_name:
        raise ValidationError("Driver name is required.")
    if not vehicle_number:
        raise ValidationError("Vehicle number is required.")

    def _int_or_none(key):
        raw = fields.get(key)
        if raw is None or raw == "":
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid {key}: {raw!r}.") from None

    cost_raw = fields.get("trip_cost")
    try:
        trip_cost = float(cost_raw) if cost_raw not in (None, "") else 0.0
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid trip cost: {cost_raw!r}.") from None

    expected = fields.get("expected_delivery_date")
    if isinstance(expected, str) and expected.strip():
        try:
            expected = datetime.strptime(expected.strip(), "%Y-%m-%d").date()
        except ValueError:
            raise ValidationError(f"Invalid expected delivery date: {expected!r}.") from None
    elif not isinstance(expected, date):
        expected = None

    return {
        "driver_name": driver_name,
        "driver_phone": (fields.get("driver_phone") or "").strip() or None,
        "vehicle_number": vehicle_number,
        "trip_cost": trip_cost,
        "origin_depot_id": _int_or_none("origin_depot_id"),
        "destination_depot_id": _int_or_none("destination_depot_id"),
        "expected_delivery_date": expected,
        "is_forwarding": bool(fields.get("is_forwarding")),
    }


# =============================================================================
# The two writes that make up an assignment
# =============================================================================

def _update_booking_links(
    trip_id: str,
    booking_ids: List[str],
    is_forwarding: bool,
    destination_depot_id: Optional[int],
) -> None:
    """Step 1: the authoritative Booking.trip_id link."""
    db.session.execute(
        update(Booking)
        .where(Booking.id.in_(booking_ids))
        .values(
            trip_id=trip_id,
            status="in_transit_forwarding" if is_forwarding else "in_transit",
            current_location_depot_id=destination_depot_id,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session="fetch")
    )


def _insert_junction_rows(trip_id: str, booking_ids: List[str]) -> int:
    """Step 2: the TripBooking history rows. Pairs already present are skipped."""
    known = set(
        db.session.execute(select(Booking.id).where(Booking.id.in_(booking_ids))).scalars()
    )
    present = set(
        db.session.execute(
            select(TripBooking.booking_id).where(
                TripBooking.trip_id == trip_id,
                TripBooking.booking_id.in_(booking_ids),
            )
        ).scalars()
    )

    added = 0
    for bid in booking_ids:
        if bid in known and bid not in present:
            db.session.add(TripBooking(trip_id=trip_id, booking_id=bid))
            added += 1
    db.session.flush()
    return added


def _warn_unknown(trip_id: str, booking_ids: List[str]) -> None:
    known = set(
        db.session.execute(select(Booking.id).where(Booking.id.in_(booking_ids))).scalars()
    )
    missing = [b for b in booking_ids if b not in known]
    if missing:
        logger.warning("trip_assignment_unknown_bookings", trip_id=trip_id, booking_ids=missing)


def assign(
    trip_id: str,
    booking_ids: Iterable[str],
    is_forwarding: bool = False,
    destination_depot_id: Optional[int] = None,
    mode: Optional[str] = None,
) -> None:
    """
    Put `booking_ids` on trip `trip_id`.

    transactional: both writes commit together or not at all
                   (TripAssignmentError on failure).
    two_step:      each write commits on its own; a failing step is logged
                   and rolled back, the call still returns.
    """
    booking_ids = _dedupe(booking_ids)
    if not booking_ids:
        return
    mode = _assignment_mode(mode)

    if db.session.get(Trip, trip_id) is None:
        raise NotFoundError("Trip", trip_id)
    _warn_unknown(trip_id, booking_ids)

    if mode == "transactional":
        try:
            _update_booking_links(trip_id, booking_ids, is_forwarding, destination_depot_id)
            _insert_junction_rows(trip_id, booking_ids)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("trip_assignment_failed", trip_id=trip_id, error=str(exc))
            raise TripAssignmentError(f"Could not assign bookings to trip {trip_id}: {exc}") from exc

        logger.info(
            "trip_bookings_assigned",
            trip_id=trip_id,
            bookings=len(booking_ids),
            forwarding=is_forwarding,
            mode=mode,
        )
        return

    # two_step
    try:
        _update_booking_links(trip_id, booking_ids, is_forwarding, destination_depot_id)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("trip_booking_fk_update_failed", trip_id=trip_id, error=str(exc))

    try:
        _insert_junction_rows(trip_id, booking_ids)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("trip_booking_junction_insert_failed", trip_id=trip_id, error=str(exc))

    logger.info(
        "trip_bookings_assigned",
        trip_id=trip_id,
        bookings=len(booking_ids),
        forwarding=is_forwarding,
        mode=mode,
    )


def create_trip(
    trip_fields: Dict[str, Any],
    booking_ids: Optional[Iterable[str]] = None,
    today: Optional[date] = None,
    mode: Optional[str] = None,
) -> Trip:
    """
    Create a trip (status in_transit) and load `booking_ids` onto it.

    The trip number is allocated in the same transaction as the trip row.
    In transactional mode the booking links share that transaction too.
    """
    data = _parse_trip_fields(trip_fields)
    is_forwarding = data.pop("is_forwarding")
    booking_ids = _dedupe(booking_ids)
    mode = _assignment_mode(mode)

    try:
        _, number = next_serial("trip", today)
        trip = Trip(
            id=number,
            trip_number=number,
            trip_type="forwarding" if is_forwarding else "origin",
            status="in_transit",
            **data,
        )
        db.session.add(trip)
        db.session.flush()

        if mode == "transactional" and booking_ids:
            _warn_unknown(number, booking_ids)
            _update_booking_links(number, booking_ids, is_forwarding, data["destination_depot_id"])
            _insert_junction_rows(number, booking_ids)

        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        if booking_ids and mode == "transactional":
            raise TripAssignmentError(f"Could not create trip: {exc}") from exc
        raise

    logger.info(
        "trip_created",
        trip_id=number,
        trip_type=trip.trip_type,
        bookings=len(booking_ids),
        mode=mode,
    )

    if mode == "two_step" and booking_ids:
        assign(number, booking_ids, is_forwarding, data["destination_depot_id"], mode=mode)

    return trip


# =============================================================================
# Reads
# =============================================================================

def junction_bookings_for_trip(trip_id: str) -> List[Booking]:
    booking_ids = select(TripBooking.booking_id).where(TripBooking.trip_id == trip_id)
    return (
        Booking.query
        .filter(Booking.id.in_(booking_ids))
        .order_by(*_NEWEST_FIRST)
        .all()
    )


def bookings_for_trip(trip_id: str) -> List[Booking]:
    """
    Bookings on a trip, newest first.

    Reads Booking.trip_id; when that yields nothing (the link update never
    landed, or every booking has moved on) falls back to the TripBooking
    rows. A failing junction read gives an empty list.
    """
    bookings = (
        Booking.query
        .filter(Booking.trip_id == trip_id)
        .order_by(*_NEWEST_FIRST)
        .all()
    )
    if bookings:
        return bookings

    try:
        bookings = junction_bookings_for_trip(trip_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("trip_bookings_junction_read_failed", trip_id=trip_id, error=str(exc))
        return []

    if bookings:
        logger.info("trip_bookings_junction_fallback", trip_id=trip_id, bookings=len(bookings))
    return bookings


def trip_link_report(trip_id: str) -> Dict[str, Any]:
    """Compare the FK link with the junction rows for one trip."""
    fk_ids = set(
        db.session.execute(select(Booking.id).where(Booking.trip_id == trip_id)).scalars()
    )
    junction_ids = set(
        db.session.execute(
            select(TripBooking.booking_id).where(TripBooking.trip_id == trip_id)
        ).scalars()
    )
    fk_only = sorted(fk_ids - junction_ids)
    junction_only = sorted(junction_ids - fk_ids)
    return {
        "trip_id": trip_id,
        "fk": sorted(fk_ids),
        "junction": sorted(junction_ids),
        "fk_only": fk_only,
        "junction_only": junction_only,
        "consistent": not fk_only,
    }


def repair_missing_links(trip_id: str) -> int:
    """
    Add the junction rows missing for bookings whose trip_id points here.

    junction_only bookings are left alone: they rode this trip and have
    since moved on to another.
    """
    report = trip_link_report(trip_id)
    if not report["fk_only"]:
        return 0
    try:
        added = _insert_junction_rows(trip_id, report["fk_only"])
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    logger.info("trip_links_repaired", trip_id=trip_id, added=added)
    return added


# =============================================================================
# Progress / status
# =============================================================================

def trip_delivery_progress(trip_id: str) -> Dict[str, Any]:
    total, delivered = db.session.execute(
        select(
            func.count(Booking.id),
            func.coalesce(func.sum(case((Booking.status == "delivered", 1), else_=0)), 0),
        ).where(Booking.trip_id == trip_id)
    ).one()
    total = int(total or 0)
    delivered = int(delivered or 0)
    return {
        "total": total,
        "delivered": delivered,
        "is_completed": total > 0 and delivered == total,
    }


def trips_with_progress() -> List[Dict[str, Any]]:
    """Every trip, newest first, with its delivered/total counts."""
    counts = dict(
        (row.trip_id, (int(row.total), int(row.delivered or 0)))
        for row in db.session.execute(
            select(
                Booking.trip_id,
                func.count(Booking.id).label("total"),
                func.sum(case((Booking.status == "delivered", 1), else_=0)).label("delivered"),
            )
            .where(Booking.trip_id.isnot(None))
            .group_by(Booking.trip_id)
        )
    )

    out = []
    for trip in Trip.query.order_by(Trip.created_at.desc(), Trip.id.desc()).all():
        total, delivered = counts.get(trip.id, (0, 0))
        out.append({
            "trip": trip,
            "total": total,
            "delivered": delivered,
            "is_completed": total > 0 and delivered == total,
        })
    return out


def update_trip_status(trip_id: str, status: str) -> Trip:
    value = (status or "").strip().lower()
    if value not in TRIP_STATUSES:
        raise ValidationError(f"Unknown trip status: {status!r}.")

    trip = db.session.get(Trip, trip_id)
    if trip is None:
        raise NotFoundError("Trip", trip_id)

    trip.status = value
    if value == "completed" and trip.completed_at is None:
        trip.completed_at = datetime.utcnow()
    if value == "completed" and trip.arrival_time is None:
        trip.arrival_time = trip.completed_at

    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info("trip_status_changed", trip_id=trip_id, status=value)
    return trip
