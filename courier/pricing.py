# courier/pricing.py
from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy import func, select

from courier.models import (
    db,
    Booking,
    BookingReceiver,
    CustomerPackagePrice,
    DepotPackagePrice,
    Package,
    ReceiverPackage,
)

logger = structlog.get_logger(__name__)


def resolve_unit_price(
    package_id: Optional[int],
    destination_depot_id: Optional[int],
    customer_phone: Optional[str] = None,
) -> Optional[float]:
    """
    Unit price for a catalogue package sent to `destination_depot_id`.

    Rule:
    - customer discount (phone x package x destination depot) wins
    - then the destination depot's override for the package
    - then the package base price
    - None when the package does not exist (or no package was given)
    """
    if package_id is None:
        return None

    phone = (customer_phone or "").strip()
    if phone and destination_depot_id is not None:
        discount = CustomerPackagePrice.query.filter_by(
            customer_phone=phone,
            package_id=package_id,
            depot_id=destination_depot_id,
        ).first()
        if discount is not None:
            return float(discount.discounted_price)

    if destination_depot_id is not None:
        override = DepotPackagePrice.query.filter_by(
            depot_id=destination_depot_id,
            package_id=package_id,
        ).first()
        if override is not None:
            return float(override.price)

    pkg = db.session.get(Package, package_id)
    if pkg is None:
        return None
    return float(pkg.base_price or 0.0)


def calculate_booking_total(booking_id: str, session=None) -> float:
    """Sum(quantity x price_per_unit) over every line of every receiver, plus delivery charges."""
    session = session or db.session

    lines_total = session.execute(
        select(
            func.coalesce(
                func.sum(ReceiverPackage.quantity * ReceiverPackage.price_per_unit), 0.0
            )
        )
        .select_from(ReceiverPackage)
        .join(BookingReceiver, ReceiverPackage.receiver_id == BookingReceiver.id)
        .where(BookingReceiver.booking_id == booking_id)
    ).scalar_one()

    charges = session.execute(
        select(Booking.delivery_charges).where(Booking.id == booking_id)
    ).scalar_one_or_none()

    return round(float(lines_total or 0.0) + float(charges or 0.0), 2)


def recompute_booking_totals(booking_id: str, session=None) -> float:
    """
    Bring subtotal/total_amount back in line with the booking's lines.

    Joins the caller's transaction (flushes, never commits). Called after
    every line insert, update and delete.
    """
    session = session or db.session
    session.flush()

    booking = session.get(Booking, booking_id)
    if booking is None:
        return 0.0

    total = calculate_booking_total(booking_id, session=session)
    booking.subtotal = total
    booking.total_amount = total
    session.flush()

    logger.debug("booking_totals_recomputed", booking_id=booking_id, total=total)
    return total
