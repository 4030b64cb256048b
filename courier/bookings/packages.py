# courier/bookings/packages.py
from __future__ import annotations

from typing import Any, Dict, List

import structlog
from sqlalchemy.exc import SQLAlchemyError

from courier.bookings.validation import (
    clean_text,
    normalize_package_line,
    normalize_receiver,
)
from courier.errors import BookingValidationError, NotFoundError
from courier.models import db, Booking, BookingReceiver, Package, ReceiverPackage
from courier.pricing import recompute_booking_totals, resolve_unit_price

logger = structlog.get_logger(__name__)


def build_package_line(
    receiver: BookingReceiver,
    booking: Booking,
    line: Dict[str, Any],
    scope_label: str,
) -> ReceiverPackage:
    """
    Validate `line`, fill in its unit price and size, and attach it to
    `receiver` (added to the session, not committed).
    """
    data = normalize_package_line(line, scope_label)

    pkg = None
    if data["package_id"] is not None:
        pkg = db.session.get(Package, data["package_id"])
        if pkg is None:
            raise BookingValidationError(
                f"Unknown package ({scope_label}): {data['package_id']}."
            )

    price = data["price_per_unit"]
    if price is None:
        price = resolve_unit_price(
            pkg.id,
            booking.destination_depot_id,
            booking.sender_phone,
        )

    line_row = ReceiverPackage(
        package_id=pkg.id if pkg else None,
        package_size=data["package_size"] or (pkg.name if pkg else "Custom"),
        quantity=data["quantity"],
        price_per_unit=price,
        description=data["description"],
    )
    receiver.packages.append(line_row)
    db.session.add(line_row)
    return line_row


def _commit_with_totals(booking_id: str) -> float:
    try:
        total = recompute_booking_totals(booking_id)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return total


# =============================================================================
# Line hooks (each recomputes the booking totals)
# =============================================================================

def add_package_line(receiver_id: int, line: Dict[str, Any]) -> ReceiverPackage:
    receiver = db.session.get(BookingReceiver, receiver_id)
    if receiver is None:
        raise NotFoundError("Receiver", receiver_id)

    booking = receiver.booking
    label = f"receiver #{receiver.receiver_order} line #{len(receiver.packages) + 1}"
    try:
        line_row = build_package_line(receiver, booking, line, label)
    except BookingValidationError:
        db.session.rollback()
        raise

    _commit_with_totals(booking.id)
    return line_row


def update_package_line(line_id: int, **changes) -> ReceiverPackage:
    """
    Change package / quantity / price / size / description of an existing line.
    Switching package without a price re-resolves price and size.
    Omitted keys keep their stored value.
    """
    line_row = db.session.get(ReceiverPackage, line_id)
    if line_row is None:
        raise NotFoundError("Package line", line_id)

    merged = {
        "package_id": line_row.package_id,
        "package_size": line_row.package_size,
        "quantity": line_row.quantity,
        "price": line_row.price_per_unit,
        "description": line_row.description,
    }
    if "price_per_unit" in changes and "price" not in changes:
        changes["price"] = changes.pop("price_per_unit")
    package_changed = "package_id" in changes and changes["package_id"] != line_row.package_id
    if package_changed:
        # A new package is priced and named afresh unless the caller says otherwise.
        if "price" not in changes:
            merged["price"] = None
        if "package_size" not in changes:
            merged["package_size"] = None
    merged.update(changes)

    data = normalize_package_line(merged, f"line {line_id}")
    booking = line_row.receiver.booking

    pkg = None
    if data["package_id"] is not None:
        pkg = db.session.get(Package, data["package_id"])
        if pkg is None:
            raise BookingValidationError(f"Unknown package (line {line_id}): {data['package_id']}.")

    price = data["price_per_unit"]
    if price is None:
        price = resolve_unit_price(
            data["package_id"], booking.destination_depot_id, booking.sender_phone
        )

    size = data["package_size"]
    if size is None and package_changed:
        size = pkg.name if pkg else "Custom"

    line_row.package_id = data["package_id"]
    line_row.package_size = size or line_row.package_size
    line_row.quantity = data["quantity"]
    line_row.price_per_unit = price
    line_row.description = data["description"]

    _commit_with_totals(booking.id)
    return line_row


def delete_package_line(line_id: int) -> float:
    """Remove a line; returns the booking's new total."""
    line_row = db.session.get(ReceiverPackage, line_id)
    if line_row is None:
        raise NotFoundError("Package line", line_id)

    booking_id = line_row.receiver.booking_id
    line_row.receiver.packages.remove(line_row)
    db.session.delete(line_row)

    return _commit_with_totals(booking_id)


# =============================================================================
# Delivered-receipt edit
# =============================================================================

def edit_delivered_booking(booking_id: str, updates: Dict[str, Any]) -> Booking:
    """
    Correct the paperwork of a delivered booking.

    Rule:
    - only bookings already in "delivered" may be edited here
    - sender_name / sender_phone / custom_instructions are replaced when given
    - "receivers" (when given) replaces every receiver and its lines
    - totals are recomputed in the same commit
    """
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError("Booking", booking_id)
    if not booking.is_delivered:
        raise BookingValidationError(
            f"Only delivered bookings can be edited here ({booking_id} is {booking.status})."
        )

    try:
        for key in ("sender_name", "sender_phone", "custom_instructions"):
            if key in updates:
                setattr(booking, key, clean_text(updates.get(key)))

        receivers_in: List[Dict[str, Any]] = updates.get("receivers")
        if receivers_in is not None:
            if not isinstance(receivers_in, list):
                raise BookingValidationError("Receivers must be a list.")

            booking.receivers.clear()
            db.session.flush()

            for order, raw in enumerate(receivers_in, start=1):
                data = normalize_receiver(raw, order, booking.delivery_type)
                lines = data.pop("packages")
                receiver = BookingReceiver(**data)
                booking.receivers.append(receiver)
                for idx, line in enumerate(lines, start=1):
                    build_package_line(receiver, booking, line, f"receiver #{order} line #{idx}")

        total = recompute_booking_totals(booking.id)
        db.session.commit()
    except (BookingValidationError, SQLAlchemyError):
        db.session.rollback()
        raise

    logger.info("delivered_booking_edited", booking_id=booking_id, total=total)
    return booking
