# courier/bookings/validation.py
from __future__ import annotations

import math
from typing import Any, Dict, Optional

from courier.errors import BookingValidationError
from courier.models import (
    BOOKING_STATUSES,
    DELIVERY_TYPES,
    HOME_DELIVERY_TYPES,
    PAYMENT_METHODS,
)

TO_PAY_COLLECTION_METHODS = ("cash", "online")

# Values the booking form sends for a free-text line.
_CUSTOM_PACKAGE_MARKERS = ("", "custom")


def _to_float(v) -> Optional[float]:
    """Finite float or None; "nan" and "inf" count as unparseable."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, str):
        v = v.strip()
        if not v:
            return None
    elif not isinstance(v, (int, float)):
        return None
    try:
        f = float(v)
    except (ValueError, OverflowError):
        return None
    return f if math.isfinite(f) else None


def _is_bad_num(raw) -> bool:
    """Non-empty input that still failed to parse."""
    if raw is None:
        return False
    if isinstance(raw, str) and not raw.strip():
        return False
    return _to_float(raw) is None


def clean_text(v) -> Optional[str]:
    s = (str(v) if v is not None else "").strip()
    return s or None


def _optional_int(raw, field: str, scope_label: str) -> Optional[int]:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError, OverflowError):
        raise BookingValidationError(f"Invalid {field} ({scope_label}): {raw!r}.") from None


# =============================================================================
# Booking header
# =============================================================================

def normalize_booking_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate the header of a booking and return the column values to store.

    Rule:
    - payment_method / delivery_type must be known values
    - delivery_charges defaults to 0 and may not be negative
    - origin/destination depot ids are integers
    - status defaults to "booked"
    """
    if not isinstance(fields, dict):
        raise BookingValidationError("Booking fields must be an object.")

    payment_method = (fields.get("payment_method") or "cash").strip().lower()
    if payment_method not in PAYMENT_METHODS:
        raise BookingValidationError(f"Unknown payment method: {payment_method!r}.")

    delivery_type = (fields.get("delivery_type") or "pickup").strip().lower()
    if delivery_type not in DELIVERY_TYPES:
        raise BookingValidationError(f"Unknown delivery type: {delivery_type!r}.")

    charges_raw = fields.get("delivery_charges")
    if _is_bad_num(charges_raw):
        raise BookingValidationError(f"Invalid delivery charges: {charges_raw!r}.")
    delivery_charges = _to_float(charges_raw) or 0.0
    if delivery_charges < 0:
        raise BookingValidationError("Delivery charges cannot be negative.")

    status = normalize_booking_status(fields.get("status") or "booked")

    return {
        "origin_depot_id": _optional_int(fields.get("origin_depot_id"), "origin depot", "booking"),
        "destination_depot_id": _optional_int(
            fields.get("destination_depot_id"), "destination depot", "booking"
        ),
        "payment_method": payment_method,
        "delivery_type": delivery_type,
        "delivery_charges": delivery_charges,
        "sender_name": clean_text(fields.get("sender_name")),
        "sender_phone": clean_text(fields.get("sender_phone")),
        "custom_instructions": clean_text(fields.get("custom_instructions")),
        "status": status,
    }


def normalize_booking_status(status) -> str:
    value = (status or "").strip().lower() if isinstance(status, str) else ""
    if value not in BOOKING_STATUSES:
        raise BookingValidationError(f"Unknown booking status: {status!r}.")
    return value


def normalize_collected_method(method) -> Optional[str]:
    if method is None or (isinstance(method, str) and not method.strip()):
        return None
    value = str(method).strip().lower()
    if value not in TO_PAY_COLLECTION_METHODS:
        raise BookingValidationError(f"Unknown to-pay collection method: {method!r}.")
    return value


# =============================================================================
# Receivers and package lines
# =============================================================================

def normalize_receiver(receiver: Dict[str, Any], order: int, delivery_type: str) -> Dict[str, Any]:
    """
    Validate one receiver. Returns its column values plus the raw
    "packages" list (lines are validated one by one at insert time).
    """
    scope_label = f"receiver #{order}"
    if not isinstance(receiver, dict):
        raise BookingValidationError(f"Invalid {scope_label}.")

    name = clean_text(receiver.get("name") or receiver.get("receiver_name"))
    phone = clean_text(receiver.get("phone") or receiver.get("receiver_phone"))
    address = clean_text(receiver.get("address") or receiver.get("delivery_address"))

    if not name:
        raise BookingValidationError(f"Receiver name is required ({scope_label}).")
    if not phone:
        raise BookingValidationError(f"Receiver phone is required ({scope_label}).")
    if delivery_type in HOME_DELIVERY_TYPES and not address:
        raise BookingValidationError(
            f"Delivery address is required for home delivery ({scope_label})."
        )

    packages = receiver.get("packages") or []
    if not isinstance(packages, list):
        raise BookingValidationError(f"Invalid packages list ({scope_label}).")

    return {
        "receiver_name": name,
        "receiver_phone": phone,
        "delivery_address": address,
        "receiver_order": order,
        "packages": packages,
    }


def normalize_package_line(line: Dict[str, Any], scope_label: str) -> Dict[str, Any]:
    """
    Validate one package line.

    Returns:
      {"package_id": int|None, "package_size": str|None, "quantity": int,
       "price_per_unit": float|None, "description": str|None}

    price_per_unit is None when the caller left it blank; the writer then
    resolves it from the price tables.
    """
    if not isinstance(line, dict):
        raise BookingValidationError(f"Invalid package line ({scope_label}).")

    pkg_raw = line.get("package_id")
    if isinstance(pkg_raw, str) and pkg_raw.strip().lower() in _CUSTOM_PACKAGE_MARKERS:
        pkg_raw = None
    package_id = _optional_int(pkg_raw, "package", scope_label)

    qty_raw = line.get("quantity")
    qty = _to_float(qty_raw)
    if qty is None or qty != int(qty) or qty < 1:
        raise BookingValidationError(
            f"Quantity must be a positive whole number ({scope_label}): {qty_raw!r}."
        )

    price_raw = line.get("price")
    if price_raw is None:
        price_raw = line.get("price_per_unit")
    if _is_bad_num(price_raw):
        raise BookingValidationError(f"Invalid price ({scope_label}): {price_raw!r}.")
    price = _to_float(price_raw)
    if price is not None and price < 0:
        raise BookingValidationError(f"Price cannot be negative ({scope_label}).")

    if package_id is None and price is None:
        raise BookingValidationError(
            f"Price is required for a custom package line ({scope_label})."
        )

    return {
        "package_id": package_id,
        "package_size": clean_text(line.get("package_size") or line.get("size")),
        "quantity": int(qty),
        "price_per_unit": price,
        "description": clean_text(line.get("description")),
    }
