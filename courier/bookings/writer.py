# courier/bookings/writer.py
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

import structlog
from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from courier.bookings.packages import build_package_line
from courier.bookings.validation import normalize_booking_fields, normalize_receiver
from courier.errors import AtomicWriteUnavailable, BookingWriteError
from courier.models import (
    db,
    Booking,
    BookingReceiver,
    ReceiverPackage,
    SequenceCounter,
)
from courier.numbering import next_serial
from courier.pricing import recompute_booking_totals

logger = structlog.get_logger(__name__)

WRITE_MODES = ("atomic", "sequential", "auto")

_CAPABILITY_KEY = "courier.atomic_booking_writes"

# Error text that means "the object the atomic write needs is not there".
# Anything else raised by the probe is a real failure and propagates.
CAPABILITY_MISSING_SIGNATURES = (
    "pgrst202",
    "42883",
    "42p01",
    "undefinedtable",
    "undefinedfunction",
    "no such table",
    "does not exist",
)


# =============================================================================
# Capability negotiation (once per app)
# =============================================================================

def is_capability_missing(exc: BaseException) -> bool:
    parts = [str(exc)]
    orig = getattr(exc, "orig", None)
    if orig is not None:
        parts.append(type(orig).__name__)
        parts.append(str(getattr(orig, "pgcode", "") or ""))
    text = " ".join(parts).lower()
    return any(sig in text for sig in CAPABILITY_MISSING_SIGNATURES)


def probe_atomic_support() -> None:
    """
    Touch every table the single-transaction write spans.

    Raises AtomicWriteUnavailable when one of them is missing; other
    database errors propagate unchanged.
    """
    try:
        for model in (SequenceCounter, Booking, BookingReceiver, ReceiverPackage):
            db.session.execute(select(func.count()).select_from(model))
    except DBAPIError as exc:
        db.session.rollback()
        if is_capability_missing(exc):
            raise AtomicWriteUnavailable(str(exc.orig or exc)) from exc
        raise


def atomic_writes_supported(app=None) -> bool:
    """Cached on app.extensions after the first probe."""
    app = app or current_app._get_current_object()
    cached = app.extensions.get(_CAPABILITY_KEY)
    if cached is not None:
        return cached

    try:
        probe_atomic_support()
        supported = True
    except AtomicWriteUnavailable as exc:
        supported = False
        logger.warning("atomic_booking_write_unavailable", reason=str(exc))

    app.extensions[_CAPABILITY_KEY] = supported
    logger.info("booking_write_capability", atomic=supported)
    return supported


def reset_capability_cache(app=None) -> None:
    app = app or current_app._get_current_object()
    app.extensions.pop(_CAPABILITY_KEY, None)


# =============================================================================
# Writer
# =============================================================================

class BookingWriter:
    """
    Creates a booking with its receivers and package lines.

    mode:
      "atomic"      everything (receipt number included) in one transaction
      "sequential"  booking, each receiver, each line committed separately;
                    a failure partway deletes the orphaned booking when
                    compensation is on
      "auto"        atomic when the store supports it, decided once per app
    """

    def __init__(self, mode: Optional[str] = None, compensate: Optional[bool] = None):
        self.mode = mode
        self.compensate = compensate

    def _mode(self) -> str:
        mode = (self.mode or current_app.config.get("BOOKING_WRITE_MODE") or "auto").lower()
        if mode not in WRITE_MODES:
            raise ValueError(f"Unknown booking write mode: {mode!r}")
        return mode

    def _compensate(self) -> bool:
        if self.compensate is not None:
            return self.compensate
        return bool(current_app.config.get("BOOKING_COMPENSATE_ON_FAILURE", True))

    def use_atomic(self) -> bool:
        mode = self._mode()
        if mode == "auto":
            return atomic_writes_supported()
        return mode == "atomic"

    def create(
        self,
        booking_fields: Dict[str, Any],
        receivers: List[Dict[str, Any]],
        today: Optional[date] = None,
    ) -> Booking:
        if self.use_atomic():
            return self.create_atomic(booking_fields, receivers, today=today)
        return self.create_sequential(booking_fields, receivers, today=today)

    # -------------------------------------------------------------------------
    # Atomic path
    # -------------------------------------------------------------------------
    def create_atomic(
        self,
        booking_fields: Dict[str, Any],
        receivers: List[Dict[str, Any]],
        today: Optional[date] = None,
    ) -> Booking:
        header = normalize_booking_fields(booking_fields)
        receivers = receivers or []
        line_count = 0

        try:
            _, receipt = next_serial("receipt", today)
            booking = Booking(id=receipt, receipt_number=receipt, **header)
            db.session.add(booking)

            for order, raw in enumerate(receivers, start=1):
                data = normalize_receiver(raw, order, header["delivery_type"])
                lines = data.pop("packages")
                receiver = BookingReceiver(**data)
                booking.receivers.append(receiver)

                for idx, line in enumerate(lines, start=1):
                    build_package_line(receiver, booking, line, f"receiver #{order} line #{idx}")
                    line_count += 1

            recompute_booking_totals(booking.id)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(
            "booking_created",
            path="atomic",
            receipt_number=receipt,
            receivers=len(receivers),
            lines=line_count,
            total=booking.total_amount,
        )
        return booking

    # -------------------------------------------------------------------------
    # Sequential path
    # -------------------------------------------------------------------------
    def create_sequential(
        self,
        booking_fields: Dict[str, Any],
        receivers: List[Dict[str, Any]],
        today: Optional[date] = None,
    ) -> Booking:
        header = normalize_booking_fields(booking_fields)
        receivers = receivers or []

        # Step 1: booking + receipt number
        try:
            _, receipt = next_serial("receipt", today)
            booking = Booking(id=receipt, receipt_number=receipt, **header)
            db.session.add(booking)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        # Step 2..n: receivers, then each receiver's lines
        line_count = 0
        try:
            for order, raw in enumerate(receivers, start=1):
                data = normalize_receiver(raw, order, header["delivery_type"])
                lines = data.pop("packages")
                receiver = BookingReceiver(booking_id=receipt, **data)
                db.session.add(receiver)
                db.session.commit()

                for idx, line in enumerate(lines, start=1):
                    build_package_line(receiver, booking, line, f"receiver #{order} line #{idx}")
                    recompute_booking_totals(receipt)
                    db.session.commit()
                    line_count += 1

            recompute_booking_totals(receipt)
            db.session.commit()
        except Exception as exc:
            db.session.rollback()
            compensated = self._compensate() and self._delete_orphan(receipt)
            logger.warning(
                "sequential_booking_write_failed",
                receipt_number=receipt,
                compensated=compensated,
                error=str(exc),
            )
            raise BookingWriteError(
                str(exc), receipt_number=receipt, compensated=compensated
            ) from exc

        logger.info(
            "booking_created",
            path="sequential",
            receipt_number=receipt,
            receivers=len(receivers),
            lines=line_count,
            total=booking.total_amount,
        )
        return booking

    def _delete_orphan(self, receipt: str) -> bool:
        """Compensating delete of a half-written booking (cascades to receivers and lines)."""
        try:
            booking = db.session.get(Booking, receipt)
            if booking is not None:
                db.session.delete(booking)
                db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("booking_compensation_failed", receipt_number=receipt)
            return False

        logger.warning("booking_compensated", receipt_number=receipt)
        return True


def create_booking(
    booking_fields: Dict[str, Any],
    receivers: List[Dict[str, Any]],
    today: Optional[date] = None,
) -> Booking:
    return BookingWriter().create(booking_fields, receivers, today=today)
