# courier/errors.py
from __future__ import annotations

from typing import Optional


class CourierError(Exception):
    """Base class for errors raised by the courier services."""


class NotFoundError(CourierError):
    def __init__(self, kind: str, ident):
        super().__init__(f"{kind} {ident} not found.")
        self.kind = kind
        self.ident = ident


class ValidationError(CourierError, ValueError):
    """Malformed input that must abort the write and surface to the caller."""


class BookingValidationError(ValidationError):
    """Bad quantity/price, missing receiver fields, unknown status."""


class AtomicWriteUnavailable(CourierError):
    """The store cannot run the single-transaction booking write."""


class BookingWriteError(CourierError):
    """
    A sequential booking write failed after the booking header was committed.

    `compensated` tells whether the orphaned booking was deleted again.
    """

    def __init__(self, message: str, receipt_number: Optional[str], compensated: bool):
        super().__init__(message)
        self.receipt_number = receipt_number
        self.compensated = compensated


class TripAssignmentError(CourierError):
    """Transactional trip assignment failed and was rolled back."""
