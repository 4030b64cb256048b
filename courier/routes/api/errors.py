import structlog
from flask import jsonify

from courier.errors import (
    BookingWriteError,
    NotFoundError,
    TripAssignmentError,
    ValidationError,
)
from . import api_bp

logger = structlog.get_logger(__name__)


def _error(message: str, status: int, **extra):
    body = {"success": False, "error": message}
    body.update(extra)
    return jsonify(body), status


@api_bp.errorhandler(NotFoundError)
def handle_not_found(exc: NotFoundError):
    return _error(str(exc), 404)


@api_bp.errorhandler(ValidationError)
def handle_validation(exc: ValidationError):
    return _error(str(exc), 400)


@api_bp.errorhandler(BookingWriteError)
def handle_booking_write(exc: BookingWriteError):
    # A bad receiver/line discovered mid-way is still the caller's mistake.
    status = 400 if isinstance(exc.__cause__, ValidationError) else 500
    return _error(
        str(exc),
        status,
        receipt_number=exc.receipt_number,
        compensated=exc.compensated,
    )


@api_bp.errorhandler(TripAssignmentError)
def handle_trip_assignment(exc: TripAssignmentError):
    logger.error("trip_assignment_request_failed", error=str(exc))
    return _error(str(exc), 500)
