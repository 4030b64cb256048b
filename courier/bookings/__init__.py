# courier/bookings/__init__.py
from courier.bookings.writer import BookingWriter, create_booking
from courier.bookings.packages import (
    add_package_line,
    update_package_line,
    delete_package_line,
    edit_delivered_booking,
)
from courier.bookings.status import update_booking_status

__all__ = [
    "BookingWriter",
    "create_booking",
    "add_package_line",
    "update_package_line",
    "delete_package_line",
    "edit_delivered_booking",
    "update_booking_status",
]
