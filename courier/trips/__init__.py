# courier/trips/__init__.py

from courier.trips.assignment import (
    assign,
    create_trip,
    bookings_for_trip,
    junction_bookings_for_trip,
    trip_link_report,
    repair_missing_links,
    trip_delivery_progress,
    trips_with_progress,
    update_trip_status,
)

from courier.trips.forwarding import (
    eligible_for_forwarding,
    forwarding_candidates,
)

from courier.trips.completion import (
    on_booking_delivered,
    check_managed_completion,
    run_completion_detectors,
)
