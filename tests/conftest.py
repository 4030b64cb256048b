from types import SimpleNamespace

import pytest

from app import create_app
from courier.bookings import BookingWriter
from courier.models import (
    db,
    CustomerPackagePrice,
    Depot,
    DepotPackagePrice,
    DepotRoute,
    Package,
)
from courier.numbering import ensure_counters

DISCOUNT_PHONE = "9000000001"


@pytest.fixture
def app(tmp_path):
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "BOOKING_WRITE_MODE": "auto",
            "TRIP_ASSIGNMENT_MODE": "transactional",
            "COMPLETION_VARIANTS": "all,managed",
            "LOG_LEVEL": "WARNING",
        }
    )
    app.instance_path = str(tmp_path / "instance")

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def network(app):
    """
    BLR (origin) books goods; HSN (managed hub) forwards to MNG (managed)
    and CKM (direct pickup).
    """
    origin = Depot(code="BLR", name="Bengaluru", type="origin")
    hub = Depot(code="HSN", name="Hassan", type="managed")
    dest = Depot(code="MNG", name="Mangaluru", type="managed")
    pickup = Depot(code="CKM", name="Chikkamagaluru", type="direct_pickup")
    db.session.add_all([origin, hub, dest, pickup])
    db.session.flush()

    db.session.add_all(
        [
            DepotRoute(origin_depot_id=hub.id, forwarding_depot_id=dest.id),
            DepotRoute(origin_depot_id=hub.id, forwarding_depot_id=pickup.id),
        ]
    )

    small = Package(name="Small Box", base_price=80.0, sort_order=1)
    medium = Package(name="Medium Box", base_price=150.0, sort_order=2)
    db.session.add_all([small, medium])
    db.session.flush()

    db.session.add(DepotPackagePrice(depot_id=dest.id, package_id=small.id, price=100.0))
    db.session.add(
        CustomerPackagePrice(
            customer_phone=DISCOUNT_PHONE,
            package_id=small.id,
            depot_id=dest.id,
            discounted_price=70.0,
        )
    )
    db.session.commit()
    ensure_counters()

    return SimpleNamespace(
        origin=origin,
        hub=hub,
        dest=dest,
        pickup=pickup,
        small=small,
        medium=medium,
        discount_phone=DISCOUNT_PHONE,
    )


@pytest.fixture
def make_booking(network):
    """Atomic booking to MNG with one receiver and one Medium Box unless told otherwise."""

    def _make(receivers=None, **fields):
        header = {
            "origin_depot_id": network.origin.id,
            "destination_depot_id": network.dest.id,
            "payment_method": "cash",
            "delivery_type": "home_drt",
            "sender_name": "Ravi",
            "sender_phone": "9000000009",
        }
        header.update(fields)
        if receivers is None:
            receivers = [
                {
                    "name": "Asha",
                    "phone": "9800000001",
                    "address": "12 Car Street",
                    "packages": [{"package_id": network.medium.id, "quantity": 1}],
                }
            ]
        return BookingWriter(mode="atomic").create(header, receivers)

    return _make


@pytest.fixture
def trip_fields(network):
    def _fields(origin=None, destination=None, forwarding=False):
        return {
            "driver_name": "Manju",
            "driver_phone": "9700000001",
            "vehicle_number": "ka-13-ab-1234",
            "origin_depot_id": (origin or network.origin).id,
            "destination_depot_id": (destination or network.hub).id,
            "is_forwarding": forwarding,
        }

    return _fields
