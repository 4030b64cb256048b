from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, date

db = SQLAlchemy()


# -------------------------------------------------------------------
# Enumerations (stored as plain strings, like the rest of the schema)
# -------------------------------------------------------------------

DEPOT_TYPES = ("origin", "managed", "direct_pickup")

PAYMENT_METHODS = ("cash", "upi", "bank_transfer", "credit", "to_pay")

DELIVERY_TYPES = ("pickup", "home_sender", "home_topay", "home_drt")
HOME_DELIVERY_TYPES = ("home_sender", "home_topay", "home_drt")

BOOKING_STATUSES = (
    "booked",
    "loading",
    "in_transit",
    "in_transit_forwarding",
    "reached_depot",
    "out_for_delivery",
    "delivered",
)

TRIP_STATUSES = ("planned", "loading", "in_transit", "completed", "cancelled")

TRIP_TYPES = ("origin", "forwarding")


class Depot(db.Model):
    __tablename__ = "depot"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    type = db.Column(db.String(20), nullable=False, default="managed")
    location = db.Column(db.String(200))
    contact_person = db.Column(db.String(100))
    contact_phone = db.Column(db.String(20))

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @property
    def is_managed(self) -> bool:
        return self.type == "managed"

    def __repr__(self):
        return f"<Depot {self.code} - {self.name} ({self.type})>"


class DepotRoute(db.Model):
    """Origin depot -> depot it forwards goods on to."""

    __tablename__ = "depot_route"
    __table_args__ = (
        db.UniqueConstraint("origin_depot_id", "forwarding_depot_id", name="uq_depot_route_pair"),
    )

    id = db.Column(db.Integer, primary_key=True)
    origin_depot_id = db.Column(db.Integer, db.ForeignKey("depot.id"), nullable=False, index=True)
    forwarding_depot_id = db.Column(db.Integer, db.ForeignKey("depot.id"), nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    origin_depot = db.relationship("Depot", foreign_keys=[origin_depot_id])
    forwarding_depot = db.relationship("Depot", foreign_keys=[forwarding_depot_id])

    def __repr__(self):
        return f"<DepotRoute {self.origin_depot_id} -> {self.forwarding_depot_id}>"


class Package(db.Model):
    __tablename__ = "package"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    base_price = db.Column(db.Float, nullable=False, default=0.0)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"<Package {self.name} base={self.base_price}>"


class DepotPackagePrice(db.Model):
    __tablename__ = "depot_package_price"
    __table_args__ = (
        db.UniqueConstraint("depot_id", "package_id", name="uq_depot_package_price"),
    )

    id = db.Column(db.Integer, primary_key=True)
    depot_id = db.Column(db.Integer, db.ForeignKey("depot.id"), nullable=False)
    package_id = db.Column(db.Integer, db.ForeignKey("package.id"), nullable=False)
    price = db.Column(db.Float, nullable=False)

    def __repr__(self):
        return f"<DepotPackagePrice depot={self.depot_id} pkg={self.package_id} price={self.price}>"


class CustomerPackagePrice(db.Model):
    """Discounted price for a credit customer, per package per destination depot."""

    __tablename__ = "customer_package_price"
    __table_args__ = (
        db.UniqueConstraint(
            "customer_phone", "package_id", "depot_id", name="uq_customer_package_price"
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_phone = db.Column(db.String(20), nullable=False, index=True)
    package_id = db.Column(db.Integer, db.ForeignKey("package.id", ondelete="CASCADE"), nullable=False)
    depot_id = db.Column(db.Integer, db.ForeignKey("depot.id", ondelete="CASCADE"), nullable=False)
    discounted_price = db.Column(db.Float, nullable=False)

    def __repr__(self):
        return (
            f"<CustomerPackagePrice phone={self.customer_phone} pkg={self.package_id} "
            f"depot={self.depot_id} price={self.discounted_price}>"
        )


class SequenceCounter(db.Model):
    """
    One row per logical sequence ("receipt", "trip", "payment").

    Only courier.numbering touches this table.
    """

    __tablename__ = "sequence_counter"

    name = db.Column(db.String(20), primary_key=True)
    last_date = db.Column(db.Date, nullable=False, default=date.today)
    value = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<SequenceCounter {self.name} {self.last_date} #{self.value}>"


class Trip(db.Model):
    __tablename__ = "trip"

    # The generated trip number doubles as primary key.
    id = db.Column(db.String(32), primary_key=True)
    trip_number = db.Column(db.String(32), unique=True, nullable=False)
    trip_type = db.Column(db.String(20), nullable=False, default="origin")

    driver_name = db.Column(db.String(100), nullable=False)
    driver_phone = db.Column(db.String(20))
    vehicle_number = db.Column(db.String(30), nullable=False)
    trip_cost = db.Column(db.Float, nullable=False, default=0.0)

    origin_depot_id = db.Column(db.Integer, db.ForeignKey("depot.id"), index=True)
    destination_depot_id = db.Column(db.Integer, db.ForeignKey("depot.id"))

    departure_time = db.Column(db.DateTime, default=datetime.utcnow)
    arrival_time = db.Column(db.DateTime)
    expected_delivery_date = db.Column(db.Date)

    status = db.Column(db.String(20), nullable=False, default="planned", index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )
    completed_at = db.Column(db.DateTime)

    origin_depot = db.relationship("Depot", foreign_keys=[origin_depot_id])
    destination_depot = db.relationship("Depot", foreign_keys=[destination_depot_id])

    trip_bookings = db.relationship(
        "TripBooking",
        back_populates="trip",
        cascade="all, delete-orphan",
    )

    @property
    def is_forwarding(self) -> bool:
        return self.trip_type == "forwarding"

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    def __repr__(self):
        return f"<Trip {self.id} {self.trip_type} status={self.status}>"


class Booking(db.Model):
    __tablename__ = "booking"

    # The generated receipt number doubles as primary key.
    id = db.Column(db.String(32), primary_key=True)
    receipt_number = db.Column(db.String(32), unique=True, nullable=False)

    origin_depot_id = db.Column(db.Integer, db.ForeignKey("depot.id"), index=True)
    destination_depot_id = db.Column(db.Integer, db.ForeignKey("depot.id"), index=True)

    payment_method = db.Column(db.String(20), nullable=False, default="cash")
    delivery_type = db.Column(db.String(20), nullable=False, default="pickup")
    delivery_charges = db.Column(db.Float, nullable=False, default=0.0)

    sender_name = db.Column(db.String(100))
    sender_phone = db.Column(db.String(20), index=True)

    subtotal = db.Column(db.Float, nullable=False, default=0.0)
    total_amount = db.Column(db.Float, nullable=False, default=0.0)

    status = db.Column(db.String(30), nullable=False, default="booked", index=True)
    trip_id = db.Column(db.String(32), db.ForeignKey("trip.id"), nullable=True, index=True)
    current_location_depot_id = db.Column(db.Integer, db.ForeignKey("depot.id"), index=True)

    custom_instructions = db.Column(db.String(500))

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )
    delivered_at = db.Column(db.DateTime)

    to_pay_collected_method = db.Column(db.String(20))
    to_pay_collected_at = db.Column(db.DateTime)

    origin_depot = db.relationship("Depot", foreign_keys=[origin_depot_id])
    destination_depot = db.relationship("Depot", foreign_keys=[destination_depot_id])
    current_location_depot = db.relationship("Depot", foreign_keys=[current_location_depot_id])
    trip = db.relationship("Trip", foreign_keys=[trip_id])

    receivers = db.relationship(
        "BookingReceiver",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingReceiver.receiver_order",
    )

    @property
    def package_lines(self):
        return [pkg for r in self.receivers for pkg in r.packages]

    @property
    def is_delivered(self) -> bool:
        return self.status == "delivered"

    def __repr__(self):
        return f"<Booking {self.id} status={self.status} trip={self.trip_id}>"


class BookingReceiver(db.Model):
    __tablename__ = "booking_receiver"

    id = db.Column(db.Integer, primary_key=True)

    booking_id = db.Column(
        db.String(32),
        db.ForeignKey("booking.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    receiver_name = db.Column(db.String(100), nullable=False)
    receiver_phone = db.Column(db.String(20), nullable=False)
    delivery_address = db.Column(db.String(300))
    receiver_order = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    booking = db.relationship("Booking", back_populates="receivers")

    packages = db.relationship(
        "ReceiverPackage",
        back_populates="receiver",
        cascade="all, delete-orphan",
        order_by="ReceiverPackage.id",
    )

    def __repr__(self):
        return f"<BookingReceiver booking={self.booking_id} #{self.receiver_order} {self.receiver_name}>"


class ReceiverPackage(db.Model):
    __tablename__ = "receiver_package"

    id = db.Column(db.Integer, primary_key=True)

    receiver_id = db.Column(
        db.Integer,
        db.ForeignKey("booking_receiver.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # NULL for free-text ("Custom") packages
    package_id = db.Column(db.Integer, db.ForeignKey("package.id"), nullable=True, index=True)

    package_size = db.Column(db.String(50), nullable=False, default="Custom")
    quantity = db.Column(db.Integer, nullable=False)
    price_per_unit = db.Column(db.Float, nullable=False)
    description = db.Column(db.String(250))

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    receiver = db.relationship("BookingReceiver", back_populates="packages")
    package = db.relationship("Package")

    @property
    def total_price(self) -> float:
        return (self.quantity or 0) * (self.price_per_unit or 0.0)

    def __repr__(self):
        return (
            f"<ReceiverPackage receiver={self.receiver_id} size='{self.package_size}' "
            f"qty={self.quantity} price={self.price_per_unit}>"
        )


class TripBooking(db.Model):
    """'This booking rode on this trip.' Redundant with Booking.trip_id."""

    __tablename__ = "trip_booking"
    __table_args__ = (
        db.UniqueConstraint("trip_id", "booking_id", name="uq_trip_booking_pair"),
    )

    id = db.Column(db.Integer, primary_key=True)
    trip_id = db.Column(
        db.String(32),
        db.ForeignKey("trip.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    booking_id = db.Column(
        db.String(32),
        db.ForeignKey("booking.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    loaded_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    trip = db.relationship("Trip", back_populates="trip_bookings")
    booking = db.relationship("Booking")

    def __repr__(self):
        return f"<TripBooking trip={self.trip_id} booking={self.booking_id}>"


class AdvancePayment(db.Model):
    __tablename__ = "advance_payment"

    id = db.Column(db.Integer, primary_key=True)
    customer_name = db.Column(db.String(100), nullable=False)
    customer_phone = db.Column(db.String(20), nullable=False, index=True)
    amount = db.Column(db.Float, nullable=False)
    payment_method = db.Column(db.String(20), nullable=False, default="cash")
    receipt_number = db.Column(db.String(32), unique=True, nullable=False)
    notes = db.Column(db.String(250))

    payment_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"<AdvancePayment {self.receipt_number} {self.customer_phone} {self.amount}>"
