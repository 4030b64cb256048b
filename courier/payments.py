# courier/payments.py
from __future__ import annotations

import math
from datetime import date, datetime
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from courier.errors import ValidationError
from courier.models import db, AdvancePayment, PAYMENT_METHODS
from courier.numbering import next_serial

logger = structlog.get_logger(__name__)

# "to_pay" only makes sense on a booking.
ADVANCE_PAYMENT_METHODS = tuple(m for m in PAYMENT_METHODS if m != "to_pay")


def record_advance_payment(
    customer_name: str,
    customer_phone: str,
    amount,
    payment_method: str = "cash",
    notes: Optional[str] = None,
    today: Optional[date] = None,
) -> AdvancePayment:
    """Store a customer's advance; the ADV- receipt is allocated in the same commit."""
    name = (customer_name or "").strip()
    phone = (customer_phone or "").strip()
    if not name:
        raise ValidationError("Customer name is required.")
    if not phone:
        raise ValidationError("Customer phone is required.")

    try:
        value = float(amount)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"Invalid amount: {amount!r}.") from None
    if not math.isfinite(value):
        raise ValidationError(f"Invalid amount: {amount!r}.")
    if value <= 0:
        raise ValidationError("Amount must be greater than zero.")

    method = (payment_method or "cash").strip().lower()
    if method not in ADVANCE_PAYMENT_METHODS:
        raise ValidationError(f"Unknown payment method: {payment_method!r}.")

    try:
        _, receipt = next_serial("payment", today)
        payment = AdvancePayment(
            customer_name=name,
            customer_phone=phone,
            amount=round(value, 2),
            payment_method=method,
            receipt_number=receipt,
            notes=(notes or "").strip() or None,
            payment_date=datetime.utcnow(),
        )
        db.session.add(payment)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info("advance_payment_recorded", receipt_number=receipt, customer_phone=phone, amount=value)
    return payment
