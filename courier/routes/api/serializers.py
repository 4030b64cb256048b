from __future__ import annotations

from typing import Any, Dict, Optional

from courier.models import AdvancePayment, Booking, Trip


def _iso(v) -> Optional[str]:
    return v.isoformat() if v is not None else None


def booking_payload(b: Booking, with_receivers: bool = True) -> Dict[str, Any]:
    data = {
        "id": b.id,
        "receipt_number": b.receipt_number,
        "origin_depot_id": b.origin_depot_id,
        "destination_depot_id": b.destination_depot_id,
        "current_location_depot_id": b.current_location_depot_id,
        "payment_method": b.payment_method,
        "delivery_type": b.delivery_type,
        "delivery_charges": b.delivery_charges,
        "sender_name": b.sender_name,
        "sender_phone": b.sender_phone,
        "subtotal": b.subtotal,
        "total_amount": b.total_amount,
        "status": b.status,
        "trip_id": b.trip_id,
        "custom_instructions": b.custom_instructions,
        "created_at": _iso(b.created_at),
        "delivered_at": _iso(b.delivered_at),
        "to_pay_collected_method": b.to_pay_collected_method,
        "to_pay_collected_at": _iso(b.to_pay_collected_at),
    }
    if with_receivers:
        data["receivers"] = [
            {
                "id": r.id,
                "name": r.receiver_name,
                "phone": r.receiver_phone,
                "address": r.delivery_address,
                "order": r.receiver_order,
                "packages": [
                    {
                        "id": p.id,
                        "package_id": p.package_id,
                        "package_size": p.package_size,
                        "quantity": p.quantity,
                        "price_per_unit": p.price_per_unit,
                        "total_price": p.total_price,
                        "description": p.description,
                    }
                    for p in r.packages
                ],
            }
            for r in b.receivers
        ]
    return data


def trip_payload(t: Trip) -> Dict[str, Any]:
    return {
        "id": t.id,
        "trip_number": t.trip_number,
        "trip_type": t.trip_type,
        "driver_name": t.driver_name,
        "driver_phone": t.driver_phone,
        "vehicle_number": t.vehicle_number,
        "trip_cost": t.trip_cost,
        "origin_depot_id": t.origin_depot_id,
        "destination_depot_id": t.destination_depot_id,
        "status": t.status,
        "departure_time": _iso(t.departure_time),
        "expected_delivery_date": _iso(t.expected_delivery_date),
        "completed_at": _iso(t.completed_at),
    }


def payment_payload(p: AdvancePayment) -> Dict[str, Any]:
    return {
        "id": p.id,
        "receipt_number": p.receipt_number,
        "customer_name": p.customer_name,
        "customer_phone": p.customer_phone,
        "amount": p.amount,
        "payment_method": p.payment_method,
        "notes": p.notes,
        "payment_date": _iso(p.payment_date),
    }
