from flask import jsonify, request

from courier.payments import record_advance_payment
from courier.routes.api.serializers import payment_payload
from . import api_bp


@api_bp.route("/advance-payments", methods=["POST"])
def add_advance_payment():
    payload = request.get_json(silent=True) or {}
    payment = record_advance_payment(
        payload.get("customer_name"),
        payload.get("customer_phone"),
        payload.get("amount"),
        payment_method=payload.get("payment_method") or "cash",
        notes=payload.get("notes"),
    )
    return jsonify({"success": True, "payment": payment_payload(payment)}), 201
