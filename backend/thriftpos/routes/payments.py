# Overview: Flask API routes for payment processing helpers; parses input and returns JSON responses.

# backend/thriftpos/routes/payments.py
"""
Payment Processing API Routes

Payments themselves are taken as part of POST /api/transactions. These
endpoints let a terminal discover the configured processors and check a
card number before tokenizing it.
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import PosError
from ..services import payment_processor
from ..services.payment_service import VALID_PAYMENT_METHODS
from ..decorators import require_user


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.get("/processors")
@require_user
def list_processors_route():
    return jsonify({
        "processors": payment_processor.get_available_processors(),
        "default": current_app.config.get("PAYMENT_PROCESSOR", "mock"),
        "payment_methods": list(VALID_PAYMENT_METHODS),
    })


@payments_bp.post("/validate-card")
@require_user
def validate_card_route():
    """
    Luhn-check a card number and detect its brand.

    Request body:
    {
        "card_number": "4111 1111 1111 1111",
        "processor": "mock"  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        card_number = data.get("card_number")
        if not card_number:
            return jsonify({"error": "card_number is required"}), 400

        processor = payment_processor.get_processor(data.get("processor"))
        cleaned = "".join(ch for ch in str(card_number) if ch.isdigit())
        return jsonify({
            "valid": processor.validate_card(str(card_number)),
            "brand": processor.get_card_brand(str(card_number)),
            "last_four": cleaned[-4:] if len(cleaned) >= 4 else None,
        })

    except PosError as e:
        return jsonify({"error": e.to_dict()}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to validate card")
        return jsonify({"error": "Internal server error"}), 500
