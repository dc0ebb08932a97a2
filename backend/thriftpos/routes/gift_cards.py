# Overview: Flask API routes for gift cards; parses input and returns JSON responses.

# backend/thriftpos/routes/gift_cards.py
"""
Gift Card API Routes

WHY: Issue, look up, adjust and retire stored-value cards. Redemption
itself happens through the sale engine (gift_card payment method).
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PosError, InputValidationError
from ..services import gift_card_service
from ..decorators import require_user
from thriftpos.time_utils import parse_iso_datetime


gift_cards_bp = Blueprint("gift_cards", __name__, url_prefix="/api/gift-cards")


def _error_response(e: PosError):
    return jsonify({"error": e.to_dict()}), e.status_code


def _parse_expires_at(value):
    if value in (None, ""):
        return None
    try:
        return parse_iso_datetime(value)
    except (TypeError, ValueError):
        raise InputValidationError("Invalid expires_at", details={"expires_at": value})


# =============================================================================
# ISSUE / LIST
# =============================================================================

@gift_cards_bp.post("")
@require_user
def create_gift_card_route():
    """
    Issue a gift card.

    Request body:
    {
        "initial_balance": 50.00,
        "recipient_name": "Jane",  (optional)
        "recipient_email": "jane@example.com",  (optional)
        "recipient_phone": "555-0100",  (optional)
        "expires_at": "2027-12-31T00:00:00Z",  (optional)
        "purchased_by_customer_id": 5  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        card = gift_card_service.create_gift_card(
            initial_balance=data.get("initial_balance"),
            recipient_name=data.get("recipient_name"),
            recipient_email=data.get("recipient_email"),
            recipient_phone=data.get("recipient_phone"),
            expires_at=_parse_expires_at(data.get("expires_at")),
            purchased_by_customer_id=data.get("purchased_by_customer_id"),
            user_id=g.current_user.id,
        )
        return jsonify({"gift_card": card.to_dict()}), 201

    except PosError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create gift card")
        return jsonify({"error": "Internal server error"}), 500


@gift_cards_bp.get("")
@require_user
def list_gift_cards_route():
    """
    Query params:
    - is_active: true | false
    - purchased_by_customer_id
    - min_balance, max_balance
    - search: card number or recipient name fragment
    - page, limit
    """
    try:
        is_active_arg = request.args.get("is_active")
        is_active = None if is_active_arg is None else is_active_arg.lower() == "true"

        result = gift_card_service.list_gift_cards(
            is_active=is_active,
            purchased_by_customer_id=request.args.get("purchased_by_customer_id", type=int),
            min_balance=request.args.get("min_balance"),
            max_balance=request.args.get("max_balance"),
            search=request.args.get("search"),
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 20, type=int),
        )
        return jsonify({
            "gift_cards": [c.to_dict() for c in result["gift_cards"]],
            "pagination": {
                "page": result["page"],
                "limit": result["limit"],
                "total": result["total"],
            },
        })

    except PosError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list gift cards")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LOOKUPS
# =============================================================================

@gift_cards_bp.get("/balance/<string:gift_card_number>")
@require_user
def check_balance_route(gift_card_number: str):
    try:
        return jsonify(gift_card_service.check_balance(gift_card_number))

    except PosError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to check gift card balance")
        return jsonify({"error": "Internal server error"}), 500


@gift_cards_bp.get("/<int:gift_card_id>")
@require_user
def get_gift_card_route(gift_card_id: int):
    try:
        card = gift_card_service.get_gift_card(gift_card_id)
        return jsonify({"gift_card": card.to_dict()})

    except PosError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get gift card")
        return jsonify({"error": "Internal server error"}), 500


@gift_cards_bp.get("/<int:gift_card_id>/history")
@require_user
def gift_card_history_route(gift_card_id: int):
    try:
        entries = gift_card_service.get_gift_card_history(gift_card_id)
        return jsonify({"history": [e.to_dict() for e in entries]})

    except PosError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get gift card history")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CHANGES
# =============================================================================

@gift_cards_bp.patch("/<int:gift_card_id>")
@require_user
def update_gift_card_route(gift_card_id: int):
    """
    Update recipient info, expiry or the active flag.

    Balance cannot be changed here; use /adjust.
    """
    try:
        data = dict(request.get_json(silent=True) or {})
        if "expires_at" in data:
            data["expires_at"] = _parse_expires_at(data["expires_at"])

        card = gift_card_service.update_gift_card(gift_card_id, data)
        return jsonify({"gift_card": card.to_dict()})

    except PosError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update gift card")
        return jsonify({"error": "Internal server error"}), 500


@gift_cards_bp.post("/<int:gift_card_id>/adjust")
@require_user
def adjust_gift_card_route(gift_card_id: int):
    """
    Signed balance adjustment.

    Request body:
    {
        "amount": -5.00,
        "reason": "Correction"
    }

    Returns:
        200: Updated card
        404: Card not found
        409: Adjustment would make the balance negative
    """
    try:
        data = request.get_json(silent=True) or {}
        card = gift_card_service.adjust_balance(
            gift_card_id=gift_card_id,
            amount=data.get("amount"),
            reason=data.get("reason"),
            user_id=g.current_user.id,
        )
        return jsonify({"gift_card": card.to_dict()})

    except PosError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust gift card")
        return jsonify({"error": "Internal server error"}), 500


@gift_cards_bp.post("/<int:gift_card_id>/deactivate")
@require_user
def deactivate_gift_card_route(gift_card_id: int):
    try:
        card = gift_card_service.deactivate_gift_card(gift_card_id, user_id=g.current_user.id)
        return jsonify({"gift_card": card.to_dict()})

    except PosError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate gift card")
        return jsonify({"error": "Internal server error"}), 500
