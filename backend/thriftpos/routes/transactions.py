# Overview: Flask API routes for sale transactions; parses input and returns JSON responses.

# backend/thriftpos/routes/transactions.py
"""
Transaction API Routes

WHY: Expose the sale engine to the POS terminals.

DESIGN:
- Create a completed sale in one call (items + payments)
- Read a sale with items, payments and names
- List sales with filters and pagination
- Void a completed sale (restores stock)

Domain failures come back as {"error": {"code", "message", "details"}}
with the error's status code.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PosError
from ..services import transaction_service
from ..decorators import require_user


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _error_response(e: PosError):
    return jsonify({"error": e.to_dict()}), e.status_code


@transactions_bp.post("")
@require_user
def create_transaction_route():
    """
    Ring up a sale.

    Request body:
    {
        "terminal_id": 1,
        "customer_id": 5,  (optional)
        "items": [{"product_id": 1, "quantity": 2, "unit_price": 10.99, "discount_amount": 0}],
        "payments": [{"payment_method": "cash", "amount": 23.74,
                      "payment_details": {"cash_received": 30.00}}]
    }

    Returns:
        201: Completed transaction with items and payments
        4xx: Domain error
        500: Server error
    """
    try:
        data = request.get_json(silent=True) or {}
        transaction = transaction_service.create_transaction(g.current_user.id, data)
        return jsonify({"transaction": transaction.to_dict(include_details=True)}), 201

    except PosError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("")
@require_user
def list_transactions_route():
    """
    List transactions.

    Query params:
    - status, terminal_id, cashier_id, customer_id
    - start_date, end_date: ISO-8601 (bare dates include the whole day)
    - search: transaction number fragment
    - sort_by: transaction_date | total_amount | transaction_number
    - sort_order: asc | desc
    - page, limit
    """
    try:
        result = transaction_service.get_transactions(
            status=request.args.get("status"),
            terminal_id=request.args.get("terminal_id", type=int),
            cashier_id=request.args.get("cashier_id", type=int),
            customer_id=request.args.get("customer_id", type=int),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            search=request.args.get("search"),
            sort_by=request.args.get("sort_by", "transaction_date"),
            sort_order=request.args.get("sort_order", "desc"),
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", transaction_service.DEFAULT_PAGE_LIMIT, type=int),
        )
        return jsonify({
            "transactions": [t.to_dict(include_details=False) for t in result["transactions"]],
            "pagination": result["pagination"],
        })

    except PosError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/<int:transaction_id>")
@require_user
def get_transaction_route(transaction_id: int):
    try:
        transaction = transaction_service.get_transaction_by_id(transaction_id)
        return jsonify({"transaction": transaction.to_dict(include_details=True)})

    except PosError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.post("/<int:transaction_id>/void")
@require_user
def void_transaction_route(transaction_id: int):
    """
    Void a completed transaction.

    Request body:
    {
        "reason": "Customer changed mind"  (optional)
    }

    Returns:
        200: Voided transaction
        404: Transaction not found
        409: Transaction is not completed (including already voided)
    """
    try:
        data = request.get_json(silent=True) or {}
        transaction = transaction_service.void_transaction(
            transaction_id,
            g.current_user.id,
            reason=data.get("reason"),
        )
        return jsonify({"transaction": transaction.to_dict(include_details=True)})

    except PosError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to void transaction")
        return jsonify({"error": "Internal server error"}), 500
