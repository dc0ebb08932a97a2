# Overview: Service-layer operations for sale transactions; encapsulates business logic and database work.

"""
Transaction Engine

WHY: A sale touches the transaction header, its line items, its payments,
product stock and possibly gift card / store credit balances. All of that
must land together or not at all.

DESIGN PRINCIPLES:
- One public operation = one datastore transaction (see atomic())
- Line items are processed in input order so errors point at a stable line
- Product rows are locked before their stock is checked or changed
- Line items carry an immutable product snapshot
- Void is a status change plus stock restoration, never a delete
- Nothing here retries; failures propagate to the caller as PosError
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy.orm import joinedload, selectinload

from ..extensions import db
from ..errors import (
    CustomerNotFound,
    EmptyTransaction,
    InputValidationError,
    InsufficientStock,
    InvalidAmount,
    InvalidQuantity,
    InvalidVoidState,
    ProductNotFound,
    TerminalNotFound,
    TransactionNotFound,
)
from ..models import Customer, Payment, Product, Terminal, Transaction, TransactionItem
from ..models.sales import (
    TRANSACTION_STATUS_COMPLETED,
    TRANSACTION_STATUS_DRAFT,
    TRANSACTION_STATUS_VOIDED,
    TRANSACTION_STATUSES,
)
from ..money import ZERO, to_money
from thriftpos.time_utils import utcnow, parse_iso_datetime
from .audit_service import append_audit_event
from .concurrency import atomic, lock_for_update
from .payment_service import apply_payments, new_operation_id, parse_payment_requests, validate_payments
from .sequence_service import next_transaction_number


SORTABLE_COLUMNS = {
    "transaction_date": Transaction.transaction_date,
    "total_amount": Transaction.total_amount,
    "transaction_number": Transaction.transaction_number,
}

DEFAULT_PAGE_LIMIT = 20


# =============================================================================
# REQUEST PARSING
# =============================================================================

def _parse_items(raw_items) -> list[dict]:
    """Shape-check line items before touching the database."""
    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise InputValidationError("Each item must be an object", details={"index": index})

        product_id = raw.get("product_id")
        if not product_id:
            raise InputValidationError("product_id is required", details={"index": index})

        quantity = raw.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidQuantity(
                "Quantity must be a positive integer",
                details={"index": index, "product_id": product_id, "quantity": quantity},
            )

        unit_price = None
        if raw.get("unit_price") is not None:
            try:
                unit_price = to_money(raw["unit_price"])
            except ValueError:
                raise InvalidAmount("unit_price must be a number", details={"index": index})
            if unit_price < ZERO:
                raise InvalidAmount("unit_price cannot be negative", details={"index": index})

        discount = ZERO
        if raw.get("discount_amount") is not None:
            try:
                discount = to_money(raw["discount_amount"])
            except ValueError:
                raise InvalidAmount("discount_amount must be a number", details={"index": index})
            if discount < ZERO:
                raise InvalidAmount("discount_amount cannot be negative", details={"index": index})

        items.append({
            "index": index,
            "product_id": product_id,
            "quantity": quantity,
            "unit_price": unit_price,
            "discount_amount": discount,
        })
    return items


def _product_snapshot(product: Product) -> dict:
    return {
        "sku": product.sku,
        "name": product.name,
        "description": product.description,
        "base_price": str(to_money(product.base_price)),
        "tax_rate": str(product.tax_rate),
    }


def calculate_line(quantity: int, unit_price: Decimal, discount: Decimal, tax_rate) -> dict:
    """
    Price one line.

    tax is computed on the discounted line amount and rounded half-up to
    the cent; line_total = gross - discount + tax.
    """
    gross = to_money(unit_price * quantity)
    net = gross - discount
    tax = to_money(net * Decimal(str(tax_rate or 0)) / Decimal("100"))
    return {
        "gross": gross,
        "discount": discount,
        "tax": tax,
        "line_total": net + tax,
    }


# =============================================================================
# CREATE
# =============================================================================

def create_transaction(cashier_id: int, data: dict) -> Transaction:
    """
    Ring up a completed sale.

    Args:
        cashier_id: User ringing the sale
        data: {terminal_id, customer_id?, items[], payments[]}

    Returns:
        The committed Transaction, re-read with items, payments and names

    Raises:
        EmptyTransaction: no items (checked before anything else)
        TerminalNotFound / ProductNotFound / CustomerNotFound
        InsufficientStock: cumulative quantity for a product exceeds stock
        PaymentMismatch: payments don't reconcile to the total
        Any payment handler error (declines, insufficient balances, ...)
        CardDeclined / PaymentProcessorUnavailable: a card capture failed

    Card holds taken for a sale that fails are voided, and captures
    refunded, before the error propagates.
    """
    data = data or {}
    raw_items = data.get("items") or []
    if not raw_items:
        raise EmptyTransaction("Transaction must have at least one item")

    items = _parse_items(raw_items)
    payment_requests = parse_payment_requests(data.get("payments"))

    terminal_id = data.get("terminal_id")
    customer_id = data.get("customer_id")

    # Card holds live outside the database; undo them if the sale doesn't commit
    batch = None
    try:
        with atomic():
            terminal = db.session.get(Terminal, terminal_id) if terminal_id else None
            if not terminal or not terminal.is_active:
                raise TerminalNotFound("Terminal not found", details={"terminal_id": terminal_id})

            if customer_id is not None:
                customer = db.session.get(Customer, customer_id)
                if not customer or not customer.is_active:
                    raise CustomerNotFound("Customer not found", details={"customer_id": customer_id})

            transaction = Transaction(
                transaction_number=next_transaction_number(terminal),
                terminal_id=terminal.id,
                cashier_id=cashier_id,
                customer_id=customer_id,
                status=TRANSACTION_STATUS_DRAFT,
                transaction_date=utcnow(),
            )
            db.session.add(transaction)
            db.session.flush()

            subtotal = ZERO
            tax_total = ZERO
            discount_total = ZERO
            products: dict[int, Product] = {}
            requested: dict[int, int] = {}

            for item in items:
                product_id = item["product_id"]
                product = products.get(product_id)
                if product is None:
                    product = lock_for_update(
                        db.session.query(Product).filter_by(id=product_id)
                    ).first()
                    if not product or not product.is_active:
                        raise ProductNotFound(
                            f"Product {product_id} not found",
                            details={"index": item["index"], "product_id": product_id},
                        )
                    products[product_id] = product

                # Same product on several lines draws from one stock counter
                requested[product_id] = requested.get(product_id, 0) + item["quantity"]
                if requested[product_id] > product.quantity_in_stock:
                    raise InsufficientStock(
                        f"Insufficient stock for {product.name}",
                        details={
                            "index": item["index"],
                            "product_id": product_id,
                            "requested_quantity": requested[product_id],
                            "quantity_in_stock": product.quantity_in_stock,
                        },
                    )

                unit_price = item["unit_price"] if item["unit_price"] is not None else to_money(product.base_price)
                line = calculate_line(item["quantity"], unit_price, item["discount_amount"], product.tax_rate)
                if line["discount"] > line["gross"]:
                    raise InvalidAmount(
                        "discount_amount cannot exceed the line amount",
                        details={"index": item["index"], "product_id": product_id},
                    )

                db.session.add(TransactionItem(
                    transaction_id=transaction.id,
                    product_id=product.id,
                    product_snapshot=_product_snapshot(product),
                    quantity=item["quantity"],
                    unit_price=unit_price,
                    discount_amount=line["discount"],
                    tax_amount=line["tax"],
                    line_total=line["line_total"],
                ))

                subtotal += line["gross"]
                tax_total += line["tax"]
                discount_total += line["discount"]

            total = subtotal + tax_total - discount_total
            transaction.subtotal = subtotal
            transaction.tax_amount = tax_total
            transaction.discount_amount = discount_total
            transaction.total_amount = total
            db.session.flush()

            validate_payments(payment_requests, total)

            batch = apply_payments(
                payment_requests,
                transaction_id=transaction.id,
                transaction_number=transaction.transaction_number,
                cashier_id=cashier_id,
                operation_id=new_operation_id(),
            )

            for product_id, quantity in requested.items():
                products[product_id].quantity_in_stock -= quantity

            transaction.status = TRANSACTION_STATUS_COMPLETED
            transaction.completed_at = utcnow()

            append_audit_event(
                action="transaction.completed",
                entity_type="transaction",
                entity_id=transaction.id,
                user_id=cashier_id,
                terminal_id=terminal.id,
                payload={
                    "transaction_number": transaction.transaction_number,
                    "total_amount": str(total),
                    "item_count": len(items),
                    "payment_count": len(payment_requests),
                },
            )

            # Last step before commit: nothing else in the sale can fail after money moves
            db.session.flush()
            batch.capture()
    except Exception:
        if batch is not None:
            batch.release()
        raise

    current_app.logger.info(
        "Transaction %s completed (total=%s, items=%d, payments=%d)",
        transaction.transaction_number, total, len(items), len(payment_requests),
    )
    return get_transaction_by_id(transaction.id)


# =============================================================================
# READS
# =============================================================================

def _detail_query():
    return db.session.query(Transaction).options(
        selectinload(Transaction.items),
        selectinload(Transaction.payments).joinedload(Payment.details),
        joinedload(Transaction.cashier),
        joinedload(Transaction.customer),
        joinedload(Transaction.terminal),
    )


def get_transaction_by_id(transaction_id: int) -> Transaction:
    transaction = _detail_query().filter(Transaction.id == transaction_id).first()
    if not transaction:
        raise TransactionNotFound("Transaction not found", details={"transaction_id": transaction_id})
    return transaction


def _parse_date_filter(value, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return parse_iso_datetime(str(value))
    except ValueError:
        raise InputValidationError(f"Invalid {field}", details={field: value})


def _is_bare_date(value) -> bool:
    return isinstance(value, str) and len(value.strip()) == 10


def get_transactions(
    *,
    status: str | None = None,
    terminal_id: int | None = None,
    cashier_id: int | None = None,
    customer_id: int | None = None,
    start_date=None,
    end_date=None,
    search: str | None = None,
    sort_by: str = "transaction_date",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
) -> dict:
    """
    List transactions with filters and offset pagination.

    Returns:
        {"transactions": [Transaction], "pagination": {page, limit, total, total_pages}}
    """
    max_limit = current_app.config.get("TRANSACTION_PAGE_LIMIT_MAX", 100)
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or DEFAULT_PAGE_LIMIT), 1), max_limit)

    query = db.session.query(Transaction).options(
        joinedload(Transaction.cashier),
        joinedload(Transaction.customer),
        joinedload(Transaction.terminal),
    )

    if status:
        if status not in TRANSACTION_STATUSES:
            raise InputValidationError(f"Invalid status: {status}", details={"status": status})
        query = query.filter(Transaction.status == status)
    if terminal_id:
        query = query.filter(Transaction.terminal_id == terminal_id)
    if cashier_id:
        query = query.filter(Transaction.cashier_id == cashier_id)
    if customer_id:
        query = query.filter(Transaction.customer_id == customer_id)

    start = _parse_date_filter(start_date, "start_date")
    end = _parse_date_filter(end_date, "end_date")
    if start:
        query = query.filter(Transaction.transaction_date >= start)
    if end:
        if _is_bare_date(end_date):
            # A bare date as end bound includes the whole day
            query = query.filter(Transaction.transaction_date < end + timedelta(days=1))
        else:
            query = query.filter(Transaction.transaction_date <= end)

    if search:
        query = query.filter(Transaction.transaction_number.ilike(f"%{search}%"))

    column = SORTABLE_COLUMNS.get(sort_by, Transaction.transaction_date)
    ordering = column.asc() if str(sort_order).lower() == "asc" else column.desc()
    query = query.order_by(ordering, Transaction.id.desc())

    total = query.count()
    transactions = query.offset((page - 1) * limit).limit(limit).all()

    return {
        "transactions": transactions,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit,
        },
    }


# =============================================================================
# VOID
# =============================================================================

def void_transaction(transaction_id: int, actor_id: int, reason: str | None = None) -> Transaction:
    """
    completed -> voided, restoring each line's quantity to stock.

    Payments and items are left untouched; refunding tenders is a separate
    workflow.

    Raises:
        TransactionNotFound: unknown id
        InvalidVoidState: status is anything but completed (including voided)
        ProductNotFound: a line's product no longer exists (nothing is changed)
    """
    with atomic():
        transaction = lock_for_update(
            db.session.query(Transaction).filter_by(id=transaction_id)
        ).first()
        if not transaction:
            raise TransactionNotFound("Transaction not found", details={"transaction_id": transaction_id})

        if transaction.status != TRANSACTION_STATUS_COMPLETED:
            raise InvalidVoidState(
                f"Cannot void transaction with status {transaction.status}",
                details={"transaction_id": transaction_id, "status": transaction.status},
            )

        for item in transaction.items:
            product = lock_for_update(
                db.session.query(Product).filter_by(id=item.product_id)
            ).first()
            if not product:
                raise ProductNotFound(
                    f"Product {item.product_id} no longer exists; cannot restore stock",
                    details={"product_id": item.product_id, "transaction_item_id": item.id},
                )
            product.quantity_in_stock += item.quantity

        transaction.status = TRANSACTION_STATUS_VOIDED
        transaction.voided_at = utcnow()
        transaction.voided_by = actor_id
        transaction.void_reason = reason

        append_audit_event(
            action="transaction.voided",
            entity_type="transaction",
            entity_id=transaction.id,
            user_id=actor_id,
            terminal_id=transaction.terminal_id,
            note=reason,
            payload={"transaction_number": transaction.transaction_number},
        )

    current_app.logger.info(
        "Transaction %s voided by user %s", transaction.transaction_number, actor_id
    )
    return get_transaction_by_id(transaction.id)
