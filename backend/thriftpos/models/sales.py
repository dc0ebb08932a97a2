from __future__ import annotations

from ..extensions import db
from ..money import money_to_json
from thriftpos.time_utils import to_utc_z


TRANSACTION_STATUS_DRAFT = "draft"
TRANSACTION_STATUS_COMPLETED = "completed"
TRANSACTION_STATUS_VOIDED = "voided"
TRANSACTION_STATUS_REFUNDED = "refunded"
TRANSACTION_STATUS_PARTIALLY_REFUNDED = "partially_refunded"

TRANSACTION_STATUSES = (
    TRANSACTION_STATUS_DRAFT,
    TRANSACTION_STATUS_COMPLETED,
    TRANSACTION_STATUS_VOIDED,
    TRANSACTION_STATUS_REFUNDED,
    TRANSACTION_STATUS_PARTIALLY_REFUNDED,
)

PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded", "partially_refunded")


class Transaction(db.Model):
    """
    Sale transaction header.

    LIFECYCLE: draft -> completed -> voided (terminal). Rows are never
    deleted; a void is an audit-preserving status change.

    INVARIANT: total_amount == subtotal + tax_amount - discount_amount
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_status_date", "status", "transaction_date"),
        db.CheckConstraint(
            "status IN ('draft', 'completed', 'voided', 'refunded', 'partially_refunded')",
            name="ck_transactions_status",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "T001-000123"), sequenced per terminal
    transaction_number = db.Column(db.String(50), nullable=False, unique=True)

    terminal_id = db.Column(db.Integer, db.ForeignKey("terminals.id"), nullable=False, index=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    subtotal = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    status = db.Column(db.String(20), nullable=False, default=TRANSACTION_STATUS_DRAFT, index=True)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Void audit trail
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    void_reason = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    terminal = db.relationship("Terminal")
    cashier = db.relationship("User", foreign_keys=[cashier_id])
    voided_by_user = db.relationship("User", foreign_keys=[voided_by])
    customer = db.relationship("Customer")
    items = db.relationship(
        "TransactionItem",
        back_populates="transaction",
        order_by="TransactionItem.id",
        lazy=True,
    )
    payments = db.relationship(
        "Payment",
        back_populates="transaction",
        order_by="Payment.sequence",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_details: bool = False) -> dict:
        data = {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "terminal_id": self.terminal_id,
            "cashier_id": self.cashier_id,
            "customer_id": self.customer_id,
            "subtotal": money_to_json(self.subtotal),
            "tax_amount": money_to_json(self.tax_amount),
            "discount_amount": money_to_json(self.discount_amount),
            "total_amount": money_to_json(self.total_amount),
            "status": self.status,
            "transaction_date": to_utc_z(self.transaction_date),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "voided_by": self.voided_by,
            "void_reason": self.void_reason,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_details:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
            data["cashier_name"] = self.cashier.username if self.cashier else None
            data["customer_name"] = self.customer.full_name if self.customer else None
            data["terminal_name"] = self.terminal.terminal_name if self.terminal else None
        return data


class TransactionItem(db.Model):
    """
    One line of a sale.

    product_snapshot freezes sku/name/price/tax rate at sale time so
    historical receipts never change when the catalog is edited.
    """
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_transaction_items_qty_pos"),
        db.CheckConstraint("unit_price >= 0", name="ck_transaction_items_price_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_snapshot = db.Column(db.JSON, nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    line_total = db.Column(db.Numeric(10, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    transaction = db.relationship("Transaction", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "product_snapshot": self.product_snapshot,
            "quantity": self.quantity,
            "unit_price": money_to_json(self.unit_price),
            "discount_amount": money_to_json(self.discount_amount),
            "tax_amount": money_to_json(self.tax_amount),
            "line_total": money_to_json(self.line_total),
            "created_at": to_utc_z(self.created_at),
        }


class Payment(db.Model):
    """
    Payment applied to a transaction.

    WHY: One sale can be split across tenders (cash + gift card, etc.).
    Amounts across a transaction's payments reconcile to total_amount
    within $0.01.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_payments_amount_pos"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)

    # Position in the original request (payments keep input order)
    sequence = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False, index=True)
    amount = db.Column(db.Numeric(10, 2), nullable=False)

    # Card processor references
    payment_processor = db.Column(db.String(50), nullable=True)
    processor_transaction_id = db.Column(db.String(255), nullable=True, index=True)
    processor_payment_id = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(20), nullable=False, default="pending", index=True)

    payment_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    gift_card_id = db.Column(db.Integer, db.ForeignKey("gift_cards.id"), nullable=True, index=True)
    store_credit_account_id = db.Column(db.Integer, db.ForeignKey("store_credit_accounts.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    transaction = db.relationship("Transaction", back_populates="payments")
    details = db.relationship("PaymentDetail", uselist=False, back_populates="payment", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "payment_method": self.payment_method,
            "amount": money_to_json(self.amount),
            "status": self.status,
            "payment_processor": self.payment_processor,
            "processor_transaction_id": self.processor_transaction_id,
            "processor_payment_id": self.processor_payment_id,
            "gift_card_id": self.gift_card_id,
            "store_credit_account_id": self.store_credit_account_id,
            "payment_date": to_utc_z(self.payment_date),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "details": self.details.to_dict() if self.details else None,
        }


class PaymentDetail(db.Model):
    """Method-specific payload for a payment (change, card, check, balances)."""
    __tablename__ = "payment_details"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=False, unique=True)

    # Cash
    cash_received = db.Column(db.Numeric(10, 2), nullable=True)
    cash_change = db.Column(db.Numeric(10, 2), nullable=True)

    # Card
    card_type = db.Column(db.String(32), nullable=True)
    card_last_four = db.Column(db.String(4), nullable=True)
    authorization_code = db.Column(db.String(64), nullable=True)

    # Check
    check_number = db.Column(db.String(64), nullable=True)
    bank_name = db.Column(db.String(128), nullable=True)

    # Gift card / store credit balances around this payment
    previous_balance = db.Column(db.Numeric(10, 2), nullable=True)
    new_balance = db.Column(db.Numeric(10, 2), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    payment = db.relationship("Payment", back_populates="details")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payment_id": self.payment_id,
            "cash_received": money_to_json(self.cash_received),
            "cash_change": money_to_json(self.cash_change),
            "card_type": self.card_type,
            "card_last_four": self.card_last_four,
            "authorization_code": self.authorization_code,
            "check_number": self.check_number,
            "bank_name": self.bank_name,
            "previous_balance": money_to_json(self.previous_balance),
            "new_balance": money_to_json(self.new_balance),
            "created_at": to_utc_z(self.created_at),
        }
