from __future__ import annotations

from ..extensions import db
from ..money import money_to_json
from thriftpos.time_utils import to_utc_z


class User(db.Model):
    """
    Staff account referenced as cashier / actor.

    Authentication lives upstream; this table only anchors attribution
    (who rang the sale, who voided it, who adjusted a gift card).
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False, unique=True)
    display_name = db.Column(db.String(128), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "display_name": self.display_name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Terminal(db.Model):
    """
    Physical POS terminal.

    WHY: Transaction numbers are sequenced per terminal, and every sale
    records the device it was rung on.
    """
    __tablename__ = "terminals"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    terminal_number = db.Column(db.Integer, nullable=False, unique=True)
    terminal_name = db.Column(db.String(100), nullable=False, unique=True)
    location = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "terminal_number": self.terminal_number,
            "terminal_name": self.terminal_name,
            "location": self.location,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Customer(db.Model):
    """Optional customer attached to a sale (loyalty, store credit)."""
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    email = db.Column(db.String(255), nullable=True, unique=True)
    phone = db.Column(db.String(20), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product catalog row as seen by the sale engine.

    quantity_in_stock is a plain counter: sales decrement it, voids
    increment it, both inside the sale's datastore transaction.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("quantity_in_stock >= 0", name="ck_products_stock_nonneg"),
        db.CheckConstraint("base_price >= 0", name="ck_products_price_nonneg"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(100), nullable=False, unique=True)
    barcode = db.Column(db.String(100), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    base_price = db.Column(db.Numeric(10, 2), nullable=False)
    # Percentage, e.g. 8.25 for 8.25%
    tax_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    quantity_in_stock = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.quantity_in_stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "base_price": money_to_json(self.base_price),
            "tax_rate": money_to_json(self.tax_rate),
            "quantity_in_stock": self.quantity_in_stock,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StoreCreditAccount(db.Model):
    """
    Customer store-credit balance (issued on returns/donations).

    Balance is only ever decremented by the store-credit payment handler
    inside an enclosing sale transaction.
    """
    __tablename__ = "store_credit_accounts"
    __table_args__ = (
        db.CheckConstraint("balance >= 0", name="ck_store_credit_balance_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    balance = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer", backref=db.backref("store_credit_accounts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "balance": money_to_json(self.balance),
            "is_active": self.is_active,
            "version_id": self.version_id,
        }
