"""
Transaction engine tests: totals, stock, rollback, voids, listing.
"""

from decimal import Decimal

import pytest

from thriftpos.errors import (
    CustomerNotFound,
    EmptyTransaction,
    InsufficientStock,
    InvalidAmount,
    InvalidQuantity,
    InvalidVoidState,
    PaymentMismatch,
    ProductNotFound,
    TerminalNotFound,
    TransactionNotFound,
)
from thriftpos.models import AuditEvent, Payment, Product, Transaction, TransactionItem
from thriftpos.services import transaction_service
from thriftpos.services.audit_service import list_audit_events


def cash_sale(terminal, product, quantity, amount, cash_received, **extra):
    return {
        "terminal_id": terminal.id,
        "items": [{"product_id": product.id, "quantity": quantity}],
        "payments": [{
            "payment_method": "cash",
            "amount": amount,
            "payment_details": {"cash_received": cash_received},
        }],
        **extra,
    }


class TestCreateTransaction:
    def test_cash_sale_totals_and_change(self, db_session, cashier, terminal, lamp):
        txn = transaction_service.create_transaction(
            cashier.id, cash_sale(terminal, lamp, 2, "23.74", "30.00")
        )

        assert txn.status == "completed"
        assert txn.subtotal == Decimal("21.98")
        assert txn.tax_amount == Decimal("1.76")
        assert txn.total_amount == Decimal("23.74")
        assert txn.completed_at is not None

        payment = txn.payments[0]
        assert payment.status == "completed"
        assert payment.details.cash_received == Decimal("30.00")
        assert payment.details.cash_change == Decimal("6.26")

    def test_total_is_subtotal_plus_tax_minus_discount(self, db_session, cashier, terminal, lamp):
        data = cash_sale(terminal, lamp, 2, "22.66", "25.00")
        data["items"][0]["discount_amount"] = "1.00"

        txn = transaction_service.create_transaction(cashier.id, data)

        # (21.98 - 1.00) * 8% = 1.6784 -> 1.68
        assert txn.discount_amount == Decimal("1.00")
        assert txn.tax_amount == Decimal("1.68")
        assert txn.total_amount == txn.subtotal + txn.tax_amount - txn.discount_amount
        assert txn.items[0].line_total == Decimal("22.66")

    def test_stock_is_decremented(self, db_session, cashier, terminal, lamp):
        transaction_service.create_transaction(cashier.id, cash_sale(terminal, lamp, 2, "23.74", "23.74"))

        assert db_session.get(Product, lamp.id).quantity_in_stock == 3

    def test_transaction_numbers_are_sequenced_per_terminal(self, db_session, cashier, terminal, coat):
        first = transaction_service.create_transaction(cashier.id, cash_sale(terminal, coat, 1, "50.00", "50.00"))
        second = transaction_service.create_transaction(cashier.id, cash_sale(terminal, coat, 1, "50.00", "50.00"))

        assert first.transaction_number == "T001-000001"
        assert second.transaction_number == "T001-000002"

    def test_product_snapshot_survives_catalog_edits(self, db_session, cashier, terminal, lamp):
        txn = transaction_service.create_transaction(cashier.id, cash_sale(terminal, lamp, 1, "11.87", "20.00"))

        lamp.name = "Renamed Lamp"
        lamp.base_price = Decimal("99.00")
        db_session.commit()

        item = db_session.get(TransactionItem, txn.items[0].id)
        assert item.product_snapshot["name"] == "Brass Table Lamp"
        assert item.product_snapshot["sku"] == "LAMP-001"
        assert item.product_snapshot["base_price"] == "10.99"
        assert item.unit_price == Decimal("10.99")

    def test_unit_price_override(self, db_session, cashier, terminal, coat):
        data = cash_sale(terminal, coat, 1, "35.00", "35.00")
        data["items"][0]["unit_price"] = "35.00"

        txn = transaction_service.create_transaction(cashier.id, data)

        assert txn.total_amount == Decimal("35.00")
        assert txn.items[0].unit_price == Decimal("35.00")

    def test_joined_view_includes_names(self, db_session, cashier, terminal, coat, customer):
        txn = transaction_service.create_transaction(
            cashier.id,
            cash_sale(terminal, coat, 1, "50.00", "50.00", customer_id=customer.id),
        )

        data = txn.to_dict(include_details=True)
        assert data["cashier_name"] == "cashier1"
        assert data["customer_name"] == "Dana Reyes"
        assert data["terminal_name"] == "Front Counter"
        assert len(data["items"]) == 1
        assert data["payments"][0]["details"]["cash_change"] == 0.0

    def test_completion_is_audited(self, db_session, cashier, terminal, coat):
        txn = transaction_service.create_transaction(cashier.id, cash_sale(terminal, coat, 1, "50.00", "50.00"))

        events = list_audit_events(entity_type="transaction", entity_id=txn.id)
        assert [e.action for e in events] == ["transaction.completed"]
        assert events[0].terminal_id == terminal.id


class TestCreateTransactionFailures:
    def test_empty_items_rejected_first(self, db_session, cashier):
        # No terminal either: the empty check must win
        with pytest.raises(EmptyTransaction):
            transaction_service.create_transaction(cashier.id, {"terminal_id": 999, "items": [], "payments": []})

    def test_unknown_terminal(self, db_session, cashier, lamp):
        data = {
            "terminal_id": 999,
            "items": [{"product_id": lamp.id, "quantity": 1}],
            "payments": [{"payment_method": "cash", "amount": "11.87", "payment_details": {"cash_received": 20}}],
        }
        with pytest.raises(TerminalNotFound):
            transaction_service.create_transaction(cashier.id, data)

    def test_inactive_terminal(self, db_session, cashier, terminal, lamp):
        terminal.is_active = False
        db_session.commit()

        with pytest.raises(TerminalNotFound):
            transaction_service.create_transaction(cashier.id, cash_sale(terminal, lamp, 1, "11.87", "20"))

    def test_unknown_customer(self, db_session, cashier, terminal, lamp):
        with pytest.raises(CustomerNotFound):
            transaction_service.create_transaction(
                cashier.id, cash_sale(terminal, lamp, 1, "11.87", "20", customer_id=12345)
            )

    def test_missing_product(self, db_session, cashier, terminal, lamp):
        data = cash_sale(terminal, lamp, 1, "11.87", "20")
        data["items"].append({"product_id": 999, "quantity": 1})

        with pytest.raises(ProductNotFound) as exc:
            transaction_service.create_transaction(cashier.id, data)

        assert exc.value.details["index"] == 1
        assert db_session.query(Transaction).count() == 0

    def test_inactive_product(self, db_session, cashier, terminal, lamp):
        lamp.is_active = False
        db_session.commit()

        with pytest.raises(ProductNotFound):
            transaction_service.create_transaction(cashier.id, cash_sale(terminal, lamp, 1, "11.87", "20"))

    def test_oversell_leaves_nothing_behind(self, db_session, cashier, terminal, lamp):
        with pytest.raises(InsufficientStock):
            transaction_service.create_transaction(cashier.id, cash_sale(terminal, lamp, 100, "1186.92", "2000"))

        db_session.expire_all()
        assert db_session.get(Product, lamp.id).quantity_in_stock == 5
        assert db_session.query(Transaction).count() == 0
        assert db_session.query(TransactionItem).count() == 0
        assert db_session.query(Payment).count() == 0

    def test_same_product_on_two_lines_counts_cumulatively(self, db_session, cashier, terminal, lamp):
        data = cash_sale(terminal, lamp, 3, "35.61", "40")
        data["items"].append({"product_id": lamp.id, "quantity": 3})

        with pytest.raises(InsufficientStock):
            transaction_service.create_transaction(cashier.id, data)

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "2", True])
    def test_invalid_quantity(self, db_session, cashier, terminal, lamp, quantity):
        with pytest.raises(InvalidQuantity):
            transaction_service.create_transaction(cashier.id, cash_sale(terminal, lamp, quantity, "11.87", "20"))

    def test_discount_larger_than_line(self, db_session, cashier, terminal, coat):
        data = cash_sale(terminal, coat, 1, "1.00", "1.00")
        data["items"][0]["discount_amount"] = "60.00"

        with pytest.raises(InvalidAmount):
            transaction_service.create_transaction(cashier.id, data)

    def test_payment_mismatch_persists_nothing(self, db_session, cashier, terminal, lamp):
        with pytest.raises(PaymentMismatch):
            transaction_service.create_transaction(cashier.id, cash_sale(terminal, lamp, 2, "20.00", "30.00"))

        db_session.expire_all()
        assert db_session.query(Transaction).count() == 0
        assert db_session.get(Product, lamp.id).quantity_in_stock == 5

    def test_failed_sale_does_not_burn_a_number(self, db_session, cashier, terminal, coat):
        with pytest.raises(PaymentMismatch):
            transaction_service.create_transaction(cashier.id, cash_sale(terminal, coat, 1, "10.00", "10.00"))

        txn = transaction_service.create_transaction(cashier.id, cash_sale(terminal, coat, 1, "50.00", "50.00"))
        assert txn.transaction_number == "T001-000001"

    def test_no_audit_event_on_failure(self, db_session, cashier, terminal, lamp):
        with pytest.raises(InsufficientStock):
            transaction_service.create_transaction(cashier.id, cash_sale(terminal, lamp, 6, "71.22", "80"))

        assert db_session.query(AuditEvent).count() == 0


class TestGetTransactions:
    def test_get_by_id_not_found(self, db_session):
        with pytest.raises(TransactionNotFound):
            transaction_service.get_transaction_by_id(4242)

    def test_filters_and_pagination(self, db_session, cashier, terminal, coat, lamp):
        for _ in range(3):
            transaction_service.create_transaction(cashier.id, cash_sale(terminal, coat, 1, "50.00", "50.00"))
        sale = transaction_service.create_transaction(cashier.id, cash_sale(terminal, lamp, 1, "11.87", "20"))
        transaction_service.void_transaction(sale.id, cashier.id, reason="test")

        result = transaction_service.get_transactions(status="completed", page=1, limit=2)
        assert result["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}
        assert len(result["transactions"]) == 2

        voided = transaction_service.get_transactions(status="voided")
        assert [t.id for t in voided["transactions"]] == [sale.id]

    def test_search_by_number(self, db_session, cashier, terminal, coat):
        transaction_service.create_transaction(cashier.id, cash_sale(terminal, coat, 1, "50.00", "50.00"))
        second = transaction_service.create_transaction(cashier.id, cash_sale(terminal, coat, 1, "50.00", "50.00"))

        result = transaction_service.get_transactions(search="000002")
        assert [t.id for t in result["transactions"]] == [second.id]

    def test_sort_by_total_ascending(self, db_session, cashier, terminal, coat, lamp):
        transaction_service.create_transaction(cashier.id, cash_sale(terminal, coat, 1, "50.00", "50.00"))
        transaction_service.create_transaction(cashier.id, cash_sale(terminal, lamp, 1, "11.87", "20"))

        result = transaction_service.get_transactions(sort_by="total_amount", sort_order="asc")
        totals = [t.total_amount for t in result["transactions"]]
        assert totals == [Decimal("11.87"), Decimal("50.00")]

    def test_limit_is_clamped(self, db_session, app):
        result = transaction_service.get_transactions(limit=10_000)
        assert result["pagination"]["limit"] == app.config["TRANSACTION_PAGE_LIMIT_MAX"]

    def test_date_range(self, db_session, cashier, terminal, coat):
        transaction_service.create_transaction(cashier.id, cash_sale(terminal, coat, 1, "50.00", "50.00"))

        assert transaction_service.get_transactions(start_date="2000-01-01")["pagination"]["total"] == 1
        assert transaction_service.get_transactions(end_date="2000-01-01")["pagination"]["total"] == 0


class TestVoidTransaction:
    def test_void_restores_stock(self, db_session, cashier, manager, terminal, coat):
        txn = transaction_service.create_transaction(cashier.id, {
            "terminal_id": terminal.id,
            "items": [{"product_id": coat.id, "quantity": 2}],
            "payments": [{"payment_method": "cash", "amount": "100.00", "payment_details": {"cash_received": 100}}],
        })
        db_session.expire_all()
        assert db_session.get(Product, coat.id).quantity_in_stock == 6

        voided = transaction_service.void_transaction(txn.id, manager.id, reason="Customer changed mind")

        assert voided.status == "voided"
        assert voided.voided_by == manager.id
        assert voided.void_reason == "Customer changed mind"
        assert voided.voided_at is not None
        db_session.expire_all()
        assert db_session.get(Product, coat.id).quantity_in_stock == 8

    def test_void_from_stock_eight_to_ten(self, db_session, cashier, terminal, coat):
        coat.quantity_in_stock = 10
        db_session.commit()
        txn = transaction_service.create_transaction(cashier.id, {
            "terminal_id": terminal.id,
            "items": [{"product_id": coat.id, "quantity": 2}],
            "payments": [{"payment_method": "cash", "amount": "100.00", "payment_details": {"cash_received": 100}}],
        })
        db_session.expire_all()
        assert db_session.get(Product, coat.id).quantity_in_stock == 8

        transaction_service.void_transaction(txn.id, cashier.id)

        db_session.expire_all()
        assert db_session.get(Product, coat.id).quantity_in_stock == 10

    def test_void_twice_fails_and_changes_nothing(self, db_session, cashier, terminal, coat):
        txn = transaction_service.create_transaction(cashier.id, cash_sale(terminal, coat, 2, "100.00", "100.00"))
        transaction_service.void_transaction(txn.id, cashier.id)

        with pytest.raises(InvalidVoidState):
            transaction_service.void_transaction(txn.id, cashier.id)

        db_session.expire_all()
        assert db_session.get(Product, coat.id).quantity_in_stock == 8

    def test_void_keeps_items_and_payments(self, db_session, cashier, terminal, coat):
        txn = transaction_service.create_transaction(cashier.id, cash_sale(terminal, coat, 1, "50.00", "50.00"))

        voided = transaction_service.void_transaction(txn.id, cashier.id)

        assert len(voided.items) == 1
        assert len(voided.payments) == 1
        assert voided.payments[0].status == "completed"

    def test_void_unknown_transaction(self, db_session, cashier):
        with pytest.raises(TransactionNotFound):
            transaction_service.void_transaction(999, cashier.id)

    def test_void_with_deleted_product_fails_atomically(self, db_session, cashier, terminal, coat, lamp):
        txn = transaction_service.create_transaction(cashier.id, {
            "terminal_id": terminal.id,
            "items": [
                {"product_id": coat.id, "quantity": 1},
                {"product_id": lamp.id, "quantity": 1},
            ],
            "payments": [{"payment_method": "cash", "amount": "61.87", "payment_details": {"cash_received": 70}}],
        })
        # Simulate a product hard-deleted after the sale
        db_session.query(TransactionItem).filter_by(product_id=lamp.id).update({"product_id": 9999})
        db_session.commit()

        with pytest.raises(ProductNotFound):
            transaction_service.void_transaction(txn.id, cashier.id)

        db_session.expire_all()
        assert db_session.get(Transaction, txn.id).status == "completed"
        assert db_session.get(Product, coat.id).quantity_in_stock == 7

    def test_void_is_audited(self, db_session, cashier, terminal, coat):
        txn = transaction_service.create_transaction(cashier.id, cash_sale(terminal, coat, 1, "50.00", "50.00"))
        transaction_service.void_transaction(txn.id, cashier.id, reason="Mistake")

        events = list_audit_events(entity_type="transaction", entity_id=txn.id)
        assert [e.action for e in events] == ["transaction.completed", "transaction.voided"]
        assert events[1].note == "Mistake"
