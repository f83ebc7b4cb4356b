# Overview: Pytest coverage for the stock ledger.

"""
Stock Ledger Tests

Coverage:
- Movements update current_stock and record previous/new stock
- Stock never goes negative; a rejected movement writes nothing
- Sign rules per movement type
- Services and untracked products never touch the ledger
- Invoice stock check sums lines per product; all-or-nothing consumption
- Transfers between locations keep the total unchanged
- Ledger verification and low-stock listing
"""

import logging

import pytest

from maroc_billing.models import Product, StockMovement
from maroc_billing.services import errors


def _movements(db_session, product):
    return (
        db_session.query(StockMovement)
        .filter_by(product_id=product.id)
        .order_by(StockMovement.id)
        .all()
    )


class TestRecordMovement:
    """record_movement is the only writer of current_stock."""

    def test_purchase_increases_stock(self, db_session, engine, product_a):
        result = engine.record_stock_movement(product_a.id, "purchase", 5, reason="Réception fournisseur")

        assert result.ok
        movement = result.value
        assert movement.previous_stock == 10
        assert movement.new_stock == 15
        assert movement.quantity == 5
        assert db_session.get(Product, product_a.id).current_stock == 15

    def test_sale_records_previous_and_new_stock(self, db_session, engine, product_a):
        movement = engine.record_stock_movement(product_a.id, "sale", -3).unwrap()

        assert movement.previous_stock == 10
        assert movement.new_stock == 7
        assert db_session.get(Product, product_a.id).current_stock == 7

    def test_sale_decreases_stock(self, db_session, engine, product_a):
        result = engine.record_stock_movement(product_a.id, "sale", -4)

        assert result.ok
        assert db_session.get(Product, product_a.id).current_stock == 6

    def test_sale_beyond_stock_rejected_and_nothing_written(self, db_session, engine, product_a):
        before = len(_movements(db_session, product_a))

        result = engine.record_stock_movement(product_a.id, "sale", -11)

        assert not result.ok
        assert result.error.kind == errors.INSUFFICIENT_STOCK
        assert result.error.details["items"][0]["available"] == 10
        assert result.error.details["items"][0]["requested"] == 11
        assert db_session.get(Product, product_a.id).current_stock == 10
        assert len(_movements(db_session, product_a)) == before

    def test_adjustment_can_go_either_way(self, db_session, engine, product_a):
        assert engine.record_stock_movement(product_a.id, "adjustment", -3).ok
        assert engine.record_stock_movement(product_a.id, "adjustment", 1).ok
        assert db_session.get(Product, product_a.id).current_stock == 8

    def test_adjustment_cannot_make_stock_negative(self, db_session, engine, product_a):
        result = engine.record_stock_movement(product_a.id, "adjustment", -20)
        assert result.error.kind == errors.INSUFFICIENT_STOCK

    @pytest.mark.parametrize("movement_type, quantity", [
        ("purchase", -1),
        ("sale", 3),
        ("return_customer", -2),
        ("return_supplier", 2),
        ("adjustment", 0),
        ("theft", 1),
    ])
    def test_invalid_type_or_sign_rejected(self, db_session, engine, product_a, movement_type, quantity):
        result = engine.record_stock_movement(product_a.id, movement_type, quantity)
        assert result.error.kind == errors.VALIDATION_ERROR

    def test_service_not_stock_managed(self, db_session, engine, service_a):
        result = engine.record_stock_movement(service_a.id, "purchase", 5)

        assert result.error.kind == errors.NOT_STOCK_MANAGED
        assert result.error.details["is_service"] is True
        assert db_session.query(StockMovement).filter_by(product_id=service_a.id).count() == 0

    def test_untracked_product_not_stock_managed(self, db_session, engine, unmanaged_product_a):
        result = engine.record_stock_movement(unmanaged_product_a.id, "purchase", 5)
        assert result.error.kind == errors.NOT_STOCK_MANAGED
        assert result.error.details["is_service"] is False

    def test_movement_defaults_to_product_location(self, db_session, engine, product_a, location_a):
        movement = engine.record_stock_movement(product_a.id, "purchase", 1).unwrap()
        assert movement.location_id == location_a.id

    def test_unknown_location_rejected(self, db_session, engine, product_a):
        result = engine.record_stock_movement(product_a.id, "purchase", 1, location_id=99999)
        assert result.error.kind == errors.NOT_FOUND


class TestInvoiceStockCheck:
    """Pre-flight check and consumption for invoice lines."""

    def test_duplicate_lines_are_summed(self, db_session, engine, product_a):
        """6 + 6 chairs requested across two lines, 10 in stock."""
        check = engine.check_stock([
            {"product_id": product_a.id, "quantity": 6},
            {"product_id": product_a.id, "quantity": 6},
        ]).unwrap()

        assert check.ok is False
        assert len(check.insufficient_items) == 1
        assert check.insufficient_items[0].requested == 12
        assert check.insufficient_items[0].available == 10

    def test_free_text_services_and_untracked_lines_ignored(
        self, db_session, engine, service_a, unmanaged_product_a
    ):
        check = engine.check_stock([
            {"description": "Frais de livraison", "quantity": 1, "unit_price_cents": 5000},
            {"product_id": service_a.id, "quantity": 100},
            {"product_id": unmanaged_product_a.id, "quantity": 100},
        ]).unwrap()

        assert check.ok
        assert check.insufficient_items == []

    def test_all_shortages_reported(self, db_session, engine, product_a, second_product_a):
        check = engine.check_stock([
            {"product_id": product_a.id, "quantity": 11},
            {"product_id": second_product_a.id, "quantity": 4},
        ]).unwrap()

        assert sorted(s.product_id for s in check.insufficient_items) == sorted([product_a.id, second_product_a.id])

    def test_check_is_read_only(self, db_session, engine, product_a):
        assert engine.check_stock([{"product_id": product_a.id, "quantity": 2}]).unwrap().ok
        assert db_session.get(Product, product_a.id).current_stock == 10

    def test_send_is_all_or_nothing(
        self, db_session, engine, client_a, product_a, second_product_a, default_tax_a
    ):
        """One short line blocks every movement of the invoice."""
        invoice = engine.create_invoice(
            client_id=client_a.id,
            items=[
                {"product_id": product_a.id, "quantity": 2},
                {"product_id": second_product_a.id, "quantity": 5},
            ],
        ).unwrap()

        result = engine.transition("invoice", invoice.id, "send")

        assert result.error.kind == errors.INSUFFICIENT_STOCK
        assert [i["product_id"] for i in result.error.details["items"]] == [second_product_a.id]
        assert db_session.get(Product, product_a.id).current_stock == 10
        assert db_session.get(Product, second_product_a.id).current_stock == 3
        assert db_session.query(StockMovement).filter_by(reference_type="invoice").count() == 0


class TestTransfers:

    def test_transfer_moves_stock_between_locations(
        self, db_session, engine, product_a, location_a, second_location_a
    ):
        out_movement, in_movement = engine.transfer_stock(
            product_a.id, 4, location_a.id, second_location_a.id,
        ).unwrap()

        assert out_movement.quantity == -4
        assert in_movement.quantity == 4
        assert db_session.get(Product, product_a.id).current_stock == 10
        assert engine.get_stock_by_location(product_a.id).unwrap() == {
            location_a.id: 6,
            second_location_a.id: 4,
        }

    def test_transfer_limited_to_stock_at_source(
        self, db_session, engine, product_a, location_a, second_location_a
    ):
        result = engine.transfer_stock(product_a.id, 1, second_location_a.id, location_a.id)
        assert result.error.kind == errors.INSUFFICIENT_STOCK

    def test_transfer_to_same_location_rejected(self, db_session, engine, product_a, location_a):
        result = engine.transfer_stock(product_a.id, 1, location_a.id, location_a.id)
        assert result.error.kind == errors.VALIDATION_ERROR


class TestLedgerQueries:

    def test_ledger_consistent_after_mixed_movements(self, db_session, engine, product_a):
        engine.record_stock_movement(product_a.id, "sale", -3)
        engine.record_stock_movement(product_a.id, "return_customer", 1)
        engine.record_stock_movement(product_a.id, "sale", -20)  # rejected
        engine.record_stock_movement(product_a.id, "adjustment", 2)

        report = engine.verify_ledger(product_a.id).unwrap()

        assert report["ok"], report["problems"]
        assert report["current_stock"] == 10
        assert report["movement_count"] == 4
        movements = _movements(db_session, product_a)
        assert sum(m.quantity for m in movements) == 10
        for previous, current in zip(movements, movements[1:]):
            assert current.previous_stock == previous.new_stock

    def test_verify_ledger_detects_drift(self, db_session, engine, product_a):
        db_session.get(Product, product_a.id).current_stock = 99
        db_session.commit()

        report = engine.verify_ledger(product_a.id).unwrap()

        assert not report["ok"]
        assert report["ledger_stock"] == 10

    def test_movements_newest_first(self, db_session, engine, product_a):
        engine.record_stock_movement(product_a.id, "sale", -1)
        movements = engine.get_product_movements(product_a.id).unwrap()

        assert [m.type for m in movements] == ["sale", "purchase"]

    def test_low_stock_products(self, db_session, engine, product_a, second_product_a):
        second_product_a.alert_stock = 5
        second_product_a.min_stock = 4
        product_a.alert_stock = 2
        db_session.commit()

        low = engine.get_low_stock_products().unwrap()

        assert [p["product_id"] for p in low] == [second_product_a.id]
        assert low[0]["below_minimum"] is True

    def test_crossing_alert_threshold_logs_warning(self, db_session, engine, product_a, caplog):
        product_a.alert_stock = 8
        db_session.commit()

        with caplog.at_level(logging.WARNING, logger="maroc_billing.services.stock_service"):
            engine.record_stock_movement(product_a.id, "sale", -1).unwrap()
            engine.record_stock_movement(product_a.id, "sale", -1).unwrap()
            engine.record_stock_movement(product_a.id, "sale", -1).unwrap()

        warnings = [r for r in caplog.records if "Low stock" in r.getMessage()]
        assert len(warnings) == 1
