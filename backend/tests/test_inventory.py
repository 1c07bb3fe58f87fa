# Overview: Pytest coverage for the inventory ledger.

from decimal import Decimal

import pytest
from shopledger.models import InventoryTransaction
from shopledger.models.inventory import (
    TRANSACTION_ADJUSTMENT,
    TRANSACTION_PURCHASE,
    TRANSACTION_RETURN,
    TRANSACTION_SALE,
)
from shopledger.services import inventory_service, products_service
from shopledger.validation import (
    InsufficientStockError,
    InvalidQuantityError,
    ProductNotFoundError,
    UnitNotFoundError,
    ValidationError,
)


class TestAdjustInventory:
    def test_package_units_are_stored_in_base_units(self, db_session, boxed_product):
        record = inventory_service.adjust_inventory(
            boxed_product.id, 3, TRANSACTION_PURCHASE, unit="箱", reference_id=7, note="PO"
        )
        assert record.quantity == Decimal("30.000")

        tx = db_session.query(InventoryTransaction).filter_by(product_id=boxed_product.id).one()
        assert tx.quantity_change == Decimal("30.000")
        assert tx.unit == "个"
        assert tx.reference_id == 7
        assert tx.transaction_type == TRANSACTION_PURCHASE

    def test_insufficient_stock_leaves_no_trace(self, db_session, stocked_product):
        with pytest.raises(InsufficientStockError) as exc:
            inventory_service.adjust_inventory(stocked_product.id, -6, TRANSACTION_SALE, unit="箱")

        assert exc.value.required == Decimal("60.000")
        assert exc.value.available == Decimal("50.000")
        assert inventory_service.current_quantity(stocked_product.id) == Decimal("50.000")
        assert db_session.query(InventoryTransaction).filter_by(
            product_id=stocked_product.id, transaction_type=TRANSACTION_SALE
        ).count() == 0

    def test_adjustment_may_go_negative(self, db_session, product):
        record = inventory_service.adjust_inventory(product.id, -2, TRANSACTION_ADJUSTMENT)
        assert record.quantity == Decimal("-2.000")

    def test_return_cannot_go_negative(self, db_session, product):
        with pytest.raises(InsufficientStockError):
            inventory_service.adjust_inventory(product.id, -1, TRANSACTION_RETURN)

    def test_unknown_product_unit_and_type(self, db_session, product):
        with pytest.raises(ProductNotFoundError):
            inventory_service.adjust_inventory(9999, 1, TRANSACTION_PURCHASE)
        with pytest.raises(UnitNotFoundError):
            inventory_service.adjust_inventory(product.id, 1, TRANSACTION_PURCHASE, unit="托")
        with pytest.raises(ValidationError):
            inventory_service.adjust_inventory(product.id, 1, "GIFT")

    def test_every_change_appends_one_transaction(self, db_session, product):
        inventory_service.adjust_inventory(product.id, 5, TRANSACTION_PURCHASE)
        inventory_service.adjust_inventory(product.id, -2, TRANSACTION_SALE)
        inventory_service.adjust_inventory(product.id, "1.25", TRANSACTION_RETURN)

        history = inventory_service.list_inventory_transactions(product_id=product.id)
        assert [t.quantity_change for t in history] == [
            Decimal("5.000"), Decimal("-2.000"), Decimal("1.250")
        ]
        assert inventory_service.get_inventory(product.id).quantity == Decimal("4.250")

    def test_transaction_filters(self, db_session, product):
        inventory_service.adjust_inventory(product.id, 5, TRANSACTION_PURCHASE)
        inventory_service.adjust_inventory(product.id, -1, TRANSACTION_SALE)

        sales = inventory_service.list_inventory_transactions(transaction_type=TRANSACTION_SALE)
        assert len(sales) == 1
        assert inventory_service.list_inventory_transactions(start="2999-01-01") == []
        assert len(inventory_service.list_inventory_transactions(end="2999-01-01T00:00:00Z")) == 2


class TestSetInventoryQuantity:
    def test_sets_absolute_quantity_via_adjustment(self, db_session, stocked_product):
        record = inventory_service.set_inventory_quantity(stocked_product.id, "42.5")
        assert record.quantity == Decimal("42.500")

        tx = inventory_service.list_inventory_transactions(
            product_id=stocked_product.id, transaction_type=TRANSACTION_ADJUSTMENT
        )
        assert len(tx) == 1
        assert tx[0].quantity_change == Decimal("-7.500")
        assert tx[0].note == inventory_service.DEFAULT_ADJUSTMENT_NOTE

    def test_negative_quantity_rejected(self, db_session, product):
        with pytest.raises(InvalidQuantityError):
            inventory_service.set_inventory_quantity(product.id, -1)

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFoundError):
            inventory_service.set_inventory_quantity(31337, 1)


class TestLowStock:
    def test_strictly_below_threshold(self, db_session, product):
        products_service.update_product(product.id, {"min_stock_threshold": 5})
        assert inventory_service.is_low_stock(product.id)

        inventory_service.adjust_inventory(product.id, 5, TRANSACTION_PURCHASE)
        assert not inventory_service.is_low_stock(product.id)

        inventory_service.adjust_inventory(product.id, "-0.001", TRANSACTION_SALE)
        assert inventory_service.is_low_stock(product.id)

    def test_unknown_product_is_not_low(self, db_session):
        assert inventory_service.is_low_stock(12345) is False

    def test_report_sorted_by_deficit(self, db_session):
        small = products_service.create_product(
            name="Small gap", base_unit="个", purchase_price=1, retail_price=2, min_stock_threshold=3
        )
        large = products_service.create_product(
            name="Large gap", base_unit="个", purchase_price=1, retail_price=2, min_stock_threshold=30
        )
        products_service.create_product(name="Fine", base_unit="个", purchase_price=1, retail_price=2)

        report = inventory_service.get_low_stock_products()
        assert [r["product"].id for r in report] == [large.id, small.id]
        assert report[0]["deficit"] == Decimal("30.000")


class TestAvailability:
    def test_check_stock_availability(self, db_session, stocked_product):
        assert inventory_service.check_stock_availability(stocked_product.id, 5, "箱")
        assert not inventory_service.check_stock_availability(stocked_product.id, "5.1", "箱")
        assert inventory_service.check_stock_availability(stocked_product.id, 50, "个")

    def test_batch_reports_shortage(self, db_session, stocked_product):
        results = inventory_service.check_batch_stock_availability(
            [
                {"product_id": stocked_product.id, "quantity": 2, "unit": "箱"},
                {"product_id": stocked_product.id, "quantity": 7, "unit": "箱"},
                {"product_id": 999999, "quantity": 1, "unit": "个"},
            ]
        )
        assert results[0] == {"product_id": stocked_product.id, "available": True}
        assert results[1]["available"] is False
        assert results[1]["shortage"] == Decimal("20.000")
        assert results[2]["available"] is False
        assert "error" in results[2]

    def test_list_inventory(self, db_session, stocked_product):
        rows = inventory_service.list_inventory()
        assert len(rows) == 1
        assert rows[0]["inventory"].quantity == Decimal("50.000")
        assert inventory_service.get_inventory_with_product(stocked_product.id)["product"].id == stocked_product.id
        assert inventory_service.get_inventory_with_product(404) is None
