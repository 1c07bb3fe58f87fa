# Overview: Pytest coverage for stock-take snapshots, counting and completion.

from decimal import Decimal

import pytest
from shopledger.models import InventoryTransaction, StockTakingItem
from shopledger.models.documents import STOCK_TAKING_COMPLETED, STOCK_TAKING_IN_PROGRESS
from shopledger.models.inventory import TRANSACTION_ADJUSTMENT
from shopledger.services import inventory_service, products_service, sales_service, stock_taking_service
from shopledger.validation import (
    InvalidQuantityError,
    StockTakingAlreadyCompletedError,
    StockTakingItemNotFoundError,
    StockTakingNotFoundError,
    ValidationError,
)


@pytest.fixture
def bolts(db_session):
    product = products_service.create_product(name="Bolt M6", base_unit="个", purchase_price=2, retail_price=3)
    inventory_service.adjust_inventory(product.id, Decimal("8"), "PURCHASE")
    return product


class TestCreateStockTaking:
    def test_snapshot_of_every_product(self, db_session, stocked_product, bolts):
        taking = stock_taking_service.create_stock_taking()

        assert taking.status == STOCK_TAKING_IN_PROGRESS
        assert [i.product_name for i in taking.items] == ["Bolt M6", "Screw M4"]
        by_product = {i.product_id: i for i in taking.items}
        assert by_product[stocked_product.id].system_quantity == Decimal("50.000")
        assert by_product[stocked_product.id].actual_quantity == Decimal("50.000")
        assert by_product[stocked_product.id].difference == Decimal("0")
        assert by_product[bolts.id].unit == "个"

    def test_empty_catalog(self, db_session):
        taking = stock_taking_service.create_stock_taking()
        assert taking.items == []


class TestRecordActualQuantity:
    def test_difference(self, db_session, stocked_product):
        taking = stock_taking_service.create_stock_taking()
        item = stock_taking_service.record_actual_quantity(taking.id, stocked_product.id, "47.5")

        assert item.actual_quantity == Decimal("47.500")
        assert item.difference == Decimal("-2.500")
        # counting alone does not change stock
        assert inventory_service.current_quantity(stocked_product.id) == Decimal("50.000")

    def test_negative_count_rejected(self, db_session, stocked_product):
        taking = stock_taking_service.create_stock_taking()
        with pytest.raises(InvalidQuantityError):
            stock_taking_service.record_actual_quantity(taking.id, stocked_product.id, -1)

    def test_unknown_item_or_taking(self, db_session, stocked_product):
        taking = stock_taking_service.create_stock_taking()
        with pytest.raises(StockTakingItemNotFoundError):
            stock_taking_service.record_actual_quantity(taking.id, 9999, 1)
        with pytest.raises(StockTakingNotFoundError):
            stock_taking_service.record_actual_quantity(9999, stocked_product.id, 1)

    def test_batch_is_all_or_nothing(self, db_session, stocked_product, bolts):
        taking = stock_taking_service.create_stock_taking()
        with pytest.raises(StockTakingItemNotFoundError):
            stock_taking_service.record_actual_quantities(
                taking.id,
                [
                    {"product_id": bolts.id, "actual_quantity": 10},
                    {"product_id": 9999, "actual_quantity": 1},
                ],
            )
        item = db_session.query(StockTakingItem).filter_by(product_id=bolts.id).one()
        assert item.actual_quantity == Decimal("8.000")


class TestCompleteStockTaking:
    def test_completion_posts_adjustments(self, db_session, stocked_product, bolts):
        taking = stock_taking_service.create_stock_taking()
        stock_taking_service.record_actual_quantities(
            taking.id,
            [
                {"product_id": stocked_product.id, "actual_quantity": 45},
                {"product_id": bolts.id, "actual_quantity": 8},
            ],
        )

        taking = stock_taking_service.complete_stock_taking(taking.id)

        assert taking.status == STOCK_TAKING_COMPLETED
        assert taking.completed_at is not None
        assert inventory_service.current_quantity(stocked_product.id) == Decimal("45.000")
        assert inventory_service.current_quantity(bolts.id) == Decimal("8.000")

        adjustments = (
            db_session.query(InventoryTransaction)
            .filter_by(transaction_type=TRANSACTION_ADJUSTMENT)
            .all()
        )
        assert len(adjustments) == 1
        assert adjustments[0].product_id == stocked_product.id
        assert adjustments[0].quantity_change == Decimal("-5.000")
        assert adjustments[0].reference_id == taking.id
        assert f"Stock taking {taking.id}" in adjustments[0].note

    def test_sale_after_snapshot_logs_recorded_difference(self, db_session, stocked_product):
        taking = stock_taking_service.create_stock_taking()
        stock_taking_service.record_actual_quantity(taking.id, stocked_product.id, 45)

        order = sales_service.create_sales_order(items=[{"product_id": stocked_product.id, "quantity": 10}])
        sales_service.confirm_sales_order(order.id)

        stock_taking_service.complete_stock_taking(taking.id)

        adjustment = (
            db_session.query(InventoryTransaction)
            .filter_by(transaction_type=TRANSACTION_ADJUSTMENT)
            .one()
        )
        assert adjustment.quantity_change == Decimal("-5.000")
        assert adjustment.reference_id == taking.id
        assert inventory_service.current_quantity(stocked_product.id) == Decimal("45.000")

    def test_completed_taking_is_frozen(self, db_session, stocked_product):
        taking = stock_taking_service.create_stock_taking()
        stock_taking_service.complete_stock_taking(taking.id)

        with pytest.raises(StockTakingAlreadyCompletedError):
            stock_taking_service.complete_stock_taking(taking.id)
        with pytest.raises(StockTakingAlreadyCompletedError):
            stock_taking_service.record_actual_quantity(taking.id, stocked_product.id, 1)
        with pytest.raises(StockTakingAlreadyCompletedError):
            stock_taking_service.delete_stock_taking(taking.id)

    def test_delete_in_progress(self, db_session, stocked_product):
        taking = stock_taking_service.create_stock_taking()
        stock_taking_service.delete_stock_taking(taking.id)

        assert stock_taking_service.get_stock_taking(taking.id) is None
        assert db_session.query(StockTakingItem).count() == 0


class TestStockTakingQueries:
    def test_list_and_summary(self, db_session, stocked_product, bolts):
        older = stock_taking_service.create_stock_taking("2026-01-01")
        newer = stock_taking_service.create_stock_taking("2026-02-01")
        stock_taking_service.record_actual_quantity(newer.id, stocked_product.id, 52)
        stock_taking_service.record_actual_quantity(newer.id, bolts.id, 5)
        stock_taking_service.complete_stock_taking(older.id)

        assert [t.id for t in stock_taking_service.list_stock_takings()] == [newer.id, older.id]
        assert [t.id for t in stock_taking_service.list_stock_takings(STOCK_TAKING_COMPLETED)] == [older.id]
        with pytest.raises(ValidationError):
            stock_taking_service.list_stock_takings("DONE")

        summary = stock_taking_service.get_stock_taking_difference_summary(newer.id)
        assert summary == {
            "total_items": 2,
            "items_with_difference": 2,
            "total_positive_difference": Decimal("2.000"),
            "total_negative_difference": Decimal("3.000"),
        }

    def test_summary_unknown(self, db_session):
        with pytest.raises(StockTakingNotFoundError):
            stock_taking_service.get_stock_taking_difference_summary(1)
