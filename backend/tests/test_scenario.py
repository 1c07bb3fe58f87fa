# Overview: End-to-end walk through purchase, sale, discount, return and stock-take.

from decimal import Decimal

from shopledger.models.inventory import (
    TRANSACTION_ADJUSTMENT,
    TRANSACTION_PURCHASE,
    TRANSACTION_RETURN,
    TRANSACTION_SALE,
)
from shopledger.services import (
    inventory_service,
    products_service,
    purchase_service,
    sales_service,
    statistics_service,
    stock_taking_service,
)


class TestShopDay:
    def test_boxes_in_pieces_out(self, db_session):
        product = products_service.create_product(
            name="Screw M4", base_unit="个", purchase_price=10, retail_price=15
        )
        products_service.add_package_unit(product.id, name="箱", conversion_rate=10)

        po = purchase_service.create_purchase_order(
            supplier="Hardware Co",
            items=[{"product_id": product.id, "quantity": 5, "unit": "箱", "unit_price": 90}],
            order_date="2026-06-01T08:00:00",
        )
        purchase_service.confirm_purchase_order(po.id)
        assert inventory_service.current_quantity(product.id) == Decimal("50.000")

        order = sales_service.create_sales_order(
            items=[{"product_id": product.id, "quantity": 2, "unit": "箱"}],
            customer_name="Walk-in",
            order_date="2026-06-01T10:00:00",
        )
        assert order.items[0].unit_price == Decimal("150.0000")
        order = sales_service.apply_discount(order.id, sales_service.DISCOUNT_PERCENTAGE, 10)
        assert order.total_amount == Decimal("270.00")

        sales_service.confirm_sales_order(order.id)
        assert inventory_service.current_quantity(product.id) == Decimal("30.000")

        ret = sales_service.create_sales_return(
            order.id, [{"product_id": product.id, "quantity": 3, "unit": "个"}]
        )
        sales_service.confirm_sales_return(ret.id)
        assert inventory_service.current_quantity(product.id) == Decimal("33.000")

        taking = stock_taking_service.create_stock_taking()
        stock_taking_service.record_actual_quantity(taking.id, product.id, 32)
        stock_taking_service.complete_stock_taking(taking.id)
        assert inventory_service.current_quantity(product.id) == Decimal("32.000")

        history = inventory_service.list_inventory_transactions(product_id=product.id)
        assert [(t.transaction_type, t.quantity_change) for t in history] == [
            (TRANSACTION_PURCHASE, Decimal("50.000")),
            (TRANSACTION_SALE, Decimal("-20.000")),
            (TRANSACTION_RETURN, Decimal("3.000")),
            (TRANSACTION_ADJUSTMENT, Decimal("-1.000")),
        ]
        # the ledger always sums to the on-hand quantity
        assert sum(t.quantity_change for t in history) == inventory_service.current_quantity(product.id)

        summary = statistics_service.get_sales_summary("2026-06-01", "2026-06-01")
        assert summary["total_sales"] == Decimal("270.00")
        assert summary["total_quantity"] == Decimal("20.000")
