# Overview: Pytest coverage for the Flask CLI command groups.

from decimal import Decimal

from shopledger.services import inventory_service, products_service


class TestInventoryCommands:
    def test_low_stock_empty(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["inventory", "low-stock"])
        assert result.exit_code == 0
        assert "No low-stock products." in result.output

    def test_low_stock_lists_product(self, app, db_session):
        products_service.create_product(
            name="Fuse 5A", base_unit="个", purchase_price=1, retail_price=2, min_stock_threshold=4
        )
        result = app.test_cli_runner().invoke(args=["inventory", "low-stock"])
        assert result.exit_code == 0
        assert "Fuse 5A" in result.output

    def test_set_quantity(self, app, db_session, product):
        result = app.test_cli_runner().invoke(
            args=["inventory", "set", "--product-id", str(product.id), "--quantity", "12.5"]
        )
        assert result.exit_code == 0
        assert "PASS" in result.output
        assert inventory_service.current_quantity(product.id) == Decimal("12.500")

    def test_set_quantity_unknown_product(self, app, db_session):
        result = app.test_cli_runner().invoke(
            args=["inventory", "set", "--product-id", "999", "--quantity", "1"]
        )
        assert result.exit_code == 1
        assert "FAIL Error:" in result.output


class TestReportCommands:
    def test_summary_empty_range(self, app, db_session):
        result = app.test_cli_runner().invoke(
            args=["reports", "summary", "--start", "2026-01-01", "--end", "2026-01-31"]
        )
        assert result.exit_code == 0
        assert "Total orders:   0" in result.output

    def test_bad_range(self, app, db_session):
        result = app.test_cli_runner().invoke(
            args=["reports", "profit", "--start", "2026-02-01", "--end", "2026-01-01"]
        )
        assert result.exit_code == 1
        assert "FAIL Error:" in result.output
