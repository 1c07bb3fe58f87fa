# Overview: Pytest coverage for the product catalog and package units.

import re
from decimal import Decimal

import pytest
from shopledger.extensions import db
from shopledger.models import InventoryRecord, PackageUnit, Product
from shopledger.services import (
    document_service,
    products_service,
    purchase_service,
    storage_location_service,
)
from shopledger.validation import (
    PackageUnitInUseError,
    PackageUnitNotFoundError,
    PackageUnitValidationError,
    ProductInUseError,
    ProductNotFoundError,
    ProductValidationError,
    UnitNotFoundError,
)


class TestCreateProduct:
    def test_creates_product_with_zero_inventory(self, db_session):
        product = products_service.create_product(
            name="  Hex Bolt  ",
            base_unit=" 个 ",
            purchase_price="0.00505",
            retail_price=1,
            min_stock_threshold="2.5",
        )

        assert product.name == "Hex Bolt"
        assert product.base_unit == "个"
        assert product.purchase_price == Decimal("0.0051")
        assert product.min_stock_threshold == Decimal("2.500")

        record = db_session.query(InventoryRecord).filter_by(product_id=product.id).one()
        assert record.quantity == Decimal("0")

    def test_code_format_and_uniqueness(self, db_session):
        codes = {
            products_service.create_product(
                name=f"Item {i}", base_unit="个", purchase_price=1, retail_price=2
            ).code
            for i in range(20)
        }
        assert len(codes) == 20
        for code in codes:
            assert re.fullmatch(r"SP[A-Z0-9]{6}", code)

    def test_falls_back_to_id_code_after_collisions(self, db_session, monkeypatch):
        existing = products_service.create_product(
            name="First", base_unit="个", purchase_price=1, retail_price=2
        )
        monkeypatch.setattr(document_service, "random_product_code", lambda: existing.code)

        product = products_service.create_product(
            name="Second", base_unit="个", purchase_price=1, retail_price=2
        )
        assert product.code == document_service.product_code_from_id(product.id)
        assert re.fullmatch(r"SP[A-Z0-9]{6}", product.code)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"name": "   "},
            {"base_unit": ""},
            {"purchase_price": -1},
            {"retail_price": "-0.01"},
            {"min_stock_threshold": -5},
            {"retail_price": "abc"},
        ],
    )
    def test_invalid_fields_rejected(self, db_session, overrides):
        fields = dict(name="Nut", base_unit="个", purchase_price=1, retail_price=2)
        fields.update(overrides)
        with pytest.raises(ProductValidationError):
            products_service.create_product(**fields)
        assert db_session.query(Product).count() == 0


class TestUpdateAndDelete:
    def test_update_applies_only_given_fields(self, db_session, product):
        updated = products_service.update_product(
            product.id, {"retail_price": "18.5", "supplier": "  ", "code": "HACKED"}
        )
        assert updated.retail_price == Decimal("18.5000")
        assert updated.supplier is None
        assert updated.name == "Screw M4"
        assert updated.code != "HACKED"

    def test_update_validates(self, db_session, product):
        with pytest.raises(ProductValidationError):
            products_service.update_product(product.id, {"name": ""})
        with pytest.raises(ProductValidationError):
            products_service.update_product(product.id, {"purchase_price": -3})

    def test_update_unknown_product(self, db_session):
        with pytest.raises(ProductNotFoundError):
            products_service.update_product(999, {"name": "x"})

    def test_delete_cascades_units_and_inventory(self, db_session, boxed_product):
        product_id = boxed_product.id
        products_service.delete_product(product_id)

        assert products_service.get_product(product_id) is None
        assert db_session.query(PackageUnit).filter_by(product_id=product_id).count() == 0
        assert db_session.query(InventoryRecord).filter_by(product_id=product_id).count() == 0

    def test_delete_refused_when_referenced(self, db_session, product):
        purchase_service.create_purchase_order(
            supplier="ACME", items=[{"product_id": product.id, "quantity": 1, "unit_price": 1}]
        )
        with pytest.raises(ProductInUseError):
            products_service.delete_product(product.id)

    def test_lookups(self, db_session, product):
        assert products_service.get_product_by_code(product.code).id == product.id
        assert products_service.is_code_exists(product.code)
        assert not products_service.is_code_exists("SP000000X")
        assert products_service.get_product(123456) is None


class TestSearchProducts:
    def test_keyword_matches_name_spec_or_code(self, db_session, product):
        other = products_service.create_product(
            name="Washer", base_unit="个", purchase_price=1, retail_price=2, specification="steel"
        )
        assert [p.id for p in products_service.search_products("Screw")] == [product.id]
        assert [p.id for p in products_service.search_products("steel")] == [other.id]
        assert [p.id for p in products_service.search_products(product.code)] == [product.id]
        assert len(products_service.search_products("  ")) == 2
        assert len(products_service.search_products(None)) == 2

    def test_keyword_is_case_sensitive(self, db_session, product):
        assert products_service.search_products("screw") == []

    def test_keyword_is_not_trimmed(self, db_session, product):
        nut = products_service.create_product(name="M4 nut", base_unit="个", purchase_price=1, retail_price=2)

        assert [p.id for p in products_service.search_products(" M4")] == [product.id]
        assert {p.id for p in products_service.search_products("M4")} == {product.id, nut.id}

    def test_wildcards_are_literal(self, db_session):
        products_service.create_product(name="100% cotton", base_unit="米", purchase_price=1, retail_price=2)
        products_service.create_product(name="1000 cotton", base_unit="米", purchase_price=1, retail_price=2)
        products_service.create_product(name="a_b", base_unit="个", purchase_price=1, retail_price=2)
        products_service.create_product(name="axb", base_unit="个", purchase_price=1, retail_price=2)

        assert [p.name for p in products_service.search_products("0%")] == ["100% cotton"]
        assert [p.name for p in products_service.search_products("a_b")] == ["a_b"]

    def test_location_filter(self, db_session, product):
        other = products_service.create_product(
            name="Shelf item", base_unit="个", purchase_price=1, retail_price=2
        )
        shelf = storage_location_service.create_storage_location(name="A区-货架1")
        storage_location_service.link_product_to_location(product.id, shelf.id)

        assert [p.id for p in products_service.search_products(location="货架")] == [product.id]
        assert [p.id for p in products_service.search_products("Shelf", location="A区")] == []
        assert {p.id for p in products_service.search_products()} == {product.id, other.id}


class TestPackageUnits:
    def test_add_and_list(self, db_session, product):
        unit = products_service.add_package_unit(
            product.id, name=" 箱 ", conversion_rate="12", retail_price="170.12345"
        )
        assert unit.name == "箱"
        assert unit.conversion_rate == Decimal("12.0000")
        assert unit.retail_price == Decimal("170.1235")
        assert [u.name for u in products_service.get_package_units(product.id)] == ["箱"]

    @pytest.mark.parametrize("rate", [0, -1, "x"])
    def test_rate_must_be_positive(self, db_session, product, rate):
        with pytest.raises(PackageUnitValidationError):
            products_service.add_package_unit(product.id, name="箱", conversion_rate=rate)

    def test_duplicate_and_blank_names(self, db_session, boxed_product):
        with pytest.raises(PackageUnitValidationError):
            products_service.add_package_unit(boxed_product.id, name="箱", conversion_rate=5)
        with pytest.raises(PackageUnitValidationError):
            products_service.add_package_unit(boxed_product.id, name=" ", conversion_rate=5)
        with pytest.raises(PackageUnitValidationError):
            products_service.add_package_unit(boxed_product.id, name="个", conversion_rate=5)

    def test_add_to_unknown_product(self, db_session):
        with pytest.raises(ProductNotFoundError):
            products_service.add_package_unit(77, name="箱", conversion_rate=5)

    def test_update_clears_override_price(self, db_session, product):
        products_service.add_package_unit(product.id, name="箱", conversion_rate=10, retail_price=140)
        assert products_service.get_unit_price(product.id, "箱", "retail") == Decimal("140.0000")

        products_service.update_package_unit(product.id, "箱", {"retail_price": None, "conversion_rate": 12})
        assert products_service.get_unit_price(product.id, "箱", "retail") == Decimal("180.0000")

    def test_update_missing_unit(self, db_session, product):
        with pytest.raises(PackageUnitNotFoundError):
            products_service.update_package_unit(product.id, "托", {"conversion_rate": 2})

    def test_remove_unused_unit(self, db_session, boxed_product):
        products_service.remove_package_unit(boxed_product.id, "箱")
        assert products_service.get_package_units(boxed_product.id) == []

    def test_remove_unit_used_by_order_is_refused(self, db_session, boxed_product):
        purchase_service.create_purchase_order(
            supplier="ACME",
            items=[{"product_id": boxed_product.id, "quantity": 1, "unit": "箱", "unit_price": 90}],
        )
        with pytest.raises(PackageUnitInUseError):
            products_service.remove_package_unit(boxed_product.id, "箱")
        assert len(products_service.get_package_units(boxed_product.id)) == 1


class TestUnitPrices:
    def test_base_unit_price(self, db_session, boxed_product):
        assert products_service.get_unit_price(boxed_product.id, "个", "retail") == Decimal("15.0000")
        assert products_service.get_unit_price(boxed_product.id, "个", "purchase") == Decimal("10.0000")

    def test_package_price_is_base_times_rate(self, db_session, boxed_product):
        assert products_service.get_unit_price(boxed_product.id, "箱", "retail") == Decimal("150.0000")
        assert products_service.get_unit_price(boxed_product.id, "箱", "purchase") == Decimal("100.0000")

    def test_override_price_wins(self, db_session, product):
        unit = products_service.add_package_unit(
            product.id, name="箱", conversion_rate=10, purchase_price=95
        )
        assert products_service.calculate_package_unit_price(product, unit, "purchase") == Decimal("95.0000")
        assert products_service.calculate_package_unit_price(product, unit, "retail") == Decimal("150.0000")

    def test_unknown_unit(self, db_session, product):
        with pytest.raises(UnitNotFoundError):
            products_service.get_unit_price(product.id, "托", "retail")

    def test_unknown_price_type(self, db_session, product):
        with pytest.raises(ProductValidationError):
            products_service.get_unit_price(product.id, "个", "wholesale")
