# backend/shopledger/services/products_service.py
"""
Product catalog: products, package units and unit pricing.

Every product is created together with its zero-quantity InventoryRecord in
the same commit. Codes are "SP" + 6 random characters; after repeated
collisions the code is derived from the product id instead.
"""
from __future__ import annotations

import logging
import uuid
from decimal import Decimal

from sqlalchemy import or_

from ..extensions import db
from ..models import (
    InventoryRecord,
    InventoryTransaction,
    PackageUnit,
    Product,
    ProductStorageLocation,
    PurchaseOrderItem,
    ReturnOrderItem,
    SalesOrderItem,
    StockTakingItem,
    StorageLocation,
)
from ..decimal_utils import ZERO, as_decimal, round_price, round_quantity, to_decimal
from ..validation import (
    ConflictError,
    PackageUnitInUseError,
    PackageUnitNotFoundError,
    PackageUnitValidationError,
    ProductInUseError,
    ProductNotFoundError,
    ProductValidationError,
    optional_text,
    UnitNotFoundError,
    require_text,
)
from .concurrency import lock_for_update, run_with_retry
from .document_service import allocate_product_code, is_code_taken, product_code_from_id
from shopledger.time_utils import utcnow

logger = logging.getLogger(__name__)

PRICE_TYPE_PURCHASE = "purchase"
PRICE_TYPE_RETAIL = "retail"
PRICE_TYPES = {PRICE_TYPE_PURCHASE, PRICE_TYPE_RETAIL}

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "specification",
    "base_unit",
    "purchase_price",
    "retail_price",
    "supplier",
    "min_stock_threshold",
}


def _non_negative_price(value, label: str) -> Decimal:
    price = to_decimal(value, label, ProductValidationError)
    if price < 0:
        raise ProductValidationError(f"{label} must not be negative", details={label: price})
    return round_price(price)


def _non_negative_threshold(value) -> Decimal:
    threshold = to_decimal(value, "min_stock_threshold", ProductValidationError)
    if threshold < 0:
        raise ProductValidationError(
            "min_stock_threshold must not be negative", details={"min_stock_threshold": threshold}
        )
    return round_quantity(threshold)


def _clean_product_field(key: str, value):
    if key == "name":
        return require_text(value, "Product name is required", ProductValidationError)
    if key == "base_unit":
        return require_text(value, "Base unit is required", ProductValidationError)
    if key in ("purchase_price", "retail_price"):
        return _non_negative_price(value, key)
    if key == "min_stock_threshold":
        return _non_negative_threshold(ZERO if value is None else value)
    # specification / supplier
    return optional_text(value)


def apply_product_patch(p: Product, patch: dict) -> None:
    """Validate every provided field first, then assign; unknown keys are ignored."""
    cleaned = {}
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        cleaned[k] = _clean_product_field(k, v)
    for k, v in cleaned.items():
        setattr(p, k, v)


def _require_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ProductNotFoundError(product_id)
    return product


# =============================================================================
# PRODUCTS
# =============================================================================

def create_product(
    *,
    name: str,
    base_unit: str,
    purchase_price,
    retail_price,
    specification: str | None = None,
    supplier: str | None = None,
    min_stock_threshold=None,
) -> Product:
    """
    Create a product and its zero-quantity inventory record.

    Raises:
        ProductValidationError: blank name/base unit, negative price or threshold
    """
    if retail_price is None:
        raise ProductValidationError("retail_price is required")
    if purchase_price is None:
        raise ProductValidationError("purchase_price is required")

    fields = {
        "name": _clean_product_field("name", name),
        "base_unit": _clean_product_field("base_unit", base_unit),
        "purchase_price": _clean_product_field("purchase_price", purchase_price),
        "retail_price": _clean_product_field("retail_price", retail_price),
        "specification": optional_text(specification),
        "supplier": optional_text(supplier),
        "min_stock_threshold": _clean_product_field("min_stock_threshold", min_stock_threshold),
    }

    def _op() -> Product:
        code = allocate_product_code()
        fallback = code is None
        if fallback:
            # Provisional unique code until the id is known
            code = f"TMP{uuid.uuid4().hex[:20].upper()}"

        product = Product(code=code, **fields)
        product.inventory = InventoryRecord(quantity=ZERO, last_updated=utcnow())
        db.session.add(product)
        db.session.flush()

        if fallback:
            derived = product_code_from_id(product.id)
            if is_code_taken(derived):
                raise ConflictError(
                    f"Could not allocate a unique product code for product {product.id}",
                    details={"product_id": product.id},
                )
            product.code = derived

        db.session.commit()
        logger.info("Created product %s (%s)", product.code, product.name)
        return product

    return run_with_retry(_op)


def update_product(product_id: int, patch: dict) -> Product:
    def _op() -> Product:
        product = _require_product(product_id, lock=True)
        apply_product_patch(product, patch)
        product.updated_at = utcnow()
        db.session.commit()
        return product

    return run_with_retry(_op)


def _product_is_referenced(product_id: int) -> bool:
    for model in (
        InventoryTransaction,
        PurchaseOrderItem,
        SalesOrderItem,
        ReturnOrderItem,
        StockTakingItem,
    ):
        if db.session.query(model.id).filter(model.product_id == product_id).first() is not None:
            return True
    return False


def delete_product(product_id: int) -> None:
    """
    Delete a product with its package units, location links and inventory record.

    Products with stock history or order lines are kept (ProductInUseError).
    """
    def _op() -> None:
        product = _require_product(product_id, lock=True)
        if _product_is_referenced(product_id):
            raise ProductInUseError(product_id)
        db.session.delete(product)
        db.session.commit()
        logger.info("Deleted product %s", product_id)

    return run_with_retry(_op)


def get_product(product_id: int) -> Product | None:
    return db.session.get(Product, product_id)


def get_product_by_code(code: str) -> Product | None:
    return db.session.query(Product).filter_by(code=code).first()


def is_code_exists(code: str) -> bool:
    return is_code_taken(code)


def list_products() -> list[Product]:
    return db.session.query(Product).order_by(Product.name.asc(), Product.id.asc()).all()


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_products(keyword: str | None = None, location: str | None = None) -> list[Product]:
    """
    Literal substring search over name, specification and code.

    The SQL LIKE prefilter is case-insensitive on SQLite, so matches are
    re-checked case-sensitively in Python. `location` keeps only products
    linked to a storage location whose name contains it.
    """
    query = db.session.query(Product)
    # blank means no keyword; anything else is matched exactly as given
    needle = keyword if keyword and keyword.strip() else ""
    if needle:
        pattern = f"%{_escape_like(needle)}%"
        query = query.filter(
            or_(
                Product.name.like(pattern, escape="\\"),
                Product.specification.like(pattern, escape="\\"),
                Product.code.like(pattern, escape="\\"),
            )
        )
    products = query.order_by(Product.name.asc(), Product.id.asc()).all()

    if needle:
        products = [
            p for p in products
            if needle in p.name or needle in (p.specification or "") or needle in p.code
        ]

    location_filter = (location or "").strip()
    if location_filter:
        matching_ids = {
            product_id
            for (product_id, location_name) in (
                db.session.query(ProductStorageLocation.product_id, StorageLocation.name)
                .join(StorageLocation, StorageLocation.id == ProductStorageLocation.location_id)
                .all()
            )
            if location_filter in location_name
        }
        products = [p for p in products if p.id in matching_ids]

    return products


# =============================================================================
# PACKAGE UNITS
# =============================================================================

def _positive_rate(value) -> Decimal:
    rate = to_decimal(value, "conversion_rate", PackageUnitValidationError)
    if rate <= 0:
        raise PackageUnitValidationError(
            "conversion_rate must be greater than 0", details={"conversion_rate": rate}
        )
    return round_price(rate)


def _optional_unit_price(value, label: str) -> Decimal | None:
    if value is None:
        return None
    price = to_decimal(value, label, PackageUnitValidationError)
    if price < 0:
        raise PackageUnitValidationError(f"{label} must not be negative", details={label: price})
    return round_price(price)


def _require_package_unit(product: Product, name: str) -> PackageUnit:
    unit = product.find_package_unit(name)
    if unit is None:
        raise PackageUnitNotFoundError(product.id, name)
    return unit


def add_package_unit(
    product_id: int,
    *,
    name: str,
    conversion_rate,
    purchase_price=None,
    retail_price=None,
) -> PackageUnit:
    """
    Register an alternate unit: 1 `name` = conversion_rate base units.

    Raises:
        ProductNotFoundError: unknown product
        PackageUnitValidationError: blank/duplicate name, rate <= 0, negative price
    """
    clean_name = require_text(name, "Package unit name is required", PackageUnitValidationError)
    rate = _positive_rate(conversion_rate)
    unit_purchase_price = _optional_unit_price(purchase_price, "purchase_price")
    unit_retail_price = _optional_unit_price(retail_price, "retail_price")

    def _op() -> PackageUnit:
        product = _require_product(product_id, lock=True)
        if clean_name == product.base_unit:
            raise PackageUnitValidationError(
                f"Package unit {clean_name} is the product's base unit",
                details={"product_id": product_id, "name": clean_name},
            )
        if product.find_package_unit(clean_name) is not None:
            raise PackageUnitValidationError(
                f"Package unit already exists: {clean_name}",
                details={"product_id": product_id, "name": clean_name},
            )

        unit = PackageUnit(
            name=clean_name,
            conversion_rate=rate,
            purchase_price=unit_purchase_price,
            retail_price=unit_retail_price,
        )
        product.package_units.append(unit)
        db.session.commit()
        logger.info("Added package unit %s (x%s) to product %s", clean_name, rate, product.code)
        return unit

    return run_with_retry(_op)


def update_package_unit(product_id: int, name: str, patch: dict) -> PackageUnit:
    """
    Update conversion_rate and/or override prices.

    A price key present with value None clears the override, so the unit
    falls back to base price x rate.
    """
    cleaned = {}
    if "conversion_rate" in patch:
        cleaned["conversion_rate"] = _positive_rate(patch["conversion_rate"])
    for key in ("purchase_price", "retail_price"):
        if key in patch:
            cleaned[key] = _optional_unit_price(patch[key], key)

    def _op() -> PackageUnit:
        product = _require_product(product_id, lock=True)
        unit = _require_package_unit(product, name)
        for k, v in cleaned.items():
            setattr(unit, k, v)
        db.session.commit()
        return unit

    return run_with_retry(_op)


def _unit_is_referenced(product_id: int, unit_name: str) -> bool:
    for model in (PurchaseOrderItem, SalesOrderItem, ReturnOrderItem):
        hit = (
            db.session.query(model.id)
            .filter(model.product_id == product_id, model.unit == unit_name)
            .first()
        )
        if hit is not None:
            return True
    return False


def remove_package_unit(product_id: int, name: str) -> None:
    """
    Remove a package unit that no order or return line uses.

    Raises:
        PackageUnitNotFoundError: the product has no unit with this name
        PackageUnitInUseError: a purchase, sales or return line uses the unit
    """
    def _op() -> None:
        product = _require_product(product_id, lock=True)
        unit = _require_package_unit(product, name)
        if _unit_is_referenced(product_id, name):
            raise PackageUnitInUseError(name)
        product.package_units.remove(unit)
        db.session.commit()
        logger.info("Removed package unit %s from product %s", name, product.code)

    return run_with_retry(_op)


def get_package_units(product_id: int) -> list[PackageUnit]:
    return (
        db.session.query(PackageUnit)
        .filter_by(product_id=product_id)
        .order_by(PackageUnit.id.asc())
        .all()
    )


# =============================================================================
# PRICING
# =============================================================================

def _check_price_type(price_type: str) -> None:
    if price_type not in PRICE_TYPES:
        raise ProductValidationError(
            f"price_type must be one of {sorted(PRICE_TYPES)}", details={"price_type": price_type}
        )


def calculate_package_unit_price(product: Product, package_unit: PackageUnit, price_type: str) -> Decimal:
    """Override price when set, else base price x conversion rate (4dp)."""
    _check_price_type(price_type)
    override = package_unit.purchase_price if price_type == PRICE_TYPE_PURCHASE else package_unit.retail_price
    if override is not None:
        return round_price(as_decimal(override))
    base = product.purchase_price if price_type == PRICE_TYPE_PURCHASE else product.retail_price
    return round_price(as_decimal(base) * as_decimal(package_unit.conversion_rate))


def unit_price_for(product: Product, unit: str, price_type: str) -> Decimal:
    _check_price_type(price_type)
    if unit == product.base_unit:
        base = product.purchase_price if price_type == PRICE_TYPE_PURCHASE else product.retail_price
        return round_price(as_decimal(base))
    package_unit = product.find_package_unit(unit)
    if package_unit is None:
        raise UnitNotFoundError(product.id, unit)
    return calculate_package_unit_price(product, package_unit, price_type)


def get_unit_price(product_id: int, unit: str, price_type: str = PRICE_TYPE_RETAIL) -> Decimal:
    product = _require_product(product_id)
    return unit_price_for(product, unit, price_type)
