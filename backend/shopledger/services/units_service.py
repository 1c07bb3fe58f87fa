# Overview: Conversion between a product's base unit and its package units.

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import InventoryRecord, PackageUnit, Product
from ..decimal_utils import as_decimal, round_quantity, to_decimal
from ..validation import ProductNotFoundError, UnitNotFoundError


def get_conversion_rate(product: Product, unit: str) -> Decimal:
    """
    Base units contained in one `unit` of this product.

    The base unit itself converts at 1; unknown units raise UnitNotFoundError.
    """
    if unit == product.base_unit:
        return Decimal("1")
    package_unit = product.find_package_unit(unit)
    if package_unit is None:
        raise UnitNotFoundError(product.id, unit)
    return as_decimal(package_unit.conversion_rate)


def to_base_units(product: Product, quantity, unit: str) -> Decimal:
    qty = to_decimal(quantity, "quantity")
    if unit == product.base_unit:
        return round_quantity(qty)
    return round_quantity(qty * get_conversion_rate(product, unit))


def from_base_units(product: Product, base_quantity, unit: str) -> Decimal:
    qty = to_decimal(base_quantity, "base_quantity")
    if unit == product.base_unit:
        return round_quantity(qty)
    return round_quantity(qty / get_conversion_rate(product, unit))


def get_available_units(product_id: int) -> list[str]:
    """Base unit first, then package units in creation order."""
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError(product_id)
    names = (
        db.session.query(PackageUnit.name)
        .filter_by(product_id=product_id)
        .order_by(PackageUnit.id.asc())
        .all()
    )
    return [product.base_unit] + [name for (name,) in names]


def get_available_quantity(product_id: int, unit: str) -> Decimal:
    """Current stock of a product expressed in `unit`."""
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError(product_id)
    record = db.session.query(InventoryRecord).filter_by(product_id=product_id).first()
    base_quantity = as_decimal(record.quantity) if record else Decimal("0")
    return from_base_units(product, base_quantity, unit)
