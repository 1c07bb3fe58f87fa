# backend/shopledger/services/return_service.py
"""
Returns against confirmed purchase or sales orders.

Both directions share one table (ReturnOrder.order_type) and one cap rule:
per product, the quantity still returnable is the quantity on the original
order minus everything on CONFIRMED returns against it. Lines in
different units of the same product are netted in base units.

Direction of the stock movement on confirm:
- PURCHASE return: goods go back to the supplier (negative RETURN)
- SALE return: goods come back from the customer (positive RETURN)
"""
from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from ..extensions import db
from ..models import Product, ReturnOrder, ReturnOrderItem
from ..models.documents import RETURN_TYPE_PURCHASE, RETURN_TYPE_SALE
from ..models.inventory import TRANSACTION_RETURN
from ..models.orders import ORDER_STATUS_CONFIRMED, ORDER_STATUS_PENDING
from ..decimal_utils import (
    ZERO,
    as_decimal,
    floor_quantity,
    round_money,
    round_price,
    round_quantity,
    to_decimal,
)
from ..validation import (
    OrderAlreadyConfirmedError,
    ProductNotFoundError,
    ReturnOrderNotFoundError,
    ReturnQuantityExceededError,
    ValidationError,
    coerce_datetime,
)
from .concurrency import lock_for_update, run_with_retry
from .document_service import PURCHASE_RETURN_PREFIX, SALES_RETURN_PREFIX, next_order_number
from .inventory_service import apply_inventory_change
from .units_service import get_conversion_rate, to_base_units
from shopledger.time_utils import utcnow

logger = logging.getLogger(__name__)

RETURN_PREFIXES = {
    RETURN_TYPE_PURCHASE: PURCHASE_RETURN_PREFIX,
    RETURN_TYPE_SALE: SALES_RETURN_PREFIX,
}

# Sign applied to the base-unit quantity when a return is confirmed
RETURN_STOCK_DIRECTION = {
    RETURN_TYPE_PURCHASE: Decimal("-1"),
    RETURN_TYPE_SALE: Decimal("1"),
}

REFERENCE_TYPE_RETURN = "return_order"


def _load_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError(product_id)
    return product


def _lines_by_product(items) -> dict[int, list[tuple[Decimal, str]]]:
    grouped: dict[int, list[tuple[Decimal, str]]] = defaultdict(list)
    for item in items:
        grouped[item.product_id].append((as_decimal(item.quantity), item.unit))
    return grouped


def returned_lines(
    order_type: str,
    original_order_id: int,
    *,
    exclude_return_id: int | None = None,
) -> dict[int, list[tuple[Decimal, str]]]:
    """(quantity, unit) per product on CONFIRMED returns against an order."""
    query = (
        db.session.query(ReturnOrderItem)
        .join(ReturnOrder, ReturnOrder.id == ReturnOrderItem.return_order_id)
        .filter(
            ReturnOrder.order_type == order_type,
            ReturnOrder.original_order_id == original_order_id,
            ReturnOrder.status == ORDER_STATUS_CONFIRMED,
        )
    )
    if exclude_return_id is not None:
        query = query.filter(ReturnOrder.id != exclude_return_id)
    return _lines_by_product(query.all())


def _in_one_unit(lines: list[tuple[Decimal, str]], unit: str) -> bool:
    return all(line_unit == unit for _, line_unit in lines)


def _base_total(product: Product, lines: list[tuple[Decimal, str]]) -> Decimal:
    return sum((to_base_units(product, q, u) for q, u in lines), ZERO)


def remaining_returnable(
    product: Product,
    ordered: list[tuple[Decimal, str]],
    returned: list[tuple[Decimal, str]],
    unit: str,
) -> Decimal:
    """
    Ordered minus returned, expressed in `unit`.

    When every line is in `unit` the subtraction is done on the raw
    quantities. Mixed units are netted in base units and the result is
    rounded down, so the reported maximum is always returnable.
    """
    if _in_one_unit(ordered + returned, unit):
        return round_quantity(sum((q for q, _ in ordered), ZERO) - sum((q for q, _ in returned), ZERO))
    base = _base_total(product, ordered) - _base_total(product, returned)
    return floor_quantity(base / get_conversion_rate(product, unit))


def exceeds_returnable(
    product: Product,
    ordered: list[tuple[Decimal, str]],
    returned: list[tuple[Decimal, str]],
    quantity: Decimal,
    unit: str,
) -> bool:
    """Mixed units are compared in base units, never in a rounded package quantity."""
    if _in_one_unit(ordered + returned, unit):
        return quantity > remaining_returnable(product, ordered, returned, unit)
    remaining_base = _base_total(product, ordered) - _base_total(product, returned)
    return to_base_units(product, quantity, unit) > remaining_base


def _check_caps(
    *,
    order_type: str,
    original_order_id: int,
    original_items,
    lines: list[tuple[Product, Decimal, str]],
    exclude_return_id: int | None = None,
) -> None:
    """
    lines: (product, quantity, unit). Lines for the same product within one
    request count against each other.
    """
    ordered = _lines_by_product(original_items)
    returned = returned_lines(order_type, original_order_id, exclude_return_id=exclude_return_id)

    for product, quantity, unit in lines:
        if exceeds_returnable(product, ordered[product.id], returned[product.id], quantity, unit):
            remaining = remaining_returnable(product, ordered[product.id], returned[product.id], unit)
            max_quantity = max(remaining, ZERO)
            logger.warning(
                "Return of %s %s for product %s exceeds returnable %s",
                quantity, unit, product.id, max_quantity,
            )
            raise ReturnQuantityExceededError(product.id, max_quantity, quantity)
        returned[product.id].append((quantity, unit))


def create_return_inner(
    *,
    order_type: str,
    original_order,
    items: list[dict],
    return_date=None,
    error_cls: type[ValidationError] = ValidationError,
) -> ReturnOrder:
    """
    Build a PENDING return against a CONFIRMED order (flush, no commit).

    Each item: {product_id, quantity, unit?, unit_price?}. unit and
    unit_price default to the original order line of that product.
    """
    if original_order.status != ORDER_STATUS_CONFIRMED:
        raise error_cls(
            "Returns can only be created for confirmed orders",
            details={"order_id": original_order.id, "status": original_order.status},
        )
    if not items:
        raise error_cls("Return items must not be empty")

    returned_at = coerce_datetime(return_date, "return_date", error_cls)
    original_items = list(original_order.items)

    lines = []
    prepared = []
    for raw in items:
        product_id = raw.get("product_id")
        quantity = to_decimal(raw.get("quantity"), "quantity", error_cls)
        if quantity <= 0:
            raise error_cls(
                f"Return quantity must be greater than 0 (product {product_id})",
                details={"product_id": product_id, "quantity": quantity},
            )

        candidates = [i for i in original_items if i.product_id == product_id]
        if not candidates:
            raise error_cls(
                f"Product {product_id} is not on the original order",
                details={"product_id": product_id, "order_id": original_order.id},
            )

        unit = raw.get("unit") or candidates[0].unit
        original_line = next((i for i in candidates if i.unit == unit), candidates[0])

        product = _load_product(product_id)
        # Resolves the unit; raises UnitNotFoundError for unknown names
        to_base_units(product, quantity, unit)

        if raw.get("unit_price") is not None:
            unit_price = to_decimal(raw["unit_price"], "unit_price", error_cls)
            if unit_price < 0:
                raise error_cls(
                    "unit_price must not be negative", details={"product_id": product_id}
                )
        elif original_line.unit == unit:
            unit_price = as_decimal(original_line.unit_price)
        else:
            # same per-base-unit price as the original line
            unit_price = (
                as_decimal(original_line.unit_price)
                / get_conversion_rate(product, original_line.unit)
                * get_conversion_rate(product, unit)
            )

        quantity = round_quantity(quantity)
        unit_price = round_price(unit_price)
        lines.append((product, quantity, unit))
        prepared.append((original_line, quantity, unit, unit_price))

    _check_caps(
        order_type=order_type,
        original_order_id=original_order.id,
        original_items=original_items,
        lines=lines,
    )

    return_order = ReturnOrder(
        order_number=next_order_number(prefix=RETURN_PREFIXES[order_type], model=ReturnOrder),
        original_order_id=original_order.id,
        order_type=order_type,
        return_date=returned_at,
        status=ORDER_STATUS_PENDING,
    )
    total = ZERO
    for original_line, quantity, unit, unit_price in prepared:
        subtotal = round_money(quantity * unit_price)
        total += subtotal
        return_order.items.append(
            ReturnOrderItem(
                product_id=original_line.product_id,
                product_name=original_line.product_name,
                quantity=quantity,
                unit=unit,
                unit_price=unit_price,
                subtotal=subtotal,
            )
        )
    return_order.total_amount = round_money(total)

    db.session.add(return_order)
    db.session.flush()
    return return_order


def create_return(
    *,
    order_type: str,
    load_original,
    items: list[dict],
    return_date=None,
    error_cls: type[ValidationError] = ValidationError,
) -> ReturnOrder:
    """
    load_original() must return the locked original order or raise its
    not-found error.
    """
    def _op() -> ReturnOrder:
        original_order = load_original()
        return_order = create_return_inner(
            order_type=order_type,
            original_order=original_order,
            items=items,
            return_date=return_date,
            error_cls=error_cls,
        )
        db.session.commit()
        logger.info(
            "Created %s return %s against order %s",
            order_type, return_order.order_number, original_order.id,
        )
        return return_order

    return run_with_retry(_op)


def confirm_return(
    return_id: int,
    *,
    order_type: str,
    original_items_for,
    error_cls: type[ValidationError] = ValidationError,
) -> ReturnOrder:
    """
    Post the stock movement of a PENDING return and mark it CONFIRMED.

    The cap is re-checked against returns confirmed since this one was
    created. Any failing line rolls back every line.
    """
    def _op() -> ReturnOrder:
        return_order = lock_for_update(db.session.query(ReturnOrder).filter_by(id=return_id)).first()
        if return_order is None:
            raise ReturnOrderNotFoundError(return_id)
        if return_order.order_type != order_type:
            raise error_cls(
                f"Return {return_order.order_number} is not a {order_type} return",
                details={"return_id": return_id, "order_type": return_order.order_type},
            )
        if return_order.status != ORDER_STATUS_PENDING:
            raise OrderAlreadyConfirmedError(return_id)

        lines = []
        for item in return_order.items:
            lines.append((_load_product(item.product_id), as_decimal(item.quantity), item.unit))

        _check_caps(
            order_type=order_type,
            original_order_id=return_order.original_order_id,
            original_items=original_items_for(return_order.original_order_id),
            lines=lines,
            exclude_return_id=return_order.id,
        )

        direction = RETURN_STOCK_DIRECTION[order_type]
        for product, quantity, unit in lines:
            apply_inventory_change(
                product=product,
                quantity_change=quantity * direction,
                transaction_type=TRANSACTION_RETURN,
                unit=unit,
                reference_id=return_order.id,
                reference_type=REFERENCE_TYPE_RETURN,
                note=f"Return: {return_order.order_number}",
            )

        return_order.status = ORDER_STATUS_CONFIRMED
        return_order.confirmed_at = utcnow()
        db.session.commit()
        logger.info("Confirmed %s return %s", order_type, return_order.order_number)
        return return_order

    return run_with_retry(_op)


def get_return_order(return_id: int) -> ReturnOrder | None:
    return db.session.get(ReturnOrder, return_id)


def get_returns_for_order(order_type: str, original_order_id: int) -> list[ReturnOrder]:
    return (
        db.session.query(ReturnOrder)
        .filter_by(order_type=order_type, original_order_id=original_order_id)
        .order_by(ReturnOrder.created_at.desc(), ReturnOrder.id.desc())
        .all()
    )
