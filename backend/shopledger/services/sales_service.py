"""
Sales orders: pricing, discount/rounding, confirmation and sales returns.

Lifecycle: PENDING -> CONFIRMED (terminal). While PENDING the items,
discount, rounding and item prices may change; a CONFIRMED order rejects
every mutation with OrderAlreadyConfirmedError.

Amounts:
    subtotal     = sum(item.subtotal)                     (2dp)
    total_amount = max(0, subtotal - discount - rounding) (2dp)

Stock is checked when the order is created, when items are added and
again on confirmation. Confirmation checks every product before the first
SALE movement is written.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from ..extensions import db
from ..models import Product, ReturnOrder, SalesOrder, SalesOrderItem
from ..models.documents import RETURN_TYPE_SALE
from ..models.inventory import TRANSACTION_SALE
from ..models.orders import ORDER_STATUS_CONFIRMED, ORDER_STATUS_PENDING
from ..decimal_utils import (
    HUNDRED,
    ZERO,
    as_decimal,
    round_money,
    round_price,
    round_quantity,
    to_decimal,
)
from ..validation import (
    InsufficientStockError,
    InvalidItemIndexError,
    OrderAlreadyConfirmedError,
    ProductNotFoundError,
    SalesOrderNotFoundError,
    SalesOrderValidationError,
    coerce_datetime,
    optional_text,
)
from . import return_service
from .concurrency import lock_for_update, run_with_retry
from .document_service import SALES_ORDER_PREFIX, next_order_number
from .inventory_service import apply_inventory_change, current_quantity
from .products_service import PRICE_TYPE_RETAIL, unit_price_for
from .units_service import to_base_units
from shopledger.time_utils import utcnow

logger = logging.getLogger(__name__)

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"

REFERENCE_TYPE_SALES_ORDER = "sales_order"


def _require_order(order_id: int) -> SalesOrder:
    order = lock_for_update(db.session.query(SalesOrder).filter_by(id=order_id)).first()
    if order is None:
        raise SalesOrderNotFoundError(order_id)
    return order


def _require_pending(order_id: int) -> SalesOrder:
    order = _require_order(order_id)
    if order.status != ORDER_STATUS_PENDING:
        raise OrderAlreadyConfirmedError(order_id)
    return order


def _load_product(product_id) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError(product_id)
    return product


def _validate_on_hand(items: list[SalesOrderItem]) -> None:
    """
    Require stock for the summed base-unit quantity of each product.

    Raises InsufficientStockError for the first product that is short.
    """
    required: dict[int, Decimal] = defaultdict(lambda: ZERO)
    products: dict[int, Product] = {}
    for item in items:
        product = products.get(item.product_id) or _load_product(item.product_id)
        products[item.product_id] = product
        required[item.product_id] += to_base_units(product, as_decimal(item.quantity), item.unit)

    for product_id, qty in required.items():
        available = current_quantity(product_id)
        if available < qty:
            product = products[product_id]
            logger.warning(
                "Insufficient stock for %s: required %s, available %s", product.code, qty, available
            )
            raise InsufficientStockError(product_id, round_quantity(qty), available, product.name)


def _build_item(raw: dict) -> SalesOrderItem:
    product_id = raw.get("product_id")
    product = _load_product(product_id)

    quantity = to_decimal(raw.get("quantity"), "quantity", SalesOrderValidationError)
    if quantity <= 0:
        raise SalesOrderValidationError(
            f"Quantity must be greater than 0 (product {product_id})",
            details={"product_id": product_id, "quantity": quantity},
        )

    unit = raw.get("unit") or product.base_unit
    # raises UnitNotFoundError for unknown units
    to_base_units(product, quantity, unit)

    if raw.get("unit_price") is not None:
        unit_price = to_decimal(raw["unit_price"], "unit_price", SalesOrderValidationError)
        if unit_price < 0:
            raise SalesOrderValidationError(
                f"Unit price must not be negative (product {product_id})",
                details={"product_id": product_id, "unit_price": unit_price},
            )
        unit_price = round_price(unit_price)
    else:
        unit_price = unit_price_for(product, unit, PRICE_TYPE_RETAIL)

    quantity = round_quantity(quantity)
    return SalesOrderItem(
        product_id=product.id,
        product_name=product.name,
        quantity=quantity,
        unit=unit,
        unit_price=unit_price,
        original_price=unit_price,
        subtotal=round_money(quantity * unit_price),
    )


def _recalculate(order: SalesOrder) -> None:
    subtotal = round_money(sum((as_decimal(i.subtotal) for i in order.items), ZERO))
    discount = as_decimal(order.discount_amount)
    rounding = as_decimal(order.rounding_amount)
    order.subtotal = subtotal
    order.total_amount = round_money(max(ZERO, subtotal - discount - rounding))


# =============================================================================
# ORDER LIFECYCLE
# =============================================================================

def create_sales_order(*, items: list[dict], customer_name: str | None = None, order_date=None) -> SalesOrder:
    """
    Create a PENDING sales order.

    Each item: {product_id, quantity, unit?, unit_price?}. Without
    unit_price the retail price for the unit is used.

    Raises:
        SalesOrderValidationError: empty items, quantity <= 0, negative price
        UnitNotFoundError: unknown unit for the product
        InsufficientStockError: current stock cannot cover the order
    """
    if not items:
        raise SalesOrderValidationError("Sales order items must not be empty")
    ordered_at = coerce_datetime(order_date, "order_date", SalesOrderValidationError)

    def _op() -> SalesOrder:
        built = [_build_item(raw) for raw in items]
        _validate_on_hand(built)

        order = SalesOrder(
            order_number=next_order_number(prefix=SALES_ORDER_PREFIX, model=SalesOrder),
            customer_name=optional_text(customer_name),
            order_date=ordered_at,
            status=ORDER_STATUS_PENDING,
            discount_amount=ZERO,
            rounding_amount=ZERO,
        )
        for item in built:
            order.items.append(item)
        _recalculate(order)

        db.session.add(order)
        db.session.commit()
        logger.info("Created sales order %s (%s)", order.order_number, order.total_amount)
        return order

    return run_with_retry(_op)


def add_item_to_order(order_id: int, item: dict) -> SalesOrder:
    def _op() -> SalesOrder:
        order = _require_pending(order_id)
        new_item = _build_item(item)
        same_product = [i for i in order.items if i.product_id == new_item.product_id]
        _validate_on_hand(same_product + [new_item])

        order.items.append(new_item)
        _recalculate(order)
        db.session.commit()
        return order

    return run_with_retry(_op)


def recalculate_order_amount(order_id: int) -> SalesOrder:
    """Recompute subtotal from the items and re-apply discount and rounding."""
    def _op() -> SalesOrder:
        order = _require_pending(order_id)
        _recalculate(order)
        db.session.commit()
        return order

    return run_with_retry(_op)


def apply_discount(order_id: int, discount_type: str, value) -> SalesOrder:
    """
    percentage: 0..100 of the subtotal. fixed: 0..subtotal, used as is.
    """
    amount = to_decimal(value, "discount", SalesOrderValidationError)
    if amount < 0:
        raise SalesOrderValidationError("Discount must not be negative", details={"value": amount})
    if discount_type not in (DISCOUNT_PERCENTAGE, DISCOUNT_FIXED):
        raise SalesOrderValidationError(
            f"Unknown discount type: {discount_type}", details={"discount_type": discount_type}
        )
    if discount_type == DISCOUNT_PERCENTAGE and amount > HUNDRED:
        raise SalesOrderValidationError(
            "Percentage discount must not exceed 100", details={"value": amount}
        )

    def _op() -> SalesOrder:
        order = _require_pending(order_id)
        subtotal = as_decimal(order.subtotal)

        if discount_type == DISCOUNT_PERCENTAGE:
            discount = round_money(subtotal * amount / HUNDRED)
        else:
            discount = round_money(amount)
            if discount > subtotal:
                raise SalesOrderValidationError(
                    "Discount must not exceed the order subtotal",
                    details={"discount": discount, "subtotal": subtotal},
                )

        order.discount_amount = discount
        _recalculate(order)
        db.session.commit()
        return order

    return run_with_retry(_op)


def apply_rounding(order_id: int, amount) -> SalesOrder:
    rounding = to_decimal(amount, "rounding", SalesOrderValidationError)
    if rounding < 0:
        raise SalesOrderValidationError("Rounding must not be negative", details={"amount": rounding})
    rounding = round_money(rounding)

    def _op() -> SalesOrder:
        order = _require_pending(order_id)
        ceiling = as_decimal(order.subtotal) - as_decimal(order.discount_amount)
        if rounding > ceiling:
            raise SalesOrderValidationError(
                "Rounding must not exceed the discounted subtotal",
                details={"amount": rounding, "max": ceiling},
            )
        order.rounding_amount = rounding
        _recalculate(order)
        db.session.commit()
        return order

    return run_with_retry(_op)


def adjust_item_price(order_id: int, item_index: int, new_price) -> SalesOrder:
    """Override one item's unit_price; original_price is kept."""
    price = to_decimal(new_price, "unit_price", SalesOrderValidationError)
    if price < 0:
        raise SalesOrderValidationError("Unit price must not be negative", details={"unit_price": price})
    price = round_price(price)

    def _op() -> SalesOrder:
        order = _require_pending(order_id)
        items = list(order.items)
        if not isinstance(item_index, int) or isinstance(item_index, bool) or not 0 <= item_index < len(items):
            raise InvalidItemIndexError(item_index)

        item = items[item_index]
        item.unit_price = price
        item.subtotal = round_money(as_decimal(item.quantity) * price)
        _recalculate(order)
        db.session.commit()
        return order

    return run_with_retry(_op)


def confirm_sales_order(order_id: int) -> SalesOrder:
    """
    Take every item out of stock and mark the order CONFIRMED.

    All items are checked first; if any product is short nothing is moved.
    """
    def _op() -> SalesOrder:
        order = _require_pending(order_id)
        items = list(order.items)
        if not items:
            raise SalesOrderValidationError(
                "Sales order has no items", details={"order_id": order_id}
            )

        _validate_on_hand(items)

        for item in items:
            apply_inventory_change(
                product=_load_product(item.product_id),
                quantity_change=-as_decimal(item.quantity),
                transaction_type=TRANSACTION_SALE,
                unit=item.unit,
                reference_id=order.id,
                reference_type=REFERENCE_TYPE_SALES_ORDER,
                note=f"Sales order: {order.order_number}",
            )

        order.status = ORDER_STATUS_CONFIRMED
        order.confirmed_at = utcnow()
        db.session.commit()
        logger.info("Confirmed sales order %s (%s)", order.order_number, order.total_amount)
        return order

    return run_with_retry(_op)


def delete_sales_order(order_id: int) -> None:
    def _op() -> None:
        order = _require_order(order_id)
        if order.status != ORDER_STATUS_PENDING:
            raise SalesOrderValidationError(
                "Confirmed sales orders cannot be deleted",
                details={"order_id": order_id, "status": order.status},
            )
        db.session.delete(order)
        db.session.commit()
        logger.info("Deleted sales order %s", order.order_number)

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_sales_order(order_id: int) -> SalesOrder | None:
    return db.session.get(SalesOrder, order_id)


def get_sales_order_by_number(order_number: str) -> SalesOrder | None:
    return db.session.query(SalesOrder).filter_by(order_number=order_number).first()


def search_sales_orders(
    *,
    customer_name: str | None = None,
    start=None,
    end=None,
    status: str | None = None,
) -> list[SalesOrder]:
    """Newest first. customer_name is a substring match; start/end are inclusive."""
    start_dt = coerce_datetime(start, "start", SalesOrderValidationError, default_now=False)
    end_dt = coerce_datetime(end, "end", SalesOrderValidationError, default_now=False)

    query = db.session.query(SalesOrder)
    if status:
        query = query.filter(SalesOrder.status == status)
    if start_dt is not None:
        query = query.filter(SalesOrder.order_date >= start_dt)
    if end_dt is not None:
        query = query.filter(SalesOrder.order_date <= end_dt)
    orders = query.order_by(SalesOrder.order_date.desc(), SalesOrder.id.desc()).all()

    needle = (customer_name or "").strip()
    if needle:
        orders = [o for o in orders if needle in (o.customer_name or "")]
    return orders


def list_sales_orders() -> list[SalesOrder]:
    return search_sales_orders()


# =============================================================================
# SALES RETURNS
# =============================================================================

def _sales_items(order_id: int) -> list[SalesOrderItem]:
    return (
        db.session.query(SalesOrderItem)
        .filter_by(sales_order_id=order_id)
        .order_by(SalesOrderItem.id.asc())
        .all()
    )


def create_sales_return(original_order_id: int, items: list[dict], return_date=None) -> ReturnOrder:
    """PENDING return of goods from the customer; same caps as purchase returns."""
    return return_service.create_return(
        order_type=RETURN_TYPE_SALE,
        load_original=lambda: _require_order(original_order_id),
        items=items,
        return_date=return_date,
        error_cls=SalesOrderValidationError,
    )


def confirm_sales_return(return_id: int) -> ReturnOrder:
    """Put the returned goods back into stock (positive RETURN movements)."""
    return return_service.confirm_return(
        return_id,
        order_type=RETURN_TYPE_SALE,
        original_items_for=_sales_items,
        error_cls=SalesOrderValidationError,
    )


def get_return_orders_for_sales_order(order_id: int) -> list[ReturnOrder]:
    return return_service.get_returns_for_order(RETURN_TYPE_SALE, order_id)
