# backend/shopledger/services/purchase_service.py
"""
Purchase orders and purchase returns.

Lifecycle: PENDING -> CONFIRMED (terminal). A PENDING order may be deleted.
Creating an order never touches stock; confirming it posts one PURCHASE
movement per item.
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..models import Product, PurchaseOrder, PurchaseOrderItem, ReturnOrder
from ..models.documents import RETURN_TYPE_PURCHASE
from ..models.inventory import TRANSACTION_PURCHASE
from ..models.orders import ORDER_STATUS_CONFIRMED, ORDER_STATUS_PENDING
from ..decimal_utils import ZERO, as_decimal, round_money, round_price, round_quantity, to_decimal
from ..validation import (
    OrderAlreadyConfirmedError,
    ProductNotFoundError,
    PurchaseOrderNotFoundError,
    PurchaseOrderValidationError,
    coerce_datetime,
    require_text,
)
from . import return_service
from .concurrency import lock_for_update, run_with_retry
from .document_service import PURCHASE_ORDER_PREFIX, next_order_number
from .inventory_service import apply_inventory_change
from .units_service import to_base_units
from shopledger.time_utils import utcnow

logger = logging.getLogger(__name__)

REFERENCE_TYPE_PURCHASE_ORDER = "purchase_order"


def _require_order(order_id: int) -> PurchaseOrder:
    order = lock_for_update(db.session.query(PurchaseOrder).filter_by(id=order_id)).first()
    if order is None:
        raise PurchaseOrderNotFoundError(order_id)
    return order


def _build_item(raw: dict) -> PurchaseOrderItem:
    product_id = raw.get("product_id")
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFoundError(product_id)

    quantity = to_decimal(raw.get("quantity"), "quantity", PurchaseOrderValidationError)
    if quantity <= 0:
        raise PurchaseOrderValidationError(
            f"Quantity must be greater than 0 (product {product_id})",
            details={"product_id": product_id, "quantity": quantity},
        )
    unit_price = to_decimal(raw.get("unit_price"), "unit_price", PurchaseOrderValidationError)
    if unit_price < 0:
        raise PurchaseOrderValidationError(
            f"Unit price must not be negative (product {product_id})",
            details={"product_id": product_id, "unit_price": unit_price},
        )

    unit = raw.get("unit") or product.base_unit
    # raises UnitNotFoundError when the product has no such unit
    to_base_units(product, quantity, unit)

    quantity = round_quantity(quantity)
    unit_price = round_price(unit_price)
    return PurchaseOrderItem(
        product_id=product.id,
        product_name=product.name,
        quantity=quantity,
        unit=unit,
        unit_price=unit_price,
        subtotal=round_money(quantity * unit_price),
    )


def create_purchase_order(*, supplier: str, items: list[dict], order_date=None) -> PurchaseOrder:
    """
    Create a PENDING purchase order. Stock is not changed.

    Each item: {product_id, quantity, unit_price, unit?} (unit defaults to
    the product's base unit).
    """
    clean_supplier = require_text(supplier, "Supplier is required", PurchaseOrderValidationError)
    if not items:
        raise PurchaseOrderValidationError("Purchase order items must not be empty")
    ordered_at = coerce_datetime(order_date, "order_date", PurchaseOrderValidationError)

    def _op() -> PurchaseOrder:
        order = PurchaseOrder(
            order_number=next_order_number(prefix=PURCHASE_ORDER_PREFIX, model=PurchaseOrder),
            supplier=clean_supplier,
            order_date=ordered_at,
            status=ORDER_STATUS_PENDING,
        )
        total = ZERO
        for raw in items:
            item = _build_item(raw)
            total += item.subtotal
            order.items.append(item)
        order.total_amount = round_money(total)

        db.session.add(order)
        db.session.commit()
        logger.info("Created purchase order %s (%s)", order.order_number, order.total_amount)
        return order

    return run_with_retry(_op)


def confirm_purchase_order(order_id: int) -> PurchaseOrder:
    """Receive every item into stock and mark the order CONFIRMED."""
    def _op() -> PurchaseOrder:
        order = _require_order(order_id)
        if order.status != ORDER_STATUS_PENDING:
            raise OrderAlreadyConfirmedError(order_id)

        for item in order.items:
            product = db.session.get(Product, item.product_id)
            if product is None:
                raise ProductNotFoundError(item.product_id)
            apply_inventory_change(
                product=product,
                quantity_change=as_decimal(item.quantity),
                transaction_type=TRANSACTION_PURCHASE,
                unit=item.unit,
                reference_id=order.id,
                reference_type=REFERENCE_TYPE_PURCHASE_ORDER,
                note=f"Purchase order: {order.order_number}",
            )

        order.status = ORDER_STATUS_CONFIRMED
        order.confirmed_at = utcnow()
        db.session.commit()
        logger.info("Confirmed purchase order %s", order.order_number)
        return order

    return run_with_retry(_op)


def delete_purchase_order(order_id: int) -> None:
    def _op() -> None:
        order = _require_order(order_id)
        if order.status != ORDER_STATUS_PENDING:
            raise PurchaseOrderValidationError(
                "Confirmed purchase orders cannot be deleted",
                details={"order_id": order_id, "status": order.status},
            )
        db.session.delete(order)
        db.session.commit()
        logger.info("Deleted purchase order %s", order.order_number)

    return run_with_retry(_op)


def get_purchase_order(order_id: int) -> PurchaseOrder | None:
    return db.session.get(PurchaseOrder, order_id)


def get_purchase_order_by_number(order_number: str) -> PurchaseOrder | None:
    return db.session.query(PurchaseOrder).filter_by(order_number=order_number).first()


def search_purchase_orders(
    *,
    supplier: str | None = None,
    start=None,
    end=None,
    status: str | None = None,
) -> list[PurchaseOrder]:
    """Newest first. supplier is a substring match; start/end are inclusive."""
    start_dt = coerce_datetime(start, "start", PurchaseOrderValidationError, default_now=False)
    end_dt = coerce_datetime(end, "end", PurchaseOrderValidationError, default_now=False)

    query = db.session.query(PurchaseOrder)
    if status:
        query = query.filter(PurchaseOrder.status == status)
    if start_dt is not None:
        query = query.filter(PurchaseOrder.order_date >= start_dt)
    if end_dt is not None:
        query = query.filter(PurchaseOrder.order_date <= end_dt)
    orders = query.order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.id.desc()).all()

    needle = (supplier or "").strip()
    if needle:
        orders = [o for o in orders if needle in o.supplier]
    return orders


def list_purchase_orders() -> list[PurchaseOrder]:
    return search_purchase_orders()


# =============================================================================
# PURCHASE RETURNS
# =============================================================================

def _purchase_items(order_id: int) -> list[PurchaseOrderItem]:
    return (
        db.session.query(PurchaseOrderItem)
        .filter_by(purchase_order_id=order_id)
        .order_by(PurchaseOrderItem.id.asc())
        .all()
    )


def create_purchase_return(original_order_id: int, items: list[dict], return_date=None) -> ReturnOrder:
    """
    PENDING return of goods to the supplier.

    Raises:
        PurchaseOrderNotFoundError: unknown original order
        PurchaseOrderValidationError: order not CONFIRMED, empty items,
            quantity <= 0, product not on the order
        ReturnQuantityExceededError: more than ordered minus already returned
    """
    return return_service.create_return(
        order_type=RETURN_TYPE_PURCHASE,
        load_original=lambda: _require_order(original_order_id),
        items=items,
        return_date=return_date,
        error_cls=PurchaseOrderValidationError,
    )


def confirm_purchase_return(return_id: int) -> ReturnOrder:
    """Take the returned goods out of stock (negative RETURN movements)."""
    return return_service.confirm_return(
        return_id,
        order_type=RETURN_TYPE_PURCHASE,
        original_items_for=_purchase_items,
        error_cls=PurchaseOrderValidationError,
    )


def get_return_orders_for_purchase_order(order_id: int) -> list[ReturnOrder]:
    return return_service.get_returns_for_order(RETURN_TYPE_PURCHASE, order_id)
