# backend/shopledger/services/stock_taking_service.py
"""
Physical stock-take (inventory reconciliation).

LIFECYCLE:
1. IN_PROGRESS: every product snapshotted; actual counts being entered
2. COMPLETED: differences posted to the inventory ledger (terminal)

difference = actual_quantity - system_quantity (3dp, base units).
Completing posts each non-zero difference as one ADJUSTMENT and then
sets the ledger to the counted quantity, even if stock moved after the
snapshot. Items without a difference produce no transaction.
"""
from __future__ import annotations

import logging
from decimal import Decimal

from ..extensions import db
from ..models import InventoryRecord, Product, StockTaking, StockTakingItem
from ..models.documents import STOCK_TAKING_COMPLETED, STOCK_TAKING_IN_PROGRESS
from ..decimal_utils import ZERO, as_decimal, round_quantity, to_decimal
from ..validation import (
    InvalidQuantityError,
    ProductNotFoundError,
    StockTakingAlreadyCompletedError,
    StockTakingItemNotFoundError,
    StockTakingNotFoundError,
    ValidationError,
    coerce_datetime,
)
from .concurrency import lock_for_update, run_with_retry
from .inventory_service import post_count_adjustment
from shopledger.time_utils import utcnow

logger = logging.getLogger(__name__)

REFERENCE_TYPE_STOCK_TAKING = "stock_taking"


def _require_taking(taking_id: int) -> StockTaking:
    taking = lock_for_update(db.session.query(StockTaking).filter_by(id=taking_id)).first()
    if taking is None:
        raise StockTakingNotFoundError(taking_id)
    return taking


def _require_in_progress(taking_id: int) -> StockTaking:
    taking = _require_taking(taking_id)
    if taking.status != STOCK_TAKING_IN_PROGRESS:
        raise StockTakingAlreadyCompletedError(taking_id)
    return taking


def create_stock_taking(taking_date=None) -> StockTaking:
    """Open a stock-take with one item per product, actual pre-seeded to system."""
    taken_at = coerce_datetime(taking_date, "taking_date")

    def _op() -> StockTaking:
        taking = StockTaking(taking_date=taken_at, status=STOCK_TAKING_IN_PROGRESS)

        rows = (
            db.session.query(Product, InventoryRecord.quantity)
            .outerjoin(InventoryRecord, InventoryRecord.product_id == Product.id)
            .order_by(Product.name.asc(), Product.id.asc())
            .all()
        )
        for product, quantity in rows:
            system_quantity = round_quantity(as_decimal(quantity))
            taking.items.append(
                StockTakingItem(
                    product_id=product.id,
                    product_name=product.name,
                    system_quantity=system_quantity,
                    actual_quantity=system_quantity,
                    difference=ZERO,
                    unit=product.base_unit,
                )
            )

        db.session.add(taking)
        db.session.commit()
        logger.info("Opened stock taking %s with %d items", taking.id, len(rows))
        return taking

    return run_with_retry(_op)


def _clean_actual(actual_quantity) -> Decimal:
    actual = to_decimal(actual_quantity, "actual_quantity", InvalidQuantityError)
    if actual < 0:
        raise InvalidQuantityError(
            "Actual quantity must not be negative", details={"actual_quantity": actual}
        )
    return round_quantity(actual)


def _record(taking: StockTaking, product_id: int, actual: Decimal) -> StockTakingItem:
    item = next((i for i in taking.items if i.product_id == product_id), None)
    if item is None:
        raise StockTakingItemNotFoundError(taking.id, product_id)
    item.actual_quantity = actual
    item.difference = round_quantity(actual - as_decimal(item.system_quantity))
    return item


def record_actual_quantity(taking_id: int, product_id: int, actual_quantity) -> StockTakingItem:
    actual = _clean_actual(actual_quantity)

    def _op() -> StockTakingItem:
        taking = _require_in_progress(taking_id)
        item = _record(taking, product_id, actual)
        db.session.commit()
        return item

    return run_with_retry(_op)


def record_actual_quantities(taking_id: int, entries: list[dict]) -> StockTaking:
    """Batch form; entries are {product_id, actual_quantity}. All or nothing."""
    cleaned = [(e.get("product_id"), _clean_actual(e.get("actual_quantity"))) for e in entries]

    def _op() -> StockTaking:
        taking = _require_in_progress(taking_id)
        for product_id, actual in cleaned:
            _record(taking, product_id, actual)
        db.session.commit()
        return taking

    return run_with_retry(_op)


def complete_stock_taking(taking_id: int) -> StockTaking:
    """
    Post differences and close the stock-take.

    Each non-zero item logs its recorded difference as one ADJUSTMENT; the
    ledger then holds the counted quantity.
    """
    def _op() -> StockTaking:
        taking = _require_in_progress(taking_id)

        adjusted = 0
        for item in taking.items:
            difference = as_decimal(item.difference)
            if difference == 0:
                continue
            product = db.session.get(Product, item.product_id)
            if product is None:
                raise ProductNotFoundError(item.product_id)
            post_count_adjustment(
                product=product,
                difference=difference,
                actual_quantity=as_decimal(item.actual_quantity),
                note=(
                    f"Stock taking {taking.id}: system {as_decimal(item.system_quantity)}, "
                    f"actual {as_decimal(item.actual_quantity)}"
                ),
                reference_id=taking.id,
                reference_type=REFERENCE_TYPE_STOCK_TAKING,
            )
            adjusted += 1

        taking.status = STOCK_TAKING_COMPLETED
        taking.completed_at = utcnow()
        db.session.commit()
        logger.info("Completed stock taking %s (%d adjustments)", taking.id, adjusted)
        return taking

    return run_with_retry(_op)


def delete_stock_taking(taking_id: int) -> None:
    def _op() -> None:
        taking = _require_in_progress(taking_id)
        db.session.delete(taking)
        db.session.commit()
        logger.info("Deleted stock taking %s", taking_id)

    return run_with_retry(_op)


def get_stock_taking(taking_id: int) -> StockTaking | None:
    return db.session.get(StockTaking, taking_id)


def list_stock_takings(status: str | None = None) -> list[StockTaking]:
    query = db.session.query(StockTaking)
    if status:
        if status not in (STOCK_TAKING_IN_PROGRESS, STOCK_TAKING_COMPLETED):
            raise ValidationError(f"Unknown stock taking status: {status}", details={"status": status})
        query = query.filter(StockTaking.status == status)
    return query.order_by(StockTaking.taking_date.desc(), StockTaking.id.desc()).all()


def get_stock_taking_difference_summary(taking_id: int) -> dict:
    taking = db.session.get(StockTaking, taking_id)
    if taking is None:
        raise StockTakingNotFoundError(taking_id)

    with_difference = 0
    positive = ZERO
    negative = ZERO
    for item in taking.items:
        difference = as_decimal(item.difference)
        if difference == 0:
            continue
        with_difference += 1
        if difference > 0:
            positive += difference
        else:
            negative += -difference

    return {
        "total_items": len(taking.items),
        "items_with_difference": with_difference,
        "total_positive_difference": round_quantity(positive),
        "total_negative_difference": round_quantity(negative),
    }
