# Overview: The inventory ledger. Sole writer of InventoryRecord.quantity.

# backend/shopledger/services/inventory_service.py
"""
Inventory invariants (authoritative)

- Stock is a stored quantity per product (InventoryRecord), in base units.
  The transaction log is audit history and is never summed to derive stock.
- Every change goes through apply_inventory_change, which writes the new
  quantity and appends exactly one InventoryTransaction in the same unit of
  work. The one exception is post_count_adjustment: a completed stock-take
  logs its counted difference and then sets stock to the counted quantity. quantity_change is stored in the product's base unit regardless of
  the unit the caller used.
- A change that would leave stock below zero is rejected unless its type is
  ADJUSTMENT.
- Low stock means quantity < min_stock_threshold (strict).
"""
from __future__ import annotations

import logging
from decimal import Decimal

from ..extensions import db
from ..models import InventoryRecord, InventoryTransaction, Product
from ..models.inventory import TRANSACTION_ADJUSTMENT, TRANSACTION_TYPES
from ..decimal_utils import ZERO, as_decimal, round_quantity, to_decimal
from ..validation import (
    InsufficientStockError,
    InvalidQuantityError,
    LedgerError,
    ProductNotFoundError,
    ValidationError,
    coerce_datetime,
)
from .concurrency import lock_for_update, run_with_retry
from .units_service import to_base_units
from shopledger.time_utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_ADJUSTMENT_NOTE = "Stock count adjustment"


def _ensure_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ProductNotFoundError(product_id)
    return product


def _load_record(product_id: int, *, create: bool = False) -> InventoryRecord | None:
    record = lock_for_update(
        db.session.query(InventoryRecord).filter_by(product_id=product_id)
    ).first()
    if record is None and create:
        record = InventoryRecord(product_id=product_id, quantity=ZERO, last_updated=utcnow())
        db.session.add(record)
        db.session.flush()
    return record


def current_quantity(product_id: int) -> Decimal:
    record = db.session.query(InventoryRecord).filter_by(product_id=product_id).first()
    return as_decimal(record.quantity) if record else ZERO


def apply_inventory_change(
    *,
    product: Product,
    quantity_change,
    transaction_type: str,
    unit: str | None = None,
    reference_id: int | None = None,
    reference_type: str | None = None,
    note: str | None = None,
) -> InventoryRecord:
    """
    Apply one stock movement inside the caller's unit of work (flush, no commit).

    Raises:
        ValidationError: unknown transaction type
        UnitNotFoundError: unit is neither the base unit nor a package unit
        InsufficientStockError: result < 0 for a non-ADJUSTMENT movement
    """
    if transaction_type not in TRANSACTION_TYPES:
        raise ValidationError(
            f"Unknown transaction type: {transaction_type}",
            details={"transaction_type": transaction_type},
        )

    base_change = to_base_units(product, quantity_change, unit or product.base_unit)

    record = _load_record(product.id, create=True)
    available = as_decimal(record.quantity)
    new_quantity = round_quantity(available + base_change)

    if new_quantity < 0 and transaction_type != TRANSACTION_ADJUSTMENT:
        logger.warning(
            "Rejected %s of %s %s for product %s: only %s on hand",
            transaction_type, base_change, product.base_unit, product.id, available,
        )
        raise InsufficientStockError(product.id, abs(base_change), available, product.name)

    record.quantity = new_quantity
    record.last_updated = utcnow()

    db.session.add(
        InventoryTransaction(
            product_id=product.id,
            transaction_type=transaction_type,
            quantity_change=base_change,
            unit=product.base_unit,
            reference_id=reference_id,
            reference_type=reference_type,
            timestamp=utcnow(),
            note=note,
        )
    )
    db.session.flush()
    return record


def set_quantity_inner(
    *,
    product: Product,
    new_quantity,
    note: str | None = None,
    reference_id: int | None = None,
    reference_type: str | None = None,
) -> InventoryRecord:
    target = to_decimal(new_quantity, "new_quantity", InvalidQuantityError)
    if target < 0:
        raise InvalidQuantityError(
            "Inventory quantity must not be negative", details={"new_quantity": target}
        )
    delta = round_quantity(target) - current_quantity(product.id)
    return apply_inventory_change(
        product=product,
        quantity_change=delta,
        transaction_type=TRANSACTION_ADJUSTMENT,
        unit=product.base_unit,
        reference_id=reference_id,
        reference_type=reference_type,
        note=note if note is not None else DEFAULT_ADJUSTMENT_NOTE,
    )


def post_count_adjustment(
    *,
    product: Product,
    difference,
    actual_quantity,
    note: str | None = None,
    reference_id: int | None = None,
    reference_type: str | None = None,
) -> InventoryRecord:
    """
    Log a counted difference as one ADJUSTMENT, then pin stock to the count.

    The transaction carries the difference recorded at counting time. Stock
    that moved after the snapshot is not re-derived: the counted quantity
    wins. Flushes, does not commit.
    """
    counted = to_decimal(actual_quantity, "actual_quantity", InvalidQuantityError)
    if counted < 0:
        raise InvalidQuantityError(
            "Counted quantity must not be negative", details={"actual_quantity": counted}
        )
    record = apply_inventory_change(
        product=product,
        quantity_change=difference,
        transaction_type=TRANSACTION_ADJUSTMENT,
        unit=product.base_unit,
        reference_id=reference_id,
        reference_type=reference_type,
        note=note if note is not None else DEFAULT_ADJUSTMENT_NOTE,
    )
    counted = round_quantity(counted)
    if as_decimal(record.quantity) != counted:
        logger.info(
            "Stock of product %s moved since the count; setting %s (ledger had %s)",
            product.id, counted, record.quantity,
        )
        record.quantity = counted
        db.session.flush()
    return record


def adjust_inventory(
    product_id: int,
    quantity_change,
    transaction_type: str,
    *,
    unit: str | None = None,
    reference_id: int | None = None,
    reference_type: str | None = None,
    note: str | None = None,
) -> InventoryRecord:
    """Public entry: one stock movement, committed on success."""
    def _op() -> InventoryRecord:
        product = _ensure_product(product_id, lock=True)
        record = apply_inventory_change(
            product=product,
            quantity_change=quantity_change,
            transaction_type=transaction_type,
            unit=unit,
            reference_id=reference_id,
            reference_type=reference_type,
            note=note,
        )
        db.session.commit()
        logger.info(
            "Inventory %s for product %s -> %s", transaction_type, product.code, record.quantity
        )
        return record

    return run_with_retry(_op)


def set_inventory_quantity(product_id: int, new_quantity, note: str | None = None) -> InventoryRecord:
    """Set absolute stock by routing the delta through an ADJUSTMENT."""
    def _op() -> InventoryRecord:
        product = _ensure_product(product_id, lock=True)
        record = set_quantity_inner(product=product, new_quantity=new_quantity, note=note)
        db.session.commit()
        logger.info("Inventory for product %s set to %s", product.code, record.quantity)
        return record

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_inventory(product_id: int) -> InventoryRecord | None:
    return db.session.query(InventoryRecord).filter_by(product_id=product_id).first()


def get_inventory_with_product(product_id: int) -> dict | None:
    product = db.session.get(Product, product_id)
    if product is None:
        return None
    return {"product": product, "inventory": product.inventory}


def list_inventory() -> list[dict]:
    rows = (
        db.session.query(Product, InventoryRecord)
        .outerjoin(InventoryRecord, InventoryRecord.product_id == Product.id)
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
    return [{"product": product, "inventory": record} for product, record in rows]


def list_inventory_transactions(
    *,
    product_id: int | None = None,
    start=None,
    end=None,
    transaction_type: str | None = None,
) -> list[InventoryTransaction]:
    """Oldest first. start/end are inclusive."""
    start_dt = coerce_datetime(start, "start", default_now=False)
    end_dt = coerce_datetime(end, "end", default_now=False)

    query = db.session.query(InventoryTransaction)
    if product_id is not None:
        query = query.filter(InventoryTransaction.product_id == product_id)
    if transaction_type:
        query = query.filter(InventoryTransaction.transaction_type == transaction_type)
    if start_dt is not None:
        query = query.filter(InventoryTransaction.timestamp >= start_dt)
    if end_dt is not None:
        query = query.filter(InventoryTransaction.timestamp <= end_dt)
    return query.order_by(InventoryTransaction.timestamp.asc(), InventoryTransaction.id.asc()).all()


def is_low_stock(product_id: int) -> bool:
    product = db.session.get(Product, product_id)
    if product is None:
        return False
    return current_quantity(product_id) < as_decimal(product.min_stock_threshold)


def get_low_stock_products() -> list[dict]:
    """Products strictly below threshold, largest deficit first."""
    report = []
    for row in list_inventory():
        product = row["product"]
        quantity = as_decimal(row["inventory"].quantity) if row["inventory"] else ZERO
        threshold = as_decimal(product.min_stock_threshold)
        if quantity < threshold:
            report.append(
                {
                    "product": product,
                    "inventory": row["inventory"],
                    "deficit": round_quantity(threshold - quantity),
                }
            )
    report.sort(key=lambda r: r["deficit"], reverse=True)
    return report


def check_stock_availability(product_id: int, quantity, unit: str) -> bool:
    product = _ensure_product(product_id)
    required = to_base_units(product, quantity, unit)
    return current_quantity(product_id) >= required


def check_batch_stock_availability(items: list[dict]) -> list[dict]:
    """
    Per item {product_id, quantity, unit}: {product_id, available, shortage?}.

    Unknown products or units report available=False with the error message.
    """
    results = []
    for item in items:
        product_id = item.get("product_id")
        try:
            product = _ensure_product(product_id)
            required = to_base_units(product, item.get("quantity"), item.get("unit") or product.base_unit)
        except LedgerError as exc:
            results.append({"product_id": product_id, "available": False, "error": exc.message})
            continue

        on_hand = current_quantity(product_id)
        if on_hand >= required:
            results.append({"product_id": product_id, "available": True})
        else:
            results.append(
                {
                    "product_id": product_id,
                    "available": False,
                    "shortage": round_quantity(required - on_hand),
                }
            )
    return results
