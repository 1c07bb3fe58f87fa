# backend/shopledger/validation.py
"""
Typed failures raised by the ledger services, plus small input coercers.

Every error carries a human-readable message (shown verbatim by callers) and
a ``details`` dict with the structured values behind it.

    LedgerError
    |
    +-- ValidationError        malformed / missing / out-of-range input
    +-- NotFoundError          a required reference does not exist
    +-- ConflictError          operation not allowed in the current state
    +-- BusinessRuleError      stock / return-cap rules
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from shopledger.time_utils import normalize_datetime


class LedgerError(Exception):
    """Base class for every failure raised by the ledger services."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(LedgerError, ValueError):
    """400-level input problem."""


class NotFoundError(LedgerError, LookupError):
    """404-level missing reference."""


class ConflictError(LedgerError):
    """409-level state conflict (e.g., confirming a confirmed order)."""


class BusinessRuleError(LedgerError):
    """422-level business rule violation (stock, return caps)."""


# =============================================================================
# VALIDATION ERRORS
# =============================================================================

class ProductValidationError(ValidationError):
    pass


class PackageUnitValidationError(ValidationError):
    pass


class PurchaseOrderValidationError(ValidationError):
    pass


class SalesOrderValidationError(ValidationError):
    pass


class StorageLocationValidationError(ValidationError):
    pass


class InvalidQuantityError(ValidationError):
    pass


class InvalidItemIndexError(ValidationError):
    def __init__(self, index: int):
        super().__init__(f"Invalid item index: {index}", details={"index": index})
        self.index = index


# =============================================================================
# NOT FOUND ERRORS
# =============================================================================

class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id):
        super().__init__(f"Product not found: {product_id}", details={"product_id": product_id})
        self.product_id = product_id


class UnitNotFoundError(NotFoundError):
    def __init__(self, product_id, unit: str):
        super().__init__(
            f"Unit not found: {unit} (product {product_id})",
            details={"product_id": product_id, "unit": unit},
        )
        self.product_id = product_id
        self.unit = unit


class PackageUnitNotFoundError(UnitNotFoundError):
    pass


class PurchaseOrderNotFoundError(NotFoundError):
    def __init__(self, order_id):
        super().__init__(f"Purchase order not found: {order_id}", details={"order_id": order_id})
        self.order_id = order_id


class SalesOrderNotFoundError(NotFoundError):
    def __init__(self, order_id):
        super().__init__(f"Sales order not found: {order_id}", details={"order_id": order_id})
        self.order_id = order_id


class ReturnOrderNotFoundError(NotFoundError):
    def __init__(self, return_id):
        super().__init__(f"Return order not found: {return_id}", details={"return_id": return_id})
        self.return_id = return_id


class StockTakingNotFoundError(NotFoundError):
    def __init__(self, taking_id):
        super().__init__(f"Stock taking not found: {taking_id}", details={"taking_id": taking_id})
        self.taking_id = taking_id


class StockTakingItemNotFoundError(NotFoundError):
    def __init__(self, taking_id, product_id):
        super().__init__(
            f"Product {product_id} is not part of stock taking {taking_id}",
            details={"taking_id": taking_id, "product_id": product_id},
        )
        self.taking_id = taking_id
        self.product_id = product_id


class StorageLocationNotFoundError(NotFoundError):
    def __init__(self, location_id):
        super().__init__(f"Storage location not found: {location_id}", details={"location_id": location_id})
        self.location_id = location_id


# =============================================================================
# STATE CONFLICTS
# =============================================================================

class OrderAlreadyConfirmedError(ConflictError):
    def __init__(self, order_id):
        super().__init__(f"Order already confirmed: {order_id}", details={"order_id": order_id})
        self.order_id = order_id


class StockTakingAlreadyCompletedError(ConflictError):
    def __init__(self, taking_id):
        super().__init__(f"Stock taking already completed: {taking_id}", details={"taking_id": taking_id})
        self.taking_id = taking_id


class PackageUnitInUseError(ConflictError):
    def __init__(self, unit: str):
        super().__init__(f"Package unit is used by existing orders: {unit}", details={"unit": unit})
        self.unit = unit


class ProductInUseError(ConflictError):
    def __init__(self, product_id):
        super().__init__(
            f"Product {product_id} is referenced by orders or inventory history",
            details={"product_id": product_id},
        )
        self.product_id = product_id


class DuplicateStorageLocationError(ConflictError):
    def __init__(self, name: str):
        super().__init__(f"Storage location already exists: {name}", details={"name": name})
        self.name = name


class StorageLocationInUseError(ConflictError):
    def __init__(self, name: str):
        super().__init__(f"Storage location still has products: {name}", details={"name": name})
        self.name = name


# =============================================================================
# BUSINESS RULES
# =============================================================================

class InsufficientStockError(BusinessRuleError):
    def __init__(self, product_id, required: Decimal, available: Decimal, product_name: str | None = None):
        label = f"{product_name} ({product_id})" if product_name else str(product_id)
        super().__init__(
            f"Insufficient stock for {label}: required {required}, available {available}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "required": required,
                "available": available,
            },
        )
        self.product_id = product_id
        self.product_name = product_name
        self.required = required
        self.available = available


class ReturnQuantityExceededError(BusinessRuleError):
    def __init__(self, product_id, max_quantity: Decimal, requested_quantity: Decimal):
        super().__init__(
            f"Return quantity {requested_quantity} exceeds returnable quantity "
            f"{max_quantity} for product {product_id}",
            details={
                "product_id": product_id,
                "max_quantity": max_quantity,
                "requested_quantity": requested_quantity,
            },
        )
        self.product_id = product_id
        self.max_quantity = max_quantity
        self.requested_quantity = requested_quantity


# =============================================================================
# INPUT COERCION
# =============================================================================

def require_text(value: Any, message: str, error_cls: type[ValidationError] = ValidationError) -> str:
    """Strip a required string; blank or missing values raise ``error_cls``."""
    if value is None:
        raise error_cls(message)
    text = str(value).strip()
    if not text:
        raise error_cls(message)
    return text


def optional_text(value: Any) -> str | None:
    """Strip an optional string; blank collapses to None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def coerce_datetime(
    value: Any,
    field: str,
    error_cls: type[ValidationError] = ValidationError,
    *,
    default_now: bool = True,
) -> datetime | None:
    try:
        return normalize_datetime(value, default_now=default_now)
    except ValueError:
        raise error_cls(f"{field} must be an ISO-8601 datetime")
