# Overview: Allocation of human-readable product codes and document numbers.

from __future__ import annotations

import logging
import secrets
import string

from flask import current_app

from ..extensions import db
from ..models import Product
from ..validation import ConflictError
from shopledger.time_utils import utcnow

logger = logging.getLogger(__name__)

PRODUCT_CODE_PREFIX = "SP"
PRODUCT_CODE_LENGTH = 6
PRODUCT_CODE_ALPHABET = string.ascii_uppercase + string.digits

PURCHASE_ORDER_PREFIX = "PO"
PURCHASE_RETURN_PREFIX = "PR"
SALES_ORDER_PREFIX = "SO"
SALES_RETURN_PREFIX = "SR"

_BASE36 = string.digits + string.ascii_uppercase


def random_product_code() -> str:
    suffix = "".join(secrets.choice(PRODUCT_CODE_ALPHABET) for _ in range(PRODUCT_CODE_LENGTH))
    return f"{PRODUCT_CODE_PREFIX}{suffix}"


def is_code_taken(code: str) -> bool:
    return db.session.query(Product.id).filter_by(code=code).first() is not None


def allocate_product_code() -> str | None:
    """
    Try random SP codes until one is free.

    Returns None when every attempt collided; the caller then derives a
    code from the product id (see product_code_from_id).
    """
    attempts = current_app.config.get("PRODUCT_CODE_MAX_ATTEMPTS", 10)
    for _ in range(attempts):
        code = random_product_code()
        if not is_code_taken(code):
            return code
    logger.warning("No free random product code after %d attempts", attempts)
    return None


def product_code_from_id(product_id: int) -> str:
    """Deterministic SP code from an integer id (base36, zero padded)."""
    digits = ""
    n = product_id
    while n:
        n, rem = divmod(n, 36)
        digits = _BASE36[rem] + digits
    return f"{PRODUCT_CODE_PREFIX}{digits.rjust(PRODUCT_CODE_LENGTH, '0')}"


def next_order_number(*, prefix: str, model) -> str:
    """
    Allocate `prefix + YYYYMMDD + 4 random digits`, unique in model.order_number.
    """
    date_part = utcnow().strftime("%Y%m%d")
    attempts = current_app.config.get("ORDER_NUMBER_MAX_ATTEMPTS", 10)
    for _ in range(attempts):
        candidate = f"{prefix}{date_part}{secrets.randbelow(10000):04d}"
        exists = db.session.query(model.id).filter_by(order_number=candidate).first()
        if exists is None:
            return candidate
    raise ConflictError(
        f"Could not allocate a unique {prefix} number for {date_part}",
        details={"prefix": prefix, "attempts": attempts},
    )
