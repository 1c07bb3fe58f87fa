# Overview: Read-only aggregation over CONFIRMED sales orders.

# backend/shopledger/services/statistics_service.py
"""
Sales statistics. Nothing here writes to the database.

- Only CONFIRMED sales orders whose order_date falls in [start, end]
  (inclusive both ends) are counted. A plain date (or "YYYY-MM-DD") as the
  end bound covers that whole day.
- Quantities are summed in base units. A line whose unit is no longer
  registered, or whose product is gone, is counted as base units.
- Cost uses the product's current purchase price.
"""
from __future__ import annotations

from collections import OrderedDict
from datetime import date, datetime, time
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Product, SalesOrder, SalesOrderItem
from ..models.orders import ORDER_STATUS_CONFIRMED
from ..decimal_utils import HUNDRED, ZERO, as_decimal, round_money, round_quantity
from ..validation import UnitNotFoundError, ValidationError, coerce_datetime
from .units_service import to_base_units


def _is_date_only(value) -> bool:
    if isinstance(value, date) and not isinstance(value, datetime):
        return True
    return isinstance(value, str) and len(value.strip()) == 10


def _parse_range(start, end) -> tuple[datetime | None, datetime | None]:
    start_dt = coerce_datetime(start, "start", default_now=False)
    end_dt = coerce_datetime(end, "end", default_now=False)
    if end_dt is not None and _is_date_only(end):
        end_dt = datetime.combine(end_dt.date(), time.max)
    if start_dt and end_dt and start_dt > end_dt:
        raise ValidationError("start must not be after end", details={"start": start, "end": end})
    return start_dt, end_dt


def _confirmed_orders(start, end, *, newest_first: bool = False) -> list[SalesOrder]:
    start_dt, end_dt = _parse_range(start, end)
    query = db.session.query(SalesOrder).filter(SalesOrder.status == ORDER_STATUS_CONFIRMED)
    if start_dt is not None:
        query = query.filter(SalesOrder.order_date >= start_dt)
    if end_dt is not None:
        query = query.filter(SalesOrder.order_date <= end_dt)
    if newest_first:
        query = query.order_by(SalesOrder.order_date.desc(), SalesOrder.id.desc())
    else:
        query = query.order_by(SalesOrder.order_date.asc(), SalesOrder.id.asc())
    return query.all()


class _ProductCache:
    def __init__(self):
        self._products: dict[int, Product | None] = {}

    def get(self, product_id: int) -> Product | None:
        if product_id not in self._products:
            self._products[product_id] = db.session.get(Product, product_id)
        return self._products[product_id]


def _base_quantity(product: Product | None, item: SalesOrderItem) -> Decimal:
    quantity = as_decimal(item.quantity)
    if product is None:
        return quantity
    try:
        return to_base_units(product, quantity, item.unit)
    except UnitNotFoundError:
        return quantity


def _items_for(orders: list[SalesOrder]) -> list[SalesOrderItem]:
    items = []
    for order in orders:
        items.extend(order.items)
    return items


def get_sales_summary(start, end) -> dict:
    orders = _confirmed_orders(start, end)
    cache = _ProductCache()
    total_sales = sum((as_decimal(o.total_amount) for o in orders), ZERO)
    total_quantity = sum(
        (_base_quantity(cache.get(i.product_id), i) for i in _items_for(orders)), ZERO
    )
    return {
        "total_sales": round_money(total_sales),
        "total_orders": len(orders),
        "total_quantity": round_quantity(total_quantity),
    }


def get_daily_sales(start, end) -> list[dict]:
    """One row per calendar day (UTC) that has sales, oldest first."""
    days: "OrderedDict[str, dict]" = OrderedDict()
    for order in _confirmed_orders(start, end):
        key = order.order_date.date().isoformat()
        row = days.setdefault(key, {"date": key, "sales": ZERO, "orders": 0})
        row["sales"] += as_decimal(order.total_amount)
        row["orders"] += 1

    result = sorted(days.values(), key=lambda r: r["date"])
    for row in result:
        row["sales"] = round_money(row["sales"])
    return result


def get_top_selling_products(start, end, limit: int | None = None) -> list[dict]:
    """
    Products ranked by base-unit quantity sold (ties keep first-seen order).

    Rows: {product, quantity, sales}. Deleted products are left out.
    """
    if limit is None:
        limit = current_app.config.get("TOP_SELLING_DEFAULT_LIMIT", 10)
    if limit < 0:
        raise ValidationError("limit must not be negative", details={"limit": limit})

    cache = _ProductCache()
    totals: "OrderedDict[int, dict]" = OrderedDict()
    for item in _items_for(_confirmed_orders(start, end)):
        product = cache.get(item.product_id)
        row = totals.setdefault(item.product_id, {"quantity": ZERO, "sales": ZERO})
        row["quantity"] += _base_quantity(product, item)
        row["sales"] += as_decimal(item.subtotal)

    ranked = [
        {
            "product": cache.get(product_id),
            "quantity": round_quantity(row["quantity"]),
            "sales": round_money(row["sales"]),
        }
        for product_id, row in totals.items()
        if cache.get(product_id) is not None
    ]
    # sorted() is stable
    ranked = sorted(ranked, key=lambda r: r["quantity"], reverse=True)
    return ranked[:limit]


def calculate_gross_profit(start, end) -> dict:
    """
    total_sales - sum(base quantity x current purchase price).

    profit_margin is a percentage of total_sales (0 when there are no sales).
    """
    orders = _confirmed_orders(start, end)
    cache = _ProductCache()

    total_sales = sum((as_decimal(o.total_amount) for o in orders), ZERO)
    total_cost = ZERO
    for item in _items_for(orders):
        product = cache.get(item.product_id)
        if product is None:
            continue
        total_cost += _base_quantity(product, item) * as_decimal(product.purchase_price)

    gross_profit = total_sales - total_cost
    margin = gross_profit / total_sales * HUNDRED if total_sales != 0 else ZERO

    return {
        "total_sales": round_money(total_sales),
        "total_cost": round_money(total_cost),
        "gross_profit": round_money(gross_profit),
        "profit_margin": round_money(margin),
    }


def search_sales_history(*, start=None, end=None, product_id: int | None = None) -> list[SalesOrder]:
    """Confirmed orders, newest first; product_id keeps orders containing it."""
    orders = _confirmed_orders(start, end, newest_first=True)
    if product_id is not None:
        orders = [o for o in orders if any(i.product_id == product_id for i in o.items)]
    return orders


def get_product_sales_detail(product_id: int, start, end) -> dict:
    cache = _ProductCache()
    product = cache.get(product_id)

    total_quantity = ZERO
    total_sales = ZERO
    order_ids = set()
    details = []
    for order in _confirmed_orders(start, end, newest_first=True):
        for item in order.items:
            if item.product_id != product_id:
                continue
            order_ids.add(order.id)
            total_quantity += _base_quantity(product, item)
            total_sales += as_decimal(item.subtotal)
            details.append(
                {
                    "order_number": order.order_number,
                    "order_date": order.order_date,
                    "quantity": as_decimal(item.quantity),
                    "unit": item.unit,
                    "unit_price": as_decimal(item.unit_price),
                    "subtotal": as_decimal(item.subtotal),
                }
            )

    return {
        "product": product,
        "total_quantity": round_quantity(total_quantity),
        "total_sales": round_money(total_sales),
        "order_count": len(order_ids),
        "details": details,
    }
