from __future__ import annotations

from ..extensions import db
from ..decimal_utils import as_decimal
from .catalog import MONEY, PRICE, QUANTITY
from shopledger.time_utils import to_utc_z, utcnow

ORDER_STATUS_PENDING = "PENDING"
ORDER_STATUS_CONFIRMED = "CONFIRMED"


class PurchaseOrder(db.Model):
    """
    Purchase document (PENDING -> CONFIRMED, terminal).

    Stock is untouched until confirmation; confirmation posts one PURCHASE
    transaction per item.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("ix_purchase_orders_status_date", "status", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True)
    supplier = db.Column(db.String(255), nullable=False)
    order_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    total_amount = db.Column(MONEY, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    confirmed_at = db.Column(db.DateTime, nullable=True)

    items = db.relationship(
        "PurchaseOrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.id",
        lazy=True,
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "supplier": self.supplier,
            "order_date": to_utc_z(self.order_date),
            "total_amount": as_decimal(self.total_amount),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseOrderItem(db.Model):
    """
    One purchase line. product_name is captured at creation and never
    refreshed from the catalog.
    """
    __tablename__ = "purchase_order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(
        db.Integer, db.ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(QUANTITY, nullable=False)
    unit = db.Column(db.String(32), nullable=False)
    unit_price = db.Column(PRICE, nullable=False)
    subtotal = db.Column(MONEY, nullable=False)

    order = db.relationship("PurchaseOrder", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": as_decimal(self.quantity),
            "unit": self.unit,
            "unit_price": as_decimal(self.unit_price),
            "subtotal": as_decimal(self.subtotal),
        }


class SalesOrder(db.Model):
    """
    Sales document (PENDING -> CONFIRMED, terminal).

    total_amount = max(0, subtotal - discount_amount - rounding_amount).
    While PENDING the items, discount, rounding and prices are editable;
    confirmation checks stock for every item before any SALE transaction
    is written.
    """
    __tablename__ = "sales_orders"
    __table_args__ = (
        db.Index("ix_sales_orders_status_date", "status", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True)
    customer_name = db.Column(db.String(255), nullable=True)
    order_date = db.Column(db.DateTime, nullable=False, default=utcnow)

    subtotal = db.Column(MONEY, nullable=False, default=0)
    discount_amount = db.Column(MONEY, nullable=False, default=0)
    rounding_amount = db.Column(MONEY, nullable=False, default=0)
    total_amount = db.Column(MONEY, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    confirmed_at = db.Column(db.DateTime, nullable=True)

    items = db.relationship(
        "SalesOrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="SalesOrderItem.id",
        lazy=True,
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_name": self.customer_name,
            "order_date": to_utc_z(self.order_date),
            "subtotal": as_decimal(self.subtotal),
            "discount_amount": as_decimal(self.discount_amount),
            "rounding_amount": as_decimal(self.rounding_amount),
            "total_amount": as_decimal(self.total_amount),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SalesOrderItem(db.Model):
    """
    One sales line. unit_price may be overridden while PENDING;
    original_price keeps the price captured at creation.
    """
    __tablename__ = "sales_order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sales_order_id = db.Column(
        db.Integer, db.ForeignKey("sales_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(QUANTITY, nullable=False)
    unit = db.Column(db.String(32), nullable=False)
    unit_price = db.Column(PRICE, nullable=False)
    original_price = db.Column(PRICE, nullable=False)
    subtotal = db.Column(MONEY, nullable=False)

    order = db.relationship("SalesOrder", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sales_order_id": self.sales_order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": as_decimal(self.quantity),
            "unit": self.unit,
            "unit_price": as_decimal(self.unit_price),
            "original_price": as_decimal(self.original_price),
            "subtotal": as_decimal(self.subtotal),
        }
