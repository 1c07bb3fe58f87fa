from __future__ import annotations

from ..extensions import db
from ..decimal_utils import as_decimal
from .catalog import MONEY, PRICE, QUANTITY
from .orders import ORDER_STATUS_PENDING
from shopledger.time_utils import to_utc_z, utcnow

RETURN_TYPE_PURCHASE = "PURCHASE"
RETURN_TYPE_SALE = "SALE"

STOCK_TAKING_IN_PROGRESS = "IN_PROGRESS"
STOCK_TAKING_COMPLETED = "COMPLETED"


class ReturnOrder(db.Model):
    """
    Return against a confirmed purchase or sales order.

    order_type is the discriminant: PURCHASE returns take stock out,
    SALE returns put it back. Lifecycle mirrors the orders
    (PENDING -> CONFIRMED).
    """
    __tablename__ = "return_orders"
    __table_args__ = (
        db.Index("ix_return_orders_original", "order_type", "original_order_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True)
    original_order_id = db.Column(db.Integer, nullable=False)
    order_type = db.Column(db.String(16), nullable=False)
    return_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    total_amount = db.Column(MONEY, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    confirmed_at = db.Column(db.DateTime, nullable=True)

    items = db.relationship(
        "ReturnOrderItem",
        back_populates="return_order",
        cascade="all, delete-orphan",
        order_by="ReturnOrderItem.id",
        lazy=True,
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "original_order_id": self.original_order_id,
            "order_type": self.order_type,
            "return_date": to_utc_z(self.return_date),
            "total_amount": as_decimal(self.total_amount),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class ReturnOrderItem(db.Model):
    __tablename__ = "return_order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_order_id = db.Column(
        db.Integer, db.ForeignKey("return_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(QUANTITY, nullable=False)
    unit = db.Column(db.String(32), nullable=False)
    unit_price = db.Column(PRICE, nullable=False)
    subtotal = db.Column(MONEY, nullable=False)

    return_order = db.relationship("ReturnOrder", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_order_id": self.return_order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": as_decimal(self.quantity),
            "unit": self.unit,
            "unit_price": as_decimal(self.unit_price),
            "subtotal": as_decimal(self.subtotal),
        }


class StockTaking(db.Model):
    """
    Physical count session (IN_PROGRESS -> COMPLETED, terminal).

    Items are snapshotted for every product when the session opens.
    """
    __tablename__ = "stock_takings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    taking_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    status = db.Column(db.String(16), nullable=False, default=STOCK_TAKING_IN_PROGRESS, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)

    items = db.relationship(
        "StockTakingItem",
        back_populates="stock_taking",
        cascade="all, delete-orphan",
        order_by="StockTakingItem.id",
        lazy=True,
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "taking_date": to_utc_z(self.taking_date),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class StockTakingItem(db.Model):
    __tablename__ = "stock_taking_items"
    __table_args__ = (
        db.UniqueConstraint("stock_taking_id", "product_id", name="uq_stock_taking_items_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stock_taking_id = db.Column(
        db.Integer, db.ForeignKey("stock_takings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    system_quantity = db.Column(QUANTITY, nullable=False)
    actual_quantity = db.Column(QUANTITY, nullable=False)
    # actual_quantity - system_quantity
    difference = db.Column(QUANTITY, nullable=False, default=0)
    unit = db.Column(db.String(32), nullable=False)

    stock_taking = db.relationship("StockTaking", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_taking_id": self.stock_taking_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "system_quantity": as_decimal(self.system_quantity),
            "actual_quantity": as_decimal(self.actual_quantity),
            "difference": as_decimal(self.difference),
            "unit": self.unit,
        }
