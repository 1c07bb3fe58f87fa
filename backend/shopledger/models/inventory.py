from __future__ import annotations

from ..extensions import db
from ..decimal_utils import as_decimal
from .catalog import QUANTITY
from shopledger.time_utils import to_utc_z, utcnow

TRANSACTION_PURCHASE = "PURCHASE"
TRANSACTION_SALE = "SALE"
TRANSACTION_ADJUSTMENT = "ADJUSTMENT"
TRANSACTION_RETURN = "RETURN"

TRANSACTION_TYPES = frozenset(
    {TRANSACTION_PURCHASE, TRANSACTION_SALE, TRANSACTION_ADJUSTMENT, TRANSACTION_RETURN}
)


class InventoryRecord(db.Model):
    """
    Current stock of one product, in base units.

    Only inventory_service.apply_inventory_change writes `quantity`.
    version_id gives optimistic locking; a StaleDataError is retried by
    run_with_retry.
    """
    __tablename__ = "inventory_records"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    quantity = db.Column(QUANTITY, nullable=False, default=0)
    last_updated = db.Column(db.DateTime, nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", back_populates="inventory")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryRecord product_id={self.product_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": as_decimal(self.quantity),
            "last_updated": to_utc_z(self.last_updated),
        }


class InventoryTransaction(db.Model):
    """
    Append-only stock movement log.

    quantity_change is signed and always in the product's base unit.
    reference_id/reference_type point at the originating document
    (purchase_order, sales_order, return_order, stock_taking).
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_inventory_transactions_product_time", "product_id", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    quantity_change = db.Column(QUANTITY, nullable=False)
    unit = db.Column(db.String(32), nullable=False)

    reference_id = db.Column(db.Integer, nullable=True)
    reference_type = db.Column(db.String(32), nullable=True)

    timestamp = db.Column(db.DateTime, nullable=False, default=utcnow)
    note = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "transaction_type": self.transaction_type,
            "quantity_change": as_decimal(self.quantity_change),
            "unit": self.unit,
            "reference_id": self.reference_id,
            "reference_type": self.reference_type,
            "timestamp": to_utc_z(self.timestamp),
            "note": self.note,
        }
