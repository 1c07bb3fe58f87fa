from __future__ import annotations

from ..extensions import db
from ..decimal_utils import as_decimal
from shopledger.time_utils import to_utc_z, utcnow

# Column precisions shared by every ledger table
PRICE = db.Numeric(14, 4, asdecimal=True)
QUANTITY = db.Numeric(16, 3, asdecimal=True)
MONEY = db.Numeric(14, 2, asdecimal=True)


class Product(db.Model):
    """
    Product master data.

    PRICING:
    purchase_price / retail_price are per BASE unit (4dp). Package units may
    carry their own override prices; otherwise base price x conversion rate.

    INVENTORY:
    Every product owns exactly one InventoryRecord, created together with the
    product at quantity 0. Stock is always stored in base units.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable unique code ("SP" + 6 chars)
    code = db.Column(db.String(32), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    specification = db.Column(db.String(255), nullable=True)
    base_unit = db.Column(db.String(32), nullable=False)

    purchase_price = db.Column(PRICE, nullable=False)
    retail_price = db.Column(PRICE, nullable=False)
    supplier = db.Column(db.String(255), nullable=True)
    min_stock_threshold = db.Column(QUANTITY, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    package_units = db.relationship(
        "PackageUnit",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="PackageUnit.id",
        lazy=True,
    )
    inventory = db.relationship(
        "InventoryRecord",
        back_populates="product",
        cascade="all, delete-orphan",
        uselist=False,
    )
    location_links = db.relationship(
        "ProductStorageLocation",
        back_populates="product",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} name={self.name!r}>"

    def find_package_unit(self, name: str) -> "PackageUnit | None":
        for unit in self.package_units:
            if unit.name == name:
                return unit
        return None

    def to_dict(self, include_units: bool = False) -> dict:
        data = {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "specification": self.specification,
            "base_unit": self.base_unit,
            "purchase_price": as_decimal(self.purchase_price),
            "retail_price": as_decimal(self.retail_price),
            "supplier": self.supplier,
            "min_stock_threshold": as_decimal(self.min_stock_threshold),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_units:
            data["package_units"] = [u.to_dict() for u in self.package_units]
            data["storage_locations"] = [link.to_dict() for link in self.location_links]
        return data


class PackageUnit(db.Model):
    """Alternate unit of a product: 1 package unit = conversion_rate base units."""
    __tablename__ = "package_units"
    __table_args__ = (
        db.UniqueConstraint("product_id", "name", name="uq_package_units_product_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = db.Column(db.String(32), nullable=False)
    conversion_rate = db.Column(PRICE, nullable=False)

    # Optional unit-specific prices (override base price x rate)
    purchase_price = db.Column(PRICE, nullable=True)
    retail_price = db.Column(PRICE, nullable=True)

    product = db.relationship("Product", back_populates="package_units")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "conversion_rate": as_decimal(self.conversion_rate),
            "purchase_price": None if self.purchase_price is None else as_decimal(self.purchase_price),
            "retail_price": None if self.retail_price is None else as_decimal(self.retail_price),
        }


class StorageLocation(db.Model):
    __tablename__ = "storage_locations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    product_links = db.relationship(
        "ProductStorageLocation",
        back_populates="location",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class ProductStorageLocation(db.Model):
    """
    Where a product is kept. Records placement only; quantities stay in
    inventory_records.
    """
    __tablename__ = "product_storage_locations"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_id", name="uq_product_storage_locations_pair"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    location_id = db.Column(
        db.Integer, db.ForeignKey("storage_locations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    note = db.Column(db.String(255), nullable=True)
    is_primary = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    product = db.relationship("Product", back_populates="location_links")
    location = db.relationship("StorageLocation", back_populates="product_links")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "location_name": self.location.name if self.location else None,
            "note": self.note,
            "is_primary": self.is_primary,
            "created_at": to_utc_z(self.created_at),
        }
