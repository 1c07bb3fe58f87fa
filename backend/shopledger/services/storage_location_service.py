# Overview: Storage locations and the product <-> location links used by product search.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Product, ProductStorageLocation, StorageLocation
from ..validation import (
    DuplicateStorageLocationError,
    NotFoundError,
    ProductNotFoundError,
    StorageLocationInUseError,
    StorageLocationNotFoundError,
    StorageLocationValidationError,
    optional_text,
    require_text,
)
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


def _require_location(location_id: int, *, lock: bool = False) -> StorageLocation:
    query = db.session.query(StorageLocation).filter_by(id=location_id)
    if lock:
        query = lock_for_update(query)
    location = query.first()
    if location is None:
        raise StorageLocationNotFoundError(location_id)
    return location


def _name_taken(name: str, *, exclude_id: int | None = None) -> bool:
    query = db.session.query(StorageLocation.id).filter(StorageLocation.name == name)
    if exclude_id is not None:
        query = query.filter(StorageLocation.id != exclude_id)
    return query.first() is not None


def create_storage_location(*, name: str, description: str | None = None) -> StorageLocation:
    clean_name = require_text(name, "Storage location name is required", StorageLocationValidationError)

    def _op() -> StorageLocation:
        if _name_taken(clean_name):
            raise DuplicateStorageLocationError(clean_name)
        location = StorageLocation(name=clean_name, description=optional_text(description))
        db.session.add(location)
        db.session.commit()
        logger.info("Created storage location %s", clean_name)
        return location

    return run_with_retry(_op)


def update_storage_location(location_id: int, patch: dict) -> StorageLocation:
    clean = {}
    if "name" in patch:
        clean["name"] = require_text(
            patch["name"], "Storage location name is required", StorageLocationValidationError
        )
    if "description" in patch:
        clean["description"] = optional_text(patch["description"])

    def _op() -> StorageLocation:
        location = _require_location(location_id, lock=True)
        if "name" in clean and _name_taken(clean["name"], exclude_id=location_id):
            raise DuplicateStorageLocationError(clean["name"])
        for k, v in clean.items():
            setattr(location, k, v)
        db.session.commit()
        return location

    return run_with_retry(_op)


def delete_storage_location(location_id: int) -> None:
    def _op() -> None:
        location = _require_location(location_id, lock=True)
        linked = (
            db.session.query(ProductStorageLocation.id)
            .filter_by(location_id=location_id)
            .first()
        )
        if linked is not None:
            raise StorageLocationInUseError(location.name)
        db.session.delete(location)
        db.session.commit()
        logger.info("Deleted storage location %s", location.name)

    return run_with_retry(_op)


def get_storage_location(location_id: int) -> StorageLocation | None:
    return db.session.get(StorageLocation, location_id)


def get_storage_location_by_name(name: str) -> StorageLocation | None:
    return db.session.query(StorageLocation).filter_by(name=name).first()


def list_storage_locations() -> list[StorageLocation]:
    return db.session.query(StorageLocation).order_by(StorageLocation.name.asc()).all()


def search_storage_locations(keyword: str | None = None) -> list[StorageLocation]:
    needle = (keyword or "").strip()
    locations = list_storage_locations()
    if not needle:
        return locations
    return [
        loc for loc in locations
        if needle in loc.name or needle in (loc.description or "")
    ]


# =============================================================================
# PRODUCT LINKS
# =============================================================================

def _clear_primary(product_id: int, *, keep_link_id: int | None = None) -> None:
    query = db.session.query(ProductStorageLocation).filter_by(product_id=product_id, is_primary=True)
    for link in query.all():
        if link.id != keep_link_id:
            link.is_primary = False


def link_product_to_location(
    product_id: int,
    location_id: int,
    *,
    note: str | None = None,
    is_primary: bool = False,
) -> ProductStorageLocation:
    """
    Record that a product is kept at a location.

    Linking an already-linked pair updates the existing link. At most one
    link per product is primary.
    """
    def _op() -> ProductStorageLocation:
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise ProductNotFoundError(product_id)
        _require_location(location_id)

        link = (
            db.session.query(ProductStorageLocation)
            .filter_by(product_id=product_id, location_id=location_id)
            .first()
        )
        if link is None:
            link = ProductStorageLocation(product_id=product_id, location_id=location_id)
            db.session.add(link)
        link.note = optional_text(note)
        link.is_primary = bool(is_primary)
        db.session.flush()

        if link.is_primary:
            _clear_primary(product_id, keep_link_id=link.id)

        db.session.commit()
        return link

    return run_with_retry(_op)


def update_product_location_link(link_id: int, patch: dict) -> ProductStorageLocation:
    def _op() -> ProductStorageLocation:
        link = lock_for_update(db.session.query(ProductStorageLocation).filter_by(id=link_id)).first()
        if link is None:
            raise NotFoundError(f"Product location link not found: {link_id}", details={"link_id": link_id})
        if "note" in patch:
            link.note = optional_text(patch["note"])
        if "is_primary" in patch:
            link.is_primary = bool(patch["is_primary"])
            if link.is_primary:
                _clear_primary(link.product_id, keep_link_id=link.id)
        db.session.commit()
        return link

    return run_with_retry(_op)


def unlink_product_from_location(product_id: int, location_id: int) -> bool:
    """Returns False when the pair was not linked."""
    def _op() -> bool:
        link = (
            db.session.query(ProductStorageLocation)
            .filter_by(product_id=product_id, location_id=location_id)
            .first()
        )
        if link is None:
            return False
        db.session.delete(link)
        db.session.commit()
        return True

    return run_with_retry(_op)


def get_product_locations(product_id: int) -> list[ProductStorageLocation]:
    """Primary link first, then by location name."""
    return (
        db.session.query(ProductStorageLocation)
        .join(StorageLocation, StorageLocation.id == ProductStorageLocation.location_id)
        .filter(ProductStorageLocation.product_id == product_id)
        .order_by(ProductStorageLocation.is_primary.desc(), StorageLocation.name.asc())
        .all()
    )


def get_location_products(location_id: int) -> list[Product]:
    return (
        db.session.query(Product)
        .join(ProductStorageLocation, ProductStorageLocation.product_id == Product.id)
        .filter(ProductStorageLocation.location_id == location_id)
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
