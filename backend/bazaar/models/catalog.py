from __future__ import annotations

from ..extensions import db
from bazaar.time_utils import to_utc_z


def _money(value):
    return str(value) if value is not None else None


class ManufacturerStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    INACTIVE = "INACTIVE"

    ALL = (PENDING, APPROVED, REJECTED, ACTIVE, SUSPENDED, INACTIVE)
    VERIFIED = (APPROVED, ACTIVE)


class Manufacturer(db.Model):
    """
    Supplier profile listing products in the catalog.

    Created PENDING/unverified at self-registration together with its
    MANUFACTURER login account (users row referenced by user_id). Only an
    admin verification changes status; is_verified and the linked account's
    is_active flag follow from it (see manufacturer_service).

    The manufacturer owns deletion of its account: deleting the profile
    deletes the linked users row in the same transaction.
    """
    __tablename__ = "manufacturers"
    __table_args__ = (
        db.Index("ix_manufacturers_status_verified", "status", "is_verified"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    company_name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    phone_number = db.Column(db.String(20), nullable=True)

    address = db.Column(db.String(500), nullable=True)
    city = db.Column(db.String(100), nullable=True, index=True)
    state = db.Column(db.String(100), nullable=True, index=True)
    pincode = db.Column(db.String(10), nullable=True)
    country = db.Column(db.String(100), nullable=True)

    gst_number = db.Column(db.String(32), nullable=True)
    pan_number = db.Column(db.String(32), nullable=True)
    license_number = db.Column(db.String(64), nullable=True)
    license_validity = db.Column(db.DateTime(timezone=True), nullable=True)

    # Linked login account (one-to-one)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, unique=True)

    # Verification
    status = db.Column(db.String(20), nullable=False, default=ManufacturerStatus.PENDING, index=True)
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    verification_notes = db.Column(db.String(1000), nullable=True)
    verified_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship(
        "User",
        foreign_keys=[user_id],
        backref=db.backref("manufacturer", uselist=False),
    )

    def __repr__(self) -> str:
        return f"<Manufacturer id={self.id} company={self.company_name!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_name": self.company_name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone_number": self.phone_number,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "pincode": self.pincode,
            "country": self.country,
            "gst_number": self.gst_number,
            "pan_number": self.pan_number,
            "license_number": self.license_number,
            "license_validity": to_utc_z(self.license_validity) if self.license_validity else None,
            "user_id": self.user_id,
            "status": self.status,
            "is_verified": self.is_verified,
            "verification_notes": self.verification_notes,
            "verified_by": self.verified_by,
            "verified_at": to_utc_z(self.verified_at) if self.verified_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Catalog product owned by a manufacturer.

    STOCK INVARIANT: stock_quantity never goes below zero. Order placement
    decrements it and order cancellation restores it, both through
    conditional UPDATE statements in order_service. The CHECK constraint
    backs that up at the database level.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_manufacturer_active", "manufacturer_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    manufacturer_id = db.Column(db.Integer, db.ForeignKey("manufacturers.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(100), nullable=True, index=True)
    brand = db.Column(db.String(100), nullable=True)

    sku = db.Column(db.String(100), nullable=True, unique=True)
    barcode = db.Column(db.String(100), nullable=True, unique=True)
    image_url = db.Column(db.String(500), nullable=True)

    price = db.Column(db.Numeric(10, 2), nullable=False)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    min_order_quantity = db.Column(db.Integer, nullable=False, default=1)
    max_order_quantity = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_featured = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    manufacturer = db.relationship(
        "Manufacturer",
        backref=db.backref("products", lazy=True, cascade="all, delete-orphan"),
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "manufacturer_id": self.manufacturer_id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "brand": self.brand,
            "sku": self.sku,
            "barcode": self.barcode,
            "image_url": self.image_url,
            "price": _money(self.price),
            "stock_quantity": self.stock_quantity,
            "min_order_quantity": self.min_order_quantity,
            "max_order_quantity": self.max_order_quantity,
            "is_active": self.is_active,
            "is_featured": self.is_featured,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
