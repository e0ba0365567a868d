# backend/bazaar/services/products_service.py
"""
Products Service

Catalog operations for manufacturer-owned products.

OWNERSHIP: Only the manufacturer that owns a product (or an admin) may
change it; routes pass the acting user and this module resolves the
manufacturer profile.

STOCK: Orders move stock through order_service. set_stock here is the
manual correction a manufacturer makes after a physical count; it runs
under the optimistic version check on Product.
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Manufacturer, OrderItem, Product, User
from ..validation import (
    ConflictError,
    InvalidStateError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_product,
    parse_money,
    validate_payload,
)
from .concurrency import lock_for_update, run_with_retry
from .query_utils import paginate

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "description",
        "category",
        "brand",
        "sku",
        "barcode",
        "image_url",
        "price",
        "stock_quantity",
        "min_order_quantity",
        "max_order_quantity",
        "is_active",
        "is_featured",
    },
    required_on_create={"name", "price"},
)

DEFAULT_LOW_STOCK_THRESHOLD = 10

STOCK_FILTERS = ("low", "out")


def _owning_manufacturer(user: User) -> Manufacturer:
    manufacturer = db.session.query(Manufacturer).filter_by(user_id=user.id).first()
    if not manufacturer:
        raise NotFoundError("Manufacturer profile not found for current user")
    return manufacturer


def _check_unique_codes(patch: dict, product_id: int | None = None) -> None:
    for field in ("sku", "barcode"):
        value = patch.get(field)
        if not value:
            continue
        query = db.session.query(Product.id).filter(getattr(Product, field) == value)
        if product_id is not None:
            query = query.filter(Product.id != product_id)
        if query.first():
            raise ConflictError(f"Product with {field} '{value}' already exists")


def _require_owner(product: Product, user: User) -> None:
    if user.is_admin:
        return
    manufacturer = _owning_manufacturer(user)
    if product.manufacturer_id != manufacturer.id:
        # Same answer as a missing product; do not leak other catalogs
        raise NotFoundError(f"Product not found with id: {product.id}")


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product not found with id: {product_id}")
    return product


def get_product_by_code(*, sku: str | None = None, barcode: str | None = None) -> Product:
    """Look a product up by exactly one of sku or barcode."""
    if bool(sku) == bool(barcode):
        raise ValidationError("Provide exactly one of sku or barcode")
    field, value = ("sku", sku) if sku else ("barcode", barcode)
    product = db.session.query(Product).filter(getattr(Product, field) == value).first()
    if not product:
        raise NotFoundError(f"Product not found with {field}: {value}")
    return product


def list_products(
    *,
    manufacturer_id: int | None = None,
    category: str | None = None,
    brand: str | None = None,
    search: str | None = None,
    featured: bool | None = None,
    min_price=None,
    max_price=None,
    stock: str | None = None,
    low_stock_threshold: int | None = None,
    include_inactive: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional filters and pagination.

    Inactive products are hidden unless include_inactive is set (the owning
    manufacturer's own catalog view).

    search matches the product name, case-insensitive. min_price and
    max_price bound the price inclusively. stock="low" keeps products below
    low_stock_threshold (default 10) and stock="out" keeps those at zero;
    both are ordered by stock, lowest first.
    """
    query = db.session.query(Product)
    if manufacturer_id is not None:
        query = query.filter(Product.manufacturer_id == manufacturer_id)
    if category:
        query = query.filter(Product.category == category)
    if brand:
        query = query.filter(Product.brand == brand)
    if search:
        query = query.filter(Product.name.ilike(f"%{search.strip()}%"))
    if featured is not None:
        query = query.filter(Product.is_featured.is_(featured))

    low = parse_money(min_price, "min_price") if min_price not in (None, "") else None
    high = parse_money(max_price, "max_price") if max_price not in (None, "") else None
    if low is not None and high is not None and low > high:
        raise ValidationError("min_price cannot exceed max_price")
    if low is not None:
        query = query.filter(Product.price >= low)
    if high is not None:
        query = query.filter(Product.price <= high)

    if stock is not None and stock not in STOCK_FILTERS:
        raise ValidationError(f"Unknown stock filter: {stock}")
    if stock == "low":
        threshold = DEFAULT_LOW_STOCK_THRESHOLD if low_stock_threshold is None else low_stock_threshold
        if threshold < 0:
            raise ValidationError("threshold must be >= 0")
        query = query.filter(Product.stock_quantity < threshold)
    elif stock == "out":
        query = query.filter(Product.stock_quantity == 0)

    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))

    if stock:
        query = query.order_by(Product.stock_quantity.asc(), Product.name.asc(), Product.id.asc())
    else:
        query = query.order_by(Product.name.asc(), Product.id.asc())
    return paginate(query, page=page, per_page=per_page)


def create_product(*, payload: dict, user: User) -> Product:
    """
    Create a product for the acting manufacturer.

    Only verified manufacturers may list products.
    """
    manufacturer = _owning_manufacturer(user)
    if not manufacturer.is_verified:
        raise InvalidStateError("Manufacturer is not verified")

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    patch.setdefault("stock_quantity", 0)
    patch.setdefault("min_order_quantity", 1)
    enforce_rules_product(patch)
    _check_unique_codes(patch)

    product = Product(manufacturer_id=manufacturer.id, **patch)
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Product with this sku or barcode already exists")
    return product


def update_product(product_id: int, *, payload: dict, user: User) -> Product:
    product = get_product(product_id)
    _require_owner(product, user)

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch, existing=product)
    _check_unique_codes(patch, product_id=product.id)

    for key, value in patch.items():
        setattr(product, key, value)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Product with this sku or barcode already exists")
    return product


def set_stock(product_id: int, *, quantity, user: User) -> Product:
    """Set absolute stock after a count. Negative targets are rejected."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("stock_quantity must be an integer")
    if quantity < 0:
        raise ValidationError("stock_quantity must be >= 0")

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError(f"Product not found with id: {product_id}")
        _require_owner(product, user)
        product.stock_quantity = quantity
        db.session.commit()
        return product

    return run_with_retry(_op)


def toggle_active(product_id: int, *, user: User) -> Product:
    product = get_product(product_id)
    _require_owner(product, user)
    product.is_active = not product.is_active
    db.session.commit()
    return product


def delete_product(product_id: int, *, user: User) -> None:
    """Delete a product that no order references; otherwise deactivate it instead."""
    product = get_product(product_id)
    _require_owner(product, user)

    if db.session.query(OrderItem.id).filter_by(product_id=product.id).first():
        raise InvalidStateError("Product appears in orders; deactivate it instead")

    db.session.delete(product)
    db.session.commit()


def toggle_featured(product_id: int, *, user: User) -> Product:
    product = get_product(product_id)
    _require_owner(product, user)
    product.is_featured = not product.is_featured
    db.session.commit()
    return product
