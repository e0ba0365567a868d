# Overview: Service-layer operations for orders; placement, status transitions and stock side effects.

"""
Order Service - order placement and status workflow

WHY: The order is the only place stock moves. Placing an order decrements
stock for every line; cancelling it puts the same quantities back. Both
happen in the same transaction as the order write, so a failure leaves
neither a partial order nor a partial stock change.

INVARIANTS:
- Prices come from the catalog at order time, never from the client.
- total = subtotal + shipping_cost + tax - discount, fixed at creation.
- Stock is decremented exactly once per line (at creation) with a
  conditional UPDATE (stock_quantity >= quantity), so concurrent orders can
  never drive stock below zero.
- Stock is restored only on the transition to CANCELLED.
- CANCELLED and REFUNDED are terminal; DELIVERED may only become REFUNDED.
"""

from __future__ import annotations

import uuid
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Order, OrderItem, OrderStatus, Product, User
from ..validation import (
    CENTS,
    MAX_PRICE,
    BazaarError,
    InsufficientStockError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
    parse_money,
    parse_positive_int,
)
from .audit_service import append_audit_event
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .query_utils import paginate
from bazaar.time_utils import order_stamp, utcnow


ORDER_SNAPSHOT_FIELDS = (
    "shipping_address",
    "shipping_city",
    "shipping_state",
    "shipping_pincode",
    "shipping_country",
    "billing_address",
    "billing_city",
    "billing_state",
    "billing_pincode",
    "billing_country",
    "contact_email",
    "contact_phone",
    "payment_method",
)

_OPEN = frozenset(OrderStatus.ALL)

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: _OPEN,
    OrderStatus.CONFIRMED: _OPEN,
    OrderStatus.PROCESSING: _OPEN,
    OrderStatus.SHIPPED: _OPEN,
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}


# =============================================================================
# Pricing
# =============================================================================

def quantize_money(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)


def flat_rate_tax(rate):
    """Tax policy charging a fixed fraction of the subtotal (0.18 == 18%)."""
    rate = Decimal(str(rate))

    def _policy(subtotal: Decimal) -> Decimal:
        return subtotal * rate

    return _policy


def resolve_tax_policy():
    """ORDER_TAX_POLICY callable if configured, else flat ORDER_TAX_RATE (default 0)."""
    policy = current_app.config.get("ORDER_TAX_POLICY")
    if policy is not None:
        return policy
    return flat_rate_tax(current_app.config.get("ORDER_TAX_RATE", 0))


def generate_order_number() -> str:
    """
    "ORD" + UTC yyyyMMddHHmmss + 8 hex chars of a UUID4.

    The timestamp keeps numbers sortable for humans; the UUID suffix makes
    collisions negligible. orders.order_number is unique as a backstop.
    """
    return "ORD" + order_stamp() + uuid.uuid4().hex[:8].upper()


# =============================================================================
# Placement
# =============================================================================

def _normalize_lines(items) -> list[tuple[int, int]]:
    if not isinstance(items, list) or not items:
        raise ValidationError("Order must contain at least one item")

    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = parse_positive_int(item.get("product_id"), f"items[{index}].product_id")
        quantity = parse_positive_int(item.get("quantity"), f"items[{index}].quantity")
        lines.append((product_id, quantity))
    return lines


def _clean_snapshot(details: dict) -> dict:
    snapshot = {}
    for field in ORDER_SNAPSHOT_FIELDS:
        value = details.get(field)
        if value is None:
            continue
        value = str(value).strip()
        snapshot[field] = value or None
    return snapshot


def _decrement_stock(product: Product, quantity: int) -> None:
    result = db.session.execute(
        update(Product)
        .where(Product.id == product.id, Product.stock_quantity >= quantity)
        .values(
            stock_quantity=Product.stock_quantity - quantity,
            version_id=Product.version_id + 1,
        )
        .execution_options(synchronize_session="evaluate")
    )
    if result.rowcount != 1:
        raise InsufficientStockError(
            f"Insufficient stock for product: {product.name}",
            details={"product_id": product.id, "requested": quantity},
        )


def _restore_stock(order: Order) -> None:
    for item in order.items:
        result = db.session.execute(
            update(Product)
            .where(Product.id == item.product_id)
            .values(
                stock_quantity=Product.stock_quantity + item.quantity,
                version_id=Product.version_id + 1,
            )
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            raise NotFoundError(f"Product not found with id: {item.product_id}")


def _create_order_locked(
    user_id: int,
    lines: list[tuple[int, int]],
    *,
    snapshot: dict,
    shipping_cost: Decimal,
    discount: Decimal,
    notes: str | None,
) -> Order:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError(f"User not found with id: {user_id}")

    products: dict[int, Product] = {}
    requested: dict[int, int] = {}
    priced = []
    subtotal = Decimal("0")

    for product_id, quantity in lines:
        product = products.get(product_id)
        if product is None:
            product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
            if not product:
                raise NotFoundError(f"Product not found with id: {product_id}")
            products[product_id] = product

        if not product.is_active:
            raise InvalidStateError(f"Product is not available: {product.name}")

        requested[product_id] = requested.get(product_id, 0) + quantity
        if requested[product_id] > product.stock_quantity:
            raise InsufficientStockError(
                f"Insufficient stock for product: {product.name}. "
                f"Available: {product.stock_quantity}, Requested: {requested[product_id]}",
                details={
                    "product_id": product_id,
                    "available": product.stock_quantity,
                    "requested": requested[product_id],
                },
            )

        if product.max_order_quantity is not None and requested[product_id] > product.max_order_quantity:
            raise ValidationError(
                f"Maximum order quantity for {product.name} is {product.max_order_quantity}"
            )

        unit_price = quantize_money(product.price)
        line_total = quantize_money(unit_price * quantity)
        subtotal += line_total
        priced.append((product, quantity, unit_price, line_total))

    # Order limits apply to the product total across all lines
    for product_id, total_quantity in requested.items():
        product = products[product_id]
        if total_quantity < product.min_order_quantity:
            raise ValidationError(
                f"Minimum order quantity for {product.name} is {product.min_order_quantity}"
            )

    tax = quantize_money(resolve_tax_policy()(subtotal))
    if tax < 0:
        raise ValidationError("Tax policy produced a negative amount")

    total = subtotal + shipping_cost + tax - discount
    if total < 0:
        raise ValidationError("Discount exceeds order amount")
    if total > MAX_PRICE:
        raise ValidationError(f"Order total cannot exceed {MAX_PRICE}")

    order = Order(
        user_id=user.id,
        order_number=generate_order_number(),
        status=OrderStatus.PENDING,
        payment_status="PENDING",
        subtotal=subtotal,
        tax=tax,
        shipping_cost=shipping_cost,
        discount=discount,
        total=total,
        notes=notes,
        **snapshot,
    )
    db.session.add(order)

    for product, quantity, unit_price, line_total in priced:
        order.items.append(OrderItem(
            product_id=product.id,
            product_name=product.name,
            product_sku=product.sku,
            image_url=product.image_url,
            quantity=quantity,
            unit_price=unit_price,
            total_price=line_total,
        ))
        _decrement_stock(product, quantity)

    db.session.flush()
    return order


def create_order(user_id: int, items, details: dict | None = None) -> Order:
    """
    Place an order for user_id.

    items: [{"product_id": int, "quantity": int}, ...]; extra keys such as a
    client-side price are ignored.
    details: shipping/billing/contact snapshot, payment_method, notes,
    shipping_cost and discount (both default to zero).

    Raises:
        ValidationError: empty/malformed items, negative amounts, order limits
        NotFoundError: user or product missing
        InvalidStateError: product inactive
        InsufficientStockError: quantity exceeds stock
    """
    details = details or {}
    lines = _normalize_lines(items)
    shipping_cost = parse_money(details.get("shipping_cost"), "shipping_cost")
    discount = parse_money(details.get("discount"), "discount")
    snapshot = _clean_snapshot(details)
    notes = (details.get("notes") or "").strip() or None

    def _op():
        begin_write_transaction()
        try:
            order = _create_order_locked(
                user_id,
                lines,
                snapshot=snapshot,
                shipping_cost=shipping_cost,
                discount=discount,
                notes=notes,
            )
            db.session.commit()
        except BazaarError:
            db.session.rollback()
            raise
        return order

    order = run_with_retry(_op, attempts=5)
    current_app.logger.info(
        "Order %s placed by user %s: %d item(s), total %s",
        order.order_number,
        user_id,
        len(lines),
        order.total,
    )
    return order


# =============================================================================
# Status workflow
# =============================================================================

def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def validate_transition(current: str, target: str) -> None:
    if can_transition(current, target):
        return
    if current == OrderStatus.DELIVERED:
        raise InvalidTransitionError("Delivered orders can only be refunded")
    raise InvalidTransitionError(f"Cannot change status of {current.lower()} order")


def _append_notes(order: Order, notes: str | None) -> None:
    if not notes:
        return
    order.notes = f"{order.notes}\n{notes}" if order.notes else notes


def _lock_order(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if not order:
        raise NotFoundError(f"Order not found with id: {order_id}")
    return order


def _apply_status(
    order: Order,
    status: str,
    *,
    tracking_number: str | None = None,
    cancellation_reason: str | None = None,
    actor_user_id: int | None = None,
) -> None:
    previous = order.status
    order.status = status
    now = utcnow()

    if status == OrderStatus.SHIPPED:
        order.shipped_at = now
        if tracking_number:
            order.tracking_number = tracking_number
    elif status == OrderStatus.DELIVERED:
        order.delivered_at = now
    elif status == OrderStatus.CANCELLED:
        order.cancelled_at = now
        if cancellation_reason:
            order.cancellation_reason = cancellation_reason
        _restore_stock(order)
        append_audit_event(
            event_type="order.cancelled",
            entity_type="order",
            entity_id=order.id,
            actor_user_id=actor_user_id,
            note=f"{previous} -> CANCELLED" + (f": {cancellation_reason}" if cancellation_reason else ""),
        )


def _run_status_change(order_id: int, mutate) -> Order:
    def _op():
        begin_write_transaction()
        try:
            order = _lock_order(order_id)
            mutate(order)
            db.session.commit()
        except BazaarError:
            db.session.rollback()
            raise
        return order

    return run_with_retry(_op, attempts=5)


def update_order_status(
    order_id: int,
    *,
    status: str,
    tracking_number: str | None = None,
    cancellation_reason: str | None = None,
    notes: str | None = None,
    actor_user_id: int | None = None,
) -> Order:
    """
    Move an order through the state machine (admin/manufacturer action).

    SHIPPED stamps shipped_at (+ tracking number), DELIVERED stamps
    delivered_at, CANCELLED stamps cancelled_at and restores stock.
    Notes are appended to the existing log.
    """
    if status not in OrderStatus.ALL:
        raise ValidationError(f"Unknown order status: {status}")

    def _mutate(order: Order) -> None:
        previous = order.status
        validate_transition(previous, status)
        _apply_status(
            order,
            status,
            tracking_number=tracking_number,
            cancellation_reason=cancellation_reason,
            actor_user_id=actor_user_id,
        )
        _append_notes(order, notes)
        current_app.logger.info(
            "Order %s status %s -> %s by user %s", order.order_number, previous, status, actor_user_id
        )

    return _run_status_change(order_id, _mutate)


def cancel_order(order_id: int, *, reason: str | None = None, actor_user_id: int | None = None) -> Order:
    """
    User-facing cancellation. Allowed unless the order is DELIVERED,
    CANCELLED or REFUNDED; restores stock like the CANCELLED transition.
    """
    def _mutate(order: Order) -> None:
        if order.status in OrderStatus.NOT_CANCELLABLE:
            raise InvalidStateError(f"Cannot cancel order with status: {order.status}")
        _apply_status(
            order,
            OrderStatus.CANCELLED,
            cancellation_reason=reason,
            actor_user_id=actor_user_id,
        )
        current_app.logger.info("Order %s cancelled by user %s", order.order_number, actor_user_id)

    return _run_status_change(order_id, _mutate)


def delete_order(order_id: int, actor_user_id: int | None = None) -> None:
    """
    Admin hard delete of an order and its items.

    Stock is not touched; cancel first if the goods should return to stock.
    """
    order = get_order(order_id)
    order_number = order.order_number
    status = order.status

    db.session.delete(order)
    append_audit_event(
        event_type="order.deleted",
        entity_type="order",
        entity_id=order_id,
        actor_user_id=actor_user_id,
        note=f"{order_number} ({status})",
    )
    db.session.commit()

    current_app.logger.warning(
        "Order %s (%s) deleted by user %s", order_number, status, actor_user_id
    )


# =============================================================================
# Queries
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError(f"Order not found with id: {order_id}")
    return order


def get_order_by_number(order_number: str) -> Order:
    order = db.session.query(Order).filter_by(order_number=order_number).first()
    if not order:
        raise NotFoundError(f"Order not found with order number: {order_number}")
    return order


def can_access_order(user: User, order: Order) -> bool:
    """Owner or admin may view/cancel an order."""
    return user.is_admin or order.user_id == user.id


def _manufacturer_order_ids(manufacturer_id: int):
    return (
        db.session.query(OrderItem.order_id)
        .join(Product, OrderItem.product_id == Product.id)
        .filter(Product.manufacturer_id == manufacturer_id)
    )


def order_includes_manufacturer(order: Order, manufacturer_id: int) -> bool:
    return any(item.product and item.product.manufacturer_id == manufacturer_id for item in order.items)


def list_orders(
    *,
    status: str | None = None,
    user_id: int | None = None,
    manufacturer_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Order)
    if status is not None:
        if status not in OrderStatus.ALL:
            raise ValidationError(f"Unknown order status: {status}")
        query = query.filter(Order.status == status)
    if user_id is not None:
        query = query.filter(Order.user_id == user_id)
    if manufacturer_id is not None:
        query = query.filter(Order.id.in_(_manufacturer_order_ids(manufacturer_id)))
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    return paginate(query, page=page, per_page=per_page)


def user_order_stats(user_id: int) -> dict:
    """Order count and total spent (excluding cancelled orders) for a user."""
    if not db.session.get(User, user_id):
        raise NotFoundError(f"User not found with id: {user_id}")

    count = db.session.query(Order).filter(Order.user_id == user_id).count()
    spent = (
        db.session.query(db.func.coalesce(db.func.sum(Order.total), 0))
        .filter(Order.user_id == user_id, Order.status != OrderStatus.CANCELLED)
        .scalar()
    )
    return {"order_count": count, "total_spent": str(quantize_money(Decimal(str(spent))))}


def manufacturer_order_stats(manufacturer_id: int) -> dict:
    """
    Distinct orders containing the manufacturer's products, and revenue:
    the manufacturer's own line totals on DELIVERED orders.
    """
    count = (
        db.session.query(db.func.count(db.distinct(OrderItem.order_id)))
        .join(Product, OrderItem.product_id == Product.id)
        .filter(Product.manufacturer_id == manufacturer_id)
        .scalar()
    )
    revenue = (
        db.session.query(db.func.coalesce(db.func.sum(OrderItem.total_price), 0))
        .join(Product, OrderItem.product_id == Product.id)
        .join(Order, OrderItem.order_id == Order.id)
        .filter(Product.manufacturer_id == manufacturer_id, Order.status == OrderStatus.DELIVERED)
        .scalar()
    )
    return {"order_count": count or 0, "revenue": str(quantize_money(Decimal(str(revenue))))}


def order_count_by_status(status: str) -> int:
    if status not in OrderStatus.ALL:
        raise ValidationError(f"Unknown order status: {status}")
    return db.session.query(Order).filter(Order.status == status).count()
