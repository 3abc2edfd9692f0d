# Overview: Service-layer operations for orders; encapsulates business logic and database work.

"""
Order Service

WHY: Turns a cart snapshot into an order record, moves orders through the
lifecycle (order_lifecycle.py), and serves owner-scoped and operator reads.

ORDER CREATION (two steps, compensated):
    1. insert + commit the order header
    2. insert + commit the order items and the first history row
    If step 2 fails the header is deleted again and the caller gets a single
    OrderItemsCreationError. A process dying between 1 and 2 leaves a header
    with zero items; every reader hides such orders and
    sweep_incomplete_orders() removes them.

    The cart is cleared only after step 2 succeeded.

STATUS UPDATES:
    - operators (MANAGE_ORDERS) may perform any transition the configured
      policy allows (ORDER_TRANSITION_POLICY)
    - owners may cancel early orders and re-submit payment evidence
    - payment_status is recomputed by derive_payment_status(), never set
    - last write wins unless the caller passes expected_version
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Order, OrderItem, OrderStatusHistory
from ..permissions import MANAGE_ORDERS, VIEW_ORDERS
from storefront.time_utils import utcnow
from . import cart_service, permission_service
from .cart_service import CartLine
from .concurrency import lock_for_update, run_with_retry
from .order_lifecycle import (
    InvalidPaymentMethodError,
    LifecycleError,
    STATUS_CANCELLED,
    VALID_PAYMENT_METHODS,
    VALID_PAYMENT_STATUSES,
    check_transition,
    customer_can_transition,
    derive_payment_status,
    initial_state,
    validate_status,
)
from .order_number_service import generate_order_number
from .permission_service import PermissionDeniedError


class OrderError(Exception):
    """Base class for order operation errors."""
    pass


class EmptyCartError(OrderError):
    """Checkout attempted with zero cart lines."""

    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class OrderValidationError(OrderError):
    """Missing or malformed checkout input."""
    pass


class OrderCreationError(OrderError):
    """The order header could not be written. Nothing was persisted."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Order creation failed: {reason}")


class OrderItemsCreationError(OrderError):
    """The order items could not be written. The header was removed again."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Order items creation failed: {reason}")


class OrderNotFoundError(OrderError):
    pass


class UnauthorizedOrderAccessError(OrderError):
    pass


class ConcurrentModificationError(OrderError):
    pass


# Columns that may be written alongside a status change (payment evidence)
EVIDENCE_FIELDS = {"transaction_id", "screenshot_url", "payment_evidence_submitted_at"}

REQUIRED_CONTACT_FIELDS = ("customer_name", "customer_phone", "customer_email")


def _reason(exc: Exception) -> str:
    return str(getattr(exc, "orig", None) or exc)


def append_note(existing: str | None, note: str | None) -> str | None:
    """Append a line to the free-text notes trail."""
    if not note:
        return existing
    if not existing:
        return note
    return f"{existing}\n{note}"


# =============================================================================
# ORDER CREATION
# =============================================================================

def _validate_checkout(cart: list[CartLine], shipping_address, contact: dict) -> None:
    if not cart:
        raise EmptyCartError()

    for line in cart:
        if line.quantity <= 0:
            raise OrderValidationError(f"Invalid quantity for {line.name}: {line.quantity}")
        if line.unit_price_cents < 0:
            raise OrderValidationError(f"Invalid price for {line.name}")

    if not shipping_address:
        raise OrderValidationError("shipping_address is required")

    missing = [name for name in REQUIRED_CONTACT_FIELDS if not str(contact.get(name) or "").strip()]
    if missing:
        raise OrderValidationError(f"Missing required fields: {', '.join(missing)}")


def _find_by_checkout_key(user_id: int, checkout_key: str) -> Order | None:
    return db.session.query(Order).filter_by(user_id=user_id, checkout_key=checkout_key).first()


def _persist_items(order: Order, cart: list[CartLine], actor_user_id: int) -> None:
    """Step 2 of order creation: items + first history row, one commit."""
    items = [
        OrderItem(
            order_id=order.id,
            product_id=line.product_id,
            product_name=line.name,
            unit_price_cents=line.unit_price_cents,
            product_image=line.image_url,
            quantity=line.quantity,
            line_total_cents=line.line_total_cents,
        )
        for line in cart
    ]
    db.session.add_all(items)
    db.session.add(OrderStatusHistory(
        order_id=order.id,
        status=order.status,
        payment_status=order.payment_status,
        notes="Order placed",
        created_by_user_id=actor_user_id,
    ))
    db.session.commit()


def _delete_header(order_id: int) -> bool:
    """Compensating delete for a header whose items never landed."""
    try:
        db.session.query(OrderStatusHistory).filter_by(order_id=order_id).delete()
        db.session.query(OrderItem).filter_by(order_id=order_id).delete()
        db.session.query(Order).filter_by(id=order_id).delete()
        db.session.commit()
        return True
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(
            "Compensating delete failed for order %s; header left for the incomplete-order sweep",
            order_id,
        )
        return False


def create_order(
    *,
    user_id: int,
    cart: list[CartLine],
    shipping_address,
    shipping_pincode: str | None,
    customer_name: str,
    customer_phone: str,
    customer_email: str,
    payment_method: str,
    billing_address=None,
    notes: str | None = None,
    checkout_key: str | None = None,
) -> Order:
    """
    Create an order from an explicit cart snapshot.

    Args:
        user_id: Authenticated owner
        cart: Snapshot from cart_service.get_cart_snapshot()
        shipping_address: Freeform string or structured dict
        billing_address: Defaults to the shipping address
        payment_method: "upi" or "cod"
        checkout_key: Optional idempotency key for this checkout attempt

    Returns:
        The created Order (or the existing one for a repeated checkout_key)

    Raises:
        EmptyCartError: Cart has no lines (nothing written)
        OrderValidationError: Bad input (nothing written)
        OrderCreationError: Header insert failed (nothing written)
        OrderItemsCreationError: Item insert failed (header removed again)
    """
    contact = {
        "customer_name": customer_name,
        "customer_phone": customer_phone,
        "customer_email": customer_email,
    }
    existing = _find_by_checkout_key(user_id, checkout_key) if checkout_key else None
    if existing is not None and existing.items:
        # Repeated submit: the first attempt already emptied the cart
        return existing

    _validate_checkout(cart, shipping_address, contact)
    try:
        status, payment_status = initial_state(payment_method)
    except InvalidPaymentMethodError as exc:
        raise OrderValidationError(str(exc)) from exc

    if existing is not None:
        # Leftover header from an interrupted attempt with the same key
        _delete_header(existing.id)

    total_amount_cents = cart_service.cart_total_cents(cart)
    now = utcnow()

    order = Order(
        order_number=generate_order_number(now=now),
        user_id=user_id,
        total_amount_cents=total_amount_cents,
        status=status,
        payment_method=payment_method,
        payment_status=payment_status,
        shipping_address=shipping_address,
        billing_address=billing_address or shipping_address,
        shipping_pincode=shipping_pincode,
        customer_name=str(customer_name).strip(),
        customer_phone=str(customer_phone).strip(),
        customer_email=str(customer_email).strip(),
        notes=notes or None,
        checkout_key=checkout_key,
        created_at=now,
        updated_at=now,
    )

    # Step 1: header
    try:
        db.session.add(order)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        if checkout_key and isinstance(exc, IntegrityError):
            existing = _find_by_checkout_key(user_id, checkout_key)
            if existing is not None and existing.items:
                return existing
        raise OrderCreationError(_reason(exc)) from exc

    order_id = order.id

    # Step 2: items (compensated)
    try:
        _persist_items(order, cart, user_id)
    except Exception as exc:
        db.session.rollback()
        current_app.logger.warning(
            "Item insert failed for order %s (%s); removing header", order_id, _reason(exc)
        )
        _delete_header(order_id)
        raise OrderItemsCreationError(_reason(exc)) from exc

    try:
        cart_service.clear_cart(user_id)
    except SQLAlchemyError:
        # The order stands; a stale cart must not turn into a second order attempt error
        db.session.rollback()
        current_app.logger.exception("Failed to clear cart for user %s after order %s", user_id, order_id)

    current_app.logger.info(
        "Order %s created for user %s (%s, %d cents)",
        order.order_number, user_id, payment_method, total_amount_cents,
    )
    return order


# =============================================================================
# READS
# =============================================================================

def _complete_orders():
    """Orders with at least one item (incomplete headers are never shown)."""
    return db.session.query(Order).filter(Order.items.any())


def get_order(order_id: int, *, user_id: int) -> Order | None:
    """
    Owner-scoped full order (items + status history).

    Returns None when the order does not exist, belongs to someone else, or
    is an incomplete header.
    """
    return (
        _complete_orders()
        .options(selectinload(Order.items), selectinload(Order.status_history))
        .filter(Order.id == order_id, Order.user_id == user_id)
        .first()
    )


def get_user_orders(user_id: int, *, limit: int | None = None, full: bool = False) -> list[Order]:
    """
    The user's orders, most recent first.

    full=False is the fast list view (capped at ORDER_LIST_LIMIT, items only);
    full=True also loads status history (capped at ORDER_FULL_LIST_LIMIT).
    """
    if limit is None:
        key = "ORDER_FULL_LIST_LIMIT" if full else "ORDER_LIST_LIMIT"
        limit = current_app.config[key]

    options = [selectinload(Order.items)]
    if full:
        options.append(selectinload(Order.status_history))

    return (
        _complete_orders()
        .options(*options)
        .filter(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .all()
    )


def require_operator(actor_user_id: int, permission_code: str, resource: str) -> None:
    try:
        permission_service.require_permission(actor_user_id, permission_code, resource=resource)
    except PermissionDeniedError as exc:
        raise UnauthorizedOrderAccessError(str(exc)) from exc


def get_order_admin(order_id: int, *, actor_user_id: int) -> Order | None:
    """Unscoped order read for operators (incomplete headers included)."""
    require_operator(actor_user_id, VIEW_ORDERS, resource=f"order:{order_id}")
    return (
        db.session.query(Order)
        .options(selectinload(Order.items), selectinload(Order.status_history))
        .filter(Order.id == order_id)
        .first()
    )


def list_orders_admin(
    *,
    actor_user_id: int,
    status: str | None = None,
    payment_method: str | None = None,
    payment_status: str | None = None,
    search: str | None = None,
    date_from=None,
    date_to=None,
    include_incomplete: bool = False,
    limit: int = 200,
    offset: int = 0,
) -> list[Order]:
    """
    Every customer's orders, newest first, filtered for the operator console.

    The permission check happens before any order data is queried.
    search matches order number, customer name or customer email.
    """
    require_operator(actor_user_id, VIEW_ORDERS, resource="orders")

    if status is not None:
        validate_status(status)
    if payment_method is not None and payment_method not in VALID_PAYMENT_METHODS:
        raise OrderValidationError(f"Invalid payment method filter '{payment_method}'")
    if payment_status is not None and payment_status not in VALID_PAYMENT_STATUSES:
        raise OrderValidationError(f"Invalid payment status filter '{payment_status}'")

    q = db.session.query(Order) if include_incomplete else _complete_orders()
    q = q.options(selectinload(Order.items))

    if status:
        q = q.filter(Order.status == status)
    if payment_method:
        q = q.filter(Order.payment_method == payment_method)
    if payment_status:
        q = q.filter(Order.payment_status == payment_status)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(
            Order.order_number.ilike(pattern),
            Order.customer_name.ilike(pattern),
            Order.customer_email.ilike(pattern),
        ))
    if date_from:
        q = q.filter(Order.created_at >= date_from)
    if date_to:
        q = q.filter(Order.created_at <= date_to)

    limit = max(1, min(limit, 500))
    offset = max(0, offset)

    return (
        q.order_by(Order.created_at.desc(), Order.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

def _coerce_version(value) -> int | None:
    """expected_version as sent by clients: None, an int, or a numeric string."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise OrderValidationError("expected_version must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise OrderValidationError("expected_version must be an integer")


def update_order_status(
    order_id: int,
    status: str,
    *,
    actor_user_id: int,
    notes: str | None = None,
    expected_version: int | None = None,
    changes: dict | None = None,
) -> Order:
    """
    Move an order to a new status.

    Args:
        order_id: Order to update
        status: Target status (closed set, see order_lifecycle.VALID_STATUSES)
        actor_user_id: Owner (self-service) or operator with MANAGE_ORDERS
        notes: Appended to the notes trail and the history row
        expected_version: Optional optimistic concurrency check
        changes: Payment evidence columns written in the same commit

    Raises:
        InvalidStatusError: Unknown status
        OrderNotFoundError: No such order
        OrderValidationError: expected_version is not an integer
        UnauthorizedOrderAccessError: Actor may not perform this change
        InvalidTransitionError: Rejected by the strict policy
        ConcurrentModificationError: Version mismatch
    """
    changes = changes or {}
    unknown = set(changes) - EVIDENCE_FIELDS
    if unknown:
        raise OrderValidationError(f"Fields cannot be changed with a status update: {', '.join(sorted(unknown))}")
    expected_version = _coerce_version(expected_version)

    def _op() -> Order:
        validate_status(status)

        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")

        is_operator = permission_service.user_has_permission(actor_user_id, MANAGE_ORDERS)
        if not is_operator:
            # Headers left without items by an interrupted checkout are invisible to owners
            if order.user_id == actor_user_id and not order.items:
                raise OrderNotFoundError(f"Order {order_id} not found")
            is_owner = order.user_id == actor_user_id
            if not is_owner or not customer_can_transition(order.payment_method, order.status, status):
                db.session.rollback()
                permission_service.log_security_event(
                    user_id=actor_user_id,
                    event_type="ORDER_ACCESS_DENIED",
                    success=False,
                    resource=f"order:{order_id}",
                    action=f"status:{status}",
                    reason="Not the owner" if not is_owner else f"Self-service cannot move {order.status} -> {status}",
                )
                raise UnauthorizedOrderAccessError(f"Not allowed to set order {order_id} to '{status}'")

        if expected_version is not None and order.version_id != expected_version:
            raise ConcurrentModificationError(
                f"Order {order_id} was modified (version {order.version_id}, expected {expected_version})"
            )

        if is_operator:
            check_transition(order.status, status, current_app.config["ORDER_TRANSITION_POLICY"])

        from_status = order.status
        order.payment_status = derive_payment_status(
            order.payment_method, from_status, status, order.payment_status
        )
        order.status = status
        order.notes = append_note(order.notes, notes)
        for field, value in changes.items():
            setattr(order, field, value)
        order.updated_at = utcnow()

        db.session.add(OrderStatusHistory(
            order_id=order.id,
            status=status,
            payment_status=order.payment_status,
            notes=notes,
            created_by_user_id=actor_user_id,
        ))

        try:
            db.session.commit()
        except StaleDataError as exc:
            db.session.rollback()
            raise ConcurrentModificationError(f"Order {order_id} was modified concurrently") from exc

        current_app.logger.info(
            "Order %s: %s -> %s (payment %s) by user %s",
            order.order_number, from_status, status, order.payment_status, actor_user_id,
        )
        return order

    try:
        return run_with_retry(_op)
    except (OrderError, LifecycleError):
        db.session.rollback()
        raise


def cancel_order(order_id: int, *, actor_user_id: int, reason: str | None = None) -> Order:
    """Shorthand for update_order_status(order_id, "cancelled", notes=reason)."""
    return update_order_status(order_id, STATUS_CANCELLED, actor_user_id=actor_user_id, notes=reason)


# =============================================================================
# RECONCILIATION
# =============================================================================

def find_incomplete_orders(*, older_than: timedelta | None = None) -> list[Order]:
    """Order headers without any items (interrupted checkouts)."""
    q = db.session.query(Order).filter(~Order.items.any())
    if older_than is not None:
        q = q.filter(Order.created_at < utcnow() - older_than)
    return q.order_by(Order.id).all()


def sweep_incomplete_orders(*, older_than_minutes: int | None = None, dry_run: bool = False) -> list[str]:
    """
    Delete incomplete order headers older than the grace period.

    Returns the affected order numbers. The grace period (default
    INCOMPLETE_ORDER_GRACE_MINUTES) keeps in-flight checkouts untouched.
    """
    if older_than_minutes is None:
        older_than_minutes = current_app.config["INCOMPLETE_ORDER_GRACE_MINUTES"]

    orphans = find_incomplete_orders(older_than=timedelta(minutes=older_than_minutes))
    targets = [(order.id, order.order_number) for order in orphans]
    if dry_run or not targets:
        return [number for _, number in targets]

    removed = []
    for order_id, number in targets:
        if _delete_header(order_id):
            removed.append(number)

    current_app.logger.info("Swept %d incomplete order(s): %s", len(removed), ", ".join(removed))
    return removed
