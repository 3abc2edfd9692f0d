# Overview: Operator console operations: search, payment verification review, stats, status changes.

"""
Admin Order Service

WHY: Operators review prepaid orders against the evidence customers
submitted and move orders along the lifecycle. This module prepares the data
the console needs; every decision is delegated to order_service, so payment
status is never touched here.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Order
from ..permissions import VIEW_ORDERS
from storefront.time_utils import parse_filter_date
from . import order_service
from .order_lifecycle import (
    PAYMENT_METHOD_UPI,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    STATUS_DELIVERED,
    STATUS_PENDING_VERIFICATION,
    STATUS_PROCESSING,
    STATUS_RETURNED,
    STATUS_SHIPPED,
    TERMINAL_STATUSES,
    next_forward_status,
)
from .order_service import OrderNotFoundError, OrderValidationError
from .payment_evidence_service import PaymentEvidence, parse_payment_evidence

# Orders that do not count towards revenue
NON_REVENUE_STATUSES = {STATUS_CANCELLED, STATUS_RETURNED}


def _parse_date(value, *, end_of_day: bool = False):
    if value is None or not isinstance(value, str):
        return value
    try:
        return parse_filter_date(value, end_of_day=end_of_day)
    except ValueError as exc:
        raise OrderValidationError(f"Invalid date filter '{value}'") from exc


def search_orders(
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
    Filtered order listing for the console.

    date_from / date_to accept datetimes or "YYYY-MM-DD" / ISO-8601 strings;
    a plain date in date_to covers the whole day.
    """
    return order_service.list_orders_admin(
        actor_user_id=actor_user_id,
        status=status or None,
        payment_method=payment_method or None,
        payment_status=payment_status or None,
        search=(search or "").strip() or None,
        date_from=_parse_date(date_from),
        date_to=_parse_date(date_to, end_of_day=True),
        include_incomplete=include_incomplete,
        limit=limit,
        offset=offset,
    )


def extract_evidence(order: Order) -> PaymentEvidence | None:
    """Structured evidence columns, falling back to the notes trail."""
    if order.transaction_id:
        return PaymentEvidence(
            transaction_id=order.transaction_id,
            screenshot_uploaded=True,
            screenshot_url=order.screenshot_url,
            submitted_at=order.payment_evidence_submitted_at,
        )
    return parse_payment_evidence(order.notes)


def needs_verification(order: Order) -> bool:
    return order.payment_method == PAYMENT_METHOD_UPI and order.status == STATUS_PENDING_VERIFICATION


def order_review(order_id: int, actor_user_id: int) -> dict:
    """Full order detail plus what an operator needs to decide on it."""
    order = order_service.get_order_admin(order_id, actor_user_id=actor_user_id)
    if order is None:
        raise OrderNotFoundError(f"Order {order_id} not found")

    evidence = extract_evidence(order)
    data = order.to_dict()
    data["payment_evidence"] = evidence.to_dict() if evidence else None
    data["needs_verification"] = needs_verification(order)
    data["next_status"] = next_forward_status(order.status)
    data["is_terminal"] = order.status in TERMINAL_STATUSES
    data["is_incomplete"] = not order.items
    return data


def order_stats(actor_user_id: int) -> dict:
    """
    Dashboard counters over complete orders.

    Revenue excludes cancelled and returned orders; the average is taken over
    the orders that count towards revenue.
    """
    order_service.require_operator(actor_user_id, VIEW_ORDERS, resource="orders:stats")

    rows = (
        db.session.query(Order.status, func.count(Order.id), func.coalesce(func.sum(Order.total_amount_cents), 0))
        .filter(Order.items.any())
        .group_by(Order.status)
        .all()
    )
    counts = {status: count for status, count, _ in rows}
    totals = {status: int(total) for status, _, total in rows}

    revenue_orders = sum(count for status, count in counts.items() if status not in NON_REVENUE_STATUSES)
    revenue_cents = sum(total for status, total in totals.items() if status not in NON_REVENUE_STATUSES)

    return {
        "total_orders": sum(counts.values()),
        "pending_verification": counts.get(STATUS_PENDING_VERIFICATION, 0),
        "in_progress": counts.get(STATUS_CONFIRMED, 0) + counts.get(STATUS_PROCESSING, 0),
        "shipped": counts.get(STATUS_SHIPPED, 0),
        "delivered": counts.get(STATUS_DELIVERED, 0),
        "cancelled": counts.get(STATUS_CANCELLED, 0),
        "returned": counts.get(STATUS_RETURNED, 0),
        "total_revenue_cents": revenue_cents,
        "average_order_value_cents": revenue_cents // revenue_orders if revenue_orders else 0,
    }


def change_status(
    order_id: int,
    status: str,
    *,
    actor_user_id: int,
    notes: str | None = None,
    expected_version: int | None = None,
) -> Order:
    return order_service.update_order_status(
        order_id,
        status,
        actor_user_id=actor_user_id,
        notes=notes,
        expected_version=expected_version,
    )
