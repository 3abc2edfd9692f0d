# Overview: Order status state machine and payment-status derivation rules.

"""
Storefront Order Lifecycle

================================================================================
PURPOSE: Define legal order statuses, transitions, and the payment-status side
effects of each transition, keyed by payment method.
================================================================================

STATE MACHINE (forward path):
    pending_payment_verification -> confirmed -> processing -> shipped -> delivered

    cancelled: reachable from any non-terminal state
    returned:  reachable from delivered

INITIAL STATE (by payment method):
    upi (prepaid transfer) -> pending_payment_verification, payment pending
    cod (pay on delivery)  -> confirmed, payment pending

PAYMENT STATUS IS DERIVED, NEVER SET DIRECTLY:
    upi: entering confirmed from pending_payment_verification -> paid
    cod: entering delivered -> paid
    anything else leaves payment_status unchanged

POLICIES:
    permissive (default): operators may move an order to any status. The
        console offers every status at all times so staff can correct
        mistakes and handle real-world exceptions.
    strict: only the forward path above, cancellation from non-terminal
        states, and delivered -> returned. cancelled and returned are final.

This module holds rules only; order_service.py applies them.
================================================================================
"""

from __future__ import annotations


STATUS_PENDING_VERIFICATION = "pending_payment_verification"
STATUS_CONFIRMED = "confirmed"
STATUS_PROCESSING = "processing"
STATUS_SHIPPED = "shipped"
STATUS_DELIVERED = "delivered"
STATUS_RETURNED = "returned"
STATUS_CANCELLED = "cancelled"

VALID_STATUSES = {
    STATUS_PENDING_VERIFICATION,
    STATUS_CONFIRMED,
    STATUS_PROCESSING,
    STATUS_SHIPPED,
    STATUS_DELIVERED,
    STATUS_RETURNED,
    STATUS_CANCELLED,
}

FORWARD_PATH = [
    STATUS_PENDING_VERIFICATION,
    STATUS_CONFIRMED,
    STATUS_PROCESSING,
    STATUS_SHIPPED,
    STATUS_DELIVERED,
]
TERMINAL_STATUSES = {STATUS_CANCELLED, STATUS_RETURNED, STATUS_DELIVERED}

# Statuses from which the customer may still cancel on their own
CUSTOMER_CANCELLABLE_STATUSES = {STATUS_PENDING_VERIFICATION, STATUS_CONFIRMED}

PAYMENT_METHOD_UPI = "upi"
PAYMENT_METHOD_COD = "cod"
VALID_PAYMENT_METHODS = {PAYMENT_METHOD_UPI, PAYMENT_METHOD_COD}

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_FAILED = "failed"
PAYMENT_REFUNDED = "refunded"
VALID_PAYMENT_STATUSES = {PAYMENT_PENDING, PAYMENT_PAID, PAYMENT_FAILED, PAYMENT_REFUNDED}

POLICY_PERMISSIVE = "permissive"
POLICY_STRICT = "strict"
VALID_POLICIES = {POLICY_PERMISSIVE, POLICY_STRICT}

STRICT_TRANSITIONS = {
    STATUS_PENDING_VERIFICATION: {STATUS_CONFIRMED, STATUS_CANCELLED},
    STATUS_CONFIRMED: {STATUS_PROCESSING, STATUS_CANCELLED},
    STATUS_PROCESSING: {STATUS_SHIPPED, STATUS_CANCELLED},
    STATUS_SHIPPED: {STATUS_DELIVERED, STATUS_CANCELLED},
    STATUS_DELIVERED: {STATUS_RETURNED},
    STATUS_RETURNED: set(),
    STATUS_CANCELLED: set(),
}


class LifecycleError(ValueError):
    """
    Raised when an order status rule is violated.

    This is a domain error, not a technical error.
    """
    pass


class InvalidStatusError(LifecycleError):
    """Status value outside the closed set."""
    pass


class InvalidPaymentMethodError(LifecycleError):
    """Payment method outside the closed set."""
    pass


class InvalidTransitionError(LifecycleError):
    """Transition rejected by the active policy."""
    pass


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise InvalidStatusError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def validate_payment_method(payment_method: str) -> None:
    if payment_method not in VALID_PAYMENT_METHODS:
        raise InvalidPaymentMethodError(
            f"Invalid payment method '{payment_method}'. "
            f"Must be one of: {', '.join(sorted(VALID_PAYMENT_METHODS))}"
        )


def initial_state(payment_method: str) -> tuple[str, str]:
    """
    Return (status, payment_status) for a new order.

    Prepaid transfers wait for an operator to review the customer's
    evidence; pay-on-delivery orders are confirmed immediately and
    collected later.
    """
    validate_payment_method(payment_method)
    if payment_method == PAYMENT_METHOD_UPI:
        return STATUS_PENDING_VERIFICATION, PAYMENT_PENDING
    return STATUS_CONFIRMED, PAYMENT_PENDING


def derive_payment_status(
    payment_method: str,
    from_status: str,
    to_status: str,
    current_payment_status: str,
) -> str:
    """
    Payment status after moving an order from from_status to to_status.

    Examples:
        derive_payment_status("upi", "pending_payment_verification", "confirmed", "pending") -> "paid"
        derive_payment_status("cod", "shipped", "delivered", "pending") -> "paid"
        derive_payment_status("upi", "confirmed", "shipped", "paid") -> "paid"
    """
    if payment_method == PAYMENT_METHOD_UPI:
        if from_status == STATUS_PENDING_VERIFICATION and to_status == STATUS_CONFIRMED:
            return PAYMENT_PAID
    elif payment_method == PAYMENT_METHOD_COD:
        if to_status == STATUS_DELIVERED:
            return PAYMENT_PAID
    return current_payment_status


def can_transition(from_status: str, to_status: str, policy: str = POLICY_PERMISSIVE) -> bool:
    """
    Check whether from_status -> to_status is allowed under policy.

    Re-entering the current status is always allowed (it records a note,
    e.g. resubmitted payment evidence).
    """
    validate_status(from_status)
    validate_status(to_status)
    if policy not in VALID_POLICIES:
        raise LifecycleError(f"Unknown transition policy '{policy}'")

    if from_status == to_status:
        return True
    if policy == POLICY_PERMISSIVE:
        return True
    return to_status in STRICT_TRANSITIONS[from_status]


def check_transition(from_status: str, to_status: str, policy: str = POLICY_PERMISSIVE) -> None:
    """Raise InvalidTransitionError when can_transition() says no."""
    if not can_transition(from_status, to_status, policy):
        raise InvalidTransitionError(
            f"Cannot move order from '{from_status}' to '{to_status}' under {policy} policy"
        )


def customer_can_transition(payment_method: str, from_status: str, to_status: str) -> bool:
    """
    Self-service transitions available to the order owner.

    - cancel while the order has not started processing
    - re-assert pending_payment_verification on a prepaid order awaiting
      review (payment evidence submission)
    """
    if to_status == STATUS_CANCELLED:
        return from_status in CUSTOMER_CANCELLABLE_STATUSES
    if to_status == STATUS_PENDING_VERIFICATION:
        return payment_method == PAYMENT_METHOD_UPI and from_status == STATUS_PENDING_VERIFICATION
    return False


def next_forward_status(status: str) -> str | None:
    """Next status on the forward path, or None at the end or off the path."""
    if status not in FORWARD_PATH:
        return None
    index = FORWARD_PATH.index(status)
    if index + 1 >= len(FORWARD_PATH):
        return None
    return FORWARD_PATH[index + 1]
