from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z, utcnow


class Order(db.Model):
    """
    Order header, one per checkout submission.

    WHY: The order is the frozen record of a checkout. Totals, addresses and
    contact details are copied at creation time; afterwards only the status,
    the derived payment status, the notes trail and the payment evidence
    fields change.

    STATUS (see services/order_lifecycle.py):
        pending_payment_verification, confirmed, processing, shipped,
        delivered, returned, cancelled

    PAYMENT:
        payment_method: upi (prepaid transfer) | cod (pay on delivery)
        payment_status: pending | paid | failed | refunded (derived)

    An order with zero items is an incomplete header left behind by an
    interrupted checkout; readers hide it and the sweep removes it.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.UniqueConstraint("user_id", "checkout_key", name="uq_orders_user_checkout_key"),
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Frozen at creation: sum of line totals
    total_amount_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(32), nullable=False, index=True)
    payment_method = db.Column(db.String(16), nullable=False, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    # Shipping / billing snapshot (freeform string or structured object)
    shipping_address = db.Column(db.JSON, nullable=False)
    billing_address = db.Column(db.JSON, nullable=True)
    shipping_pincode = db.Column(db.String(16), nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)

    # Free-text audit trail (evidence sentences are appended here too)
    notes = db.Column(db.Text, nullable=True)

    # Structured payment evidence (prepaid transfers)
    transaction_id = db.Column(db.String(64), nullable=True)
    screenshot_url = db.Column(db.String(1024), nullable=True)
    payment_evidence_submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Client supplied idempotency key for a checkout attempt
    checkout_key = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
    )
    status_history = db.relationship(
        "OrderStatusHistory",
        backref="order",
        lazy=True,
        order_by="OrderStatusHistory.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_summary_dict(self) -> dict:
        """Reduced projection for order lists."""
        return {
            "id": self.id,
            "order_number": self.order_number,
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_summary_dict() for item in self.items],
        }

    def to_dict(self, *, include_items: bool = True, include_history: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "shipping_address": self.shipping_address,
            "billing_address": self.billing_address,
            "shipping_pincode": self.shipping_pincode,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "notes": self.notes,
            "transaction_id": self.transaction_id,
            "screenshot_url": self.screenshot_url,
            "payment_evidence_submitted_at": to_utc_z(self.payment_evidence_submitted_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        if include_history:
            data["status_history"] = [row.to_dict() for row in self.status_history]
        return data


class OrderItem(db.Model):
    """
    Denormalized snapshot of one cart line at checkout.

    Created once with its order and never mutated; cancellations and returns
    are order-level statuses.
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=False)

    product_name = db.Column(db.String(255), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    product_image = db.Column(db.String(1024), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_summary_dict(self) -> dict:
        return {
            "id": self.id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "unit_price_cents": self.unit_price_cents,
            "product_image": self.product_image,
            "quantity": self.quantity,
            "line_total_cents": self.line_total_cents,
            "created_at": to_utc_z(self.created_at),
        }


class OrderStatusHistory(db.Model):
    """Append-only log of status transitions. Never update or delete."""
    __tablename__ = "order_status_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    status = db.Column(db.String(32), nullable=False)
    payment_status = db.Column(db.String(16), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "status": self.status,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "created_by": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
