# Overview: Payment evidence submission for prepaid (upi) orders and parsing of recorded evidence.

"""
Payment Evidence Service

WHY: A prepaid transfer happens outside the storefront. The customer proves
it by submitting the transfer's transaction id and a screenshot; an operator
then confirms the order from the admin console.

SUBMISSION:
    1. validate inputs (nothing is written on failure)
    2. upload the screenshot to the object store (failure is logged, the
       submission continues without a URL)
    3. record the evidence (structured columns + a note sentence) and
       re-assert pending_payment_verification in one status update; if that
       update fails the uploaded screenshot is removed again

NOTE FORMAT (one line in the order notes trail):
    Payment submitted for verification. Transaction ID: <id>. Screenshot uploaded. Screenshot URL: <url>

parse_payment_evidence() reads the same format back for orders that predate
the structured columns.
"""

from __future__ import annotations

import mimetypes
import re
import time
from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from werkzeug.utils import secure_filename

from ..models import Order
from storefront.time_utils import to_utc_z, utcnow
from . import order_service
from .order_lifecycle import PAYMENT_METHOD_UPI, STATUS_PENDING_VERIFICATION
from .order_service import OrderNotFoundError
from .storage_service import StorageError, get_object_store


TRANSACTION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")

_TXN_RE = re.compile(r"Transaction ID: ([A-Za-z0-9_-]+)", re.IGNORECASE)
_URL_RE = re.compile(r"Screenshot URL: (\S+)", re.IGNORECASE)
_UPLOADED_RE = re.compile(r"Screenshot uploaded", re.IGNORECASE)


class PaymentEvidenceError(ValueError):
    """Base class for rejected evidence submissions."""
    pass


class MissingTransactionIdError(PaymentEvidenceError):
    pass


class InvalidTransactionIdError(PaymentEvidenceError):
    pass


class MissingScreenshotError(PaymentEvidenceError):
    pass


class InvalidScreenshotError(PaymentEvidenceError):
    pass


@dataclass(frozen=True)
class PaymentEvidence:
    transaction_id: str | None
    screenshot_uploaded: bool
    screenshot_url: str | None = None
    submitted_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "screenshot_uploaded": self.screenshot_uploaded,
            "screenshot_url": self.screenshot_url,
            "submitted_at": to_utc_z(self.submitted_at),
        }


def compose_evidence_note(transaction_id: str, screenshot_url: str | None = None) -> str:
    note = f"Payment submitted for verification. Transaction ID: {transaction_id}. Screenshot uploaded."
    if screenshot_url:
        note += f" Screenshot URL: {screenshot_url}"
    return note


def parse_payment_evidence(notes: str | None) -> PaymentEvidence | None:
    """
    Extract the most recent evidence sentence from a notes trail.

    Returns None when the notes hold no transaction id.
    """
    if not notes:
        return None

    for line in reversed(notes.splitlines()):
        txn = _TXN_RE.search(line)
        if not txn:
            continue
        url = _URL_RE.search(line)
        return PaymentEvidence(
            transaction_id=txn.group(1),
            screenshot_uploaded=bool(_UPLOADED_RE.search(line)),
            screenshot_url=url.group(1) if url else None,
        )
    return None


def _validate_transaction_id(transaction_id) -> str:
    value = (transaction_id or "").strip() if isinstance(transaction_id, str) else ""
    if not value:
        raise MissingTransactionIdError("Transaction ID is required")
    if not TRANSACTION_ID_PATTERN.match(value):
        raise InvalidTransactionIdError(
            "Transaction ID may only contain letters, digits, '-' and '_' (max 64 characters)"
        )
    return value


def _is_empty(screenshot) -> bool:
    stream = getattr(screenshot, "stream", None)
    if stream is None:
        return False
    position = stream.tell()
    first = stream.read(1)
    stream.seek(position)
    return not first


def _validate_screenshot(screenshot) -> None:
    if screenshot is None or not getattr(screenshot, "filename", None) or _is_empty(screenshot):
        raise MissingScreenshotError("Payment screenshot is required")

    mimetype = (getattr(screenshot, "mimetype", None) or "").lower()
    if not mimetype.startswith("image/"):
        raise InvalidScreenshotError(f"Screenshot must be an image, got '{mimetype or 'unknown'}'")


def _screenshot_key(order_id: int, screenshot) -> str:
    filename = secure_filename(screenshot.filename or "")
    ext = filename.rsplit(".", 1)[1].lower() if "." in filename else ""
    if not ext:
        guessed = mimetypes.guess_extension(screenshot.mimetype or "") or ".img"
        ext = guessed.lstrip(".")
    return f"{order_id}-{time.time_ns() // 1_000_000}.{ext}"


def _upload_screenshot(order: Order, screenshot) -> tuple[str | None, str | None]:
    """Returns (key, public url), or (None, None) when the store refused the upload."""
    store = get_object_store()
    bucket = current_app.config["PAYMENT_EVIDENCE_BUCKET"]
    try:
        key = store.upload(bucket, _screenshot_key(order.id, screenshot), screenshot,
                           content_type=screenshot.mimetype)
    except StorageError:
        current_app.logger.exception(
            "Screenshot upload failed for order %s; recording evidence without URL", order.order_number
        )
        return None, None
    return key, store.public_url(bucket, key)


def _discard_screenshot(order: Order, key: str) -> None:
    bucket = current_app.config["PAYMENT_EVIDENCE_BUCKET"]
    try:
        get_object_store().delete(bucket, key)
    except StorageError:
        current_app.logger.exception(
            "Could not remove screenshot %s/%s for order %s", bucket, key, order.order_number
        )


def submit_payment_evidence(order_id: int, transaction_id, screenshot, *, actor_user_id: int) -> Order:
    """
    Record payment evidence for the actor's own prepaid order.

    Args:
        order_id: Order awaiting payment verification
        transaction_id: Reference of the customer's transfer
        screenshot: werkzeug FileStorage with the transfer screenshot
        actor_user_id: Order owner

    Raises:
        MissingTransactionIdError / InvalidTransactionIdError
        MissingScreenshotError / InvalidScreenshotError
        OrderNotFoundError: Not visible to the actor
        PaymentEvidenceError: Order is not a upi order awaiting verification
    """
    transaction_id = _validate_transaction_id(transaction_id)
    _validate_screenshot(screenshot)

    order = order_service.get_order(order_id, user_id=actor_user_id)
    if order is None:
        raise OrderNotFoundError(f"Order {order_id} not found")
    if order.payment_method != PAYMENT_METHOD_UPI:
        raise PaymentEvidenceError("Payment evidence is only accepted for UPI orders")
    if order.status != STATUS_PENDING_VERIFICATION:
        raise PaymentEvidenceError(f"Order is '{order.status}', not awaiting payment verification")

    key, screenshot_url = _upload_screenshot(order, screenshot)
    note = compose_evidence_note(transaction_id, screenshot_url)

    try:
        updated = order_service.update_order_status(
            order.id,
            STATUS_PENDING_VERIFICATION,
            actor_user_id=actor_user_id,
            notes=note,
            changes={
                "transaction_id": transaction_id,
                "screenshot_url": screenshot_url,
                "payment_evidence_submitted_at": utcnow(),
            },
        )
    except Exception:
        if key is not None:
            _discard_screenshot(order, key)
        raise
    current_app.logger.info("Payment evidence recorded for order %s", updated.order_number)
    return updated
