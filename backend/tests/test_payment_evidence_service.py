"""
Payment evidence tests.

Verifies:
- Input validation happens before any write
- Evidence is recorded as a note sentence and in structured columns
- Screenshot upload failures do not block the submission
- The note format can be parsed back
"""

import os

import pytest

from storefront.extensions import db
from storefront.models import Order, OrderStatusHistory
from storefront.services import order_service
from storefront.services.order_service import ConcurrentModificationError, OrderNotFoundError
from storefront.services.payment_evidence_service import (
    InvalidScreenshotError,
    InvalidTransactionIdError,
    MissingScreenshotError,
    MissingTransactionIdError,
    PaymentEvidenceError,
    compose_evidence_note,
    parse_payment_evidence,
    submit_payment_evidence,
)
from storefront.services.storage_service import StorageError

from conftest import fill_cart, place_order, screenshot


@pytest.fixture
def upi_order(customer, products):
    tea, mug = products
    return place_order(customer, fill_cart(customer, (tea, 2), (mug, 1)), payment_method="upi")


class FailingStore:
    def upload(self, bucket, key, file, content_type=None):
        raise StorageError("bucket offline")

    def public_url(self, bucket, key):
        raise AssertionError("public_url must not be called after a failed upload")


class TestSubmission:

    def test_records_note_and_columns(self, app, customer, upi_order):
        order = submit_payment_evidence(upi_order.id, "UPI123ABC", screenshot(), actor_user_id=customer.id)

        assert order.status == "pending_payment_verification"
        assert order.payment_status == "pending"
        assert order.transaction_id == "UPI123ABC"
        assert order.screenshot_url.startswith("/uploads/payment-screenshots/")
        assert order.screenshot_url.endswith(".png")
        assert order.payment_evidence_submitted_at is not None
        assert (
            "Payment submitted for verification. Transaction ID: UPI123ABC. Screenshot uploaded. "
            f"Screenshot URL: {order.screenshot_url}"
        ) in order.notes

        key = order.screenshot_url.rsplit("/", 1)[1]
        assert key.startswith(f"{order.id}-")
        stored = os.path.join(app.config["UPLOAD_FOLDER"], "payment-screenshots", key)
        assert os.path.exists(stored)

        history = db.session.query(OrderStatusHistory).filter_by(order_id=order.id).count()
        assert history == 2

    def test_upload_failure_still_records_evidence(self, app, customer, upi_order, monkeypatch):
        monkeypatch.setitem(app.extensions, "object_store", FailingStore())

        order = submit_payment_evidence(upi_order.id, "TXN-77", screenshot(), actor_user_id=customer.id)

        assert order.transaction_id == "TXN-77"
        assert order.screenshot_url is None
        assert "Transaction ID: TXN-77. Screenshot uploaded." in order.notes
        assert "Screenshot URL" not in order.notes

    def test_failed_status_update_removes_screenshot(self, app, customer, upi_order, monkeypatch):
        bucket_dir = os.path.join(app.config["UPLOAD_FOLDER"], "payment-screenshots")
        before = set(os.listdir(bucket_dir)) if os.path.isdir(bucket_dir) else set()

        def conflicting_update(*args, **kwargs):
            raise ConcurrentModificationError("Order was modified concurrently")

        monkeypatch.setattr(order_service, "update_order_status", conflicting_update)

        with pytest.raises(ConcurrentModificationError):
            submit_payment_evidence(upi_order.id, "UPI404", screenshot(), actor_user_id=customer.id)

        assert set(os.listdir(bucket_dir)) == before
        db.session.expire_all()
        assert db.session.query(Order).filter_by(id=upi_order.id).first().transaction_id is None

    def test_store_delete(self, app):
        store = app.extensions["object_store"]
        key = store.upload("scratch", "note.png", b"png")

        assert store.delete("scratch", key) is True
        assert store.delete("scratch", key) is False

    def test_resubmission_keeps_latest(self, customer, upi_order):
        submit_payment_evidence(upi_order.id, "FIRST1", screenshot(), actor_user_id=customer.id)
        order = submit_payment_evidence(upi_order.id, "SECOND2", screenshot(), actor_user_id=customer.id)

        assert order.transaction_id == "SECOND2"
        assert parse_payment_evidence(order.notes).transaction_id == "SECOND2"


class TestValidation:

    @pytest.mark.parametrize("transaction_id", [None, "", "   "])
    def test_missing_transaction_id(self, customer, upi_order, transaction_id):
        with pytest.raises(MissingTransactionIdError):
            submit_payment_evidence(upi_order.id, transaction_id, screenshot(), actor_user_id=customer.id)

    @pytest.mark.parametrize("transaction_id", ["has space", "semi;colon", "x" * 65])
    def test_malformed_transaction_id(self, customer, upi_order, transaction_id):
        with pytest.raises(InvalidTransactionIdError):
            submit_payment_evidence(upi_order.id, transaction_id, screenshot(), actor_user_id=customer.id)

    def test_missing_screenshot(self, customer, upi_order):
        with pytest.raises(MissingScreenshotError):
            submit_payment_evidence(upi_order.id, "UPI1", None, actor_user_id=customer.id)

    def test_empty_screenshot(self, customer, upi_order):
        with pytest.raises(MissingScreenshotError):
            submit_payment_evidence(upi_order.id, "UPI1", screenshot(content=b""), actor_user_id=customer.id)

    def test_non_image_screenshot(self, customer, upi_order):
        pdf = screenshot(filename="proof.pdf", content_type="application/pdf")
        with pytest.raises(InvalidScreenshotError):
            submit_payment_evidence(upi_order.id, "UPI1", pdf, actor_user_id=customer.id)

    def test_validation_failure_leaves_order_untouched(self, customer, upi_order):
        with pytest.raises(MissingScreenshotError):
            submit_payment_evidence(upi_order.id, "UPI1", None, actor_user_id=customer.id)

        db.session.expire_all()
        order = db.session.query(Order).filter_by(id=upi_order.id).first()
        assert order.transaction_id is None
        assert order.notes is None
        assert len(order.status_history) == 1


class TestOrderChecks:

    def test_other_customers_order(self, other_customer, upi_order):
        with pytest.raises(OrderNotFoundError):
            submit_payment_evidence(upi_order.id, "UPI1", screenshot(), actor_user_id=other_customer.id)

    def test_cod_order_rejected(self, customer, products):
        tea, _ = products
        cod = place_order(customer, fill_cart(customer, (tea, 1)), payment_method="cod")

        with pytest.raises(PaymentEvidenceError):
            submit_payment_evidence(cod.id, "UPI1", screenshot(), actor_user_id=customer.id)

    def test_confirmed_order_rejected(self, customer, operator, upi_order):
        order_service.update_order_status(upi_order.id, "confirmed", actor_user_id=operator.id)

        with pytest.raises(PaymentEvidenceError):
            submit_payment_evidence(upi_order.id, "UPI1", screenshot(), actor_user_id=customer.id)


class TestParsing:

    def test_parses_composed_note(self):
        note = compose_evidence_note("UPI123", "/uploads/payment-screenshots/7-1700000000000.png")
        evidence = parse_payment_evidence(note)

        assert evidence.transaction_id == "UPI123"
        assert evidence.screenshot_uploaded is True
        assert evidence.screenshot_url == "/uploads/payment-screenshots/7-1700000000000.png"

    def test_parses_legacy_note_case_insensitive(self):
        evidence = parse_payment_evidence("payment submitted. transaction id: abc999. screenshot uploaded.")

        assert evidence.transaction_id == "abc999"
        assert evidence.screenshot_uploaded is True
        assert evidence.screenshot_url is None

    def test_last_submission_wins(self):
        notes = "\n".join([
            compose_evidence_note("OLD1", "https://cdn.shop.test/old.png"),
            "Customer called about delivery",
            compose_evidence_note("NEW2"),
        ])
        evidence = parse_payment_evidence(notes)

        assert evidence.transaction_id == "NEW2"
        assert evidence.screenshot_url is None

    @pytest.mark.parametrize("notes", [None, "", "Left at the door"])
    def test_no_evidence(self, notes):
        assert parse_payment_evidence(notes) is None
