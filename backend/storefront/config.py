# backend/storefront/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storefront.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///storefront.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Object storage (local filesystem bucket root + public base URL)
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", os.path.join(os.getcwd(), "uploads"))
    PUBLIC_UPLOAD_URL = os.environ.get("PUBLIC_UPLOAD_URL", "/uploads")
    PAYMENT_EVIDENCE_BUCKET = os.environ.get("PAYMENT_EVIDENCE_BUCKET", "payment-screenshots")
    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))

    # Order lifecycle
    ORDER_NUMBER_ATTEMPTS = int(os.environ.get("ORDER_NUMBER_ATTEMPTS", "3"))
    ORDER_TRANSITION_POLICY = os.environ.get("ORDER_TRANSITION_POLICY", "permissive")
    ORDER_LIST_LIMIT = int(os.environ.get("ORDER_LIST_LIMIT", "20"))
    ORDER_FULL_LIST_LIMIT = int(os.environ.get("ORDER_FULL_LIST_LIMIT", "50"))
    INCOMPLETE_ORDER_GRACE_MINUTES = int(os.environ.get("INCOMPLETE_ORDER_GRACE_MINUTES", "15"))

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
