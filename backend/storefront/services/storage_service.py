# Overview: Object storage for uploaded files (local filesystem buckets with public URLs).

"""
Object Storage

WHY: Payment screenshots are binary evidence that must be reachable by a
URL an operator can open. The storefront only needs two operations from an
object store: upload(bucket, key, file) and public_url(bucket, key).

LocalObjectStore keeps buckets as directories under UPLOAD_FOLDER and
serves them through GET /uploads/<bucket>/<key> (routes/system.py). Any
other backend only has to provide the same two methods and be installed in
app.extensions["object_store"].
"""

from __future__ import annotations

import os

from flask import current_app
from werkzeug.security import safe_join


class StorageError(Exception):
    """Raised when an object cannot be stored or located."""
    pass


class LocalObjectStore:
    def __init__(self, root: str, public_base_url: str = "/uploads"):
        self.root = root
        self.public_base_url = public_base_url.rstrip("/")

    def path_for(self, bucket: str, key: str) -> str:
        bucket_dir = safe_join(self.root, bucket)
        path = safe_join(bucket_dir, key) if bucket_dir else None
        if not path:
            raise StorageError(f"Invalid object key: {bucket}/{key}")
        return path

    def upload(self, bucket: str, key: str, file, content_type: str | None = None) -> str:
        """
        Store file (werkzeug FileStorage, file-like object, or bytes) at bucket/key.

        Refuses to overwrite an existing object. Returns the key.
        """
        path = self.path_for(bucket, key)
        if os.path.exists(path):
            raise StorageError(f"Object already exists: {bucket}/{key}")

        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            if hasattr(file, "save"):
                file.save(path)
            elif isinstance(file, (bytes, bytearray)):
                with open(path, "wb") as fh:
                    fh.write(file)
            else:
                with open(path, "wb") as fh:
                    fh.write(file.read())
        except OSError as exc:
            raise StorageError(f"Upload failed for {bucket}/{key}: {exc}") from exc

        return key

    def delete(self, bucket: str, key: str) -> bool:
        """Remove bucket/key. Returns False when the object did not exist."""
        path = self.path_for(bucket, key)
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Delete failed for {bucket}/{key}: {exc}") from exc
        return True

    def public_url(self, bucket: str, key: str) -> str:
        return f"{self.public_base_url}/{bucket}/{key}"


def get_object_store():
    return current_app.extensions["object_store"]
