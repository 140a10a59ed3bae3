"""
Document store adapter.

Stores generated PDFs (and the images the compositors read) and hands out
URLs the print vendor can download them from.

Two implementations:
    LocalDocumentStore     - files in a directory, served over HTTP by this
                             app (public base URL or HMAC-signed, expiring URLs)
    InMemoryDocumentStore  - dict-backed, for tests and dry runs

Stored documents are write-once: every store() call creates a new reference.
"""

from __future__ import annotations

import hashlib
import hmac
import mimetypes
import re
import threading
import time
import uuid
from pathlib import Path
from typing import Dict, Optional, Tuple
from urllib.parse import urlencode

from core.exceptions import StorageError
from logging_config import get_logger


logger = get_logger(__name__)

# References are generated here, never taken from callers as paths
_REFERENCE_PATTERN = re.compile(r"^[0-9a-f]{32}\.[a-z0-9]{1,8}$")

_EXTENSIONS = {
    "application/pdf": "pdf",
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
}


def extension_for(content_type: str) -> str:
    return _EXTENSIONS.get(content_type.split(";")[0].strip().lower(), "bin")


def content_type_for(reference: str) -> str:
    guessed, _ = mimetypes.guess_type(reference)
    return guessed or "application/octet-stream"


def new_reference(content_type: str) -> str:
    return f"{uuid.uuid4().hex}.{extension_for(content_type)}"


def is_valid_reference(reference: Optional[str]) -> bool:
    return bool(reference) and bool(_REFERENCE_PATTERN.match(reference))


class DocumentStore:
    """Interface shared by the document store implementations."""

    def store(self, data: bytes, content_type: str) -> str:
        """Persist bytes; returns a new durable reference."""
        raise NotImplementedError

    def fetch(self, reference: str) -> bytes:
        """Read a stored document. Raises StorageError if missing."""
        raise NotImplementedError

    def fetch_url(self, reference: str) -> str:
        """URL the external vendor can download the document from."""
        raise NotImplementedError

    def exists(self, reference: str) -> bool:
        """True if the reference names a stored document."""
        raise NotImplementedError


class LocalDocumentStore(DocumentStore):
    """
    Directory-backed store.

    URLs are `{base_url}/{reference}`. When a secret is configured the URL
    also carries `expires` and `signature` query parameters, checked by
    verify_signature() before the document is served.
    """

    def __init__(
        self,
        root: str | Path,
        base_url: str,
        secret: str = "",
        url_ttl_seconds: int = 7 * 24 * 3600,
        clock=time.time,
    ):
        self._root = Path(root)
        self._base_url = base_url.rstrip("/")
        self._secret = secret.encode("utf-8") if secret else b""
        self._ttl = url_ttl_seconds
        self._clock = clock

        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create document store directory {self._root}: {exc}") from exc

        logger.info(
            f"LocalDocumentStore at {self._root} "
            f"({'signed' if self._secret else 'public'} URLs under {self._base_url})"
        )

    @property
    def signs_urls(self) -> bool:
        return bool(self._secret)

    def _path(self, reference: str) -> Path:
        if not is_valid_reference(reference):
            raise StorageError("Invalid document reference", reference=reference)
        return self._root / reference

    def store(self, data: bytes, content_type: str) -> str:
        reference = new_reference(content_type)
        path = self._root / reference
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            tmp_path.write_bytes(data)
            tmp_path.replace(path)
        except OSError as exc:
            raise StorageError(f"Failed to store document: {exc}", reference=reference) from exc

        logger.debug(f"Stored {reference} ({len(data)} bytes, {content_type})")
        return reference

    def fetch(self, reference: str) -> bytes:
        path = self._path(reference)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise StorageError("Document not found", reference=reference) from exc
        except OSError as exc:
            raise StorageError(f"Failed to read document: {exc}", reference=reference) from exc

    def exists(self, reference: str) -> bool:
        if not is_valid_reference(reference):
            return False
        return self._path(reference).is_file()

    def fetch_url(self, reference: str) -> str:
        path = self._path(reference)
        if not path.exists():
            raise StorageError("Document not found", reference=reference)

        url = f"{self._base_url}/{reference}"
        if not self._secret:
            return url

        expires = int(self._clock()) + self._ttl
        query = urlencode({"expires": expires, "signature": self._sign(reference, expires)})
        return f"{url}?{query}"

    def verify_signature(self, reference: str, expires: str, signature: str) -> bool:
        """Check a signed URL's parameters. Unsigned stores accept everything."""
        if not self._secret:
            return True
        try:
            expires_at = int(expires)
        except (TypeError, ValueError):
            return False
        if expires_at < int(self._clock()):
            return False
        return hmac.compare_digest(self._sign(reference, expires_at), signature or "")

    def _sign(self, reference: str, expires: int) -> str:
        message = f"{reference}:{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed store; URLs are `memory://{reference}`."""

    def __init__(self, base_url: str = "memory://"):
        self._documents: Dict[str, Tuple[bytes, str]] = {}
        self._lock = threading.Lock()
        self._base_url = base_url

    def store(self, data: bytes, content_type: str) -> str:
        reference = new_reference(content_type)
        with self._lock:
            self._documents[reference] = (bytes(data), content_type)
        return reference

    def fetch(self, reference: str) -> bytes:
        with self._lock:
            entry = self._documents.get(reference)
        if entry is None:
            raise StorageError("Document not found", reference=reference)
        return entry[0]

    def fetch_url(self, reference: str) -> str:
        with self._lock:
            if reference not in self._documents:
                raise StorageError("Document not found", reference=reference)
        return f"{self._base_url}{reference}"

    def exists(self, reference: str) -> bool:
        with self._lock:
            return reference in self._documents

    def __len__(self) -> int:
        with self._lock:
            return len(self._documents)
