"""
Request helpers shared by the webhook and admin blueprints.

- Shared-secret header checks for webhook and admin callers
- Lulu webhook signature check
- Sanitizing identifiers and text that arrive over HTTP
"""

from __future__ import annotations

import hashlib
import hmac
from functools import wraps

import bleach
from flask import current_app, request

from logging_config import get_logger


logger = get_logger(__name__)

MAX_ID_LENGTH = 64

WEBHOOK_TOKEN_HEADER = "X-Webhook-Token"
ADMIN_TOKEN_HEADER = "X-Admin-Token"
LULU_SIGNATURE_HEADER = "Lulu-HMAC-SHA256"


def sanitize_text(text, max_length: int = None) -> str:
    """Strip whitespace and any markup; optionally truncate."""
    if not text:
        return ""

    text = bleach.clean(str(text).strip(), tags=[], strip=True)

    if max_length and len(text) > max_length:
        text = text[:max_length]

    return text


def _token_matches(config_key: str, header: str) -> bool:
    expected = current_app.config.get(config_key) or ""
    supplied = request.headers.get(header, "")
    # An unset token locks the endpoint rather than opening it
    if not expected:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


def require_token(config_key: str, header: str):
    """Decorator: reject the request with 401 unless `header` carries the configured token."""

    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            if not _token_matches(config_key, header):
                logger.warning(f"Rejected {request.method} {request.path}: missing or invalid {header}")
                return {"error": "unauthorized"}, 401
            return view(*args, **kwargs)

        return wrapped

    return decorator


def lulu_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_lulu_signature() -> bool:
    """Check the HMAC Lulu sends with each webhook (keyed with the API client secret)."""
    secret = current_app.config.get("LULU_CLIENT_SECRET") or ""
    supplied = request.headers.get(LULU_SIGNATURE_HEADER, "")
    if not secret or not supplied:
        return False
    return hmac.compare_digest(lulu_signature(secret, request.get_data()), supplied.lower())
