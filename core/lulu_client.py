"""
Lulu print API client.

Wraps the three vendor operations the pipeline needs (authenticate, submit
a print job, read a print job's status) plus the two price estimates.

Error mapping (every call):
    timeout / connection error -> TransientVendorError (retried)
    429 / 5xx                  -> TransientVendorError (retried)
    401                        -> token dropped, call re-authenticated once
    other 4xx                  -> VendorRejectedError with the raw body
    token endpoint refusal     -> VendorAuthError

Retries are never written inline: every call goes through one shared
BackoffPolicy.

THREAD SAFETY:
    One client may be shared by task threads and the reconciliation
    thread. The cached token is guarded by a lock; requests.Session is
    safe for concurrent use in this pattern (no shared cookies/auth state).

Usage:
    client = LuluClient(key, secret, use_sandbox=True)
    job_id = client.submit(order, "Our Trip", interior_url, cover_url)
    status = client.poll_status(order)
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

import requests

from .exceptions import (
    InvalidTransitionError,
    TransientVendorError,
    VendorAuthError,
    VendorError,
    VendorRejectedError,
)
from .geometry import POD_PACKAGE_ID
from .retry import BackoffPolicy
from models.order import PrintOrder
from models.vendor_status import VendorJobStatus

PRODUCTION_URL = "https://api.lulu.com"
SANDBOX_URL = "https://api.sandbox.lulu.com"
TOKEN_PATH = "/auth/realms/glasstree/protocol/openid-connect/token"

SHIPPING_LEVEL = "GROUND"

# Refresh the token this long before the vendor says it expires
TOKEN_EXPIRY_MARGIN_SECONDS = 60.0


def build_print_job_request(
    order: PrintOrder,
    title: str,
    interior_url: str,
    cover_url: str,
    pod_package_id: str = POD_PACKAGE_ID,
) -> Dict[str, Any]:
    """Request body for POST /print-jobs/ (one line item, quantity 1)."""
    return {
        "contact_email": order.contact_email,
        "external_id": order.id,
        "shipping_address": order.shipping_address.to_vendor_dict(),
        "shipping_option_level": SHIPPING_LEVEL,
        "line_items": [
            {
                "external_id": order.book_id,
                "title": title,
                "cover": cover_url,
                "interior": interior_url,
                "pod_package_id": pod_package_id,
                "quantity": 1,
            }
        ],
    }


class LuluClient:
    """
    Client for the Lulu print-on-demand API.

    Attributes:
        base_url: API root (sandbox or production)
    """

    def __init__(
        self,
        client_key: str,
        client_secret: str,
        use_sandbox: bool = True,
        timeout_seconds: float = 30.0,
        backoff: Optional[BackoffPolicy] = None,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            client_key: Client id for the client-credentials grant
            client_secret: Client secret
            use_sandbox: Talk to the sandbox API instead of production
            timeout_seconds: Upper bound for every HTTP request
            backoff: Retry policy shared by every call
            session: requests.Session (injected for tests)
            logger: Logger instance (creates default if not provided)
            clock: Monotonic clock for token expiry
        """
        self._client_key = client_key
        self._client_secret = client_secret
        self.base_url = SANDBOX_URL if use_sandbox else PRODUCTION_URL
        self._timeout = timeout_seconds
        self._backoff = backoff or BackoffPolicy()
        self._session = session or requests.Session()
        self._logger = logger or logging.getLogger("storyprint.core.lulu_client")
        self._clock = clock

        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    @classmethod
    def from_config(cls, config, logger: Optional[logging.Logger] = None) -> "LuluClient":
        """Build a client from a Flask config mapping."""
        return cls(
            client_key=config.get("LULU_CLIENT_KEY", ""),
            client_secret=config.get("LULU_CLIENT_SECRET", ""),
            use_sandbox=config.get("LULU_USE_SANDBOX", True),
            timeout_seconds=config.get("LULU_TIMEOUT_SECONDS", 30.0),
            backoff=BackoffPolicy(
                max_retries=config.get("LULU_MAX_RETRIES", 2),
                base_delay_seconds=config.get("LULU_BACKOFF_BASE_SECONDS", 1.0),
            ),
            logger=logger,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._client_key and self._client_secret)

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================

    def authenticate(self, force: bool = False) -> str:
        """
        Return a bearer token, fetching a new one if needed.

        Raises:
            VendorAuthError: credentials missing or refused
            TransientVendorError: token endpoint unreachable / 429 / 5xx
        """
        with self._token_lock:
            if not force and self._token and self._clock() < self._token_expires_at:
                return self._token

            if not self.is_configured:
                raise VendorAuthError("LULU_CLIENT_KEY and LULU_CLIENT_SECRET must be configured",
                                      operation="authenticate")

            self._logger.debug("Requesting Lulu access token")
            data = {
                "grant_type": "client_credentials",
                "client_id": self._client_key,
                "client_secret": self._client_secret,
            }
            response = self._send("POST", self.base_url + TOKEN_PATH, "authenticate", data=data)

            if response.status_code == 429 or response.status_code >= 500:
                raise TransientVendorError(
                    f"Lulu auth failed: {response.status_code}",
                    status_code=response.status_code, body=response.text, operation="authenticate",
                )
            if not 200 <= response.status_code < 300:
                raise VendorAuthError(
                    f"Lulu auth failed: {response.status_code} - {response.text}",
                    status_code=response.status_code, body=response.text, operation="authenticate",
                )

            payload = self._json(response, "authenticate")
            token = payload.get("access_token")
            if not token:
                raise VendorAuthError("Lulu token response has no access_token", operation="authenticate")

            expires_in = float(payload.get("expires_in") or 0)
            self._token = token
            self._token_expires_at = self._clock() + max(0.0, expires_in - TOKEN_EXPIRY_MARGIN_SECONDS)
            self._logger.info(f"Lulu access token acquired (expires in {expires_in:.0f}s)")
            return token

    def invalidate_token(self) -> None:
        with self._token_lock:
            self._token = None
            self._token_expires_at = 0.0

    # =========================================================================
    # PRINT JOBS
    # =========================================================================

    def submit(self, order: PrintOrder, title: str, interior_url: str, cover_url: str) -> str:
        """
        Create a print job for an order.

        Returns:
            The vendor-assigned print job id

        Raises:
            InvalidTransitionError: an artifact URL is missing
            VendorRejectedError: the vendor refused the job (raw body kept)
            VendorError: any other failure after retries
        """
        if not interior_url or not cover_url:
            raise InvalidTransitionError(order.id, order.status.value, "submit",
                                         "both interior and cover URLs are required")

        body = build_print_job_request(order, title, interior_url, cover_url)
        self._logger.info(f"Submitting print job for order {order.id}")

        job = self._call("POST", "/print-jobs/", "submit", json=body)
        job_id = job.get("id")
        if job_id is None:
            raise VendorError("Lulu accepted the print job but returned no id", operation="submit",
                              body=str(job))

        status_name = (job.get("status") or {}).get("name", "")
        self._logger.info(f"Order {order.id} submitted as Lulu job {job_id} ({status_name})")
        return str(job_id)

    def poll_status(self, order: PrintOrder) -> VendorJobStatus:
        """
        Read the current vendor status of an order's print job.

        Raises:
            InvalidTransitionError: the order has no vendor job id
            VendorError: the status could not be read after retries
        """
        if not order.lulu_job_id:
            raise InvalidTransitionError(order.id, order.status.value, "poll", "order has no Lulu job id")
        return self.get_print_job(order.lulu_job_id)

    def get_print_job(self, job_id: str) -> VendorJobStatus:
        job = self._call("GET", f"/print-jobs/{job_id}/", "poll_status")
        status = VendorJobStatus.from_print_job(job)
        self._logger.debug(f"Lulu job {job_id}: {status.raw_status}")
        return status

    # =========================================================================
    # ESTIMATES
    # =========================================================================

    def get_print_cost_estimate(self, page_count: int) -> Dict[str, Any]:
        """Print cost for one copy, excluding tax: {"cost": float, "currency": str}."""
        params = {"page_count": page_count, "pod_package_id": POD_PACKAGE_ID, "quantity": 1}
        data = self._call("GET", "/print-job-cost-calculations/", "cost_estimate", params=params)
        if not data.get("total_cost_excl_tax"):
            raise VendorError("Could not calculate cost", operation="cost_estimate", body=str(data))
        return {"cost": float(data["total_cost_excl_tax"]), "currency": data.get("currency") or "USD"}

    def get_shipping_estimate(self, page_count: int, postal_code: str, country_code: str = "US") -> Dict[str, Any]:
        """Ground shipping cost: {"cost": float, "currency": str}."""
        params = {
            "page_count": page_count,
            "pod_package_id": POD_PACKAGE_ID,
            "quantity": 1,
            "postal_code": postal_code,
            "country_code": country_code,
            "level": SHIPPING_LEVEL,
        }
        data = self._call("GET", "/print-shipping-options/", "shipping_estimate", params=params)
        for option in data.get("results") or []:
            if option.get("level") == SHIPPING_LEVEL:
                return {
                    "cost": float(option.get("total_cost_excl_tax") or 0),
                    "currency": option.get("currency") or "USD",
                }
        raise VendorError("No shipping options available", operation="shipping_estimate")

    # =========================================================================
    # HTTP
    # =========================================================================

    def _call(self, method: str, path: str, operation: str, **kwargs) -> Dict[str, Any]:
        """One logical API call: authenticated, retried per the backoff policy."""
        return self._backoff.call(
            lambda: self._authorized_request(method, path, operation, **kwargs),
            operation=f"Lulu {operation}",
            logger=self._logger,
        )

    def _authorized_request(self, method: str, path: str, operation: str, **kwargs) -> Dict[str, Any]:
        url = self.base_url + path
        response = self._send(method, url, operation, headers=self._auth_header(), **kwargs)

        if response.status_code == 401:
            self._logger.info(f"Lulu returned 401 for {operation}; re-authenticating")
            self.invalidate_token()
            response = self._send(method, url, operation, headers=self._auth_header(force=True), **kwargs)
            if response.status_code == 401:
                raise VendorAuthError(
                    f"Lulu refused credentials for {operation}",
                    status_code=401, body=response.text, operation=operation,
                )

        self._raise_for_status(response, operation)
        return self._json(response, operation)

    def _auth_header(self, force: bool = False) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.authenticate(force=force)}"}

    def _send(self, method: str, url: str, operation: str, **kwargs) -> requests.Response:
        try:
            return self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.Timeout as exc:
            raise TransientVendorError(f"Lulu {operation} timed out after {self._timeout}s",
                                       operation=operation) from exc
        except requests.ConnectionError as exc:
            raise TransientVendorError(f"Lulu {operation} connection failed: {exc}",
                                       operation=operation) from exc

    def _raise_for_status(self, response: requests.Response, operation: str) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        if status == 429 or status >= 500:
            self._logger.warning(f"Lulu {operation} returned {status}: {response.text}")
            raise TransientVendorError(
                f"Lulu API error: {status}", status_code=status, body=response.text, operation=operation
            )
        self._logger.error(f"Lulu rejected {operation} ({status}): {response.text}")
        raise VendorRejectedError(status, response.text, operation=operation)

    def _json(self, response: requests.Response, operation: str) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise VendorError(f"Lulu {operation} returned invalid JSON", status_code=response.status_code,
                              body=response.text, operation=operation) from exc
        if not isinstance(data, dict):
            raise VendorError(f"Lulu {operation} returned unexpected JSON", status_code=response.status_code,
                              body=response.text, operation=operation)
        return data
