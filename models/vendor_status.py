"""
Print vendor job status.

The vendor reports print job status as a free-form string. It is parsed
into a closed enum here; anything unrecognised becomes UNKNOWN, which maps
to no order status and is therefore a no-op during reconciliation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Any, Optional

from .order import OrderStatus


class VendorStatus(Enum):
    """Print job statuses reported by Lulu."""

    CREATED = "CREATED"
    UNPAID = "UNPAID"
    PAYMENT_IN_PROGRESS = "PAYMENT_IN_PROGRESS"
    PRODUCTION_READY = "PRODUCTION_READY"
    PRODUCTION_DELAYED = "PRODUCTION_DELAYED"
    IN_PRODUCTION = "IN_PRODUCTION"
    MANUFACTURED = "MANUFACTURED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELED = "CANCELED"
    REJECTED = "REJECTED"
    ERROR = "ERROR"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, name: Optional[str]) -> "VendorStatus":
        """Parse a vendor status name; unrecognised names give UNKNOWN."""
        if not name:
            return cls.UNKNOWN
        try:
            return cls(name.strip().upper())
        except ValueError:
            return cls.UNKNOWN

    @property
    def order_status(self) -> Optional[OrderStatus]:
        """Order status this vendor status corresponds to (None for UNKNOWN)."""
        return VENDOR_STATUS_MAP.get(self)


VENDOR_STATUS_MAP: Dict[VendorStatus, OrderStatus] = {
    VendorStatus.CREATED: OrderStatus.SUBMITTED,
    VendorStatus.UNPAID: OrderStatus.SUBMITTED,
    VendorStatus.PAYMENT_IN_PROGRESS: OrderStatus.SUBMITTED,
    VendorStatus.PRODUCTION_READY: OrderStatus.IN_PRODUCTION,
    VendorStatus.PRODUCTION_DELAYED: OrderStatus.IN_PRODUCTION,
    VendorStatus.IN_PRODUCTION: OrderStatus.IN_PRODUCTION,
    VendorStatus.MANUFACTURED: OrderStatus.IN_PRODUCTION,
    VendorStatus.SHIPPED: OrderStatus.SHIPPED,
    VendorStatus.DELIVERED: OrderStatus.DELIVERED,
    VendorStatus.CANCELED: OrderStatus.FAILED,
    VendorStatus.REJECTED: OrderStatus.FAILED,
    VendorStatus.ERROR: OrderStatus.FAILED,
}


@dataclass(frozen=True)
class VendorJobStatus:
    """
    Result of polling (or being notified about) one vendor print job.

    Tracking fields are only populated when the job has shipped.
    """

    job_id: str
    status: VendorStatus
    raw_status: str
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    message: Optional[str] = None
    """Vendor-provided status detail (e.g. rejection reason)."""

    @property
    def order_status(self) -> Optional[OrderStatus]:
        return self.status.order_status

    @classmethod
    def from_print_job(cls, job: Dict[str, Any]) -> "VendorJobStatus":
        """
        Build from a vendor print-job document.

        The same document shape is returned by GET /print-jobs/{id}/ and
        delivered in status-change webhooks.
        """
        status_info = job.get("status") or {}
        if isinstance(status_info, str):
            raw = status_info
            message = None
        else:
            raw = status_info.get("name") or ""
            message = status_info.get("message")

        status = VendorStatus.parse(raw)

        tracking_number = None
        tracking_url = None
        if status is VendorStatus.SHIPPED:
            line_items = job.get("line_items") or []
            if line_items:
                item = line_items[0]
                tracking_number = item.get("tracking_id")
                urls = item.get("tracking_urls") or []
                tracking_url = urls[0] if urls else None

        return cls(
            job_id=str(job.get("id", "")),
            status=status,
            raw_status=raw,
            tracking_number=tracking_number,
            tracking_url=tracking_url,
            message=message,
        )
