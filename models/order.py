"""
Print order data models.

A PrintOrder is created at checkout (outside this service) in
`pending_payment` and is then driven exclusively by the order orchestrator:

    pending_payment -> payment_received -> generating_pdfs
        -> submitting_to_lulu -> submitted -> in_production
        -> shipped -> delivered

`failed` is reachable from every status except `delivered`. `delivered`
and `failed` are terminal; the only way out of `failed` is an
administrative retry (see RETRY_TRANSITIONS).
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Dict, Any, FrozenSet, Optional


class OrderStatus(Enum):
    """
    Status of a print order.

    Members are declared in lifecycle order; `rank` follows that order and
    is used to decide whether a vendor update is forward progress.
    """

    PENDING_PAYMENT = "pending_payment"
    PAYMENT_RECEIVED = "payment_received"
    GENERATING_PDFS = "generating_pdfs"
    SUBMITTING_TO_LULU = "submitting_to_lulu"
    SUBMITTED = "submitted"
    IN_PRODUCTION = "in_production"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        """Position in the happy path; FAILED ranks -1."""
        if self is OrderStatus.FAILED:
            return -1
        return _LIFECYCLE.index(self)

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.FAILED)

    @property
    def is_reconcilable(self) -> bool:
        """Statuses the periodic vendor sweep is allowed to touch."""
        return self in RECONCILABLE_STATUSES

    def is_forward_of(self, other: "OrderStatus") -> bool:
        """True if moving from `other` to this status is progress."""
        if other.is_terminal:
            return False
        if self is OrderStatus.FAILED:
            return True
        return self.rank > other.rank


_LIFECYCLE = [
    OrderStatus.PENDING_PAYMENT,
    OrderStatus.PAYMENT_RECEIVED,
    OrderStatus.GENERATING_PDFS,
    OrderStatus.SUBMITTING_TO_LULU,
    OrderStatus.SUBMITTED,
    OrderStatus.IN_PRODUCTION,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
]

RECONCILABLE_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.SUBMITTED,
    OrderStatus.IN_PRODUCTION,
    OrderStatus.SHIPPED,
})


def _build_transitions() -> Dict[OrderStatus, FrozenSet[OrderStatus]]:
    transitions: Dict[OrderStatus, FrozenSet[OrderStatus]] = {}
    for status in _LIFECYCLE:
        if status is OrderStatus.DELIVERED:
            transitions[status] = frozenset()
            continue
        forward = {s for s in _LIFECYCLE if s.rank == status.rank + 1}
        # Vendor may report several steps at once (submitted -> shipped)
        if status.rank >= OrderStatus.SUBMITTED.rank:
            forward |= {s for s in _LIFECYCLE if s.rank > status.rank}
        transitions[status] = frozenset(forward | {OrderStatus.FAILED})
    transitions[OrderStatus.FAILED] = frozenset()
    return transitions


ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = _build_transitions()

# Administrative re-trigger only
RETRY_TRANSITIONS: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.GENERATING_PDFS,
    OrderStatus.SUBMITTING_TO_LULU,
})


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True)
class ShippingAddress:
    """Destination for the printed book (vendor field names in to_vendor_dict)."""

    name: str
    street1: str
    city: str
    state_code: str
    postal_code: str
    country_code: str = "US"
    phone_number: str = ""
    street2: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShippingAddress":
        return cls(
            name=data.get("name", ""),
            street1=data.get("street1", ""),
            street2=data.get("street2") or None,
            city=data.get("city", ""),
            state_code=data.get("state_code", ""),
            postal_code=data.get("postal_code", ""),
            country_code=data.get("country_code", "US"),
            phone_number=data.get("phone_number", ""),
        )

    def to_vendor_dict(self) -> Dict[str, Any]:
        """Shipping address in the vendor's print-job format."""
        data = {
            "name": self.name,
            "street1": self.street1,
            "city": self.city,
            "state_code": self.state_code,
            "postcode": self.postal_code,
            "country_code": self.country_code,
            "phone_number": self.phone_number,
        }
        if self.street2:
            data["street2"] = self.street2
        return data


@dataclass
class PrintOrder:
    """
    A print order as persisted by the order repository.

    Invariants:
        - interior_reference and cover_reference are set together
        - lulu_job_id, once set, never changes
    """

    id: str
    book_id: str
    status: OrderStatus
    shipping_address: ShippingAddress
    contact_email: str

    interior_reference: Optional[str] = None
    cover_reference: Optional[str] = None
    artifacts_generated_at: Optional[datetime] = None

    lulu_job_id: Optional[str] = None
    lulu_status: Optional[str] = None

    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None

    cost_cents: int = 0
    price_cents: int = 0

    failure_reason: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_artifacts(self) -> bool:
        return bool(self.interior_reference and self.cover_reference)

    def to_dict(self) -> Dict[str, Any]:
        """Full order record (internal/admin view)."""
        def iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "book_id": self.book_id,
            "status": self.status.value,
            "shipping_address": self.shipping_address.to_dict(),
            "contact_email": self.contact_email,
            "interior_reference": self.interior_reference,
            "cover_reference": self.cover_reference,
            "artifacts_generated_at": iso(self.artifacts_generated_at),
            "lulu_job_id": self.lulu_job_id,
            "lulu_status": self.lulu_status,
            "tracking_number": self.tracking_number,
            "tracking_url": self.tracking_url,
            "cost_cents": self.cost_cents,
            "price_cents": self.price_cents,
            "failure_reason": self.failure_reason,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "paid_at": iso(self.paid_at),
            "submitted_at": iso(self.submitted_at),
            "shipped_at": iso(self.shipped_at),
            "delivered_at": iso(self.delivered_at),
            "failed_at": iso(self.failed_at),
        }


CUSTOMER_FAILURE_MESSAGE = "There was a processing issue with your order. We are on it."


def customer_view(order: PrintOrder) -> Dict[str, Any]:
    """
    What the customer may see about an order.

    Failure reasons and vendor identifiers are internal; a failed order
    shows a generic message instead.
    """
    view: Dict[str, Any] = {
        "id": order.id,
        "book_id": order.book_id,
        "status": order.status.value,
        "tracking_number": order.tracking_number,
        "tracking_url": order.tracking_url,
        "price_cents": order.price_cents,
    }
    if order.status is OrderStatus.FAILED:
        view["message"] = CUSTOMER_FAILURE_MESSAGE
    return view
