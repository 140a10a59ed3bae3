"""
Data models for StoryPrint.

This module contains dataclasses for:
- Book, ContentPage, PageImage, CoverDesign: read-only book data
- PrintOrder, ShippingAddress, OrderStatus: the order state machine
- GeneratedArtifact: a finished interior or cover PDF
- VendorStatus, VendorJobStatus: parsed print vendor status
- TaskResult: outcome of a background order task

Book models are frozen so they can be handed to compositor threads
without copying.
"""

from .book import Book, ContentPage, PageImage, CoverDesign, DEFAULT_THEME
from .order import (
    PrintOrder,
    ShippingAddress,
    OrderStatus,
    ALLOWED_TRANSITIONS,
    RECONCILABLE_STATUSES,
    can_transition,
    customer_view,
)
from .artifact import GeneratedArtifact, ArtifactKind
from .vendor_status import VendorStatus, VendorJobStatus, VENDOR_STATUS_MAP
from .task_result import TaskResult, TaskStatus

__all__ = [
    # Book models
    "Book",
    "ContentPage",
    "PageImage",
    "CoverDesign",
    "DEFAULT_THEME",
    # Order models
    "PrintOrder",
    "ShippingAddress",
    "OrderStatus",
    "ALLOWED_TRANSITIONS",
    "RECONCILABLE_STATUSES",
    "can_transition",
    "customer_view",
    # Artifacts
    "GeneratedArtifact",
    "ArtifactKind",
    # Vendor status
    "VendorStatus",
    "VendorJobStatus",
    "VENDOR_STATUS_MAP",
    # Tasks
    "TaskResult",
    "TaskStatus",
]
