"""
Core module for StoryPrint.

Contains fundamental infrastructure components:
- exceptions: Custom exception hierarchy
- geometry: Print geometry (page counts, spine width, cover layout)
- retry: Backoff policy shared by every vendor call
- lulu_client: Lulu print API client
"""

from .exceptions import (
    PrintPipelineError,
    InvalidBookError,
    GenerationError,
    PageCountMismatchError,
    StorageError,
    VendorError,
    TransientVendorError,
    VendorRejectedError,
    VendorAuthError,
    InvalidTransitionError,
    OrderNotFoundError,
    OrderProcessingError,
)
from .geometry import (
    CoverDimensions,
    PrintSpecification,
    cover_dimensions,
    print_specification,
    printed_page_count,
    spine_width,
)
from .retry import BackoffPolicy, is_retryable
from .lulu_client import LuluClient

__all__ = [
    "PrintPipelineError",
    "InvalidBookError",
    "GenerationError",
    "PageCountMismatchError",
    "StorageError",
    "VendorError",
    "TransientVendorError",
    "VendorRejectedError",
    "VendorAuthError",
    "InvalidTransitionError",
    "OrderNotFoundError",
    "OrderProcessingError",
    "CoverDimensions",
    "PrintSpecification",
    "cover_dimensions",
    "print_specification",
    "printed_page_count",
    "spine_width",
    "BackoffPolicy",
    "is_retryable",
    "LuluClient",
]
