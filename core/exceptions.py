"""
Custom exceptions for StoryPrint.

Exception Hierarchy:
    PrintPipelineError (base)
    ├── InvalidBookError        - Missing/inconsistent book data (rejected before generation)
    ├── GenerationError         - A document could not be finalized
    │   └── PageCountMismatchError - Interior page count differs from the print specification
    ├── StorageError            - Document store read/write failed
    ├── VendorError             - Print vendor API failure
    │   ├── TransientVendorError  - 429 / 5xx / timeout (retried with backoff)
    │   ├── VendorRejectedError   - Permanent 4xx (validation), never retried
    │   └── VendorAuthError       - Credentials missing or refused
    ├── InvalidTransitionError  - Operation not allowed from the order's current status
    ├── OrderNotFoundError      - Unknown order identifier
    └── OrderProcessingError    - Raised to the trigger after the order was marked failed

Usage:
    Input and state errors are raised before any side effect happens.
    Generation, storage and vendor errors move the order to `failed`; the
    orchestrator then raises OrderProcessingError so the calling webhook
    handler, scheduler or CLI command can observe the failure and alert.
"""

from typing import Optional, Dict, Any


class PrintPipelineError(Exception):
    """
    Base exception for all StoryPrint errors.

    All custom exceptions inherit from this class, allowing callers to catch
    all application-specific errors with a single except clause if needed.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional context for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# INPUT / GENERATION / STORAGE ERRORS
# =============================================================================

class InvalidBookError(PrintPipelineError):
    """
    Book data cannot be turned into a printable document.

    Examples: empty title, zero content pages, page ordinals with gaps or
    duplicates, more pages than the declared content page count.
    """

    def __init__(self, message: str, book_id: Optional[str] = None):
        details = {"book_id": book_id} if book_id else None
        super().__init__(message, details)
        self.book_id = book_id


class GenerationError(PrintPipelineError):
    """A compositor could not finalize its document."""

    def __init__(self, message: str, kind: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        error_details = details or {}
        if kind:
            error_details["kind"] = kind
        super().__init__(message, error_details)
        self.kind = kind


class PageCountMismatchError(GenerationError):
    """
    The finished interior does not have the page count the vendor expects.

    Under- or over-shooting the printed page count is rejected at submission
    time, so it is caught here instead.
    """

    def __init__(self, expected: int, actual: int):
        message = f"Interior has {actual} pages, expected exactly {expected}"
        super().__init__(message, kind="interior", details={"expected": expected, "actual": actual})
        self.expected = expected
        self.actual = actual


class StorageError(PrintPipelineError):
    """Reading from or writing to the document store failed."""

    def __init__(self, message: str, reference: Optional[str] = None):
        details = {"reference": reference} if reference else None
        super().__init__(message, details)
        self.reference = reference


# =============================================================================
# VENDOR ERRORS
# =============================================================================

class VendorError(PrintPipelineError):
    """
    Base class for print vendor API failures.

    Attributes:
        status_code: HTTP status returned by the vendor (None for network errors)
        body: Raw response body, preserved verbatim for support diagnosis
    """

    retryable = False

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        details: Dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        if operation:
            details["operation"] = operation
        super().__init__(message, details)
        self.status_code = status_code
        self.body = body
        self.operation = operation


class TransientVendorError(VendorError):
    """
    Rate limiting, server error, timeout or dropped connection.

    Eligible for the shared backoff policy before being surfaced.
    """

    retryable = True


class VendorRejectedError(VendorError):
    """
    The vendor permanently refused the request (4xx validation failure).

    The message is the vendor's raw error body so support can see exactly
    what was wrong (e.g. a malformed shipping address). Never retried.
    """

    def __init__(self, status_code: int, body: str, operation: Optional[str] = None):
        super().__init__(body, status_code=status_code, body=body, operation=operation)

    def __str__(self) -> str:
        return self.message


class VendorAuthError(VendorError):
    """Vendor credentials are missing or were refused by the token endpoint."""


# =============================================================================
# ORDER STATE ERRORS
# =============================================================================

class InvalidTransitionError(PrintPipelineError):
    """
    The requested operation is not allowed from the order's current status.

    Raised by the orchestrator itself, regardless of what the caller checked.
    """

    def __init__(self, order_id: str, current: str, operation: str, reason: Optional[str] = None):
        message = f"Cannot {operation} order {order_id} in status '{current}'"
        if reason:
            message = f"{message}: {reason}"
        details = {"order_id": order_id, "status": current, "operation": operation}
        super().__init__(message, details)
        self.order_id = order_id
        self.current = current
        self.operation = operation


class OrderNotFoundError(PrintPipelineError):
    """No print order exists with the given identifier."""

    def __init__(self, order_id: str):
        super().__init__(f"Print order not found: {order_id}", {"order_id": order_id})
        self.order_id = order_id


class OrderProcessingError(PrintPipelineError):
    """
    An order step failed and the order has been moved to `failed`.

    Attributes:
        order_id: The failed order
        reason: Human-readable failure reason stored on the order
        stage: Status the order was in when the failure happened
    """

    def __init__(self, order_id: str, reason: str, stage: str):
        super().__init__(f"Order {order_id} failed during {stage}: {reason}",
                         {"order_id": order_id, "stage": stage})
        self.order_id = order_id
        self.reason = reason
        self.stage = stage
