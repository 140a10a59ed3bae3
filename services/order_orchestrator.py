"""
Order orchestrator: the print order state machine.

    pending_payment -> payment_received -> generating_pdfs
        -> submitting_to_lulu -> submitted -> in_production -> shipped -> delivered
    (any non-terminal status) -> failed

Single writer per order:
    Every status change is a compare-and-set on the persisted status.
    Whoever wins the move into generating_pdfs owns generation; whoever
    wins the move into submitting_to_lulu owns submission. A losing trigger
    is a no-op. Inside one process the orchestrator also remembers which
    orders it is currently working on, so the stale sweep and a second
    submit call leave them alone.

Failure policy:
    Any generation, storage or vendor failure moves the order to `failed`
    with a human-readable reason, notifies, then raises
    OrderProcessingError so the trigger (webhook task, sweep, CLI) sees it.

Vendor status policy:
    A vendor status is applied only if it is forward progress from the
    order's current status; `failed` always applies to a non-terminal
    order. Stale or unknown vendor statuses only update the recorded raw
    vendor status string.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Any, Dict, Iterable, Optional, Tuple

from core.exceptions import (
    InvalidBookError,
    InvalidTransitionError,
    OrderNotFoundError,
    OrderProcessingError,
    PrintPipelineError,
    VendorError,
    VendorRejectedError,
)
from core.geometry import PrintSpecification, print_specification
from models.artifact import GeneratedArtifact
from models.book import Book
from models.order import (
    OrderStatus,
    PrintOrder,
    RETRY_TRANSITIONS,
    can_transition,
)
from models.vendor_status import VendorJobStatus
from modules.cover_compositor import CoverCompositor
from modules.interior_compositor import InteriorCompositor, validate_book_content
from services.notifier import NotificationEvent, Notifier
from services.order_repository import OrderRepository, utcnow
from logging_config import get_logger, get_order_logger


logger = get_logger(__name__)

# Statuses only held while a pipeline step runs; stuck ones are failed by the sweep
STALE_CANDIDATES = (
    OrderStatus.PAYMENT_RECEIVED,
    OrderStatus.GENERATING_PDFS,
    OrderStatus.SUBMITTING_TO_LULU,
)

_NOTIFY_ON = {
    OrderStatus.SUBMITTED: NotificationEvent.SUBMITTED,
    OrderStatus.SHIPPED: NotificationEvent.SHIPPED,
    OrderStatus.DELIVERED: NotificationEvent.DELIVERED,
    OrderStatus.FAILED: NotificationEvent.FAILED,
}


class OrderOrchestrator:
    """
    Drives print orders through generation, submission and reconciliation.

    Thread Safety:
        Safe to call from task threads, the reconciliation thread and
        request handlers at the same time; see the module docstring.
    """

    def __init__(
        self,
        repository: OrderRepository,
        store,
        lulu_client,
        notifier: Notifier,
        interior_compositor: Optional[InteriorCompositor] = None,
        cover_compositor: Optional[CoverCompositor] = None,
        reconcile_delay_seconds: float = 0.5,
        stale_after_seconds: float = 1800.0,
        sleep=time.sleep,
    ):
        """
        Args:
            repository: Order/book persistence
            store: Document store for images and generated PDFs
            lulu_client: Fulfillment client (LuluClient)
            notifier: Receives submitted/shipped/delivered/failed events
            interior_compositor: Defaults to one reading images from `store`
            cover_compositor: Defaults to one reading images from `store`
            reconcile_delay_seconds: Pause between vendor calls in a sweep
            stale_after_seconds: Age after which a transitional status is stuck
            sleep: Injected for tests
        """
        self._repo = repository
        self._store = store
        self._lulu = lulu_client
        self._notifier = notifier
        self._interior = interior_compositor or InteriorCompositor(store)
        self._cover = cover_compositor or CoverCompositor(store)
        self._reconcile_delay = reconcile_delay_seconds
        self._stale_after = stale_after_seconds
        self._sleep = sleep

        self._active: set = set()
        self._active_lock = threading.Lock()

    @property
    def repository(self) -> OrderRepository:
        return self._repo

    def get_order(self, order_id: str) -> Optional[PrintOrder]:
        return self._repo.get_order(order_id)

    # =========================================================================
    # TRIGGERS
    # =========================================================================

    def payment_confirmed(self, order_id: str) -> PrintOrder:
        """
        Payment arrived: generate both PDFs and submit the print job.

        Duplicate confirmations are no-ops and return the current order.

        Raises:
            OrderNotFoundError: unknown order
            OrderProcessingError: a step failed (order is now `failed`)
        """
        order = self._repo.require_order(order_id)
        order_logger = get_order_logger(order_id)

        if not self._cas(order_id, [OrderStatus.PENDING_PAYMENT], OrderStatus.PAYMENT_RECEIVED):
            current = self._repo.require_order(order_id)
            order_logger.info(f"Duplicate payment confirmation ignored (status {current.status.value})")
            return current

        order_logger.info(f"Payment confirmed for order {order.id}")
        with self._working_on(order_id):
            self._generate_claimed(order_id)
            return self._submit_claimed(order_id)

    def generate_pdfs(self, order_id: str) -> PrintOrder:
        """
        Generate and store both PDFs for a paid order.

        No-op (returns the order) if generation already started or finished.

        Raises:
            InvalidTransitionError: order is not paid, or is failed
            OrderProcessingError: generation failed (order is now `failed`)
        """
        order = self._repo.require_order(order_id)
        if order.status is not OrderStatus.PAYMENT_RECEIVED:
            return self._no_op_or_reject(order, OrderStatus.GENERATING_PDFS, "generate PDFs for")

        with self._working_on(order_id):
            return self._generate_claimed(order_id)

    def submit(self, order_id: str) -> PrintOrder:
        """
        Submit an order's PDFs to Lulu.

        If the order already has a Lulu job id no vendor call is made.

        Raises:
            InvalidTransitionError: order is not in submitting_to_lulu
            OrderProcessingError: submission failed (order is now `failed`)
        """
        order = self._repo.require_order(order_id)
        if order.lulu_job_id:
            get_order_logger(order_id).info(f"Already submitted as Lulu job {order.lulu_job_id}; skipping")
            return order
        if order.status is not OrderStatus.SUBMITTING_TO_LULU:
            return self._no_op_or_reject(order, OrderStatus.SUBMITTING_TO_LULU, "submit")

        if not self._claim(order_id):
            get_order_logger(order_id).info("Submission already running in this process; skipping")
            return order
        try:
            return self._submit_claimed(order_id)
        finally:
            self._release(order_id)

    def retry(self, order_id: str) -> PrintOrder:
        """
        Administrative re-run of a failed order.

        Only failed orders without a Lulu job id qualify. If both stored
        PDFs still exist only submission is repeated; otherwise both PDFs
        are regenerated first.

        Raises:
            InvalidTransitionError: order not failed, or already has a job
            OrderProcessingError: the re-run failed (order is `failed` again)
        """
        order = self._repo.require_order(order_id)
        order_logger = get_order_logger(order_id)

        if order.status is not OrderStatus.FAILED:
            raise InvalidTransitionError(order_id, order.status.value, "retry", "only failed orders can be retried")
        if order.lulu_job_id:
            raise InvalidTransitionError(
                order_id, order.status.value, "retry",
                f"Lulu job {order.lulu_job_id} already exists; resolve it with Lulu support",
            )

        reuse = order.has_artifacts and self._artifacts_available(order)
        target = OrderStatus.SUBMITTING_TO_LULU if reuse else OrderStatus.GENERATING_PDFS
        if not self._cas(order_id, [OrderStatus.FAILED], target, retry=True, failure_reason=None):
            current = self._repo.require_order(order_id)
            raise InvalidTransitionError(order_id, current.status.value, "retry", "order changed concurrently")

        order_logger.info(f"Retrying order from {target.value} (previous failure: {order.failure_reason})")
        with self._working_on(order_id):
            if not reuse:
                self._run_generation(order_id)
            return self._submit_claimed(order_id)

    # =========================================================================
    # GENERATION
    # =========================================================================

    def render_book(self, book_id: str) -> Tuple[PrintSpecification, GeneratedArtifact, GeneratedArtifact]:
        """
        Render both PDFs for a book without touching any order.

        The print specification is computed once and shared by both
        compositors, which run concurrently.

        Raises:
            InvalidBookError: book missing or not printable
            GenerationError: a document could not be finalized
        """
        book = self._repo.get_book(book_id)
        if book is None:
            raise InvalidBookError(f"Book not found: {book_id}", book_id)
        pages = validate_book_content(book, self._repo.get_content_pages(book_id))
        spec = self._specification_for(book)

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix=f"Compose-{book_id[:8]}") as pool:
            interior_future = pool.submit(self._interior.compose, book, pages, spec)
            cover_future = pool.submit(self._cover.compose, book, spec)
            interior = interior_future.result()
            cover = cover_future.result()

        return spec, interior, cover

    def _specification_for(self, book: Book) -> PrintSpecification:
        try:
            return print_specification(book.content_page_count)
        except ValueError as exc:
            raise InvalidBookError(str(exc), book.id) from exc

    def _generate_claimed(self, order_id: str) -> PrintOrder:
        """Move payment_received -> generating_pdfs, then generate."""
        if not self._cas(order_id, [OrderStatus.PAYMENT_RECEIVED], OrderStatus.GENERATING_PDFS):
            current = self._repo.require_order(order_id)
            return self._no_op_or_reject(current, OrderStatus.GENERATING_PDFS, "generate PDFs for")
        return self._run_generation(order_id)

    def _run_generation(self, order_id: str) -> PrintOrder:
        """Generate and store both PDFs; caller owns the order in generating_pdfs."""
        order = self._repo.require_order(order_id)
        order_logger = get_order_logger(order_id)
        started = time.monotonic()

        try:
            spec, interior, cover = self.render_book(order.book_id)
            interior = interior.stored_as(self._store.store(interior.data, interior.content_type))
            cover = cover.stored_as(self._store.store(cover.data, cover.content_type))
        except Exception as exc:
            self._fail_and_raise(order_id, OrderStatus.GENERATING_PDFS, exc)

        # Both references land in the same statement as the status change
        won = self._cas(
            order_id,
            [OrderStatus.GENERATING_PDFS],
            OrderStatus.SUBMITTING_TO_LULU,
            interior_reference=interior.reference,
            cover_reference=cover.reference,
            artifacts_generated_at=utcnow(),
        )
        current = self._repo.require_order(order_id)
        if not won:
            order_logger.warning(
                f"Generated PDFs discarded: order moved to {current.status.value} during generation"
            )
            return current

        order_logger.info(
            f"PDFs generated in {time.monotonic() - started:.1f}s: interior {interior.reference} "
            f"({spec.printed_page_count} pages), cover {cover.reference} (spine {spec.spine_width}in)"
        )
        return current

    def _artifacts_available(self, order: PrintOrder) -> bool:
        return self._store.exists(order.interior_reference) and self._store.exists(order.cover_reference)

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    def _submit_claimed(self, order_id: str) -> PrintOrder:
        """Submit to Lulu; caller owns the order in submitting_to_lulu."""
        order = self._repo.require_order(order_id)
        order_logger = get_order_logger(order_id)

        if order.lulu_job_id or order.status is not OrderStatus.SUBMITTING_TO_LULU:
            return order

        try:
            if not order.has_artifacts:
                raise InvalidTransitionError(order_id, order.status.value, "submit",
                                             "interior and cover PDFs are both required")
            book = self._repo.get_book(order.book_id)
            title = book.cover_title if book else order.book_id
            interior_url = self._store.fetch_url(order.interior_reference)
            cover_url = self._store.fetch_url(order.cover_reference)
            job_id = self._lulu.submit(order, title, interior_url, cover_url)
        except Exception as exc:
            self._fail_and_raise(order_id, OrderStatus.SUBMITTING_TO_LULU, exc)

        if not self._cas(order_id, [OrderStatus.SUBMITTING_TO_LULU], OrderStatus.SUBMITTED, lulu_job_id=job_id):
            current = self._repo.require_order(order_id)
            order_logger.error(
                f"Lulu job {job_id} created but order moved to {current.status.value}; recording job id"
            )
            self._repo.update_fields(order_id, [current.status], lulu_job_id=job_id)
            return self._repo.require_order(order_id)

        order_logger.info(f"Order submitted to Lulu as job {job_id}")
        submitted = self._repo.require_order(order_id)
        self._notify(submitted, OrderStatus.SUBMITTED)
        return submitted

    # =========================================================================
    # RECONCILIATION
    # =========================================================================

    def reconcile(self, order_id: str) -> bool:
        """
        Poll Lulu for one order and apply the result.

        Returns True if the order status changed. Poll errors propagate and
        leave the order untouched.

        Raises:
            InvalidTransitionError: order is not submitted/in production/shipped
            VendorError: status could not be read
        """
        order = self._repo.require_order(order_id)
        if not order.status.is_reconcilable:
            raise InvalidTransitionError(order_id, order.status.value, "reconcile")
        return self._apply_vendor_status(order, self._lulu.poll_status(order))

    def apply_vendor_update(self, job: Dict[str, Any]) -> bool:
        """
        Apply a print-job document pushed by Lulu's status webhook.

        Returns True if the order status changed.

        Raises:
            OrderNotFoundError: no order has this Lulu job id
        """
        status = VendorJobStatus.from_print_job(job)
        order = self._repo.find_by_lulu_job_id(status.job_id) if status.job_id else None
        if order is None:
            raise OrderNotFoundError(f"lulu:{status.job_id}")
        if not order.status.is_reconcilable:
            get_order_logger(order.id).info(
                f"Ignoring Lulu webhook {status.raw_status}: order is {order.status.value}"
            )
            return False
        return self._apply_vendor_status(order, status)

    def reconcile_all(self) -> Dict[str, int]:
        """
        One sweep: fail stuck orders, then poll every in-flight order.

        Orders are polled one at a time with a fixed pause between vendor
        calls. One order's error never stops the sweep.
        """
        stale_failed = self.fail_stale_orders()
        orders = self._repo.list_reconcilable()
        checked = updated = errors = 0

        for index, order in enumerate(orders):
            if index and self._reconcile_delay:
                self._sleep(self._reconcile_delay)
            checked += 1
            try:
                if self.reconcile(order.id):
                    updated += 1
            except Exception as exc:
                errors += 1
                get_order_logger(order.id).error(f"Reconcile failed: {exc}")

        summary = {"checked": checked, "updated": updated, "errors": errors, "stale_failed": stale_failed}
        logger.info(f"Reconcile sweep: {summary}")
        return summary

    def fail_stale_orders(self) -> int:
        """Fail orders stuck in a transitional status (interrupted runs)."""
        cutoff = utcnow() - timedelta(seconds=self._stale_after)
        count = 0
        for order in self._repo.list_stale(STALE_CANDIDATES, cutoff):
            if self._is_active(order.id):
                continue
            reason = f"Processing interrupted during {order.status.value}"
            if order.status is OrderStatus.SUBMITTING_TO_LULU:
                reason += f"; check Lulu for a job with external_id {order.id} before retrying"
            if self._fail(order.id, order.status, reason):
                count += 1
        return count

    def _apply_vendor_status(self, order: PrintOrder, status: VendorJobStatus) -> bool:
        order_logger = get_order_logger(order.id)
        target = status.order_status

        fields: Dict[str, Any] = {"lulu_status": status.raw_status}
        if status.tracking_number:
            fields["tracking_number"] = status.tracking_number
        if status.tracking_url:
            fields["tracking_url"] = status.tracking_url

        if target is None or target is order.status or not target.is_forward_of(order.status):
            if target is None:
                order_logger.warning(f"Unknown Lulu status '{status.raw_status}'; status unchanged")
            elif target is not order.status:
                order_logger.info(
                    f"Ignoring stale Lulu status {status.raw_status} ({target.value}) for {order.status.value} order"
                )
            self._repo.update_fields(order.id, [order.status], **fields)
            return False

        if target is OrderStatus.FAILED:
            detail = f": {status.message}" if status.message else ""
            fields["failure_reason"] = f"Lulu reported {status.raw_status}{detail}"

        if not self._cas(order.id, [order.status], target, **fields):
            order_logger.info(f"Order changed while applying Lulu status {status.raw_status}; skipped")
            return False

        order_logger.info(f"Order {order.status.value} -> {target.value} (Lulu {status.raw_status})")
        self._notify(self._repo.require_order(order.id), target)
        return True

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _cas(
        self,
        order_id: str,
        expected: Iterable[OrderStatus],
        target: OrderStatus,
        retry: bool = False,
        **fields: Any,
    ) -> bool:
        expected = list(expected)
        for current in expected:
            allowed = can_transition(current, target) or (
                retry and current is OrderStatus.FAILED and target in RETRY_TRANSITIONS
            )
            if not allowed:
                raise InvalidTransitionError(order_id, current.value, f"move to {target.value}")
        return self._repo.transition(order_id, expected, target, **fields)

    def _no_op_or_reject(self, order: PrintOrder, step: OrderStatus, operation: str) -> PrintOrder:
        """Orders at or past `step` are a no-op; anything else is rejected."""
        if order.status is not OrderStatus.FAILED and order.status.rank >= step.rank:
            get_order_logger(order.id).info(f"Order already {order.status.value}; {operation} skipped")
            return order
        raise InvalidTransitionError(order.id, order.status.value, operation)

    def _fail(self, order_id: str, expected: OrderStatus, reason: str) -> bool:
        if not self._cas(order_id, [expected], OrderStatus.FAILED, failure_reason=reason):
            return False
        get_order_logger(order_id).error(f"Order failed during {expected.value}: {reason}")
        self._notify(self._repo.require_order(order_id), OrderStatus.FAILED)
        return True

    def _fail_and_raise(self, order_id: str, stage: OrderStatus, exc: Exception) -> None:
        reason = failure_reason(exc)
        self._fail(order_id, stage, reason)
        raise OrderProcessingError(order_id, reason, stage.value) from exc

    def _notify(self, order: PrintOrder, status: OrderStatus) -> None:
        event = _NOTIFY_ON.get(status)
        if event is None:
            return
        try:
            self._notifier.notify(order, event)
        except Exception as exc:
            get_order_logger(order.id).error(f"Notification {event.value} failed: {exc}")

    def _claim(self, order_id: str) -> bool:
        with self._active_lock:
            if order_id in self._active:
                return False
            self._active.add(order_id)
            return True

    def _release(self, order_id: str) -> None:
        with self._active_lock:
            self._active.discard(order_id)

    def _is_active(self, order_id: str) -> bool:
        with self._active_lock:
            return order_id in self._active

    def _working_on(self, order_id: str):
        return _ActiveOrder(self, order_id)


class _ActiveOrder:
    """Marks an order as being worked on by this process for a with-block."""

    def __init__(self, orchestrator: OrderOrchestrator, order_id: str):
        self._orchestrator = orchestrator
        self._order_id = order_id
        self._claimed = False

    def __enter__(self):
        self._claimed = self._orchestrator._claim(self._order_id)
        return self

    def __exit__(self, exc_type, exc, tb):
        if self._claimed:
            self._orchestrator._release(self._order_id)
        return False


def failure_reason(exc: BaseException) -> str:
    """
    Human-readable failure reason stored on the order.

    Vendor rejections keep the vendor's raw body verbatim. Other vendor
    errors that carry a body (exhausted 429/5xx retries, bad JSON) keep it
    after the message.
    """
    if isinstance(exc, VendorRejectedError):
        return exc.message
    if isinstance(exc, VendorError) and exc.body:
        return f"{exc.message}: {exc.body}"
    if isinstance(exc, PrintPipelineError):
        return exc.message
    return f"{type(exc).__name__}: {exc}"
