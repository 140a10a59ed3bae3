"""
Order task service with thread-per-task architecture.

Webhook and admin requests must answer quickly, but generating two PDFs and
talking to Lulu takes a while. Each pipeline run therefore gets its own
background thread; the request returns a task id straight away.

Thread Safety:
    - Task threads only talk to the orchestrator, whose every status change
      is a compare-and-set, so two tasks for one order cannot both win
    - TaskResultStore uses threading.Lock for all access
    - Finished results are kept until read with get_result() (consume-once)
      or until evicted by age or count on a later write

Flow:
    1. Route calls task_service.submit_task(order_id, "payment_confirmed")
    2. Task thread runs orchestrator.payment_confirmed(order_id)
    3. Task thread stores a TaskResult in TaskResultStore
    4. Caller polls task_service.peek_result(task_id) / get_result(task_id)

Usage:
    task_id = task_service.submit_task(order_id, "payment_confirmed")
    ...
    task_service.shutdown()
"""

from __future__ import annotations

import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from core.exceptions import OrderProcessingError
from models.task_result import TaskResult
from logging_config import get_logger, get_order_logger, set_thread_name


logger = get_logger(__name__)

ACTIONS = ("payment_confirmed", "retry", "generate_pdfs", "submit")

DEFAULT_RESULT_TTL_SECONDS = 3600.0
DEFAULT_MAX_FINISHED_RESULTS = 1000


class TaskResultStore:
    """
    Thread-safe storage for task results.

    A result is stored as RUNNING when the task starts and replaced when it
    finishes, so callers can tell "unknown task" from "still running".

    Finished results are dropped on the next write once they are older than
    `ttl_seconds`, and the oldest finished results go first when more than
    `max_finished` are held. Running results are never evicted.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_RESULT_TTL_SECONDS,
        max_finished: int = DEFAULT_MAX_FINISHED_RESULTS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._results: Dict[str, TaskResult] = {}
        self._lock = threading.Lock()
        self._ttl = timedelta(seconds=ttl_seconds)
        self._max_finished = max_finished
        self._clock = clock

    def put_result(self, result: TaskResult) -> None:
        with self._lock:
            self._results[result.task_id] = result
            logger.debug(f"Stored result for task {result.task_id[:8]} ({result.status.value})")
            self._evict_locked()

    def get_result(self, task_id: str) -> Optional[TaskResult]:
        """Get a finished result and remove it. Running tasks are left in place."""
        with self._lock:
            result = self._results.get(task_id)
            if result is None or not result.is_finished:
                return result
            return self._results.pop(task_id)

    def peek_result(self, task_id: str) -> Optional[TaskResult]:
        with self._lock:
            return self._results.get(task_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def clear(self) -> int:
        with self._lock:
            count = len(self._results)
            self._results.clear()
            logger.info(f"Cleared {count} task results from store")
            return count

    def _evict_locked(self) -> None:
        # Caller holds self._lock
        cutoff = self._clock() - self._ttl
        finished = sorted(
            (r for r in self._results.values() if r.is_finished),
            key=lambda r: r.finished_at,
        )
        expired = [r for r in finished if r.finished_at <= cutoff]
        kept = [r for r in finished if r.finished_at > cutoff]
        overflow = kept[:max(0, len(kept) - self._max_finished)]

        for result in expired + overflow:
            del self._results[result.task_id]
        if expired or overflow:
            logger.debug(f"Evicted {len(expired)} expired and {len(overflow)} surplus task results")


class OrderTaskService:
    """
    Runs order pipeline entry points in background threads.

    Attributes:
        result_store: TaskResultStore for reading task results
    """

    def __init__(self, orchestrator, result_store: Optional[TaskResultStore] = None):
        """
        Args:
            orchestrator: OrderOrchestrator whose entry points the tasks run
            result_store: Where finished results are kept (default: one-hour TTL)
        """
        self._orchestrator = orchestrator
        self._result_store = result_store if result_store is not None else TaskResultStore()

        # Track active task threads for cleanup
        self._active_threads: Dict[str, threading.Thread] = {}
        self._threads_lock = threading.Lock()

        logger.info("OrderTaskService initialized")

    @property
    def result_store(self) -> TaskResultStore:
        return self._result_store

    def submit_task(self, order_id: str, action: str, task_id: Optional[str] = None) -> str:
        """
        Start a background task running one orchestrator entry point.

        Args:
            order_id: Order to process
            action: One of ACTIONS
            task_id: Optional task ID (generated if not provided)

        Returns:
            task_id (UUID string)

        Raises:
            ValueError: unknown action
        """
        if action not in ACTIONS:
            raise ValueError(f"Unknown order action: {action}")

        if task_id is None:
            task_id = str(uuid.uuid4())

        logger.info(f"Starting task {task_id[:8]}: {action} for order {order_id[:8]}")
        self._result_store.put_result(TaskResult.create_running(task_id, order_id, action))

        thread = threading.Thread(
            target=self._task_thread_main,
            args=(task_id, order_id, action),
            name=f"Order-{order_id[:8]}",
            daemon=True,
        )

        with self._threads_lock:
            self._active_threads[task_id] = thread

        thread.start()
        return task_id

    def get_result(self, task_id: str) -> Optional[TaskResult]:
        return self._result_store.get_result(task_id)

    def peek_result(self, task_id: str) -> Optional[TaskResult]:
        return self._result_store.peek_result(task_id)

    def is_pending(self, task_id: str) -> bool:
        """True while the task thread is still running."""
        with self._threads_lock:
            thread = self._active_threads.get(task_id)
            return thread is not None and thread.is_alive()

    def active_count(self) -> int:
        with self._threads_lock:
            return sum(1 for thread in self._active_threads.values() if thread.is_alive())

    def wait(self, task_id: str, timeout: Optional[float] = None) -> Optional[TaskResult]:
        """Block until a task finishes; returns its result without consuming it."""
        with self._threads_lock:
            thread = self._active_threads.get(task_id)
        if thread is not None:
            thread.join(timeout=timeout)
        return self._result_store.peek_result(task_id)

    def shutdown(self, timeout_per_thread: float = 30.0) -> None:
        """
        Wait for all active task threads to complete.

        Call this during application shutdown.
        """
        with self._threads_lock:
            active = list(self._active_threads.items())

        if not active:
            logger.info("No active order tasks to wait for")
            return

        logger.info(f"Waiting for {len(active)} order tasks to complete...")

        for task_id, thread in active:
            if thread.is_alive():
                thread.join(timeout=timeout_per_thread)
                if thread.is_alive():
                    logger.warning(f"Order task {task_id[:8]} did not complete in time")

        logger.info("Order task service shutdown complete")

    def _entry_point(self, action: str) -> Callable[[str], object]:
        return getattr(self._orchestrator, action)

    def _task_thread_main(self, task_id: str, order_id: str, action: str) -> None:
        set_thread_name(f"Order-{order_id[:8]}")
        order_logger = get_order_logger(order_id)
        order_logger.info(f"Task {task_id[:8]} starting: {action}")

        result = TaskResult.create_running(task_id, order_id, action)
        try:
            order = self._entry_point(action)(order_id)
            result.completed(order.status.value)
            order_logger.info(f"Task {task_id[:8]} completed: order {order.status.value}")

        except OrderProcessingError as e:
            # Order is already marked failed
            result.failed(e.reason, "failed")
            order_logger.error(f"Task {task_id[:8]} failed at {e.stage}: {e.reason}")

        except Exception as e:
            result.failed(str(e), self._current_status(order_id))
            order_logger.error(f"Task {task_id[:8]} failed: {e}")

        finally:
            self._result_store.put_result(result)
            with self._threads_lock:
                self._active_threads.pop(task_id, None)

    def _current_status(self, order_id: str) -> Optional[str]:
        try:
            order = self._orchestrator.get_order(order_id)
        except Exception:
            return None
        return order.status.value if order else None
