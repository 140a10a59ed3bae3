"""
Reconciliation service with background sweep thread.

Lulu only tells us about production and shipping if we ask (or if its
webhook reaches us). This service runs a background thread that sweeps
every in-flight order on a fixed interval, plus once at startup.

Thread Safety:
    - The sweep runs on its own thread ("Reconcile")
    - Every status change goes through the orchestrator's compare-and-set,
      so a sweep racing a webhook or an admin action cannot regress an order
    - The last summary is replaced as a whole (atomic reference swap)

Usage:
    # At app startup
    reconciliation = ReconciliationService(orchestrator, interval_seconds=3600)
    reconciliation.start()

    # Admin endpoint / CLI (calling thread)
    summary = reconciliation.run_once()

    # At app shutdown
    reconciliation.stop()
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from logging_config import get_logger, set_thread_name


logger = get_logger(__name__)


class ReconciliationService:
    """
    Background service that periodically reconciles orders with Lulu.

    Attributes:
        interval_seconds: Time between sweeps
        is_running: Whether the background thread is active
    """

    def __init__(self, orchestrator, interval_seconds: float = 3600.0, run_on_start: bool = True):
        """
        Initialize reconciliation service.

        Args:
            orchestrator: OrderOrchestrator performing each sweep
            interval_seconds: Seconds between sweeps
            run_on_start: Sweep immediately when the thread starts

        Raises:
            ValueError: If interval_seconds is not positive
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self._orchestrator = orchestrator
        self._interval = interval_seconds
        self._run_on_start = run_on_start

        # Thread control
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._is_running = False

        # One sweep at a time, whether from the thread or run_once()
        self._sweep_lock = threading.Lock()

        self._last_summary: Optional[Dict[str, Any]] = None
        self._consecutive_failures = 0

        logger.info(f"ReconciliationService initialized (interval: {interval_seconds}s)")

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def last_summary(self) -> Optional[Dict[str, Any]]:
        """Result of the most recent sweep, or None before the first one."""
        return self._last_summary

    def start(self) -> None:
        """
        Start the background sweep thread.

        Safe to call multiple times - only starts if not already running.
        """
        if self._is_running:
            logger.warning("ReconciliationService already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._sweep_loop, name="Reconcile", daemon=True)
        self._is_running = True
        self._thread.start()

        logger.info("Reconciliation thread started")

    def stop(self) -> None:
        """
        Stop the background sweep thread.

        Signals the thread to stop and waits for it to finish.
        Safe to call multiple times.
        """
        if not self._is_running:
            return

        logger.info("Stopping reconciliation thread...")
        self._stop_event.set()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)
            if self._thread.is_alive():
                logger.warning("Reconciliation thread did not stop cleanly")

        self._is_running = False
        self._thread = None

        logger.info("Reconciliation thread stopped")

    def run_once(self) -> Dict[str, Any]:
        """
        Run one sweep in the calling thread.

        Waits for a sweep already in progress to finish first.

        Returns:
            Sweep summary: checked, updated, errors, stale_failed, finished_at
        """
        with self._sweep_lock:
            summary = dict(self._orchestrator.reconcile_all())
            summary["finished_at"] = datetime.now(timezone.utc).isoformat()
            self._last_summary = summary
            return summary

    def _sweep_loop(self) -> None:
        set_thread_name("Reconcile")
        logger.info("Reconciliation loop starting")

        if self._run_on_start:
            self._do_sweep()

        while not self._stop_event.is_set():
            if self._stop_event.wait(timeout=self._interval):
                break
            self._do_sweep()

        logger.info("Reconciliation loop exiting")

    def _do_sweep(self) -> bool:
        try:
            self.run_once()

            if self._consecutive_failures > 0:
                logger.info(f"Reconciliation recovered after {self._consecutive_failures} failures")
            self._consecutive_failures = 0
            return True

        except Exception as e:
            self._consecutive_failures += 1

            if self._consecutive_failures == 1:
                logger.warning(f"Reconciliation sweep failed: {e}")
            elif self._consecutive_failures <= 3 or self._consecutive_failures % 5 == 0:
                logger.error(f"Reconciliation sweep failed ({self._consecutive_failures} consecutive): {e}")

            return False
