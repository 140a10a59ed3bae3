"""
Unit tests for the background services.

Tests cover:
- OrderTaskService (thread-per-task pipeline runs, result store)
- ReconciliationService (periodic sweep thread)
"""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from core.exceptions import InvalidTransitionError, OrderProcessingError
from models.order import OrderStatus
from models.task_result import TaskResult, TaskStatus
from services.order_task_service import OrderTaskService, TaskResultStore
from services.reconciliation_service import ReconciliationService


# Fixtures

@pytest.fixture
def mock_orchestrator():
    orchestrator = MagicMock()
    orchestrator.payment_confirmed.return_value = MagicMock(status=OrderStatus.SUBMITTED)
    orchestrator.get_order.return_value = MagicMock(status=OrderStatus.FAILED)
    orchestrator.reconcile_all.return_value = {"checked": 2, "updated": 1, "errors": 0, "stale_failed": 0}
    return orchestrator


@pytest.fixture
def task_service(mock_orchestrator):
    service = OrderTaskService(mock_orchestrator)
    yield service
    service.shutdown(timeout_per_thread=5)


class TestTaskResultStore:

    def test_running_result_is_not_consumed(self):
        store = TaskResultStore()
        store.put_result(TaskResult.create_running("t1", "o1", "retry"))

        assert store.get_result("t1").status is TaskStatus.RUNNING
        assert store.peek_result("t1") is not None

    def test_finished_result_is_consumed_once(self):
        store = TaskResultStore()
        store.put_result(TaskResult.create_running("t1", "o1", "retry").completed("submitted"))

        assert store.get_result("t1").order_status == "submitted"
        assert store.get_result("t1") is None

    def test_expired_results_are_evicted_on_write(self):
        now = [datetime.now(timezone.utc)]
        store = TaskResultStore(ttl_seconds=60, clock=lambda: now[0])
        store.put_result(TaskResult.create_running("t1", "o1", "retry").completed("submitted"))
        store.put_result(TaskResult.create_running("t2", "o2", "retry"))

        now[0] += timedelta(minutes=5)
        store.put_result(TaskResult.create_running("t3", "o3", "retry"))

        assert store.peek_result("t1") is None
        assert store.peek_result("t2").status is TaskStatus.RUNNING
        assert len(store) == 2

    def test_finished_results_are_bounded(self):
        store = TaskResultStore(max_finished=2)
        store.put_result(TaskResult.create_running("running", "o0", "retry"))
        for n in range(5):
            store.put_result(TaskResult.create_running(f"t{n}", f"o{n}", "retry").completed("submitted"))

        assert len(store) == 3
        assert store.peek_result("running") is not None
        assert store.peek_result("t0") is None
        assert store.peek_result("t4") is not None

    def test_clear(self):
        store = TaskResultStore()
        store.put_result(TaskResult.create_running("t1", "o1", "retry"))
        assert store.clear() == 1
        assert store.peek_result("t1") is None


class TestOrderTaskService:

    def test_successful_task(self, task_service, mock_orchestrator):
        task_id = task_service.submit_task("order-1", "payment_confirmed")

        result = task_service.wait(task_id, timeout=5)

        assert result.status is TaskStatus.COMPLETED
        assert result.order_status == "submitted"
        assert result.action == "payment_confirmed"
        mock_orchestrator.payment_confirmed.assert_called_once_with("order-1")
        assert not task_service.is_pending(task_id)

    def test_processing_failure_is_recorded(self, task_service, mock_orchestrator):
        mock_orchestrator.retry.side_effect = OrderProcessingError("order-1", "Lulu said no", "submitting_to_lulu")

        result = task_service.wait(task_service.submit_task("order-1", "retry"), timeout=5)

        assert result.status is TaskStatus.FAILED
        assert result.error == "Lulu said no"
        assert result.order_status == "failed"

    def test_rejected_action_reports_current_status(self, task_service, mock_orchestrator):
        mock_orchestrator.retry.side_effect = InvalidTransitionError("order-1", "failed", "retry", "has a job")

        result = task_service.wait(task_service.submit_task("order-1", "retry"), timeout=5)

        assert result.status is TaskStatus.FAILED
        assert "has a job" in result.error
        assert result.order_status == "failed"

    def test_custom_task_id(self, task_service):
        assert task_service.submit_task("order-1", "payment_confirmed", task_id="fixed") == "fixed"
        task_service.wait("fixed", timeout=5)
        assert task_service.get_result("fixed").task_id == "fixed"

    def test_unknown_action(self, task_service):
        with pytest.raises(ValueError):
            task_service.submit_task("order-1", "delete")

    def test_result_visible_while_running(self, mock_orchestrator):
        release = threading.Event()
        started = threading.Event()

        def slow(order_id):
            started.set()
            release.wait(5)
            return MagicMock(status=OrderStatus.SUBMITTED)

        mock_orchestrator.payment_confirmed.side_effect = slow
        service = OrderTaskService(mock_orchestrator)
        task_id = service.submit_task("order-1", "payment_confirmed")
        assert started.wait(5)

        assert service.peek_result(task_id).status is TaskStatus.RUNNING
        assert service.is_pending(task_id)
        assert service.active_count() == 1

        release.set()
        service.shutdown(timeout_per_thread=5)
        assert service.active_count() == 0
        assert service.peek_result(task_id).status is TaskStatus.COMPLETED

    def test_finished_results_do_not_accumulate(self, mock_orchestrator):
        store = TaskResultStore(max_finished=2)
        service = OrderTaskService(mock_orchestrator, result_store=store)

        for n in range(5):
            task_id = service.submit_task(f"order-{n}", "payment_confirmed")
            assert service.wait(task_id, timeout=5).status is TaskStatus.COMPLETED

        service.shutdown(timeout_per_thread=5)
        assert len(store) == 2

    def test_runs_real_pipeline(self, orchestrator, pending_order, notifier):
        service = OrderTaskService(orchestrator)

        result = service.wait(service.submit_task(pending_order.id, "payment_confirmed"), timeout=30)

        assert result.status is TaskStatus.COMPLETED
        assert result.order_status == "submitted"
        assert notifier.events_for(pending_order.id) == ["submitted"]


class TestReconciliationService:

    def test_rejects_non_positive_interval(self, mock_orchestrator):
        with pytest.raises(ValueError):
            ReconciliationService(mock_orchestrator, interval_seconds=0)

    def test_run_once(self, mock_orchestrator):
        service = ReconciliationService(mock_orchestrator, interval_seconds=60)
        assert service.last_summary is None

        summary = service.run_once()

        assert summary["checked"] == 2
        assert summary["updated"] == 1
        assert "finished_at" in summary
        assert service.last_summary == summary

    def test_start_sweeps_immediately_and_stops(self, mock_orchestrator):
        swept = threading.Event()

        def sweep():
            swept.set()
            return {"checked": 0, "updated": 0, "errors": 0, "stale_failed": 0}

        mock_orchestrator.reconcile_all.side_effect = sweep
        service = ReconciliationService(mock_orchestrator, interval_seconds=3600)

        service.start()
        try:
            assert service.is_running
            assert swept.wait(5)
        finally:
            service.stop()

        assert not service.is_running

    def test_sweep_failure_keeps_thread_alive(self, mock_orchestrator):
        calls = []
        done = threading.Event()

        def sweep():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("database locked")
            done.set()
            return {"checked": 0, "updated": 0, "errors": 0, "stale_failed": 0}

        mock_orchestrator.reconcile_all.side_effect = sweep
        service = ReconciliationService(mock_orchestrator, interval_seconds=0.01)

        service.start()
        try:
            assert done.wait(5)
        finally:
            service.stop()

        assert len(calls) >= 2
        assert service.last_summary is not None

    def test_stop_without_start(self, mock_orchestrator):
        ReconciliationService(mock_orchestrator, interval_seconds=60).stop()
