"""
Order task result models.

A task is one background run of the order pipeline started by a webhook
or an admin action. The task thread records a TaskResult when it finishes;
routes and CLI commands read it back from the OrderTaskService.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional


class TaskStatus(Enum):
    """
    Status of a background order task.

    Lifecycle:
        RUNNING -> (COMPLETED | FAILED)
    """

    RUNNING = "running"
    COMPLETED = "completed"

    FAILED = "failed"
    """The pipeline raised; the order itself has already been marked failed."""


@dataclass
class TaskResult:
    """
    Outcome of one background order task.

    Thread Safety:
        - Task thread WRITES once when complete
        - Readers get it from the TaskResultStore under its lock
    """

    task_id: str
    order_id: str
    action: str
    """Pipeline entry point that was run ("payment_confirmed", "retry")."""

    status: TaskStatus
    started_at: datetime
    finished_at: Optional[datetime] = None

    order_status: Optional[str] = None
    """Order status after the task ran."""

    error: str = ""

    @classmethod
    def create_running(cls, task_id: str, order_id: str, action: str) -> "TaskResult":
        return cls(
            task_id=task_id,
            order_id=order_id,
            action=action,
            status=TaskStatus.RUNNING,
            started_at=datetime.now(timezone.utc),
        )

    def completed(self, order_status: Optional[str]) -> "TaskResult":
        """Mark the task completed with the order's resulting status."""
        self.status = TaskStatus.COMPLETED
        self.finished_at = datetime.now(timezone.utc)
        self.order_status = order_status
        return self

    def failed(self, error_message: str, order_status: Optional[str] = None) -> "TaskResult":
        self.status = TaskStatus.FAILED
        self.finished_at = datetime.now(timezone.utc)
        self.order_status = order_status
        self.error = error_message
        return self

    @property
    def is_finished(self) -> bool:
        return self.status is not TaskStatus.RUNNING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "order_id": self.order_id,
            "action": self.action,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "order_status": self.order_status,
            "error": self.error,
        }
