"""
Services layer for StoryPrint.

This module contains the business logic services:
- OrderRepository: sqlite persistence for books and print orders
- DocumentStore: generated PDFs and source images, with vendor-facing URLs
- Notifier: order event notifications
- OrderOrchestrator: the print order state machine
- OrderTaskService: one background thread per pipeline run
- ReconciliationService: periodic Lulu status sweep

Thread Model:
    Main Thread (Flask)
    ├── ReconciliationService thread (hourly sweep)
    └── OrderTaskService threads (one per webhook / admin trigger)
        └── compositor pool (interior and cover rendered side by side)
"""

from .document_store import DocumentStore, InMemoryDocumentStore, LocalDocumentStore
from .notifier import LoggingNotifier, NotificationEvent, Notifier, WebhookNotifier
from .order_repository import OrderRepository
from .order_orchestrator import OrderOrchestrator
from .order_task_service import OrderTaskService, TaskResultStore
from .reconciliation_service import ReconciliationService

__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "LocalDocumentStore",
    "LoggingNotifier",
    "NotificationEvent",
    "Notifier",
    "WebhookNotifier",
    "OrderRepository",
    "OrderOrchestrator",
    "OrderTaskService",
    "TaskResultStore",
    "ReconciliationService",
]
