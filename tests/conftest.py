"""
Shared fixtures for the StoryPrint tests.

Collaborators that talk to the outside world (Lulu, the notification
service) are replaced by mocks or small recording fakes; the repository
runs on an in-memory sqlite database and documents live in memory.
"""

import io
import logging
import uuid
from unittest.mock import MagicMock

import pytest
from PIL import Image

from models.book import Book, ContentPage, CoverDesign, PageImage
from models.order import OrderStatus, PrintOrder, ShippingAddress
from models.vendor_status import VendorJobStatus
from services.document_store import InMemoryDocumentStore
from services.notifier import Notifier
from services.order_orchestrator import OrderOrchestrator
from services.order_repository import OrderRepository


class RecordingNotifier(Notifier):
    """Remembers every (order id, event) it was asked to send."""

    def __init__(self, fail: bool = False):
        self.events = []
        self.fail = fail

    def notify(self, order, event):
        self.events.append((order.id, event.value))
        if self.fail:
            raise RuntimeError("notification service down")

    def events_for(self, order_id):
        return [event for oid, event in self.events if oid == order_id]


def png_bytes(width: int = 40, height: int = 30, color=(200, 80, 40)) -> bytes:
    """A small solid-colour PNG."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_book(content_pages: int = 3, title: str = "Our Summer Trip", **design) -> Book:
    return Book(
        id=f"book-{uuid.uuid4().hex[:8]}",
        title=title,
        content_page_count=content_pages,
        cover_design=CoverDesign(**design),
    )


def make_pages(count: int, image_reference=None, caption: str = "We found a hidden beach.") -> list:
    images = (PageImage(original_reference=image_reference),) if image_reference else ()
    return [
        ContentPage(ordinal=i, title=f"Stop {i}", caption=caption, images=images)
        for i in range(1, count + 1)
    ]


def make_order(book_id: str, status: OrderStatus = OrderStatus.PENDING_PAYMENT) -> PrintOrder:
    return PrintOrder(
        id=str(uuid.uuid4()),
        book_id=book_id,
        status=status,
        shipping_address=ShippingAddress(
            name="Alex Doe",
            street1="1 Main St",
            city="Springfield",
            state_code="IL",
            postal_code="62701",
            phone_number="555-0100",
        ),
        contact_email="alex@example.com",
        price_cents=4499,
    )


def vendor_status(name: str, job_id: str = "9001", tracking: str = None) -> VendorJobStatus:
    job = {"id": job_id, "status": {"name": name}}
    if tracking:
        job["line_items"] = [{"tracking_id": tracking, "tracking_urls": [f"https://track.example/{tracking}"]}]
    return VendorJobStatus.from_print_job(job)


# Fixtures

@pytest.fixture
def logger():
    """Create a test logger."""
    return logging.getLogger("test")


@pytest.fixture
def repository():
    repo = OrderRepository(":memory:")
    yield repo
    repo.close()


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def lulu():
    """Mock Lulu client: submission succeeds with job 9001."""
    client = MagicMock()
    client.submit.return_value = "9001"
    client.poll_status.return_value = vendor_status("IN_PRODUCTION")
    return client


@pytest.fixture
def orchestrator(repository, store, lulu, notifier):
    return OrderOrchestrator(
        repository,
        store,
        lulu,
        notifier,
        reconcile_delay_seconds=0,
        stale_after_seconds=1800,
        sleep=lambda _seconds: None,
    )


@pytest.fixture
def saved_book(repository, store):
    """A three-page book with one stored image per page."""
    reference = store.store(png_bytes(), "image/png")
    book = make_book(3)
    repository.save_book(book, make_pages(3, image_reference=reference))
    return book


@pytest.fixture
def pending_order(repository, saved_book):
    return repository.create_order(make_order(saved_book.id))
