"""
Unit tests for the order repository.

The status column doubles as the per-order lock, so most of these tests
are about compare-and-set behaviour.
"""

import threading
from datetime import timedelta

import pytest

from conftest import make_book, make_order, make_pages
from core.exceptions import OrderNotFoundError
from models.order import OrderStatus
from services.order_repository import OrderRepository, utcnow


class TestBooks:

    def test_save_and_read_book(self, repository):
        book = make_book(2, subtitle="Summer", theme="ocean-adventure")
        repository.save_book(book, make_pages(2, image_reference="a" * 32 + ".png"))

        loaded = repository.get_book(book.id)
        assert loaded == book
        pages = repository.get_content_pages(book.id)
        assert [p.ordinal for p in pages] == [1, 2]
        assert pages[0].image_references == ["a" * 32 + ".png"]

    def test_unknown_book(self, repository):
        assert repository.get_book("missing") is None
        assert repository.get_content_pages("missing") == []


class TestOrders:

    def test_create_and_get(self, repository):
        order = repository.create_order(make_order("book-1"))
        assert order.status is OrderStatus.PENDING_PAYMENT
        assert order.created_at is not None
        assert order.shipping_address.postal_code == "62701"

    def test_require_missing(self, repository):
        with pytest.raises(OrderNotFoundError):
            repository.require_order("missing")

    def test_count_by_status(self, repository):
        repository.create_order(make_order("b"))
        repository.create_order(make_order("b"))
        assert repository.count_by_status() == {"pending_payment": 2}


class TestTransition:

    def test_wins_from_expected_status(self, repository):
        order = repository.create_order(make_order("b"))
        assert repository.transition(order.id, [OrderStatus.PENDING_PAYMENT], OrderStatus.PAYMENT_RECEIVED)

        updated = repository.require_order(order.id)
        assert updated.status is OrderStatus.PAYMENT_RECEIVED
        assert updated.paid_at is not None

    def test_loses_from_other_status(self, repository):
        order = repository.create_order(make_order("b"))
        assert not repository.transition(order.id, [OrderStatus.GENERATING_PDFS], OrderStatus.SUBMITTING_TO_LULU)
        assert repository.require_order(order.id).status is OrderStatus.PENDING_PAYMENT

    def test_only_one_concurrent_caller_wins(self, tmp_path):
        repository = OrderRepository(str(tmp_path / "orders.db"))
        order = repository.create_order(make_order("b"))
        wins = []
        barrier = threading.Barrier(8)

        def claim():
            barrier.wait()
            if repository.transition(order.id, [OrderStatus.PENDING_PAYMENT], OrderStatus.PAYMENT_RECEIVED):
                wins.append(1)

        threads = [threading.Thread(target=claim) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        repository.close()

        assert len(wins) == 1

    def test_artifact_references_written_together(self, repository):
        order = repository.create_order(make_order("b", OrderStatus.GENERATING_PDFS))
        with pytest.raises(ValueError):
            repository.transition(
                order.id, [OrderStatus.GENERATING_PDFS], OrderStatus.SUBMITTING_TO_LULU,
                interior_reference="i.pdf",
            )

        assert repository.transition(
            order.id, [OrderStatus.GENERATING_PDFS], OrderStatus.SUBMITTING_TO_LULU,
            interior_reference="i.pdf", cover_reference="c.pdf",
        )
        updated = repository.require_order(order.id)
        assert (updated.interior_reference, updated.cover_reference) == ("i.pdf", "c.pdf")

    def test_lulu_job_id_is_write_once(self, repository):
        order = repository.create_order(make_order("b", OrderStatus.SUBMITTING_TO_LULU))
        assert repository.transition(
            order.id, [OrderStatus.SUBMITTING_TO_LULU], OrderStatus.SUBMITTED, lulu_job_id="1"
        )
        assert not repository.update_fields(order.id, [OrderStatus.SUBMITTED], lulu_job_id="2")
        assert repository.require_order(order.id).lulu_job_id == "1"
        assert repository.find_by_lulu_job_id("1").id == order.id

    def test_rejects_unknown_fields(self, repository):
        order = repository.create_order(make_order("b"))
        with pytest.raises(ValueError):
            repository.update_fields(order.id, [OrderStatus.PENDING_PAYMENT], status="delivered")

    def test_update_fields_respects_expected_status(self, repository):
        order = repository.create_order(make_order("b", OrderStatus.SHIPPED))
        assert not repository.update_fields(order.id, [OrderStatus.IN_PRODUCTION], tracking_number="X")
        assert repository.update_fields(order.id, [OrderStatus.SHIPPED], tracking_number="X")
        assert repository.require_order(order.id).tracking_number == "X"


class TestQueries:

    def test_list_reconcilable(self, repository):
        for status in OrderStatus:
            repository.create_order(make_order("b", status))
        statuses = {o.status for o in repository.list_reconcilable()}
        assert statuses == {OrderStatus.SUBMITTED, OrderStatus.IN_PRODUCTION, OrderStatus.SHIPPED}

    def test_list_stale(self, repository):
        order = repository.create_order(make_order("b", OrderStatus.GENERATING_PDFS))
        assert repository.list_stale([OrderStatus.GENERATING_PDFS], utcnow() - timedelta(hours=1)) == []
        stale = repository.list_stale([OrderStatus.GENERATING_PDFS], utcnow() + timedelta(seconds=1))
        assert [o.id for o in stale] == [order.id]
