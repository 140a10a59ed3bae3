"""
SQLite persistence for print orders, plus read access to book data.

The order's status column doubles as its lock: every status change is a
compare-and-set (`UPDATE ... WHERE id = ? AND status IN (...)`), so two
triggers racing on the same order cannot both win, in this process or
after a restart.

Thread Safety:
    One connection (check_same_thread=False) guarded by an RLock. Every
    public method takes the lock for the duration of its statement(s).
"""

from __future__ import annotations

import json
import os
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from core.exceptions import OrderNotFoundError
from models.book import Book, ContentPage, CoverDesign, PageImage
from models.order import OrderStatus, PrintOrder, ShippingAddress, RECONCILABLE_STATUSES
from logging_config import get_logger


logger = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS books (
    id                 TEXT    PRIMARY KEY,
    title              TEXT    NOT NULL,
    content_page_count INTEGER NOT NULL,
    cover_design       TEXT    NOT NULL DEFAULT '{}',
    updated_at         TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS content_pages (
    id       INTEGER PRIMARY KEY AUTOINCREMENT,
    book_id  TEXT    NOT NULL,
    ordinal  INTEGER NOT NULL,
    title    TEXT,
    caption  TEXT,
    images   TEXT    NOT NULL DEFAULT '[]',
    FOREIGN KEY (book_id) REFERENCES books(id),
    UNIQUE (book_id, ordinal)
);

CREATE TABLE IF NOT EXISTS print_orders (
    id                     TEXT    PRIMARY KEY,
    book_id                TEXT    NOT NULL,
    status                 TEXT    NOT NULL,
    shipping_address       TEXT    NOT NULL,
    contact_email          TEXT    NOT NULL,
    interior_reference     TEXT,
    cover_reference        TEXT,
    artifacts_generated_at TEXT,
    lulu_job_id            TEXT    UNIQUE,
    lulu_status            TEXT,
    tracking_number        TEXT,
    tracking_url           TEXT,
    cost_cents             INTEGER NOT NULL DEFAULT 0,
    price_cents            INTEGER NOT NULL DEFAULT 0,
    failure_reason         TEXT,
    created_at             TEXT    NOT NULL,
    updated_at             TEXT    NOT NULL,
    status_changed_at      TEXT    NOT NULL,
    paid_at                TEXT,
    submitted_at           TEXT,
    shipped_at             TEXT,
    delivered_at           TEXT,
    failed_at              TEXT,
    CHECK ((interior_reference IS NULL) = (cover_reference IS NULL))
);

CREATE INDEX IF NOT EXISTS idx_print_orders_status ON print_orders(status);
"""

# Columns callers may set alongside a status change
UPDATABLE_FIELDS = frozenset({
    "interior_reference",
    "cover_reference",
    "artifacts_generated_at",
    "lulu_job_id",
    "lulu_status",
    "tracking_number",
    "tracking_url",
    "cost_cents",
    "failure_reason",
})

# Timestamp column stamped when an order enters a status
_STATUS_TIMESTAMPS = {
    OrderStatus.PAYMENT_RECEIVED: "paid_at",
    OrderStatus.SUBMITTED: "submitted_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.FAILED: "failed_at",
}

_DATETIME_COLUMNS = (
    "artifacts_generated_at", "created_at", "updated_at", "paid_at",
    "submitted_at", "shipped_at", "delivered_at", "failed_at",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def get_connection(db_path: str) -> sqlite3.Connection:
    """Open the database with row dicts and foreign keys enabled."""
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    if db_path != ":memory:":
        conn.execute("PRAGMA journal_mode = WAL")
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    """Create tables if missing. Idempotent."""
    with conn:
        conn.executescript(_SCHEMA)


class OrderRepository:
    """
    The only path between the rest of the service and SQLite.

    Book tables are written by the editor in production; save_book() exists
    for seeding and tests.
    """

    def __init__(self, db_path: Optional[str] = None):
        path = db_path or os.environ.get("DATABASE_PATH") or ":memory:"
        self._conn = get_connection(path)
        self._lock = threading.RLock()
        init_schema(self._conn)
        logger.info(f"OrderRepository opened ({path})")

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Books
    # ------------------------------------------------------------------

    def save_book(self, book: Book, pages: Sequence[ContentPage]) -> None:
        """Insert or replace a book and all of its content pages."""
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO books (id, title, content_page_count, cover_design, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (book.id, book.title, book.content_page_count,
                 json.dumps(book.cover_design.to_dict()), _iso(utcnow())),
            )
            self._conn.execute("DELETE FROM content_pages WHERE book_id = ?", (book.id,))
            self._conn.executemany(
                """
                INSERT INTO content_pages (book_id, ordinal, title, caption, images)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (book.id, page.ordinal, page.title, page.caption,
                     json.dumps([img.to_dict() for img in page.images]))
                    for page in pages
                ],
            )

    def get_book(self, book_id: str) -> Optional[Book]:
        with self._lock:
            row = self._conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
        if row is None:
            return None
        return Book(
            id=row["id"],
            title=row["title"],
            content_page_count=row["content_page_count"],
            cover_design=CoverDesign.from_dict(json.loads(row["cover_design"] or "{}")),
        )

    def get_content_pages(self, book_id: str) -> List[ContentPage]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM content_pages WHERE book_id = ? ORDER BY ordinal ASC", (book_id,)
            ).fetchall()
        return [
            ContentPage(
                ordinal=row["ordinal"],
                title=row["title"],
                caption=row["caption"],
                images=tuple(PageImage.from_dict(i) for i in json.loads(row["images"] or "[]")),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def create_order(self, order: PrintOrder) -> PrintOrder:
        """Insert a new order (checkout creates orders in pending_payment)."""
        now = utcnow()
        created = order.created_at or now
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO print_orders (
                    id, book_id, status, shipping_address, contact_email,
                    interior_reference, cover_reference, lulu_job_id, failure_reason,
                    cost_cents, price_cents, created_at, updated_at, status_changed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (order.id, order.book_id, order.status.value,
                 json.dumps(order.shipping_address.to_dict()), order.contact_email,
                 order.interior_reference, order.cover_reference, order.lulu_job_id, order.failure_reason,
                 order.cost_cents, order.price_cents,
                 _iso(created), _iso(now), _iso(now)),
            )
        logger.info(f"Created order {order.id} for book {order.book_id} ({order.status.value})")
        return self.require_order(order.id)

    def get_order(self, order_id: str) -> Optional[PrintOrder]:
        with self._lock:
            row = self._conn.execute("SELECT * FROM print_orders WHERE id = ?", (order_id,)).fetchone()
        return self._row_to_order(row) if row else None

    def require_order(self, order_id: str) -> PrintOrder:
        order = self.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def find_by_lulu_job_id(self, job_id: str) -> Optional[PrintOrder]:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM print_orders WHERE lulu_job_id = ?", (str(job_id),)
            ).fetchone()
        return self._row_to_order(row) if row else None

    def list_by_status(self, statuses: Iterable[OrderStatus]) -> List[PrintOrder]:
        values = [s.value for s in statuses]
        if not values:
            return []
        placeholders = ", ".join("?" for _ in values)
        with self._lock:
            rows = self._conn.execute(
                f"SELECT * FROM print_orders WHERE status IN ({placeholders}) ORDER BY created_at ASC",
                values,
            ).fetchall()
        return [self._row_to_order(row) for row in rows]

    def list_reconcilable(self) -> List[PrintOrder]:
        """Orders at submitted or later that are not terminal."""
        return self.list_by_status(sorted(RECONCILABLE_STATUSES, key=lambda s: s.rank))

    def list_stale(self, statuses: Iterable[OrderStatus], older_than: datetime) -> List[PrintOrder]:
        """Orders that entered one of `statuses` before `older_than`."""
        values = [s.value for s in statuses]
        if not values:
            return []
        placeholders = ", ".join("?" for _ in values)
        with self._lock:
            rows = self._conn.execute(
                f"""
                SELECT * FROM print_orders
                WHERE status IN ({placeholders}) AND status_changed_at < ?
                ORDER BY status_changed_at ASC
                """,
                [*values, _iso(older_than)],
            ).fetchall()
        return [self._row_to_order(row) for row in rows]

    def count_by_status(self) -> Dict[str, int]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT status, COUNT(*) AS n FROM print_orders GROUP BY status"
            ).fetchall()
        return {row["status"]: row["n"] for row in rows}

    def transition(
        self,
        order_id: str,
        expected: Iterable[OrderStatus],
        target: OrderStatus,
        **fields: Any,
    ) -> bool:
        """
        Compare-and-set the order status.

        The update only applies if the order is currently in one of the
        `expected` statuses. Extra column values in `fields` are written in
        the same statement. Returns True if this call won.

        Raises:
            ValueError: unknown field, or only one artifact reference given
        """
        now = utcnow()
        assignments = {"status": target.value, "updated_at": _iso(now), "status_changed_at": _iso(now)}
        stamp = _STATUS_TIMESTAMPS.get(target)
        if stamp:
            assignments[stamp] = _iso(now)
        assignments.update(self._check_fields(fields))
        return self._update(order_id, list(expected), assignments, "lulu_job_id" in fields)

    def update_fields(self, order_id: str, expected: Iterable[OrderStatus], **fields: Any) -> bool:
        """Write columns without a status change, if the status is still `expected`."""
        if not fields:
            return False
        assignments = {"updated_at": _iso(utcnow())}
        assignments.update(self._check_fields(fields))
        return self._update(order_id, list(expected), assignments, "lulu_job_id" in fields)

    def _check_fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update order fields: {sorted(unknown)}")
        if ("interior_reference" in fields) != ("cover_reference" in fields):
            raise ValueError("interior_reference and cover_reference must be written together")
        return {
            key: _iso(value) if isinstance(value, datetime) else value
            for key, value in fields.items()
        }

    def _update(
        self,
        order_id: str,
        expected: List[OrderStatus],
        assignments: Dict[str, Any],
        sets_job_id: bool,
    ) -> bool:
        if not expected:
            return False
        set_clause = ", ".join(f"{column} = ?" for column in assignments)
        placeholders = ", ".join("?" for _ in expected)
        sql = f"UPDATE print_orders SET {set_clause} WHERE id = ? AND status IN ({placeholders})"
        params: List[Any] = [*assignments.values(), order_id, *(s.value for s in expected)]
        if sets_job_id:
            # Vendor job id is write-once
            sql += " AND lulu_job_id IS NULL"

        with self._lock, self._conn:
            cursor = self._conn.execute(sql, params)
        return cursor.rowcount == 1

    def _row_to_order(self, row: sqlite3.Row) -> PrintOrder:
        dates = {column: _parse_dt(row[column]) for column in _DATETIME_COLUMNS}
        return PrintOrder(
            id=row["id"],
            book_id=row["book_id"],
            status=OrderStatus(row["status"]),
            shipping_address=ShippingAddress.from_dict(json.loads(row["shipping_address"])),
            contact_email=row["contact_email"],
            interior_reference=row["interior_reference"],
            cover_reference=row["cover_reference"],
            lulu_job_id=row["lulu_job_id"],
            lulu_status=row["lulu_status"],
            tracking_number=row["tracking_number"],
            tracking_url=row["tracking_url"],
            cost_cents=row["cost_cents"],
            price_cents=row["price_cents"],
            failure_reason=row["failure_reason"],
            metadata={"status_changed_at": row["status_changed_at"]},
            **dates,
        )
