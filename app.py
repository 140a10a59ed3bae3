"""
StoryPrint - Flask Application Entry Point.

This is a slim app factory that:
1. Opens the order database and document store
2. Builds the Lulu client, notifier and order orchestrator
3. Creates the order task service (thread-per-order)
4. Starts the reconciliation service (separate thread)
5. Registers route blueprints, error handlers and CLI commands

ARCHITECTURE:
    Main Thread
    ├── Flask request handling (webhooks, order status, admin)
    └── Cleanup on shutdown

    Reconcile Thread (background)
    └── Hourly sweep polling Lulu for every in-flight order

    Order Threads (one per webhook / admin trigger)
    └── generate PDFs -> store -> submit to Lulu

Every order status change is a compare-and-set on the database row, so the
threads never need to coordinate with each other directly.
"""

from __future__ import annotations

import atexit
import json
import logging
import os
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from flask import Flask
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from logging_config import setup_logging, get_logger
from core.exceptions import OrderProcessingError, PrintPipelineError
from core.lulu_client import LuluClient
from models.book import Book, ContentPage
from services.document_store import LocalDocumentStore
from services.notifier import LoggingNotifier, WebhookNotifier
from services.order_orchestrator import OrderOrchestrator
from services.order_repository import OrderRepository
from services.order_task_service import OrderTaskService, TaskResultStore
from services.reconciliation_service import ReconciliationService
from routes import register_blueprints


# Module logger (configured after setup_logging)
logger = get_logger(__name__)


def _get_base_path() -> Path:
    """
    Get the base path for the application.

    In PyInstaller bundle: Returns the directory containing the executable
    In development: Returns the directory containing app.py
    """
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).parent
    else:
        return Path(__file__).parent


def create_app(
    config_object: str = "config.Config",
    lulu_client=None,
    notifier=None,
    document_store=None,
    start_background: bool = True,
) -> Flask:
    """
    Application factory - creates and configures Flask app.

    Args:
        config_object: Import path of the config class
        lulu_client: Fulfillment client (built from config if omitted)
        notifier: Order notifier (webhook or logging notifier if omitted)
        document_store: Document store (local directory store if omitted)
        start_background: Start the reconciliation thread

    Returns:
        Configured Flask application
    """
    # Load .env from base path (next to executable in production)
    # Use override=True so .env file always takes precedence over shell environment
    base_path = _get_base_path()
    env_file = base_path / '.env'
    if env_file.exists():
        load_dotenv(env_file, override=True)
    else:
        load_dotenv(override=True)

    app = Flask(__name__)
    app.config.from_object(config_object)

    # Configure logging
    log_level = logging.DEBUG if app.config.get("DEBUG") else logging.INFO
    enable_file_logging = app.config.get("ENVIRONMENT") == "production"

    root_logger = setup_logging(log_level=log_level, enable_file_logging=enable_file_logging)

    # Set Flask's logger to use our configured logger
    app.logger.handlers = root_logger.handlers
    app.logger.setLevel(log_level)

    logger.info(f"Starting StoryPrint in {app.config.get('ENVIRONMENT')} mode")

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    database_path = app.config["DATABASE_PATH"]
    if database_path != ":memory:":
        Path(database_path).parent.mkdir(parents=True, exist_ok=True)
    repository = OrderRepository(database_path)

    if document_store is None:
        document_store = LocalDocumentStore(
            app.config["DOCUMENT_STORE_DIR"],
            base_url=app.config["DOCUMENT_BASE_URL"],
            secret=app.config["DOCUMENT_URL_SECRET"],
            url_ttl_seconds=app.config["DOCUMENT_URL_TTL_SECONDS"],
        )

    # =========================================================================
    # COLLABORATORS
    # =========================================================================

    if lulu_client is None:
        lulu_client = LuluClient.from_config(app.config)
        if not lulu_client.is_configured:
            logger.warning("Lulu credentials not configured: submissions will fail")
    logger.info(f"Lulu API: {getattr(lulu_client, 'base_url', 'custom client')}")

    if notifier is None:
        notify_url = app.config.get("NOTIFY_WEBHOOK_URL")
        notifier = WebhookNotifier(notify_url) if notify_url else LoggingNotifier()

    orchestrator = OrderOrchestrator(
        repository,
        document_store,
        lulu_client,
        notifier,
        reconcile_delay_seconds=app.config["RECONCILE_DELAY_SECONDS"],
        stale_after_seconds=app.config["STALE_TRANSITION_SECONDS"],
    )

    # =========================================================================
    # SERVICES INITIALIZATION
    # =========================================================================

    task_service = OrderTaskService(
        orchestrator,
        result_store=TaskResultStore(
            ttl_seconds=app.config["TASK_RESULT_TTL_SECONDS"],
            max_finished=app.config["TASK_RESULT_MAX_FINISHED"],
        ),
    )

    interval = app.config["RECONCILE_INTERVAL_SECONDS"]
    reconciliation_service = ReconciliationService(
        orchestrator,
        interval_seconds=interval if interval > 0 else 3600.0,
        run_on_start=app.config["RECONCILE_ON_STARTUP"],
    )
    if start_background and interval > 0:
        reconciliation_service.start()
        logger.info("Reconciliation service started")

    app.config["ORDER_REPOSITORY"] = repository
    app.config["DOCUMENT_STORE"] = document_store
    app.config["LULU_CLIENT"] = lulu_client
    app.config["NOTIFIER"] = notifier
    app.config["ORCHESTRATOR"] = orchestrator
    app.config["TASK_SERVICE"] = task_service
    app.config["RECONCILIATION_SERVICE"] = reconciliation_service

    # =========================================================================
    # CLEANUP REGISTRATION
    # =========================================================================

    def cleanup():
        """Cleanup on application shutdown."""
        logger.info("Shutting down...")
        reconciliation_service.stop()
        task_service.shutdown()
        repository.close()
        logger.info("Shutdown complete")

    atexit.register(cleanup)
    app.extensions["storyprint_cleanup"] = cleanup

    # =========================================================================
    # REGISTER BLUEPRINTS
    # =========================================================================

    register_blueprints(app)
    _register_error_handlers(app)
    _register_cli(app)

    logger.info("Application initialized successfully")
    return app


def _register_error_handlers(app: Flask) -> None:

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(e):
        max_kb = app.config.get("MAX_CONTENT_LENGTH", 1024 * 1024) / 1024
        return {"error": f"Payload too large (max {max_kb:.0f} KB)"}, 413

    @app.errorhandler(PrintPipelineError)
    def handle_pipeline_error(e):
        logger.error(f"Unhandled pipeline error: {e}")
        return {"error": e.message}, 500

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return {"error": e.description}, e.code

    @app.errorhandler(500)
    def handle_server_error(e):
        logger.error(f"500 error: {e}", exc_info=True)
        return {"error": "An unexpected error occurred"}, 500


def _register_cli(app: Flask) -> None:
    """
    Flask CLI commands:
        flask reconcile-orders            one sweep (for cron / external schedulers)
        flask process-order <id>          run payment_confirmed (or retry with --retry)
        flask render-book <book_id> <dir> write both PDFs without touching orders
        flask import-book <file.json>     load a book and its pages
    """

    @app.cli.command("reconcile-orders")
    def reconcile_orders():
        summary = app.config["RECONCILIATION_SERVICE"].run_once()
        click.echo(json.dumps(summary, indent=2))
        if summary["errors"]:
            sys.exit(1)

    @app.cli.command("process-order")
    @click.argument("order_id")
    @click.option("--retry", "retry", is_flag=True, help="Re-run a failed order")
    def process_order(order_id, retry):
        orchestrator = app.config["ORCHESTRATOR"]
        try:
            if retry:
                order = orchestrator.retry(order_id)
            else:
                order = orchestrator.payment_confirmed(order_id)
        except OrderProcessingError as e:
            click.echo(f"Order {order_id} failed during {e.stage}: {e.reason}", err=True)
            sys.exit(1)
        except PrintPipelineError as e:
            click.echo(str(e), err=True)
            sys.exit(2)
        click.echo(f"Order {order.id}: {order.status.value}")

    @app.cli.command("render-book")
    @click.argument("book_id")
    @click.argument("out_dir", type=click.Path(file_okay=False))
    def render_book(book_id, out_dir):
        try:
            spec, interior, cover = app.config["ORCHESTRATOR"].render_book(book_id)
        except PrintPipelineError as e:
            click.echo(str(e), err=True)
            sys.exit(1)

        out = Path(out_dir)
        out.mkdir(parents=True, exist_ok=True)
        (out / f"{book_id}-interior.pdf").write_bytes(interior.data)
        (out / f"{book_id}-cover.pdf").write_bytes(cover.data)
        click.echo(
            f"Interior: {interior.page_count} pages, cover {spec.cover.width:.3f}x{spec.cover.height:.3f}in "
            f"(spine {spec.spine_width}in) -> {out}"
        )

    @app.cli.command("import-book")
    @click.argument("path", type=click.Path(exists=True, dir_okay=False))
    def import_book(path):
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        book = Book.from_dict(data["book"])
        pages = [ContentPage.from_dict(page) for page in data.get("pages", [])]
        app.config["ORDER_REPOSITORY"].save_book(book, pages)
        click.echo(f"Imported book {book.id} ({len(pages)} content pages)")


if __name__ == "__main__":
    app = create_app()
    debug_mode = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(debug=debug_mode, use_reloader=False)
