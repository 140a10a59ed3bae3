"""
Configuration for StoryPrint.

Values come from the environment (a .env file is loaded first). Vendor
credentials have no defaults: without them the Lulu client refuses to
authenticate and every submission fails with VendorAuthError.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file early so environment variables are available for Config class
load_dotenv(override=True)

# Base directory (where this file lives)
BASE_DIR = Path(__file__).resolve().parent


def _env_bool(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Default configuration for the Flask application."""

    # Flask settings
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # webhook payloads only
    ENVIRONMENT = os.environ.get("FLASK_ENV", "development")
    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"

    # ==========================================================================
    # Persistence
    # ==========================================================================
    DATABASE_PATH = os.environ.get("DATABASE_PATH", str(BASE_DIR / "data" / "storyprint.db"))

    # Generated PDFs and uploaded images. The vendor downloads the PDFs, so
    # either DOCUMENT_BASE_URL must be publicly reachable or URLs are signed
    # with DOCUMENT_URL_SECRET and served by this app.
    DOCUMENT_STORE_DIR = os.environ.get("DOCUMENT_STORE_DIR", str(BASE_DIR / "data" / "documents"))
    DOCUMENT_BASE_URL = os.environ.get("DOCUMENT_BASE_URL", "http://localhost:5000/documents")
    DOCUMENT_URL_SECRET = os.environ.get("DOCUMENT_URL_SECRET", "")
    DOCUMENT_URL_TTL_SECONDS = int(os.environ.get("DOCUMENT_URL_TTL_SECONDS", str(7 * 24 * 3600)))

    # ==========================================================================
    # Lulu print API
    # ==========================================================================
    LULU_CLIENT_KEY = os.environ.get("LULU_CLIENT_KEY", "")
    LULU_CLIENT_SECRET = os.environ.get("LULU_CLIENT_SECRET", "")
    LULU_USE_SANDBOX = _env_bool("LULU_USE_SANDBOX", "1")
    LULU_TIMEOUT_SECONDS = float(os.environ.get("LULU_TIMEOUT_SECONDS", "30"))

    # Retries after the first attempt; delay doubles from the base
    LULU_MAX_RETRIES = int(os.environ.get("LULU_MAX_RETRIES", "2"))
    LULU_BACKOFF_BASE_SECONDS = float(os.environ.get("LULU_BACKOFF_BASE_SECONDS", "1.0"))

    # ==========================================================================
    # Reconciliation sweep
    # ==========================================================================
    RECONCILE_INTERVAL_SECONDS = float(os.environ.get("RECONCILE_INTERVAL_SECONDS", "3600"))
    RECONCILE_DELAY_SECONDS = float(os.environ.get("RECONCILE_DELAY_SECONDS", "0.5"))
    RECONCILE_ON_STARTUP = _env_bool("RECONCILE_ON_STARTUP", "1")

    # Orders held in generating_pdfs / submitting_to_lulu longer than this
    # were interrupted (process restart) and are failed by the sweep
    STALE_TRANSITION_SECONDS = float(os.environ.get("STALE_TRANSITION_SECONDS", "1800"))

    # Finished background task results visible on /admin/tasks/<id>
    TASK_RESULT_TTL_SECONDS = float(os.environ.get("TASK_RESULT_TTL_SECONDS", "3600"))
    TASK_RESULT_MAX_FINISHED = int(os.environ.get("TASK_RESULT_MAX_FINISHED", "1000"))

    # ==========================================================================
    # Triggers & notifications
    # ==========================================================================
    WEBHOOK_TOKEN = os.environ.get("WEBHOOK_TOKEN", "")
    ADMIN_TOKEN = os.environ.get("ADMIN_TOKEN", "")
    NOTIFY_WEBHOOK_URL = os.environ.get("NOTIFY_WEBHOOK_URL", "")



class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    LULU_USE_SANDBOX = _env_bool("LULU_USE_SANDBOX", "0")


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    """Testing configuration."""
    DEBUG = False
    TESTING = True
    DATABASE_PATH = ":memory:"
    RECONCILE_ON_STARTUP = False
    RECONCILE_INTERVAL_SECONDS = 0
    RECONCILE_DELAY_SECONDS = 0
    LULU_BACKOFF_BASE_SECONDS = 0
    LULU_CLIENT_KEY = "test-lulu-key"
    LULU_CLIENT_SECRET = "test-lulu-secret"
    WEBHOOK_TOKEN = "test-webhook-token"
    ADMIN_TOKEN = "test-admin-token"
    NOTIFY_WEBHOOK_URL = ""
