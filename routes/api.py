"""
API routes.

Handles:
- /health         - Health check endpoint
- /api/estimates  - print specification and Lulu price estimate for a book size
"""

from flask import Blueprint, current_app, request

from core.exceptions import VendorError
from core.geometry import print_specification
from logging_config import get_logger
from .auth import sanitize_text


# Module logger
logger = get_logger(__name__)

api_bp = Blueprint("api", __name__)

MAX_POSTAL_CODE_LENGTH = 16


@api_bp.route("/health", methods=["GET"])
def health():
    """
    Health check endpoint.

    Returns service status and order counts per status.
    """
    orchestrator = current_app.config.get("ORCHESTRATOR")
    reconciliation = current_app.config.get("RECONCILIATION_SERVICE")
    task_service = current_app.config.get("TASK_SERVICE")

    try:
        orders = orchestrator.repository.count_by_status() if orchestrator else {}
        database_ok = orchestrator is not None
    except Exception as e:
        logger.error(f"Health check could not read orders: {e}")
        orders = {}
        database_ok = False

    return {
        "status": "healthy" if database_ok else "degraded",
        "database": database_ok,
        "orders": orders,
        "reconciliation": {
            "running": bool(reconciliation and reconciliation.is_running),
            "last_sweep": reconciliation.last_summary if reconciliation else None,
        },
        "active_tasks": task_service.active_count() if task_service else 0,
    }, 200 if database_ok else 503


@api_bp.route("/api/estimates", methods=["GET"])
def estimates():
    """
    Print specification and vendor price estimate.

    Query: content_pages (required), postal_code, country_code (default US)
    """
    try:
        content_pages = int(request.args.get("content_pages", ""))
        spec = print_specification(content_pages)
    except ValueError as e:
        return {"error": f"Invalid content_pages: {e}"}, 400

    postal_code = sanitize_text(request.args.get("postal_code"), MAX_POSTAL_CODE_LENGTH)
    country_code = sanitize_text(request.args.get("country_code", "US"), 2).upper() or "US"

    result = {"specification": spec.to_dict()}
    lulu = current_app.config["LULU_CLIENT"]
    try:
        result["print_cost"] = lulu.get_print_cost_estimate(spec.printed_page_count)
        if postal_code:
            result["shipping"] = lulu.get_shipping_estimate(spec.printed_page_count, postal_code, country_code)
    except VendorError as e:
        logger.warning(f"Estimate unavailable: {e}")
        result["error"] = "Price estimate unavailable"
        return result, 502

    return result
