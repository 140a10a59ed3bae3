"""
Webhook routes.

Handles:
- /webhooks/payment-confirmed - payment processor says an order is paid
- /webhooks/lulu              - Lulu pushes a print job status change

Payment confirmations start a background task and answer 202 right away;
duplicates are harmless because the orchestrator ignores an order that is
no longer pending payment.
"""

from flask import Blueprint, current_app, request

from core.exceptions import OrderNotFoundError
from logging_config import get_logger
from .auth import (
    MAX_ID_LENGTH,
    WEBHOOK_TOKEN_HEADER,
    require_token,
    sanitize_text,
    verify_lulu_signature,
)


logger = get_logger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/webhooks")

PRINT_JOB_TOPIC = "PRINT_JOB_STATUS_CHANGED"


@webhooks_bp.route("/payment-confirmed", methods=["POST"])
@require_token("WEBHOOK_TOKEN", WEBHOOK_TOKEN_HEADER)
def payment_confirmed():
    """
    Start print production for a paid order.

    Body: {"order_id": "..."}
    """
    payload = request.get_json(silent=True) or {}
    order_id = sanitize_text(payload.get("order_id"), MAX_ID_LENGTH)
    if not order_id:
        return {"error": "order_id is required"}, 400

    orchestrator = current_app.config["ORCHESTRATOR"]
    if orchestrator.get_order(order_id) is None:
        return {"error": f"Print order not found: {order_id}"}, 404

    task_id = current_app.config["TASK_SERVICE"].submit_task(order_id, "payment_confirmed")
    logger.info(f"Payment confirmed webhook for order {order_id}: task {task_id[:8]}")

    return {"order_id": order_id, "task_id": task_id}, 202


@webhooks_bp.route("/lulu", methods=["POST"])
def lulu_status():
    """
    Apply a Lulu print job status change.

    Body: {"topic": "PRINT_JOB_STATUS_CHANGED", "data": {...print job...}}
    """
    if not verify_lulu_signature():
        logger.warning("Rejected Lulu webhook: bad or missing signature")
        return {"error": "unauthorized"}, 401

    payload = request.get_json(silent=True) or {}
    topic = sanitize_text(payload.get("topic"), MAX_ID_LENGTH)
    if topic != PRINT_JOB_TOPIC:
        logger.info(f"Ignoring Lulu webhook topic '{topic}'")
        return {"status": "ignored"}, 200

    job = payload.get("data")
    if not isinstance(job, dict) or job.get("id") is None:
        return {"error": "data must be a print job with an id"}, 400

    orchestrator = current_app.config["ORCHESTRATOR"]
    try:
        updated = orchestrator.apply_vendor_update(job)
    except OrderNotFoundError:
        logger.warning(f"Lulu webhook for unknown print job {job.get('id')}")
        return {"error": "unknown print job"}, 404

    return {"status": "updated" if updated else "unchanged"}, 200
