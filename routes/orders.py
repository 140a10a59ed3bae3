"""
Order routes.

Handles:
- /api/orders/<id>                - customer view of an order
- /admin/orders/<id>              - full order record (raw failure reason)
- /admin/orders/<id>/retry        - re-run a failed order in the background
- /admin/orders/<id>/reconcile    - poll Lulu for one order now
- /admin/tasks/<task_id>          - result of a background order task
- /admin/reconcile                - run a reconciliation sweep now
"""

from flask import Blueprint, current_app

from core.exceptions import InvalidTransitionError, VendorError
from models.order import OrderStatus, customer_view
from logging_config import get_logger
from .auth import ADMIN_TOKEN_HEADER, MAX_ID_LENGTH, require_token, sanitize_text


logger = get_logger(__name__)

orders_bp = Blueprint("orders", __name__)


def _load_order(order_id: str):
    order_id = sanitize_text(order_id, MAX_ID_LENGTH)
    return current_app.config["ORCHESTRATOR"].get_order(order_id)


@orders_bp.route("/api/orders/<order_id>", methods=["GET"])
def order_status(order_id: str):
    """Customer-facing order status. Never exposes the failure reason."""
    order = _load_order(order_id)
    if order is None:
        return {"error": "Order not found"}, 404
    return customer_view(order)


@orders_bp.route("/admin/orders/<order_id>", methods=["GET"])
@require_token("ADMIN_TOKEN", ADMIN_TOKEN_HEADER)
def admin_order(order_id: str):
    order = _load_order(order_id)
    if order is None:
        return {"error": "Order not found"}, 404
    return order.to_dict()


@orders_bp.route("/admin/orders/<order_id>/retry", methods=["POST"])
@require_token("ADMIN_TOKEN", ADMIN_TOKEN_HEADER)
def admin_retry(order_id: str):
    """
    Re-run a failed order.

    Preconditions are checked here so the caller gets a 409 straight away;
    the orchestrator checks them again when the task runs.
    """
    order = _load_order(order_id)
    if order is None:
        return {"error": "Order not found"}, 404

    if order.status is not OrderStatus.FAILED:
        return {"error": f"Only failed orders can be retried (status is {order.status.value})"}, 409
    if order.lulu_job_id:
        return {"error": f"Order already has Lulu job {order.lulu_job_id}"}, 409

    task_id = current_app.config["TASK_SERVICE"].submit_task(order.id, "retry")
    logger.info(f"Admin retry for order {order.id}: task {task_id[:8]}")

    return {"order_id": order.id, "task_id": task_id}, 202


@orders_bp.route("/admin/orders/<order_id>/reconcile", methods=["POST"])
@require_token("ADMIN_TOKEN", ADMIN_TOKEN_HEADER)
def admin_reconcile_order(order_id: str):
    order = _load_order(order_id)
    if order is None:
        return {"error": "Order not found"}, 404

    orchestrator = current_app.config["ORCHESTRATOR"]
    try:
        updated = orchestrator.reconcile(order.id)
    except InvalidTransitionError as e:
        return {"error": e.message}, 409
    except VendorError as e:
        logger.error(f"Reconcile of order {order.id} failed: {e}")
        return {"error": e.message}, 502

    return {"updated": updated, "order": orchestrator.get_order(order.id).to_dict()}


@orders_bp.route("/admin/tasks/<task_id>", methods=["GET"])
@require_token("ADMIN_TOKEN", ADMIN_TOKEN_HEADER)
def admin_task(task_id: str):
    result = current_app.config["TASK_SERVICE"].peek_result(sanitize_text(task_id, MAX_ID_LENGTH))
    if result is None:
        return {"error": "Task not found"}, 404
    return result.to_dict()


@orders_bp.route("/admin/reconcile", methods=["POST"])
@require_token("ADMIN_TOKEN", ADMIN_TOKEN_HEADER)
def admin_reconcile():
    """Run one reconciliation sweep in the request thread."""
    summary = current_app.config["RECONCILIATION_SERVICE"].run_once()
    return summary
