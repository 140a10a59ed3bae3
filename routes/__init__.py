"""
Flask route blueprints for StoryPrint.

This module contains all route handlers organized by functionality:
- webhooks: payment-confirmed trigger and Lulu status webhook
- orders: customer order status and admin order operations
- documents: generated PDF downloads for the print vendor
- api: health check and price estimates

Each blueprint is registered with the Flask app in create_app().
"""

from .webhooks import webhooks_bp
from .orders import orders_bp
from .documents import documents_bp
from .api import api_bp

__all__ = [
    "webhooks_bp",
    "orders_bp",
    "documents_bp",
    "api_bp",
]


def register_blueprints(app):
    """
    Register all blueprints with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(documents_bp)
    app.register_blueprint(api_bp)
