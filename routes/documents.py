"""
Document download route.

Serves generated PDFs from the local document store so Lulu can fetch them.
When the store signs URLs, the `expires` and `signature` query parameters
must be valid.
"""

from flask import Blueprint, Response, current_app, request

from core.exceptions import StorageError
from services.document_store import content_type_for, is_valid_reference
from logging_config import get_logger


logger = get_logger(__name__)

documents_bp = Blueprint("documents", __name__)


@documents_bp.route("/documents/<reference>", methods=["GET"])
def download(reference: str):
    if not is_valid_reference(reference):
        return {"error": "Document not found"}, 404

    store = current_app.config["DOCUMENT_STORE"]
    verify = getattr(store, "verify_signature", None)
    if verify is not None and not verify(reference, request.args.get("expires"), request.args.get("signature")):
        logger.warning(f"Rejected document download {reference}: bad or expired signature")
        return {"error": "Forbidden"}, 403

    try:
        data = store.fetch(reference)
    except StorageError:
        return {"error": "Document not found"}, 404

    logger.info(f"Serving document {reference} ({len(data)} bytes)")
    return Response(data, mimetype=content_type_for(reference))
