"""
API key protection for the operations and listing endpoints.

The intake form endpoint and photo serving stay public; everything that
exposes stored submissions or drives the reconcilers requires the shared
key from the API_KEY setting in the ``X-API-Key`` header.

Usage:
    from fieldsync.middleware.api_key import require_api_key

    @sync_bp.route("/jobs", methods=["GET"])
    @require_api_key
    def list_jobs():
        ...
"""

import functools
import hmac
import logging

from flask import current_app, request

from fieldsync.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def _get_api_key_from_request() -> str | None:
    key = request.headers.get("X-API-Key", "").strip()
    return key or None


def require_api_key(fn):
    """Reject the request with 401 unless X-API-Key matches API_KEY."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        expected = current_app.config.get("API_KEY", "")
        provided = _get_api_key_from_request()
        if not expected:
            logger.error("API_KEY not configured; refusing %s %s", request.method, request.path)
            return api_error(E.UNAUTHORIZED, "API key authentication is not configured")
        if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
            logger.warning("Invalid or missing API key for %s %s", request.method, request.path,
                           extra={"remote_addr": request.remote_addr})
            return api_error(E.UNAUTHORIZED, "Invalid or missing API key")
        return fn(*args, **kwargs)

    return wrapper
