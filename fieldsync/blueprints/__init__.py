"""
fieldsync
Blueprint registry.
"""

from flask import request


def paginate_params(default_limit=100, max_limit=500):
    """Read limit/offset pagination params from the query string.

    Query params:
        limit  — max items (default 100, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (limit, offset)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return max(limit, 1), offset
