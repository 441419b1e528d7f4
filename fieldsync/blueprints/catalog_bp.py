"""
fieldsync
Catalog Blueprint — lookup lists feeding the intake form.

Endpoints:
    GET    /api/salesman              — All salesmen names
    POST   /api/salesman              — Add a salesman (API key)
    GET    /api/salesman/search       — Search salesmen (?query=)
    GET    /api/building-types        — All building types
    POST   /api/building-types        — Add a building type (API key)
    GET    /api/villages/search       — Search localities (?query=)
"""

import logging

from flask import Blueprint, jsonify, request

from fieldsync.core.exceptions import ValidationError
from fieldsync.middleware.api_key import require_api_key
from fieldsync.services import catalog_service
from fieldsync.services.catalog_service import DuplicateEntryError
from fieldsync.utils.errors import E, api_error

logger = logging.getLogger(__name__)

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


# ═════════════════════════════════════════════════════════════════════════════
# SALESMEN
# ═════════════════════════════════════════════════════════════════════════════

@catalog_bp.route("/salesman", methods=["GET"])
def list_salesmen():
    return jsonify(catalog_service.list_salesmen())


@catalog_bp.route("/salesman/search", methods=["GET"])
def search_salesmen():
    return jsonify(catalog_service.search_salesmen(request.args.get("query")))


@catalog_bp.route("/salesman", methods=["POST"])
@require_api_key
def add_salesman():
    data = request.get_json(silent=True) or {}
    try:
        names = catalog_service.add_salesman(data.get("name"))
    except DuplicateEntryError as exc:
        return api_error(E.CONFLICT_DUPLICATE, str(exc))
    except ValidationError as exc:
        return api_error(E.VALIDATION_REQUIRED, str(exc), details=exc.details)
    return jsonify({"success": True, "salesmanData": names}), 201


# ═════════════════════════════════════════════════════════════════════════════
# BUILDING TYPES
# ═════════════════════════════════════════════════════════════════════════════

@catalog_bp.route("/building-types", methods=["GET"])
def list_building_types():
    return jsonify(catalog_service.list_building_types())


@catalog_bp.route("/building-types", methods=["POST"])
@require_api_key
def add_building_type():
    data = request.get_json(silent=True) or {}
    try:
        types = catalog_service.add_building_type(data.get("type"))
    except DuplicateEntryError as exc:
        return api_error(E.CONFLICT_DUPLICATE, str(exc))
    except ValidationError as exc:
        return api_error(E.VALIDATION_REQUIRED, str(exc), details=exc.details)
    return jsonify({"success": True, "buildingTypes": types}), 201


# ═════════════════════════════════════════════════════════════════════════════
# VILLAGES
# ═════════════════════════════════════════════════════════════════════════════

@catalog_bp.route("/villages/search", methods=["GET"])
def search_villages():
    """Localities are stored as "postal code,village,district,city,province"."""
    return jsonify(catalog_service.search_villages(request.args.get("query")))
