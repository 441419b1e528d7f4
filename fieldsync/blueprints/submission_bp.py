"""
fieldsync
Submission Blueprint — intake form, photos and stored submissions.

Endpoints:
    POST   /api/submit-form                               — Intake (multipart, rate limited)
    GET    /api/submissions/<id>/photos/<filename>        — Serve a photo (public)
    GET    /api/submissions                               — List (API key)
    GET    /api/submissions/<id>                          — Detail with sync markers (API key)
"""

import logging
import os
import uuid

from flask import Blueprint, current_app, jsonify, request, send_from_directory
from werkzeug.utils import secure_filename

from fieldsync import limiter
from fieldsync.blueprints import paginate_params
from fieldsync.core.exceptions import StoreError, ValidationError
from fieldsync.middleware.api_key import require_api_key
from fieldsync.services import photo_storage
from fieldsync.services.ingestion_service import SubmissionPayload, ingest_submission
from fieldsync.services.submission_service import get_submission, list_submissions
from fieldsync.utils.errors import E, api_error

logger = logging.getLogger(__name__)

submission_bp = Blueprint("submission", __name__, url_prefix="/api")

REQUIRED_FIELDS = (
    "salesmanName",
    "customerName",
    "customerAddress",
    "village",
    "coordinates",
    "buildingType",
)


def _submit_rate_limit():
    return current_app.config.get("SUBMIT_RATE_LIMIT", "30 per minute")


def _form_value(name):
    value = request.form.get(name)
    return value.strip() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# INTAKE
# ═════════════════════════════════════════════════════════════════════════════

@submission_bp.route("/submit-form", methods=["POST"])
@limiter.limit(_submit_rate_limit)
def submit_form():
    """Validate the intake form, store photos and ingest the submission.

    Form fields: salesmanName, customerName, customerAddress, village,
    coordinates, buildingType, operators (repeated), customerHomeNo,
    remarks, buildingPhotos (repeated file part).
    """
    missing = [name for name in REQUIRED_FIELDS if not _form_value(name)]
    operators = [op.strip() for op in request.form.getlist("operators") if op and op.strip()]
    if missing or not operators:
        if not operators:
            missing.append("operators")
        return api_error(E.VALIDATION_REQUIRED, f"Missing required fields: {', '.join(missing)}",
                         details={"missing": missing})

    try:
        photos = photo_storage.validate_photos(request.files.getlist("buildingPhotos"))
    except ValidationError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details)

    submission_id = str(uuid.uuid4())
    filenames = photo_storage.save_photos(submission_id, photos)
    payload = SubmissionPayload(
        id=submission_id,
        salesman_name=_form_value("salesmanName"),
        customer_name=_form_value("customerName"),
        customer_address=_form_value("customerAddress"),
        village=_form_value("village"),
        coordinates=_form_value("coordinates"),
        building_type=_form_value("buildingType"),
        operators=operators,
        customer_home_no=_form_value("customerHomeNo"),
        remarks=_form_value("remarks"),
        photo_filenames=filenames,
    )

    try:
        submission = ingest_submission(payload)
    except StoreError as exc:
        photo_storage.discard_photos(submission_id)
        logger.error("Intake failed: %s", exc, extra={"submission_id": submission_id})
        return api_error(E.DATABASE, "Server error processing submission")

    return jsonify({
        "success": True,
        "submissionId": submission.id,
        "timestamp": payload.created_at.isoformat(),
    })


@submission_bp.route("/submissions/<submission_id>/photos/<path:filename>", methods=["GET"])
def get_photo(submission_id, filename):
    """Serve one stored photo; this is the target of the public photo URLs."""
    if not photo_storage.is_allowed(filename):
        return api_error(E.VALIDATION_INVALID, "File type not allowed", status=403)
    name = os.path.basename(filename)
    directory = photo_storage.submission_dir(submission_id)
    if secure_filename(submission_id) != submission_id or not os.path.isfile(os.path.join(directory, name)):
        return api_error(E.NOT_FOUND, "File not found")
    return send_from_directory(directory, name)


# ═════════════════════════════════════════════════════════════════════════════
# STORED SUBMISSIONS
# ═════════════════════════════════════════════════════════════════════════════

@submission_bp.route("/submissions", methods=["GET"])
@require_api_key
def list_all():
    """List submissions, newest first.

    Query params:
        limit, offset — pagination
    """
    limit, offset = paginate_params()
    items, total = list_submissions(limit=limit, offset=offset)
    return jsonify({"items": [s.to_dict() for s in items], "total": total})


@submission_bp.route("/submissions/<submission_id>", methods=["GET"])
@require_api_key
def get_one(submission_id):
    """Submission detail including completion markers."""
    return jsonify(get_submission(submission_id).to_dict())
