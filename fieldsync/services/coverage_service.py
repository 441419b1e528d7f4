"""
Coverage Registrar and status query.

Sends FS submissions to the external coverage-check bot and records the
returned correlation id (``coverage_bot_id``). The bot resolves checks
asynchronously; `fetch_status` polls one check and `is_terminal` decides
whether its answer is final.

Coverage sub-lifecycle per submission:
    unregistered → registered (coverage_bot_id set) → resolved (coverage_bot_finished)

All outbound HTTP: delegated to `fieldsync.integrations.coverage_gateway`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app

from fieldsync.core.exceptions import TransientExternalError, ValidationError
from fieldsync.integrations import coverage_gateway as coverage_module
from fieldsync.models import db
from fieldsync.models.submission import COVERED, NOT_COVERED, Submission
from fieldsync.services.helpers.locality import Coordinates, Locality
from fieldsync.services.helpers.photo_urls import build_photo_urls
from fieldsync.services.submission_service import write_sync_log

logger = logging.getLogger(__name__)

RUKO = "ruko"


@dataclass(frozen=True)
class CoverageStatus:
    """Answer of the coverage bot for one check."""

    is_covered: bool | None
    homepassed_id: str | None = None
    operator_remarks: str | None = None

    @property
    def is_terminal(self) -> bool:
        """Not covered is final; covered is final only once a homepassed id exists."""
        if self.is_covered is None:
            return False
        if self.is_covered:
            return bool(self.homepassed_id)
        return True

    @property
    def label(self) -> str:
        return COVERED if self.is_covered else NOT_COVERED

    def sheet_cells(self) -> list[str]:
        return [self.label, self.homepassed_id or "", self.operator_remarks or ""]


def _parse_is_covered(value) -> bool | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "covered"):
        return True
    if text in ("0", "false", "no", "not covered"):
        return False
    return None


def parse_status(data: dict | None) -> CoverageStatus:
    """Read the ``data`` envelope of a status response."""
    content = (data or {}).get("data") or {}
    homepassed = content.get("homepassed_id")
    remarks = content.get("operator_remarks")
    return CoverageStatus(
        is_covered=_parse_is_covered(content.get("is_covered")),
        homepassed_id=str(homepassed).strip() if homepassed not in (None, "") else None,
        operator_remarks=str(remarks) if remarks not in (None, "") else None,
    )


# ═════════════════════════════════════════════════════════════════════════════
# Registration
# ═════════════════════════════════════════════════════════════════════════════


def build_payload(submission: Submission) -> dict:
    """Normalised register payload.

    Locality and coordinate parts that the submission lacks are sent as
    empty strings and reported in the log instead of failing the call.
    """
    locality = Locality(
        postal_code=submission.postal_code,
        village=submission.village_name,
        district=submission.district,
        city=submission.city,
        province=submission.province,
        raw=submission.village or "",
    )
    if not any(locality.as_columns().values()) and submission.village:
        # Rows written before parsed columns existed
        locality = Locality.parse(submission.village)
    coords = Coordinates.parse(submission.coordinates)

    missing = locality.missing + coords.missing
    if missing:
        logger.warning("Coverage payload has empty fields: %s", ",".join(missing),
                       extra={"submission_id": submission.id})

    residence_type = RUKO if (submission.building_type or "").strip().lower() == RUKO else "perumahan"
    residence_name = RUKO if residence_type == RUKO else "rumah"

    return {
        "operator": current_app.config.get("COVERAGE_OPERATOR", "fiberstar"),
        "customer_name": submission.customer_name,
        "street_name": submission.customer_address,
        "home_no": submission.customer_home_no or "",
        "latitude": coords.latitude or "",
        "longitude": coords.longitude or "",
        "province": locality.province or "",
        "city": locality.city or "",
        "subdistrict": locality.district or "",
        "village": locality.village or "",
        "postal_code": locality.postal_code or "",
        "residence_type": residence_type,
        "residence_name": residence_name,
        "remarks": submission.remarks or "",
        "file": ", ".join(build_photo_urls(submission.id, submission.photo_filenames)),
    }


def _extract_bot_id(data) -> str | None:
    items = (data or {}).get("data") if isinstance(data, dict) else None
    if not isinstance(items, list) or not items:
        return None
    first = items[0] if isinstance(items[0], dict) else {}
    bot_id = first.get("id")
    return str(bot_id) if bot_id not in (None, "") else None


def register_submission(submission: Submission, *, triggered_by: str = "ingestion") -> str:
    """Register a submission with the coverage bot and record its id.

    Returns:
        The coverage correlation id.

    Raises:
        ValidationError: submission has no FS operator.
        TransientExternalError: HTTP/transport failure or response without id.
    """
    if not submission.has_fs:
        raise ValidationError(
            f"Submission {submission.id} has no FS operator; coverage check not applicable",
            details={"operators": submission.operators},
        )
    if submission.is_registered:
        logger.info("Already registered as %s", submission.coverage_bot_id,
                    extra={"submission_id": submission.id})
        return submission.coverage_bot_id

    result = coverage_module.coverage_gateway.register(build_payload(submission))
    write_sync_log(submission_id=submission.id, target="coverage_register",
                   result=result, triggered_by=triggered_by)

    bot_id = _extract_bot_id(result.data) if result.ok and result.status_code in (200, 201) else None
    if bot_id is None:
        db.session.commit()
        error = result.error or f"HTTP {result.status_code}: no check id in response"
        logger.error("Coverage registration failed: %s", error,
                     extra={"submission_id": submission.id, "target": "coverage_register"})
        raise TransientExternalError("coverage_register", error, result.status_code)

    submission.mark_registered(bot_id)
    db.session.commit()
    logger.info("Coverage check registered bot_id=%s", bot_id,
                extra={"submission_id": submission.id, "duration_ms": result.duration_ms})
    return bot_id


# ═════════════════════════════════════════════════════════════════════════════
# Status
# ═════════════════════════════════════════════════════════════════════════════


def fetch_status(submission: Submission, *, triggered_by: str = "scheduled") -> CoverageStatus:
    """Poll the coverage bot for one registered submission.

    Raises:
        ValidationError: submission is not registered.
        TransientExternalError: HTTP/transport failure.
    """
    if not submission.is_registered:
        raise ValidationError(f"Submission {submission.id} is not registered with the coverage service")

    result = coverage_module.coverage_gateway.get_status(submission.coverage_bot_id)
    write_sync_log(submission_id=submission.id, target="coverage_status",
                   result=result, triggered_by=triggered_by)
    db.session.commit()
    if not result.ok:
        raise TransientExternalError("coverage_status", result.error or "unknown error", result.status_code)
    return parse_status(result.data)
