"""
Spreadsheet Mirror Writer.

Appends one row per submission to a mirror spreadsheet and stamps the
matching completion marker on the submission:

  destination "all" → ALL_SPREADSHEET_ID / ALL_SHEET_RANGE → all_mirror_written_at
  destination "fs"  → FS_SPREADSHEET_ID  / FS_SHEET_RANGE  → fs_mirror_written_at

Appends are not idempotent. A retry after a lost response produces a
duplicate row; duplicates are accepted, not deduplicated.

All outbound HTTP: delegated to `fieldsync.integrations.sheets_gateway`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from flask import current_app

from fieldsync.core.exceptions import TransientExternalError, ValidationError
from fieldsync.integrations import sheets_gateway as sheets_module
from fieldsync.integrations.sheets_gateway import parse_row_number
from fieldsync.models import db
from fieldsync.models.submission import MIRROR_ALL, MIRROR_DESTINATIONS, MIRROR_FS, Submission
from fieldsync.services import row_index_service
from fieldsync.services.helpers.photo_urls import build_photo_urls
from fieldsync.services.submission_service import write_sync_log

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def destination_settings(destination: str) -> tuple[str, str]:
    """Return (spreadsheet_id, append range) for a mirror destination."""
    cfg = current_app.config
    if destination == MIRROR_ALL:
        return cfg.get("ALL_SPREADSHEET_ID", ""), cfg.get("ALL_SHEET_RANGE", "Sheet1!A:L")
    if destination == MIRROR_FS:
        return cfg.get("FS_SPREADSHEET_ID", ""), cfg.get("FS_SHEET_RANGE", "Sheet1!A:J")
    raise ValidationError(f"Unknown mirror destination: {destination}",
                          details={"destination": sorted(MIRROR_DESTINATIONS)})


def localized_timestamp(value: datetime | None) -> str:
    if value is None:
        return ""
    if value.tzinfo is None:
        # SQLite hands back naive datetimes; they are stored as UTC
        value = value.replace(tzinfo=timezone.utc)
    tz = ZoneInfo(current_app.config.get("MIRROR_TIMEZONE", "UTC"))
    return value.astimezone(tz).strftime(TIMESTAMP_FORMAT)


def build_row(submission: Submission, destination: str) -> list[str]:
    """Project a submission onto the mirror column layout.

    Columns: id, time, customer, address + locality, house no, coordinates,
    salesperson, building type, photo URLs, remarks[, operators (all only)].
    """
    address = ", ".join(part for part in (submission.customer_address, submission.village) if part)
    row = [
        submission.id,
        localized_timestamp(submission.created_at),
        submission.customer_name,
        address,
        submission.customer_home_no or "",
        submission.coordinates,
        submission.salesman_name,
        submission.building_type,
        "\n".join(build_photo_urls(submission.id, submission.photo_filenames)),
        submission.remarks or "",
    ]
    if destination == MIRROR_ALL:
        row.append(", ".join(submission.operators or []))
    return row


def write_submission(
    submission: Submission,
    destination: str,
    *,
    triggered_by: str = "ingestion",
) -> int | None:
    """Append the submission to a mirror and stamp its marker.

    Returns:
        Row number the append landed on, or None if the response did not say.

    Raises:
        ValidationError: FS destination for a submission without "FS".
        TransientExternalError: any spreadsheet failure; marker left unset.
    """
    if destination == MIRROR_FS and not submission.has_fs:
        raise ValidationError(
            f"Submission {submission.id} has no FS operator; not mirrored to the FS sheet",
            details={"operators": submission.operators},
        )
    spreadsheet_id, a1_range = destination_settings(destination)
    target = f"mirror_{destination}"

    result = sheets_module.sheets_gateway.append_row(
        spreadsheet_id, a1_range, build_row(submission, destination),
    )
    write_sync_log(submission_id=submission.id, target=target, result=result,
                   triggered_by=triggered_by)

    if not result.ok:
        db.session.commit()
        logger.error("Mirror append failed: %s", result.error,
                     extra={"submission_id": submission.id, "target": target})
        raise TransientExternalError(target, result.error or "unknown error", result.status_code)

    updated_range = ((result.data or {}).get("updates") or {}).get("updatedRange")
    row_number = parse_row_number(updated_range)
    submission.mark_mirror_written(destination)
    if row_number is not None:
        row_index_service.record_row(spreadsheet_id, submission.id, row_number)
    db.session.commit()

    logger.info("Mirror row appended range=%s", updated_range,
                extra={"submission_id": submission.id, "target": target,
                       "duration_ms": result.duration_ms})
    return row_number
