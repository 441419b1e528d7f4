"""
fieldsync
Scheduled Jobs — the reconcilers.

The reconcilers are the retry mechanism of the sync pipeline. Each one
selects a bounded batch from the submission marker columns and processes
it sequentially; a failure on one submission is logged and the batch
continues.

Jobs:
    - coverage_registration: registers FS submissions that have no coverage_bot_id
    - coverage_status: polls unresolved coverage checks, resolves them and
      backfills the result into the FS spreadsheet
    - mirror_backfill: appends submissions whose mirror marker is still unset
"""

from __future__ import annotations

import logging
from typing import Any

from flask import current_app

from fieldsync.core.exceptions import TransientExternalError
from fieldsync.integrations import sheets_gateway as sheets_module
from fieldsync.integrations.sheets_gateway import parse_row_number
from fieldsync.models import db
from fieldsync.models.submission import MIRROR_ALL, MIRROR_FS
from fieldsync.services import coverage_service, mirror_service, row_index_service
from fieldsync.services.scheduler_service import register_job
from fieldsync.services.submission_service import (
    select_unmirrored,
    select_unregistered,
    select_unresolved,
    write_sync_log,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job 1: Unregistered-Submission Reconciler
# ═══════════════════════════════════════════════════════════════════════════

@register_job("coverage_registration", interval_setting="COVERAGE_REGISTRATION_INTERVAL_MINUTES")
def reconcile_unregistered(app) -> dict[str, Any]:
    """Register FS submissions that never reached the coverage service."""
    batch_size = app.config.get("COVERAGE_REGISTRATION_BATCH_SIZE", 10)
    submissions = select_unregistered(batch_size)
    results = {"selected": len(submissions), "registered": 0, "failed": 0}

    if not submissions:
        logger.info("No pending submissions to register")
        return results

    for submission in submissions:
        submission_id = submission.id
        try:
            coverage_service.register_submission(submission, triggered_by="scheduled")
            results["registered"] += 1
        except TransientExternalError as e:
            results["failed"] += 1
            logger.warning("Registration retry failed: %s", e, extra={"submission_id": submission_id})
        except Exception as e:
            db.session.rollback()
            results["failed"] += 1
            logger.error("Error registering submission: %s", e, extra={"submission_id": submission_id})

    logger.info("Coverage registration: %s", results)
    return results


# ═══════════════════════════════════════════════════════════════════════════
#  Job 2: Coverage-Status Reconciler
# ═══════════════════════════════════════════════════════════════════════════

def _status_cell_range(row_number: int) -> str:
    cfg = current_app.config
    sheet = cfg.get("STATUS_SHEET_NAME", "Sheet1")
    if " " in sheet and not sheet.startswith("'"):
        sheet = f"'{sheet}'"
    return f"{sheet}!{cfg.get('STATUS_RESULT_COLUMN', 'K')}{row_number}"


def prepare_row_lookup(spreadsheet_id: str, submission_ids: list[str]) -> dict[str, int]:
    """Identifier → row lookup for the status spreadsheet.

    Rows come only from one bulk read of the identifier column per run.
    Index entries are not trusted on their own: sorting, inserting or
    deleting rows by hand moves customers, so a stored row number may now
    belong to someone else. The read refreshes the index for the batch.

    Raises:
        TransientExternalError: the bulk read failed. The whole run must stop.
    """
    if not submission_ids:
        return {}

    id_range = current_app.config.get("STATUS_ID_RANGE", "Sheet1!A:A")
    result = sheets_module.sheets_gateway.read_range(spreadsheet_id, id_range)
    if not result.ok:
        write_sync_log(submission_id=None, target="status_backfill", result=result,
                       triggered_by="scheduled")
        db.session.commit()
        raise TransientExternalError("status_backfill", result.error or "identifier column read failed",
                                     result.status_code)

    column = row_index_service.refresh_from_column(
        spreadsheet_id,
        (result.data or {}).get("values") or [],
        first_row=parse_row_number(id_range) or 1,
        wanted_ids=submission_ids,
    )
    db.session.commit()
    return {sid: column[sid] for sid in submission_ids if sid in column}


def _backfill_status(spreadsheet_id: str, row_number: int, submission_id: str,
                     status: coverage_service.CoverageStatus) -> bool:
    result = sheets_module.sheets_gateway.update_range(
        spreadsheet_id, _status_cell_range(row_number), status.sheet_cells(),
    )
    write_sync_log(submission_id=submission_id, target="status_backfill", result=result,
                   triggered_by="scheduled")
    db.session.commit()
    if not result.ok:
        logger.error("Status backfill failed row=%d: %s", row_number, result.error,
                     extra={"submission_id": submission_id, "target": "status_backfill"})
    return result.ok


@register_job("coverage_status", interval_setting="COVERAGE_STATUS_INTERVAL_MINUTES")
def reconcile_coverage_status(app) -> dict[str, Any]:
    """Poll unresolved coverage checks and backfill results into the FS sheet."""
    batch_size = app.config.get("COVERAGE_STATUS_BATCH_SIZE", 10)
    submissions = select_unresolved(batch_size)
    results = {
        "selected": len(submissions),
        "resolved": 0,
        "pending": 0,
        "backfilled": 0,
        "not_in_sheet": 0,
        "failed": 0,
    }

    if not submissions:
        logger.info("No submissions require status updates")
        return results

    spreadsheet_id = app.config.get("FS_SPREADSHEET_ID", "")
    if spreadsheet_id:
        # Raises on a failed bulk read: no partial backfill without the lookup
        lookup = prepare_row_lookup(spreadsheet_id, [s.id for s in submissions])
    else:
        logger.warning("FS_SPREADSHEET_ID not configured; resolving without backfill")
        lookup = {}

    for submission in submissions:
        submission_id = submission.id
        try:
            status = coverage_service.fetch_status(submission, triggered_by="scheduled")
            if not status.is_terminal:
                results["pending"] += 1
                logger.debug("Coverage check still pending is_covered=%s", status.is_covered,
                             extra={"submission_id": submission_id})
                continue

            submission.mark_coverage_finished(
                is_covered=bool(status.is_covered),
                homepassed_id=status.homepassed_id,
                operator_remarks=status.operator_remarks,
            )
            db.session.commit()
            results["resolved"] += 1

            row_number = lookup.get(submission_id)
            if row_number is None:
                results["not_in_sheet"] += 1
                logger.debug("No sheet row yet, backfill skipped", extra={"submission_id": submission_id})
                continue
            if _backfill_status(spreadsheet_id, row_number, submission_id, status):
                results["backfilled"] += 1
        except TransientExternalError as e:
            results["failed"] += 1
            logger.warning("Status check failed: %s", e, extra={"submission_id": submission_id})
        except Exception as e:
            db.session.rollback()
            results["failed"] += 1
            logger.error("Error fetching status for submission: %s", e,
                         extra={"submission_id": submission_id})

    logger.info("Coverage status: %s", results)
    return results


# ═══════════════════════════════════════════════════════════════════════════
#  Job 3: Mirror Reconciler
# ═══════════════════════════════════════════════════════════════════════════

@register_job("mirror_backfill", interval_setting="MIRROR_INTERVAL_MINUTES")
def reconcile_mirrors(app) -> dict[str, Any]:
    """Append submissions whose spreadsheet mirror write never succeeded."""
    submissions = select_unmirrored(
        app.config.get("MIRROR_BATCH_SIZE", 10),
        grace_seconds=app.config.get("MIRROR_RECONCILE_GRACE_SECONDS", 120),
    )
    results = {"selected": len(submissions), "written": 0, "failed": 0}

    if not submissions:
        logger.info("No submissions missing a mirror row")
        return results

    for submission in submissions:
        submission_id = submission.id
        destinations = []
        if submission.all_mirror_written_at is None:
            destinations.append(MIRROR_ALL)
        if submission.has_fs and submission.fs_mirror_written_at is None:
            destinations.append(MIRROR_FS)

        for destination in destinations:
            try:
                mirror_service.write_submission(submission, destination, triggered_by="scheduled")
                results["written"] += 1
            except TransientExternalError as e:
                results["failed"] += 1
                logger.warning("Mirror retry failed: %s", e, extra={"submission_id": submission_id})
            except Exception as e:
                db.session.rollback()
                results["failed"] += 1
                logger.error("Error mirroring submission: %s", e, extra={"submission_id": submission_id})

    logger.info("Mirror backfill: %s", results)
    return results
