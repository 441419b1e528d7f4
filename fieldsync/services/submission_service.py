"""
Submission Store service.

Transactional insert, lookups by id, marker updates and the reconciler
selection queries. The marker columns on ``submissions`` are the work
queue of the sync pipeline: every reconciler selects its batch here.

All sync bookkeeping (SyncLog rows) is written through `write_sync_log`,
which flushes but does NOT commit; the caller owns the transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError

from fieldsync.core.exceptions import NotFoundError, StoreError
from fieldsync.integrations.base import GatewayResult
from fieldsync.models import db
from fieldsync.models.submission import FS_OPERATOR, Submission, SubmissionPhoto
from fieldsync.models.sync import SyncLog
from fieldsync.services.helpers.locality import Locality

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Writes
# ═════════════════════════════════════════════════════════════════════════════


def insert_submission(payload) -> Submission:
    """Insert a submission and its photos in one transaction.

    Args:
        payload: SubmissionPayload (already validated by the HTTP layer).

    Returns:
        The committed Submission.

    Raises:
        StoreError: on any database failure; the transaction is rolled back
                    and neither the submission nor its photos exist.
    """
    locality = Locality.parse(payload.village)
    operators = list(payload.operators)
    submission = Submission(
        id=payload.id,
        created_at=payload.created_at,
        salesman_name=payload.salesman_name,
        customer_name=payload.customer_name,
        customer_address=payload.customer_address,
        customer_home_no=payload.customer_home_no,
        village=payload.village,
        coordinates=payload.coordinates,
        building_type=payload.building_type,
        operators=operators,
        fs_selected=FS_OPERATOR in operators,
        remarks=payload.remarks,
        **locality.as_columns(),
    )
    submission.photos = [SubmissionPhoto(filename=name) for name in payload.photo_filenames]

    try:
        db.session.add(submission)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Submission insert failed: %s", exc, extra={"submission_id": payload.id})
        raise StoreError(f"Could not store submission {payload.id}") from exc

    if not locality.is_complete:
        logger.warning(
            "Submission stored with incomplete locality, missing=%s",
            ",".join(locality.missing), extra={"submission_id": submission.id},
        )
    logger.info("Submission stored photos=%d operators=%s",
                len(payload.photo_filenames), operators,
                extra={"submission_id": submission.id})
    return submission


def write_sync_log(
    *,
    submission_id: str | None,
    target: str,
    result: GatewayResult,
    triggered_by: str = "ingestion",
) -> SyncLog:
    """Create and flush a SyncLog entry from a GatewayResult. Does NOT commit."""
    fields = result.to_log_dict()
    log = SyncLog(
        submission_id=submission_id,
        target=target,
        status=fields["status"],
        http_status_code=fields["http_status_code"],
        error_message=fields["error_message"],
        duration_ms=fields["duration_ms"],
        payload_hash=fields["payload_hash"],
        triggered_by=triggered_by,
    )
    db.session.add(log)
    db.session.flush()
    return log


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════


def get_submission(submission_id: str) -> Submission:
    """Return a submission by id or raise NotFoundError."""
    submission = db.session.get(Submission, submission_id)
    if submission is None:
        raise NotFoundError(resource="Submission", resource_id=submission_id)
    return submission


def list_submissions(limit: int = 100, offset: int = 0) -> tuple[list[Submission], int]:
    """Newest first, with total count."""
    query = Submission.query.order_by(Submission.created_at.desc())
    total = query.count()
    return query.limit(limit).offset(offset).all(), total


def list_sync_logs(submission_id: str, limit: int = 50) -> list[SyncLog]:
    stmt = (
        select(SyncLog)
        .where(SyncLog.submission_id == submission_id)
        .order_by(SyncLog.created_at.desc(), SyncLog.id.desc())
        .limit(limit)
    )
    return list(db.session.execute(stmt).scalars())


# ── Reconciler selections ────────────────────────────────────────────────────


def select_unregistered(limit: int) -> list[Submission]:
    """FS submissions not yet registered with the coverage service, oldest first."""
    stmt = (
        select(Submission)
        .where(
            Submission.fs_selected.is_(True),
            or_(Submission.coverage_bot_id.is_(None), Submission.coverage_bot_id == ""),
        )
        .order_by(Submission.created_at.asc())
        .limit(limit)
    )
    return list(db.session.execute(stmt).scalars())


def select_unresolved(limit: int) -> list[Submission]:
    """Registered submissions whose coverage check has not resolved, oldest first."""
    stmt = (
        select(Submission)
        .where(
            Submission.coverage_bot_id.is_not(None),
            Submission.coverage_bot_id != "",
            Submission.coverage_bot_finished.is_(False),
        )
        .order_by(Submission.created_at.asc())
        .limit(limit)
    )
    return list(db.session.execute(stmt).scalars())


def select_unmirrored(limit: int, grace_seconds: int = 0) -> list[Submission]:
    """Submissions missing a mirror marker, created before the grace cut-off."""
    cutoff = datetime.now(timezone.utc) - timedelta(seconds=grace_seconds)
    stmt = (
        select(Submission)
        .where(
            Submission.created_at <= cutoff,
            or_(
                Submission.all_mirror_written_at.is_(None),
                (Submission.fs_selected.is_(True)) & (Submission.fs_mirror_written_at.is_(None)),
            ),
        )
        .order_by(Submission.created_at.asc())
        .limit(limit)
    )
    return list(db.session.execute(stmt).scalars())
