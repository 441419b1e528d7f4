"""
Ingestion Pipeline.

    store write (one transaction) ─┬─> mirror "all"        → all_mirror_written_at
                                   ├─> mirror "fs"   (FS)  → fs_mirror_written_at
                                   └─> coverage bot  (FS)  → coverage_bot_id

The caller gets its answer as soon as the store transaction commits. The
fan-out runs afterwards, outside that transaction, on a background thread
(SYNC_FANOUT_MODE="thread") or in the calling thread ("inline", used by
tests and the CLI). The three steps are independent: a failure is logged
and left for the reconcilers; nothing is retried here and nothing is
rolled back on the committed submission.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from flask import Flask, current_app

from fieldsync.core.exceptions import TransientExternalError, ValidationError
from fieldsync.models import db
from fieldsync.models.submission import MIRROR_ALL, MIRROR_FS, Submission
from fieldsync.services import coverage_service, mirror_service
from fieldsync.services.submission_service import get_submission, insert_submission

logger = logging.getLogger(__name__)

# Running fan-out threads (submission_id → Thread); one per submission at a time
_running_fanouts: dict[str, threading.Thread] = {}
_fanouts_lock = threading.Lock()


def fanout_in_flight(submission_id: str) -> bool:
    """True while a background fan-out for this submission is still running."""
    thread = _running_fanouts.get(submission_id)
    return thread is not None and thread.is_alive()


@dataclass
class SubmissionPayload:
    """A validated intake submission, photos already saved to the upload area."""

    salesman_name: str
    customer_name: str
    customer_address: str
    village: str
    coordinates: str
    building_type: str
    operators: list[str]
    customer_home_no: str | None = None
    remarks: str | None = None
    photo_filenames: list[str] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        # Preserve order, drop blanks and duplicates
        seen: list[str] = []
        for op in self.operators or []:
            op = (op or "").strip()
            if op and op not in seen:
                seen.append(op)
        self.operators = seen
        if not self.operators:
            raise ValidationError("At least one operator is required",
                                  details={"operators": "required"})


def ingest_submission(payload: SubmissionPayload) -> Submission:
    """Persist a submission, then start its fan-out without waiting for it.

    Raises:
        StoreError: the store write failed; nothing was persisted and no
                    fan-out is started.
    """
    submission = insert_submission(payload)
    dispatch_fanout(submission.id)
    return submission


def dispatch_fanout(submission_id: str) -> dict | None:
    """Start the post-commit fan-out according to SYNC_FANOUT_MODE.

    Returns:
        The step summary when run inline, None when handed to a thread or
        when a fan-out for the submission is already running.
    """
    mode = current_app.config.get("SYNC_FANOUT_MODE", "thread")
    if mode == "inline":
        return run_fanout(submission_id)

    app = current_app._get_current_object()
    with _fanouts_lock:
        if fanout_in_flight(submission_id):
            logger.info("Fan-out already running, not dispatched again",
                        extra={"submission_id": submission_id})
            return None
        t = threading.Thread(
            target=_run_fanout_in_background,
            args=(app, submission_id),
            name=f"fanout-{submission_id[:8]}",
            daemon=True,
        )
        _running_fanouts[submission_id] = t
        t.start()
    return None


def _run_fanout_in_background(app: Flask, submission_id: str) -> None:
    with app.app_context():
        try:
            run_fanout(submission_id)
        except Exception:
            logger.exception("Fan-out crashed", extra={"submission_id": submission_id})
        finally:
            with _fanouts_lock:
                if _running_fanouts.get(submission_id) is threading.current_thread():
                    del _running_fanouts[submission_id]


def _run_step(name: str, submission_id: str, fn) -> str:
    """Run one fan-out step in isolation. Returns "ok", "failed" or "skipped"."""
    try:
        fn()
        return "ok"
    except TransientExternalError as exc:
        logger.warning("Fan-out step %s failed, left for reconciliation: %s", name, exc,
                       extra={"submission_id": submission_id, "target": name})
    except ValidationError as exc:
        logger.error("Fan-out step %s rejected: %s", name, exc,
                     extra={"submission_id": submission_id, "target": name})
    except Exception:
        db.session.rollback()
        logger.exception("Fan-out step %s crashed", name,
                         extra={"submission_id": submission_id, "target": name})
    return "failed"


def run_fanout(submission_id: str, *, triggered_by: str = "ingestion") -> dict:
    """Mirror and register one stored submission.

    Returns:
        {"mirror_all": ..., "mirror_fs": ..., "coverage_register": ...}
        with values "ok", "failed" or "skipped". Steps whose marker is
        already set, and FS steps of non-FS submissions, are skipped.
    """
    submission = get_submission(submission_id)
    summary = {"mirror_all": "skipped", "mirror_fs": "skipped", "coverage_register": "skipped"}

    if submission.all_mirror_written_at is None:
        summary["mirror_all"] = _run_step(
            "mirror_all", submission_id,
            lambda: mirror_service.write_submission(submission, MIRROR_ALL, triggered_by=triggered_by),
        )
    if submission.has_fs:
        if submission.fs_mirror_written_at is None:
            summary["mirror_fs"] = _run_step(
                "mirror_fs", submission_id,
                lambda: mirror_service.write_submission(submission, MIRROR_FS, triggered_by=triggered_by),
            )
        if not submission.is_registered:
            summary["coverage_register"] = _run_step(
                "coverage_register", submission_id,
                lambda: coverage_service.register_submission(submission, triggered_by=triggered_by),
            )

    logger.info("Fan-out finished: %s", summary, extra={"submission_id": submission_id})
    return summary
