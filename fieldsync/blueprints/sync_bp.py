"""
fieldsync
Sync Operations Blueprint — reconciler jobs and per-submission sync state.

All endpoints require the X-API-Key header.

Endpoints:
    GET    /api/sync/jobs                           — Registered jobs + run history
    GET    /api/sync/jobs/<name>                    — One job
    POST   /api/sync/jobs/<name>/trigger            — Run a job now
    PATCH  /api/sync/jobs/<name>/toggle             — Enable / disable timer runs
    GET    /api/sync/submissions/<id>               — Markers + sync log
    POST   /api/sync/submissions/<id>/fanout        — Re-run the fan-out for one submission
"""

import logging

from flask import Blueprint, jsonify, request

from fieldsync.middleware.api_key import require_api_key
from fieldsync.services.ingestion_service import fanout_in_flight, run_fanout
from fieldsync.services.scheduler_service import SchedulerService
from fieldsync.services.submission_service import get_submission, list_sync_logs
from fieldsync.utils.errors import E, api_error

logger = logging.getLogger(__name__)

sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


# ═══════════════════════════════════════════════════════════════════════════
#  SCHEDULED JOBS
# ═══════════════════════════════════════════════════════════════════════════

@sync_bp.route("/jobs", methods=["GET"])
@require_api_key
def list_jobs():
    """List all reconciler jobs with their status."""
    jobs = SchedulerService.list_jobs()
    return jsonify({"jobs": jobs, "total": len(jobs)})


@sync_bp.route("/jobs/<job_name>", methods=["GET"])
@require_api_key
def get_job(job_name):
    status = SchedulerService.get_job_status(job_name)
    if not status:
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    return jsonify(status)


@sync_bp.route("/jobs/<job_name>/trigger", methods=["POST"])
@require_api_key
def trigger_job(job_name):
    """Manually trigger a reconciler job."""
    result = SchedulerService.run_job(job_name)
    if result.get("status") == "error" and "Unknown job" in (result.get("error") or ""):
        return api_error(E.NOT_FOUND, result["error"])
    return jsonify(result)


@sync_bp.route("/jobs/<job_name>/toggle", methods=["PATCH"])
@require_api_key
def toggle_job(job_name):
    """Enable or disable timer runs of a job."""
    data = request.get_json(silent=True) or {}
    enabled = data.get("enabled")
    if enabled is None:
        return api_error(E.VALIDATION_REQUIRED, "'enabled' field is required (true/false)")

    SchedulerService.ensure_jobs_registered()
    result = SchedulerService.toggle_job(job_name, bool(enabled))
    if not result:
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    logger.info("Job %s %s", job_name, "enabled" if enabled else "disabled",
                extra={"job_name": job_name})
    return jsonify(result)


# ═══════════════════════════════════════════════════════════════════════════
#  SUBMISSION SYNC STATE
# ═══════════════════════════════════════════════════════════════════════════

@sync_bp.route("/submissions/<submission_id>", methods=["GET"])
@require_api_key
def submission_sync_state(submission_id):
    """Markers, coverage result and the most recent sync log entries."""
    submission = get_submission(submission_id)
    limit = request.args.get("limit", 50, type=int)
    return jsonify({
        "submission": submission.to_dict(),
        "coverage": {
            "status": submission.coverage_status,
            "homepassed_id": submission.homepassed_id,
            "operator_remarks": submission.operator_remarks,
            "resolved_at": submission.coverage_resolved_at.isoformat()
            if submission.coverage_resolved_at else None,
        },
        "logs": [log.to_dict() for log in list_sync_logs(submission_id, limit=limit)],
    })


@sync_bp.route("/submissions/<submission_id>/fanout", methods=["POST"])
@require_api_key
def redrive_fanout(submission_id):
    """Run the pending fan-out steps again, synchronously. Completed steps are skipped."""
    if fanout_in_flight(submission_id):
        return api_error(E.CONFLICT_DUPLICATE, "Fan-out already running for this submission")
    summary = run_fanout(submission_id, triggered_by="manual")
    return jsonify({"submission_id": submission_id, "steps": summary})
