"""
fieldsync
Synchronization bookkeeping models.

Models:
    - MirrorRow: submission id → spreadsheet row number index
    - SyncLog: audit row for every external call made by the sync pipeline
"""

from datetime import datetime, timezone

from fieldsync.models import db

SYNC_TARGETS = {
    "mirror_all",
    "mirror_fs",
    "coverage_register",
    "coverage_status",
    "status_backfill",
}
SYNC_STATUSES = {"success", "error"}
TRIGGER_SOURCES = {"ingestion", "scheduled", "manual"}


class MirrorRow(db.Model):
    """
    Row location of a submission inside a mirror spreadsheet.

    Maintained incrementally from the ``updatedRange`` of each append, and
    repaired from a bulk identifier-column read when a lookup misses.
    """

    __tablename__ = "mirror_rows"
    __table_args__ = (
        db.UniqueConstraint("spreadsheet_id", "submission_id", name="uq_mirror_row_sheet_submission"),
    )

    id = db.Column(db.Integer, primary_key=True)
    spreadsheet_id = db.Column(db.String(128), nullable=False, index=True)
    submission_id = db.Column(db.String(36), nullable=False, index=True)
    row_number = db.Column(db.Integer, nullable=False, comment="1-based sheet row")
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "spreadsheet_id": self.spreadsheet_id,
            "submission_id": self.submission_id,
            "row_number": self.row_number,
        }

    def __repr__(self):
        return f"<MirrorRow {self.spreadsheet_id}:{self.submission_id}@{self.row_number}>"


class SyncLog(db.Model):
    """Outbound sync audit trail (one row per external call)."""

    __tablename__ = "sync_logs"

    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(db.String(36), nullable=True, index=True)
    target = db.Column(db.String(30), nullable=False,
                       comment="mirror_all, mirror_fs, coverage_register, coverage_status, status_backfill")
    status = db.Column(db.String(10), nullable=False, comment="success, error")
    http_status_code = db.Column(db.Integer, nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    duration_ms = db.Column(db.Integer, nullable=True)
    payload_hash = db.Column(db.String(64), nullable=True)
    triggered_by = db.Column(db.String(20), default="ingestion",
                             comment="ingestion, scheduled, manual")
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc), index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "submission_id": self.submission_id,
            "target": self.target,
            "status": self.status,
            "http_status_code": self.http_status_code,
            "error_message": self.error_message,
            "duration_ms": self.duration_ms,
            "payload_hash": self.payload_hash,
            "triggered_by": self.triggered_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<SyncLog {self.target} {self.submission_id} [{self.status}]>"
