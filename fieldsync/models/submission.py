"""
fieldsync
Submission models — the authoritative intake record and its completion markers.

Models:
    - Submission: one customer intake record (immutable fields + sync markers)
    - SubmissionPhoto: photo filename owned by a submission

Completion markers are monotonic: once set they are never unset. The
``mark_*`` methods are the only supported way to stamp them; they enforce
the FS-only invariants and make re-stamping a no-op.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import validates

from fieldsync.core.exceptions import ValidationError
from fieldsync.models import db

FS_OPERATOR = "FS"

MIRROR_ALL = "all"
MIRROR_FS = "fs"
MIRROR_DESTINATIONS = (MIRROR_ALL, MIRROR_FS)

COVERED = "Covered"
NOT_COVERED = "Not Covered"


def _utcnow():
    return datetime.now(timezone.utc)


class Submission(db.Model):
    """
    Customer intake record collected in the field.

    Identity is a UUID4 string generated at ingestion time. The raw
    comma-joined locality string is kept verbatim in ``village``; its parsed
    components are stored in named columns at ingestion time.
    """

    __tablename__ = "submissions"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    salesman_name = db.Column(db.String(255), nullable=False)
    customer_name = db.Column(db.String(255), nullable=False)
    customer_address = db.Column(db.Text, nullable=False)
    customer_home_no = db.Column(db.String(50), nullable=True)
    village = db.Column(db.Text, nullable=False,
                        comment="Raw locality: postal code,village,district,city,province")
    postal_code = db.Column(db.String(20), nullable=True)
    village_name = db.Column(db.String(255), nullable=True)
    district = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(255), nullable=True)
    province = db.Column(db.String(255), nullable=True)
    coordinates = db.Column(db.String(255), nullable=False, comment="lat,lon")
    building_type = db.Column(db.String(255), nullable=False)
    operators = db.Column(db.JSON, nullable=False, default=list)
    fs_selected = db.Column(db.Boolean, nullable=False, default=False, index=True,
                            comment="Denormalised '\"FS\" in operators' for reconciler selection")
    remarks = db.Column(db.Text, nullable=True)

    # ── Completion markers ───────────────────────────────────────────────
    all_mirror_written_at = db.Column(db.DateTime(timezone=True), nullable=True)
    fs_mirror_written_at = db.Column(db.DateTime(timezone=True), nullable=True)
    coverage_bot_id = db.Column(db.String(64), nullable=True, index=True,
                                comment="Coverage service correlation id; null = unregistered")
    coverage_bot_finished = db.Column(db.Boolean, nullable=False, default=False)

    # Coverage result, recorded when the check resolves
    coverage_status = db.Column(db.String(20), nullable=True, comment="Covered, Not Covered")
    homepassed_id = db.Column(db.String(100), nullable=True)
    operator_remarks = db.Column(db.Text, nullable=True)
    coverage_resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    photos = db.relationship(
        "SubmissionPhoto", backref="submission", lazy="selectin",
        cascade="all, delete-orphan", order_by="SubmissionPhoto.id",
    )

    # ── Invariants ───────────────────────────────────────────────────────

    @validates("all_mirror_written_at", "fs_mirror_written_at", "coverage_bot_id")
    def _validate_marker(self, key, value):
        current = getattr(self, key)
        if current and not value:
            raise ValidationError(f"{key} cannot be unset once recorded",
                                  details={key: "monotonic"})
        return value

    @validates("coverage_bot_finished")
    def _validate_finished(self, key, value):
        if self.coverage_bot_finished and not value:
            raise ValidationError("coverage_bot_finished cannot go back to false",
                                  details={key: "monotonic"})
        return bool(value)

    @property
    def has_fs(self) -> bool:
        return FS_OPERATOR in (self.operators or [])

    @property
    def photo_filenames(self) -> list[str]:
        return [p.filename for p in self.photos]

    @property
    def is_registered(self) -> bool:
        return bool(self.coverage_bot_id)

    def mirror_marker(self, destination: str):
        if destination == MIRROR_ALL:
            return self.all_mirror_written_at
        if destination == MIRROR_FS:
            return self.fs_mirror_written_at
        raise ValidationError(f"Unknown mirror destination: {destination}")

    def mark_mirror_written(self, destination: str, when: datetime | None = None) -> bool:
        """Stamp a mirror marker. Returns False if it was already set."""
        if destination == MIRROR_FS and not self.has_fs:
            raise ValidationError(
                f"Submission {self.id} has no FS operator; FS mirror marker not allowed",
                details={"operators": self.operators},
            )
        if self.mirror_marker(destination) is not None:
            return False
        when = when or _utcnow()
        if destination == MIRROR_ALL:
            self.all_mirror_written_at = when
        else:
            self.fs_mirror_written_at = when
        return True

    def mark_registered(self, bot_id: str) -> bool:
        """Record the coverage correlation id. Returns False if already recorded."""
        if not self.has_fs:
            raise ValidationError(
                f"Submission {self.id} has no FS operator; coverage registration not allowed",
                details={"operators": self.operators},
            )
        if not bot_id:
            raise ValidationError("coverage_bot_id must not be empty")
        if self.coverage_bot_id:
            if self.coverage_bot_id != str(bot_id):
                raise ValidationError(
                    f"Submission {self.id} already registered as {self.coverage_bot_id}",
                    details={"coverage_bot_id": self.coverage_bot_id},
                )
            return False
        self.coverage_bot_id = str(bot_id)
        return True

    def mark_coverage_finished(
        self,
        *,
        is_covered: bool,
        homepassed_id: str | None = None,
        operator_remarks: str | None = None,
    ) -> bool:
        """Flip coverage_bot_finished to true and keep the result. Idempotent."""
        if not self.coverage_bot_id:
            raise ValidationError(f"Submission {self.id} is not registered with the coverage service")
        if self.coverage_bot_finished:
            return False
        self.coverage_bot_finished = True
        self.coverage_status = COVERED if is_covered else NOT_COVERED
        self.homepassed_id = homepassed_id or None
        self.operator_remarks = operator_remarks or None
        self.coverage_resolved_at = _utcnow()
        return True

    def to_dict(self, include_markers=True):
        result = {
            "id": self.id,
            "timestamp": self.created_at.isoformat() if self.created_at else None,
            "salesmanName": self.salesman_name,
            "customerName": self.customer_name,
            "customerAddress": self.customer_address,
            "customerHomeNo": self.customer_home_no,
            "village": self.village,
            "coordinates": self.coordinates,
            "buildingType": self.building_type,
            "operators": list(self.operators or []),
            "remarks": self.remarks,
            "buildingPhotos": self.photo_filenames,
        }
        if include_markers:
            result["sync"] = {
                "allMirrorWrittenAt": self.all_mirror_written_at.isoformat() if self.all_mirror_written_at else None,
                "fsMirrorWrittenAt": self.fs_mirror_written_at.isoformat() if self.fs_mirror_written_at else None,
                "coverageBotId": self.coverage_bot_id,
                "coverageBotFinished": bool(self.coverage_bot_finished),
                "coverageStatus": self.coverage_status,
                "homepassedId": self.homepassed_id,
            }
        return result

    def __repr__(self):
        return f"<Submission {self.id} operators={self.operators}>"


class SubmissionPhoto(db.Model):
    """Photo filename attached to a submission; immutable."""

    __tablename__ = "submission_photos"

    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(
        db.String(36), db.ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    filename = db.Column(db.String(255), nullable=False)

    def to_dict(self):
        return {"id": self.id, "submission_id": self.submission_id, "filename": self.filename}

    def __repr__(self):
        return f"<SubmissionPhoto {self.submission_id}/{self.filename}>"
