"""
Photo upload area.

Photos are written to ``UPLOADS_DIR/submissions/<submission id>/`` before
the submission row is inserted, so the stored filenames are final when
the transaction commits. If the insert fails the directory is removed.
"""

from __future__ import annotations

import logging
import os
import shutil
import time

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from fieldsync.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp", ".pdf"})


def submission_dir(submission_id: str) -> str:
    return os.path.join(current_app.config["UPLOADS_DIR"], "submissions", submission_id)


def is_allowed(filename: str) -> bool:
    return os.path.splitext(filename)[1].lower() in ALLOWED_EXTENSIONS


def _size_of(file: FileStorage) -> int:
    stream = file.stream
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


def validate_photos(files: list[FileStorage]) -> list[FileStorage]:
    """Drop empty parts and enforce the count and per-file size limits.

    Raises:
        ValidationError: too many photos, an oversized photo, or a file type
                         that cannot be served back.
    """
    max_count = current_app.config.get("MAX_PHOTOS", 5)
    max_bytes = current_app.config.get("MAX_PHOTO_BYTES", 10 * 1024 * 1024)

    photos = [f for f in files if f and f.filename]
    if len(photos) > max_count:
        raise ValidationError(f"Maximum {max_count} files allowed",
                              details={"buildingPhotos": len(photos)})

    oversized = [f.filename for f in photos if _size_of(f) > max_bytes]
    if oversized:
        raise ValidationError(f"Files must be less than {max_bytes // (1024 * 1024)}MB each",
                              details={"oversized": oversized})

    rejected = [f.filename for f in photos if not is_allowed(f.filename)]
    if rejected:
        raise ValidationError("File type not allowed",
                              details={"rejected": rejected, "allowed": sorted(ALLOWED_EXTENSIONS)})

    return [f for f in photos if _size_of(f) > 0]


def save_photos(submission_id: str, files: list[FileStorage]) -> list[str]:
    """Write validated photos to the submission's directory; return stored filenames."""
    if not files:
        return []
    target = submission_dir(submission_id)
    os.makedirs(target, exist_ok=True)

    stamp = int(time.time() * 1000)
    saved = []
    for index, file in enumerate(files):
        name = secure_filename(file.filename) or f"photo{index}"
        filename = f"{stamp}-{index}-{name}"
        file.save(os.path.join(target, filename))
        saved.append(filename)
    logger.debug("Saved %d photos to %s", len(saved), target, extra={"submission_id": submission_id})
    return saved


def discard_photos(submission_id: str) -> None:
    target = submission_dir(submission_id)
    if os.path.isdir(target):
        shutil.rmtree(target, ignore_errors=True)
        logger.info("Discarded uploaded photos", extra={"submission_id": submission_id})
