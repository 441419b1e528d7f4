"""
Mirror row index: submission id → spreadsheet row number.

Kept in the ``mirror_rows`` table as a record of where each submission's
row was last seen:

  - `record_row` is called after each successful append with the row number
    parsed from the append response's ``updatedRange``;
  - `refresh_from_column` corrects entries from a bulk read of the
    identifier column (rows added by hand, rows moved by sorting, rows
    deleted). Entries for requested ids that the read no longer finds are
    removed.

Writes into the sheet never rely on a stored row number alone; the status
backfill always takes rows from a fresh column read.

When a submission id appears on several rows (duplicate appends from
at-least-once delivery), the first row wins.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, select

from fieldsync.models import db
from fieldsync.models.sync import MirrorRow

logger = logging.getLogger(__name__)


def _get_entry(spreadsheet_id: str, submission_id: str) -> MirrorRow | None:
    stmt = select(MirrorRow).where(
        MirrorRow.spreadsheet_id == spreadsheet_id,
        MirrorRow.submission_id == submission_id,
    )
    return db.session.execute(stmt).scalar_one_or_none()


def record_row(spreadsheet_id: str, submission_id: str, row_number: int) -> MirrorRow:
    """Remember where an appended row landed. Keeps an existing entry. Does NOT commit."""
    entry = _get_entry(spreadsheet_id, submission_id)
    if entry is None:
        entry = MirrorRow(spreadsheet_id=spreadsheet_id, submission_id=submission_id,
                          row_number=row_number)
        db.session.add(entry)
        db.session.flush()
    elif entry.row_number != row_number:
        logger.info("Duplicate mirror row for %s at %d, keeping row %d",
                    spreadsheet_id, row_number, entry.row_number,
                    extra={"submission_id": submission_id})
    return entry


def build_lookup(values: list | None, first_row: int = 1) -> dict[str, int]:
    """Map identifier → row number from a single-column bulk read."""
    lookup: dict[str, int] = {}
    for offset, cells in enumerate(values or []):
        if not cells:
            continue
        key = str(cells[0]).strip()
        if key and key not in lookup:
            lookup[key] = first_row + offset
    return lookup


def refresh_from_column(
    spreadsheet_id: str,
    values: list | None,
    *,
    first_row: int = 1,
    wanted_ids=None,
) -> dict[str, int]:
    """Upsert index entries from a bulk identifier-column read. Does NOT commit.

    Args:
        spreadsheet_id: Sheet the values were read from.
        values: ``values`` array of the Sheets API response.
        first_row: Row number of the first returned cell.
        wanted_ids: Only persist these ids (None = persist everything read).
                    Entries for wanted ids absent from `values` are deleted.

    Returns:
        The full identifier → row lookup built from `values`.
    """
    lookup = build_lookup(values, first_row)
    if wanted_ids is None:
        targets = list(lookup)
    else:
        targets = [i for i in wanted_ids if i in lookup]
        gone = [i for i in wanted_ids if i not in lookup]
        if gone:
            db.session.execute(delete(MirrorRow).where(
                MirrorRow.spreadsheet_id == spreadsheet_id,
                MirrorRow.submission_id.in_(gone),
            ))
    updated = 0
    for submission_id in targets:
        row_number = lookup[submission_id]
        entry = _get_entry(spreadsheet_id, submission_id)
        if entry is None:
            db.session.add(MirrorRow(spreadsheet_id=spreadsheet_id,
                                     submission_id=submission_id, row_number=row_number))
            updated += 1
        elif entry.row_number != row_number:
            entry.row_number = row_number
            updated += 1
    db.session.flush()
    logger.info("Mirror row index refreshed sheet=%s rows_read=%d entries_updated=%d",
                spreadsheet_id, len(lookup), updated)
    return lookup
