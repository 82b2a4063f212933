"""
Pure snapshot patching.

A snapshot is an immutable tuple of records. Applying a change event never
mutates the input; it returns a new tuple, or the very same tuple when the
event changes nothing (so callers can skip publishing).
"""
from __future__ import annotations

from .records import ChangeEvent, Collection, Record

Snapshot = tuple[Record, ...]

EMPTY: Snapshot = ()


def _place(collection: Collection, rows: Snapshot, row: Record) -> Snapshot:
    # New incidents and checkpoints go on top; the roster stays alphabetical.
    if collection is not Collection.TEAM_MEMBERS:
        return (row,) + rows

    name = row.name.lower()
    for index, existing in enumerate(rows):
        if existing.name.lower() > name:
            return rows[:index] + (row,) + rows[index:]
    return rows + (row,)


def apply_change(rows: Snapshot, event: ChangeEvent) -> Snapshot:
    """
    Compute the snapshot that results from one change event.

    insert: add the row, or replace it if the id is already present (duplicate delivery)
    update: replace the row with the same id, or add it if absent (missed insert)
    delete: drop the row with the id; no-op if absent
    """
    if event.operation == "delete":
        kept = tuple(r for r in rows if r.id != event.row_id)
        return rows if len(kept) == len(rows) else kept

    row = event.row
    for index, existing in enumerate(rows):
        if existing.id == row.id:
            if existing == row:
                return rows
            return rows[:index] + (row,) + rows[index + 1:]

    return _place(event.collection, rows, row)
