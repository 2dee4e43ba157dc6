"""Record differ — what changed between two versions of a notebook.

Compares two ordered sequences of ``CellRecord`` by cell id and produces a
changeset of added, removed and modified cells.  Records are frozen
dataclasses, so an unchanged cell is skipped with a single ``==``.

Used when a notebook file is reloaded from disk: only the changed cells and
their consumers need to run again.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from weft.cells.cell import CellRecord


@dataclass(frozen=True, slots=True)
class CellChange:
    """A single change between two notebook versions.

    Attributes:
        kind: Type of change — added, removed, or modified.
        cell_id: Id of the changed cell.
        old: The record before the change (None for additions).
        new: The record after the change (None for removals).

    """

    kind: Literal["added", "removed", "modified"]
    cell_id: str
    old: CellRecord | None
    new: CellRecord | None


def diff_records(
    old: Sequence[CellRecord],
    new: Sequence[CellRecord],
) -> tuple[CellChange, ...]:
    """Diff two notebook versions keyed by cell id.

    Removals come first, in old order; then additions and modifications in
    new order.  A pure reordering is not a change: execution order comes
    from the dependency graph.

    """
    old_by_id = {r.id: r for r in old}
    new_ids = {r.id for r in new}
    changes: list[CellChange] = [
        CellChange(kind="removed", cell_id=r.id, old=r, new=None)
        for r in old
        if r.id not in new_ids
    ]
    for record in new:
        previous = old_by_id.get(record.id)
        if previous is None:
            changes.append(CellChange(kind="added", cell_id=record.id, old=None, new=record))
        elif previous != record:
            changes.append(
                CellChange(kind="modified", cell_id=record.id, old=previous, new=record)
            )
    return tuple(changes)
