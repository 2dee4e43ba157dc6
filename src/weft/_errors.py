"""Weft error hierarchy.

All weft-specific errors inherit from WeftError for easy catching.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence


class WeftError(Exception):
    """Base error for all weft operations."""


class ConfigError(WeftError):
    """Invalid or missing configuration."""


class GraphError(WeftError):
    """The cell graph cannot be built; execution is blocked until resolved.

    Attributes:
        cell_ids: Cells implicated in the error, in presentation order.

    """

    def __init__(self, message: str, cell_ids: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.cell_ids: tuple[str, ...] = tuple(cell_ids)


class DefinitionConflict(GraphError):
    """Two or more cells define the same global name.

    Attributes:
        conflicts: Mapping of name -> ids of every cell that defines it.

    """

    def __init__(self, conflicts: Mapping[str, Sequence[str]]) -> None:
        self.conflicts: dict[str, tuple[str, ...]] = {
            name: tuple(ids) for name, ids in sorted(conflicts.items())
        }
        lines = [
            f"'{name}' is defined by cells {', '.join(ids)}"
            for name, ids in self.conflicts.items()
        ]
        involved: list[str] = []
        for ids in self.conflicts.values():
            involved.extend(i for i in ids if i not in involved)
        super().__init__(
            "Each name must be defined by exactly one cell: " + "; ".join(lines),
            involved,
        )


class CycleError(GraphError):
    """The reference edges between cells form a cycle.

    Attributes:
        cycle: Cell ids along the cycle; the first id is repeated at the end.

    """

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle: tuple[str, ...] = tuple(cycle)
        super().__init__(
            "Cyclic dependency between cells: " + " -> ".join(self.cycle),
            self.cycle[:-1],
        )


class SetupCellError(GraphError):
    """The setup cell is duplicated or depends on another cell."""


class ExecutionError(WeftError):
    """A cell raised while running outside the live session.

    Attributes:
        cell_id: Id of the failing cell.
        cell_name: Name of the failing cell.
        original: The exception raised by the cell body.

    """

    def __init__(self, cell_id: str, cell_name: str, original: BaseException) -> None:
        self.cell_id = cell_id
        self.cell_name = cell_name
        self.original = original
        super().__init__(
            f"Cell {cell_name!r} ({cell_id}) raised "
            f"{type(original).__name__}: {original}"
        )


class CellNotFoundError(WeftError, LookupError):
    """No cell (or more than one cell) matches the requested id or name."""


class HolderError(WeftError):
    """Invalid use of a value holder (unknown object id, direct assignment)."""
