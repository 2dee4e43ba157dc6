"""Shared test fixtures for weft."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import pytest

from weft.cells.cell import Cell, CellRecord, compile_cell
from weft.config import WeftConfig
from weft.runtime.graph import DependencyGraph
from weft.runtime.session import Session

type CellLike = CellRecord | tuple[str, str]


def to_records(cells: Iterable[CellLike]) -> list[CellRecord]:
    """Accept ``(id, source)`` pairs or ready-made records."""
    return [s if isinstance(s, CellRecord) else CellRecord(id=s[0], source=s[1]) for s in cells]


def make_cells(*cells: CellLike) -> list[Cell]:
    """Compile cells for graph-level tests."""
    return [compile_cell(r) for r in to_records(cells)]


def make_graph(*cells: CellLike) -> DependencyGraph:
    return DependencyGraph.build(make_cells(*cells))


def make_session(*cells: CellLike, **config: object) -> Session:
    """A session loaded with the given cells (nothing run yet)."""
    session = Session(WeftConfig(**config))  # type: ignore[arg-type]
    session.load(to_records(cells))
    return session


@pytest.fixture
def notebook_file(tmp_path: Path) -> Path:
    """A notebook file in the simple test format read by ``read_notebook``.

    Cells are separated by lines of ``# %% <id>``.
    """
    path = tmp_path / "notebook.py"
    path.write_text("# %% a\nx = 1\n# %% b\ny = x + 1\n")
    return path


def read_notebook(path: Path) -> list[CellRecord]:
    """Minimal codec used by watcher tests."""
    records: list[CellRecord] = []
    cell_id: str | None = None
    lines: list[str] = []
    for line in path.read_text().splitlines():
        if line.startswith("# %% "):
            if cell_id is not None:
                records.append(CellRecord(id=cell_id, source="\n".join(lines)))
            cell_id, lines = line[5:].strip(), []
        else:
            lines.append(line)
    if cell_id is not None:
        records.append(CellRecord(id=cell_id, source="\n".join(lines)))
    return records
