"""Shared type definitions for weft."""

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from pathlib import Path

    from weft.cells.cell import CellRecord

# Lifecycle status of a cell
type CellStatus = Literal["idle", "queued", "running", "ok", "error", "skipped", "stale"]

# Why a run request was produced
type RunReason = Literal["run_all", "edit", "interaction", "setter", "sync", "stale"]

# What an edit does to downstream cells
type OnCellChange = Literal["autorun", "lazy"]

# Codec callable turning a notebook file into ordered cell records
type NotebookLoader = Callable[[Path], Sequence[CellRecord]]
