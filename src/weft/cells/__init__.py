"""Cell layer — notebook cells as analyzed, compiled units.

Handles static name analysis (what a cell reads and defines), compilation,
diffing notebook versions, and watching a notebook file for changes.
"""

from weft.cells.analyzer import CellAnalysis, analyze, is_private
from weft.cells.cell import ANONYMOUS, Cell, CellRecord, compile_cell
from weft.cells.differ import CellChange, diff_records
from weft.cells.watcher import NotebookChange, NotebookWatcher, follow

__all__ = [
    "ANONYMOUS",
    "Cell",
    "CellAnalysis",
    "CellChange",
    "CellRecord",
    "NotebookChange",
    "NotebookWatcher",
    "analyze",
    "compile_cell",
    "diff_records",
    "follow",
    "is_private",
]
