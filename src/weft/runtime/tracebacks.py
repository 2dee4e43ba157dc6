"""Cell error formatting — points exceptions at the cell line that raised.

Cell code is compiled under ``<cell ID>`` pseudo filenames and its source is
registered with ``linecache``, so the traceback frames inside a cell carry
real line text.  This module provides:

1. ``format_cell_error`` — one-line message for a cell's error status.
2. ``format_cell_traceback`` — traceback text with runtime frames removed.
3. ``format_error_event`` — a JSON payload for clients.
"""

from __future__ import annotations

import json
import linecache
import traceback

from weft.cells.cell import cell_filename

_CELL_PREFIX = "<cell "


def _is_cell_file(filename: str) -> bool:
    return filename.startswith(_CELL_PREFIX) and filename.endswith(">")


def _extract_error_location(
    exc: BaseException,
    cell_id: str | None = None,
) -> tuple[str, int]:
    """Innermost traceback location, preferring frames inside cell code.

    With a cell id, the innermost frame of that cell wins; otherwise the
    innermost frame of any cell; otherwise the innermost frame overall.

    """
    tb = exc.__traceback__
    if tb is None:
        return "", 0

    wanted = cell_filename(cell_id) if cell_id is not None else None
    innermost: tuple[str, int] = ("", 0)
    in_cell: tuple[str, int] | None = None
    in_wanted: tuple[str, int] | None = None
    while tb is not None:
        filename = tb.tb_frame.f_code.co_filename
        location = (filename, tb.tb_lineno)
        innermost = location
        if _is_cell_file(filename):
            in_cell = location
            if filename == wanted:
                in_wanted = location
        tb = tb.tb_next

    return in_wanted or in_cell or innermost


def format_cell_error(exc: BaseException, cell_id: str | None = None) -> str:
    """One-line description: ``ZeroDivisionError: division by zero (line 2)``."""
    message = f"{type(exc).__qualname__}: {exc}" if str(exc) else type(exc).__qualname__
    filename, lineno = _extract_error_location(exc, cell_id)
    if not _is_cell_file(filename) or lineno <= 0:
        return message
    if cell_id is not None and filename != cell_filename(cell_id):
        return f"{message} ({filename[1:-1]}, line {lineno})"
    return f"{message} (line {lineno})"


def format_cell_traceback(exc: BaseException) -> str:
    """Traceback text starting at the first frame inside cell code."""
    frames = traceback.extract_tb(exc.__traceback__)
    first = next((i for i, f in enumerate(frames) if _is_cell_file(f.filename)), 0)
    lines = ["Traceback (most recent call last):\n"]
    lines.extend(traceback.format_list(frames[first:]))
    lines.extend(traceback.format_exception_only(type(exc), exc))
    return "".join(lines)


def source_line(filename: str, lineno: int) -> str:
    """The stripped source text of a cell line, or ``""``."""
    if not filename or lineno <= 0:
        return ""
    return linecache.getline(filename, lineno).strip()


def format_error_event(exc: BaseException, cell_id: str | None = None) -> str:
    """Format a cell exception as a JSON payload for clients."""
    filename, lineno = _extract_error_location(exc, cell_id)
    return json.dumps({
        "cell_id": cell_id,
        "type": type(exc).__qualname__,
        "message": str(exc),
        "file": filename,
        "line": lineno,
        "source": source_line(filename, lineno),
    })
