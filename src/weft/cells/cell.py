"""Cell model — records from the codec and their compiled, analyzed form.

A ``CellRecord`` is what the (external) serialization codec hands over: an
id, an optional name, the source text and a setup flag.  ``compile_cell``
turns it into an immutable ``Cell`` carrying the static defs/refs contract
and the compiled body, ready for the graph builder and the executor.

Editing a cell never mutates a ``Cell``: a new one is compiled for the same id.
"""

from __future__ import annotations

import ast
import inspect
import linecache
from dataclasses import dataclass, field
from types import CodeType

from weft.cells.analyzer import analyze_tree

# Placeholder name for cells the user did not name
ANONYMOUS = "_"

_COMPILE_FLAGS = ast.PyCF_ALLOW_TOP_LEVEL_AWAIT


def cell_filename(cell_id: str) -> str:
    """Pseudo filename under which a cell's code is compiled."""
    return f"<cell {cell_id}>"


def register_source(filename: str, source: str) -> None:
    """Make cell source visible to ``linecache`` so tracebacks show cell lines."""
    linecache.cache[filename] = (len(source), None, source.splitlines(True), filename)


@dataclass(frozen=True, slots=True)
class CellRecord:
    """A cell as supplied by the codec or editor.

    Attributes:
        id: Stable cell identifier.
        source: Python source of the cell body.
        name: Optional user-given name (``None`` for anonymous cells).
        is_setup: Whether this is the notebook's setup cell.
        syntax_error: Set by the codec when the source could not be parsed;
            such cells stay in display order but never run.

    """

    id: str
    source: str
    name: str | None = None
    is_setup: bool = False
    syntax_error: str | None = None


@dataclass(frozen=True, slots=True)
class CompiledBody:
    """Code objects for a cell body.

    The trailing expression statement, if any, is compiled separately so its
    value can be captured as the cell's output.

    """

    body: CodeType
    last_expr: CodeType | None
    is_coroutine: bool


@dataclass(frozen=True, slots=True, eq=False)
class Cell:
    """An analyzed, compiled cell.

    Attributes:
        id: Stable cell identifier.
        name: User-given name, or ``ANONYMOUS``.
        source: Python source.
        defs: Public names bound at top level, in binding order.
        refs: Public names read before being bound.
        is_setup: Whether this is the setup cell.
        syntax_error: Parse error message; the cell is not runnable when set.
        compiled: Compiled body (``None`` when there is a syntax error).

    """

    id: str
    name: str
    source: str
    defs: tuple[str, ...] = ()
    refs: frozenset[str] = frozenset()
    is_setup: bool = False
    syntax_error: str | None = None
    compiled: CompiledBody | None = field(default=None, repr=False)

    @property
    def runnable(self) -> bool:
        """True when the cell parsed and can take part in the graph."""
        return self.syntax_error is None and self.compiled is not None

    @property
    def is_async(self) -> bool:
        """True when the body uses top-level ``await``."""
        return self.compiled is not None and self.compiled.is_coroutine

    @property
    def filename(self) -> str:
        """Pseudo filename used in tracebacks for this cell."""
        return cell_filename(self.id)


def _compile_body(tree: ast.Module, filename: str) -> CompiledBody:
    last_expr: CodeType | None = None
    if tree.body and isinstance(tree.body[-1], ast.Expr):
        final = tree.body.pop()
        last_expr = compile(
            ast.Expression(body=final.value), filename, "eval", flags=_COMPILE_FLAGS,
        )
    body = compile(tree, filename, "exec", flags=_COMPILE_FLAGS)
    flags = body.co_flags | (last_expr.co_flags if last_expr is not None else 0)
    return CompiledBody(
        body=body,
        last_expr=last_expr,
        is_coroutine=bool(flags & inspect.CO_COROUTINE),
    )


def compile_cell(record: CellRecord) -> Cell:
    """Analyze and compile a cell record.

    Never raises on bad source: a record the codec already flagged, or a
    source that fails to parse, yields a non-runnable ``Cell`` with
    ``syntax_error`` set.

    """
    name = record.name or ANONYMOUS
    if record.syntax_error is not None:
        return Cell(
            id=record.id,
            name=name,
            source=record.source,
            is_setup=record.is_setup,
            syntax_error=record.syntax_error,
        )

    filename = cell_filename(record.id)
    try:
        tree = ast.parse(record.source, filename=filename)
    except SyntaxError as exc:
        return Cell(
            id=record.id,
            name=name,
            source=record.source,
            is_setup=record.is_setup,
            syntax_error=f"SyntaxError: {exc.msg} (line {exc.lineno})",
        )

    analysis = analyze_tree(tree)
    try:
        compiled = _compile_body(tree, filename)
    except SyntaxError as exc:
        # e.g. 'return' outside function: parses, but does not compile
        return Cell(
            id=record.id,
            name=name,
            source=record.source,
            is_setup=record.is_setup,
            syntax_error=f"SyntaxError: {exc.msg} (line {exc.lineno})",
        )

    register_source(filename, record.source)
    return Cell(
        id=record.id,
        name=name,
        source=record.source,
        defs=analysis.defs,
        refs=analysis.refs,
        is_setup=record.is_setup,
        compiled=compiled,
    )
