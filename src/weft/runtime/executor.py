"""Cell executor — runs one compiled cell against a namespace view.

The executor knows nothing about graphs or scheduling.  It builds the
globals a cell body sees (builtins, the ambient layer, the values of the
cell's references), runs the body with stdout routed to the cell, awaits
top-level ``await`` bodies, and hands back the cell's definitions, its
output and the value holders it created.  Installing the definitions is the
caller's job.
"""

from __future__ import annotations

import builtins
import inspect
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import CodeType, MappingProxyType
from typing import TYPE_CHECKING, Any

from weft.runtime.console import routed_stdout
from weft.runtime.context import ExecutionContext, current_execution
from weft.runtime.holders import ValueHolder, holder_of

if TYPE_CHECKING:
    from weft.cells.cell import Cell
    from weft.runtime.triggers import TriggerSubsystem


@dataclass(frozen=True, slots=True)
class CellOutput:
    """What a cell displays: its last expression value and printed text."""

    value: Any = None
    console: str = ""


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Everything one successful execution produced.

    Attributes:
        definitions: Values of the cell's declared defs that were bound.
        output: Captured output.
        holders: Value holders created during the run, in creation order.
        bindings: Holder object id -> global names bound to it.

    """

    definitions: Mapping[str, Any]
    output: CellOutput
    holders: tuple[ValueHolder, ...] = ()
    bindings: Mapping[str, tuple[str, ...]] = field(default_factory=dict)


def build_globals(
    cell: Cell,
    values: Mapping[str, Any],
    ambient: Mapping[str, Any],
) -> dict[str, Any]:
    """Globals for one execution.

    Later layers win: ambient names, then the values of the cell's own
    references.

    """
    glbls: dict[str, Any] = {
        "__builtins__": builtins,
        "__name__": "__weft__",
    }
    glbls.update(ambient)
    for name in cell.refs:
        if name in values:
            glbls[name] = values[name]
    return glbls


async def _evaluate(code: CodeType, glbls: dict[str, Any]) -> Any:
    result = eval(code, glbls)  # noqa: S307
    if code.co_flags & inspect.CO_COROUTINE:
        result = await result
    return result


def _bindings(
    definitions: Mapping[str, Any],
    holders: list[ValueHolder],
) -> dict[str, tuple[str, ...]]:
    created = {id(h): h for h in holders}
    bound: dict[str, list[str]] = {}
    for name, value in definitions.items():
        holder = holder_of(value)
        if holder is not None and id(holder) in created:
            bound.setdefault(holder.object_id, []).append(name)
    return {oid: tuple(names) for oid, names in bound.items()}


async def execute_cell(
    cell: Cell,
    values: Mapping[str, Any],
    ambient: Mapping[str, Any] = MappingProxyType({}),
    *,
    triggers: TriggerSubsystem | None = None,
) -> ExecutionResult:
    """Run a cell body and collect its definitions.

    Args:
        cell: A runnable cell.
        values: Name -> value view the cell's references resolve against.
        ambient: Setup-cell definitions, visible to every cell.
        triggers: Live trigger subsystem; ``None`` runs the cell isolated.

    Raises:
        Exception: Whatever the cell body raises, unchanged.

    """
    compiled = cell.compiled
    if compiled is None:
        msg = f"cell {cell.id} is not runnable: {cell.syntax_error}"
        raise ValueError(msg)

    glbls = build_globals(cell, values, ambient)
    ctx = ExecutionContext(cell_id=cell.id, triggers=triggers)
    token = current_execution.set(ctx)
    try:
        with routed_stdout():
            await _evaluate(compiled.body, glbls)
            value = None
            if compiled.last_expr is not None:
                value = await _evaluate(compiled.last_expr, glbls)
    finally:
        current_execution.reset(token)

    definitions = {name: glbls[name] for name in cell.defs if name in glbls}
    return ExecutionResult(
        definitions=definitions,
        output=CellOutput(value=value, console=ctx.console.getvalue()),
        holders=tuple(ctx.holders),
        bindings=_bindings(definitions, ctx.holders),
    )
