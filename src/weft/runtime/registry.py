"""Cell registry — named cells as independently callable units.

Any named cell can be called like a function: its references become
parameters that may be overridden, and the call returns the cell's output
and definitions.  Whatever the call needs and does not get as an override
is computed by running the minimal set of upstream cells.

Calls never touch the live session.  They read the store's ambient layer,
but every cell they run executes in an isolated namespace view: nothing is
installed into the store, and value holders created along the way are never
registered with the trigger subsystem, so no interaction or setter event
can reach them.

Usage::

    registry = session.registry
    output, defs = registry.invoke("summary", {"threshold": 0.5})
    outputs, defs = registry.run()

"""

from __future__ import annotations

import asyncio
from collections import ChainMap
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from weft._errors import CellNotFoundError, ExecutionError
from weft.cells.cell import ANONYMOUS
from weft.runtime.executor import CellOutput, ExecutionResult, execute_cell

if TYPE_CHECKING:
    from weft.cells.cell import Cell
    from weft.runtime.graph import DependencyGraph
    from weft.runtime.namespace import NamespaceStore


class CellRegistry:
    """Callable view over the named cells of one graph.

    Args:
        graph: The current dependency graph.
        store: The live namespace store (read for its ambient layer only).

    """

    __slots__ = ("_graph", "_store")

    def __init__(self, graph: DependencyGraph, store: NamespaceStore) -> None:
        self._graph = graph
        self._store = store

    # ----- lookup -----

    def names(self) -> tuple[str, ...]:
        """Names of the callable cells, in presentation order."""
        return tuple(
            c.name for c in self._graph.cells.values() if c.name != ANONYMOUS and not c.is_setup
        )

    def __contains__(self, name: object) -> bool:
        return name in self.names()

    def resolve(self, name: str) -> Cell:
        """The unique cell with this name.

        Raises:
            CellNotFoundError: No cell, or more than one cell, has the name.

        """
        matches = [
            c for c in self._graph.cells.values() if c.name == name and not c.is_setup
        ]
        if name == ANONYMOUS or not matches:
            msg = f"No cell named {name!r}"
            raise CellNotFoundError(msg)
        if len(matches) > 1:
            msg = f"Cell name {name!r} is ambiguous: cells {', '.join(c.id for c in matches)}"
            raise CellNotFoundError(msg)
        return matches[0]

    def upstream(
        self,
        name: str,
        overrides: Mapping[str, Any] | None = None,
    ) -> tuple[str, ...]:
        """Cells a call to ``name`` runs, in execution order, target last.

        A reference supplied as an override is not computed, so the cell
        that defines it only runs if something else in the closure needs it.

        """
        target = self.resolve(name)
        overrides = overrides or {}
        needed: set[str] = {target.id}
        stack = [target.id]
        while stack:
            cell = self._graph.cell(stack.pop())
            for ref in cell.refs:
                if ref in overrides:
                    continue
                owner = self._graph.def_owner.get(ref)
                if owner is not None and owner not in needed:
                    needed.add(owner)
                    stack.append(owner)
        return self._graph.topological_order(needed)

    # ----- calls -----

    async def ainvoke(
        self,
        name: str,
        overrides: Mapping[str, Any] | None = None,
        /,
        **kwargs: Any,
    ) -> tuple[CellOutput, dict[str, Any]]:
        """Run a named cell in isolation and return ``(output, definitions)``.

        Overrides may be passed as a mapping, as keyword arguments, or both
        (keywords win).

        Raises:
            CellNotFoundError: Unknown or ambiguous name.
            ValueError: An override is not referenced by the call.
            ExecutionError: The target or one of its upstream cells raised.

        """
        values = {**(overrides or {}), **kwargs}
        order = self.upstream(name, values)
        referenced = set().union(*(self._graph.cell(cid).refs for cid in order))
        unknown = sorted(set(values) - referenced)
        if unknown:
            msg = f"Cell {name!r} does not reference {', '.join(unknown)}"
            raise ValueError(msg)

        results = await self._execute(order, values)
        result = results[order[-1]]
        return result.output, dict(result.definitions)

    def invoke(
        self,
        name: str,
        overrides: Mapping[str, Any] | None = None,
        /,
        **kwargs: Any,
    ) -> tuple[CellOutput, dict[str, Any]]:
        """Blocking form of ``ainvoke`` for code outside an event loop."""
        _require_no_loop("invoke", "ainvoke")
        return asyncio.run(self.ainvoke(name, overrides, **kwargs))

    async def arun(
        self,
        overrides: Mapping[str, Any] | None = None,
    ) -> tuple[dict[str, CellOutput], dict[str, Any]]:
        """Run the whole notebook in isolation.

        Returns:
            ``(outputs_by_cell_name, definitions_by_name)``.  Anonymous cells
            are keyed by their id.

        Raises:
            ExecutionError: A cell raised.

        """
        values = dict(overrides or {})
        order = self._graph.topological_order(self._graph.cells)
        results = await self._execute(order, values)

        outputs: dict[str, CellOutput] = {}
        definitions: dict[str, Any] = {}
        for cell_id in order:
            cell = self._graph.cell(cell_id)
            result = results[cell_id]
            if not cell.is_setup:
                outputs[cell.id if cell.name == ANONYMOUS else cell.name] = result.output
            definitions.update(result.definitions)
        return outputs, definitions

    def run(
        self,
        overrides: Mapping[str, Any] | None = None,
    ) -> tuple[dict[str, CellOutput], dict[str, Any]]:
        """Blocking form of ``arun``."""
        _require_no_loop("run", "arun")
        return asyncio.run(self.arun(overrides))

    async def _execute(
        self,
        order: tuple[str, ...],
        overrides: Mapping[str, Any],
    ) -> dict[str, ExecutionResult]:
        ambient: Mapping[str, Any] = self._store.ambient()
        produced: dict[str, Any] = {}
        view = ChainMap(dict(overrides), produced)
        results: dict[str, ExecutionResult] = {}
        for cell_id in order:
            cell = self._graph.cell(cell_id)
            try:
                result = await execute_cell(cell, view, {} if cell.is_setup else ambient)
            except Exception as exc:
                raise ExecutionError(cell.id, cell.name, exc) from exc
            if cell.is_setup:
                ambient = dict(result.definitions)
            else:
                produced.update(result.definitions)
            results[cell_id] = result
        return results


def _require_no_loop(method: str, alternative: str) -> None:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return
    msg = f"{method}() cannot be called from a running event loop; use {alternative}()"
    raise RuntimeError(msg)
