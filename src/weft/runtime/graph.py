"""Dependency graph — who defines what, and who reads it.

Built once per notebook snapshot from the analyzed cells.  Answers the
questions the scheduler and trigger subsystem ask:

- which cell owns a name (``def_owner``, injective by construction)
- which cells a cell depends on, and which depend on it
- which cells must re-run when some cells or names change (closures)
- in which order a set of cells runs (topological, ties broken by the
  cells' presentation order so repeated runs are reproducible)

The setup cell is outside the edge graph: its definitions form an ambient
context visible to every cell.  A reference to an ambient name produces no
edge, so cycle detection and closures only ever see ordinary cells.
"""

from __future__ import annotations

import heapq
from collections.abc import Iterable, Mapping, Sequence
from types import MappingProxyType
from typing import TYPE_CHECKING

from weft._errors import CycleError, DefinitionConflict, SetupCellError

if TYPE_CHECKING:
    from weft.cells.cell import Cell


class DependencyGraph:
    """Immutable reference/definition graph over one notebook snapshot.

    Use ``DependencyGraph.build(cells)``; the constructor assumes validated
    input.

    Args:
        cells: Runnable cells in presentation order.
        def_owner: Name -> id of the (non-setup) cell that defines it.
        ambient: Name -> id of the setup cell, for names it defines.
        parents: Cell id -> ids of the cells it reads from.

    """

    __slots__ = (
        "_ambient",
        "_cells",
        "_children",
        "_def_owner",
        "_external",
        "_parents",
        "_position",
        "_setup_id",
    )

    def __init__(
        self,
        cells: Sequence[Cell],
        def_owner: Mapping[str, str],
        ambient: Mapping[str, str],
        parents: Mapping[str, frozenset[str]],
    ) -> None:
        self._cells: dict[str, Cell] = {c.id: c for c in cells}
        self._position: dict[str, int] = {c.id: i for i, c in enumerate(cells)}
        self._def_owner = MappingProxyType(dict(def_owner))
        self._ambient = MappingProxyType(dict(ambient))
        self._setup_id: str | None = next((c.id for c in cells if c.is_setup), None)
        self._parents: dict[str, frozenset[str]] = {
            cid: parents.get(cid, frozenset()) for cid in self._cells
        }
        children: dict[str, set[str]] = {cid: set() for cid in self._cells}
        for cid, ps in self._parents.items():
            for parent in ps:
                children[parent].add(cid)
        self._children = {cid: frozenset(cs) for cid, cs in children.items()}
        self._external: dict[str, frozenset[str]] = {
            c.id: frozenset(
                r for r in c.refs if r not in self._def_owner and r not in self._ambient
            )
            for c in cells
        }

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(cls, cells: Iterable[Cell]) -> DependencyGraph:
        """Validate cells and build the graph.

        Cells that are not runnable (syntax errors) are left out.

        Raises:
            SetupCellError: More than one setup cell, or the setup cell reads
                a name another cell defines.
            DefinitionConflict: A name is defined by more than one cell.
            CycleError: The reference edges contain a cycle.

        """
        runnable = [c for c in cells if c.runnable]

        setups = [c for c in runnable if c.is_setup]
        if len(setups) > 1:
            msg = "A notebook can have at most one setup cell, found: " + ", ".join(
                c.id for c in setups
            )
            raise SetupCellError(msg, [c.id for c in setups])
        setup = setups[0] if setups else None

        owners: dict[str, list[str]] = {}
        for cell in runnable:
            for name in cell.defs:
                owners.setdefault(name, []).append(cell.id)
        conflicts = {name: ids for name, ids in owners.items() if len(ids) > 1}
        if conflicts:
            raise DefinitionConflict(conflicts)

        ambient = {name: setup.id for name in setup.defs} if setup is not None else {}
        def_owner = {
            name: ids[0]
            for name, ids in owners.items()
            if setup is None or ids[0] != setup.id
        }

        if setup is not None:
            upstream = sorted(r for r in setup.refs if r in def_owner)
            if upstream:
                msg = (
                    f"Setup cell {setup.id} may only use imported or built-in names, "
                    f"but reads {', '.join(upstream)} defined by other cells"
                )
                raise SetupCellError(msg, [setup.id, *(def_owner[r] for r in upstream)])

        parents: dict[str, frozenset[str]] = {}
        for cell in runnable:
            if cell.is_setup:
                continue
            parents[cell.id] = frozenset(
                def_owner[r]
                for r in cell.refs
                if r in def_owner and r not in ambient and def_owner[r] != cell.id
            )
            # A cell reading a name it also defines (x = x + 1) is a self-cycle.
            if any(def_owner.get(r) == cell.id for r in cell.refs):
                raise CycleError([cell.id, cell.id])

        graph = cls(runnable, def_owner, ambient, parents)
        graph._check_acyclic()
        return graph

    def _check_acyclic(self) -> None:
        ordered = self.topological_order(self._parents)
        if len(ordered) == len(self._parents):
            return
        remaining = set(self._parents) - set(ordered)
        raise CycleError(self._find_cycle(remaining))

    def _find_cycle(self, remaining: set[str]) -> list[str]:
        """Walk parent edges inside the unsortable remainder until a node repeats."""
        start = min(remaining, key=self._position.__getitem__)
        path: list[str] = [start]
        seen: dict[str, int] = {start: 0}
        current = start
        while True:
            nxt = min(
                (p for p in self._parents[current] if p in remaining),
                key=self._position.__getitem__,
            )
            if nxt in seen:
                cycle = path[seen[nxt]:]
                cycle.reverse()
                return [*cycle, cycle[0]]
            seen[nxt] = len(path)
            path.append(nxt)
            current = nxt

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def cells(self) -> Mapping[str, Cell]:
        """Runnable cells by id, in presentation order."""
        return MappingProxyType(self._cells)

    @property
    def def_owner(self) -> Mapping[str, str]:
        """Name -> id of the defining (non-setup) cell."""
        return self._def_owner

    @property
    def ambient(self) -> Mapping[str, str]:
        """Name -> setup cell id, for every setup definition."""
        return self._ambient

    @property
    def setup_id(self) -> str | None:
        """Id of the setup cell, if any."""
        return self._setup_id

    def __contains__(self, cell_id: object) -> bool:
        return cell_id in self._cells

    def __len__(self) -> int:
        return len(self._cells)

    def cell(self, cell_id: str) -> Cell:
        return self._cells[cell_id]

    def position(self, cell_id: str) -> int:
        """Presentation index of a cell."""
        return self._position[cell_id]

    def parents(self, cell_id: str) -> frozenset[str]:
        """Cells this cell reads from (never the setup cell)."""
        return self._parents.get(cell_id, frozenset())

    def children(self, cell_id: str) -> frozenset[str]:
        """Cells that read a name this cell defines."""
        return self._children.get(cell_id, frozenset())

    def external_refs(self, cell_id: str) -> frozenset[str]:
        """References with no owning cell and not in the ambient context."""
        return self._external.get(cell_id, frozenset())

    def edge_count(self) -> int:
        return sum(len(ps) for ps in self._parents.values())

    # ------------------------------------------------------------------
    # Closures
    # ------------------------------------------------------------------

    def consumers_of(self, names: Iterable[str]) -> frozenset[str]:
        """Cells (other than the setup cell) that directly reference any of names."""
        wanted = set(names)
        return frozenset(
            cid
            for cid, cell in self._cells.items()
            if not cell.is_setup and not wanted.isdisjoint(cell.refs)
        )

    def ambient_consumers(self) -> frozenset[str]:
        """Cells that read at least one setup-cell definition."""
        return self.consumers_of(self._ambient)

    def descendants(
        self,
        roots: Iterable[str],
        excluded: Iterable[str] = (),
    ) -> frozenset[str]:
        """Roots plus every transitive consumer, never entering excluded cells.

        Roots that are excluded or unknown are dropped.  An excluded cell is
        neither part of the result nor expanded, so cells reachable only
        through it are left alone.

        """
        skip = set(excluded)
        stack = [r for r in roots if r in self._cells and r not in skip]
        seen: set[str] = set(stack)
        while stack:
            cid = stack.pop()
            for child in self._children.get(cid, ()):
                if child not in seen and child not in skip:
                    seen.add(child)
                    stack.append(child)
        return frozenset(seen)

    def ancestors(self, cell_id: str) -> frozenset[str]:
        """Every cell the given cell transitively reads from."""
        stack = list(self.parents(cell_id))
        seen: set[str] = set(stack)
        while stack:
            for parent in self.parents(stack.pop()):
                if parent not in seen:
                    seen.add(parent)
                    stack.append(parent)
        return frozenset(seen)

    def topological_order(self, cell_ids: Iterable[str]) -> tuple[str, ...]:
        """Order cells so parents come first; ties go to presentation order.

        Only edges between the given cells are considered.  The setup cell,
        when included, always comes first.  Cells on a cycle are omitted
        (``build`` rejects cycles, so this only happens during validation).

        """
        subset = {cid for cid in cell_ids if cid in self._cells}
        pending = {cid: len(self._parents.get(cid, frozenset()) & subset) for cid in subset}
        ready = [(self._rank(cid), cid) for cid, n in pending.items() if n == 0]
        heapq.heapify(ready)
        order: list[str] = []
        while ready:
            _, cid = heapq.heappop(ready)
            order.append(cid)
            for child in self._children.get(cid, ()):
                if child in pending:
                    pending[child] -= 1
                    if pending[child] == 0:
                        heapq.heappush(ready, (self._rank(child), child))
        return tuple(order)

    def _rank(self, cell_id: str) -> int:
        if cell_id == self._setup_id:
            return -1
        return self._position[cell_id]
