"""Session — the live runtime of one notebook.

Ties the pieces together:

- cell records are compiled and analyzed (``weft.cells``), then built into a
  ``DependencyGraph``; a graph that cannot be built blocks every run until
  an edit resolves it,
- edits, deletions and reloads decide which cells are affected and either
  run them (``autorun``) or mark them stale (``lazy``),
- the ``Scheduler`` runs requests against the shared ``NamespaceStore``,
- the ``TriggerSubsystem`` turns interactions and setter calls into
  follow-up requests, which run as background tasks on the session's loop.

Usage::

    session = Session(WeftConfig(max_parallelism=2))
    session.load(records)
    await session.run_all()
    await session.edit("b", "y = x * 10")
    session.view("b").status  # "ok"

"""

from __future__ import annotations

import asyncio
import sys
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from weft._errors import CellNotFoundError, GraphError
from weft.cells.cell import Cell, CellRecord, compile_cell
from weft.cells.differ import diff_records
from weft.config import WeftConfig
from weft.observability.collector import RuntimeCollector
from weft.observability.log import EventLog
from weft.runtime.broadcaster import Broadcaster, CellNotification
from weft.runtime.graph import DependencyGraph
from weft.runtime.namespace import NamespaceStore
from weft.runtime.registry import CellRegistry
from weft.runtime.scheduler import RunReport, RunRequest, Scheduler
from weft.runtime.triggers import InteractionEvent, TriggerSubsystem

if TYPE_CHECKING:
    from weft._types import CellStatus, RunReason
    from weft.runtime.executor import CellOutput
    from weft.runtime.scheduler import CellState


@dataclass(frozen=True, slots=True)
class CellView:
    """What a front-end shows for one cell.

    Attributes:
        cell_id: The cell.
        name: Cell name (``"_"`` for anonymous cells).
        status: Lifecycle status.
        output: Output of the last successful run.
        error_message: Error text for failed, skipped or unbuildable cells.

    """

    cell_id: str
    name: str
    status: CellStatus
    output: CellOutput | None
    error_message: str | None


class Session:
    """Live runtime of one notebook.

    All coroutine methods must run on the same event loop.

    Args:
        config: Session configuration (defaults to ``WeftConfig()``).
        collector: Event collector (a fresh one sized by ``max_events``
            if omitted).
        broadcaster: Client fan-out (a fresh one if omitted).

    """

    def __init__(
        self,
        config: WeftConfig | None = None,
        *,
        collector: RuntimeCollector | None = None,
        broadcaster: Broadcaster | None = None,
    ) -> None:
        self._config = config if config is not None else WeftConfig()
        self._collector = (
            collector
            if collector is not None
            else RuntimeCollector(EventLog(max_events=self._config.max_events))
        )
        self._broadcaster = broadcaster if broadcaster is not None else Broadcaster()
        self._store = NamespaceStore()
        self._triggers = TriggerSubsystem(
            self._config,
            graph=lambda: self._graph,
            submit=self._spawn,
            collector=self._collector,
            broadcaster=self._broadcaster,
            on_pending=self._schedule_flush,
        )
        self._scheduler = Scheduler(
            self._store,
            self._triggers,
            config=self._config,
            collector=self._collector,
            notify=self._notify,
        )
        self._records: list[CellRecord] = []
        self._compiled: dict[str, tuple[CellRecord, Cell]] = {}
        self._cells: dict[str, Cell] = {}
        self._graph: DependencyGraph | None = DependencyGraph.build(())
        self._graph_error: GraphError | None = None
        self._blocked: set[str] = set()
        self._last_defs: dict[str, tuple[str, ...]] = {}
        self._unannounced: list[str] = []
        self._tasks: set[asyncio.Task[Any]] = set()
        self._active = 0
        self._flush_handle: asyncio.Handle | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> WeftConfig:
        return self._config

    @property
    def collector(self) -> RuntimeCollector:
        return self._collector

    @property
    def broadcaster(self) -> Broadcaster:
        return self._broadcaster

    @property
    def triggers(self) -> TriggerSubsystem:
        return self._triggers

    @property
    def graph(self) -> DependencyGraph | None:
        """The current graph, or ``None`` while a build error is pending."""
        return self._graph

    @property
    def graph_error(self) -> GraphError | None:
        """The error that blocks execution, if any."""
        return self._graph_error

    @property
    def cells(self) -> Mapping[str, Cell]:
        """All cells in presentation order, including unparseable ones."""
        return MappingProxyType(self._cells)

    @property
    def records(self) -> tuple[CellRecord, ...]:
        return tuple(self._records)

    @property
    def namespace(self) -> Mapping[str, Any]:
        """Read-only snapshot of every global value (ambient names included)."""
        return MappingProxyType({**self._store.ambient(), **self._store.snapshot()})

    @property
    def registry(self) -> CellRegistry:
        """Callable view of the named cells.

        Raises:
            GraphError: The graph cannot currently be built.

        """
        return CellRegistry(self._require_graph(), self._store)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def view(self, cell_id: str) -> CellView:
        """Current view of one cell.

        Raises:
            CellNotFoundError: Unknown cell id.

        """
        cell = self._cells.get(cell_id)
        if cell is None:
            msg = f"No cell with id {cell_id!r}"
            raise CellNotFoundError(msg)
        state = self._scheduler.state(cell_id)
        return CellView(
            cell_id=cell_id,
            name=cell.name,
            status=state.status,
            output=state.output,
            error_message=state.error_message,
        )

    def views(self) -> dict[str, CellView]:
        """Views of all cells, in presentation order."""
        return {cell_id: self.view(cell_id) for cell_id in self._cells}

    # ------------------------------------------------------------------
    # Notebook changes
    # ------------------------------------------------------------------

    def load(self, records: Iterable[CellRecord]) -> None:
        """Replace the whole notebook.  Nothing runs until ``run_all``."""
        records = _unique(records)
        for cell_id in list(self._cells):
            self._scheduler.retract(cell_id)
            self._scheduler.forget(cell_id)
        self._records = records
        self._compiled.clear()
        self._last_defs.clear()
        self._blocked.clear()
        self._rebuild()

    def set_cell(self, record: CellRecord) -> None:
        """Add or replace one cell without running anything.

        The cell and everything downstream of it become stale.

        """
        self._replace(record)

    async def edit(self, cell_id: str, source: str) -> RunReport | None:
        """Replace a cell's source and bring affected cells up to date.

        In ``autorun`` mode the edited cell and its consumers run; in
        ``lazy`` mode they are marked stale.  The new source is kept even
        when the notebook no longer builds.

        Raises:
            CellNotFoundError: Unknown cell id.
            GraphError: The edit leaves the notebook unbuildable.

        """
        old = self._record(cell_id)
        roots = self._replace(replace(old, source=source, syntax_error=None))
        return await self._after_change(roots, "edit")

    async def delete(self, cell_id: str) -> None:
        """Remove a cell; its definitions are retracted and its dependents go stale.

        Raises:
            CellNotFoundError: Unknown cell id.

        """
        self._record(cell_id)
        dependents = self._dependents(cell_id)
        self._records = [r for r in self._records if r.id != cell_id]
        self._scheduler.retract(cell_id)
        self._scheduler.forget(cell_id)
        recovered = self._rebuild()
        self._mark_stale(dependents | recovered)
        await self._announce()

    async def sync(self, records: Iterable[CellRecord]) -> RunReport | None:
        """Reload the notebook, touching only what changed.

        Removed cells are retracted; added and modified cells (and the
        dependents of every changed cell) run or go stale like an edit.

        """
        records = _unique(records)
        changes = diff_records(self._records, records)
        roots: set[str] = set()
        for change in changes:
            if change.kind != "added":
                roots |= self._dependents(change.cell_id)
            if change.kind == "removed":
                self._scheduler.retract(change.cell_id)
                self._scheduler.forget(change.cell_id)
            else:
                roots.add(change.cell_id)
                self._scheduler.supersede(change.cell_id)
        self._records = records
        roots |= self._rebuild()
        roots = {r for r in roots if r in self._cells}
        self._mark_stale(roots)
        if not changes:
            return None
        return await self._after_change(roots, "sync")

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    async def run_all(self) -> RunReport:
        """Run every cell.

        Raises:
            GraphError: The notebook cannot be built.

        """
        graph = self._require_graph()
        return await self.submit(RunRequest.of(graph.cells, reason="run_all"))

    async def run_stale(self) -> RunReport | None:
        """Run every stale cell (and whatever consumes it)."""
        graph = self._require_graph()
        stale = [cid for cid in graph.cells if self._scheduler.state(cid).status == "stale"]
        if not stale:
            return None
        return await self.submit(RunRequest.of(stale, reason="stale"))

    async def submit(self, request: RunRequest) -> RunReport:
        """Run one request to completion.

        Setter events raised while it runs are merged into a single
        follow-up request that starts in the background when no pass is
        left running.

        Raises:
            GraphError: The notebook cannot be built.

        """
        graph = self._require_graph()
        await self._announce()
        self._active += 1
        try:
            report = await self._scheduler.run(graph, request)
        finally:
            self._active -= 1
        if self._active == 0:
            self._flush_setters()
        return report

    async def handle_interaction(self, event: InteractionEvent) -> None:
        """Apply a front-end interaction.

        Raises:
            HolderError: Unknown object id.

        """
        await self._triggers.handle_interaction(event)

    async def wait_idle(self) -> None:
        """Wait until no triggered run, debounce timer or setter flush is outstanding."""
        while True:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
                continue
            if self._active == 0 and self._flush_handle is None:
                self._flush_setters()
                if self._tasks:
                    continue
            if self._flush_handle is not None or self._triggers.has_pending():
                await asyncio.sleep(self._triggers.debounce_seconds / 2)
                continue
            return

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_graph(self) -> DependencyGraph:
        if self._graph_error is not None:
            raise self._graph_error
        assert self._graph is not None
        return self._graph

    def _record(self, cell_id: str) -> CellRecord:
        for record in self._records:
            if record.id == cell_id:
                return record
        msg = f"No cell with id {cell_id!r}"
        raise CellNotFoundError(msg)

    def _dependents(self, cell_id: str) -> frozenset[str]:
        """Cells that currently read what cell_id defines."""
        graph = self._graph
        if graph is None or cell_id not in graph:
            return frozenset()
        if cell_id == graph.setup_id:
            return graph.ambient_consumers()
        return graph.children(cell_id)

    def _replace(self, record: CellRecord) -> set[str]:
        """Swap in a record, rebuild, and return the cells that must catch up."""
        dependents = self._dependents(record.id)
        for index, existing in enumerate(self._records):
            if existing.id == record.id:
                self._records[index] = record
                break
        else:
            self._records.append(record)
        self._scheduler.supersede(record.id)
        roots = set(dependents) | self._rebuild()
        if self._cells[record.id].runnable:
            roots.add(record.id)
        self._mark_stale(roots)
        return roots

    def _rebuild(self) -> frozenset[str]:
        """Recompile changed records and rebuild the graph.

        Returns cells that were blocked by the previous build error and are
        buildable again.

        """
        t0 = time.perf_counter()
        compiled: dict[str, tuple[CellRecord, Cell]] = {}
        for record in self._records:
            cached = self._compiled.get(record.id)
            if cached is None or cached[0] != record:
                cached = (record, compile_cell(record))
            compiled[record.id] = cached
        self._compiled = compiled
        self._cells = {cell_id: cell for cell_id, (_, cell) in compiled.items()}

        unbuildable: dict[str, str] = {}
        last_defs: dict[str, tuple[str, ...]] = {}
        for cell in self._cells.values():
            if cell.runnable:
                last_defs[cell.id] = cell.defs
                continue
            self._scheduler.retract(cell.id)
            self._mark_now(cell.id, "error", cell.syntax_error)
            last_defs[cell.id] = self._last_defs.get(cell.id, ())
            for name in last_defs[cell.id]:
                unbuildable.setdefault(name, cell.id)
        self._last_defs = last_defs
        self._scheduler.set_unbuildable(unbuildable)

        blocked, self._blocked = self._blocked, set()
        try:
            graph = DependencyGraph.build(self._cells.values())
        except GraphError as exc:
            self._graph = None
            self._graph_error = exc
            self._collector.record_graph_rejected(type(exc).__name__, str(exc), exc.cell_ids)
            for cell_id in exc.cell_ids:
                if cell_id in self._cells:
                    self._blocked.add(cell_id)
                    self._mark_now(cell_id, "error", str(exc))
            return frozenset()

        self._graph = graph
        self._graph_error = None
        self._collector.record_graph_built(
            cells=len(graph),
            edges=graph.edge_count(),
            ambient_names=len(graph.ambient),
            build_ms=(time.perf_counter() - t0) * 1000,
        )
        return frozenset(cell_id for cell_id in blocked if cell_id in graph)

    def _mark_now(self, cell_id: str, status: CellStatus, error_message: str | None = None) -> None:
        state = self._scheduler.state(cell_id)
        state.status = status
        state.error_message = error_message
        if status == "error":
            state.output = None
        self._unannounced.append(cell_id)

    def _mark_stale(self, roots: Iterable[str]) -> None:
        """Mark roots and everything downstream of them stale."""
        graph = self._graph
        if graph is None:
            return
        for cell_id in self._scheduler.plan(graph, RunRequest.of(roots)):
            self._mark_now(cell_id, "stale")

    async def _after_change(self, roots: Iterable[str], reason: RunReason) -> RunReport | None:
        await self._announce()
        graph = self._require_graph()
        roots = [r for r in roots if r in graph]
        if not roots or self._config.on_cell_change == "lazy":
            return None
        return await self.submit(RunRequest.of(roots, reason=reason))

    async def _notify(self, cell_id: str, state: CellState) -> None:
        await self._broadcaster.push_cell(
            CellNotification(
                cell_id=cell_id,
                status=state.status,
                output=state.output,
                error_message=state.error_message,
            )
        )

    async def _announce(self) -> None:
        """Push notifications for status changes made outside a pass."""
        pending, self._unannounced = self._unannounced, []
        for cell_id in dict.fromkeys(pending):
            if cell_id in self._cells:
                await self._notify(cell_id, self._scheduler.state(cell_id))

    # ----- background runs -----

    def _spawn(self, request: RunRequest) -> None:
        """Start a triggered request as a background task."""
        if self._graph is None:
            return
        task = asyncio.get_running_loop().create_task(
            self._run_triggered(request), name=f"weft-{request.reason}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    async def _run_triggered(self, request: RunRequest) -> RunReport | None:
        if self._graph_error is not None:
            return None
        return await self.submit(request)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            print(f"  Triggered run error: {exc!r}", file=sys.stderr)

    def _schedule_flush(self) -> None:
        """Setter event queued: flush now-ish unless a pass will flush it."""
        if self._active or self._flush_handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: flushed by the next submit or wait_idle.
            return
        self._flush_handle = loop.call_soon(self._flush_now)

    def _flush_now(self) -> None:
        self._flush_handle = None
        if self._active == 0:
            self._flush_setters()

    def _flush_setters(self) -> None:
        request = self._triggers.take_pending()
        if request is not None:
            self._spawn(request)


def _unique(records: Iterable[CellRecord]) -> list[CellRecord]:
    records = list(records)
    seen: set[str] = set()
    for record in records:
        if record.id in seen:
            msg = f"Duplicate cell id {record.id!r}"
            raise ValueError(msg)
        seen.add(record.id)
    return records
