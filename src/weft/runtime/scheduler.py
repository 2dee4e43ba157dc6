"""Execution scheduler — runs the closure of a request in dependency order.

A pass takes a ``RunRequest`` and:

1. computes the closure (roots plus every transitive consumer, never
   entering excluded cells; an included setup cell pulls in every cell that
   reads its ambient names),
2. orders it topologically with presentation-order tie breaks,
3. bumps every planned cell's generation and marks it queued,
4. starts one task per cell; a task waits for its in-closure parents, then
   takes a parallelism slot and the cell's own lock and executes,
5. installs the definitions of a successful run, or on failure retracts
   them and lets every dependent in the closure skip without running.

A run whose generation moved on while it was executing (a newer pass or an
edit planned the same cell) is discarded and never installed; its
dependents in the same pass are discarded with it.  The newer pass owns the
cell's status from then on.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Literal

from weft._types import CellStatus, RunReason
from weft.observability.profiler import RunProfiler
from weft.runtime.executor import CellOutput, execute_cell
from weft.runtime.tracebacks import format_cell_error

if TYPE_CHECKING:
    from weft.config import WeftConfig
    from weft.observability.collector import RuntimeCollector
    from weft.runtime.graph import DependencyGraph
    from weft.runtime.namespace import NamespaceStore
    from weft.runtime.triggers import TriggerSubsystem

# Message shown on cells skipped because something upstream failed
SKIPPED_MESSAGE = "not run due to upstream failure"

type OutcomeStatus = Literal["ok", "error", "skipped", "discarded"]


@dataclass(frozen=True, slots=True)
class RunRequest:
    """A dirty set to bring up to date.

    Attributes:
        roots: Cells that must run.
        excluded: Cells the pass must neither run nor propagate through.
        reason: What produced the request.

    """

    roots: frozenset[str]
    excluded: frozenset[str] = frozenset()
    reason: RunReason = "edit"

    @classmethod
    def of(
        cls,
        roots: Iterable[str],
        *,
        excluded: Iterable[str] = (),
        reason: RunReason = "edit",
    ) -> RunRequest:
        return cls(roots=frozenset(roots), excluded=frozenset(excluded), reason=reason)


@dataclass(frozen=True, slots=True)
class CellOutcome:
    """How one planned cell ended in a pass."""

    cell_id: str
    status: OutcomeStatus
    duration_ms: float = 0.0
    error: str | None = None
    blocked_by: str | None = None


@dataclass(frozen=True, slots=True)
class RunReport:
    """Result of one pass.

    Attributes:
        request: The request that was run.
        order: Planned cells in execution order.
        started: Cells that actually began executing, in start order.
        outcomes: Cell id -> outcome, in planned order.

    """

    request: RunRequest
    order: tuple[str, ...]
    started: tuple[str, ...]
    outcomes: Mapping[str, CellOutcome]

    def with_status(self, status: OutcomeStatus) -> tuple[str, ...]:
        """Planned cells with the given outcome, in planned order."""
        return tuple(cid for cid in self.order if self.outcomes[cid].status == status)

    @property
    def ok(self) -> bool:
        """True when every planned cell ran successfully."""
        return all(o.status == "ok" for o in self.outcomes.values())


@dataclass(slots=True)
class CellState:
    """Runtime state of one cell.

    Attributes:
        status: Lifecycle status.
        output: Output of the last successful run.
        error_message: Error text for ``error`` and ``skipped`` cells.
        exception: The exception of the last failed run.
        generation: Edit generation; bumped whenever a newer run is planned.

    """

    status: CellStatus = "idle"
    output: CellOutput | None = None
    error_message: str | None = None
    exception: BaseException | None = field(default=None, repr=False)
    generation: int = 0


type Notify = Callable[[str, CellState], Awaitable[Any]]


@dataclass(slots=True)
class _Pass:
    graph: DependencyGraph
    closure: frozenset[str]
    generations: dict[str, int]
    ambient_consumers: frozenset[str]
    done: dict[str, asyncio.Event]
    outcomes: dict[str, CellOutcome] = field(default_factory=dict)
    started: list[str] = field(default_factory=list)


class Scheduler:
    """Plans and executes run passes for one session.

    The scheduler is the only writer of the namespace store.

    Args:
        store: The session's namespace store.
        triggers: The session's trigger subsystem (holder registration).
        config: Session configuration (``max_parallelism``, ``verbose``).
        collector: Event recorder.
        notify: Awaited after every cell status change.

    """

    def __init__(
        self,
        store: NamespaceStore,
        triggers: TriggerSubsystem,
        *,
        config: WeftConfig,
        collector: RuntimeCollector,
        notify: Notify | None = None,
    ) -> None:
        self._store = store
        self._triggers = triggers
        self._config = config
        self._collector = collector
        self._notify = notify
        self._slots = asyncio.Semaphore(config.max_parallelism)
        self._locks: dict[str, asyncio.Lock] = {}
        self._states: dict[str, CellState] = {}
        self._unbuildable: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Cell state
    # ------------------------------------------------------------------

    @property
    def states(self) -> Mapping[str, CellState]:
        return MappingProxyType(self._states)

    def state(self, cell_id: str) -> CellState:
        """State of a cell, created idle on first access."""
        state = self._states.get(cell_id)
        if state is None:
            state = self._states[cell_id] = CellState()
        return state

    def supersede(self, cell_id: str) -> int:
        """Bump a cell's generation so in-flight runs of it are discarded."""
        state = self.state(cell_id)
        state.generation += 1
        return state.generation

    def forget(self, cell_id: str) -> None:
        """Drop all runtime state of a deleted cell."""
        self.supersede(cell_id)
        self._states.pop(cell_id, None)
        self._locks.pop(cell_id, None)

    def set_unbuildable(self, owners: Mapping[str, str]) -> None:
        """Names last defined by cells that no longer parse, mapped to those cells.

        A cell reading such a name (with no other owner) is skipped instead
        of run against the missing value.

        """
        self._unbuildable = dict(owners)

    def retract(self, cell_id: str) -> None:
        """Remove a cell's definitions and release its holders."""
        self._store.retract(cell_id)
        self._triggers.release(cell_id)

    async def mark(
        self,
        cell_id: str,
        status: CellStatus,
        *,
        output: CellOutput | None = None,
        error_message: str | None = None,
        exception: BaseException | None = None,
    ) -> None:
        """Set a cell's status and notify listeners."""
        state = self.state(cell_id)
        state.status = status
        if status == "ok":
            state.output = output
        elif status in ("error", "skipped"):
            state.output = None
        state.error_message = error_message
        state.exception = exception
        if self._notify is not None:
            await self._notify(cell_id, state)

    def _lock(self, cell_id: str) -> asyncio.Lock:
        lock = self._locks.get(cell_id)
        if lock is None:
            lock = self._locks[cell_id] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan(self, graph: DependencyGraph, request: RunRequest) -> tuple[str, ...]:
        """Closure of the request in execution order."""
        closure = set(graph.descendants(request.roots, request.excluded))
        setup = graph.setup_id
        if setup is not None and setup in closure:
            closure |= graph.descendants(graph.ambient_consumers(), request.excluded)
        return graph.topological_order(closure)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run(self, graph: DependencyGraph, request: RunRequest) -> RunReport:
        """Run one pass and return its report."""
        profiler = RunProfiler(self._collector.log, verbose=self._config.verbose)
        profiler.begin(request.reason)

        profiler.start("plan")
        order = self.plan(graph, request)
        generations: dict[str, int] = {}
        for cell_id in order:
            generations[cell_id] = self.supersede(cell_id)
            self._collector.record_queued(
                cell_id, reason=request.reason, generation=generations[cell_id]
            )
        profiler.stop("plan")

        for cell_id in order:
            await self.mark(cell_id, "queued")

        run = _Pass(
            graph=graph,
            closure=frozenset(order),
            generations=generations,
            ambient_consumers=graph.ambient_consumers(),
            done={cell_id: asyncio.Event() for cell_id in order},
        )

        profiler.start("execute")
        tasks = [
            asyncio.create_task(self._run_cell(run, cell_id), name=f"weft-cell-{cell_id}")
            for cell_id in order
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            self._abandon(run)
            raise
        profiler.stop("execute")

        outcomes = {cell_id: run.outcomes[cell_id] for cell_id in order}
        counts = {"ok": 0, "error": 0, "skipped": 0, "discarded": 0}
        for outcome in outcomes.values():
            counts[outcome.status] += 1
        profiler.finish(
            planned=len(order),
            run=counts["ok"],
            failed=counts["error"],
            skipped=counts["skipped"],
            discarded=counts["discarded"],
        )
        return RunReport(
            request=request,
            order=order,
            started=tuple(run.started),
            outcomes=MappingProxyType(outcomes),
        )

    def _abandon(self, run: _Pass) -> None:
        """Cells of an interrupted pass that never finished go back to stale."""
        for cell_id in run.generations:
            if cell_id in run.outcomes or self._stale(run, cell_id):
                continue
            state = self.state(cell_id)
            if state.status in ("queued", "running"):
                state.status = "stale"
                state.error_message = None

    def _upstream(self, run: _Pass, cell_id: str) -> list[str]:
        """Cells whose results this cell needs, in presentation order."""
        graph = run.graph
        upstream = sorted(graph.parents(cell_id), key=graph.position)
        setup = graph.setup_id
        if setup is not None and cell_id != setup and cell_id in run.ambient_consumers:
            upstream.insert(0, setup)
        return upstream

    async def _run_cell(self, run: _Pass, cell_id: str) -> None:
        try:
            waits = [p for p in self._upstream(run, cell_id) if p in run.closure]
            setup = run.graph.setup_id
            if setup in run.closure and cell_id != setup and setup not in waits:
                waits.insert(0, setup)
            for parent in waits:
                await run.done[parent].wait()
            run.outcomes[cell_id] = await self._execute(run, cell_id)
        finally:
            run.done[cell_id].set()

    def _stale(self, run: _Pass, cell_id: str) -> bool:
        return self.state(cell_id).generation != run.generations[cell_id]

    def _discard(self, run: _Pass, cell_id: str) -> CellOutcome:
        self._collector.record_discarded(cell_id, generation=run.generations[cell_id])
        return CellOutcome(cell_id, "discarded")

    def _blocker(self, run: _Pass, cell_id: str) -> tuple[str | None, bool]:
        """(blocking cell, discarded) for the first upstream cell that did not succeed."""
        for parent in self._upstream(run, cell_id):
            if parent in run.closure:
                status = run.outcomes[parent].status
                if status == "discarded":
                    return parent, True
                if status in ("error", "skipped"):
                    return parent, False
            elif self.state(parent).status in ("error", "skipped"):
                return parent, False
        for ref in sorted(run.graph.external_refs(cell_id)):
            owner = self._unbuildable.get(ref)
            if owner is not None:
                return owner, False
        return None, False

    async def _execute(self, run: _Pass, cell_id: str) -> CellOutcome:
        blocker, discarded = self._blocker(run, cell_id)
        if discarded or self._stale(run, cell_id):
            return self._discard(run, cell_id)
        if blocker is not None:
            self.retract(cell_id)
            self._collector.record_skipped(cell_id, blocked_by=blocker)
            await self.mark(cell_id, "skipped", error_message=SKIPPED_MESSAGE)
            return CellOutcome(cell_id, "skipped", blocked_by=blocker)

        cell = run.graph.cell(cell_id)
        async with self._slots, self._lock(cell_id):
            if self._stale(run, cell_id):
                return self._discard(run, cell_id)
            run.started.append(cell_id)
            await self.mark(cell_id, "running")

            self._triggers.release(cell_id)
            values = self._store.snapshot(cell.refs)
            ambient = {} if cell.is_setup else self._store.ambient()
            t0 = time.perf_counter()
            try:
                result = await execute_cell(cell, values, ambient, triggers=self._triggers)
            except BaseException as exc:
                if _must_propagate(exc):
                    raise
                duration_ms = (time.perf_counter() - t0) * 1000
                if self._stale(run, cell_id):
                    return self._discard(run, cell_id)
                self.retract(cell_id)
                message = format_cell_error(exc, cell_id)
                self._collector.record_executed(
                    cell_id, status="error", duration_ms=duration_ms, error=message
                )
                await self.mark(cell_id, "error", error_message=message, exception=exc)
                return CellOutcome(cell_id, "error", duration_ms, error=message)

            duration_ms = (time.perf_counter() - t0) * 1000
            if self._stale(run, cell_id):
                return self._discard(run, cell_id)
            self._store.install(cell_id, result.definitions, ambient=cell.is_setup)
            self._triggers.register(cell_id, result.holders, result.bindings)
            self._collector.record_executed(cell_id, status="ok", duration_ms=duration_ms)
            await self.mark(cell_id, "ok", output=result.output)
            return CellOutcome(cell_id, "ok", duration_ms)


def _must_propagate(exc: BaseException) -> bool:
    """Exceptions that end the pass instead of failing one cell.

    A ``CancelledError`` only propagates when the running task itself is
    being cancelled; one raised by the cell body is an ordinary cell error.

    """
    if isinstance(exc, KeyboardInterrupt):
        return True
    if isinstance(exc, asyncio.CancelledError):
        task = asyncio.current_task()
        return task is not None and task.cancelling() > 0
    return False
