"""Runtime collector — records notebook runtime events into an event log.

The graph builder, scheduler and trigger subsystem never build events
themselves; they call the ``record_*`` methods here, which stamp the event
with a monotonic timestamp and append it to the ``EventLog``.

Thread Safety:
    The collector delegates to ``EventLog`` which is internally locked.
    Safe for concurrent use from the event loop and watcher threads.

"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from weft.observability.events import (
    CellDiscarded,
    CellExecuted,
    CellQueued,
    CellSkipped,
    GraphBuilt,
    GraphRejected,
    InteractionApplied,
    SelfLoopSuppressed,
    ValueBroadcasted,
    now_ns,
)
from weft.observability.log import EventLog


class RuntimeCollector:
    """Event collector for one notebook session.

    Args:
        log: The EventLog to store events in.

    """

    __slots__ = ("_log",)

    def __init__(self, log: EventLog | None = None) -> None:
        self._log = log if log is not None else EventLog()

    @property
    def log(self) -> EventLog:
        """The underlying event log."""
        return self._log

    def record(self, event: Any) -> None:
        """Record an already-built event."""
        self._log.append(event)

    # ----- Graph events -----

    def record_graph_built(
        self,
        *,
        cells: int,
        edges: int,
        ambient_names: int = 0,
        build_ms: float = 0.0,
    ) -> None:
        """Record a successful graph build."""
        self._log.append(
            GraphBuilt(
                cells=cells,
                edges=edges,
                ambient_names=ambient_names,
                build_ms=build_ms,
                timestamp_ns=now_ns(),
            )
        )

    def record_graph_rejected(
        self,
        kind: str,
        message: str,
        cell_ids: Iterable[str] = (),
    ) -> None:
        """Record a graph build failure."""
        self._log.append(
            GraphRejected(
                kind=kind,
                message=message,
                cell_ids=tuple(cell_ids),
                timestamp_ns=now_ns(),
            )
        )

    # ----- Scheduler events -----

    def record_queued(self, cell_id: str, *, reason: str, generation: int) -> None:
        """Record a cell planned into a pass."""
        self._log.append(
            CellQueued(
                cell_id=cell_id,
                reason=reason,
                generation=generation,
                timestamp_ns=now_ns(),
            )
        )

    def record_executed(
        self,
        cell_id: str,
        *,
        status: str,
        duration_ms: float = 0.0,
        error: str | None = None,
    ) -> None:
        """Record a finished cell execution."""
        self._log.append(
            CellExecuted(
                cell_id=cell_id,
                status=status,  # type: ignore[arg-type]
                duration_ms=duration_ms,
                error=error,
                timestamp_ns=now_ns(),
            )
        )

    def record_skipped(self, cell_id: str, *, blocked_by: str) -> None:
        """Record a cell skipped due to upstream failure."""
        self._log.append(
            CellSkipped(cell_id=cell_id, blocked_by=blocked_by, timestamp_ns=now_ns())
        )

    def record_discarded(self, cell_id: str, *, generation: int) -> None:
        """Record a superseded run."""
        self._log.append(
            CellDiscarded(cell_id=cell_id, generation=generation, timestamp_ns=now_ns())
        )

    # ----- Reactive trigger events -----

    def record_self_loop(self, cell_id: str, *, object_id: str, policy: str) -> None:
        """Record a consumer left out by an exclusion policy."""
        self._log.append(
            SelfLoopSuppressed(
                cell_id=cell_id,
                object_id=object_id,
                policy=policy,  # type: ignore[arg-type]
                timestamp_ns=now_ns(),
            )
        )

    def record_interaction(
        self,
        object_id: str,
        *,
        client_id: str | None = None,
        debounced: bool = False,
    ) -> None:
        """Record an applied front-end interaction."""
        self._log.append(
            InteractionApplied(
                object_id=object_id,
                client_id=client_id,
                debounced=debounced,
                timestamp_ns=now_ns(),
            )
        )

    def record_broadcast(self, object_id: str, *, clients_notified: int = 0) -> None:
        """Record a value broadcast to clients."""
        self._log.append(
            ValueBroadcasted(
                object_id=object_id,
                clients_notified=clients_notified,
                timestamp_ns=now_ns(),
            )
        )
