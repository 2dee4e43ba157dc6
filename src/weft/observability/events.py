"""Runtime event model for notebook observability.

Defines event types for graph building, cell scheduling, reactive triggers
and value broadcast.

All events are frozen dataclasses with:
- ``timestamp_ns``: Monotonic nanosecond timestamp
- Descriptive fields for the specific event type

Thread Safety:
    All events are frozen (immutable) and safe to share across threads.

"""

import time
from dataclasses import dataclass
from typing import Literal


# ---------------------------------------------------------------------------
# Graph events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GraphBuilt:
    """A dependency graph was built from the current cells.

    Attributes:
        cells: Number of runnable cells in the graph.
        edges: Number of parent -> child edges.
        ambient_names: Number of names defined by the setup cell.
        build_ms: Time spent analyzing and building in milliseconds.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    cells: int
    edges: int
    ambient_names: int
    build_ms: float
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class GraphRejected:
    """Graph building failed; the notebook cannot run until it is fixed.

    Attributes:
        kind: Error class name (``DefinitionConflict``, ``CycleError``, ...).
        message: Human-readable error message.
        cell_ids: Cells involved in the error.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    kind: str
    message: str
    cell_ids: tuple[str, ...]
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Scheduler events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CellQueued:
    """A cell was planned into a run pass.

    Attributes:
        cell_id: The queued cell.
        reason: What caused the pass.
        generation: Edit generation the run was planned with.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    cell_id: str
    reason: str
    generation: int
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class CellExecuted:
    """A cell finished executing (successfully or not).

    Attributes:
        cell_id: The executed cell.
        status: ``ok`` or ``error``.
        duration_ms: Wall-clock execution time in milliseconds.
        error: Formatted error message when status is ``error``.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    cell_id: str
    status: Literal["ok", "error"]
    duration_ms: float
    error: str | None
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class CellSkipped:
    """A cell was not run because an upstream cell failed.

    Attributes:
        cell_id: The skipped cell.
        blocked_by: The failed (or skipped) parent that blocked it.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    cell_id: str
    blocked_by: str
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class CellDiscarded:
    """A run was superseded by a newer generation and never installed.

    Attributes:
        cell_id: The cell whose run was discarded.
        generation: Generation the discarded run was planned with.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    cell_id: str
    generation: int
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Reactive trigger events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SelfLoopSuppressed:
    """A consumer was left out of a triggered run by an exclusion policy.

    Distinct from a missing dependency: the cell does read the holder, but
    scheduling it would make it trigger itself.

    Attributes:
        cell_id: The excluded cell.
        object_id: The holder whose change was being propagated.
        policy: ``creator`` (interaction) or ``invoker`` (setter).
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    cell_id: str
    object_id: str
    policy: Literal["creator", "invoker"]
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class InteractionApplied:
    """A front-end interaction updated a UI element's value.

    Attributes:
        object_id: The updated element.
        client_id: The originating client, if known.
        debounced: True when the scheduling of a pass was deferred.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    object_id: str
    client_id: str | None
    debounced: bool
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class ValueBroadcasted:
    """A holder value was pushed to connected clients.

    Attributes:
        object_id: The holder whose value was pushed.
        clients_notified: Number of clients that received the value.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    object_id: str
    clients_notified: int
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Profiling events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RunProfile:
    """Timing breakdown for one scheduler pass.

    Attributes:
        reason: What caused the pass.
        cells_planned: Cells in the pass closure.
        cells_run: Cells that executed successfully.
        cells_failed: Cells that raised.
        cells_skipped: Cells skipped due to upstream failure.
        cells_discarded: Runs superseded by a newer generation.
        plan_ms: Time spent computing the closure and order.
        execute_ms: Time spent executing cells.
        total_ms: End-to-end pass time.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    reason: str
    cells_planned: int
    cells_run: int
    cells_failed: int
    cells_skipped: int
    cells_discarded: int
    plan_ms: float
    execute_ms: float
    total_ms: float
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Union type
# ---------------------------------------------------------------------------

type RuntimeEvent = (
    GraphBuilt
    | GraphRejected
    | CellQueued
    | CellExecuted
    | CellSkipped
    | CellDiscarded
    | SelfLoopSuppressed
    | InteractionApplied
    | ValueBroadcasted
    | RunProfile
)


def now_ns() -> int:
    """Return the current monotonic clock value in nanoseconds."""
    return time.monotonic_ns()
