"""Runtime observability — structured events for the notebook runtime.

Aggregates events from:
- **Graph builder**: builds and rejections
- **Scheduler**: queued, executed, skipped and discarded cells, pass profiles
- **Trigger subsystem**: interactions, suppressed self-loops, value broadcasts

All events are frozen dataclasses with nanosecond timestamps, safe for
concurrent production from the event loop and watcher threads.

Quick Start:
    >>> from weft.observability import RuntimeCollector, EventLog
    >>> log = EventLog()
    >>> collector = RuntimeCollector(log)
    >>> collector.record_skipped("b", blocked_by="a")
    >>> log.query(cell_id="b")[0].blocked_by
    'a'

"""

from weft.observability.collector import RuntimeCollector
from weft.observability.events import (
    CellDiscarded,
    CellExecuted,
    CellQueued,
    CellSkipped,
    GraphBuilt,
    GraphRejected,
    InteractionApplied,
    RunProfile,
    RuntimeEvent,
    SelfLoopSuppressed,
    ValueBroadcasted,
    now_ns,
)
from weft.observability.log import EventLog
from weft.observability.profiler import RunProfiler, compute_aggregate_stats

__all__ = [
    "CellDiscarded",
    "CellExecuted",
    "CellQueued",
    "CellSkipped",
    "EventLog",
    "GraphBuilt",
    "GraphRejected",
    "InteractionApplied",
    "RunProfile",
    "RunProfiler",
    "RuntimeCollector",
    "RuntimeEvent",
    "SelfLoopSuppressed",
    "ValueBroadcasted",
    "compute_aggregate_stats",
    "now_ns",
]
