"""Event log — bounded, thread-safe store of runtime events.

Keeps the most recent ``RuntimeEvent`` objects in a ring buffer and answers
the questions a notebook front-end or a test asks about them: what happened
to one cell, how its last run ended, and how many runs ended in each way.

Thread Safety:
    Every method takes a ``threading.Lock``; the watcher thread and the
    event loop may record and read concurrently.

"""

import threading
from collections import Counter, deque

from weft.observability.events import CellDiscarded, CellExecuted, CellSkipped, RuntimeEvent

# Events that end one planned run of a cell
_RUN_ENDINGS = (CellExecuted, CellSkipped, CellDiscarded)


def _about(event: RuntimeEvent, cell_id: str) -> bool:
    return getattr(event, "cell_id", None) == cell_id or cell_id in getattr(
        event, "cell_ids", ()
    )


class EventLog:
    """Ring buffer of runtime events.

    Args:
        max_events: Events retained; the oldest are dropped first.

    """

    __slots__ = ("_events", "_lock")

    def __init__(self, max_events: int = 10_000) -> None:
        self._events: deque[RuntimeEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    @property
    def max_events(self) -> int:
        return self._events.maxlen or 0

    def append(self, event: RuntimeEvent) -> None:
        with self._lock:
            self._events.append(event)

    def query(
        self,
        *,
        event_type: type | None = None,
        since_ns: int = 0,
        cell_id: str | None = None,
        limit: int = 100,
    ) -> list[RuntimeEvent]:
        """Matching events, most recent first.

        Args:
            event_type: Only events of this type.
            since_ns: Only events stamped at or after this time.
            cell_id: Only events about this cell (its ``cell_id``, or one of
                its ``cell_ids`` for graph events).
            limit: Maximum number of events returned.

        """
        with self._lock:
            matched: list[RuntimeEvent] = []
            for event in reversed(self._events):
                if len(matched) >= limit:
                    break
                if event_type is not None and not isinstance(event, event_type):
                    continue
                if since_ns and event.timestamp_ns < since_ns:
                    continue
                if cell_id is not None and not _about(event, cell_id):
                    continue
                matched.append(event)
            return matched

    def history(self, cell_id: str) -> list[RuntimeEvent]:
        """Everything retained about one cell, oldest first."""
        with self._lock:
            return [event for event in self._events if _about(event, cell_id)]

    def last_run(self, cell_id: str) -> CellExecuted | CellSkipped | CellDiscarded | None:
        """How the cell's most recent planned run ended, if it is still retained."""
        with self._lock:
            for event in reversed(self._events):
                if isinstance(event, _RUN_ENDINGS) and event.cell_id == cell_id:
                    return event
        return None

    def outcome_counts(self) -> dict[str, int]:
        """Retained run endings by outcome: ``ok``, ``error``, ``skipped``, ``discarded``."""
        counts: Counter[str] = Counter({"ok": 0, "error": 0, "skipped": 0, "discarded": 0})
        with self._lock:
            for event in self._events:
                if isinstance(event, CellExecuted):
                    counts[event.status] += 1
                elif isinstance(event, CellSkipped):
                    counts["skipped"] += 1
                elif isinstance(event, CellDiscarded):
                    counts["discarded"] += 1
        return dict(counts)

    def clear(self) -> int:
        """Drop every event and return how many there were."""
        with self._lock:
            count = len(self._events)
            self._events.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
