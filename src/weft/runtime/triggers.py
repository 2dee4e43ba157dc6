"""Reactive trigger subsystem — turns holder changes into run requests.

Two kinds of events change a holder's value:

- **Interaction events** come from a front-end control.  The new value is
  applied and pushed to every other connected client right away; scheduling
  the cells that read the element is deferred by a trailing debounce.
  The creating cell is never scheduled (creator exclusion): re-running it
  would recreate the element and reset the value the user just picked.
- **Setter events** come from cell code calling a State setter.  The value
  is applied at once; the readers of the state are scheduled, except the
  cell that called the setter (invoker exclusion) unless the state allows
  self-loops.  Setter events raised while a pass is running are coalesced
  into a single follow-up request.

Every exclusion is recorded as a ``SelfLoopSuppressed`` event naming the
policy, so it can be told apart from a missing dependency.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, Protocol

from weft._errors import HolderError
from weft.runtime.broadcaster import ValueBroadcast
from weft.runtime.context import current_execution
from weft.runtime.holders import State, UIElement, ValueHolder
from weft.runtime.scheduler import RunRequest

if TYPE_CHECKING:
    from weft.config import WeftConfig
    from weft.observability.collector import RuntimeCollector
    from weft.runtime.broadcaster import Broadcaster
    from weft.runtime.graph import DependencyGraph


@dataclass(frozen=True, slots=True)
class InteractionEvent:
    """A front-end control changed value.

    Attributes:
        object_id: The element's identity token.
        value: The new value.
        client_id: The originating client, excluded from the broadcast.

    """

    object_id: str
    value: Any
    client_id: str | None = None


# ---------------------------------------------------------------------------
# Exclusion policies
# ---------------------------------------------------------------------------


class ExclusionPolicy(Protocol):
    """Decides which consumers a holder change must not schedule."""

    name: Literal["creator", "invoker"]

    def excluded(self, holder: ValueHolder, invoker: str | None) -> frozenset[str]: ...


class CreatorExclusion:
    """Interaction events never re-run the cell that created the element."""

    name: Literal["creator"] = "creator"

    def excluded(self, holder: ValueHolder, invoker: str | None) -> frozenset[str]:
        if holder.cell_id is None:
            return frozenset()
        return frozenset({holder.cell_id})


class InvokerExclusion:
    """Setter events never re-run the calling cell, unless self-loops are allowed."""

    name: Literal["invoker"] = "invoker"

    def __init__(self, allow_self_loops: bool = False) -> None:
        self.allow_self_loops = allow_self_loops

    def excluded(self, holder: ValueHolder, invoker: str | None) -> frozenset[str]:
        if invoker is None:
            return frozenset()
        allow = self.allow_self_loops
        if isinstance(holder, State) and holder.allow_self_loops is not None:
            allow = holder.allow_self_loops
        if allow:
            return frozenset()
        return frozenset({invoker})


# ---------------------------------------------------------------------------
# Trigger subsystem
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _Pending:
    """Setter events accumulated until the current pass ends."""

    roots: set[str]
    excluded: set[str]

    def merge(self) -> RunRequest:
        return RunRequest(
            roots=frozenset(self.roots),
            excluded=frozenset(self.excluded - self.roots),
            reason="setter",
        )


class TriggerSubsystem:
    """Routes interaction and setter events to the scheduler.

    Args:
        config: Session configuration (debounce window, self-loop default).
        graph: Returns the current dependency graph (``None`` while invalid).
        submit: Starts a run for a request; must not block.
        collector: Event recorder.
        broadcaster: Client fan-out for value broadcasts.
        on_pending: Called whenever a setter event is queued, so the owner
            can flush it once no pass is running.

    """

    def __init__(
        self,
        config: WeftConfig,
        *,
        graph: Callable[[], DependencyGraph | None],
        submit: Callable[[RunRequest], object],
        collector: RuntimeCollector,
        broadcaster: Broadcaster,
        on_pending: Callable[[], object] | None = None,
    ) -> None:
        self._config = config
        self._graph = graph
        self._submit = submit
        self._collector = collector
        self._broadcaster = broadcaster
        self._on_pending = on_pending
        self._creator = CreatorExclusion()
        self._invoker = InvokerExclusion(config.allow_self_loops)
        self._holders: dict[str, ValueHolder] = {}
        self._bindings: dict[str, tuple[str, ...]] = {}
        self._by_cell: dict[str, tuple[str, ...]] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._pending: _Pending | None = None

    # ----- registration -----

    def register(
        self,
        cell_id: str,
        holders: Iterable[ValueHolder],
        bindings: Mapping[str, tuple[str, ...]],
    ) -> None:
        """Attach the holders a cell created, replacing its previous ones."""
        self.release(cell_id)
        ids: list[str] = []
        for holder in holders:
            holder._attach(self)
            self._holders[holder.object_id] = holder
            self._bindings[holder.object_id] = tuple(bindings.get(holder.object_id, ()))
            ids.append(holder.object_id)
        self._by_cell[cell_id] = tuple(ids)

    def release(self, cell_id: str) -> None:
        """Detach every holder the cell created; their ids become unknown."""
        for object_id in self._by_cell.pop(cell_id, ()):
            holder = self._holders.pop(object_id, None)
            self._bindings.pop(object_id, None)
            if holder is not None:
                holder._attach(None)
            timer = self._timers.pop(object_id, None)
            if timer is not None:
                timer.cancel()

    def lookup(self, object_id: str) -> ValueHolder:
        """Resolve an object id to its registered holder.

        Raises:
            HolderError: The id belongs to no registered holder.

        """
        try:
            return self._holders[object_id]
        except KeyError:
            msg = f"No registered value holder with id {object_id!r}"
            raise HolderError(msg) from None

    def bound_names(self, holder: ValueHolder) -> tuple[str, ...]:
        """Global names the creating cell bound to this holder."""
        return self._bindings.get(holder.object_id, ())

    @property
    def holders(self) -> Mapping[str, ValueHolder]:
        return dict(self._holders)

    # ----- consumers -----

    def _request_for(
        self,
        holder: ValueHolder,
        policy: ExclusionPolicy,
        invoker: str | None,
    ) -> tuple[frozenset[str], frozenset[str]]:
        """(roots, excluded) for one holder change under a policy."""
        graph = self._graph()
        if graph is None:
            return frozenset(), frozenset()
        consumers = graph.consumers_of(self.bound_names(holder))
        excluded = policy.excluded(holder, invoker)
        for cell_id in sorted(consumers & excluded, key=graph.position):
            self._collector.record_self_loop(
                cell_id, object_id=holder.object_id, policy=policy.name
            )
        return consumers - excluded, excluded

    # ----- interaction events -----

    async def handle_interaction(self, event: InteractionEvent) -> None:
        """Apply a front-end value, broadcast it, and schedule its readers.

        Raises:
            HolderError: Unknown object id.

        """
        holder = self.lookup(event.object_id)
        holder._apply(event.value)

        window = self._config.debounce_seconds
        self._collector.record_interaction(
            holder.object_id, client_id=event.client_id, debounced=window > 0
        )
        notified = await self._broadcaster.push_value(
            ValueBroadcast(object_id=holder.object_id, value=event.value),
            exclude_client=event.client_id,
        )
        self._collector.record_broadcast(holder.object_id, clients_notified=notified)

        if isinstance(holder, UIElement) and holder.on_change is not None:
            holder.on_change(event.value)

        if window <= 0:
            self._fire_interaction(holder.object_id)
            return
        timer = self._timers.pop(holder.object_id, None)
        if timer is not None:
            timer.cancel()
        loop = asyncio.get_running_loop()
        self._timers[holder.object_id] = loop.call_later(
            window, self._fire_interaction, holder.object_id
        )

    def _fire_interaction(self, object_id: str) -> None:
        self._timers.pop(object_id, None)
        holder = self._holders.get(object_id)
        if holder is None:
            # Released by a re-run of its creator while the timer was pending.
            return
        roots, excluded = self._request_for(holder, self._creator, None)
        if roots:
            self._submit(RunRequest(roots=roots, excluded=excluded, reason="interaction"))

    # ----- setter events -----

    def on_setter(self, holder: State, value: Any) -> None:
        """Apply a State update and queue its readers for the next pass."""
        new = value(holder.value) if callable(value) else value
        holder._apply(new)

        ctx = current_execution.get()
        if ctx is not None and ctx.isolated:
            # Isolated (registry) runs never schedule live cells.
            return
        invoker = ctx.cell_id if ctx is not None else None
        roots, excluded = self._request_for(holder, self._invoker, invoker)
        if not roots and not excluded:
            return
        if self._pending is None:
            self._pending = _Pending(set(), set())
        self._pending.roots.update(roots)
        self._pending.excluded.update(excluded)
        if self._on_pending is not None:
            self._on_pending()

    def take_pending(self) -> RunRequest | None:
        """Merge and clear the setter events accumulated so far."""
        pending, self._pending = self._pending, None
        if pending is None or not pending.roots:
            return None
        return pending.merge()

    # ----- status -----

    @property
    def debounce_seconds(self) -> float:
        return self._config.debounce_seconds

    def has_pending(self) -> bool:
        """True while debounce timers or coalesced setter events are outstanding."""
        return bool(self._timers) or self._pending is not None

    def cancel_timers(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
