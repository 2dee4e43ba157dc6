"""Value holders — UI elements and State, the sources of reactive triggers.

A holder is created by exactly one cell execution and bound to the global
names that cell assigns it to.  Its value never changes through ordinary
assignment: interaction events (UI elements) and setter calls (State) go
through the trigger subsystem, which updates the value and schedules the
cells that read the bound names.

Usage inside cells::

    # cell 1
    import weft
    slider = weft.UIElement(5, label="threshold")
    get_count, set_count = weft.state(0)

    # cell 2
    doubled = slider.value * 2
    total = get_count() + doubled

"""

from __future__ import annotations

import itertools
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from weft._errors import HolderError
from weft.runtime.context import current_execution

if TYPE_CHECKING:
    from weft.runtime.triggers import TriggerSubsystem

T = TypeVar("T")

# Object ids for holders created outside any cell
_detached_ids = itertools.count(1)


class ValueHolder(Generic[T]):
    """Base class for values that drive reactive re-execution.

    Attributes:
        object_id: Identity token, stable across re-runs of the creating cell.
        cell_id: Id of the creating cell (``None`` outside any cell).

    """

    __slots__ = ("_cell_id", "_object_id", "_triggers", "_value")

    def __init__(self, value: T) -> None:
        ctx = current_execution.get()
        if ctx is not None:
            object_id = ctx.next_object_id()
            ctx.holders.append(self)
            cell_id: str | None = ctx.cell_id
        else:
            object_id = f"detached-{next(_detached_ids)}"
            cell_id = None
        object.__setattr__(self, "_value", value)
        object.__setattr__(self, "_object_id", object_id)
        object.__setattr__(self, "_cell_id", cell_id)
        object.__setattr__(self, "_triggers", None)

    def __setattr__(self, name: str, value: Any) -> None:
        msg = (
            f"{type(self).__name__} values change only through interaction or "
            f"setter events; cannot assign {name!r}"
        )
        raise HolderError(msg)

    @property
    def value(self) -> T:
        """Current value."""
        return self._value

    @property
    def object_id(self) -> str:
        return self._object_id

    @property
    def cell_id(self) -> str | None:
        return self._cell_id

    @property
    def registered(self) -> bool:
        """True while the holder belongs to a live session."""
        return self._triggers is not None

    # ----- trigger subsystem hooks -----

    def _apply(self, value: T) -> None:
        object.__setattr__(self, "_value", value)

    def _attach(self, triggers: TriggerSubsystem | None) -> None:
        object.__setattr__(self, "_triggers", triggers)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r}, object_id={self._object_id!r})"


class UIElement(ValueHolder[T]):
    """A front-end control whose value is set by interaction events.

    Args:
        value: Initial value.
        label: Display label for the front-end.
        on_change: Called with the new value after each interaction.

    """

    __slots__ = ("_label", "_on_change")

    def __init__(
        self,
        value: T,
        *,
        label: str = "",
        on_change: Callable[[T], object] | None = None,
    ) -> None:
        super().__init__(value)
        object.__setattr__(self, "_label", label)
        object.__setattr__(self, "_on_change", on_change)

    @property
    def label(self) -> str:
        return self._label

    @property
    def on_change(self) -> Callable[[T], object] | None:
        return self._on_change


class State(ValueHolder[T]):
    """Shared state mutated by setter calls from any cell.

    Args:
        value: Initial value.
        allow_self_loops: When True, the cell calling the setter is re-run
            too if it reads the state.  ``None`` defers to the session config.

    """

    __slots__ = ("_allow_self_loops",)

    def __init__(self, value: T, *, allow_self_loops: bool | None = None) -> None:
        super().__init__(value)
        object.__setattr__(self, "_allow_self_loops", allow_self_loops)

    @property
    def allow_self_loops(self) -> bool | None:
        return self._allow_self_loops

    def set(self, value: T | Callable[[T], T]) -> None:
        """Set a new value, or apply an updater function to the current one.

        Inside a live session the update goes through the trigger subsystem
        and schedules every cell that reads the state, except the caller.

        """
        if self._triggers is None:
            self._apply(value(self._value) if callable(value) else value)
            return
        self._triggers.on_setter(self, value)


class StateGetter(Generic[T]):
    """Callable returning the current value of a State."""

    __slots__ = ("_state",)

    def __init__(self, state: State[T]) -> None:
        self._state = state

    @property
    def state(self) -> State[T]:
        return self._state

    def __call__(self) -> T:
        return self._state.value

    def __repr__(self) -> str:
        return f"StateGetter({self._state.value!r})"


def state(
    value: T,
    *,
    allow_self_loops: bool | None = None,
) -> tuple[StateGetter[T], Callable[[T | Callable[[T], T]], None]]:
    """Create a State and return its ``(getter, setter)`` pair.

    Cells that reference the getter's name re-run when the setter is called.

    """
    holder = State(value, allow_self_loops=allow_self_loops)
    return StateGetter(holder), holder.set


def holder_of(value: object) -> ValueHolder | None:
    """The holder a bound value stands for (a holder itself or a state getter)."""
    if isinstance(value, ValueHolder):
        return value
    if isinstance(value, StateGetter):
        return value.state
    return None
