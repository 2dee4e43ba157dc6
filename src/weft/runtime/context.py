"""Execution context — which cell is running right now.

Uses a contextvar so that code running inside a cell body (including
value-holder constructors and state setters) can find the cell that is
executing it.  Each cell runs in its own asyncio task, and tasks copy the
context on creation, so concurrent cells never see each other's context.
"""

from __future__ import annotations

import contextvars
import io
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from weft.runtime.holders import ValueHolder
    from weft.runtime.triggers import TriggerSubsystem


@dataclass(slots=True)
class ExecutionContext:
    """State of one cell execution.

    Attributes:
        cell_id: The running cell.
        triggers: Trigger subsystem of the live session; ``None`` for
            isolated (registry) runs, whose holders are never registered.
        holders: Value holders created by this execution, in creation order.
        console: Text the execution wrote to stdout.

    """

    cell_id: str
    triggers: TriggerSubsystem | None = None
    holders: list[ValueHolder] = field(default_factory=list)
    console: io.StringIO = field(default_factory=io.StringIO, repr=False)

    @property
    def isolated(self) -> bool:
        return self.triggers is None

    def next_object_id(self) -> str:
        """Identity token for the next holder; stable across re-runs of the cell."""
        return f"{self.cell_id}-{len(self.holders)}"


# The currently-executing cell, if any.
current_execution: contextvars.ContextVar[ExecutionContext | None] = contextvars.ContextVar(
    "current_execution", default=None
)

