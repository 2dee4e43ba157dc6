"""Runtime layer — reactive execution of a notebook.

Connects cell changes and value-holder events to re-execution through the
dependency graph, the scheduler and the shared namespace store.
"""

from weft.runtime.broadcaster import Broadcaster, CellNotification, ClientConnection, ValueBroadcast
from weft.runtime.executor import CellOutput, ExecutionResult, execute_cell
from weft.runtime.graph import DependencyGraph
from weft.runtime.holders import State, StateGetter, UIElement, ValueHolder, state
from weft.runtime.namespace import NamespaceStore
from weft.runtime.registry import CellRegistry
from weft.runtime.scheduler import CellOutcome, CellState, RunReport, RunRequest, Scheduler
from weft.runtime.session import CellView, Session
from weft.runtime.triggers import InteractionEvent, TriggerSubsystem

__all__ = [
    "Broadcaster",
    "CellNotification",
    "CellOutcome",
    "CellOutput",
    "CellRegistry",
    "CellState",
    "CellView",
    "ClientConnection",
    "DependencyGraph",
    "ExecutionResult",
    "InteractionEvent",
    "NamespaceStore",
    "RunReport",
    "RunRequest",
    "Scheduler",
    "Session",
    "State",
    "StateGetter",
    "TriggerSubsystem",
    "UIElement",
    "ValueHolder",
    "execute_cell",
    "state",
]
