"""Weft configuration.

WeftConfig is the central configuration object, frozen after creation.
"""

from dataclasses import dataclass

from weft._errors import ConfigError
from weft._types import OnCellChange

_CHANGE_MODES = ("autorun", "lazy")


@dataclass(frozen=True, slots=True)
class WeftConfig:
    """Configuration for a notebook session.

    Attributes:
        max_parallelism: Maximum number of independent cells in flight at once.
        debounce_ms: Quiet window for interaction events on the same object id.
            Only the last event in the window schedules a pass (0 = no debounce).
        on_cell_change: ``"autorun"`` re-runs an edited cell and its consumers;
            ``"lazy"`` marks them stale until ``Session.run_stale()``.
        allow_self_loops: Default for new State holders: when True, the cell
            that calls a setter is not excluded from the re-run it triggers.
        max_events: Capacity of the session's event log ring buffer.
        verbose: Print a one-line timing summary to stderr after each pass.

    """

    max_parallelism: int = 4
    debounce_ms: int = 0
    on_cell_change: OnCellChange = "autorun"
    allow_self_loops: bool = False
    max_events: int = 10_000
    verbose: bool = False

    def __post_init__(self) -> None:
        if self.max_parallelism < 1:
            msg = f"max_parallelism must be >= 1, got {self.max_parallelism}"
            raise ConfigError(msg)
        if self.debounce_ms < 0:
            msg = f"debounce_ms must be >= 0, got {self.debounce_ms}"
            raise ConfigError(msg)
        if self.on_cell_change not in _CHANGE_MODES:
            msg = (
                f"on_cell_change must be one of {', '.join(_CHANGE_MODES)}, "
                f"got {self.on_cell_change!r}"
            )
            raise ConfigError(msg)
        if self.max_events < 1:
            msg = f"max_events must be >= 1, got {self.max_events}"
            raise ConfigError(msg)

    @property
    def debounce_seconds(self) -> float:
        """Debounce window in seconds."""
        return self.debounce_ms / 1000
