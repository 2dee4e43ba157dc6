"""Notebook watcher — reloads a session when its notebook file changes.

Runs watchfiles in a background thread and bridges events to an asyncio
queue owned by the loop that started the watcher.  ``follow`` consumes the
events: it re-reads the notebook through a caller-supplied codec and hands
the records to ``Session.sync``, so only changed cells run again.
"""

from __future__ import annotations

import asyncio
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from watchfiles import Change

from weft._errors import GraphError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from weft._types import NotebookLoader
    from weft.runtime.session import Session


@dataclass(frozen=True, slots=True)
class NotebookChange:
    """A change to the watched notebook file.

    Attributes:
        path: Absolute path to the notebook.
        kind: Type of filesystem change.

    """

    path: Path
    kind: Literal["created", "modified", "deleted"]


# Mapping from watchfiles Change enum to our kind literals.
_CHANGE_KIND_MAP: dict[Change, Literal["created", "modified", "deleted"]] = {
    Change.added: "created",
    Change.modified: "modified",
    Change.deleted: "deleted",
}


def is_notebook_change(changed: Path, notebook: Path) -> bool:
    """True when a reported path is the watched notebook itself."""
    return changed.resolve() == notebook.resolve()


class NotebookWatcher:
    """Watches one notebook file for changes.

    Editors often save by writing a temporary file and renaming it over the
    original, so the watcher observes the notebook's directory and filters
    events down to the notebook path.

    Args:
        path: The notebook file.
        debounce_ms: watchfiles debounce window.

    """

    def __init__(self, path: Path, *, debounce_ms: int = 300) -> None:
        self._path = Path(path).resolve()
        self._debounce_ms = debounce_ms
        self._queue: asyncio.Queue[NotebookChange] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_running(self) -> bool:
        """Whether the watcher background thread is active."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start watching in a background thread.  Must be called from a running loop."""
        if self.is_running:
            return

        self._loop = asyncio.get_running_loop()
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._watch_loop,
            name="weft-watcher",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        """Signal the watcher to stop and wait for the thread to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None

    def emit(self, change: NotebookChange) -> None:
        """Queue a change from any thread."""
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, change)

    async def changes(self) -> AsyncIterator[NotebookChange]:
        """Async iterator that yields changes as they occur.

        Ends once the watcher is stopped and the queue is drained.

        """
        while self.is_running or not self._queue.empty():
            try:
                change = await asyncio.wait_for(self._queue.get(), timeout=0.5)
                yield change
            except TimeoutError:
                if not self.is_running:
                    break

    def _watch_loop(self) -> None:
        """Background thread: run watchfiles and push events to the queue."""
        from watchfiles import watch

        for raw_changes in watch(
            self._path.parent,
            stop_event=self._stop_event,
            debounce=self._debounce_ms,
            step=100,
            recursive=False,
        ):
            kinds = {
                _CHANGE_KIND_MAP.get(change_type, "modified")
                for change_type, path_str in raw_changes
                if is_notebook_change(Path(path_str), self._path)
            }
            if not kinds:
                continue
            # A rename-over save reports deleted + created; the file exists.
            kind = "deleted" if kinds == {"deleted"} else "modified"
            self.emit(NotebookChange(path=self._path, kind=kind))


async def follow(
    session: Session,
    watcher: NotebookWatcher,
    loader: NotebookLoader,
) -> None:
    """Keep a session in sync with a watched notebook until the watcher stops.

    Load and build errors are reported to stderr and the session keeps its
    previous cells (or its recorded graph error) until the next change.

    """
    async for change in watcher.changes():
        if change.kind == "deleted":
            continue
        try:
            records = loader(change.path)
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            print(f"  Read error: {change.path.name}: {exc}", file=sys.stderr)
            continue
        try:
            await session.sync(records)
        except GraphError as exc:
            print(f"  Notebook error: {change.path.name}: {exc}", file=sys.stderr)
