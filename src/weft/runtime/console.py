"""Console routing — sends stdout writes to the cell that is running.

While at least one cell executes, ``sys.stdout`` is replaced by a
``ConsoleRouter``.  A write made under an ``ExecutionContext`` lands in that
execution's buffer; anything else goes to the stream that was there before.
Concurrent cells run in separate tasks with separate contexts, so their
output never mixes, and a function defined by one cell prints into the
buffer of whichever cell calls it.
"""

from __future__ import annotations

import io
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TextIO

from weft.runtime.context import current_execution


class ConsoleRouter(io.TextIOBase):
    """Text stream that forwards each write to the running cell's buffer."""

    def __init__(self, fallback: TextIO) -> None:
        self._fallback = fallback

    @property
    def fallback(self) -> TextIO:
        return self._fallback

    @property
    def encoding(self) -> str:
        return getattr(self._fallback, "encoding", None) or "utf-8"

    def writable(self) -> bool:
        return True

    def write(self, text: str) -> int:
        ctx = current_execution.get()
        if ctx is None:
            return self._fallback.write(text)
        return ctx.console.write(text)

    def flush(self) -> None:
        if current_execution.get() is None:
            self._fallback.flush()


_lock = threading.Lock()
_depth = 0
_router: ConsoleRouter | None = None


@contextmanager
def routed_stdout() -> Iterator[None]:
    """Keep ``sys.stdout`` routed for the duration of the block.

    Nested and overlapping blocks share one router; the original stream is
    restored when the last block exits, unless something else replaced
    ``sys.stdout`` in the meantime.

    """
    global _depth, _router
    with _lock:
        if _depth == 0:
            _router = ConsoleRouter(sys.stdout)
            sys.stdout = _router
        _depth += 1
    try:
        yield
    finally:
        with _lock:
            _depth -= 1
            if _depth == 0 and _router is not None:
                if sys.stdout is _router:
                    sys.stdout = _router.fallback
                _router = None
