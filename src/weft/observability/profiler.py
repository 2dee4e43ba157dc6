"""Run profiler — measures the latency of scheduler passes.

Provides a lightweight profiler that records per-stage timing for each
pass and emits ``RunProfile`` events to the ``EventLog``.

Thread Safety:
    One profiler is created per pass and used from that pass only.
    Aggregate queries are protected by the underlying ``EventLog`` lock.

"""

from __future__ import annotations

import sys
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from weft.observability.events import RunProfile, now_ns

if TYPE_CHECKING:
    from weft.observability.log import EventLog

_STAGES = ("plan", "execute")


@dataclass(slots=True)
class _Timer:
    """Accumulates timing for a named pass stage."""

    name: str
    _start: float = 0.0
    elapsed_ms: float = 0.0

    def start(self) -> None:
        self._start = time.perf_counter()

    def stop(self) -> None:
        if self._start > 0:
            self.elapsed_ms = (time.perf_counter() - self._start) * 1000
            self._start = 0.0


class RunProfiler:
    """Records per-stage timing for a single scheduler pass.

    Usage::

        profiler = RunProfiler(event_log)

        profiler.begin("edit")
        profiler.start("plan")
        # ... closure + order ...
        profiler.stop("plan")
        profiler.start("execute")
        # ... run cells ...
        profiler.stop("execute")
        profiler.finish(planned=3, run=3)

    After ``finish()``, a ``RunProfile`` event is appended to the log and,
    when verbose, a one-line summary is printed to stderr.

    """

    __slots__ = ("_log", "_reason", "_t0", "_timers", "_verbose")

    def __init__(self, log: EventLog, *, verbose: bool = False) -> None:
        self._log = log
        self._verbose = verbose
        self._reason = ""
        self._t0 = 0.0
        self._timers: dict[str, _Timer] = {name: _Timer(name=name) for name in _STAGES}

    def begin(self, reason: str) -> None:
        """Start profiling a new pass."""
        self._reason = reason
        self._t0 = time.perf_counter()
        for timer in self._timers.values():
            timer.elapsed_ms = 0.0

    def start(self, stage: str) -> None:
        """Start timing a named stage."""
        timer = self._timers.get(stage)
        if timer is not None:
            timer.start()

    def stop(self, stage: str) -> None:
        """Stop timing a named stage."""
        timer = self._timers.get(stage)
        if timer is not None:
            timer.stop()

    def finish(
        self,
        *,
        planned: int = 0,
        run: int = 0,
        failed: int = 0,
        skipped: int = 0,
        discarded: int = 0,
    ) -> RunProfile:
        """Finish profiling and emit the ``RunProfile`` event.

        Returns the profile for testing / inspection.

        """
        total_ms = (time.perf_counter() - self._t0) * 1000 if self._t0 > 0 else 0.0

        profile = RunProfile(
            reason=self._reason,
            cells_planned=planned,
            cells_run=run,
            cells_failed=failed,
            cells_skipped=skipped,
            cells_discarded=discarded,
            plan_ms=self._timers["plan"].elapsed_ms,
            execute_ms=self._timers["execute"].elapsed_ms,
            total_ms=total_ms,
            timestamp_ns=now_ns(),
        )

        self._log.append(profile)

        if self._verbose:
            self._print_summary(profile)

        return profile

    def _print_summary(self, p: RunProfile) -> None:
        """Print a one-line timing summary to stderr."""
        cells = "cell" if p.cells_run == 1 else "cells"
        extra = ""
        if p.cells_failed or p.cells_skipped or p.cells_discarded:
            extra = (
                f", {p.cells_failed} failed, {p.cells_skipped} skipped, "
                f"{p.cells_discarded} discarded"
            )
        print(
            f"  [{p.total_ms:.0f}ms] {p.reason} -> {p.cells_run} {cells} run{extra} "
            f"(plan: {p.plan_ms:.0f}ms, execute: {p.execute_ms:.0f}ms)",
            file=sys.stderr,
        )


def compute_aggregate_stats(
    log: EventLog,
    *,
    limit: int = 100,
) -> dict:
    """Compute aggregate latency statistics from recent ``RunProfile`` events.

    Returns a dict with p50, p95, p99, and per-stage averages.

    """
    profiles = log.query(event_type=RunProfile, limit=limit)
    if not profiles:
        return {"count": 0}

    totals = sorted(p.total_ms for p in profiles)
    count = len(totals)

    def percentile(data: list[float], pct: float) -> float:
        idx = int(len(data) * pct / 100)
        return data[min(idx, len(data) - 1)]

    return {
        "count": count,
        "total_ms": {
            "p50": round(percentile(totals, 50), 1),
            "p95": round(percentile(totals, 95), 1),
            "p99": round(percentile(totals, 99), 1),
            "min": round(totals[0], 1),
            "max": round(totals[-1], 1),
        },
        "avg_by_stage_ms": {
            "plan": round(sum(p.plan_ms for p in profiles) / count, 1),
            "execute": round(sum(p.execute_ms for p in profiles) / count, 1),
        },
        "cells_run": sum(p.cells_run for p in profiles),
    }
