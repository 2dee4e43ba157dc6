"""Tests for weft.observability.profiler."""

from __future__ import annotations

import pytest

from weft.observability.events import RunProfile
from weft.observability.log import EventLog
from weft.observability.profiler import RunProfiler, compute_aggregate_stats


def _profile(total_ms: float, *, run: int = 1) -> RunProfile:
    return RunProfile(
        reason="edit",
        cells_planned=run,
        cells_run=run,
        cells_failed=0,
        cells_skipped=0,
        cells_discarded=0,
        plan_ms=1.0,
        execute_ms=total_ms - 1.0,
        total_ms=total_ms,
        timestamp_ns=1,
    )


class TestRunProfiler:
    def test_finish_appends_profile(self) -> None:
        log = EventLog()
        profiler = RunProfiler(log)
        profiler.begin("interaction")
        profiler.start("plan")
        profiler.stop("plan")
        profiler.start("execute")
        profiler.stop("execute")
        profile = profiler.finish(planned=3, run=2, failed=1)

        assert log.query(event_type=RunProfile) == [profile]
        assert profile.reason == "interaction"
        assert profile.cells_planned == 3
        assert profile.cells_failed == 1
        assert profile.total_ms >= profile.plan_ms

    def test_unknown_stage_ignored(self) -> None:
        profiler = RunProfiler(EventLog())
        profiler.begin("edit")
        profiler.start("render")
        profiler.stop("render")
        assert profiler.finish().execute_ms == 0.0

    def test_verbose_prints_summary(self, capsys: pytest.CaptureFixture[str]) -> None:
        profiler = RunProfiler(EventLog(), verbose=True)
        profiler.begin("run_all")
        profiler.finish(planned=2, run=1, failed=1)
        err = capsys.readouterr().err
        assert "run_all -> 1 cell run" in err
        assert "1 failed" in err

    def test_quiet_by_default(self, capsys: pytest.CaptureFixture[str]) -> None:
        profiler = RunProfiler(EventLog())
        profiler.begin("edit")
        profiler.finish(planned=1, run=1)
        assert capsys.readouterr().err == ""


class TestAggregateStats:
    def test_empty(self) -> None:
        assert compute_aggregate_stats(EventLog()) == {"count": 0}

    def test_percentiles(self) -> None:
        log = EventLog()
        for ms in (10.0, 20.0, 30.0, 40.0):
            log.append(_profile(ms, run=2))
        stats = compute_aggregate_stats(log)
        assert stats["count"] == 4
        assert stats["total_ms"]["min"] == 10.0
        assert stats["total_ms"]["max"] == 40.0
        assert stats["total_ms"]["p50"] == 30.0
        assert stats["avg_by_stage_ms"]["plan"] == 1.0
        assert stats["cells_run"] == 8
