"""Tests for weft.runtime.registry — named cells called in isolation."""

from __future__ import annotations

import pytest

from weft._errors import CellNotFoundError, ExecutionError
from weft.cells.cell import CellRecord

from tests.conftest import make_session


def _notebook():
    return make_session(
        CellRecord("s", "FACTOR = 3", is_setup=True),
        CellRecord("a", "x = 2", name="base"),
        CellRecord("b", "y = x * FACTOR\ny + 1", name="scaled"),
        CellRecord("c", "z = y - x", name="diff"),
        CellRecord("d", "print('side')\nw = 0"),
    )


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


class TestLookup:
    def test_names(self) -> None:
        registry = _notebook().registry
        assert registry.names() == ("base", "scaled", "diff")
        assert "scaled" in registry
        assert "_" not in registry

    def test_resolve_unknown(self) -> None:
        with pytest.raises(CellNotFoundError, match="No cell named"):
            _notebook().registry.resolve("missing")

    def test_resolve_ambiguous(self) -> None:
        session = make_session(
            CellRecord("a", "x = 1", name="dup"),
            CellRecord("b", "y = 2", name="dup"),
        )
        with pytest.raises(CellNotFoundError, match="ambiguous"):
            session.registry.resolve("dup")

    def test_setup_cell_not_callable(self) -> None:
        session = make_session(
            CellRecord("s", "FACTOR = 3", name="setup", is_setup=True),
            CellRecord("a", "x = FACTOR", name="base"),
        )
        registry = session.registry
        assert "setup" not in registry
        with pytest.raises(CellNotFoundError, match="No cell named"):
            registry.resolve("setup")

    def test_upstream(self) -> None:
        registry = _notebook().registry
        assert registry.upstream("diff") == ("a", "b", "c")
        assert registry.upstream("diff", {"y": 1}) == ("a", "c")
        assert registry.upstream("diff", {"x": 1, "y": 1}) == ("c",)


# ---------------------------------------------------------------------------
# Calls
# ---------------------------------------------------------------------------


class TestInvoke:
    @pytest.mark.asyncio
    async def test_computes_upstream(self) -> None:
        session = _notebook()
        await session.run_all()
        output, defs = await session.registry.ainvoke("diff")
        assert defs == {"z": 4}
        assert output.value is None

    @pytest.mark.asyncio
    async def test_output_and_overrides(self) -> None:
        session = _notebook()
        await session.run_all()
        output, defs = await session.registry.ainvoke("scaled", x=10)
        assert defs == {"y": 30}
        assert output.value == 31

    @pytest.mark.asyncio
    async def test_mapping_and_keyword_overrides(self) -> None:
        session = _notebook()
        await session.run_all()
        _, defs = await session.registry.ainvoke("diff", {"x": 1, "y": 5}, y=7)
        assert defs == {"z": 6}

    @pytest.mark.asyncio
    async def test_live_namespace_untouched(self) -> None:
        session = _notebook()
        await session.run_all()
        before = dict(session.namespace)
        await session.registry.ainvoke("diff", x=100)
        assert dict(session.namespace) == before

    @pytest.mark.asyncio
    async def test_override_skips_failing_upstream(self) -> None:
        session = make_session(
            CellRecord("a", "x = 1 / 0", name="broken"),
            CellRecord("b", "y = x + 1", name="inc"),
        )
        _, defs = await session.registry.ainvoke("inc", x=1)
        assert defs == {"y": 2}

    @pytest.mark.asyncio
    async def test_unreferenced_override(self) -> None:
        session = _notebook()
        with pytest.raises(ValueError, match="does not reference"):
            await session.registry.ainvoke("base", nonsense=1)

    @pytest.mark.asyncio
    async def test_error_wrapped(self) -> None:
        session = make_session(
            CellRecord("a", "x = 1", name="one"),
            CellRecord("b", "y = x / 0", name="boom"),
        )
        with pytest.raises(ExecutionError) as exc_info:
            await session.registry.ainvoke("boom")
        assert exc_info.value.cell_id == "b"
        assert exc_info.value.cell_name == "boom"
        assert isinstance(exc_info.value.original, ZeroDivisionError)

    @pytest.mark.asyncio
    async def test_holders_stay_unregistered(self) -> None:
        session = make_session(
            CellRecord("a", "import weft\nget_n, set_n = weft.state(0)", name="counter"),
            CellRecord("b", "set_n(5)\nk = get_n()", name="bump"),
            CellRecord("c", "n = get_n()", name="reader"),
        )
        await session.run_all()
        await session.wait_idle()
        registered = set(session.triggers.holders)

        _, defs = await session.registry.ainvoke("bump")

        assert defs == {"k": 5}
        assert set(session.triggers.holders) == registered
        assert not session.triggers.has_pending()
        assert session.namespace["n"] == 5

    @pytest.mark.asyncio
    async def test_sync_invoke_inside_loop(self) -> None:
        session = _notebook()
        with pytest.raises(RuntimeError, match="ainvoke"):
            session.registry.invoke("base")

    def test_sync_invoke(self) -> None:
        session = make_session(
            CellRecord("a", "x = 2", name="base"),
            CellRecord("b", "y = x * 2", name="double"),
        )
        output, defs = session.registry.invoke("double", {"x": 21})
        assert defs == {"y": 42}
        assert output.console == ""


class TestRun:
    @pytest.mark.asyncio
    async def test_whole_notebook(self) -> None:
        session = _notebook()
        outputs, defs = await session.registry.arun()
        assert list(outputs) == ["base", "scaled", "diff", "d"]
        assert outputs["scaled"].value == 7
        assert outputs["d"].console == "side\n"
        assert defs == {"FACTOR": 3, "x": 2, "y": 6, "z": 4, "w": 0}
        assert dict(session.namespace) == {}

    @pytest.mark.asyncio
    async def test_overrides_win_over_computed_values(self) -> None:
        session = _notebook()
        _, defs = await session.registry.arun({"x": 5})
        assert defs["y"] == 15
        assert defs["z"] == 10

    def test_sync_run_raises_execution_error(self) -> None:
        session = make_session(CellRecord("a", "x = undefined_name", name="bad"))
        with pytest.raises(ExecutionError, match="NameError"):
            session.registry.run()
