"""Tests for weft._errors."""

import pytest

from weft._errors import (
    CellNotFoundError,
    ConfigError,
    CycleError,
    DefinitionConflict,
    ExecutionError,
    GraphError,
    HolderError,
    SetupCellError,
    WeftError,
)


class TestErrorHierarchy:
    """All weft errors inherit from WeftError."""

    def test_weft_error_is_exception(self) -> None:
        assert issubclass(WeftError, Exception)

    @pytest.mark.parametrize(
        "error_cls",
        [ConfigError, GraphError, ExecutionError, CellNotFoundError, HolderError],
    )
    def test_inherits_from_base(self, error_cls: type) -> None:
        assert issubclass(error_cls, WeftError)

    @pytest.mark.parametrize("error_cls", [DefinitionConflict, CycleError, SetupCellError])
    def test_graph_errors(self, error_cls: type) -> None:
        assert issubclass(error_cls, GraphError)

    def test_cell_not_found_is_lookup_error(self) -> None:
        with pytest.raises(LookupError):
            raise CellNotFoundError("missing")


class TestGraphErrors:
    def test_definition_conflict(self) -> None:
        exc = DefinitionConflict({"y": ["b", "c"], "x": ["a", "b"]})
        assert list(exc.conflicts) == ["x", "y"]
        assert exc.conflicts["y"] == ("b", "c")
        assert exc.cell_ids == ("a", "b", "c")
        assert "'x' is defined by cells a, b" in str(exc)

    def test_cycle(self) -> None:
        exc = CycleError(["a", "b", "a"])
        assert exc.cycle == ("a", "b", "a")
        assert exc.cell_ids == ("a", "b")
        assert "a -> b -> a" in str(exc)

    def test_self_cycle(self) -> None:
        assert CycleError(["a", "a"]).cell_ids == ("a",)

    def test_setup_error_carries_cells(self) -> None:
        exc = SetupCellError("two setup cells", ["s1", "s2"])
        assert exc.cell_ids == ("s1", "s2")
        assert str(exc) == "two setup cells"


class TestExecutionError:
    def test_wraps_original(self) -> None:
        original = ValueError("bad input")
        exc = ExecutionError("b", "loader", original)
        assert exc.original is original
        assert exc.cell_id == "b"
        assert exc.cell_name == "loader"
        assert str(exc) == "Cell 'loader' (b) raised ValueError: bad input"
