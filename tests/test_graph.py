"""Tests for weft.runtime.graph — dependency graph building and queries."""

from __future__ import annotations

import pytest

from weft._errors import CycleError, DefinitionConflict, SetupCellError
from weft.cells.cell import CellRecord

from tests.conftest import make_cells, make_graph


# ---------------------------------------------------------------------------
# Building
# ---------------------------------------------------------------------------


class TestBuild:
    """DependencyGraph.build — ownership and edges."""

    def test_def_owner(self) -> None:
        graph = make_graph(("a", "x = 1"), ("b", "y = x"))
        assert dict(graph.def_owner) == {"x": "a", "y": "b"}

    def test_edges(self) -> None:
        graph = make_graph(("a", "x = 1"), ("b", "y = x"), ("c", "z = x + y"))
        assert graph.parents("c") == frozenset({"a", "b"})
        assert graph.children("a") == frozenset({"b", "c"})
        assert graph.edge_count() == 3

    def test_external_refs_produce_no_edge(self) -> None:
        graph = make_graph(("a", "n = len(data)"))
        assert graph.parents("a") == frozenset()
        assert graph.external_refs("a") == frozenset({"len", "data"})

    def test_private_names_never_owned(self) -> None:
        graph = make_graph(("a", "_tmp = 1"), ("b", "_tmp = 2"))
        assert "_tmp" not in graph.def_owner
        assert graph.edge_count() == 0

    def test_syntax_error_cells_left_out(self) -> None:
        graph = make_graph(("a", "x = 1"), ("bad", "x = ("))
        assert "bad" not in graph
        assert len(graph) == 1

    def test_empty(self) -> None:
        graph = make_graph()
        assert len(graph) == 0
        assert graph.topological_order([]) == ()


class TestBuildErrors:
    def test_every_conflict_reported(self) -> None:
        with pytest.raises(DefinitionConflict) as info:
            make_graph(("a", "x = 1\ny = 1"), ("b", "x = 2"), ("c", "y = 3"))
        assert info.value.conflicts == {"x": ("a", "b"), "y": ("a", "c")}
        assert set(info.value.cell_ids) == {"a", "b", "c"}

    def test_conflict_with_setup_cell(self) -> None:
        with pytest.raises(DefinitionConflict) as info:
            make_graph(CellRecord("s", "import math", is_setup=True), ("a", "math = 1"))
        assert info.value.conflicts == {"math": ("s", "a")}

    def test_cycle_reports_path(self) -> None:
        with pytest.raises(CycleError) as info:
            make_graph(("a", "x = y"), ("b", "y = x"))
        cycle = info.value.cycle
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"a", "b"}

    def test_longer_cycle(self) -> None:
        with pytest.raises(CycleError) as info:
            make_graph(("a", "x = z"), ("b", "y = x"), ("c", "z = y"), ("d", "w = x"))
        assert set(info.value.cycle) == {"a", "b", "c"}
        assert "d" not in info.value.cell_ids

    def test_self_reference_is_a_cycle(self) -> None:
        with pytest.raises(CycleError) as info:
            make_graph(("a", "x = x + 1"))
        assert info.value.cycle == ("a", "a")

    def test_two_setup_cells(self) -> None:
        with pytest.raises(SetupCellError):
            make_graph(
                CellRecord("s1", "import os", is_setup=True),
                CellRecord("s2", "import sys", is_setup=True),
            )

    def test_setup_cell_reading_cell_defs(self) -> None:
        with pytest.raises(SetupCellError) as info:
            make_graph(CellRecord("s", "k = x", is_setup=True), ("a", "x = 1"))
        assert info.value.cell_ids == ("s", "a")


# ---------------------------------------------------------------------------
# Setup cell
# ---------------------------------------------------------------------------


class TestSetupCell:
    """Setup definitions are ambient: visible everywhere, never edges."""

    def test_ambient_names_produce_no_edges(self) -> None:
        graph = make_graph(
            CellRecord("s", "import math", is_setup=True),
            ("a", "r = math.sqrt(4)"),
        )
        assert dict(graph.ambient) == {"math": "s"}
        assert graph.parents("a") == frozenset()
        assert graph.setup_id == "s"
        assert "math" not in graph.def_owner

    def test_ambient_consumers(self) -> None:
        graph = make_graph(
            CellRecord("s", "import math", is_setup=True),
            ("a", "r = math.pi"),
            ("b", "q = r * 2"),
        )
        assert graph.ambient_consumers() == frozenset({"a"})

    def test_setup_ranks_first(self) -> None:
        graph = make_graph(("a", "x = 1"), CellRecord("s", "import os", is_setup=True))
        assert graph.topological_order(["a", "s"]) == ("s", "a")


# ---------------------------------------------------------------------------
# Closures and ordering
# ---------------------------------------------------------------------------


class TestClosures:
    @pytest.fixture
    def diamond(self):
        return make_graph(
            ("a", "x = 1"),
            ("b", "y = x + 1"),
            ("c", "z = x + 2"),
            ("d", "w = y + z"),
            ("e", "v = 0"),
        )

    def test_descendants(self, diamond) -> None:
        assert diamond.descendants(["a"]) == frozenset({"a", "b", "c", "d"})

    def test_descendants_never_enter_excluded(self, diamond) -> None:
        assert diamond.descendants(["a"], excluded=["b"]) == frozenset({"a", "c", "d"})
        assert diamond.descendants(["b", "c"], excluded=["b", "c"]) == frozenset()

    def test_descendants_ignore_unknown_roots(self, diamond) -> None:
        assert diamond.descendants(["nope"]) == frozenset()

    def test_ancestors(self, diamond) -> None:
        assert diamond.ancestors("d") == frozenset({"a", "b", "c"})
        assert diamond.ancestors("a") == frozenset()

    def test_consumers_of(self, diamond) -> None:
        assert diamond.consumers_of(["x"]) == frozenset({"b", "c"})
        assert diamond.consumers_of(["unused"]) == frozenset()

    def test_topological_order_respects_edges(self, diamond) -> None:
        order = diamond.topological_order(diamond.cells)
        assert order.index("a") < order.index("b") < order.index("d")
        assert order.index("c") < order.index("d")

    def test_ties_broken_by_presentation_order(self, diamond) -> None:
        assert diamond.topological_order(diamond.cells) == ("a", "b", "c", "d", "e")

    def test_order_is_reproducible(self) -> None:
        specs = [("c", "z = y"), ("a", "x = 1"), ("b", "y = x"), ("d", "k = 2")]
        orders = {make_graph(*specs).topological_order(["a", "b", "c", "d"]) for _ in range(5)}
        assert orders == {("a", "b", "c", "d")}

    def test_order_of_subset_uses_edges_inside_subset(self, diamond) -> None:
        assert diamond.topological_order(["d", "b"]) == ("b", "d")

    def test_cells_in_presentation_order(self) -> None:
        cells = make_cells(("z", "a = 1"), ("y", "b = a"))
        from weft.runtime.graph import DependencyGraph

        assert list(DependencyGraph.build(cells).cells) == ["z", "y"]
