"""Tests for weft.runtime.namespace — install/retract semantics."""

from __future__ import annotations

import threading

import pytest

from weft.runtime.namespace import NamespaceStore


class TestInstall:
    def test_install_and_read(self) -> None:
        store = NamespaceStore()
        store.install("a", {"x": 1, "y": 2})
        assert store["x"] == 1
        assert store.get("y") == 2
        assert store.owned_by("a") == ("x", "y")

    def test_reinstall_replaces_whole_cell(self) -> None:
        store = NamespaceStore()
        store.install("a", {"x": 1, "y": 2})
        store.install("a", {"x": 10})
        assert store["x"] == 10
        assert "y" not in store

    def test_cells_do_not_disturb_each_other(self) -> None:
        store = NamespaceStore()
        store.install("a", {"x": 1})
        store.install("b", {"y": 2})
        store.install("a", {"x": 3})
        assert store.snapshot() == {"x": 3, "y": 2}

    def test_missing_name(self) -> None:
        store = NamespaceStore()
        assert store.get("nope", "default") == "default"
        with pytest.raises(KeyError):
            store["nope"]


class TestRetract:
    def test_retract_returns_names(self) -> None:
        store = NamespaceStore()
        store.install("a", {"x": 1, "y": 2})
        assert store.retract("a") == ("x", "y")
        assert len(store) == 0

    def test_retract_unknown_cell(self) -> None:
        assert NamespaceStore().retract("ghost") == ()


class TestAmbientLayer:
    def test_ambient_visible_but_separate(self) -> None:
        store = NamespaceStore()
        store.install("s", {"math": "module"}, ambient=True)
        store.install("a", {"x": 1})
        assert store["math"] == "module"
        assert dict(store.ambient()) == {"math": "module"}
        assert store.snapshot() == {"x": 1}
        assert list(store) == ["math", "x"]

    def test_ambient_view_is_read_only(self) -> None:
        store = NamespaceStore()
        store.install("s", {"k": 1}, ambient=True)
        with pytest.raises(TypeError):
            store.ambient()["k"] = 2  # type: ignore[index]

    def test_retract_setup_clears_ambient(self) -> None:
        store = NamespaceStore()
        store.install("s", {"k": 1}, ambient=True)
        assert store.retract("s") == ("k",)
        assert "k" not in store


class TestSnapshot:
    def test_restricted_snapshot_skips_missing(self) -> None:
        store = NamespaceStore()
        store.install("a", {"x": 1, "y": 2})
        assert store.snapshot(["x", "missing"]) == {"x": 1}

    def test_snapshot_is_a_copy(self) -> None:
        store = NamespaceStore()
        store.install("a", {"x": 1})
        snap = store.snapshot()
        snap["x"] = 99
        assert store["x"] == 1

    def test_readers_never_see_partial_install(self) -> None:
        store = NamespaceStore()
        store.install("a", {"x": 0, "y": 0})
        seen: list[tuple[int, int]] = []
        stop = threading.Event()

        def reader() -> None:
            while not stop.is_set():
                snap = store.snapshot(["x", "y"])
                seen.append((snap["x"], snap["y"]))

        thread = threading.Thread(target=reader)
        thread.start()
        for i in range(1, 200):
            store.install("a", {"x": i, "y": i})
        stop.set()
        thread.join()
        assert all(x == y for x, y in seen)
