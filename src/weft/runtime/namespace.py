"""Namespace store — the single shared name -> value mapping of a session.

Two layers:

- the **ambient** layer holds the setup cell's definitions; every cell sees
  it, but it never produces graph edges;
- the **cell** layer holds each ordinary cell's definitions, tagged with the
  owning cell so a re-run can replace them as a unit.

Writes go through ``install`` and ``retract`` only, and only the scheduler
calls them.  Both hold the store lock for the whole replacement, so a
reader taking a ``snapshot`` sees either all of a cell's old definitions or
all of its new ones, never a mix.

Thread Safety:
    All methods are protected by a ``threading.Lock``.

"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType
from typing import Any


class NamespaceStore:
    """Owned store of global values, written by the scheduler only."""

    __slots__ = ("_ambient", "_ambient_owner", "_lock", "_owned", "_values")

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}
        self._owned: dict[str, tuple[str, ...]] = {}
        self._ambient: dict[str, Any] = {}
        self._ambient_owner: str | None = None
        self._lock = threading.Lock()

    # ----- writes (scheduler only) -----

    def install(
        self,
        cell_id: str,
        definitions: Mapping[str, Any],
        *,
        ambient: bool = False,
    ) -> None:
        """Atomically replace every definition owned by cell_id.

        Previous definitions of the cell are retracted first, so names the
        cell no longer defines disappear.  With ``ambient=True`` the values
        go to the ambient layer (setup cell).

        """
        with self._lock:
            self._retract_locked(cell_id)
            if ambient:
                self._ambient = dict(definitions)
                self._ambient_owner = cell_id
                return
            for name, value in definitions.items():
                self._values[name] = value
            self._owned[cell_id] = tuple(definitions)

    def retract(self, cell_id: str) -> tuple[str, ...]:
        """Remove every definition owned by cell_id; return the removed names."""
        with self._lock:
            return self._retract_locked(cell_id)

    def _retract_locked(self, cell_id: str) -> tuple[str, ...]:
        if cell_id == self._ambient_owner:
            names = tuple(self._ambient)
            self._ambient = {}
            self._ambient_owner = None
            return names
        names = self._owned.pop(cell_id, ())
        for name in names:
            self._values.pop(name, None)
        return names

    # ----- reads -----

    def snapshot(self, names: Iterable[str] | None = None) -> dict[str, Any]:
        """Copy of the cell layer, optionally restricted to names that are present."""
        with self._lock:
            if names is None:
                return dict(self._values)
            return {n: self._values[n] for n in names if n in self._values}

    def ambient(self) -> Mapping[str, Any]:
        """Read-only view of the ambient (setup) layer."""
        with self._lock:
            return MappingProxyType(dict(self._ambient))

    def owned_by(self, cell_id: str) -> tuple[str, ...]:
        """Names currently installed for cell_id."""
        with self._lock:
            if cell_id == self._ambient_owner:
                return tuple(self._ambient)
            return self._owned.get(cell_id, ())

    def get(self, name: str, default: Any = None) -> Any:
        with self._lock:
            if name in self._values:
                return self._values[name]
            return self._ambient.get(name, default)

    def __getitem__(self, name: str) -> Any:
        with self._lock:
            if name in self._values:
                return self._values[name]
            return self._ambient[name]

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._values or name in self._ambient

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            names = [*self._ambient, *(n for n in self._values if n not in self._ambient)]
        return iter(names)

    def __len__(self) -> int:
        with self._lock:
            return len(self._ambient.keys() | self._values.keys())
