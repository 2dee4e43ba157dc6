"""Weft — a reactive notebook runtime for free-threaded Python.

A notebook is a set of cells.  Each cell reads some global names and
defines others; weft derives those sets statically, builds the dependency
graph, and re-runs exactly the cells downstream of whatever changed: an
edited cell, a front-end control the user moved, or a shared State a cell
updated.

Quick start::

    import asyncio
    import weft

    session = weft.Session()
    session.load([
        weft.CellRecord("a", "x = 1"),
        weft.CellRecord("b", "y = x + 1"),
    ])
    asyncio.run(session.run_all())

Inside cells::

    import weft

    slider = weft.UIElement(5, label="threshold")
    get_count, set_count = weft.state(0)

"""

# PEP 703: Declare this module as free-threading safe
_Py_mod_gil = 0

__version__ = "0.1.0-dev"
__all__ = [
    "CellRecord",
    "InteractionEvent",
    "RunRequest",
    "Session",
    "State",
    "UIElement",
    "WeftConfig",
    "__version__",
    "load_config",
    "state",
]


def __getattr__(name: str) -> object:
    """Lazy imports for the public API.

    Keeps ``import weft`` fast inside cells, which only need the holders.
    """
    if name == "WeftConfig":
        from weft.config import WeftConfig

        return WeftConfig

    if name == "load_config":
        from weft.config_loader import load_config

        return load_config

    if name == "CellRecord":
        from weft.cells.cell import CellRecord

        return CellRecord

    if name in ("UIElement", "State", "state"):
        from weft.runtime import holders

        return getattr(holders, name)

    if name == "InteractionEvent":
        from weft.runtime.triggers import InteractionEvent

        return InteractionEvent

    if name == "RunRequest":
        from weft.runtime.scheduler import RunRequest

        return RunRequest

    if name == "Session":
        from weft.runtime.session import Session

        return Session

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
