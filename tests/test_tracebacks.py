"""Tests for weft.runtime.tracebacks — cell error messages."""

from __future__ import annotations

import json

import pytest

from weft.cells.cell import CellRecord, compile_cell
from weft.runtime.executor import execute_cell
from weft.runtime.tracebacks import (
    format_cell_error,
    format_cell_traceback,
    format_error_event,
    source_line,
)


async def _failure(source: str, values: dict | None = None, cell_id: str = "a") -> BaseException:
    cell = compile_cell(CellRecord(cell_id, source))
    with pytest.raises(Exception) as exc_info:
        await execute_cell(cell, values or {})
    return exc_info.value


async def _helper_from(source: str) -> dict:
    result = await execute_cell(compile_cell(CellRecord("lib", source)), {})
    return dict(result.definitions)


class TestFormatCellError:
    @pytest.mark.asyncio
    async def test_points_at_cell_line(self) -> None:
        exc = await _failure("x = 1\ny = x / 0")
        assert format_cell_error(exc, "a") == "ZeroDivisionError: division by zero (line 2)"

    @pytest.mark.asyncio
    async def test_prefers_calling_cell(self) -> None:
        helpers = await _helper_from("def f():\n    return 1 / 0")
        exc = await _failure("y = f()", helpers, cell_id="user")
        assert format_cell_error(exc, "user").endswith("(line 1)")

    @pytest.mark.asyncio
    async def test_other_cell_named(self) -> None:
        helpers = await _helper_from("def f():\n    return 1 / 0")
        exc = await _failure("y = f()", helpers, cell_id="user")
        assert format_cell_error(exc, "elsewhere").endswith("(cell lib, line 2)")

    def test_without_traceback(self) -> None:
        assert format_cell_error(ValueError("bad")) == "ValueError: bad"

    def test_empty_message(self) -> None:
        assert format_cell_error(RuntimeError()) == "RuntimeError"


class TestTraceback:
    @pytest.mark.asyncio
    async def test_starts_in_cell_code(self) -> None:
        exc = await _failure("x = 1\nraise KeyError('k')")
        text = format_cell_traceback(exc)
        assert text.startswith("Traceback (most recent call last):")
        assert '"<cell a>", line 2' in text
        assert "executor.py" not in text
        assert text.rstrip().endswith("KeyError: 'k'")


class TestErrorEvent:
    @pytest.mark.asyncio
    async def test_json_payload(self) -> None:
        exc = await _failure("x = 1\ny = undefined_name + x")
        payload = json.loads(format_error_event(exc, "a"))
        assert payload == {
            "cell_id": "a",
            "type": "NameError",
            "message": "name 'undefined_name' is not defined",
            "file": "<cell a>",
            "line": 2,
            "source": "y = undefined_name + x",
        }

    def test_source_line_missing(self) -> None:
        assert source_line("", 3) == ""
        assert source_line("<cell never-compiled>", 1) == ""
