"""
Sanity tests for the tool executor and the concurrent dispatcher.

Run with:
$ pytest -q
"""

import asyncio
import json

import pytest
from pydantic import BaseModel

from chatkin.agent.tool_executor import (
    AUTH_REQUIRED_RESULT,
    ToolExecutionError,
    dispatch_tool_calls,
    execute_tool,
)
from chatkin.core.schema import ToolCall
from chatkin.tools import (
    ToolKind,
    get_tool,
    register_tool,
)
from chatkin.tools.terminal_tools import TERMINAL_STUB


class _EmptyInput(BaseModel):
    pass


class _AddInput(BaseModel):
    a: int
    b: int


# These are stub tools for testing purposes.
@register_tool("test_add", kind=ToolKind.QUERY, input_model=_AddInput)
async def _add(params: _AddInput, **_) -> str:
    """Return the sum of two integers (used only for tests)."""
    return json.dumps({"sum": params.a + params.b})


@register_tool("test_explode", kind=ToolKind.QUERY, input_model=_EmptyInput)
async def _explode(_params: _EmptyInput, **_) -> str:
    """Always fails (used only for tests)."""
    raise RuntimeError("boom")


# Each handshake tool announces itself, then waits for its partner
_handshake: dict[str, asyncio.Event] = {}


@register_tool("test_ping", kind=ToolKind.QUERY, input_model=_EmptyInput)
async def _ping(_params: _EmptyInput, **_) -> str:
    """Set the ping event and wait for pong (used only for tests)."""
    _handshake["ping"].set()
    await _handshake["pong"].wait()
    return json.dumps({"ping": "done"})


@register_tool("test_pong", kind=ToolKind.QUERY, input_model=_EmptyInput)
async def _pong(_params: _EmptyInput, **_) -> str:
    """Set the pong event and wait for ping (used only for tests)."""
    _handshake["pong"].set()
    await _handshake["ping"].wait()
    return json.dumps({"pong": "done"})


async def test_execute_tool_success() -> None:
    """Executor should return the tool's JSON when the tool is valid."""
    result = await execute_tool("test_add", {"a": 2, "b": 3}, auth_token="token")
    assert json.loads(result) == {"sum": 5}


async def test_execute_tool_missing() -> None:
    """Executor should raise *ToolExecutionError* for an unknown tool."""
    with pytest.raises(ToolExecutionError, match="not_a_tool"):
        await execute_tool("not_a_tool", {}, auth_token="token")


async def test_execute_tool_bad_args() -> None:
    """Executor should raise *ToolExecutionError* for wrong arguments."""
    with pytest.raises(ToolExecutionError, match="Invalid arguments"):
        await execute_tool("test_add", {"a": 2}, auth_token="token")  # missing 'b'


async def test_execute_tool_wraps_handler_errors() -> None:
    with pytest.raises(ToolExecutionError, match="boom"):
        await execute_tool("test_explode", {}, auth_token="token")


async def test_query_tool_without_credentials_returns_error_payload() -> None:
    result = await execute_tool("query_tasks", {"filters": {"status": "todo"}}, auth_token=None)
    assert result == AUTH_REQUIRED_RESULT
    payload = json.loads(result)
    assert payload["error"] is True
    assert "Authentication required" in payload["message"]


async def test_terminal_tool_returns_stub_without_credentials() -> None:
    assert await execute_tool("propose_operations", {"operations": []}) == TERMINAL_STUB


async def test_dispatch_isolates_failures_per_call() -> None:
    calls = [
        ToolCall(id="c1", name="test_add", input={"a": 1, "b": 1}),
        ToolCall(id="c2", name="test_explode", input={}),
        ToolCall(id="c3", name="nope", input={}),
        ToolCall(id="c4", name="test_add", input={"a": 20, "b": 22}),
    ]

    results = await dispatch_tool_calls(calls, auth_token="token")

    assert [r.id for r in results] == ["c1", "c2", "c3", "c4"]
    assert [r.is_error for r in results] == [False, True, True, False]
    assert json.loads(results[0].content) == {"sum": 2}
    assert json.loads(results[3].content) == {"sum": 42}
    error = json.loads(results[1].content)
    assert error["error"] is True
    assert "boom" in error["message"]


async def test_dispatch_with_no_calls_returns_nothing() -> None:
    assert await dispatch_tool_calls([], auth_token="token") == []


async def test_dispatch_runs_calls_concurrently() -> None:
    """Two calls that each wait on the other only finish if dispatched together."""
    _handshake.update(ping=asyncio.Event(), pong=asyncio.Event())
    calls = [
        ToolCall(id="p1", name="test_ping", input={}),
        ToolCall(id="p2", name="test_pong", input={}),
    ]

    results = await asyncio.wait_for(dispatch_tool_calls(calls, auth_token="token"), timeout=2)

    assert [r.id for r in results] == ["p1", "p2"]
    assert not any(r.is_error for r in results)
    assert json.loads(results[0].content) == {"ping": "done"}


def test_get_tool_looks_up_the_registry() -> None:
    assert get_tool("test_add").kind is ToolKind.QUERY
    assert get_tool("propose_operations").kind is ToolKind.TERMINAL
    assert get_tool("not_a_tool") is None
