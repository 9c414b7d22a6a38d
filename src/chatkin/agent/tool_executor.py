"""Dispatches tool calls registered in ``chatkin.tools`` and wraps errors."""

import asyncio
import json
import logging
from typing import (
    Any,
    Dict,
    List,
    Sequence,
)

from pydantic import ValidationError

from chatkin.common import truncate
from chatkin.core.schema import (
    ToolCall,
    ToolResult,
)
from chatkin.storage.data_store import SupabaseDataStore
from chatkin.tools import (
    ToolKind,
    get_tool,
)

logger = logging.getLogger(__name__)

AUTH_REQUIRED_RESULT = json.dumps(
    {
        "error": True,
        "message": "Authentication required to query database. Please ensure you are logged in.",
    }
)


class ToolExecutionError(RuntimeError):
    """Raised when a requested tool cannot run or fails."""


async def execute_tool(
    name: str,
    args: Dict[str, Any] | None = None,
    *,
    auth_token: str | None = None,
    data_store: SupabaseDataStore | None = None,
) -> str:
    """
    Look up *name* in the registry and run it with *args*.

    Parameters
    ----------
    name:
        The registered tool name.
    args:
        Tool input as sent by the model.  If *None*, an empty dict is assumed.
    auth_token:
        Bearer credential scoping every query to the caller.  Query tools answer with a
        structured error payload, not an exception, when it is missing.
    data_store:
        Store the query tools read from; a default one is built from settings if omitted.

    Returns
    -------
    str
        JSON text to hand back to the model.

    Raises
    ------
    ToolExecutionError
        If the tool is missing, its input is invalid, or its invocation raises an exception.
    """

    if args is None:
        args = {}

    tool = get_tool(name)
    if tool is None:
        logger.warning("Unknown tool encountered: '%s'", name)
        raise ToolExecutionError(f"Tool '{name}' is not registered.")

    if tool.kind is ToolKind.TERMINAL:
        return await tool.handler(args)

    if not auth_token:
        logger.info("Tool '%s' called without credentials", name)
        return AUTH_REQUIRED_RESULT

    try:
        params = tool.input_model.model_validate(args)
    except ValidationError as exc:
        logger.warning("Invalid arguments for tool '%s': %s", name, exc)
        raise ToolExecutionError(f"Invalid arguments for tool '{name}': {exc}") from exc

    try:
        logger.debug("Executing tool '%s' with args=%s", name, truncate(args))
        return await tool.handler(
            params, auth_token=auth_token, data_store=data_store or SupabaseDataStore()
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unhandled error in tool '%s'", name)
        raise ToolExecutionError(f"Tool '{name}' raised an error: {exc}") from exc


async def dispatch_tool_calls(
    calls: Sequence[ToolCall],
    *,
    auth_token: str | None = None,
    data_store: SupabaseDataStore | None = None,
) -> List[ToolResult]:
    """
    Run every call concurrently and return exactly one ToolResult per call, in call order.

    A failing call becomes an ``is_error`` result for its own id; siblings are unaffected.
    """
    logger.debug("Executing %d tools in parallel: %s", len(calls), [call.name for call in calls])

    outcomes = await asyncio.gather(
        *(
            execute_tool(call.name, call.input, auth_token=auth_token, data_store=data_store)
            for call in calls
        ),
        return_exceptions=True,
    )

    results: List[ToolResult] = []
    for call, outcome in zip(calls, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.error("Tool execution error in '%s': %s", call.name, outcome)
            content = json.dumps({"error": True, "message": f"Error: {outcome}. Please try again."})
            results.append(ToolResult(id=call.id, content=content, is_error=True))
        else:
            logger.debug("Tool '%s' returned: %s", call.name, truncate(outcome))
            results.append(ToolResult(id=call.id, content=outcome))

    logger.debug(
        "Tool execution completed: %d succeeded, %d failed",
        sum(not result.is_error for result in results),
        sum(result.is_error for result in results),
    )
    return results
