"""
Tool registry for Chatkin.

This module provides a decorator to register tools and a registry to look them up by name.
Each tool pairs a pydantic input model (whose JSON schema is advertised to the model backend) with
an async handler.  Tools come in two kinds:

* **query** tools are side-effect-free reads that return JSON to the model mid-turn.
* **terminal** tools end the turn with a structured proposal; their handler only returns a stub.
"""

import copy
import inspect
import logging
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Type,
)

from pydantic import (
    BaseModel,
    ConfigDict,
)

logger = logging.getLogger(__name__)

ToolHandler = Callable[..., Awaitable[str]]


class ToolKind(str, Enum):
    QUERY = "query"
    TERMINAL = "terminal"


class ToolDefinition(BaseModel):
    """A registered tool: name, advertised schema, kind and handler."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str
    description: str
    kind: ToolKind
    input_model: Type[BaseModel]
    handler: ToolHandler

    @property
    def input_schema(self) -> Dict[str, Any]:
        return _inline_schema(self.input_model.model_json_schema())

    def to_api(self) -> Dict[str, Any]:
        """Backend tool definition."""
        return {"name": self.name, "description": self.description, "input_schema": self.input_schema}


TOOL_REGISTRY: Dict[str, ToolDefinition] = {}
"""Global registry of tools."""


def register_tool(
    name: str, *, kind: ToolKind, input_model: Type[BaseModel], description: str | None = None
) -> Callable[[ToolHandler], ToolHandler]:
    """
    Register an async tool handler under *name*.

    Used as a decorator:
        @register_tool("query_tasks", kind=ToolKind.QUERY, input_model=QueryTasksInput)
        async def query_tasks(params, *, auth_token, data_store):
            ...

    The handler's docstring becomes the tool description unless *description* is given.

    Raises
    ------
    ValueError
        If a tool with the same name is already registered.
    """
    if name in TOOL_REGISTRY:
        raise ValueError(f"Tool '{name}' is already registered.")
    logger.debug("Registering %s tool '%s'", kind.value, name)

    def wrapper(fn: ToolHandler) -> ToolHandler:
        TOOL_REGISTRY[name] = ToolDefinition(
            name=name,
            description=inspect.cleandoc(description or fn.__doc__ or ""),
            kind=kind,
            input_model=input_model,
            handler=fn,
        )
        return fn

    return wrapper


def get_tool(name: str) -> ToolDefinition | None:
    return TOOL_REGISTRY.get(name)


def get_tool_schemas(tools: Iterable[ToolDefinition]) -> List[Dict[str, Any]]:
    """Render backend tool definitions for *tools*."""
    return [tool.to_api() for tool in tools]


def _inline_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Resolve local ``$ref``s and drop pydantic's ``title`` noise."""
    defs = schema.get("$defs", {})

    def resolve(node: Any) -> Any:
        if isinstance(node, dict):
            if "$ref" in node:
                target = defs[node["$ref"].split("/")[-1]]
                merged = {**copy.deepcopy(target), **{k: v for k, v in node.items() if k != "$ref"}}
                return resolve(merged)
            return {
                k: resolve(v)
                for k, v in node.items()
                if k != "$defs" and not (k == "title" and isinstance(v, str))
            }
        if isinstance(node, list):
            return [resolve(item) for item in node]
        return node

    return resolve(schema)


# Populate the registry
from chatkin.tools import (  # noqa: E402  pylint: disable=wrong-import-position
    query_tools,
    terminal_tools,
)
