"""Maps a conversation mode onto its tool set and model parameters."""

from typing import List

from pydantic import BaseModel

from chatkin.core.schema import Mode
from chatkin.tools import (
    TOOL_REGISTRY,
    ToolDefinition,
)
from chatkin.tools.query_tools import QUERY_TOOL_NAMES
from chatkin.tools.terminal_tools import (
    ASK_QUESTIONS,
    PROPOSE_OPERATIONS,
)


class ModeParams(BaseModel):
    """Model invocation parameters for one mode."""

    temperature: float
    max_tokens: int


# Chat is conversational: more creative, shorter answers.  Action is precise and may need room
# for a long list of operations.
_MODE_PARAMS = {
    Mode.CHAT: ModeParams(temperature=0.7, max_tokens=2048),
    Mode.ACTION: ModeParams(temperature=0.3, max_tokens=4096),
}

_MODE_TERMINAL_TOOLS = {
    Mode.CHAT: [ASK_QUESTIONS],
    Mode.ACTION: [ASK_QUESTIONS, PROPOSE_OPERATIONS],
}


def tools_for_mode(mode: Mode | str) -> List[ToolDefinition]:
    """Query tools (always available) followed by the mode's terminal tools."""
    mode = Mode(mode)
    names = list(QUERY_TOOL_NAMES) + _MODE_TERMINAL_TOOLS[mode]
    return [TOOL_REGISTRY[name] for name in names]


def params_for_mode(mode: Mode | str) -> ModeParams:
    return _MODE_PARAMS[Mode(mode)]
