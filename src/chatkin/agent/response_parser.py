"""Converts raw backend output into exactly one ChatResponse variant."""

import logging
from typing import (
    Any,
    Collection,
    List,
    Type,
    TypeVar,
)

from pydantic import (
    BaseModel,
    ValidationError,
)

from chatkin.core.errors import ProtocolViolationError
from chatkin.core.schema import (
    ActionsResponse,
    ChatResponse,
    MessageResponse,
    ModelResponse,
    Operation,
    Question,
    QuestionsResponse,
    ToolUseBlock,
)
from chatkin.tools.terminal_tools import (
    ASK_QUESTIONS,
    PROPOSE_OPERATIONS,
)

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT", bound=BaseModel)


def parse_response(
    response: ModelResponse, terminal_tools: Collection[str] | None = None
) -> ChatResponse:
    """
    Pick the response variant.

    The first terminal tool call wins: ``propose_operations`` gives :class:`ActionsResponse`,
    ``ask_questions`` gives :class:`QuestionsResponse`.  Anything else is a plain
    :class:`MessageResponse` built from the text blocks.

    Parameters
    ----------
    response:
        The backend's final response.
    terminal_tools:
        Terminal tool names offered in the current mode.  Calls to other terminal tools are
        ignored.  If *None*, both terminal tools are honoured.

    Raises
    ------
    ProtocolViolationError
        If a terminal tool call carries no usable item list.
    """
    text = response.text()
    allowed = (ASK_QUESTIONS, PROPOSE_OPERATIONS) if terminal_tools is None else terminal_tools

    for block in response.content:
        if not isinstance(block, ToolUseBlock):
            continue
        if block.name not in allowed:
            if block.name in (ASK_QUESTIONS, PROPOSE_OPERATIONS):
                logger.warning("Ignoring '%s' call; the tool is not offered here", block.name)
            continue
        if block.name == PROPOSE_OPERATIONS:
            operations = _validate_items(block, "operations", Operation)
            summary = block.input.get("summary")
            return ActionsResponse(
                operations=operations,
                summary=summary if isinstance(summary, str) else None,
                message=text or None,
            )
        if block.name == ASK_QUESTIONS:
            questions = _validate_items(block, "questions", Question)
            return QuestionsResponse(questions=questions, message=text or None)

    return MessageResponse(text=text)


def _validate_items(block: ToolUseBlock, field: str, model: Type[ItemT]) -> List[ItemT]:
    """Validate each item on its own; drop the ones that fail."""
    items: Any = block.input.get(field)
    if not isinstance(items, list):
        logger.error("'%s' call has no '%s' list: %s", block.name, field, block.input)
        raise ProtocolViolationError(f"'{block.name}' payload is missing a '{field}' list")

    valid: List[ItemT] = []
    for index, item in enumerate(items):
        try:
            valid.append(model.model_validate(item))
        except ValidationError as exc:
            logger.warning(
                "Dropping invalid %s item %d from '%s': %s",
                model.__name__,
                index,
                block.name,
                exc.errors(include_url=False),
            )

    if len(valid) < len(items):
        logger.info("Kept %d of %d %s from '%s'", len(valid), len(items), field, block.name)
    return valid
