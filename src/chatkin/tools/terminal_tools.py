"""
Terminal tools: calling one of these ends the turn with a structured proposal for the UI.

The handlers never run real work.  The response parser reads the call's input directly; the handler
only supplies the stub result the backend sees if a terminal call ever has to be answered.
"""

import json
from typing import (
    Any,
    Dict,
    List,
    Literal,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)

from chatkin.tools import (
    ToolKind,
    register_tool,
)

ASK_QUESTIONS = "ask_questions"
PROPOSE_OPERATIONS = "propose_operations"

TERMINAL_STUB = json.dumps({"status": "will be handled in final response"})


class QuestionItem(BaseModel):
    question: str = Field(..., description="The question to ask")
    options: List[str] = Field(
        ...,
        description='Multiple choice options (user can also select "Other" to give a custom answer)',
    )


class AskQuestionsInput(BaseModel):
    questions: List[QuestionItem]


class OperationItem(BaseModel):
    operation: Literal["create", "update", "delete"] = Field(
        ..., description="The type of operation"
    )
    type: Literal["task", "note", "project"] = Field(..., description="The type of item")
    id: Optional[str] = Field(
        None, description="Item ID (required for update/delete, from workspace context)"
    )
    data: Optional[Dict[str, Any]] = Field(None, description="Item data (for create operations)")
    changes: Optional[Dict[str, Any]] = Field(
        None, description="Fields to update (for update operations)"
    )
    reason: Optional[str] = Field(None, description="Reason for deletion (for delete operations)")


class ProposeOperationsInput(BaseModel):
    summary: str = Field(
        ...,
        description="Brief summary of what you will do (e.g. \"I'll create 3 tasks for your plan\")",
    )
    operations: List[OperationItem]


@register_tool(ASK_QUESTIONS, kind=ToolKind.TERMINAL, input_model=AskQuestionsInput)
async def ask_questions(_params: AskQuestionsInput, **_: Any) -> str:
    """
    REQUIRED FIRST STEP for all create operations. When the user asks to create a task, note or
    project, call this tool immediately instead of answering in text. It shows multiple choice
    questions; only after receiving answers should you use propose_operations.
    """
    return TERMINAL_STUB


@register_tool(PROPOSE_OPERATIONS, kind=ToolKind.TERMINAL, input_model=ProposeOperationsInput)
async def propose_operations(_params: ProposeOperationsInput, **_: Any) -> str:
    """
    Propose create/update/delete operations to the user for confirmation. Use this ONLY AFTER you
    have gathered complete information via ask_questions.
    """
    return TERMINAL_STUB
