"""
Pydantic models for Chatkin API requests and responses.
This module defines the request and response schemas used by the Chatkin API.
"""

from typing import (
    List,
    Optional,
)

from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
)

from chatkin.core.schema import (
    ChatContext,
    ConversationTurn,
    FileRef,
    Mode,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class ChatRequest(BaseModel):
    """Incoming user message plus the conversation state the caller owns."""

    message: str = Field(..., description="User message")
    attachments: List[FileRef] = Field(
        default_factory=list, validation_alias=AliasChoices("attachments", "files")
    )
    history: List[ConversationTurn] = Field(
        default_factory=list,
        validation_alias=AliasChoices("history", "conversationHistory"),
        description="Earlier turns, oldest first",
    )
    summary: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("summary", "conversationSummary"),
        description="Summary standing in for turns older than the history window",
    )
    mode: Mode = Mode.CHAT
    context: Optional[ChatContext] = None
    workspace_context: Optional[str] = Field(
        None, validation_alias=AliasChoices("workspace_context", "workspaceContext")
    )
    auth_token: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("auth_token", "authToken"),
        description="Used only when no Authorization header is sent",
    )


class SummarizeRequest(BaseModel):
    """Turns to fold into a (possibly existing) conversation summary."""

    messages: List[ConversationTurn]
    existing_summary: Optional[str] = Field(
        None, validation_alias=AliasChoices("existing_summary", "existingSummary")
    )


class SummarizeResponse(BaseModel):
    summary: str
