"""
Schema definitions for caller <-> formatter <-> orchestrator <-> backend messages.

These data models serve as the contract between the request handler, the tool loop, the model
backend and the individual tools.  We keep them separate from runtime logic so they can be imported
anywhere without side-effects.
"""

from enum import Enum
from typing import (
    Annotated,
    Any,
    Dict,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


class Role(str, Enum):
    """Speaker of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


class Mode(str, Enum):
    """Named policy selecting tool availability and model parameters."""

    CHAT = "chat"
    ACTION = "action"


# ---------------------------------------------------------------------------
# Conversation input
# ---------------------------------------------------------------------------
class FileRef(BaseModel):
    """Reference to a stored file; resolved to bytes only when inlined."""

    model_config = ConfigDict(frozen=True)

    url: str
    mime_type: str = Field(
        "application/octet-stream",
        validation_alias=AliasChoices("mime_type", "mimeType", "type"),
    )
    size_bytes: Optional[int] = Field(
        None, validation_alias=AliasChoices("size_bytes", "sizeBytes", "size")
    )
    name: Optional[str] = None

    @property
    def is_image(self) -> bool:
        return self.mime_type.lower().startswith("image/")


class ConversationTurn(BaseModel):
    """One message exchanged in a conversation."""

    model_config = ConfigDict(frozen=True)

    role: Role
    text: str = Field("", validation_alias=AliasChoices("text", "content"))
    attachments: List[FileRef] = Field(
        default_factory=list, validation_alias=AliasChoices("attachments", "files")
    )

    @field_validator("role", mode="before")
    @classmethod
    def _normalise_role(cls, value: Any) -> Any:
        # Stored conversations label the assistant "ai"
        if isinstance(value, str) and value.lower() == "ai":
            return Role.ASSISTANT
        return value


class ChatContext(BaseModel):
    """Where in the app the user is chatting from."""

    scope: Literal["global", "tasks", "notes", "project"] = "global"
    domain: Optional[str] = None


# ---------------------------------------------------------------------------
# Transcript content blocks
# ---------------------------------------------------------------------------
class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump()


class ImageSource(BaseModel):
    type: Literal["base64"] = "base64"
    media_type: str
    data: str


class ImageBlock(BaseModel):
    type: Literal["image"] = "image"
    source: ImageSource

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump()


class ToolUseBlock(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump()


class ToolResultBlock(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False

    def to_api(self) -> Dict[str, Any]:
        payload = self.model_dump()
        if not self.is_error:
            payload.pop("is_error")
        return payload


ContentBlock = Annotated[
    Union[TextBlock, ImageBlock, ToolUseBlock, ToolResultBlock],
    Field(discriminator="type"),
]


class TranscriptMessage(BaseModel):
    """One entry of the transcript sent to the model backend."""

    role: Role
    content: Union[str, List[ContentBlock]]

    def to_api(self) -> Dict[str, Any]:
        """Render the backend wire shape."""
        if isinstance(self.content, str):
            return {"role": self.role.value, "content": self.content}
        return {"role": self.role.value, "content": [block.to_api() for block in self.content]}


# ---------------------------------------------------------------------------
# Tool calls
# ---------------------------------------------------------------------------
class ToolCall(BaseModel):
    """A call that the model wants the orchestrator to execute."""

    id: str
    name: str = Field(..., description="Registered tool name")
    input: Dict[str, Any] = Field(default_factory=dict, description="Tool arguments")


class ToolResult(BaseModel):
    """Outcome of one ToolCall, correlated by id."""

    id: str
    content: str
    is_error: bool = False

    def to_block(self) -> ToolResultBlock:
        return ToolResultBlock(tool_use_id=self.id, content=self.content, is_error=self.is_error)


class ModelResponse(BaseModel):
    """Raw output of a single backend call."""

    stop_reason: Optional[str] = None
    content: List[ContentBlock] = Field(default_factory=list)

    def tool_calls(self) -> List[ToolCall]:
        return [
            ToolCall(id=block.id, name=block.name, input=block.input)
            for block in self.content
            if isinstance(block, ToolUseBlock)
        ]

    def text(self) -> str:
        return "\n".join(block.text for block in self.content if isinstance(block, TextBlock))


# ---------------------------------------------------------------------------
# Terminal responses
# ---------------------------------------------------------------------------
class OperationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class EntityType(str, Enum):
    TASK = "task"
    NOTE = "note"
    PROJECT = "project"


# Field a create payload cannot do without, per entity type
REQUIRED_CREATE_FIELDS: Dict[EntityType, str] = {
    EntityType.TASK: "title",
    EntityType.NOTE: "title",
    EntityType.PROJECT: "name",
}


class Operation(BaseModel):
    """A proposed create/update/delete the user confirms in the UI."""

    model_config = ConfigDict(populate_by_name=True)

    kind: OperationKind = Field(..., alias="operation")
    entity_type: EntityType = Field(..., alias="type")
    id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    changes: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None

    @model_validator(mode="after")
    def _check_kind_fields(self) -> "Operation":
        if self.kind in (OperationKind.UPDATE, OperationKind.DELETE) and not self.id:
            raise ValueError(f"'{self.kind.value}' operation requires an id")
        if self.kind is OperationKind.UPDATE and not self.changes:
            raise ValueError("'update' operation requires changes")
        if self.kind is OperationKind.CREATE:
            if not self.data:
                raise ValueError("'create' operation requires data")
            required = REQUIRED_CREATE_FIELDS[self.entity_type]
            if not str(self.data.get(required) or "").strip():
                raise ValueError(f"'create' {self.entity_type.value} requires data.{required}")
        return self


class Question(BaseModel):
    """A multiple-choice clarifying question."""

    model_config = ConfigDict(populate_by_name=True)

    prompt: str = Field(..., alias="question", min_length=1)
    options: List[str] = Field(default_factory=list)


class MessageResponse(BaseModel):
    type: Literal["message"] = "message"
    text: str


class ActionsResponse(BaseModel):
    type: Literal["actions"] = "actions"
    operations: List[Operation] = Field(default_factory=list)
    summary: Optional[str] = None
    message: Optional[str] = None


class QuestionsResponse(BaseModel):
    type: Literal["questions"] = "questions"
    questions: List[Question] = Field(default_factory=list)
    message: Optional[str] = None


ChatResponse = Annotated[
    Union[MessageResponse, ActionsResponse, QuestionsResponse],
    Field(discriminator="type"),
]
