"""
Language-model backend interface for Chatkin.

This module is the only place that *directly* calls an LLM.  Everything else (formatter, tool loop,
tools) works on the Anthropic-shaped transcript defined in :mod:`chatkin.core.schema`.

We support two back-ends out of the box:

1. **Anthropic** Messages API with native tool use (default).
2. **OpenAI** Chat Completions, translated to and from the Anthropic shapes.

Additional providers can be added by subclassing :class:`BaseBackend` and registering via
:func:`register_backend`.
"""

import json
import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Sequence,
    Type,
)

from chatkin.config import settings
from chatkin.core.errors import (
    BackendError,
    ProtocolViolationError,
)
from chatkin.core.schema import (
    ImageBlock,
    ModelResponse,
    Role,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    TranscriptMessage,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_BACKEND_REGISTRY: dict[str, Type["BaseBackend"]] = {}


def register_backend(name: str) -> Callable:
    """Decorator to register a backend class under *name*."""

    def wrapper(cls: Type["BaseBackend"]) -> Type["BaseBackend"]:
        _BACKEND_REGISTRY[name] = cls
        return cls

    return wrapper


def load_backend(name: str | None = None) -> "BaseBackend":
    """
    Factory that returns an instantiated backend.

    Fallback order:
    1. *name* arg
    2. ``settings.BACKEND`` env option
    """

    target = name or settings.BACKEND
    cls = _BACKEND_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Backend '{target}' is not registered.")
    return cls()


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseBackend(ABC):
    """Abstract backend: one transcript in, one ModelResponse out."""

    default_model: str = ""

    @abstractmethod
    async def create(
        self,
        *,
        model: str,
        system: str,
        messages: Sequence[TranscriptMessage],
        tools: Sequence[Dict[str, Any]],
        temperature: float,
        max_tokens: int,
    ) -> ModelResponse:
        """Run a single model call and return its stop reason and content blocks."""


# ---------------------------------------------------------------------------
# Concrete backends
# ---------------------------------------------------------------------------
@register_backend("anthropic")
class AnthropicBackend(BaseBackend):
    """Anthropic Claude backend using the async SDK."""

    def __init__(self, api_key: str | None = None, client: Any = None) -> None:
        if client is None:
            import anthropic  # pylint: disable=import-outside-toplevel

            client = anthropic.AsyncAnthropic(api_key=api_key or settings.ANTHROPIC_API_KEY)
        self._client = client
        self.default_model = settings.ANTHROPIC_MODEL

    async def create(
        self,
        *,
        model: str,
        system: str,
        messages: Sequence[TranscriptMessage],
        tools: Sequence[Dict[str, Any]],
        temperature: float,
        max_tokens: int,
    ) -> ModelResponse:
        import anthropic  # pylint: disable=import-outside-toplevel

        request: Dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [message.to_api() for message in messages],
        }
        if system:
            request["system"] = system
        if tools:
            request["tools"] = list(tools)

        try:
            response = await self._client.messages.create(**request)
        except anthropic.APIError as exc:
            logger.error("Anthropic request error: %s", exc)
            raise BackendError(f"Error calling Anthropic: {exc}") from exc

        blocks = [
            block.model_dump() for block in response.content if block.type in ("text", "tool_use")
        ]
        logger.debug(
            "Anthropic response: stop_reason=%s, %d blocks", response.stop_reason, len(blocks)
        )
        return ModelResponse.model_validate({"stop_reason": response.stop_reason, "content": blocks})


_OPENAI_STOP_REASONS = {
    "stop": "end_turn",
    "tool_calls": "tool_use",
    "function_call": "tool_use",
    "length": "max_tokens",
    "content_filter": "refusal",
}


@register_backend("openai")
class OpenAIBackend(BaseBackend):
    """OpenAI backend; translates the transcript to Chat Completions and back."""

    def __init__(self, api_key: str | None = None, client: Any = None) -> None:
        if client is None:
            import openai  # pylint: disable=import-outside-toplevel

            client = openai.AsyncOpenAI(api_key=api_key or settings.OPENAI_API_KEY)
        self._client = client
        self.default_model = settings.OPENAI_MODEL

    async def create(
        self,
        *,
        model: str,
        system: str,
        messages: Sequence[TranscriptMessage],
        tools: Sequence[Dict[str, Any]],
        temperature: float,
        max_tokens: int,
    ) -> ModelResponse:
        import openai  # pylint: disable=import-outside-toplevel

        request: Dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": to_openai_messages(system, messages),
        }
        if tools:
            request["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool["name"],
                        "description": tool.get("description", ""),
                        "parameters": tool["input_schema"],
                    },
                }
                for tool in tools
            ]

        try:
            response = await self._client.chat.completions.create(**request)
        except openai.OpenAIError as exc:
            logger.error("OpenAI request error: %s", exc)
            raise BackendError(f"Error calling OpenAI: {exc}") from exc

        choice = response.choices[0]
        content: List[TextBlock | ToolUseBlock] = []
        if choice.message.content:
            content.append(TextBlock(text=choice.message.content))
        for call in choice.message.tool_calls or []:
            try:
                arguments = json.loads(call.function.arguments or "{}")
            except json.JSONDecodeError as exc:
                logger.error("Malformed tool arguments from OpenAI: %s", call.function.arguments)
                raise ProtocolViolationError(
                    f"Malformed arguments for tool '{call.function.name}'"
                ) from exc
            content.append(ToolUseBlock(id=call.id, name=call.function.name, input=arguments))

        stop_reason = _OPENAI_STOP_REASONS.get(choice.finish_reason, choice.finish_reason)
        logger.debug(
            "OpenAI response: finish_reason=%s, %d blocks", choice.finish_reason, len(content)
        )
        return ModelResponse(stop_reason=stop_reason, content=content)


def to_openai_messages(
    system: str, messages: Sequence[TranscriptMessage]
) -> List[Dict[str, Any]]:
    """Translate an Anthropic-shaped transcript into Chat Completions messages."""
    out: List[Dict[str, Any]] = []
    if system:
        out.append({"role": "system", "content": system})

    for message in messages:
        if isinstance(message.content, str):
            out.append({"role": message.role.value, "content": message.content})
            continue

        if message.role is Role.ASSISTANT:
            text = "\n".join(b.text for b in message.content if isinstance(b, TextBlock))
            tool_calls = [
                {
                    "id": b.id,
                    "type": "function",
                    "function": {"name": b.name, "arguments": json.dumps(b.input)},
                }
                for b in message.content
                if isinstance(b, ToolUseBlock)
            ]
            entry: Dict[str, Any] = {"role": "assistant", "content": text or None}
            if tool_calls:
                entry["tool_calls"] = tool_calls
            out.append(entry)
            continue

        # Tool results must directly follow the assistant message that issued the calls
        parts: List[Dict[str, Any]] = []
        for block in message.content:
            if isinstance(block, ToolResultBlock):
                out.append(
                    {"role": "tool", "tool_call_id": block.tool_use_id, "content": block.content}
                )
            elif isinstance(block, TextBlock):
                parts.append({"type": "text", "text": block.text})
            elif isinstance(block, ImageBlock):
                data_url = f"data:{block.source.media_type};base64,{block.source.data}"
                parts.append({"type": "image_url", "image_url": {"url": data_url}})
        if parts:
            out.append({"role": "user", "content": parts})

    return out
