"""
Tool loop for Chatkin.

One :class:`Orchestrator` run drives the request/execute/continue cycle against the model backend
until the model produces a final answer, proposes a terminal action, or the iteration cap is hit:

    AWAITING_MODEL -> (DISPATCHING_TOOLS -> AWAITING_MODEL)* -> TERMINAL
                                                             -> FAILED_CAP
                                                             -> FAILED_PROTOCOL

Every run owns its transcript copy and counters; nothing is shared between requests.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Sequence,
)

from pydantic import (
    BaseModel,
    Field,
)

from chatkin.agent.backend import BaseBackend
from chatkin.agent.response_parser import parse_response
from chatkin.agent.tool_executor import dispatch_tool_calls
from chatkin.config import settings
from chatkin.core.errors import (
    IterationLimitError,
    ProtocolViolationError,
)
from chatkin.core.schema import (
    ChatResponse,
    ModelResponse,
    Role,
    ToolCall,
    ToolResult,
    TranscriptMessage,
)
from chatkin.storage.data_store import SupabaseDataStore
from chatkin.tools import (
    ToolDefinition,
    ToolKind,
    get_tool_schemas,
)

logger = logging.getLogger(__name__)

END_TURN = "end_turn"
TOOL_USE = "tool_use"


class LoopState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    DISPATCHING_TOOLS = "dispatching_tools"
    TERMINAL = "terminal"
    FAILED_CAP = "failed_cap"
    FAILED_PROTOCOL = "failed_protocol"


class OrchestratorConfig(BaseModel):
    """Model invocation settings for one run."""

    model: str
    system_prompt: str
    tools: List[ToolDefinition] = Field(default_factory=list)
    temperature: float = 0.7
    max_tokens: int = 2048
    max_iterations: int = Field(default_factory=lambda: settings.MAX_ITERATIONS, ge=1)


class LoopRun(BaseModel):
    """Mutable state of one run; discarded when the request ends."""

    transcript: List[TranscriptMessage]
    state: LoopState = LoopState.AWAITING_MODEL
    iteration_count: int = 0
    model_calls: int = 0
    transitions: List[LoopState] = Field(default_factory=lambda: [LoopState.AWAITING_MODEL])

    def move_to(self, state: LoopState) -> None:
        self.state = state
        self.transitions.append(state)


class Orchestrator:
    """Runs the bounded tool loop for a single request."""

    def __init__(
        self,
        backend: BaseBackend,
        config: OrchestratorConfig,
        auth_token: str | None = None,
        data_store: SupabaseDataStore | None = None,
    ) -> None:
        self.backend = backend
        self.config = config
        self.auth_token = auth_token
        self.data_store = data_store
        self.last_run: LoopRun | None = None

        self._offered = {tool.name for tool in config.tools}
        self._terminal = {tool.name for tool in config.tools if tool.kind is ToolKind.TERMINAL}
        self._tool_schemas = get_tool_schemas(config.tools)

    async def execute_tool_loop(self, transcript: Sequence[TranscriptMessage]) -> ChatResponse:
        """
        Drive the model until it finishes and return the parsed response.

        The caller's *transcript* is copied, never mutated.

        Raises
        ------
        IterationLimitError
            If ``max_iterations`` model calls pass without a final answer.
        ProtocolViolationError
            On an unexpected stop reason or an unusable terminal payload.
        BackendError
            If the backend call itself fails.
        """
        run = LoopRun(transcript=list(transcript))
        self.last_run = run

        while True:
            response = await self._call_model(run)
            calls = response.tool_calls()

            if response.stop_reason == END_TURN:
                return self._finish(run, response)

            if response.stop_reason != TOOL_USE or not calls:
                run.move_to(LoopState.FAILED_PROTOCOL)
                logger.error(
                    "Unexpected stop reason %r with %d tool calls", response.stop_reason, len(calls)
                )
                raise ProtocolViolationError(f"Unexpected stop reason: {response.stop_reason}")

            terminal = [call.name for call in calls if call.name in self._terminal]
            if terminal:
                logger.debug("Terminal tool %s requested, finishing turn", terminal)
                return self._finish(run, response)

            if run.model_calls >= self.config.max_iterations:
                run.move_to(LoopState.FAILED_CAP)
                logger.warning("Max tool use iterations reached: %d", run.model_calls)
                raise IterationLimitError(run.model_calls)

            run.move_to(LoopState.DISPATCHING_TOOLS)
            await self._dispatch(run, response, calls)
            run.iteration_count += 1
            run.move_to(LoopState.AWAITING_MODEL)

    async def _call_model(self, run: LoopRun) -> ModelResponse:
        run.model_calls += 1
        logger.debug("Tool use loop iteration %d", run.model_calls)
        response = await self.backend.create(
            model=self.config.model,
            system=self.config.system_prompt,
            messages=run.transcript,
            tools=self._tool_schemas,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )
        logger.debug(
            "AI response generated: stop_reason=%s, %d content blocks",
            response.stop_reason,
            len(response.content),
        )
        return response

    def _finish(self, run: LoopRun, response: ModelResponse) -> ChatResponse:
        try:
            result = parse_response(response, self._terminal)
        except ProtocolViolationError:
            run.move_to(LoopState.FAILED_PROTOCOL)
            raise
        run.move_to(LoopState.TERMINAL)
        logger.info(
            "Chat turn finished as '%s' after %d model call(s)", result.type, run.model_calls
        )
        return result

    async def _dispatch(
        self, run: LoopRun, response: ModelResponse, calls: List[ToolCall]
    ) -> None:
        """Append the assistant turn, then one user turn holding a result for every call id."""
        allowed = [call for call in calls if call.name in self._offered]
        executed = await dispatch_tool_calls(
            allowed, auth_token=self.auth_token, data_store=self.data_store
        )
        by_id: Dict[str, ToolResult] = {result.id: result for result in executed}

        results: List[ToolResult] = []
        for call in calls:
            if call.id in by_id:
                results.append(by_id[call.id])
                continue
            logger.warning("Model called tool '%s' which is not offered; not executed", call.name)
            results.append(
                ToolResult(
                    id=call.id,
                    content=_error_payload(f"Tool '{call.name}' is not available here."),
                    is_error=True,
                )
            )

        run.transcript.append(TranscriptMessage(role=Role.ASSISTANT, content=response.content))
        run.transcript.append(
            TranscriptMessage(role=Role.USER, content=[result.to_block() for result in results])
        )


def _error_payload(message: str) -> str:
    payload: Dict[str, Any] = {"error": True, "message": message}
    return json.dumps(payload)
