"""
Request-level entry points of the chat engine.

:meth:`ChatService.handle` validates one inbound request, formats the transcript, picks the mode's
tools and parameters, and runs a fresh :class:`~chatkin.agent.orchestrator.Orchestrator`.  The
caller's credential is passed down explicitly; nothing is read from ambient state.
"""

import logging
from typing import (
    Optional,
    Sequence,
)

from chatkin.agent.backend import (
    BaseBackend,
    load_backend,
)
from chatkin.agent.message_formatter import MessageFormatter
from chatkin.agent.mode_policy import (
    ModeParams,
    params_for_mode,
    tools_for_mode,
)
from chatkin.agent.orchestrator import (
    Orchestrator,
    OrchestratorConfig,
)
from chatkin.agent.prompts import (
    build_summary_prompt,
    build_system_prompt,
)
from chatkin.config import settings
from chatkin.core.errors import (
    InputError,
    ProtocolViolationError,
)
from chatkin.core.schema import (
    ChatContext,
    ChatResponse,
    ConversationTurn,
    FileRef,
    Mode,
    Role,
    TranscriptMessage,
)
from chatkin.storage.data_store import SupabaseDataStore
from chatkin.storage.object_store import (
    ObjectStore,
    load_object_store,
    parse_attachment_url,
)

logger = logging.getLogger(__name__)

SUMMARY_PARAMS = ModeParams(temperature=0.3, max_tokens=1000)


class ChatService:
    """Wires the formatter, mode policy and orchestrator around shared collaborators."""

    def __init__(
        self,
        backend: BaseBackend | None = None,
        object_store: ObjectStore | None = None,
        data_store: SupabaseDataStore | None = None,
        model: str | None = None,
        max_iterations: int | None = None,
        history_window: int | None = None,
    ) -> None:
        self.backend = backend or load_backend()
        self.object_store = object_store or load_object_store()
        self.data_store = data_store or SupabaseDataStore()
        self.model = model or self.backend.default_model
        self.max_iterations = max_iterations or settings.MAX_ITERATIONS
        self.formatter = MessageFormatter(self.object_store, history_window=history_window)

    async def handle(
        self,
        message: str,
        attachments: Sequence[FileRef] | None = None,
        history: Sequence[ConversationTurn] | None = None,
        summary: str | None = None,
        mode: Mode | str = Mode.CHAT,
        auth_token: str | None = None,
        context: Optional[ChatContext] = None,
        workspace_context: str | None = None,
    ) -> ChatResponse:
        """
        Turn one user message plus conversation state into a single ChatResponse.

        Raises
        ------
        InputError
            Missing message, unknown mode or malformed attachment reference (before any model
            call); :class:`~chatkin.core.errors.AttachmentUnresolvedError` for unreadable images.
        ChatError
            Any orchestration failure (protocol violation, iteration cap, backend error).
        """
        if not message or not message.strip():
            raise InputError("Message is required")
        try:
            mode = Mode(mode)
        except ValueError as exc:
            raise InputError(f"Unknown mode: {mode}") from exc

        attachments = list(attachments or [])
        for attachment in attachments:
            parse_attachment_url(attachment.url, self.formatter.temp_path)

        logger.info(
            "Processing chat request: mode=%s, message_length=%d, history=%d, attachments=%d",
            mode.value,
            len(message),
            len(history or []),
            len(attachments),
        )

        transcript = await self.formatter.format(message, attachments, history, summary)

        params = params_for_mode(mode)
        config = OrchestratorConfig(
            model=self.model,
            system_prompt=build_system_prompt(mode, context, workspace_context),
            tools=tools_for_mode(mode),
            temperature=params.temperature,
            max_tokens=params.max_tokens,
            max_iterations=self.max_iterations,
        )
        orchestrator = Orchestrator(
            self.backend, config, auth_token=auth_token, data_store=self.data_store
        )
        return await orchestrator.execute_tool_loop(transcript)

    async def summarize(
        self, turns: Sequence[ConversationTurn], existing_summary: str | None = None
    ) -> str:
        """Summarise *turns* (merged into *existing_summary* if given) with one tool-less call."""
        if not turns:
            raise InputError("No messages provided")

        prompt = build_summary_prompt(turns, existing_summary)
        response = await self.backend.create(
            model=self.model,
            system="",
            messages=[TranscriptMessage(role=Role.USER, content=prompt)],
            tools=[],
            temperature=SUMMARY_PARAMS.temperature,
            max_tokens=SUMMARY_PARAMS.max_tokens,
        )

        summary = response.text().strip()
        if not summary:
            raise ProtocolViolationError("Summary response contained no text")

        logger.info(
            "Conversation summarized: %d messages -> %d chars", len(turns), len(summary)
        )
        return summary
