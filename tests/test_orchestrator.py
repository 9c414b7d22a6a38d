"""The bounded tool loop: dispatch, fan-in, caps and protocol failures."""

import json

import pytest

from chatkin.agent.mode_policy import tools_for_mode
from chatkin.agent.orchestrator import (
    LoopState,
    Orchestrator,
    OrchestratorConfig,
)
from chatkin.core.errors import (
    IterationLimitError,
    ProtocolViolationError,
)
from chatkin.core.schema import (
    ActionsResponse,
    MessageResponse,
    QuestionsResponse,
    Role,
    ToolResultBlock,
    ToolUseBlock,
    TranscriptMessage,
)
from fakes import (
    FakeBackend,
    text_response,
    tool_use_response,
)


def _config(mode: str = "chat", max_iterations: int = 5) -> OrchestratorConfig:
    return OrchestratorConfig(
        model="test-model",
        system_prompt="You are a helpful assistant.",
        tools=tools_for_mode(mode),
        max_iterations=max_iterations,
    )


def _transcript(text: str = "hello") -> list[TranscriptMessage]:
    return [TranscriptMessage(role=Role.USER, content=text)]


def _results(message: TranscriptMessage) -> dict[str, ToolResultBlock]:
    assert message.role is Role.USER
    assert isinstance(message.content, list)
    return {block.tool_use_id: block for block in message.content}


async def test_plain_answer_takes_one_call() -> None:
    backend = FakeBackend([text_response("4")])
    orchestrator = Orchestrator(backend, _config())

    result = await orchestrator.execute_tool_loop(_transcript("What's 2+2?"))

    assert result == MessageResponse(text="4")
    assert len(backend.calls) == 1
    assert backend.calls[0]["temperature"] == 0.7
    assert [tool["name"] for tool in backend.calls[0]["tools"]][-1] == "ask_questions"
    assert orchestrator.last_run.transitions == [LoopState.AWAITING_MODEL, LoopState.TERMINAL]


async def test_query_round_trip(data_store) -> None:
    backend = FakeBackend(
        [
            tool_use_response(
                ("t1", "query_tasks", {"filters": {"status": "todo"}, "limit": 5}),
                text="Let me check.",
            ),
            text_response("You have 5 open tasks."),
        ]
    )
    orchestrator = Orchestrator(backend, _config(), auth_token="jwt-1", data_store=data_store)

    result = await orchestrator.execute_tool_loop(_transcript("What's on my list?"))

    assert result == MessageResponse(text="You have 5 open tasks.")
    assert len(backend.calls) == 2

    table, params, token = data_store.queries[0]
    assert (table, token) == ("tasks", "jwt-1")
    assert ("status", "eq.todo") in params
    assert ("limit", "5") in params

    second = backend.calls[1]["messages"]
    assert len(second) == 3
    assert second[1].role is Role.ASSISTANT
    assert any(isinstance(block, ToolUseBlock) for block in second[1].content)
    results = _results(second[2])
    assert list(results) == ["t1"]
    payload = json.loads(results["t1"].content)
    assert payload["count"] == 5
    assert not results["t1"].is_error

    run = orchestrator.last_run
    assert run.iteration_count == 1
    assert run.model_calls == 2
    assert run.transitions == [
        LoopState.AWAITING_MODEL,
        LoopState.DISPATCHING_TOOLS,
        LoopState.AWAITING_MODEL,
        LoopState.TERMINAL,
    ]


async def test_every_call_gets_exactly_one_result(data_store) -> None:
    backend = FakeBackend(
        [
            tool_use_response(
                ("a", "query_tasks", {}),
                ("b", "query_notes", {"limit": "lots"}),
                ("c", "query_projects", {}),
            ),
            text_response("done"),
        ]
    )
    orchestrator = Orchestrator(backend, _config(), auth_token="jwt", data_store=data_store)

    await orchestrator.execute_tool_loop(_transcript())

    results = _results(backend.calls[1]["messages"][-1])
    assert list(results) == ["a", "b", "c"]
    assert results["b"].is_error
    assert "Please try again" in json.loads(results["b"].content)["message"]
    assert not results["a"].is_error
    assert not results["c"].is_error


async def test_missing_credentials_reach_the_model_as_a_result(data_store) -> None:
    backend = FakeBackend(
        [tool_use_response(("t1", "query_tasks", {})), text_response("Please log in.")]
    )
    orchestrator = Orchestrator(backend, _config(), auth_token=None, data_store=data_store)

    result = await orchestrator.execute_tool_loop(_transcript())

    assert result == MessageResponse(text="Please log in.")
    payload = json.loads(_results(backend.calls[1]["messages"][-1])["t1"].content)
    assert payload["error"] is True
    assert "Authentication required" in payload["message"]
    assert data_store.queries == []


async def test_iteration_cap(data_store) -> None:
    backend = FakeBackend(
        script=lambda n: tool_use_response((f"t{n}", "query_tasks", {"limit": 1}))
    )
    orchestrator = Orchestrator(
        backend, _config(max_iterations=5), auth_token="jwt", data_store=data_store
    )

    with pytest.raises(IterationLimitError, match="too many tool calls"):
        await orchestrator.execute_tool_loop(_transcript())

    assert len(backend.calls) == 5
    assert len(data_store.queries) == 4
    assert orchestrator.last_run.state is LoopState.FAILED_CAP


async def test_cap_of_one_allows_a_direct_answer() -> None:
    backend = FakeBackend([text_response("sure")])
    orchestrator = Orchestrator(backend, _config(max_iterations=1))

    assert await orchestrator.execute_tool_loop(_transcript()) == MessageResponse(text="sure")


@pytest.mark.parametrize("stop_reason", ["max_tokens", "pause_turn", None])
async def test_unexpected_stop_reason(stop_reason) -> None:
    backend = FakeBackend([text_response("cut off", stop_reason=stop_reason)])
    orchestrator = Orchestrator(backend, _config())

    with pytest.raises(ProtocolViolationError):
        await orchestrator.execute_tool_loop(_transcript())

    assert orchestrator.last_run.state is LoopState.FAILED_PROTOCOL


async def test_tool_use_without_calls_is_a_protocol_violation() -> None:
    backend = FakeBackend([text_response("nothing to call", stop_reason="tool_use")])
    orchestrator = Orchestrator(backend, _config())

    with pytest.raises(ProtocolViolationError):
        await orchestrator.execute_tool_loop(_transcript())


async def test_terminal_tool_ends_the_turn(data_store) -> None:
    backend = FakeBackend(
        [
            tool_use_response(
                (
                    "t1",
                    "propose_operations",
                    {
                        "summary": "Add a walk",
                        "operations": [
                            {"operation": "create", "type": "task", "data": {"title": "Walk"}}
                        ],
                    },
                ),
                ("t2", "query_tasks", {}),
            )
        ]
    )
    orchestrator = Orchestrator(backend, _config("action"), auth_token="jwt", data_store=data_store)

    result = await orchestrator.execute_tool_loop(_transcript("Plan a walk"))

    assert isinstance(result, ActionsResponse)
    assert len(result.operations) == 1
    assert len(backend.calls) == 1
    assert data_store.queries == []
    assert orchestrator.last_run.state is LoopState.TERMINAL


async def test_ask_questions_in_chat_mode() -> None:
    backend = FakeBackend(
        [
            tool_use_response(
                ("q", "ask_questions", {"questions": [{"question": "Which?", "options": ["A"]}]})
            )
        ]
    )

    result = await Orchestrator(backend, _config("chat")).execute_tool_loop(_transcript())

    assert isinstance(result, QuestionsResponse)


async def test_unusable_terminal_payload_fails_the_run() -> None:
    backend = FakeBackend([tool_use_response(("t1", "propose_operations", {"summary": "?"}))])
    orchestrator = Orchestrator(backend, _config("action"))

    with pytest.raises(ProtocolViolationError):
        await orchestrator.execute_tool_loop(_transcript())

    assert orchestrator.last_run.state is LoopState.FAILED_PROTOCOL


async def test_tool_not_offered_in_mode_is_not_executed(data_store) -> None:
    backend = FakeBackend(
        [
            tool_use_response(("x", "delete_everything", {}), ("y", "query_projects", {})),
            text_response("ok"),
        ]
    )
    orchestrator = Orchestrator(backend, _config(), auth_token="jwt", data_store=data_store)

    await orchestrator.execute_tool_loop(_transcript())

    results = _results(backend.calls[1]["messages"][-1])
    assert list(results) == ["x", "y"]
    assert results["x"].is_error
    assert "not available" in json.loads(results["x"].content)["message"]
    assert [table for table, _, _ in data_store.queries] == ["projects"]


async def test_caller_transcript_is_not_mutated(data_store) -> None:
    backend = FakeBackend([tool_use_response(("t1", "query_notes", {})), text_response("ok")])
    orchestrator = Orchestrator(backend, _config(), auth_token="jwt", data_store=data_store)
    transcript = _transcript()

    await orchestrator.execute_tool_loop(transcript)

    assert len(transcript) == 1
    assert len(backend.calls[1]["messages"]) == 3


async def test_runs_do_not_share_state(data_store) -> None:
    backend = FakeBackend(
        [
            tool_use_response(("t1", "query_notes", {})),
            text_response("first"),
            text_response("second"),
        ]
    )
    orchestrator = Orchestrator(backend, _config(), auth_token="jwt", data_store=data_store)

    await orchestrator.execute_tool_loop(_transcript())
    second = await orchestrator.execute_tool_loop(_transcript())

    assert second == MessageResponse(text="second")
    assert orchestrator.last_run.model_calls == 1
    assert len(backend.calls[2]["messages"]) == 1


async def test_end_turn_with_tool_not_offered_in_mode_is_a_message() -> None:
    response = tool_use_response(
        ("t1", "propose_operations", {"summary": "s", "operations": []}),
        text="Here's what I'd do.",
    ).model_copy(update={"stop_reason": "end_turn"})
    orchestrator = Orchestrator(FakeBackend([response]), _config("chat"))

    result = await orchestrator.execute_tool_loop(_transcript())

    assert result == MessageResponse(text="Here's what I'd do.")
    assert orchestrator.last_run.state is LoopState.TERMINAL
