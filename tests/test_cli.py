"""Terminal client: API calls and response rendering."""

import httpx
import pytest
import respx

from chatkin.client.cli import (
    call_api,
    render_response,
)
from chatkin.config import settings

CHAT_URL = f"http://localhost:{settings.API_PORT}/chat"


@respx.mock
def test_call_api_sends_bearer_token() -> None:
    route = respx.post(CHAT_URL).mock(
        return_value=httpx.Response(200, json={"type": "message", "text": "hi"})
    )

    result = call_api("/chat", {"message": "hello"}, auth_token="tok")

    assert result == {"type": "message", "text": "hi"}
    assert route.calls.last.request.headers["Authorization"] == "Bearer tok"


@respx.mock
def test_call_api_reports_http_errors() -> None:
    respx.post(CHAT_URL).mock(
        return_value=httpx.Response(422, json={"detail": "The AI made too many tool calls."})
    )

    result = call_api("/chat", {"message": "loop"})

    assert result == {"type": "error", "text": "API error: The AI made too many tool calls."}


@respx.mock
def test_call_api_gives_up_when_server_is_down(monkeypatch) -> None:
    monkeypatch.setattr("time.sleep", lambda _: None)
    respx.post(CHAT_URL).mock(side_effect=httpx.ConnectError("refused"))

    result = call_api("/chat", {"message": "hello"}, max_retries=2)

    assert result["type"] == "error"
    assert "after 2 attempts" in result["text"]


@pytest.mark.parametrize(
    "response, remembered",
    [
        ({"type": "message", "text": "Sure thing"}, "Sure thing"),
        (
            {
                "type": "questions",
                "questions": [{"question": "Which project?", "options": ["Body", "Mind"]}],
            },
            "Which project?",
        ),
        (
            {
                "type": "actions",
                "summary": "Add a walk",
                "operations": [{"operation": "create", "type": "task", "data": {"title": "Walk"}}],
            },
            "Add a walk",
        ),
        ({"type": "error", "text": "API error: boom"}, ""),
    ],
)
def test_render_response(capsys, response, remembered) -> None:
    assert render_response(response) == remembered
    out = capsys.readouterr().out
    if response["type"] == "actions":
        assert "create task Walk" in out
    if response["type"] == "questions":
        assert "1. Body" in out
