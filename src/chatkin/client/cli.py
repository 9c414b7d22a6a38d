"""CLI client for the Chatkin API."""

from __future__ import annotations

import logging
import os
from typing import (
    Any,
    Dict,
    List,
    Tuple,
    cast,
)

import httpx

from chatkin.common import (
    AnsiColors,
    colored_print,
)
from chatkin.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def call_api(
    endpoint: str,
    data: Dict[str, Any],
    auth_token: str | None = None,
    max_retries: int = 5,
) -> Dict[str, Any]:
    """POST *data* to the API, retrying while the server is still starting."""
    api_url = f"http://localhost:{settings.API_PORT}{endpoint}"
    headers = {"Authorization": f"Bearer {auth_token}"} if auth_token else {}

    for attempt in range(max_retries):
        try:
            with httpx.Client(timeout=120.0) as client:
                response = client.post(api_url, json=data, headers=headers)
                response.raise_for_status()
                return cast(Dict[str, Any], response.json())
        except httpx.ConnectError:
            if attempt == max_retries - 1:
                break
            retry_delay = 0.5 * (2**attempt)  # exponential backoff: 0.5s, 1s, 2s, 4s...
            logger.info(
                "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                retry_delay,
                attempt + 1,
                max_retries,
            )
            import time  # pylint: disable=import-outside-toplevel

            time.sleep(retry_delay)
        except httpx.HTTPStatusError as e:
            detail: Any = str(e)
            try:
                body = e.response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                detail = body.get("detail", detail)
            logger.error("API error %d: %s", e.response.status_code, detail)
            return {"type": "error", "text": f"API error: {detail}"}
        except httpx.HTTPError as e:
            logger.error("API request error: %s", str(e))
            return {"type": "error", "text": f"Error connecting to API: {e}"}

    return {"type": "error", "text": f"Failed to connect to API after {max_retries} attempts"}


def render_response(response: Dict[str, Any]) -> str:
    """Print one chat response and return the text to remember as the assistant turn."""
    kind = response.get("type")

    if kind == "questions":
        if response.get("message"):
            colored_print(response["message"], AnsiColors.YELLOW)
        lines: List[str] = []
        for question in response.get("questions", []):
            colored_print(f"? {question['question']}", AnsiColors.MAGENTA)
            for number, option in enumerate(question.get("options", []), start=1):
                colored_print(f"   {number}. {option}", AnsiColors.MAGENTA)
            lines.append(question["question"])
        return "\n".join(lines)

    if kind == "actions":
        summary = response.get("summary") or response.get("message") or "Proposed changes:"
        colored_print(summary, AnsiColors.YELLOW)
        for op in response.get("operations", []):
            target = op.get("id") or (op.get("data") or {}).get("title") or ""
            colored_print(f" - {op['operation']} {op['type']} {target}".rstrip(), AnsiColors.GREEN)
        return summary

    if kind == "error":
        colored_print(response.get("text", ""), AnsiColors.RED)
        return ""

    text = response.get("text", "No response from API")
    colored_print(text, AnsiColors.YELLOW)
    return text


def run_cli(auth_token: str | None = None, mode: str = "chat") -> None:
    """Run the CLI client that communicates with the API."""
    auth_token = auth_token or os.environ.get("CHATKIN_AUTH_TOKEN")
    history: List[Dict[str, str]] = []

    colored_print(
        f"\nChatkin shell ({mode} mode) - type 'exit' or 'quit' (or Ctrl+C) to exit",
        AnsiColors.GREEN,
    )
    if not auth_token:
        colored_print("No CHATKIN_AUTH_TOKEN set; data queries will be refused.", AnsiColors.RED)

    while True:
        colored_print("\nYou: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break  # Exit if user input couldn't be retrieved (e.g., Ctrl+C)
        if user_msg.lower() in {"exit", "quit"}:
            break
        if not user_msg:
            continue

        response = call_api(
            "/chat", {"message": user_msg, "history": history, "mode": mode}, auth_token
        )
        reply = render_response(response)

        history.append({"role": "user", "text": user_msg})
        if reply:
            history.append({"role": "assistant", "text": reply})


if __name__ == "__main__":
    run_cli()
