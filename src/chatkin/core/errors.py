"""
Typed errors surfaced to the caller of a chat request.

Failures that stay local to a single tool call never reach this module; they are folded into that
call's ToolResult.  Everything here aborts the request and maps onto one HTTP status in the API.
"""


class ChatError(RuntimeError):
    """Base class for errors that fail a whole chat request."""

    status_code: int = 500


class InputError(ChatError):
    """The request was rejected before any model call (missing message, bad attachment URL)."""

    status_code = 400


class AttachmentUnresolvedError(InputError):
    """An attachment could not be read from the object store."""

    status_code = 422

    def __init__(self, url: str, reason: str = "not found") -> None:
        super().__init__(f"Attachment could not be resolved ({reason}): {url}")
        self.url = url
        self.reason = reason


class BackendError(ChatError):
    """The language-model backend call itself failed."""

    status_code = 502


class ProtocolViolationError(ChatError):
    """The backend answered outside the contract (unexpected stop reason, unusable payload)."""

    status_code = 502


class IterationLimitError(ChatError):
    """The tool loop hit its iteration cap without a final answer."""

    status_code = 422

    def __init__(self, iterations: int) -> None:
        super().__init__(
            "The AI made too many tool calls. Please try rephrasing your request or breaking it "
            "into smaller questions."
        )
        self.iterations = iterations
