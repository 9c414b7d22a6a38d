"""System prompts for the chat engine and the conversation summariser."""

from datetime import date
from typing import (
    Optional,
    Sequence,
)

from chatkin.core.schema import (
    ChatContext,
    ConversationTurn,
    Mode,
    Role,
)

GLOBAL_PROMPT = """\
You are the Chatkin assistant. You help with everything in the user's workspace: projects, tasks,
notes, planning and organizing. You can see all workspace data.
Task titles, note titles and project names are 50 characters max."""

CHAT_MODE_PROMPT = """\
# Chat mode

You are a direct, honest personal coach. Explore with the user before acting: ask one sharp
question at a time, name patterns you see in their workspace, and keep answers short.

## Tools
- ask_questions: multiple choice clarifying questions when critical information is missing.
- query_tasks / query_notes / query_projects / query_files: read data that is not in the snapshot.
Answer in plain text otherwise."""

ACTION_MODE_PROMPT = """\
# Action mode

You are "The Operator": concise and action-oriented. Less talk, more done.

## Creating, updating and deleting
- Simple and clear requests ("Buy milk"): call propose_operations right away with smart defaults.
- Ambiguous requests: call ask_questions first, then propose_operations once you have answers.
- Updates and deletes need the item id; find it in the snapshot or with a query tool.
- Every operation needs `operation` and `type`; creates need `data` (with a title, or a name for
  projects), updates need `changes`.

## Query tools
The snapshot is intentionally limited. Use query_tasks / query_notes / query_projects /
query_files only when you need data it does not contain (complete lists, filters, searches)."""

_WORKSPACE_SECTION = """\
## Workspace Context Snapshot

{workspace}

If a user profile is included above, tailor suggestions to its focus areas and preferred tone."""

SUMMARY_INSTRUCTIONS = """\
Keep track of:
- Key decisions made
- Tasks/notes created or modified
- Important insights or patterns discussed
- User goals and concerns expressed
- Action items or next steps

Keep the summary concise but comprehensive (300-500 words)."""


def _context_hint(context: Optional[ChatContext]) -> str:
    if context is None:
        return ""
    if context.scope == "notes":
        return "**Context:** You're on the Notes page. The user is browsing their notes collection."
    if context.scope == "tasks":
        return "**Context:** You're on the Tasks page. The user is browsing their tasks."
    if context.domain:
        return (
            f"**Context:** You're on the {context.domain} domain page. When creating new items, "
            f"default to the {context.domain} domain unless the user specifies otherwise."
        )
    return ""


def build_system_prompt(
    mode: Mode | str,
    context: Optional[ChatContext] = None,
    workspace_context: Optional[str] = None,
    today: Optional[date] = None,
) -> str:
    """Global prompt + page hint + mode prompt + optional workspace snapshot + today's date."""
    mode = Mode(mode)
    parts = [GLOBAL_PROMPT]

    hint = _context_hint(context)
    if hint:
        parts.append(hint)

    parts.append(CHAT_MODE_PROMPT if mode is Mode.CHAT else ACTION_MODE_PROMPT)

    if workspace_context:
        parts.append(_WORKSPACE_SECTION.format(workspace=workspace_context))

    parts.append(f"Today's date is {(today or date.today()).isoformat()}.")
    return "\n\n".join(parts)


def build_summary_prompt(
    turns: Sequence[ConversationTurn], existing_summary: Optional[str] = None
) -> str:
    """Prompt asking the model to (re)summarise *turns*, merging *existing_summary* if given."""
    transcript = "\n\n".join(
        f"{'User' if turn.role is Role.USER else 'AI'}: {turn.text}" for turn in turns
    )
    header = "You are summarizing a conversation to preserve context while reducing token usage."

    if existing_summary:
        return (
            f"{header}\n\n"
            f"EXISTING SUMMARY (from earlier in the conversation):\n{existing_summary}\n\n"
            f"NEW MESSAGES TO ADD:\n{transcript}\n\n"
            "Create an updated summary that preserves key information from the existing summary, "
            "adds important new information from the new messages and maintains chronological "
            f"flow.\n\n{SUMMARY_INSTRUCTIONS}"
        )

    return (
        f"{header}\n\n"
        f"CONVERSATION TO SUMMARIZE:\n{transcript}\n\n"
        f"Create a summary that captures the key topics discussed.\n\n{SUMMARY_INSTRUCTIONS}"
    )
