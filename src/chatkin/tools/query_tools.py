"""
Read-only query tools the model can call mid-turn.

Each tool maps a small filter/limit input onto one scoped read of the user's records.  Downstream
failures come back as an ``{"error": true, ...}`` payload so the model can recover conversationally.
"""

import json
import logging
from typing import (
    Optional,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)

from chatkin.config import settings
from chatkin.storage.data_store import (
    DataStoreError,
    SupabaseDataStore,
    TableQuery,
)
from chatkin.tools import (
    ToolKind,
    register_tool,
)

logger = logging.getLogger(__name__)

QUERY_TOOL_NAMES = ("query_tasks", "query_notes", "query_projects", "query_files")


# ---------------------------------------------------------------------------
# Input models
# ---------------------------------------------------------------------------
class QueryInput(BaseModel):
    """Fields shared by every query tool."""

    model_config = ConfigDict(extra="ignore")

    limit: Optional[int] = Field(
        None,
        description=(
            f"Maximum number of rows (default {settings.QUERY_DEFAULT_LIMIT}, "
            f"max {settings.QUERY_MAX_LIMIT})"
        ),
    )

    def effective_limit(self, default: int | None = None) -> int:
        default = default or settings.QUERY_DEFAULT_LIMIT
        requested = self.limit if self.limit and self.limit > 0 else default
        return min(requested, settings.QUERY_MAX_LIMIT)


class TaskFilters(BaseModel):
    model_config = ConfigDict(extra="ignore")

    project_id: Optional[str] = Field(None, description="Only tasks in this project")
    status: Optional[str] = Field(None, description="Task status, e.g. 'todo' or 'completed'")
    search_query: Optional[str] = Field(None, description="Text to find in title or description")


class NoteFilters(BaseModel):
    model_config = ConfigDict(extra="ignore")

    project_id: Optional[str] = Field(None, description="Only notes in this project")
    search_query: Optional[str] = Field(None, description="Text to find in title or content")


class ProjectFilters(BaseModel):
    model_config = ConfigDict(extra="ignore")

    include_archived: bool = Field(False, description="Also return archived projects")
    search_query: Optional[str] = Field(None, description="Text to find in name or description")


class FileFilters(BaseModel):
    model_config = ConfigDict(extra="ignore")

    project_id: Optional[str] = Field(None, description="Only files in this project")
    conversation_id: Optional[str] = Field(None, description="Only files from this conversation")
    search_query: Optional[str] = Field(
        None, description="Text to find in filename, title or description"
    )
    mime_type_prefix: Optional[str] = Field(None, description="e.g. 'image/' or 'application/pdf'")
    is_hidden_from_library: Optional[bool] = Field(None, description="Filter on library visibility")


class QueryTasksInput(QueryInput):
    filters: TaskFilters = Field(default_factory=TaskFilters)


class QueryNotesInput(QueryInput):
    filters: NoteFilters = Field(default_factory=NoteFilters)


class QueryProjectsInput(QueryInput):
    filters: ProjectFilters = Field(default_factory=ProjectFilters)


class QueryFilesInput(QueryInput):
    filters: FileFilters = Field(default_factory=FileFilters)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
async def _run(
    query: TableQuery, result_key: str, data_store: SupabaseDataStore, auth_token: str
) -> str:
    try:
        rows = await data_store.fetch(query, auth_token)
    except DataStoreError as exc:
        logger.warning("Query on '%s' failed: %s", query.table, exc)
        return json.dumps(
            {
                "error": True,
                "message": f"Query failed: {exc}. Please try again or refine your query.",
                "details": str(exc),
            }
        )

    logger.debug("Query on '%s' returned %d rows", query.table, len(rows))
    return json.dumps({"count": len(rows), result_key: rows}, indent=2, default=str)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------
@register_tool("query_tasks", kind=ToolKind.QUERY, input_model=QueryTasksInput)
async def query_tasks(
    params: QueryTasksInput, *, auth_token: str, data_store: SupabaseDataStore
) -> str:
    """Get the user's tasks, newest first. Filter by project, status or a search term."""
    filters = params.filters
    query = TableQuery("tasks")
    if filters.project_id:
        query.eq("project_id", filters.project_id)
    if filters.status:
        query.eq("status", filters.status)
    if filters.search_query:
        query.search(["title", "description"], filters.search_query)
    query.order("created_at").limit(params.effective_limit())
    return await _run(query, "tasks", data_store, auth_token)


@register_tool("query_notes", kind=ToolKind.QUERY, input_model=QueryNotesInput)
async def query_notes(
    params: QueryNotesInput, *, auth_token: str, data_store: SupabaseDataStore
) -> str:
    """Get the user's notes (full content), newest first. Filter by project or a search term."""
    filters = params.filters
    query = TableQuery("notes")
    if filters.project_id:
        query.eq("project_id", filters.project_id)
    if filters.search_query:
        query.search(["title", "content"], filters.search_query)
    query.order("created_at").limit(params.effective_limit())
    return await _run(query, "notes", data_store, auth_token)


@register_tool("query_projects", kind=ToolKind.QUERY, input_model=QueryProjectsInput)
async def query_projects(
    params: QueryProjectsInput, *, auth_token: str, data_store: SupabaseDataStore
) -> str:
    """Get the user's projects (life domains). Archived projects are excluded unless requested."""
    filters = params.filters
    query = TableQuery("projects")
    if not filters.include_archived:
        query.eq("is_archived", False)
    if filters.search_query:
        query.search(["name", "description"], filters.search_query)
    query.order("created_at").limit(params.effective_limit(default=settings.QUERY_MAX_LIMIT))
    return await _run(query, "projects", data_store, auth_token)


@register_tool("query_files", kind=ToolKind.QUERY, input_model=QueryFilesInput)
async def query_files(
    params: QueryFilesInput, *, auth_token: str, data_store: SupabaseDataStore
) -> str:
    """Search the user's uploaded files by project, conversation, text or MIME type."""
    filters = params.filters
    query = TableQuery("files")
    if filters.project_id:
        query.eq("project_id", filters.project_id)
    if filters.conversation_id:
        query.eq("conversation_id", filters.conversation_id)
    if filters.search_query:
        query.search(["filename", "title", "description"], filters.search_query)
    if filters.mime_type_prefix:
        query.like("mime_type", f"{filters.mime_type_prefix}*")
    if filters.is_hidden_from_library is not None:
        query.eq("is_hidden_from_library", filters.is_hidden_from_library)
    query.order("created_at").limit(params.effective_limit())
    return await _run(query, "files", data_store, auth_token)
