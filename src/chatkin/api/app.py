"""
Core API backend for Chatkin.

This module exposes the chat engine through a small REST API used by the web app.
It exposes the following endpoints:
- **GET /health**     - liveness probe for health checks.
- **POST /chat**      - one chat turn: message + history/summary -> message | actions | questions.
- **POST /summarize** - fold old turns into a conversation summary.

The caller's bearer credential (``Authorization: Bearer <token>``) is forwarded to the query tools
so every read is scoped to that user.
"""

import logging
from typing import Optional

from fastapi import (
    Depends,
    FastAPI,
    Header,
    HTTPException,
    Request,
)
from fastapi.middleware.cors import CORSMiddleware

from chatkin.agent.chat_service import ChatService
from chatkin.api.models import (
    ChatRequest,
    SummarizeRequest,
    SummarizeResponse,
)
from chatkin.common import (
    AnsiColors,
    colored_print,
)
from chatkin.config import settings
from chatkin.core.errors import ChatError
from chatkin.core.schema import ChatResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
def get_service(request: Request) -> ChatService:
    """Return the app's ChatService, building the default one on first use."""
    if request.app.state.service is None:
        request.app.state.service = ChatService()
    return request.app.state.service


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer`` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


# ---------------------------------------------------------------------------
# App factory and routes
# ---------------------------------------------------------------------------
def create_app(service: ChatService | None = None) -> FastAPI:
    """Build the FastAPI app; *service* is injected in tests."""
    app = FastAPI(title="Chatkin API", version="0.1.0", description="Chatkin conversation engine")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.service = service

    @app.get("/health", summary="Health check")
    async def health() -> dict[str, str]:
        """Return a simple liveness payload."""
        return {"status": "ok"}

    @app.post("/chat", response_model=ChatResponse, summary="Process a chat message")
    async def chat_endpoint(
        req: ChatRequest,
        authorization: Optional[str] = Header(None),
        chat_service: ChatService = Depends(get_service),
    ) -> ChatResponse:
        """Run one chat turn and return exactly one response variant."""
        auth_token = bearer_token(authorization) or req.auth_token
        try:
            return await chat_service.handle(
                req.message,
                attachments=req.attachments,
                history=req.history,
                summary=req.summary,
                mode=req.mode,
                auth_token=auth_token,
                context=req.context,
                workspace_context=req.workspace_context,
            )
        except ChatError as exc:
            logger.warning("Chat request failed (%s): %s", type(exc).__name__, exc)
            raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    @app.post("/summarize", response_model=SummarizeResponse, summary="Summarize a conversation")
    async def summarize_endpoint(
        req: SummarizeRequest, chat_service: ChatService = Depends(get_service)
    ) -> SummarizeResponse:
        """Produce an updated conversation summary."""
        try:
            summary = await chat_service.summarize(req.messages, req.existing_summary)
        except ChatError as exc:
            logger.warning("Summarize request failed (%s): %s", type(exc).__name__, exc)
            raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
        return SummarizeResponse(summary=summary)

    @app.get("/", summary="API root")
    async def root() -> dict[str, str]:
        """Return a simple welcome message."""
        return {"message": "Welcome to the Chatkin API! Use /docs for API documentation."}

    return app


app = create_app()


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in dev docker-compose).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn an optional dependency at pkg-import time
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting Chatkin API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    logger.debug(
        "API settings: %s",
        settings.model_dump(exclude={"ANTHROPIC_API_KEY", "OPENAI_API_KEY", "SUPABASE_ANON_KEY"}),
    )

    colored_print(f"Chatkin API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "chatkin.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m chatkin.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
