"""bettertransfer/api.py

FastAPI HTTP interface for the transfer assistant.

Endpoints:
  GET  /health       — liveness probe
  POST /api/chat     — run the tool loop, reply as a single NDJSON chunk
  *    /api/chat     — 405 for any other method
  *    /api/...      — 404 for unknown API paths
  GET  /...          — static assets from ``settings.static_dir`` (if present)
"""

from __future__ import annotations

# Standard Library
import json
import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Literal

# Third-Party Libraries
import httpx
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field

# Local Modules
from bettertransfer import __version__
from bettertransfer.chat import ChatEngine
from bettertransfer.completion import CompletionEngine, build_completion_engine
from bettertransfer.config import Settings, get_settings
from bettertransfer.profile import UserProfile
from bettertransfer.tools import ToolDispatcher

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = Field(default_factory=list)
    userProfile: UserProfile | None = None


# ---------------------------------------------------------------------------
# Response emitter
# ---------------------------------------------------------------------------

NDJSON_MEDIA_TYPE = "application/x-ndjson"


def build_streaming_response(content: str) -> StreamingResponse:
    """Wrap the final reply as a one-chunk NDJSON stream.

    The body is exactly ``{"response": content}``.  No ``Content-Length`` is
    sent, so the server frames it with chunked transfer encoding.
    """
    body = json.dumps({"response": content}, ensure_ascii=False)

    async def _single_chunk() -> AsyncGenerator[bytes, None]:
        yield body.encode("utf-8")

    return StreamingResponse(_single_chunk(), media_type=NDJSON_MEDIA_TYPE)


def error_response() -> JSONResponse:
    return JSONResponse({"error": "Failed to process request"}, status_code=500)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    *,
    completion: CompletionEngine | None = None,
    dispatcher: ToolDispatcher | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Configuration; defaults to :func:`get_settings`.
        completion: Completion backend override (tests inject a fake).
        dispatcher: Tool dispatcher override (tests inject one backed by
            ``httpx.MockTransport``).

    Returns:
        The configured application.  The shared HTTP client and the
        :class:`ChatEngine` are created in the lifespan handler.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with httpx.AsyncClient() as http:
            app.state.chat_engine = ChatEngine(
                completion=completion or build_completion_engine(settings, http),
                dispatcher=dispatcher
                or ToolDispatcher(
                    settings.tool_api_base_url,
                    http,
                    timeout=settings.tool_timeout,
                    default_limit=settings.tool_result_limit,
                ),
                max_iterations=settings.max_iterations,
                parallel_tool_calls=settings.parallel_tool_calls,
            )
            logger.info(
                "Chat engine ready: provider=%s tools=%s max_iterations=%d",
                settings.llm_provider,
                settings.tool_api_base_url,
                settings.max_iterations,
            )
            yield

    app = FastAPI(
        title="BetterTransfer Assistant",
        version=__version__,
        description="Transfer advice chat backed by an LLM and transfer lookup tools.",
        lifespan=lifespan,
    )

    @app.get("/health", tags=["meta"])
    async def health() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "ok", "server": "bettertransfer-api"}

    @app.post("/api/chat", tags=["chat"])
    async def chat(request: Request) -> Response:
        """Answer the conversation in the request body.

        The body is parsed here rather than by FastAPI so that malformed
        input is reported with the same generic 500 as any other failure.
        """
        try:
            body = ChatRequest.model_validate(await request.json())
            engine: ChatEngine = request.app.state.chat_engine
            result = await engine.run(
                [message.model_dump() for message in body.messages],
                body.userProfile,
            )
            logger.info(
                "Chat answered: %d completion call(s), %d tool call(s)",
                result.completion_calls,
                len(result.tool_calls),
            )
            return build_streaming_response(result.reply)
        except Exception as exc:
            logger.error("Error processing chat request: %s", exc, exc_info=True)
            return error_response()

    @app.api_route(
        "/api/chat",
        methods=["GET", "HEAD", "OPTIONS", "PUT", "PATCH", "DELETE"],
        include_in_schema=False,
    )
    async def chat_method_not_allowed() -> PlainTextResponse:
        return PlainTextResponse("Method not allowed", status_code=405)

    @app.api_route(
        "/api/{path:path}",
        methods=["GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"],
        include_in_schema=False,
    )
    async def api_not_found(path: str) -> PlainTextResponse:
        return PlainTextResponse("Not found", status_code=404)

    static_dir = Path(settings.static_dir)
    if static_dir.is_dir():
        app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
    else:
        logger.info("Static directory %s not found; serving API only", static_dir)

    return app


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_api() -> None:
    """Start the API server via uvicorn."""
    load_dotenv()
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting bettertransfer API on %s:%d", settings.api_host, settings.api_port)
    uvicorn.run(
        create_app(settings),
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run_api()
