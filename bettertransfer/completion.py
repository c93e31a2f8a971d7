"""bettertransfer/completion.py

Completion engine clients.  Given a message sequence, produce a reply.

Two backends are supported:
  - ``openai``     — any OpenAI-compatible ``/chat/completions`` endpoint
                     (Ollama, llama.cpp server, vLLM, ...).
  - ``workers-ai`` — Cloudflare Workers AI REST ``ai/run/{model}``.

Both expose ``run(messages, raw=...)``: ``raw=True`` returns the unread
streaming ``httpx.Response`` for pass-through, ``raw=False`` returns the
materialized ``{"response": text}``.  The tool loop only uses the
materialized form via ``complete()``.
"""

from __future__ import annotations

# Standard Library
import logging
from collections.abc import Sequence
from typing import Any, Protocol

# Third-Party Libraries
import httpx

# Local Modules
from bettertransfer.config import Settings

logger = logging.getLogger(__name__)

Message = dict[str, str]


class CompletionError(RuntimeError):
    """The completion engine failed or returned no usable reply."""


class CompletionEngine(Protocol):
    async def complete(self, messages: Sequence[Message]) -> str: ...


class _HTTPCompletionEngine:
    """Shared request/response plumbing for HTTP completion backends."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        max_tokens: int = 1024,
        timeout: float = 120.0,
    ) -> None:
        self.client = client
        self.max_tokens = max_tokens
        self.timeout = timeout

    def _build_request(self, messages: Sequence[Message], *, stream: bool) -> httpx.Request:
        raise NotImplementedError

    def _extract_text(self, data: Any) -> str:
        raise NotImplementedError

    async def run(
        self, messages: Sequence[Message], *, raw: bool = False
    ) -> httpx.Response | dict[str, str]:
        """Call the engine.

        Args:
            messages: Conversation to complete, system message first.
            raw: Return the transport response unread (caller must close it)
                instead of the parsed reply.

        Returns:
            The streaming ``httpx.Response`` when ``raw`` is set, otherwise
            ``{"response": text}``.

        Raises:
            CompletionError: On transport failure, non-2xx status, or a body
                without a reply.
        """
        request = self._build_request(messages, stream=raw)
        logger.debug("Completion request: %s %s (%d messages)", request.method, request.url, len(messages))
        try:
            response = await self.client.send(request, stream=raw)
            if raw:
                if response.is_error:
                    await response.aread()
                    await response.aclose()
                response.raise_for_status()
                return response
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise CompletionError(f"Completion request failed: {exc}") from exc
        except ValueError as exc:
            raise CompletionError(f"Completion response is not JSON: {exc}") from exc

        return {"response": self._extract_text(data)}

    async def complete(self, messages: Sequence[Message]) -> str:
        """Return the materialized reply text for ``messages``."""
        result = await self.run(messages, raw=False)
        return result["response"]  # type: ignore[index]


class OpenAICompletionEngine(_HTTPCompletionEngine):
    """OpenAI-compatible chat-completions backend."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        model: str,
        *,
        api_key: str = "",
        max_tokens: int = 1024,
        timeout: float = 120.0,
    ) -> None:
        super().__init__(client, max_tokens=max_tokens, timeout=timeout)
        self.completions_url = base_url.rstrip("/") + "/chat/completions"
        self.model = model
        self.api_key = api_key

    def _build_request(self, messages: Sequence[Message], *, stream: bool) -> httpx.Request:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        return self.client.build_request(
            "POST",
            self.completions_url,
            json={
                "model": self.model,
                "messages": list(messages),
                "max_tokens": self.max_tokens,
                "stream": stream,
            },
            headers=headers,
            timeout=self.timeout,
        )

    def _extract_text(self, data: Any) -> str:
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise CompletionError(f"Unexpected completion payload: {data!r:.200}") from exc
        return content or ""


class WorkersAICompletionEngine(_HTTPCompletionEngine):
    """Cloudflare Workers AI REST backend."""

    API_ROOT = "https://api.cloudflare.com/client/v4"

    def __init__(
        self,
        client: httpx.AsyncClient,
        account_id: str,
        api_token: str,
        model: str,
        *,
        max_tokens: int = 1024,
        timeout: float = 120.0,
    ) -> None:
        super().__init__(client, max_tokens=max_tokens, timeout=timeout)
        self.run_url = f"{self.API_ROOT}/accounts/{account_id}/ai/run/{model}"
        self.api_token = api_token

    def _build_request(self, messages: Sequence[Message], *, stream: bool) -> httpx.Request:
        return self.client.build_request(
            "POST",
            self.run_url,
            json={
                "messages": list(messages),
                "max_tokens": self.max_tokens,
                "stream": stream,
            },
            headers={"Authorization": f"Bearer {self.api_token}"},
            timeout=self.timeout,
        )

    def _extract_text(self, data: Any) -> str:
        if not isinstance(data, dict) or not data.get("success", True):
            raise CompletionError(f"Workers AI error: {data!r:.200}")
        result = data.get("result")
        if not isinstance(result, dict) or "response" not in result:
            raise CompletionError(f"Unexpected Workers AI payload: {data!r:.200}")
        return result["response"] or ""


def build_completion_engine(
    settings: Settings, client: httpx.AsyncClient
) -> _HTTPCompletionEngine:
    """Create the completion backend selected by ``settings.llm_provider``.

    Raises:
        ValueError: If the provider name is not recognised.
    """
    provider = settings.llm_provider.lower()
    if provider == "openai":
        return OpenAICompletionEngine(
            client,
            settings.llm_base_url,
            settings.llm_model,
            api_key=settings.llm_api_key,
            max_tokens=settings.max_tokens,
            timeout=settings.llm_timeout,
        )
    if provider == "workers-ai":
        return WorkersAICompletionEngine(
            client,
            settings.cloudflare_account_id,
            settings.cloudflare_api_token,
            settings.workers_ai_model,
            max_tokens=settings.max_tokens,
            timeout=settings.llm_timeout,
        )
    raise ValueError(f"Unknown llm_provider: {settings.llm_provider!r}")
