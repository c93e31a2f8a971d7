"""bettertransfer/config.py

Runtime configuration loaded from environment variables / .env file.
"""

from __future__ import annotations

# Standard Library
from functools import lru_cache

# Third-Party Libraries
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the chat API and its collaborators.

    Attributes:
        tool_api_base_url: Base URL of the REST service answering tool lookups.
        tool_timeout: Per-request timeout (seconds) for tool backend calls.
        tool_result_limit: ``limit`` sent to list lookups when the model omits it.
        parallel_tool_calls: Dispatch one turn's tool calls concurrently.
        llm_provider: ``"openai"`` (OpenAI-compatible, e.g. Ollama) or ``"workers-ai"``.
        llm_base_url: OpenAI-compatible base URL.
        llm_model: Model tag for the OpenAI-compatible provider.
        llm_api_key: Bearer token for the OpenAI-compatible provider.
        llm_timeout: Timeout (seconds) for a single completion call.
        cloudflare_account_id: Account id for the Workers AI REST endpoint.
        cloudflare_api_token: API token for the Workers AI REST endpoint.
        workers_ai_model: Model id for the Workers AI provider.
        max_tokens: ``max_tokens`` sent with every completion call.
        max_iterations: Tool round trips allowed before the forced final answer.
        static_dir: Directory of static assets served at ``/``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    tool_api_base_url: str = Field(
        "http://localhost:5000",
        description="Base URL of the tool backend REST service.",
    )
    tool_timeout: float = Field(30.0, description="Tool request timeout in seconds.")
    tool_result_limit: int = Field(
        5,
        description="Default result limit for list lookups.",
    )
    parallel_tool_calls: bool = Field(
        False,
        description=(
            "Run the tool calls of one assistant turn concurrently.  Results "
            "are always aggregated in directive order."
        ),
    )

    llm_provider: str = Field(
        "openai",
        description='Completion backend: "openai" or "workers-ai".',
    )
    llm_base_url: str = Field(
        "http://localhost:11434/v1",
        description="OpenAI-compatible base URL (Ollama by default).",
    )
    llm_model: str = Field("llama3.1:8b-instruct-q4_K_M")
    llm_api_key: str = Field("ollama")
    llm_timeout: float = Field(120.0)

    cloudflare_account_id: str = Field("")
    cloudflare_api_token: str = Field("")
    workers_ai_model: str = Field("@cf/meta/llama-3.3-70b-instruct-fp8-fast")

    max_tokens: int = Field(1024)
    max_iterations: int = Field(
        3,
        description=(
            "Maximum tool round trips per request.  One extra completion "
            "call is always made once the budget is spent."
        ),
    )

    static_dir: str = Field("public")
    api_host: str = Field("0.0.0.0")
    api_port: int = Field(8787)
    log_level: str = Field("INFO")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
