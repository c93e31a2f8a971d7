"""bettertransfer/chat.py

The tool-augmented completion loop.

Each request gets its own working copy of the conversation.  The model is
called, any ``<TOOL_CALL>`` directives in its reply are executed, and the
aggregated results are fed back as a user message.  This repeats until the
model answers without a directive or the iteration budget is spent, in which
case one final completion is requested and returned as-is.
"""

from __future__ import annotations

# Standard Library
import dataclasses
import logging
from collections.abc import Sequence
from typing import Any

# Local Modules
from bettertransfer.completion import CompletionEngine, Message
from bettertransfer.directives import ToolCall, parse_tool_calls
from bettertransfer.profile import UserProfile, build_system_prompt
from bettertransfer.tools import ToolDispatcher

logger = logging.getLogger(__name__)

TOOL_RESULTS_HEADER = "Tool Execution Results:"
DEFAULT_MAX_ITERATIONS = 3


@dataclasses.dataclass(slots=True)
class ChatResult:
    """Outcome of one run of the loop.

    Attributes:
        reply: Final assistant text delivered to the user.
        messages: Working conversation as sent to the model, system first.
            The forced final reply (if any) is not appended.
        completion_calls: Number of completion engine calls made.
        tool_calls: Every directive that was dispatched, in order.
        budget_exhausted: True when the forced final call produced ``reply``.
    """

    reply: str
    messages: list[Message]
    completion_calls: int = 0
    tool_calls: list[ToolCall] = dataclasses.field(default_factory=list)
    budget_exhausted: bool = False

    @property
    def tools_used(self) -> bool:
        return bool(self.tool_calls)


def ensure_system_message(messages: Sequence[Message], system_prompt: str) -> list[Message]:
    """Return a copy of ``messages`` with exactly one system message.

    A caller-supplied system message is kept as-is; otherwise ``system_prompt``
    is inserted at position 0.  The input sequence is never modified.
    """
    working = [dict(message) for message in messages]
    if not any(message.get("role") == "system" for message in working):
        working.insert(0, {"role": "system", "content": system_prompt})
    return working


def format_tool_results(results: Sequence[str]) -> str:
    """Aggregate tool payloads into the single user message fed back to the model."""
    return TOOL_RESULTS_HEADER + "\n" + "".join(f"{result}\n" for result in results)


class ChatEngine:
    """Drives the bounded call-model / run-tools cycle for one request at a time.

    The engine itself is stateless between requests, so a single instance is
    shared by all concurrent requests.
    """

    def __init__(
        self,
        completion: CompletionEngine,
        dispatcher: ToolDispatcher,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        parallel_tool_calls: bool = False,
    ) -> None:
        """Initialize the engine.

        Args:
            completion: Completion backend (``complete(messages) -> str``).
            dispatcher: Executes parsed tool calls.
            max_iterations: Completion calls allowed to trigger tools before
                the forced final call.
            parallel_tool_calls: Dispatch one turn's directives concurrently.
        """
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.completion = completion
        self.dispatcher = dispatcher
        self.max_iterations = max_iterations
        self.parallel_tool_calls = parallel_tool_calls

    async def run(
        self,
        messages: Sequence[dict[str, Any]],
        profile: UserProfile | None = None,
    ) -> ChatResult:
        """Answer the latest turn of ``messages``.

        Args:
            messages: Conversation so far as ``{"role", "content"}`` dicts.
            profile: Optional student profile for the system prompt.

        Returns:
            A :class:`ChatResult` carrying the final reply.

        Raises:
            CompletionError: Propagated unchanged from the completion engine.
        """
        working = ensure_system_message(messages, build_system_prompt(profile))
        result = ChatResult(reply="", messages=working)

        while result.completion_calls < self.max_iterations:
            result.completion_calls += 1
            logger.info(
                "Completion call %d/%d with %d messages",
                result.completion_calls,
                self.max_iterations,
                len(working),
            )
            reply = await self.completion.complete(working)
            calls = parse_tool_calls(reply)
            working.append({"role": "assistant", "content": reply})

            if not calls:
                result.reply = reply
                return result

            logger.info(
                "Model requested %d tool call(s): %s",
                len(calls),
                ", ".join(call.tool_name for call in calls),
            )
            outputs = await self.dispatcher.execute_all(
                calls, parallel=self.parallel_tool_calls
            )
            result.tool_calls.extend(calls)
            working.append({"role": "user", "content": format_tool_results(outputs)})

        # Budget spent with tools still being requested: one last call, taken verbatim.
        logger.warning(
            "Tool iteration budget (%d) exhausted; requesting final answer",
            self.max_iterations,
        )
        result.completion_calls += 1
        result.reply = await self.completion.complete(working)
        result.budget_exhausted = True
        return result
