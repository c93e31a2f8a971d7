"""tests/test_chat.py

Unit tests for the tool-augmented completion loop (bettertransfer/chat.py).
The completion engine is scripted and the tool backend is mocked.
"""

from __future__ import annotations

# Standard Library
import asyncio
import json
from unittest.mock import AsyncMock, Mock

# Third-Party Libraries
import httpx
import pytest

# Local Modules
from bettertransfer.chat import (
    TOOL_RESULTS_HEADER,
    ChatEngine,
    ensure_system_message,
    format_tool_results,
)
from bettertransfer.completion import CompletionError
from bettertransfer.profile import UserProfile

TRANSFER_CALL = (
    'Let me check. <TOOL_CALL>check_transfer_requirements('
    'from_school="De Anza", to_school="UC Berkeley")</TOOL_CALL>'
)


class TestHelpers:
    """Tests for the message helpers used by the loop."""

    def test_inserts_system_message_at_head(self, transfer_question) -> None:
        """Test a system message is inserted at position 0 when none is present."""
        working = ensure_system_message(transfer_question, "SYSTEM")

        assert [m["role"] for m in working] == ["system", "user"]
        assert working[0]["content"] == "SYSTEM"
        assert len(transfer_question) == 1

    def test_keeps_caller_system_message(self) -> None:
        """Test a caller-supplied system message is kept and the input is copied."""
        messages = [
            {"role": "system", "content": "custom"},
            {"role": "user", "content": "hi"},
        ]
        working = ensure_system_message(messages, "SYSTEM")

        assert working == messages
        assert working is not messages

    def test_format_tool_results(self) -> None:
        """Test tool payloads are joined one per line under the results header."""
        text = format_tool_results(["[A] {}", "[B] Error: boom"])
        assert text == "Tool Execution Results:\n[A] {}\n[B] Error: boom\n"


class TestChatEngine:
    """Test suite for ChatEngine.run."""

    def test_plain_answer_single_call(self, scripted, tool_dispatcher, tool_backend, transfer_question) -> None:
        """Test a reply without directives ends the loop after one call."""
        completion = scripted(["Start with ASSIST.org."])
        engine = ChatEngine(completion, tool_dispatcher)

        result = asyncio.run(engine.run(transfer_question))

        assert result.reply == "Start with ASSIST.org."
        assert result.completion_calls == 1
        assert len(completion.calls) == 1
        assert not result.tools_used
        assert not result.budget_exhausted
        assert tool_backend.requests == []

        sent = completion.calls[0]
        assert [m["role"] for m in sent] == ["system", "user"]
        assert "Student Profile" not in sent[0]["content"]
        assert result.messages[-1] == {"role": "assistant", "content": "Start with ASSIST.org."}

    def test_profile_reaches_system_prompt(self, scripted, tool_dispatcher, transfer_question) -> None:
        """Test the profile is rendered into the system message sent to the model."""
        completion = scripted(["ok"])
        engine = ChatEngine(completion, tool_dispatcher)

        asyncio.run(engine.run(transfer_question, UserProfile(current_school="De Anza")))

        assert "- Current Community College: De Anza" in completion.calls[0][0]["content"]

    def test_caller_system_message_not_duplicated(self, scripted, tool_dispatcher) -> None:
        """Test the loop never adds a second system message."""
        completion = scripted(["ok"])
        engine = ChatEngine(completion, tool_dispatcher)
        messages = [
            {"role": "system", "content": "You are terse."},
            {"role": "user", "content": "hi"},
        ]

        asyncio.run(engine.run(messages))

        sent = completion.calls[0]
        assert [m["role"] for m in sent].count("system") == 1
        assert sent[0]["content"] == "You are terse."

    def test_tool_round_trip(self, scripted, tool_dispatcher, tool_backend, transfer_question) -> None:
        """Test one tool round trip feeds results back before the final answer."""
        tool_backend.responses["/api/transfer/check"] = (200, {"gpa": 3.0})
        completion = scripted([TRANSFER_CALL, "You need a 3.0 GPA."])
        engine = ChatEngine(completion, tool_dispatcher)

        result = asyncio.run(engine.run(transfer_question))

        assert result.reply == "You need a 3.0 GPA."
        assert result.completion_calls == 2
        assert tool_backend.paths() == ["/api/transfer/check"]
        assert tool_backend.json_body() == {"from_school": "De Anza", "to_school": "UC Berkeley"}

        second = completion.calls[1]
        assert [m["role"] for m in second] == ["system", "user", "assistant", "user"]
        assert second[2]["content"] == TRANSFER_CALL
        assert second[3]["content"] == (
            f'{TOOL_RESULTS_HEADER}\n[Transfer Requirements Tool by Eli] {{"gpa": 3.0}}\n'
        )

    def test_history_is_append_only(self, scripted, tool_dispatcher, transfer_question) -> None:
        """Test each call sees the previous conversation unchanged plus two new messages."""
        completion = scripted([TRANSFER_CALL, TRANSFER_CALL, "done"])
        engine = ChatEngine(completion, tool_dispatcher)

        asyncio.run(engine.run(transfer_question))

        for earlier, later in zip(completion.calls, completion.calls[1:]):
            assert later[: len(earlier)] == earlier
            assert len(later) == len(earlier) + 2

    def test_budget_exhaustion_forces_final_call(self, scripted, tool_dispatcher, tool_backend, transfer_question) -> None:
        """Test the forced final call after the iteration budget is returned verbatim."""
        completion = scripted(lambda index: TRANSFER_CALL)
        engine = ChatEngine(completion, tool_dispatcher, max_iterations=3)

        result = asyncio.run(engine.run(transfer_question))

        assert result.completion_calls == 4
        assert len(completion.calls) == 4
        assert result.budget_exhausted
        # Final reply is returned verbatim, directives and all, without dispatch.
        assert result.reply == TRANSFER_CALL
        assert len(tool_backend.requests) == 3
        assert len(result.tool_calls) == 3

    @pytest.mark.parametrize("limit", [1, 2, 5])
    def test_iteration_limit_is_configurable(self, scripted, tool_dispatcher, transfer_question, limit: int) -> None:
        """Test the completion call count is max_iterations plus one when tools never stop."""
        completion = scripted(lambda index: "<TOOL_CALL>find_free_resources()</TOOL_CALL>")
        engine = ChatEngine(completion, tool_dispatcher, max_iterations=limit)

        result = asyncio.run(engine.run(transfer_question))

        assert result.completion_calls == limit + 1

    def test_disabled_tool_resolves_as_unknown(self, scripted, tool_dispatcher, tool_backend, transfer_question) -> None:
        """Test the disabled tool is fed back as an unknown tool with no backend call."""
        completion = scripted(
            ['<TOOL_CALL>find_cs_articulations(cc="De Anza", uc="UCLA")</TOOL_CALL>', "Sorry."]
        )
        engine = ChatEngine(completion, tool_dispatcher)

        result = asyncio.run(engine.run(transfer_question))

        assert result.reply == "Sorry."
        assert tool_backend.requests == []
        fed_back = completion.calls[1][-1]["content"]
        assert fed_back == TOOL_RESULTS_HEADER + "\n" + json.dumps(
            {"error": "Unknown tool: find_cs_articulations"}
        ) + "\n"

    def test_tool_failure_does_not_abort(self, scripted, tool_dispatcher, tool_backend, transfer_question) -> None:
        """Test a tool backend failure is reported to the model and the loop continues."""
        tool_backend.failures["/api/transfer/check"] = httpx.ConnectTimeout("timed out")
        completion = scripted([TRANSFER_CALL, "The lookup is down, try ASSIST.org."])
        engine = ChatEngine(completion, tool_dispatcher)

        result = asyncio.run(engine.run(transfer_question))

        assert result.reply == "The lookup is down, try ASSIST.org."
        assert result.completion_calls == 2
        assert "[Transfer Requirements Tool by Eli] Error: timed out" in completion.calls[1][-1]["content"]

    def test_multiple_directives_aggregate_in_order(self, scripted, tool_dispatcher, transfer_question) -> None:
        """Test parallel dispatch still aggregates results in directive order."""
        completion = scripted(
            [
                '<TOOL_CALL>find_internships(major="Biology")</TOOL_CALL>'
                "<TOOL_CALL>find_free_resources()</TOOL_CALL>",
                "Here you go.",
            ]
        )
        engine = ChatEngine(completion, tool_dispatcher, parallel_tool_calls=True)

        asyncio.run(engine.run(transfer_question))

        lines = completion.calls[1][-1]["content"].splitlines()
        assert lines[0] == TOOL_RESULTS_HEADER
        assert lines[1].startswith("[Internship Search Tool by Gabe] ")
        assert lines[2].startswith("[Free Resources Tool by Gabe] ")

    def test_completion_error_propagates(self, transfer_question) -> None:
        """Test completion engine errors propagate out of the loop."""
        completion = Mock()
        completion.complete = AsyncMock(side_effect=CompletionError("engine down"))
        engine = ChatEngine(completion, Mock())

        with pytest.raises(CompletionError):
            asyncio.run(engine.run(transfer_question))

    def test_rejects_zero_iterations(self, scripted, tool_dispatcher) -> None:
        """Test an iteration budget below one is rejected."""
        with pytest.raises(ValueError):
            ChatEngine(scripted([]), tool_dispatcher, max_iterations=0)
