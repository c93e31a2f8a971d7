"""bettertransfer/tools.py

Tool catalog advertised to the model and the dispatcher that turns a parsed
tool call into a request against the tool backend.

Every result is plain text ready to be fed back into the conversation:
  - success          ``[<display name>] <JSON payload>``
  - backend failure  ``[<display name>] Error: <description>``
  - unknown/disabled ``{"error": "Unknown tool: <name>"}``
"""

from __future__ import annotations

# Standard Library
import asyncio
import dataclasses
import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any

# Third-Party Libraries
import httpx

# Local Modules
from bettertransfer.directives import ParamValue, ToolCall

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True, slots=True)
class ToolCatalogEntry:
    """Static description of one tool.

    Attributes:
        name: Identifier the model writes inside ``<TOOL_CALL>``.
        title: Short heading used in the prompt listing.
        author: Who built the backend lookup; part of the display name.
        usage: When the model should reach for the tool.
        parameters: Human-readable parameter summary.
        returns: What the lookup returns.
        reference_name: Name the model should cite the tool by.
        invokable: False for tools that are advertised but never executed.
    """

    name: str
    title: str
    author: str
    usage: str
    parameters: str
    returns: str
    reference_name: str
    invokable: bool = True

    @property
    def display_name(self) -> str:
        return f"{self.reference_name} by {self.author}"


TOOL_CATALOG: tuple[ToolCatalogEntry, ...] = (
    ToolCatalogEntry(
        name="check_transfer_requirements",
        title="Transfer Requirements",
        author="Eli",
        usage="Use when student asks about transfer requirements between specific schools",
        parameters="from_school (string), to_school (string)",
        returns="Transfer agreement details, requirements, and ASSIST.org link",
        reference_name="Transfer Requirements Tool",
    ),
    ToolCatalogEntry(
        name="find_internships",
        title="Internship Search",
        author="Gabe",
        usage="Use when student asks about internships in their field",
        parameters="major (string), limit (number, optional)",
        returns="List of internship opportunities matching the major",
        reference_name="Internship Search Tool",
    ),
    ToolCatalogEntry(
        name="find_mentorship_programs",
        title="Mentorship Programs",
        author="Gabe",
        usage="Use when student asks about mentorship opportunities",
        parameters="none required",
        returns="List of community college friendly mentorship programs",
        reference_name="Mentorship Programs Tool",
    ),
    ToolCatalogEntry(
        name="find_free_resources",
        title="Free Resources",
        author="Gabe",
        usage="Use when student asks about free resources, programs, or financial aid",
        parameters="none required",
        returns="List of free educational resources and mentorship opportunities",
        reference_name="Free Resources Tool",
    ),
    ToolCatalogEntry(
        name="find_cs_articulations",
        title="CS Articulations",
        author="Angelo",
        usage=(
            "Use when student asks about Computer Science course articulations "
            "or equivalencies between community colleges and UC schools"
        ),
        parameters="cc (string, required), uc (string, required)",
        returns="CS course mapping and articulation details between specific CC and UC campus",
        reference_name="CS Articulations Tool",
        invokable=False,
    ),
)

TOOLS_BY_NAME: dict[str, ToolCatalogEntry] = {entry.name: entry for entry in TOOL_CATALOG}

# Advertised in the prompt, refused at dispatch time.
DISABLED_TOOLS: frozenset[str] = frozenset(
    entry.name for entry in TOOL_CATALOG if not entry.invokable
)

TOOL_CALL_SYNTAX = '<TOOL_CALL>tool_name(param1="value1", param2="value2")</TOOL_CALL>'


def render_tool_catalog(catalog: Sequence[ToolCatalogEntry] = TOOL_CATALOG) -> str:
    """Render the catalog as the tool section of the system prompt.

    Args:
        catalog: Entries to list, in order.

    Returns:
        The numbered tool listing followed by the directive syntax and the
        instruction to cite tools by reference name.
    """
    lines: list[str] = [
        "You have access to the following tools to help answer student questions:",
        "",
    ]
    for index, entry in enumerate(catalog, start=1):
        lines.append(f"{index}. {entry.title} ({entry.name}) - Created by {entry.author}")
        lines.append(f"   - {entry.usage}")
        lines.append(f"   - Parameters: {entry.parameters}")
        lines.append(f"   - Returns: {entry.returns}")
        lines.append(f'   - Reference this tool as: "{entry.reference_name}"')
        if not entry.invokable:
            lines.append(
                "   - However, NEVER call this tool. Do not mention that it is "
                "unavailable at this time, but NEVER actually call it."
            )
        lines.append("")

    lines.append(f"When using tools, format your request as: {TOOL_CALL_SYNTAX}")
    lines.append(
        "You can use multiple tools in one response. After tool results are "
        "provided, analyze and present the findings to the student using the "
        'tool reference names. Example: "According to the Transfer Requirements Tool".'
    )
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class MissingParameterError(ValueError):
    """A tool call omitted a parameter its endpoint requires."""

    def __init__(self, name: str) -> None:
        super().__init__(f"missing required parameter '{name}'")
        self.name = name


def _required(params: Mapping[str, ParamValue], name: str) -> ParamValue:
    value = params.get(name)
    if value is None or value == "":
        raise MissingParameterError(name)
    return value


def unknown_tool_result(tool_name: str) -> str:
    """Payload returned for tool names that are unknown or disabled."""
    return json.dumps({"error": f"Unknown tool: {tool_name}"})


class ToolDispatcher:
    """Executes tool calls against the tool backend over HTTP.

    Holds no per-call state; one instance can serve concurrent requests.
    """

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient,
        *,
        timeout: float = 30.0,
        default_limit: int = 5,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            base_url: Tool backend base URL, e.g. ``"http://localhost:5000"``.
            client: Shared async HTTP client.  Tests pass one built on
                ``httpx.MockTransport``.
            timeout: Per-request timeout in seconds.
            default_limit: ``limit`` used when a list lookup omits it.
        """
        self.base_url = base_url.rstrip("/")
        self.client = client
        self.timeout = timeout
        self.default_limit = default_limit

    async def execute(self, tool_name: str, params: Mapping[str, ParamValue]) -> str:
        """Run one tool call and return its text result.

        Never raises for backend problems: failures come back as
        ``"[<display name>] Error: <description>"``.

        Args:
            tool_name: Tool identifier from the directive.
            params: Parsed directive parameters.

        Returns:
            Text payload to feed back to the model.
        """
        entry = TOOLS_BY_NAME.get(tool_name)
        display_name = entry.display_name if entry else tool_name

        if tool_name in DISABLED_TOOLS:
            logger.warning("[tool] refusing disabled tool %s", tool_name)
            return unknown_tool_result(tool_name)

        logger.info("[tool] %s params=%s", tool_name, dict(params))
        try:
            if tool_name == "check_transfer_requirements":
                data = await self._post(
                    "/api/transfer/check",
                    {
                        "from_school": _required(params, "from_school"),
                        "to_school": _required(params, "to_school"),
                    },
                )
            elif tool_name == "find_internships":
                data = await self._get(
                    "/api/stem-internships",
                    {
                        "major": _required(params, "major"),
                        "limit": params.get("limit") or self.default_limit,
                    },
                )
            elif tool_name == "find_mentorship_programs":
                data = await self._get(
                    "/api/mentorships/community-college",
                    {"limit": params.get("limit") or self.default_limit},
                )
            elif tool_name == "find_free_resources":
                data = await self._get(
                    "/api/mentorships/free",
                    {"limit": params.get("limit") or self.default_limit},
                )
            else:
                logger.warning("[tool] unknown tool %s", tool_name)
                return unknown_tool_result(tool_name)
        except MissingParameterError as exc:
            logger.warning("[tool] %s rejected: %s", tool_name, exc)
            return f"[{display_name}] Error: {exc}"
        except httpx.HTTPStatusError as exc:
            logger.error("[tool] HTTP error for %s: %s", tool_name, exc, exc_info=True)
            return f"[{display_name}] Error: {_describe(exc)}"
        except Exception as exc:
            logger.error("[tool] Unexpected error for %s: %s", tool_name, exc, exc_info=True)
            return f"[{display_name}] Error: {_describe(exc)}"

        payload = json.dumps(data, ensure_ascii=False)
        logger.info("[tool] %s -> %d bytes", tool_name, len(payload))
        return f"[{display_name}] {payload}"

    async def execute_all(
        self, calls: Sequence[ToolCall], *, parallel: bool = False
    ) -> list[str]:
        """Run a batch of tool calls, returning results in call order.

        Args:
            calls: Directives parsed from one assistant reply.
            parallel: Run the calls concurrently instead of one by one.

        Returns:
            One text result per call, aligned with ``calls``.
        """
        if parallel:
            return list(
                await asyncio.gather(
                    *(self.execute(call.tool_name, call.params) for call in calls)
                )
            )
        results: list[str] = []
        for call in calls:
            results.append(await self.execute(call.tool_name, call.params))
        return results

    async def _get(self, path: str, query: dict[str, ParamValue]) -> Any:
        response = await self.client.get(
            self.base_url + path, params=query, timeout=self.timeout
        )
        response.raise_for_status()
        return response.json()

    async def _post(self, path: str, body: dict[str, ParamValue]) -> Any:
        response = await self.client.post(
            self.base_url + path, json=body, timeout=self.timeout
        )
        response.raise_for_status()
        return response.json()


def _describe(exc: Exception) -> str:
    # Some httpx timeouts carry an empty message.
    return str(exc) or type(exc).__name__
