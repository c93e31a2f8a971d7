"""bettertransfer/cli.py

Interactive terminal client for the transfer assistant.
Runs the same tool loop as the HTTP API against the configured backends,
keeping the conversation in memory for the life of the process.
"""

from __future__ import annotations

# Standard Library
import argparse
import asyncio
import logging
import sys
from typing import Any

# Third-Party Libraries
import httpx
from dotenv import load_dotenv
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.theme import Theme

# Local Modules
from bettertransfer.chat import ChatEngine
from bettertransfer.completion import build_completion_engine
from bettertransfer.config import Settings, get_settings
from bettertransfer.profile import UserProfile
from bettertransfer.tools import ToolDispatcher

logger = logging.getLogger(__name__)

custom_theme = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "bold green",
        "user": "bold blue",
        "assistant": "green",
    }
)
console = Console(theme=custom_theme)

HELP_TEXT = """
**Available Commands:**

- `/help` - Show this help message
- `/profile` - Show the student profile sent with each question
- `/clear` - Start a new conversation
- `/quit` or `/exit` - Exit

**Tips:**

- Mention your community college and target schools for specific answers
- Tool lookups (transfer requirements, internships, mentorships) run automatically
"""


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="bettertransfer",
        description="Chat with the BetterTransfer Assistant in your terminal.",
    )
    parser.add_argument("--school", help="Current community college")
    parser.add_argument(
        "--target",
        action="append",
        default=[],
        help="Target university (repeat for several)",
    )
    parser.add_argument("--major", help="Target major")
    parser.add_argument("--verbose", action="store_true", help="Show debug logging")
    return parser.parse_args(argv)


def build_profile(args: argparse.Namespace) -> UserProfile | None:
    """Turn command-line flags into a profile, or None when none were given."""
    if not (args.school or args.target or args.major):
        return None
    return UserProfile(
        current_school=args.school,
        target_schools=tuple(args.target),
        target_major=args.major,
    )


def display_profile(profile: UserProfile | None) -> None:
    lines = profile.profile_lines() if profile else []
    text = "\n".join(lines) if lines else "_No profile set. Use --school, --target, --major._"
    console.print(Panel(Markdown(text), title="Student Profile", border_style="cyan"))


async def chat_loop(settings: Settings, profile: UserProfile | None) -> None:
    """Read questions from the terminal until the user quits."""
    history: list[dict[str, Any]] = []

    async with httpx.AsyncClient() as http:
        engine = ChatEngine(
            completion=build_completion_engine(settings, http),
            dispatcher=ToolDispatcher(
                settings.tool_api_base_url,
                http,
                timeout=settings.tool_timeout,
                default_limit=settings.tool_result_limit,
            ),
            max_iterations=settings.max_iterations,
            parallel_tool_calls=settings.parallel_tool_calls,
        )
        console.print("✅ BetterTransfer Assistant ready!\n", style="success")
        console.print("Type [bold]/help[/bold] for commands, or ask a question!\n", style="info")

        while True:
            user_input = Prompt.ask("[bold blue]You[/bold blue]").strip()
            if not user_input:
                continue

            command = user_input.lower()
            if command in ("/quit", "/exit"):
                console.print("\n👋 Good luck with your transfer!\n", style="success")
                return
            if command == "/help":
                console.print(Panel(Markdown(HELP_TEXT), title="Help", border_style="cyan"))
                continue
            if command == "/profile":
                display_profile(profile)
                continue
            if command == "/clear":
                history.clear()
                console.print("🗑️  Conversation cleared.\n", style="success")
                continue

            history.append({"role": "user", "content": user_input})
            try:
                with console.status("[bold green]Thinking...", spinner="dots"):
                    result = await engine.run(history, profile)
            except Exception as exc:
                logger.error("Chat error: %s", exc, exc_info=True)
                history.pop()
                console.print(f"\n❌ Error: {exc}\n", style="error")
                continue

            history.append({"role": "assistant", "content": result.reply})
            if result.tools_used:
                used = ", ".join(sorted({call.tool_name for call in result.tool_calls}))
                console.print(f"🔧 Tools used: {used}", style="info")
            console.print(
                Panel(
                    Markdown(result.reply),
                    title="[bold green]BetterTransfer[/bold green]",
                    border_style="green",
                )
            )
            console.print()


def main(argv: list[str] | None = None) -> None:
    """Entry point for the ``bettertransfer`` console script."""
    load_dotenv()
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    settings = get_settings()

    console.print(f"📍 Tool backend: {settings.tool_api_base_url}", style="info")
    console.print(f"🤖 LLM provider: {settings.llm_provider}\n", style="info")

    try:
        asyncio.run(chat_loop(settings, build_profile(args)))
    except KeyboardInterrupt:
        console.print("\n\n👋 Interrupted. Goodbye!\n", style="warning")
        sys.exit(0)
    except ValueError as exc:
        console.print(f"❌ Failed to initialize: {exc}", style="error")
        sys.exit(1)


if __name__ == "__main__":
    main()
