"""bettertransfer/profile.py

Student profile model and the system prompt builder.

The system prompt is static role framing plus the rendered tool catalog,
optionally followed by a "Student Profile" block built from whichever
profile fields are set.
"""

from __future__ import annotations

# Third-Party Libraries
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# Local Modules
from bettertransfer.tools import render_tool_catalog

CONTEXT: str = (
    "You are the Transfer Ready Assistant, helping community college students "
    "successfully transfer to universities (UCs, CSUs, and private institutions). "
    "You have expertise in transfer requirements, course articulation, GPA "
    "requirements, application timelines, and major-specific pathways. Provide "
    "clear, actionable advice to help students achieve their transfer goals."
)

ROLE_PROMPT: str = (
    "You are the BetterTransfer Assistant - a friendly and knowledgeable guide "
    "for community college to university transfers.\n"
    "\n"
    "Your role is to help students with:\n"
    "- Course requirements and articulation agreements\n"
    "- Transfer eligibility and timeline planning\n"
    "- GPA and prerequisite requirements\n"
    "- Major-specific transfer pathways\n"
    "- School selection and comparison\n"
    "- Application strategies and deadlines\n"
    "\n"
    "Be encouraging, specific, and provide actionable steps. Keep responses "
    "concise but comprehensive."
)

PROFILE_INSTRUCTION: str = (
    "Use this information to provide personalized transfer advice and call "
    "tools when relevant to get specific data."
)


class UserProfile(BaseModel):
    """What the student told us about themselves.

    Accepts both the camelCase API names and the short names older web
    clients send (``cc``, ``schools``, ``major``).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    current_school: str | None = Field(
        None, validation_alias=AliasChoices("currentSchool", "current_school", "cc")
    )
    target_schools: tuple[str, ...] | None = Field(
        None, validation_alias=AliasChoices("targetSchools", "target_schools", "schools")
    )
    target_major: str | None = Field(
        None, validation_alias=AliasChoices("targetMajor", "target_major", "major")
    )

    def profile_lines(self) -> list[str]:
        """Bullet lines for the fields that are set, in prompt order."""
        lines: list[str] = []
        if self.current_school:
            lines.append(f"- Current Community College: {self.current_school}")
        if self.target_major:
            lines.append(f"- Target Major: {self.target_major}")
        if self.target_schools:
            lines.append(f"- Target Universities: {', '.join(self.target_schools)}")
        return lines


def build_system_prompt(profile: UserProfile | None = None) -> str:
    """Assemble the system prompt for one request.

    Pure and deterministic: the same profile always yields the same text.

    Args:
        profile: Optional student profile.  Unset fields are left out, and
            the whole profile block is omitted when no field is set.

    Returns:
        The complete system prompt.
    """
    prompt = f"{ROLE_PROMPT}\n\nContext: {CONTEXT}\n\n{render_tool_catalog()}"

    lines = profile.profile_lines() if profile is not None else []
    if lines:
        prompt += "\n\nStudent Profile:\n" + "\n".join(lines)
        prompt += f"\n\n{PROFILE_INSTRUCTION}"
    return prompt
