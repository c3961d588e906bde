"""Prompt text for the conversational assistant and plan synthesis."""

from __future__ import annotations

from typing import Sequence

from ..chat.message_model import Turn

CHAT_SYSTEM_INSTRUCTION = """\
You are an expert Project Manager and Consultant.
Your goal is to help the user create a comprehensive "Basic Project Plan".
Start by asking clarifying questions about the project's purpose, goals, key features, target audience, timeline, and resources.
DO NOT ask all questions at once. Ask 1-2 relevant questions at a time to keep the conversation flowing naturally.
As the user provides details, acknowledge them and ask for the next missing piece of information.
Be concise, professional, and encouraging.
"""

SYNTHESIS_INSTRUCTION = """\
Analyze the following conversation history between a User and a Project Manager.
Based strictly on the information provided in the conversation, generate a structured Project Plan.
If information is missing for a specific section, make reasonable assumptions based on context or leave it generic/empty,
but do NOT make up wild facts.
Respond with a single JSON object only.

CONVERSATION HISTORY:
{conversation}
"""

DEFAULT_GREETING = (
    "Hello! I'm PlanSmith. I'm here to help you build a comprehensive project plan. "
    "What kind of project do you have in mind? Give me a brief overview, and we'll start "
    "building it together."
)

EMPTY_REPLY_FALLBACK = "I'm having trouble processing that response."
APOLOGY_REPLY = "Sorry, I encountered an error. Please try again."


def render_conversation(turns: Sequence[Turn]) -> str:
    """Render turns as ``ROLE: text`` blocks separated by blank lines."""

    return "\n\n".join(f"{turn.role.upper()}: {turn.text}" for turn in turns)


def synthesis_prompt(turns: Sequence[Turn]) -> str:
    return SYNTHESIS_INSTRUCTION.format(conversation=render_conversation(turns))
