"""Service boundary for conversational replies and plan synthesis."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Protocol, Sequence

from ..chat.message_model import Turn
from ..plans.plan_model import PLAN_RESPONSE_SCHEMA, PlanPayloadError, StructuredPlan, parse_plan_payload
from .client import AIClient
from .prompts import APOLOGY_REPLY, CHAT_SYSTEM_INSTRUCTION, EMPTY_REPLY_FALLBACK, synthesis_prompt

__all__ = ["OpenAISynthesisGateway", "SynthesisGateway"]

LOGGER = logging.getLogger(__name__)

_PLAN_RESPONSE_FORMAT: Dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {"name": "project_plan", "schema": PLAN_RESPONSE_SCHEMA},
}


class SynthesisGateway(Protocol):
    """External language-model collaborator used by :class:`PlanSession`."""

    async def converse(self, history: Sequence[Turn], text: str) -> str:
        """Return the assistant reply to ``text`` given the turns before it."""
        ...

    async def synthesize(self, history: Sequence[Turn]) -> StructuredPlan | None:
        """Return a plan for the whole conversation, or None when there is none."""
        ...


class OpenAISynthesisGateway:
    """:class:`SynthesisGateway` backed by an OpenAI-compatible chat endpoint.

    Neither method raises: ``converse`` degrades to a fixed apology and
    ``synthesize`` degrades to ``None``.
    """

    def __init__(self, client: AIClient, *, temperature: float | None = 0.2) -> None:
        self._client = client
        self._temperature = temperature

    @property
    def client(self) -> AIClient:
        return self._client

    async def converse(self, history: Sequence[Turn], text: str) -> str:
        messages = self.build_chat_messages(history, text)
        try:
            reply = await self._client.complete_text(messages, temperature=self._temperature)
        except Exception as exc:
            LOGGER.warning("Conversation request failed: %s", exc, exc_info=LOGGER.isEnabledFor(logging.DEBUG))
            return APOLOGY_REPLY
        return reply.strip() or EMPTY_REPLY_FALLBACK

    async def synthesize(self, history: Sequence[Turn]) -> StructuredPlan | None:
        if not history:
            return None
        messages = [{"role": "user", "content": synthesis_prompt(history)}]
        try:
            raw = await self._client.complete_text(
                messages,
                temperature=self._temperature,
                response_format=_PLAN_RESPONSE_FORMAT,
            )
        except Exception as exc:
            LOGGER.warning("Plan synthesis request failed: %s", exc, exc_info=LOGGER.isEnabledFor(logging.DEBUG))
            return None
        if not raw or not raw.strip():
            LOGGER.info("Plan synthesis returned an empty payload")
            return None
        try:
            return parse_plan_payload(raw)
        except PlanPayloadError as exc:
            LOGGER.warning("Discarding malformed plan payload: %s", exc)
            return None

    @staticmethod
    def build_chat_messages(history: Sequence[Turn], text: str) -> List[Dict[str, str]]:
        messages: List[Dict[str, str]] = [{"role": "system", "content": CHAT_SYSTEM_INSTRUCTION}]
        messages.extend({"role": turn.role, "content": turn.text} for turn in history)
        messages.append({"role": "user", "content": text})
        return messages
