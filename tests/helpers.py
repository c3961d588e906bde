"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
from typing import Any, Sequence

from plansmith.chat.message_model import Turn
from plansmith.plans.plan_model import (
    FeatureGroup,
    Milestone,
    Overview,
    Resources,
    Risk,
    Scope,
    StructuredPlan,
    TaskPhase,
    Timeline,
)
from plansmith.services.persistence import PersistenceError


def make_plan(title: str = "Todo App") -> StructuredPlan:
    """Return a small but fully populated plan."""

    return StructuredPlan(
        title=title,
        overview=Overview(
            summary="A web app for tracking personal tasks.",
            objectives=["Capture tasks quickly", "Sync across devices"],
            success_criteria=["100 weekly active users"],
        ),
        features=[
            FeatureGroup(category="Core", items=["Create tasks", "Mark tasks done"]),
            FeatureGroup(category="Sharing", items=["Share lists"]),
        ],
        scope=Scope(included=["Web client"], excluded=["Native mobile apps"]),
        timeline=Timeline(
            milestones=[
                Milestone(name="MVP", deadline="2024-03-01", description="Single-user lists"),
                Milestone(name="Beta", deadline="2024-05-01", description=None),
            ]
        ),
        tasks=[TaskPhase(phase="Build", items=["Set up repo", "Write API"])],
        resources=Resources(tools=["Python"], people=["One developer"], materials=[]),
        risks=[Risk(risk="Scope creep", mitigation="Freeze features before beta")],
        next_steps=["Sketch the data model"],
    )


class StubGateway:
    """Scriptable :class:`SynthesisGateway` that records every call.

    Set ``converse_gate`` or ``synth_gate`` to an :class:`asyncio.Event` to hold
    the corresponding call open until the test releases it.
    """

    def __init__(
        self,
        *,
        reply: str = "Noted. Who is the audience?",
        plan: StructuredPlan | None = None,
        converse_error: Exception | None = None,
        synth_error: Exception | None = None,
    ) -> None:
        self.reply = reply
        self.plan = plan
        self.converse_error = converse_error
        self.synth_error = synth_error
        self.converse_gate: asyncio.Event | None = None
        self.synth_gate: asyncio.Event | None = None
        self.converse_calls: list[tuple[tuple[Turn, ...], str]] = []
        self.synthesize_calls: list[tuple[Turn, ...]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def converse(self, history: Sequence[Turn], text: str) -> str:
        self.converse_calls.append((tuple(history), text))
        if self.converse_gate is not None:
            await self.converse_gate.wait()
        if self.converse_error is not None:
            raise self.converse_error
        return self.reply

    async def synthesize(self, history: Sequence[Turn]) -> StructuredPlan | None:
        self.synthesize_calls.append(tuple(history))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.synth_gate is not None:
                await self.synth_gate.wait()
            if self.synth_error is not None:
                raise self.synth_error
            return self.plan.clone() if self.plan is not None else None
        finally:
            self.in_flight -= 1


class FailingStore:
    """Store whose writes always fail; reads return ``initial`` values."""

    def __init__(self, initial: dict[str, str] | None = None, *, error: Exception | None = None) -> None:
        self._data = dict(initial or {})
        self._error = error
        self.attempts: list[tuple[str, Any]] = []

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        self.attempts.append(("put", key))
        raise self._make_error()

    def remove(self, key: str) -> None:
        self.attempts.append(("remove", key))
        raise self._make_error()

    def _make_error(self) -> Exception:
        if self._error is not None:
            return self._error
        return PersistenceError("disk full")
