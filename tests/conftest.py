"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from plansmith.plans.plan_model import StructuredPlan
from plansmith.services.persistence import InMemoryStore

from tests.helpers import StubGateway, make_plan


@pytest.fixture
def sample_plan() -> StructuredPlan:
    return make_plan()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def gateway(sample_plan: StructuredPlan) -> StubGateway:
    return StubGateway(plan=sample_plan)
