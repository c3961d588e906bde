"""Structured plan model and editing primitives."""

from .editing import PlanPathError, blank_entry, resolve
from .plan_model import (
    PLAN_RESPONSE_SCHEMA,
    FeatureGroup,
    Milestone,
    Overview,
    PlanPayloadError,
    Resources,
    Risk,
    Scope,
    StructuredPlan,
    TaskPhase,
    Timeline,
    parse_plan_payload,
)

__all__ = [
    "PLAN_RESPONSE_SCHEMA",
    "FeatureGroup",
    "Milestone",
    "Overview",
    "PlanPathError",
    "PlanPayloadError",
    "Resources",
    "Risk",
    "Scope",
    "StructuredPlan",
    "TaskPhase",
    "Timeline",
    "blank_entry",
    "parse_plan_payload",
    "resolve",
]
