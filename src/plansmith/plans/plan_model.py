"""Structured project plan model, wire format and payload normalization."""

from __future__ import annotations

import copy
import json
import re
from dataclasses import dataclass, field
from json import JSONDecodeError
from typing import Any, Dict, List, Mapping

from jsonschema import Draft7Validator, ValidationError

__all__ = [
    "FeatureGroup",
    "Milestone",
    "Overview",
    "PLAN_RESPONSE_SCHEMA",
    "PlanPayloadError",
    "Resources",
    "Risk",
    "Scope",
    "StructuredPlan",
    "TaskPhase",
    "Timeline",
    "parse_plan_payload",
]

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(?P<body>.*)```$", re.IGNORECASE | re.DOTALL)
_JSON_DECODER = json.JSONDecoder()


class PlanPayloadError(ValueError):
    """Raised when a payload cannot be turned into a :class:`StructuredPlan`."""


# -----------------------------------------------------------------------------
# Plan sections
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class Overview:
    summary: str = ""
    objectives: List[str] = field(default_factory=list)
    success_criteria: List[str] = field(default_factory=list)


@dataclass(slots=True)
class FeatureGroup:
    category: str = ""
    items: List[str] = field(default_factory=list)


@dataclass(slots=True)
class Scope:
    included: List[str] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)


@dataclass(slots=True)
class Milestone:
    name: str = ""
    deadline: str | None = None
    description: str | None = None


@dataclass(slots=True)
class Timeline:
    milestones: List[Milestone] = field(default_factory=list)


@dataclass(slots=True)
class TaskPhase:
    phase: str = ""
    items: List[str] = field(default_factory=list)


@dataclass(slots=True)
class Resources:
    tools: List[str] = field(default_factory=list)
    people: List[str] = field(default_factory=list)
    materials: List[str] = field(default_factory=list)


@dataclass(slots=True)
class Risk:
    risk: str = ""
    mitigation: str | None = None


@dataclass(slots=True)
class StructuredPlan:
    """The synthesized project plan.

    Every list is ordered and may be empty. A session holds exactly one live
    instance; it is always replaced wholesale, never merged field by field.
    """

    title: str = ""
    overview: Overview = field(default_factory=Overview)
    features: List[FeatureGroup] = field(default_factory=list)
    scope: Scope = field(default_factory=Scope)
    timeline: Timeline = field(default_factory=Timeline)
    tasks: List[TaskPhase] = field(default_factory=list)
    resources: Resources = field(default_factory=Resources)
    risks: List[Risk] = field(default_factory=list)
    next_steps: List[str] = field(default_factory=list)

    def clone(self) -> "StructuredPlan":
        """Return a fully independent deep copy."""

        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the camelCase wire format."""

        return {
            "title": self.title,
            "overview": {
                "summary": self.overview.summary,
                "objectives": list(self.overview.objectives),
                "successCriteria": list(self.overview.success_criteria),
            },
            "features": [
                {"category": group.category, "items": list(group.items)} for group in self.features
            ],
            "scope": {
                "included": list(self.scope.included),
                "excluded": list(self.scope.excluded),
            },
            "timeline": {
                "milestones": [
                    _optional_fields(
                        {"name": item.name}, deadline=item.deadline, description=item.description
                    )
                    for item in self.timeline.milestones
                ],
            },
            "tasks": [{"phase": phase.phase, "items": list(phase.items)} for phase in self.tasks],
            "resources": {
                "tools": list(self.resources.tools),
                "people": list(self.resources.people),
                "materials": list(self.resources.materials),
            },
            "risks": [_optional_fields({"risk": item.risk}, mitigation=item.mitigation) for item in self.risks],
            "nextSteps": list(self.next_steps),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "StructuredPlan":
        """Build a plan from a wire payload, filling omitted fields with empty defaults."""

        overview = _mapping(payload.get("overview"))
        scope = _mapping(payload.get("scope"))
        timeline = _mapping(payload.get("timeline"))
        resources = _mapping(payload.get("resources"))
        return cls(
            title=_text(payload.get("title")),
            overview=Overview(
                summary=_text(overview.get("summary")),
                objectives=_strings(overview.get("objectives")),
                success_criteria=_strings(_first(overview, "successCriteria", "success_criteria")),
            ),
            features=[
                FeatureGroup(category=_text(entry.get("category")), items=_strings(entry.get("items")))
                for entry in _records(payload.get("features"))
            ],
            scope=Scope(included=_strings(scope.get("included")), excluded=_strings(scope.get("excluded"))),
            timeline=Timeline(
                milestones=[
                    Milestone(
                        name=_text(entry.get("name")),
                        deadline=_optional_text(entry.get("deadline")),
                        description=_optional_text(entry.get("description")),
                    )
                    for entry in _records(timeline.get("milestones"))
                ]
            ),
            tasks=[
                TaskPhase(phase=_text(entry.get("phase")), items=_strings(entry.get("items")))
                for entry in _records(payload.get("tasks"))
            ],
            resources=Resources(
                tools=_strings(resources.get("tools")),
                people=_strings(resources.get("people")),
                materials=_strings(resources.get("materials")),
            ),
            risks=[
                Risk(risk=_text(entry.get("risk")), mitigation=_optional_text(entry.get("mitigation")))
                for entry in _records(payload.get("risks"))
            ],
            next_steps=_strings(_first(payload, "nextSteps", "next_steps")),
        )


# -----------------------------------------------------------------------------
# Wire schema
# -----------------------------------------------------------------------------

_STRING_LIST: Dict[str, Any] = {"type": "array", "items": {"type": "string"}}


def _named_list(name_key: str) -> Dict[str, Any]:
    return {
        "type": "array",
        "items": {
            "type": "object",
            "properties": {name_key: {"type": "string"}, "items": _STRING_LIST},
            "required": [name_key, "items"],
        },
    }


PLAN_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": {"type": "string", "description": "A catchy title for the project"},
        "overview": {
            "type": "object",
            "properties": {
                "summary": {"type": "string"},
                "objectives": _STRING_LIST,
                "successCriteria": _STRING_LIST,
            },
            "required": ["summary", "objectives", "successCriteria"],
        },
        "features": _named_list("category"),
        "scope": {
            "type": "object",
            "properties": {"included": _STRING_LIST, "excluded": _STRING_LIST},
            "required": ["included", "excluded"],
        },
        "timeline": {
            "type": "object",
            "properties": {
                "milestones": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "name": {"type": "string"},
                            "deadline": {"type": "string"},
                            "description": {"type": "string"},
                        },
                        "required": ["name", "deadline", "description"],
                    },
                }
            },
            "required": ["milestones"],
        },
        "tasks": _named_list("phase"),
        "resources": {
            "type": "object",
            "properties": {
                "tools": _STRING_LIST,
                "people": _STRING_LIST,
                "materials": _STRING_LIST,
            },
            "required": ["tools", "people", "materials"],
        },
        "risks": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"risk": {"type": "string"}, "mitigation": {"type": "string"}},
                "required": ["risk", "mitigation"],
            },
        },
        "nextSteps": _STRING_LIST,
    },
    "required": [
        "title",
        "overview",
        "features",
        "scope",
        "timeline",
        "tasks",
        "resources",
        "risks",
        "nextSteps",
    ],
}


def _relaxed(schema: Any) -> Any:
    """Drop ``required`` and allow ``null`` everywhere below the root object."""

    if isinstance(schema, list):
        return [_relaxed(item) for item in schema]
    if not isinstance(schema, Mapping):
        return schema
    relaxed: Dict[str, Any] = {}
    for key, value in schema.items():
        if key in ("required", "description"):
            continue
        if key == "type" and isinstance(value, str):
            relaxed[key] = [value, "null"]
        elif key == "properties" and isinstance(value, Mapping):
            relaxed[key] = {name: _relaxed(entry) for name, entry in value.items()}
        else:
            relaxed[key] = _relaxed(value)
    return relaxed


_PAYLOAD_SCHEMA: Dict[str, Any] = dict(_relaxed(PLAN_RESPONSE_SCHEMA), type="object")
_PAYLOAD_VALIDATOR = Draft7Validator(_PAYLOAD_SCHEMA)


def parse_plan_payload(payload: Mapping[str, Any] | str | bytes) -> StructuredPlan:
    """Validate and normalize a synthesis payload.

    Missing or ``null`` fields become empty defaults; fields of the wrong JSON
    type raise :class:`PlanPayloadError`.
    """

    mapping = _coerce_payload(payload)
    try:
        _PAYLOAD_VALIDATOR.validate(mapping)
    except ValidationError as error:
        raise PlanPayloadError(_format_validation_error(error)) from error
    return StructuredPlan.from_dict(mapping)


def _coerce_payload(payload: Mapping[str, Any] | str | bytes) -> Dict[str, Any]:
    if isinstance(payload, Mapping):
        return dict(payload)
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    if isinstance(payload, str):
        text = payload.strip()
        if not text:
            raise PlanPayloadError("Plan payload is empty")
        text = _strip_code_fence(text)
        parsed = _loads_with_fallback(text)
        if not isinstance(parsed, Mapping):
            raise PlanPayloadError("Plan payload must decode to an object")
        return dict(parsed)
    raise PlanPayloadError("Plan payload must be a mapping or JSON string")


def _strip_code_fence(text: str) -> str:
    match = _CODE_FENCE_RE.match(text)
    if match:
        return match.group("body").strip()
    return text


def _loads_with_fallback(text: str) -> Any:
    try:
        return json.loads(text)
    except JSONDecodeError as exc:
        start = text.find("{")
        if start >= 0:
            try:
                parsed, _ = _JSON_DECODER.raw_decode(text[start:])
            except JSONDecodeError:
                pass
            else:
                return parsed
        raise PlanPayloadError("Unable to parse plan payload as JSON") from exc


def _format_validation_error(error: ValidationError) -> str:
    path = ".".join(str(part) for part in error.path)
    if path:
        return f"{path}: {error.message}"
    return error.message


# -----------------------------------------------------------------------------
# Normalization helpers
# -----------------------------------------------------------------------------


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _records(value: Any) -> List[Mapping[str, Any]]:
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, Mapping)]


def _strings(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(entry) for entry in value if entry is not None]


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _optional_text(value: Any) -> str | None:
    return None if value is None else str(value)


def _first(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    return None


def _optional_fields(base: Dict[str, Any], **optional: str | None) -> Dict[str, Any]:
    for key, value in optional.items():
        if value is not None:
            base[key] = value
    return base
