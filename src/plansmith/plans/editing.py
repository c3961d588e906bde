"""Path-scoped editing primitives for :class:`StructuredPlan` documents.

Paths are dotted attribute names with integer segments for list positions,
for example ``overview.objectives``, ``features.2.items`` or
``timeline.milestones.0.deadline``. The camelCase wire names
(``successCriteria``, ``nextSteps``) are accepted as aliases.

List entries are addressed by index only; removing an entry shifts every
later entry down by one.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, MutableSequence

from .plan_model import FeatureGroup, Milestone, Risk, StructuredPlan, TaskPhase

__all__ = [
    "PlanPathError",
    "append_entry",
    "blank_entry",
    "move_entry",
    "remove_entry",
    "resolve",
    "set_field",
    "update_entry",
]

_FIELD_ALIASES: Dict[str, str] = {
    "successCriteria": "success_criteria",
    "nextSteps": "next_steps",
}

_BLANK_FACTORIES: Dict[str, Callable[[], Any]] = {
    "features": lambda: FeatureGroup(category="New Feature Category", items=[]),
    "timeline.milestones": lambda: Milestone(name="New Milestone", deadline="", description=""),
    "tasks": lambda: TaskPhase(phase="New Phase", items=[]),
    "risks": lambda: Risk(risk="", mitigation=""),
}


class PlanPathError(LookupError):
    """Raised when a path does not address a location inside the plan."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path!r}: {reason}")
        self.path = path


def _split(path: str) -> List[str]:
    segments = [segment.strip() for segment in str(path).split(".")]
    if not segments or any(not segment for segment in segments):
        raise PlanPathError(path, "empty path segment")
    return [_FIELD_ALIASES.get(segment, segment) for segment in segments]


def _step(node: Any, segment: str, path: str) -> Any:
    if isinstance(node, list):
        index = _parse_index(segment, path)
        try:
            return node[index]
        except IndexError:
            raise PlanPathError(path, f"index {index} out of range") from None
    if segment.startswith("_") or not hasattr(node, "__dataclass_fields__"):
        raise PlanPathError(path, f"cannot descend into {segment!r}")
    if segment not in node.__dataclass_fields__:
        raise PlanPathError(path, f"unknown field {segment!r}")
    return getattr(node, segment)


def _parse_index(segment: str, path: str) -> int:
    try:
        index = int(segment, 10)
    except ValueError:
        raise PlanPathError(path, f"expected a list index, got {segment!r}") from None
    if index < 0:
        raise PlanPathError(path, "negative indices are not supported")
    return index


def resolve(plan: StructuredPlan, path: str) -> Any:
    """Return the value stored at ``path``."""

    node: Any = plan
    for segment in _split(path):
        node = _step(node, segment, path)
    return node


def _resolve_list(plan: StructuredPlan, path: str) -> MutableSequence[Any]:
    target = resolve(plan, path)
    if not isinstance(target, list):
        raise PlanPathError(path, "does not address a list")
    return target


def _canonical(path: str) -> str:
    return ".".join(_split(path))


def blank_entry(path: str) -> Any:
    """Return the empty-valued entry appended to the list at ``path``.

    Whole sub-objects (feature groups, milestones, task phases, risks) get
    placeholder records; every other list holds strings and gets ``""``.
    """

    factory = _BLANK_FACTORIES.get(_canonical(path))
    return factory() if factory is not None else ""


def set_field(plan: StructuredPlan, path: str, value: Any) -> None:
    """Assign ``value`` at ``path`` (a field or an existing list position)."""

    segments = _split(path)
    parent: Any = plan
    for segment in segments[:-1]:
        parent = _step(parent, segment, path)
    leaf = segments[-1]
    if isinstance(parent, list):
        index = _parse_index(leaf, path)
        if index >= len(parent):
            raise PlanPathError(path, f"index {index} out of range")
        parent[index] = value
        return
    _step(parent, leaf, path)
    setattr(parent, leaf, value)


def append_entry(plan: StructuredPlan, path: str, value: Any = None) -> int:
    """Append ``value`` (or a blank entry) to the list at ``path``; return its index."""

    target = _resolve_list(plan, path)
    target.append(blank_entry(path) if value is None else value)
    return len(target) - 1


def update_entry(plan: StructuredPlan, path: str, index: int, value: Any) -> None:
    target = _resolve_list(plan, path)
    if not 0 <= index < len(target):
        raise PlanPathError(path, f"index {index} out of range")
    target[index] = value


def remove_entry(plan: StructuredPlan, path: str, index: int) -> Any:
    """Remove and return the entry at ``index``; later entries shift down."""

    target = _resolve_list(plan, path)
    if not 0 <= index < len(target):
        raise PlanPathError(path, f"index {index} out of range")
    return target.pop(index)


def move_entry(plan: StructuredPlan, path: str, source: int, destination: int) -> None:
    target = _resolve_list(plan, path)
    size = len(target)
    if not 0 <= source < size or not 0 <= destination < size:
        raise PlanPathError(path, f"cannot move {source} -> {destination} in list of {size}")
    entry = target.pop(source)
    target.insert(destination, entry)
