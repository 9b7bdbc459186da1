"""
Typed checkpoint criteria.

A closed set of criterion kinds. Each kind is a frozen dataclass; the
Validation Controller keeps one evaluator per kind in an exhaustive
dispatch table. Documents that name a kind we do not know become
UnknownCriterion, which always evaluates to an explicit failure.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar


class CriterionType(str, Enum):
    """Kinds of typed checkpoint criteria."""

    RESULT_EXISTS = "result_exists"
    RESULT_EQUALS = "result_equals"
    RESULT_CONTAINS = "result_contains"
    NO_ERRORS = "no_errors"
    PROGRESS_MIN = "progress_min"
    STEP_COMPLETED = "step_completed"
    FILE_EXISTS = "file_exists"
    TEST_PASSED = "test_passed"
    CUSTOM = "custom"


# Validator contract: (instance, context) -> bool | mapping | awaitable of either
CriterionValidator = Callable[..., Any]


@dataclass(frozen=True)
class ResultExists:
    """A key is present in the instance results."""

    key: str
    kind: ClassVar[CriterionType] = CriterionType.RESULT_EXISTS


@dataclass(frozen=True)
class ResultEquals:
    """A result value equals the expected value."""

    key: str
    value: Any = None
    kind: ClassVar[CriterionType] = CriterionType.RESULT_EQUALS


@dataclass(frozen=True)
class ResultContains:
    """A result contains a value (substring, list element or mapping key)."""

    key: str
    value: Any = None
    kind: ClassVar[CriterionType] = CriterionType.RESULT_CONTAINS


@dataclass(frozen=True)
class NoErrors:
    """The error log holds at most ``max_allowed`` entries."""

    max_allowed: int = 0
    kind: ClassVar[CriterionType] = CriterionType.NO_ERRORS


@dataclass(frozen=True)
class ProgressMin:
    """Instance progress (percent) is at least ``threshold``."""

    threshold: float = 100.0
    kind: ClassVar[CriterionType] = CriterionType.PROGRESS_MIN


@dataclass(frozen=True)
class StepCompleted:
    """A named step has status COMPLETED."""

    step_id: str
    kind: ClassVar[CriterionType] = CriterionType.STEP_COMPLETED


@dataclass(frozen=True)
class FileExists:
    """A path is reported present by the filesystem probe."""

    path: str
    kind: ClassVar[CriterionType] = CriterionType.FILE_EXISTS


@dataclass(frozen=True)
class TestPassed:
    """A named test result has status ``passed``."""

    __test__ = False  # not a pytest test class

    test_name: str
    kind: ClassVar[CriterionType] = CriterionType.TEST_PASSED


@dataclass(frozen=True)
class CustomCriterion:
    """Delegates to an injected validator callable."""

    validator: CriterionValidator | None = None
    name: str = "custom"
    kind: ClassVar[CriterionType] = CriterionType.CUSTOM


@dataclass(frozen=True)
class UnknownCriterion:
    """A criterion document whose type we do not recognize."""

    type_name: str
    raw: Mapping[str, Any] | None = None
    kind: ClassVar[None] = None


Criterion = (
    ResultExists
    | ResultEquals
    | ResultContains
    | NoErrors
    | ProgressMin
    | StepCompleted
    | FileExists
    | TestPassed
    | CustomCriterion
    | UnknownCriterion
)

# Checkpoint criteria: a callable, a single typed criterion, or an ordered list
CriteriaSpec = CriterionValidator | Criterion | tuple[Criterion, ...] | list[Criterion]


def criterion_type_name(criterion: Criterion) -> str:
    """Wire name of a criterion kind ("unknown" kinds keep their raw name)."""
    if isinstance(criterion, UnknownCriterion):
        return criterion.type_name
    return criterion.kind.value


def _pick(data: Mapping[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        if name in data:
            return data[name]
    return default


def criterion_from_dict(data: Mapping[str, Any]) -> Criterion:
    """
    Parse a plain criterion document.

    Both snake_case and camelCase parameter names are accepted, so
    documents written by other tools load unchanged.

    Args:
        data: Mapping with a ``type`` key plus kind-specific parameters

    Returns:
        The typed criterion, or UnknownCriterion for unrecognized types
    """
    type_name = str(data.get("type", ""))
    try:
        kind = CriterionType(type_name)
    except ValueError:
        return UnknownCriterion(type_name=type_name, raw=dict(data))

    if kind is CriterionType.RESULT_EXISTS:
        return ResultExists(key=str(data.get("key", "")))
    if kind is CriterionType.RESULT_EQUALS:
        return ResultEquals(key=str(data.get("key", "")), value=data.get("value"))
    if kind is CriterionType.RESULT_CONTAINS:
        return ResultContains(key=str(data.get("key", "")), value=data.get("value"))
    if kind is CriterionType.NO_ERRORS:
        return NoErrors(max_allowed=int(_pick(data, "max_allowed", "maxAllowed", default=0)))
    if kind is CriterionType.PROGRESS_MIN:
        return ProgressMin(threshold=float(data.get("threshold", 100)))
    if kind is CriterionType.STEP_COMPLETED:
        return StepCompleted(step_id=str(_pick(data, "step_id", "stepId", default="")))
    if kind is CriterionType.FILE_EXISTS:
        return FileExists(path=str(data.get("path", "")))
    if kind is CriterionType.TEST_PASSED:
        return TestPassed(test_name=str(_pick(data, "test_name", "testName", default="")))
    return CustomCriterion(
        validator=data.get("validator") if callable(data.get("validator")) else None,
        name=str(data.get("name", "custom")),
    )


def criterion_to_dict(criterion: Criterion) -> dict[str, Any]:
    """Serialize a criterion to a plain document. Custom validators are not exported."""
    if isinstance(criterion, UnknownCriterion):
        return dict(criterion.raw or {"type": criterion.type_name})
    data: dict[str, Any] = {"type": criterion.kind.value}
    if isinstance(criterion, (ResultExists, ResultEquals, ResultContains)):
        data["key"] = criterion.key
        if not isinstance(criterion, ResultExists):
            data["value"] = criterion.value
    elif isinstance(criterion, NoErrors):
        data["max_allowed"] = criterion.max_allowed
    elif isinstance(criterion, ProgressMin):
        data["threshold"] = criterion.threshold
    elif isinstance(criterion, StepCompleted):
        data["step_id"] = criterion.step_id
    elif isinstance(criterion, FileExists):
        data["path"] = criterion.path
    elif isinstance(criterion, TestPassed):
        data["test_name"] = criterion.test_name
    elif isinstance(criterion, CustomCriterion):
        data["name"] = criterion.name
    return data


def normalize_criteria(spec: Any) -> CriteriaSpec:
    """
    Coerce plain documents into typed criteria.

    Callables pass through; mappings become typed criteria; lists become
    tuples of typed criteria.
    """
    if isinstance(spec, Mapping):
        return criterion_from_dict(spec)
    if isinstance(spec, (list, tuple)):
        return tuple(
            criterion_from_dict(item) if isinstance(item, Mapping) else item
            for item in spec
        )
    return spec
