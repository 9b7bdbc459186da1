"""Tests for domain models."""

import pytest

from mvpflow.domain.exceptions import WorkflowCancelled
from mvpflow.domain.models import (
    CancellationToken,
    CriterionResult,
    Step,
    StepOutcome,
    StepStatus,
    TaskSpecification,
    ValidationSummary,
    WorkflowInstance,
    WorkflowStatus,
)


class TestTaskSpecification:
    """Tests for TaskSpecification validity and immutability."""

    def test_valid_specification(self):
        """Title, description and a requirement make a valid spec."""
        task = TaskSpecification(title="T", description="D", requirements=("R",))

        assert task.is_valid()
        assert task.problems() == []

    def test_problems_lists_every_missing_field(self):
        """Each missing field is reported separately."""
        task = TaskSpecification(title=" ", description="", requirements=("",))

        assert len(task.problems()) == 3

    def test_constraints_are_read_only(self):
        """Constraints cannot be mutated after construction."""
        task = TaskSpecification(
            title="T", description="D", requirements=("R",), constraints={"a": 1}
        )

        with pytest.raises(TypeError):
            task.constraints["a"] = 2  # type: ignore[index]

    def test_lists_become_tuples(self):
        """Sequence fields are stored as tuples."""
        task = TaskSpecification(
            title="T", description="D", requirements=["R1", "R2"]  # type: ignore[arg-type]
        )

        assert task.requirements == ("R1", "R2")

    def test_frozen(self):
        """TaskSpecification is immutable."""
        task = TaskSpecification(title="T", description="D", requirements=("R",))

        with pytest.raises(AttributeError):
            task.title = "changed"  # type: ignore[misc]


class TestStepOutcome:
    """Tests for executor result normalization."""

    def test_none_is_failure(self):
        """An executor returning nothing failed."""
        outcome = StepOutcome.from_raw(None)

        assert not outcome.success
        assert outcome.error

    def test_bool(self):
        assert StepOutcome.from_raw(True).success
        assert not StepOutcome.from_raw(False).success

    def test_mapping_without_success_key(self):
        """A mapping missing 'success' counts as success."""
        outcome = StepOutcome.from_raw({"output": 42})

        assert outcome.success
        assert outcome.output == 42

    def test_mapping_with_failure(self):
        outcome = StepOutcome.from_raw({"success": False, "error": "boom"})

        assert not outcome.success
        assert outcome.error == "boom"

    def test_other_values_are_output(self):
        """Any other value is a successful output."""
        outcome = StepOutcome.from_raw("patched")

        assert outcome.success
        assert outcome.output == "patched"


class TestCancellationToken:
    """Tests for cooperative cancellation."""

    def test_initially_not_cancelled(self):
        token = CancellationToken()

        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel_raises(self):
        """After cancel(), raise_if_cancelled raises WorkflowCancelled."""
        token = CancellationToken()
        token.cancel("user request")

        with pytest.raises(WorkflowCancelled) as exc_info:
            token.raise_if_cancelled()

        assert exc_info.value.reason == "user request"


class TestWorkflowInstance:
    """Tests for WorkflowInstance helpers."""

    def _instance(self, count: int) -> WorkflowInstance:
        task = TaskSpecification(title="T", description="D", requirements=("R",))
        steps = [Step(id=f"s{i}", name=f"S{i}") for i in range(count)]
        return WorkflowInstance(id="wf-1", task_spec=task, steps=steps)

    def test_progress_with_no_steps_is_complete(self):
        """An empty workflow is 100% done."""
        assert self._instance(0).progress == 100.0

    def test_progress_follows_cursor(self):
        instance = self._instance(4)
        instance.current_step = 1

        assert instance.progress == 25.0

    def test_add_error_records_step(self):
        """Errors carry the step id and the cursor position."""
        instance = self._instance(2)
        instance.current_step = 1

        entry = instance.add_error("boom", instance.steps[1])

        assert instance.errors == [entry]
        assert entry.step_id == "s1"
        assert entry.step_index == 1

    def test_lookup_helpers(self):
        instance = self._instance(3)

        assert instance.step_by_id("s2") is instance.steps[2]
        assert instance.step_by_id("missing") is None
        assert instance.index_of("s1") == 1
        assert instance.index_of("missing") == -1

    def test_terminal_statuses(self):
        """Only COMPLETED, FAILED, CANCELLED and STOPPED are terminal."""
        terminal = {s for s in WorkflowStatus if s.is_terminal}

        assert terminal == {
            WorkflowStatus.COMPLETED,
            WorkflowStatus.FAILED,
            WorkflowStatus.CANCELLED,
            WorkflowStatus.STOPPED,
        }

    def test_skip_records_reason(self):
        step = Step(id="s", name="S")

        step.skip("optional")

        assert step.status is StepStatus.SKIPPED
        assert step.skip_reason == "optional"


class TestValidationSummary:
    """Tests for summary counts."""

    def test_pass_rate(self):
        results = (
            CriterionResult(success=True, type="no_errors"),
            CriterionResult(success=False, type="file_exists"),
        )

        summary = ValidationSummary.of(results)

        assert (summary.total, summary.passed, summary.failed) == (2, 1, 1)
        assert summary.pass_rate == 50.0

    def test_empty_pass_rate_is_zero(self):
        assert ValidationSummary.of(()).pass_rate == 0.0
