"""Tests for WorkflowOrchestrator: creation, execution, recovery and export."""

import copy

import pytest

from mvpflow.application.engine import ExecutionOptions
from mvpflow.application.orchestrator import (
    CreationOptions,
    OrchestratorConfig,
    WorkflowOrchestrator,
)
from mvpflow.domain.criteria import NoErrors, ProgressMin
from mvpflow.domain.exceptions import ConfigurationError
from mvpflow.domain.models import (
    CheckpointStatus,
    CompletionCriteria,
    StepStatus,
    TaskSpecification,
    ValidationCheckpoint,
    ValidationCriteria,
    WorkflowInstance,
    WorkflowStatus,
)
from mvpflow.domain.templates import TemplateCustomizations
from mvpflow.factory import build_orchestrator

NO_RECOVERY = ExecutionOptions(enable_recovery=False)


def fail(instance, step, context):
    return {"success": False, "error": f"{step.id} broke"}


class TestCreation:
    """Tests for create_workflow()."""

    def test_low_scoring_task_is_built_from_scratch(
        self, orchestrator: WorkflowOrchestrator, bug_task: TaskSpecification
    ) -> None:
        """The best suggestion stays under the auto-template threshold."""
        instance = orchestrator.create_workflow(bug_task)

        assert instance.template_name is None
        assert [s.id for s in instance.steps] == [
            "reproduce_issue",
            "identify_root_cause",
            "implement_fix",
            "add_regression_tests",
            "verify_fix",
        ]
        core = instance.checkpoints["mvp_core_complete"]
        assert core.step_index == 2
        assert core.criteria == (NoErrors(0), ProgressMin(60.0))
        assert instance.checkpoints["workflow_complete"].step_index == 4
        assert orchestrator.tracker.is_tracking(instance.id)

    def test_low_threshold_auto_selects_template(
        self, orchestrator: WorkflowOrchestrator, bug_task: TaskSpecification
    ) -> None:
        configured = WorkflowOrchestrator(
            decomposer=orchestrator.decomposer,
            tracker=orchestrator.tracker,
            validation=orchestrator.validation,
            templates=orchestrator.templates,
            config=OrchestratorConfig(auto_template_threshold=0.5),
        )

        instance = configured.create_workflow(bug_task)

        assert instance.template_name == "bug_fix"

    def test_named_template_with_options(
        self, orchestrator: WorkflowOrchestrator, bug_task: TaskSpecification
    ) -> None:
        instance = orchestrator.create_workflow(
            bug_task,
            "bug_fix",
            options=CreationOptions(
                customizations=TemplateCustomizations(
                    skip_steps={"add_regression_tests": "covered by QA"}
                ),
                workflow_id="wf-login",
                metadata={"ticket": "BUG-17"},
            ),
        )

        assert instance.id == "wf-login"
        assert instance.options == {"ticket": "BUG-17"}
        assert instance.step_by_id("add_regression_tests").status is StepStatus.SKIPPED

    def test_validation_criteria_are_integrated(
        self, orchestrator: WorkflowOrchestrator, bug_task: TaskSpecification
    ) -> None:
        criteria = ValidationCriteria(
            checkpoints=(
                ValidationCheckpoint(id="halfway", name="Halfway", step_index=1),
            ),
            completion_criteria=CompletionCriteria(requirements=("Sessions last",)),
        )

        instance = orchestrator.create_workflow(bug_task, "bug_fix", criteria)

        assert "halfway" in instance.checkpoints
        assert instance.completion_criteria is criteria.completion_criteria

    def test_out_of_range_checkpoint_is_rejected(
        self, orchestrator: WorkflowOrchestrator, bug_task: TaskSpecification
    ) -> None:
        criteria = ValidationCriteria(
            checkpoints=(ValidationCheckpoint(id="late", name="Late", step_index=9),)
        )

        with pytest.raises(ConfigurationError, match="outside"):
            orchestrator.create_workflow(bug_task, "bug_fix", criteria)

    def test_invalid_task_is_rejected(self, orchestrator: WorkflowOrchestrator) -> None:
        with pytest.raises(ConfigurationError):
            orchestrator.create_workflow(
                TaskSpecification(title="x", description="", requirements=())
            )


class TestExecution:
    """Tests for execute_workflow() and template feedback."""

    @pytest.mark.asyncio
    async def test_from_scratch_run_passes_default_checkpoints(
        self, orchestrator: WorkflowOrchestrator, bug_task: TaskSpecification
    ) -> None:
        instance = orchestrator.create_workflow(bug_task)

        report = await orchestrator.execute_workflow(instance)

        assert report.success
        assert all(
            cp.status is CheckpointStatus.PASSED for cp in instance.checkpoints.values()
        )

    @pytest.mark.asyncio
    async def test_template_run_records_completion(
        self, orchestrator: WorkflowOrchestrator, bug_task: TaskSpecification
    ) -> None:
        instance = orchestrator.create_workflow(bug_task, "bug_fix")

        report = await orchestrator.execute_workflow(instance)

        stats = orchestrator.templates.get_template_details("bug_fix")["statistics"]
        assert report.success
        assert report.template_name == "bug_fix"
        assert stats.successful_completions == 1

    @pytest.mark.asyncio
    async def test_template_run_records_failure(
        self, orchestrator: WorkflowOrchestrator, bug_task: TaskSpecification
    ) -> None:
        instance = orchestrator.create_workflow(bug_task, "bug_fix")
        instance.step_by_id("implement_fix").executor = fail

        report = await orchestrator.execute_workflow(instance, NO_RECOVERY)

        stats = orchestrator.templates.get_template_details("bug_fix")["statistics"]
        assert report.status is WorkflowStatus.FAILED
        assert stats.failures == 1
        assert stats.recent_failures[0]["reason"] == "implement_fix broke"

    @pytest.mark.asyncio
    async def test_validate_checkpoint_on_demand(
        self, orchestrator: WorkflowOrchestrator, bug_task: TaskSpecification
    ) -> None:
        instance = orchestrator.create_workflow(bug_task, "bug_fix")

        missing = await orchestrator.validate_checkpoint(instance.id, "ghost")
        existing = await orchestrator.validate_checkpoint(instance.id, "bug_reproduced")

        assert not missing.success
        assert missing.error == "Checkpoint not found: ghost"
        assert not existing.success

    def test_unknown_workflow(self, orchestrator: WorkflowOrchestrator) -> None:
        with pytest.raises(ConfigurationError, match="Workflow not found"):
            orchestrator.get_workflow("ghost")


class TestControl:
    """Tests for cancel and status outside an execution."""

    def test_cancel_created_workflow(
        self, orchestrator: WorkflowOrchestrator, bug_task: TaskSpecification
    ) -> None:
        instance = orchestrator.create_workflow(bug_task, "bug_fix")

        assert orchestrator.cancel(instance.id, "no longer needed")
        assert instance.status is WorkflowStatus.CANCELLED
        assert not orchestrator.cancel(instance.id)

    def test_status_includes_dependency_view(
        self, orchestrator: WorkflowOrchestrator, bug_task: TaskSpecification
    ) -> None:
        instance = orchestrator.create_workflow(bug_task, "bug_fix")

        status = orchestrator.get_workflow_status(instance.id)

        assert status["status"] == "created"
        assert status["template"] == "bug_fix"
        assert status["ready_steps"] == ["reproduce_issue"]


class TestWorkflowRecovery:
    """Tests for recovery options on FAILED workflows."""

    @pytest.mark.asyncio
    async def test_options_are_sorted_by_risk(
        self, orchestrator: WorkflowOrchestrator, bug_task: TaskSpecification
    ) -> None:
        instance = orchestrator.create_workflow(bug_task, "bug_fix")
        instance.step_by_id("implement_fix").executor = fail
        await orchestrator.execute_workflow(instance, NO_RECOVERY)

        options = orchestrator.get_workflow_recovery_options(instance.id)

        assert [o.type for o in options] == [
            "rollback_to_checkpoint",
            "resume_from_current",
            "skip_failed_step",
        ]

    @pytest.mark.asyncio
    async def test_rollback_to_checkpoint(
        self, orchestrator: WorkflowOrchestrator, bug_task: TaskSpecification
    ) -> None:
        instance = orchestrator.create_workflow(bug_task, "bug_fix")
        instance.step_by_id("implement_fix").executor = fail
        await orchestrator.execute_workflow(instance, NO_RECOVERY)

        assert orchestrator.attempt_workflow_recovery(instance.id, "rollback_to_checkpoint")

        assert instance.status is WorkflowStatus.PAUSED
        assert instance.current_step == 0
        assert instance.steps[0].status is StepStatus.PENDING
        assert instance.checkpoints["bug_reproduced"].status is CheckpointStatus.PENDING
        assert len(instance.errors) == 1

    @pytest.mark.asyncio
    async def test_skip_failed_step_then_continue(
        self, orchestrator: WorkflowOrchestrator, linear_instance: WorkflowInstance
    ) -> None:
        linear_instance.steps[1].executor = fail
        await orchestrator.execute_workflow(linear_instance, NO_RECOVERY)

        assert orchestrator.attempt_workflow_recovery(linear_instance.id, "skip_failed_step")
        report = await orchestrator.execute_workflow(linear_instance, NO_RECOVERY)

        assert report.status is WorkflowStatus.COMPLETED
        assert linear_instance.steps[1].skip_reason == "Recovery skip"
        assert linear_instance.steps[2].status is StepStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_resume_from_current_after_fix(
        self, orchestrator: WorkflowOrchestrator, linear_instance: WorkflowInstance
    ) -> None:
        linear_instance.steps[1].executor = fail
        await orchestrator.execute_workflow(linear_instance, NO_RECOVERY)
        linear_instance.steps[1].executor = None

        assert orchestrator.attempt_workflow_recovery(linear_instance.id, "resume_from_current")
        report = await orchestrator.execute_workflow(linear_instance)

        assert report.status is WorkflowStatus.COMPLETED
        assert report.completed_steps == 3
        assert not report.success

    def test_no_options_for_healthy_workflow(
        self, orchestrator: WorkflowOrchestrator, bug_task: TaskSpecification
    ) -> None:
        instance = orchestrator.create_workflow(bug_task, "bug_fix")

        assert orchestrator.get_workflow_recovery_options(instance.id) == []
        assert not orchestrator.attempt_workflow_recovery(instance.id, "skip_failed_step")


class TestExportImport:
    """Tests for configuration export and import through the orchestrator."""

    def test_round_trip_into_another_orchestrator(
        self, orchestrator: WorkflowOrchestrator, bug_task: TaskSpecification
    ) -> None:
        instance = orchestrator.create_workflow(bug_task)
        document = orchestrator.export_workflow_configuration(instance.id)

        imported = build_orchestrator().import_workflow_configuration(document)

        assert imported.id == instance.id
        assert [s.id for s in imported.steps] == [s.id for s in instance.steps]
        assert set(imported.checkpoints) == set(instance.checkpoints)

    def test_duplicate_import_is_rejected(
        self, orchestrator: WorkflowOrchestrator, bug_task: TaskSpecification
    ) -> None:
        instance = orchestrator.create_workflow(bug_task, "bug_fix")
        document = orchestrator.export_workflow_configuration(instance.id)

        with pytest.raises(ConfigurationError, match="already exists"):
            orchestrator.import_workflow_configuration(document)

    def test_tampered_document_is_rejected(
        self, orchestrator: WorkflowOrchestrator, bug_task: TaskSpecification
    ) -> None:
        instance = orchestrator.create_workflow(bug_task, "bug_fix")
        document = copy.deepcopy(orchestrator.export_workflow_configuration(instance.id))
        document["task_spec"]["title"] = "Something else"

        with pytest.raises(ConfigurationError, match="workflow_ref mismatch"):
            build_orchestrator().import_workflow_configuration(document)

    def test_unknown_workflow_exports_nothing(self, orchestrator: WorkflowOrchestrator) -> None:
        assert orchestrator.export_workflow_configuration("ghost") is None


class TestStatistics:
    """Tests for system statistics and cleanup."""

    @pytest.mark.asyncio
    async def test_system_statistics(
        self, orchestrator: WorkflowOrchestrator, bug_task: TaskSpecification
    ) -> None:
        instance = orchestrator.create_workflow(bug_task, "bug_fix")
        await orchestrator.execute_workflow(instance)

        stats = orchestrator.get_system_statistics()

        assert set(stats) == {
            "system",
            "engine",
            "validation",
            "templates",
            "dependencies",
            "decomposer",
        }
        assert stats["system"]["workflows_created"] == 1
        assert stats["system"]["successful_completions"] == 1
        assert stats["system"]["success_rate"] == 100.0

    @pytest.mark.asyncio
    async def test_cleanup_forgets_finished_workflows(
        self, orchestrator: WorkflowOrchestrator, bug_task: TaskSpecification
    ) -> None:
        instance = orchestrator.create_workflow(bug_task, "bug_fix")
        await orchestrator.execute_workflow(instance)

        assert orchestrator.cleanup(max_age=-1) >= 2
        assert orchestrator.get_workflow_status(instance.id) is None
