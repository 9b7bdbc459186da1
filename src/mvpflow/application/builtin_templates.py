"""Built-in workflow templates registered by the Template Manager."""

from mvpflow.domain.criteria import NoErrors, ProgressMin, StepCompleted, TestPassed
from mvpflow.domain.models import RiskLevel, StepType
from mvpflow.domain.templates import (
    CheckpointTemplate,
    StepTemplate,
    TemplateMetadata,
    WorkflowTemplate,
)

BUILTIN_CATEGORY = "built-in"
BUILTIN_AUTHOR = "mvpflow"

FEATURE_ADDITION = WorkflowTemplate(
    name="feature_addition",
    type="feature_addition",
    description="Standard workflow for adding new features with MVP focus",
    steps=(
        StepTemplate(
            "analyze_requirements", "Analyze Requirements", StepType.ANALYSIS,
            description="Analyze and document feature requirements",
            estimated_effort=3, risk_level=RiskLevel.LOW,
        ),
        StepTemplate(
            "design_solution", "Design Solution Architecture", StepType.DESIGN,
            description="Design the technical approach",
            dependencies=("analyze_requirements",), estimated_effort=4,
        ),
        StepTemplate(
            "implement_core", "Implement Core Functionality", StepType.IMPLEMENTATION,
            description="Implement the essential behaviour of the feature",
            dependencies=("design_solution",), estimated_effort=6, user_facing=True,
        ),
        StepTemplate(
            "add_tests", "Add Unit Tests", StepType.TESTING,
            description="Cover the core functionality with unit tests",
            dependencies=("implement_core",), estimated_effort=3,
            risk_level=RiskLevel.LOW,
        ),
        StepTemplate(
            "integration_testing", "Integration Testing", StepType.TESTING,
            description="Exercise the feature end to end",
            dependencies=("add_tests",), estimated_effort=2, risk_level=RiskLevel.LOW,
        ),
    ),
    checkpoints=(
        CheckpointTemplate(
            "requirements_validated", "Requirements Validation", step_index=0,
            description="Requirements are analyzed",
            criteria=(StepCompleted("analyze_requirements"),),
        ),
        CheckpointTemplate(
            "core_functionality_working", "Core Functionality Check", step_index=2,
            description="Core functionality implemented without errors",
            criteria=(StepCompleted("implement_core"), NoErrors()),
        ),
    ),
    estimated_duration=18,
    category=BUILTIN_CATEGORY,
    tags=("feature", "development", "mvp"),
)

BUG_FIX = WorkflowTemplate(
    name="bug_fix",
    type="bug_fix",
    description="Systematic workflow for identifying and fixing bugs",
    steps=(
        StepTemplate(
            "reproduce_issue", "Reproduce Issue", StepType.INVESTIGATION,
            description="Reproduce the reported problem reliably",
            estimated_effort=2, risk_level=RiskLevel.LOW,
        ),
        StepTemplate(
            "identify_root_cause", "Identify Root Cause", StepType.INVESTIGATION,
            description="Find the underlying cause of the problem",
            dependencies=("reproduce_issue",), estimated_effort=4,
        ),
        StepTemplate(
            "implement_fix", "Implement Fix", StepType.IMPLEMENTATION,
            description="Implement the fix for the root cause",
            dependencies=("identify_root_cause",), estimated_effort=3, user_facing=True,
        ),
        StepTemplate(
            "add_regression_tests", "Add Regression Tests", StepType.TESTING,
            description="Guard against the problem coming back",
            dependencies=("implement_fix",), estimated_effort=2,
            risk_level=RiskLevel.LOW,
        ),
        StepTemplate(
            "verify_fix", "Verify Fix", StepType.VERIFICATION,
            description="Confirm the reported problem is gone",
            dependencies=("add_regression_tests",), estimated_effort=1,
            risk_level=RiskLevel.LOW,
        ),
    ),
    checkpoints=(
        CheckpointTemplate(
            "bug_reproduced", "Bug Reproduction", step_index=0,
            description="The problem has been reproduced",
            criteria=(StepCompleted("reproduce_issue"),),
        ),
        CheckpointTemplate(
            "regression_tests_passed", "Regression Tests", step_index=3,
            description="Regression test reported as passed",
            criteria=(TestPassed("regression_test"),),
            required=False,
        ),
        CheckpointTemplate(
            "fix_verified", "Fix Verification", step_index=4,
            description="Fix verified without errors",
            criteria=(StepCompleted("verify_fix"), NoErrors()),
        ),
    ),
    estimated_duration=12,
    category=BUILTIN_CATEGORY,
    tags=("bug", "fix", "debugging"),
)

REFACTORING = WorkflowTemplate(
    name="refactoring",
    type="refactoring",
    description="Safe refactoring workflow with safety tests first",
    steps=(
        StepTemplate(
            "analyze_current_code", "Analyze Current Code", StepType.ANALYSIS,
            estimated_effort=4, risk_level=RiskLevel.LOW,
        ),
        StepTemplate(
            "create_safety_tests", "Create Safety Tests", StepType.TESTING,
            dependencies=("analyze_current_code",), estimated_effort=5,
            risk_level=RiskLevel.LOW,
        ),
        StepTemplate(
            "refactor_incrementally", "Refactor Incrementally", StepType.IMPLEMENTATION,
            dependencies=("create_safety_tests",), estimated_effort=8,
        ),
        StepTemplate(
            "validate_refactoring", "Validate Refactoring", StepType.VERIFICATION,
            dependencies=("refactor_incrementally",), estimated_effort=2,
            risk_level=RiskLevel.LOW,
        ),
    ),
    checkpoints=(
        CheckpointTemplate(
            "safety_net_ready", "Safety Tests Ready", step_index=1,
            criteria=(StepCompleted("create_safety_tests"),),
        ),
        CheckpointTemplate(
            "refactoring_validated", "Refactoring Validated", step_index=3,
            criteria=(StepCompleted("validate_refactoring"), NoErrors()),
        ),
    ),
    estimated_duration=19,
    category=BUILTIN_CATEGORY,
    tags=("refactoring", "quality"),
)

TESTING = WorkflowTemplate(
    name="testing",
    type="testing",
    description="Workflow for building out test coverage",
    steps=(
        StepTemplate(
            "plan_test_strategy", "Plan Test Strategy", StepType.PLANNING,
            estimated_effort=2, risk_level=RiskLevel.LOW,
        ),
        StepTemplate(
            "create_unit_tests", "Create Unit Tests", StepType.TESTING,
            dependencies=("plan_test_strategy",), estimated_effort=4,
            risk_level=RiskLevel.LOW,
        ),
        StepTemplate(
            "create_integration_tests", "Create Integration Tests", StepType.TESTING,
            dependencies=("create_unit_tests",), estimated_effort=3,
        ),
        StepTemplate(
            "run_test_suite", "Run Complete Test Suite", StepType.VERIFICATION,
            dependencies=("create_integration_tests",), estimated_effort=1,
            risk_level=RiskLevel.LOW,
        ),
    ),
    checkpoints=(
        CheckpointTemplate(
            "test_suite_green", "Test Suite Green", step_index=3,
            criteria=(StepCompleted("run_test_suite"), NoErrors()),
        ),
    ),
    estimated_duration=10,
    category=BUILTIN_CATEGORY,
    tags=("testing", "quality"),
)

DOCUMENTATION = WorkflowTemplate(
    name="documentation",
    type="documentation",
    description="Workflow for writing and reviewing documentation",
    steps=(
        StepTemplate(
            "analyze_documentation_needs", "Analyze Documentation Needs", StepType.ANALYSIS,
            estimated_effort=2, risk_level=RiskLevel.LOW,
        ),
        StepTemplate(
            "create_structure", "Create Documentation Structure", StepType.PLANNING,
            dependencies=("analyze_documentation_needs",), estimated_effort=1,
            risk_level=RiskLevel.LOW,
        ),
        StepTemplate(
            "write_content", "Write Documentation Content", StepType.IMPLEMENTATION,
            dependencies=("create_structure",), estimated_effort=6, user_facing=True,
        ),
        StepTemplate(
            "review_and_edit", "Review and Edit", StepType.VERIFICATION,
            dependencies=("write_content",), estimated_effort=2, risk_level=RiskLevel.LOW,
        ),
    ),
    checkpoints=(
        CheckpointTemplate(
            "content_written", "Content Written", step_index=2,
            criteria=(StepCompleted("write_content"),),
        ),
    ),
    estimated_duration=11,
    category=BUILTIN_CATEGORY,
    tags=("documentation",),
)

GENERAL = WorkflowTemplate(
    name="general",
    type="general",
    description="General-purpose workflow for tasks without a specialized template",
    steps=(
        StepTemplate(
            "understand_requirements", "Understand Requirements", StepType.ANALYSIS,
            estimated_effort=2, risk_level=RiskLevel.LOW,
        ),
        StepTemplate(
            "plan_approach", "Plan Approach", StepType.PLANNING,
            dependencies=("understand_requirements",), estimated_effort=2,
            risk_level=RiskLevel.LOW,
        ),
        StepTemplate(
            "implement_solution", "Implement Solution", StepType.IMPLEMENTATION,
            dependencies=("plan_approach",), estimated_effort=6, user_facing=True,
        ),
        StepTemplate(
            "verify_completion", "Verify Completion", StepType.VERIFICATION,
            dependencies=("implement_solution",), estimated_effort=2,
            risk_level=RiskLevel.LOW,
        ),
    ),
    checkpoints=(
        CheckpointTemplate(
            "solution_implemented", "Solution Implemented", step_index=2,
            criteria=(StepCompleted("implement_solution"),),
        ),
        CheckpointTemplate(
            "workflow_complete", "Workflow Complete", step_index=3,
            criteria=(NoErrors(), ProgressMin(100)),
        ),
    ),
    estimated_duration=12,
    category=BUILTIN_CATEGORY,
    tags=("general",),
)

BUILTIN_TEMPLATES = (FEATURE_ADDITION, BUG_FIX, REFACTORING, TESTING, DOCUMENTATION, GENERAL)


def builtin_metadata(template: WorkflowTemplate) -> TemplateMetadata:
    return TemplateMetadata(
        version="1.0.0",
        category=BUILTIN_CATEGORY,
        author=BUILTIN_AUTHOR,
        tags=template.tags,
    )
