"""
Built-in step executors.

Registered under the ``mvpflow.executors`` entry point group.
"""

import logging

from mvpflow.domain.models import ExecutionContext, Step, StepOutcome, WorkflowInstance

logger = logging.getLogger(__name__)


def noop_executor(
    instance: WorkflowInstance, step: Step, context: ExecutionContext
) -> StepOutcome:
    """Dry-run executor: every step succeeds without doing anything."""
    context.token.raise_if_cancelled()
    logger.debug("Dry run of step '%s' in workflow %s", step.id, instance.id)
    return StepOutcome(success=True, output={"step": step.id, "dry_run": True})
