"""
Persistence adapters for templates and the workflow execution trace.
"""

from mvpflow.infrastructure.persistence.memory import InMemoryTemplateRepository
from mvpflow.infrastructure.persistence.workflow_events import (
    FilesystemWorkflowEventStore,
    InMemoryWorkflowEventStore,
)

__all__ = [
    "InMemoryTemplateRepository",
    "InMemoryWorkflowEventStore",
    "FilesystemWorkflowEventStore",
]
