"""
Infrastructure layer for the workflow engine.

Contains adapters for external concerns (persistence, probes, executor registry).
"""

from mvpflow.infrastructure.executors import noop_executor
from mvpflow.infrastructure.persistence import (
    FilesystemWorkflowEventStore,
    InMemoryTemplateRepository,
    InMemoryWorkflowEventStore,
)
from mvpflow.infrastructure.probes import (
    LocalFilesystemProbe,
    MappingTestResults,
    StaticFilesystemProbe,
)
from mvpflow.infrastructure.registry import ExecutorRegistry

__all__ = [
    # Persistence
    "InMemoryTemplateRepository",
    "InMemoryWorkflowEventStore",
    "FilesystemWorkflowEventStore",
    # Probes
    "LocalFilesystemProbe",
    "StaticFilesystemProbe",
    "MappingTestResults",
    # Executors
    "ExecutorRegistry",
    "noop_executor",
]
