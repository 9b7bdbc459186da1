"""
Domain interfaces (Ports) for the workflow engine.

These abstract base classes define the contracts that adapters must satisfy.
They have no external dependencies and mark the core domain boundaries.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mvpflow.domain.templates import RegisteredTemplate, TemplateStatistics
    from mvpflow.domain.workflow_event import WorkflowEvent, WorkflowEventType


class TemplateRepositoryInterface(ABC):
    """
    Port for template storage and usage statistics.

    Shared by every workflow instance. Implementations must make each call
    atomic per template name: a statistics update is never visible half-done
    to a concurrent reader.
    """

    @abstractmethod
    def save(self, registered: "RegisteredTemplate") -> None:
        """
        Store a template, replacing any template of the same name.

        Statistics of an existing template are kept.
        """

    @abstractmethod
    def get(self, name: str) -> "RegisteredTemplate":
        """
        Retrieve a template by name.

        Raises:
            KeyError: If no template has that name
        """

    @abstractmethod
    def exists(self, name: str) -> bool:
        """Check whether a template is registered."""

    @abstractmethod
    def list_all(self) -> list["RegisteredTemplate"]:
        """All templates in registration order."""

    @abstractmethod
    def get_statistics(self, name: str) -> "TemplateStatistics":
        """
        Return a snapshot copy of a template's usage statistics.

        Raises:
            KeyError: If no template has that name
        """

    @abstractmethod
    def update_statistics(
        self, name: str, update: Callable[["TemplateStatistics"], None]
    ) -> "TemplateStatistics":
        """
        Apply ``update`` to a template's statistics atomically.

        Returns:
            A snapshot of the statistics after the update

        Raises:
            KeyError: If no template has that name
        """


class WorkflowEventStoreInterface(ABC):
    """Port for the workflow execution trace."""

    @abstractmethod
    def store_event(self, event: "WorkflowEvent") -> str:
        """Persist an event and return its id."""

    @abstractmethod
    def get_events(
        self,
        workflow_id: str,
        event_type: "WorkflowEventType | None" = None,
    ) -> list["WorkflowEvent"]:
        """Events of one workflow in creation order, optionally filtered by type."""


class FilesystemProbeInterface(ABC):
    """Port used by ``file_exists`` criteria."""

    @abstractmethod
    def has(self, path: str) -> bool:
        """True if the path exists."""


class TestResultsInterface(ABC):
    """Port used by ``test_passed`` criteria for named test-result lookup."""

    __test__ = False  # not a pytest test class

    @abstractmethod
    def lookup(self, test_name: str) -> Any:
        """
        Return the named test result, or None if unknown.

        A result is either a status string or a mapping with a ``status`` key.
        """
