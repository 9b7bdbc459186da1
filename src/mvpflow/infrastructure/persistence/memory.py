"""
In-memory implementation of the template repository.

Templates are immutable once saved; statistics are mutated only through
``update_statistics`` under the repository lock, and callers always receive
snapshot copies.
"""

import copy
import threading
from collections.abc import Callable

from mvpflow.domain.interfaces import TemplateRepositoryInterface
from mvpflow.domain.templates import RegisteredTemplate, TemplateStatistics


class InMemoryTemplateRepository(TemplateRepositoryInterface):
    """Thread-safe in-memory template store."""

    def __init__(self) -> None:
        self._templates: dict[str, RegisteredTemplate] = {}
        self._statistics: dict[str, TemplateStatistics] = {}
        self._lock = threading.RLock()

    def save(self, registered: RegisteredTemplate) -> None:
        name = registered.template.name
        with self._lock:
            self._templates[name] = registered
            # Re-registration keeps accumulated usage
            self._statistics.setdefault(name, TemplateStatistics())

    def get(self, name: str) -> RegisteredTemplate:
        with self._lock:
            if name not in self._templates:
                raise KeyError(f"Template not found: {name}")
            return self._templates[name]

    def exists(self, name: str) -> bool:
        with self._lock:
            return name in self._templates

    def list_all(self) -> list[RegisteredTemplate]:
        with self._lock:
            return list(self._templates.values())

    def get_statistics(self, name: str) -> TemplateStatistics:
        with self._lock:
            if name not in self._statistics:
                raise KeyError(f"Template not found: {name}")
            return copy.deepcopy(self._statistics[name])

    def update_statistics(
        self, name: str, update: Callable[[TemplateStatistics], None]
    ) -> TemplateStatistics:
        with self._lock:
            if name not in self._statistics:
                raise KeyError(f"Template not found: {name}")
            update(self._statistics[name])
            return copy.deepcopy(self._statistics[name])
