"""
Filesystem and test-result probes used by ``file_exists`` and
``test_passed`` criteria.
"""

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from mvpflow.domain.interfaces import FilesystemProbeInterface, TestResultsInterface


class LocalFilesystemProbe(FilesystemProbeInterface):
    """Checks paths on the local disk, relative paths against ``root``."""

    def __init__(self, root: str | Path = ".") -> None:
        self._root = Path(root)

    def has(self, path: str) -> bool:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self._root / candidate
        return candidate.exists()


class StaticFilesystemProbe(FilesystemProbeInterface):
    """A fixed set of paths, for tests and dry runs."""

    def __init__(self, paths: Iterable[str] = ()) -> None:
        self._paths = set(paths)

    def add(self, path: str) -> None:
        self._paths.add(path)

    def has(self, path: str) -> bool:
        return path in self._paths


class MappingTestResults(TestResultsInterface):
    """Named test results held in a mapping (name -> status or result mapping)."""

    def __init__(self, results: Mapping[str, Any] | None = None) -> None:
        self._results = dict(results or {})

    def record(self, test_name: str, result: Any) -> None:
        self._results[test_name] = result

    def lookup(self, test_name: str) -> Any:
        return self._results.get(test_name)
