"""
Event stores for the workflow execution trace.

The in-memory store is the default for library use and tests. The
filesystem store appends one JSON line per event to
``<base_path>/events/<workflow_id>.jsonl`` so a trace survives the process
and can be tailed while a workflow runs.
"""

import dataclasses
import json
import threading
from pathlib import Path
from typing import Any

from mvpflow.domain.interfaces import WorkflowEventStoreInterface
from mvpflow.domain.workflow_event import WorkflowEvent, WorkflowEventType


def _matches(event: WorkflowEvent, event_type: WorkflowEventType | None) -> bool:
    return event_type is None or event.event_type is event_type


class InMemoryWorkflowEventStore(WorkflowEventStoreInterface):
    """Events grouped per workflow, in emission order."""

    def __init__(self) -> None:
        self._events: dict[str, list[WorkflowEvent]] = {}
        self._lock = threading.Lock()

    def store_event(self, event: WorkflowEvent) -> str:
        with self._lock:
            self._events.setdefault(event.workflow_id, []).append(event)
        return event.event_id

    def get_events(
        self,
        workflow_id: str,
        event_type: WorkflowEventType | None = None,
    ) -> list[WorkflowEvent]:
        with self._lock:
            events = list(self._events.get(workflow_id, ()))
        return [e for e in events if _matches(e, event_type)]


class FilesystemWorkflowEventStore(WorkflowEventStoreInterface):
    """JSONL trace files, one per workflow."""

    def __init__(self, base_path: Path) -> None:
        self.events_dir = Path(base_path) / "events"
        self.events_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _trace_file(self, workflow_id: str) -> Path:
        return self.events_dir / f"{workflow_id}.jsonl"

    @staticmethod
    def _encode(event: WorkflowEvent) -> str:
        data: dict[str, Any] = dataclasses.asdict(event)
        data["event_type"] = event.event_type.value
        return json.dumps(data)

    @staticmethod
    def _decode(line: str) -> WorkflowEvent:
        data = json.loads(line)
        data["event_type"] = WorkflowEventType(data["event_type"])
        return WorkflowEvent(**data)

    def store_event(self, event: WorkflowEvent) -> str:
        line = self._encode(event)
        with self._lock, self._trace_file(event.workflow_id).open("a") as f:
            f.write(line + "\n")
        return event.event_id

    def get_events(
        self,
        workflow_id: str,
        event_type: WorkflowEventType | None = None,
    ) -> list[WorkflowEvent]:
        path = self._trace_file(workflow_id)
        if not path.exists():
            return []
        with self._lock:
            lines = path.read_text().splitlines()
        events = (self._decode(line) for line in lines if line.strip())
        return [e for e in events if _matches(e, event_type)]
