"""mvpflow JSON Schema definitions and validation utilities.

Schemas:
    - workflow_config.schema.json: Exported workflow configuration
      (task specification, steps, checkpoints, decomposition summary, options)

Usage:
    from mvpflow.schemas import validate_workflow_config

    with open("workflow.json") as f:
        data = json.load(f)
    validate_workflow_config(data)  # Raises jsonschema.ValidationError if invalid
"""

from __future__ import annotations

import json
from functools import lru_cache
from importlib.resources import files
from typing import Any

import jsonschema


def _load_schema(name: str) -> dict[str, Any]:
    """Load a JSON schema from the schemas package.

    Args:
        name: Schema filename (e.g., 'workflow_config.schema.json')

    Returns:
        Parsed JSON schema as a dictionary
    """
    schema_text = files("mvpflow.schemas").joinpath(name).read_text()
    result: dict[str, Any] = json.loads(schema_text)
    return result


@lru_cache(maxsize=1)
def get_workflow_config_schema() -> dict[str, Any]:
    """Get the workflow_config.schema.json schema."""
    return _load_schema("workflow_config.schema.json")


def validate_workflow_config(data: dict[str, Any]) -> None:
    """Validate an exported workflow configuration against the schema.

    Args:
        data: Workflow configuration document

    Raises:
        jsonschema.ValidationError: If validation fails
    """
    jsonschema.validate(data, get_workflow_config_schema())


__all__ = [
    "get_workflow_config_schema",
    "validate_workflow_config",
]
