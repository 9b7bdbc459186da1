"""
Content-addressed references for exported workflow configurations.

An exported configuration carries ``workflow_ref``, the SHA-256 of its
canonical JSON form. Import recomputes it to detect edited or corrupted
documents.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

REF_KEY = "workflow_ref"


def compute_workflow_ref(document: dict[str, Any]) -> str:
    """Compute the content hash of a configuration document.

    Produces a deterministic hash by:
    1. Dropping any existing ``workflow_ref`` key
    2. Canonical JSON serialization (sorted keys, no whitespace)
    3. SHA-256 hash of the canonical form

    Args:
        document: Configuration document (JSON-compatible).

    Returns:
        Hex-encoded SHA-256 hash string.
    """
    content = {k: v for k, v in document.items() if k != REF_KEY}
    canonical = json.dumps(content, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def verify_workflow_ref(document: dict[str, Any]) -> bool:
    """True if the document's ``workflow_ref`` matches its content."""
    expected = document.get(REF_KEY)
    return bool(expected) and expected == compute_workflow_ref(document)
