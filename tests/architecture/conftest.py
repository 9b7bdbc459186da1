"""Fixtures for the layer rules."""

from pathlib import Path

import pytest
from pytestarch import (
    EvaluableArchitecture,
    LayeredArchitecture,
    get_evaluable_architecture,
)

SRC_DIR = Path(__file__).resolve().parents[2] / "src"
LAYERS = ("domain", "application", "infrastructure")


@pytest.fixture(scope="session")
def evaluable() -> EvaluableArchitecture:
    return get_evaluable_architecture(str(SRC_DIR), str(SRC_DIR / "mvpflow"))


@pytest.fixture(scope="session")
def layers() -> LayeredArchitecture:
    """
    One layer per subpackage.

    PyTestArch names modules relative to the source root, so the domain
    layer is 'src.mvpflow.domain'.
    """
    architecture = LayeredArchitecture()
    for name in LAYERS:
        architecture = architecture.layer(name).containing_modules(
            [f"src.mvpflow.{name}"]
        )
    return architecture
