"""
Convention checks that import-based layer rules cannot express:
frozen value objects, immutable collections on frozen dataclasses,
no silent exception swallowing, and port/adapter contracts.
"""

import ast
import inspect
from pathlib import Path

SRC_ROOT = Path(__file__).parent.parent.parent / "src" / "mvpflow"

# Entities with lifecycle state; everything else in the domain is a value object
MUTABLE_DATACLASS_ALLOWLIST = {
    "Step",
    "ValidationCheckpoint",
    "WorkflowInstance",
    "GraphNode",
    "DependencyGraph",
    "TemplateStatistics",
}


def _frozen_flag(decorator: ast.expr) -> bool | None:
    """None if not a dataclass decorator, else whether it sets frozen=True."""
    if isinstance(decorator, ast.Name) and decorator.id == "dataclass":
        return False
    if isinstance(decorator, ast.Call):
        func = decorator.func
        if isinstance(func, ast.Name) and func.id == "dataclass":
            for kw in decorator.keywords:
                if kw.arg == "frozen" and isinstance(kw.value, ast.Constant):
                    return bool(kw.value.value)
            return False
    return None


def _dataclasses(filepath: Path) -> list[tuple[ast.ClassDef, bool]]:
    tree = ast.parse(filepath.read_text())
    results = []
    for node in ast.walk(tree):
        if not isinstance(node, ast.ClassDef):
            continue
        for decorator in node.decorator_list:
            frozen = _frozen_flag(decorator)
            if frozen is not None:
                results.append((node, frozen))
    return results


class TestFrozenDataclassConvention:
    """Domain dataclasses are frozen unless allowlisted."""

    def test_domain_dataclasses_are_frozen(self):
        violations = []

        for py_file in sorted((SRC_ROOT / "domain").glob("*.py")):
            for node, frozen in _dataclasses(py_file):
                if not frozen and node.name not in MUTABLE_DATACLASS_ALLOWLIST:
                    violations.append(f"{py_file.name}:{node.name}")

        assert not violations, (
            f"Domain dataclasses must be frozen. Violations: {violations}. "
            f"If mutable is intentional, add to MUTABLE_DATACLASS_ALLOWLIST."
        )


class TestImmutableCollections:
    """Frozen domain dataclass fields use tuple, not list."""

    def test_frozen_fields_use_tuples(self):
        violations = []

        for py_file in sorted((SRC_ROOT / "domain").glob("*.py")):
            source = py_file.read_text()
            for node, frozen in _dataclasses(py_file):
                if not frozen:
                    continue
                for item in node.body:
                    if not isinstance(item, ast.AnnAssign):
                        continue
                    annotation = ast.get_source_segment(source, item.annotation) or ""
                    if "list[" in annotation.lower():
                        name = getattr(item.target, "id", "?")
                        violations.append(f"{node.name}.{name}: uses list[]")

        assert not violations, (
            "Frozen dataclass fields should use tuple, not list:\n"
            + "\n".join(f"  - {v}" for v in violations)
        )


class TestNoSilentExceptionSwallowing:
    """No 'except ...: pass' anywhere in src/mvpflow."""

    def test_no_bare_except_pass(self):
        violations = []

        for py_file in SRC_ROOT.rglob("*.py"):
            source = py_file.read_text()
            for node in ast.walk(ast.parse(source)):
                if not isinstance(node, ast.ExceptHandler) or len(node.body) != 1:
                    continue
                stmt = node.body[0]
                is_ellipsis = (
                    isinstance(stmt, ast.Expr)
                    and isinstance(stmt.value, ast.Constant)
                    and stmt.value.value is ...
                )
                if isinstance(stmt, ast.Pass) or is_ellipsis:
                    rel_path = py_file.relative_to(SRC_ROOT.parent.parent)
                    handler_type = ""
                    if node.type:
                        handler_type = ast.get_source_segment(source, node.type) or ""
                    violations.append(f"{rel_path}:{node.lineno}: except {handler_type}: pass")

        assert not violations, "Silent exception swallowing found:\n" + "\n".join(
            f"  - {v}" for v in violations
        )


class TestInterfaceConventions:
    """Port naming and adapter contracts."""

    def test_all_ports_end_with_interface(self):
        from mvpflow.domain import interfaces

        abstract_classes = [
            name
            for name, obj in inspect.getmembers(interfaces, inspect.isclass)
            if inspect.isabstract(obj) and not name.startswith("_")
        ]

        violations = [name for name in abstract_classes if not name.endswith("Interface")]

        assert abstract_classes
        assert not violations, f"Abstract classes should end with 'Interface': {violations}"

    def test_all_interface_methods_are_abstract(self):
        from mvpflow.domain import interfaces

        violations = []
        for name, cls in inspect.getmembers(interfaces, inspect.isclass):
            if not inspect.isabstract(cls) or not name.endswith("Interface"):
                continue
            for method_name, method in inspect.getmembers(cls, predicate=inspect.isfunction):
                if method_name.startswith("_"):
                    continue
                if not getattr(method, "__isabstractmethod__", False):
                    violations.append(f"{name}.{method_name}")

        assert not violations, f"Public interface methods must be abstract: {violations}"

    def test_adapters_implement_their_ports(self):
        from mvpflow.domain.interfaces import (
            FilesystemProbeInterface,
            TemplateRepositoryInterface,
            TestResultsInterface,
            WorkflowEventStoreInterface,
        )
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

        adapters = {
            InMemoryTemplateRepository: TemplateRepositoryInterface,
            InMemoryWorkflowEventStore: WorkflowEventStoreInterface,
            FilesystemWorkflowEventStore: WorkflowEventStoreInterface,
            LocalFilesystemProbe: FilesystemProbeInterface,
            StaticFilesystemProbe: FilesystemProbeInterface,
            MappingTestResults: TestResultsInterface,
        }

        for adapter, port in adapters.items():
            assert issubclass(adapter, port), f"{adapter.__name__} must subclass {port.__name__}"
            assert not inspect.isabstract(adapter), (
                f"{adapter.__name__} leaves abstract methods unimplemented"
            )
