"""
Import-boundary enforcement for the settlement packages.

1. Engine purity        -- settlement_engines/** may not import the ORM, the
                           kernel db/models, services, the batch layer or the
                           config loader.
2. Engine no-impure     -- settlement_engines/** may not read the wall clock
                           or the environment.
3. Kernel independence  -- settlement_kernel/** may not import any layer
                           above it.
4. Service boundary     -- settlement_services/** may not import the batch
                           layer at runtime.

All scanning is done via AST; these tests are read-only.
"""

import ast
import glob
from pathlib import Path


def _python_files(root: str) -> list[str]:
    return sorted(glob.glob(f"{root}/**/*.py", recursive=True))


def _extract_imports(filepath: str, include_type_checking: bool = True) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    tree = ast.parse(Path(filepath).read_text(), filename=filepath)

    skipped: set[int] = set()
    if not include_type_checking:
        for node in ast.walk(tree):
            if (
                isinstance(node, ast.If)
                and isinstance(node.test, ast.Name)
                and node.test.id == "TYPE_CHECKING"
            ):
                for child in node.body:
                    skipped.update(id(n) for n in ast.walk(child))

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if id(node) in skipped:
            continue
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(root: str, forbidden: tuple[str, ...], **kwargs) -> list[str]:
    return [
        f"  {filepath}:{lineno} imports '{module}'"
        for filepath in _python_files(root)
        for lineno, module in _extract_imports(filepath, **kwargs)
        if _matches_any(module, forbidden)
    ]


class TestEnginePurity:

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "yaml",
        "settlement_kernel.db",
        "settlement_kernel.models",
        "settlement_services",
        "settlement_batch",
        "settlement_config.loader",
    )

    def test_engine_files_have_no_forbidden_imports(self):
        violations = _violations("settlement_engines", self.FORBIDDEN_PREFIXES)
        assert not violations, (
            "Engine purity violation:\n" + "\n".join(violations)
        )


class TestEngineNoImpureFunctions:

    IMPURE = ("datetime.now", "datetime.utcnow", "date.today", "os.environ", "os.getenv")

    def test_engines_do_not_read_clock_or_environment(self):
        violations: list[str] = []
        for filepath in _python_files("settlement_engines"):
            tree = ast.parse(Path(filepath).read_text(), filename=filepath)
            for node in ast.walk(tree):
                if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name):
                    ref = f"{node.value.id}.{node.attr}"
                    if ref in self.IMPURE:
                        violations.append(f"  {filepath}:{node.lineno} uses {ref}")
        assert not violations, "\n".join(violations)


class TestKernelIndependence:

    def test_kernel_imports_nothing_above_it(self):
        # create_tables() imports settlement_batch.models lazily to register tables
        violations = [
            v for v in _violations(
                "settlement_kernel",
                ("settlement_engines", "settlement_services", "settlement_batch",
                 "settlement_config"),
            )
            if not v.startswith("  settlement_kernel/db/engine.py")
        ]
        assert not violations, "\n".join(violations)


class TestServiceBoundary:

    def test_services_do_not_import_batch_at_runtime(self):
        violations = _violations(
            "settlement_services", ("settlement_batch",), include_type_checking=False,
        )
        assert not violations, "\n".join(violations)


class TestNoUnreachableHelpers:
    """Every public top-level function or class is used by production code."""

    PACKAGES = (
        "settlement_kernel",
        "settlement_config",
        "settlement_engines",
        "settlement_services",
        "settlement_batch",
        "scripts",
    )
    # Test support, reached only from tests/conftest.py
    TEST_SUPPORT = frozenset({"reset_engine", "reset_logging", "DeterministicClock"})

    def test_public_definitions_are_referenced(self):
        defined: dict[str, str] = {}
        referenced: set[str] = set()
        for root in self.PACKAGES:
            for filepath in _python_files(root):
                tree = ast.parse(Path(filepath).read_text(), filename=filepath)
                for node in tree.body:
                    if isinstance(node, (ast.FunctionDef, ast.ClassDef)):
                        if not node.name.startswith("_"):
                            defined[node.name] = filepath
                for node in ast.walk(tree):
                    if isinstance(node, ast.Name):
                        referenced.add(node.id)
                    elif isinstance(node, ast.Attribute):
                        referenced.add(node.attr)

        unused = sorted(
            f"  {path}: {name}"
            for name, path in defined.items()
            if name not in referenced and name not in self.TEST_SUPPORT
        )
        assert not unused, "Unreferenced public definitions:\n" + "\n".join(unused)
