"""
Layer boundaries of the treasury kernel.

1. treasury_kernel/** may NOT import treasury_config.  The kernel never
   depends upward; bridges live in the config package.

2. treasury_kernel/domain/** is pure: no SQLAlchemy, no services, no
   models at runtime.

3. Selectors never import services.

These tests read source code via AST; they cannot break anything.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
KERNEL = ROOT / "treasury_kernel"


def _python_files(root: Path) -> list[Path]:
    return sorted(root.rglob("*.py"))


def _runtime_imports(path: Path) -> list[tuple[int, str]]:
    """(line, module) for every import not guarded by ``if TYPE_CHECKING``."""
    tree = ast.parse(path.read_text(), filename=str(path))
    guarded: set[int] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.If) and "TYPE_CHECKING" in ast.unparse(node.test):
            for child in ast.walk(node):
                guarded.add(id(child))

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if id(node) in guarded:
            continue
        if isinstance(node, ast.Import):
            results.extend((node.lineno, alias.name) for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _violations(root: Path, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for path in _python_files(root):
        for lineno, module in _runtime_imports(path):
            if module.startswith(forbidden):
                found.append(f"{path.relative_to(ROOT)}:{lineno} imports {module}")
    return found


class TestKernelNoUpwardDependencies:
    def test_kernel_does_not_import_config(self):
        assert _violations(KERNEL, ("treasury_config",)) == []


class TestPureDomain:
    def test_domain_has_no_io_imports(self):
        forbidden = (
            "sqlalchemy",
            "treasury_kernel.services",
            "treasury_kernel.models",
            "treasury_kernel.db",
            "treasury_kernel.selectors",
        )
        assert _violations(KERNEL / "domain", forbidden) == []


class TestSelectorsReadOnly:
    def test_selectors_do_not_import_services(self):
        assert _violations(KERNEL / "selectors", ("treasury_kernel.services",)) == []

    def test_selectors_never_write(self):
        writes = {"add", "add_all", "delete", "commit", "flush", "merge"}
        offenders = []
        for path in _python_files(KERNEL / "selectors"):
            tree = ast.parse(path.read_text(), filename=str(path))
            for node in ast.walk(tree):
                if (
                    isinstance(node, ast.Call)
                    and isinstance(node.func, ast.Attribute)
                    and node.func.attr in writes
                ):
                    offenders.append(f"{path.name}:{node.lineno} .{node.func.attr}()")
        assert offenders == []
