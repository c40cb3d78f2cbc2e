"""
Kernel boundary: library_kernel/** may NOT import library_config.

Configuration sits above the kernel and hands it a LendingPolicy; the
kernel never reaches up to read files itself.  The Book row lock query is
written once, in InventoryLedger's module.  These tests read source code
via AST and cannot break anything.
"""

import ast
from pathlib import Path

from library_kernel.invariants import ALL_KERNEL_INVARIANTS, FORBIDDEN_KERNEL_IMPORTS, KernelInvariant

KERNEL_ROOT = Path(__file__).resolve().parents[2] / "library_kernel"


def _extract_imports(path: Path) -> list[tuple[int, str]]:
    tree = ast.parse(path.read_text(), filename=str(path))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def test_kernel_sources_found():
    assert KERNEL_ROOT.is_dir()
    assert any(KERNEL_ROOT.rglob("*.py"))


def test_kernel_has_no_upward_imports():
    violations = []
    for path in sorted(KERNEL_ROOT.rglob("*.py")):
        for lineno, module in _extract_imports(path):
            if module.split(".")[0] in FORBIDDEN_KERNEL_IMPORTS:
                violations.append(f"{path.relative_to(KERNEL_ROOT.parent)}:{lineno} {module}")
    assert violations == [], "\n".join(violations)


def test_domain_layer_has_no_orm_imports():
    violations = []
    for path in sorted((KERNEL_ROOT / "domain").rglob("*.py")):
        for lineno, module in _extract_imports(path):
            if module.split(".")[0] == "sqlalchemy" or module.startswith(
                ("library_kernel.db", "library_kernel.models", "library_kernel.services")
            ):
                violations.append(f"{path.name}:{lineno} {module}")
    assert violations == [], "\n".join(violations)


def test_invariants_declared():
    assert ALL_KERNEL_INVARIANTS == frozenset(KernelInvariant)
    assert KernelInvariant.COPY_CONSERVATION in ALL_KERNEL_INVARIANTS
    assert KernelInvariant.AUDIT_APPEND_ONLY in ALL_KERNEL_INVARIANTS


def _locks_book(node: ast.AST) -> bool:
    """True for ``select(Book)...with_for_update()`` call chains."""
    if not (isinstance(node, ast.Call) and isinstance(node.func, ast.Attribute)
            and node.func.attr == "with_for_update"):
        return False
    for inner in ast.walk(node.func.value):
        if (isinstance(inner, ast.Call) and isinstance(inner.func, ast.Name)
                and inner.func.id == "select" and inner.args
                and isinstance(inner.args[0], ast.Name) and inner.args[0].id == "Book"):
            return True
    return False


def test_book_row_lock_has_one_home():
    owners = []
    for path in sorted(KERNEL_ROOT.rglob("*.py")):
        tree = ast.parse(path.read_text(), filename=str(path))
        count = sum(1 for node in ast.walk(tree) if _locks_book(node))
        if count:
            owners.append((path.relative_to(KERNEL_ROOT).as_posix(), count))
    assert owners == [("services/inventory_ledger.py", 1)]
