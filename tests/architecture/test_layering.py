"""Layering guardrails keeping lower packages free of transport imports."""

from __future__ import annotations

import ast
from pathlib import Path

import pytest

PACKAGE_ROOT = Path(__file__).resolve().parents[2] / "src" / "advocatedir"

# Modules the pipeline core may not import, keyed by the package they live in.
FORBIDDEN_BY_PACKAGE: dict[str, tuple[str, ...]] = {
    "services": ("advocatedir.serving.http", "advocatedir.cli", "advocatedir.storage", "fastapi"),
    "security": ("advocatedir.serving", "advocatedir.storage", "advocatedir.cli", "fastapi"),
    "storage": ("advocatedir.serving.http", "advocatedir.cli", "fastapi"),
    "config": ("advocatedir.serving", "advocatedir.storage", "advocatedir.cli", "fastapi"),
}


def _imported_modules(path: Path) -> list[str]:
    tree = ast.parse(path.read_text(encoding="utf-8"))
    modules: list[str] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.ImportFrom):
            modules.append(node.module or "")
        elif isinstance(node, ast.Import):
            modules.extend(alias.name for alias in node.names)
    return modules


@pytest.mark.parametrize("package", sorted(FORBIDDEN_BY_PACKAGE))
def test_package_avoids_forbidden_imports(package: str) -> None:
    """Core packages do not reach up into transports or across into storage."""
    forbidden = FORBIDDEN_BY_PACKAGE[package]
    bad_imports: list[str] = []
    for py_path in sorted((PACKAGE_ROOT / package).rglob("*.py")):
        rel = py_path.relative_to(PACKAGE_ROOT).as_posix()
        bad_imports.extend(
            f"{rel}: {module}"
            for module in _imported_modules(py_path)
            if any(module == prefix or module.startswith(f"{prefix}.") for prefix in forbidden)
        )
    if bad_imports:
        pytest.fail(f"Disallowed imports in {package}: {'; '.join(bad_imports)}")


def test_no_sql_outside_storage() -> None:
    """SQL text is only assembled inside the storage package."""
    offenders: list[str] = []
    for py_path in sorted(PACKAGE_ROOT.rglob("*.py")):
        rel = py_path.relative_to(PACKAGE_ROOT)
        if rel.parts[0] == "storage":
            continue
        imports_duckdb = any(
            module.split(".")[0] == "duckdb" for module in _imported_modules(py_path)
        )
        if imports_duckdb or "SELECT " in py_path.read_text(encoding="utf-8"):
            offenders.append(rel.as_posix())
    if offenders:
        pytest.fail(f"SQL found outside storage: {', '.join(offenders)}")
