"""Fixtures describing the agentrelay package for architecture tests."""

import ast
from pathlib import Path

import pytest
from pytestarch import (
    EvaluableArchitecture,
    LayeredArchitecture,
    get_evaluable_architecture,
)

SRC_DIR = Path(__file__).resolve().parents[2] / "src"
PACKAGE_DIR = SRC_DIR / "agentrelay"

# PyTestArch names modules relative to the parent of the source root
PREFIX = "src.agentrelay"


def _module_name(path: Path) -> str:
    parts = path.relative_to(SRC_DIR).with_suffix("").parts
    if parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(parts)


def _imported_names(tree: ast.AST) -> set[str]:
    """Absolute dotted names a module imports, including ``from x import y`` targets."""
    names: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            names.update(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module and not node.level:
            names.add(node.module)
            names.update(f"{node.module}.{alias.name}" for alias in node.names)
    return names


@pytest.fixture(scope="session")
def evaluable() -> EvaluableArchitecture:
    """Import graph of src/agentrelay."""
    return get_evaluable_architecture(str(SRC_DIR), str(PACKAGE_DIR))


@pytest.fixture(scope="session")
def layers() -> LayeredArchitecture:
    """The three hexagonal layers plus the two outer modules.

    ``config`` holds the pydantic settings models and ``schemas`` the
    JSON Schema loader for workflow documents.
    """
    return (
        LayeredArchitecture()
        .layer("domain")
        .containing_modules([f"{PREFIX}.domain"])
        .layer("application")
        .containing_modules([f"{PREFIX}.application"])
        .layer("infrastructure")
        .containing_modules([f"{PREFIX}.infrastructure"])
        .layer("config")
        .containing_modules([f"{PREFIX}.config"])
        .layer("schemas")
        .containing_modules([f"{PREFIX}.schemas"])
    )


@pytest.fixture(scope="session")
def imports_by_module() -> dict[str, set[str]]:
    """Every agentrelay module mapped to the dotted names it imports."""
    return {
        _module_name(path): _imported_names(ast.parse(path.read_text()))
        for path in sorted(PACKAGE_DIR.rglob("*.py"))
    }
