"""Import and process-spawning policies for the forge package.

Advisory: these only run with ``FORGE_ARCH_CHECKS=1``.
"""

from __future__ import annotations

import ast
import os
from dataclasses import dataclass
from pathlib import Path

import pytest

pytestmark = pytest.mark.skipif(
    os.getenv("FORGE_ARCH_CHECKS") != "1",
    reason="architecture checks are advisory; set FORGE_ARCH_CHECKS=1 to enable",
)


@dataclass(frozen=True, slots=True)
class ImportRef:
    module: str
    line: int


def forge_root() -> Path:
    return Path(__file__).resolve().parents[2]


def iter_source_files() -> list[tuple[str, Path]]:
    root = forge_root()
    files: list[tuple[str, Path]] = []
    for path in sorted(root.rglob("*.py")):
        rel = path.relative_to(root)
        if rel.parts[0] == "test" or "__pycache__" in rel.parts:
            continue
        files.append((rel.as_posix(), path))
    return files


def read_tree(path: Path) -> ast.AST:
    return ast.parse(path.read_text(encoding="utf-8"), filename=str(path))


def parse_imports(path: Path) -> list[ImportRef]:
    imports: list[ImportRef] = []
    for node in ast.walk(read_tree(path)):
        if isinstance(node, ast.Import):
            imports.extend(ImportRef(alias.name, node.lineno) for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and not node.level and node.module:
            imports.append(ImportRef(node.module, node.lineno))
    return imports


def matches_prefix(module: str, prefix: str) -> bool:
    return module == prefix or module.startswith(prefix + ".")


def test_subprocess_only_in_process_module() -> None:
    offenders = [
        f"{rel}:{ref.line}: imports {ref.module}"
        for rel, path in iter_source_files()
        if rel != "platform/process.py"
        for ref in parse_imports(path)
        if matches_prefix(ref.module, "subprocess")
    ]
    assert not offenders, "Subprocess policy violations:\n" + "\n".join(offenders)


def test_rich_only_in_console() -> None:
    offenders = [
        f"{rel}:{ref.line}: direct rich import '{ref.module}'"
        for rel, path in iter_source_files()
        if rel != "output/console.py"
        for ref in parse_imports(path)
        if matches_prefix(ref.module, "rich")
    ]
    assert not offenders, "Direct rich usage policy violations:\n" + "\n".join(offenders)


def test_core_depends_on_nothing_else() -> None:
    offenders = [
        f"{rel}:{ref.line}: core imports {ref.module}"
        for rel, path in iter_source_files()
        if rel.startswith("core/")
        for ref in parse_imports(path)
        if matches_prefix(ref.module, "forge") and not matches_prefix(ref.module, "forge.core")
    ]
    assert not offenders, "Layering violations:\n" + "\n".join(offenders)


def test_only_cli_imports_cli() -> None:
    offenders = [
        f"{rel}:{ref.line}: imports {ref.module}"
        for rel, path in iter_source_files()
        if not rel.startswith("cli/")
        for ref in parse_imports(path)
        if matches_prefix(ref.module, "forge.cli") or matches_prefix(ref.module, "typer")
    ]
    assert not offenders, "Layering violations:\n" + "\n".join(offenders)
