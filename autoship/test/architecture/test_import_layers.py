from __future__ import annotations

import ast
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class ImportRef:
    module: str
    line: int


def package_root() -> Path:
    return Path(__file__).resolve().parents[2]


def iter_source_files(base: Path) -> list[Path]:
    root = package_root()
    files: list[Path] = []
    for path in sorted(base.rglob("*.py")):
        rel = path.relative_to(root)
        if rel.parts and rel.parts[0] == "test":
            continue
        if any(part == "__pycache__" for part in rel.parts):
            continue
        files.append(path)
    return files


def read_tree(path: Path) -> ast.AST:
    return ast.parse(path.read_text(encoding="utf-8"), filename=str(path))


def parse_imports(path: Path) -> list[ImportRef]:
    imports: list[ImportRef] = []
    for node in ast.walk(read_tree(path)):
        if isinstance(node, ast.Import):
            imports.extend(ImportRef(module=alias.name, line=node.lineno) for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and not node.level and node.module is not None:
            imports.append(ImportRef(module=node.module, line=node.lineno))
    return imports


def matches_prefix(module: str, prefix: str) -> bool:
    return module == prefix or module.startswith(prefix + ".")


def test_lower_layers_do_not_import_cli() -> None:
    root = package_root()
    offenders: list[str] = []

    for layer in ("core", "platform", "output", "git", "release"):
        for file_path in iter_source_files(root / layer):
            rel = file_path.relative_to(root)
            for item in parse_imports(file_path):
                if matches_prefix(item.module, "autoship.cli"):
                    offenders.append(f"{rel}:{item.line}: forbidden import '{item.module}'")

    assert not offenders, "layer -> cli dependency violations:\n" + "\n".join(offenders)


def test_direct_subprocess_calls_live_in_platform_process() -> None:
    root = package_root()
    offenders: list[str] = []

    for file_path in iter_source_files(root):
        rel = file_path.relative_to(root)
        if rel.as_posix() == "platform/process.py":
            continue
        for node in ast.walk(read_tree(file_path)):
            if not isinstance(node, ast.Call) or not isinstance(node.func, ast.Attribute):
                continue
            func = node.func
            if isinstance(func.value, ast.Name) and func.value.id == "subprocess":
                offenders.append(f"{rel}:{node.lineno}: direct subprocess call")

    assert not offenders, "Subprocess policy violations:\n" + "\n".join(offenders)


def test_rich_is_only_used_by_the_console() -> None:
    root = package_root()
    offenders: list[str] = []

    for file_path in iter_source_files(root):
        rel = file_path.relative_to(root)
        if rel.as_posix() == "output/console.py":
            continue
        for item in parse_imports(file_path):
            if matches_prefix(item.module, "rich"):
                offenders.append(f"{rel}:{item.line}: direct rich import '{item.module}'")

    assert not offenders, "Direct rich usage policy violations:\n" + "\n".join(offenders)


def test_anthropic_is_only_used_by_the_note_generator() -> None:
    root = package_root()
    offenders: list[str] = []

    for file_path in iter_source_files(root):
        rel = file_path.relative_to(root)
        if rel.as_posix() == "release/notes.py":
            continue
        for item in parse_imports(file_path):
            if matches_prefix(item.module, "anthropic"):
                offenders.append(f"{rel}:{item.line}: direct anthropic import '{item.module}'")

    assert not offenders, "anthropic usage violations:\n" + "\n".join(offenders)


def test_generics_use_type_parameter_syntax() -> None:
    root = package_root()
    offenders: list[str] = []

    for file_path in iter_source_files(root):
        rel = file_path.relative_to(root)
        for node in ast.walk(read_tree(file_path)):
            if not isinstance(node, ast.Call):
                continue
            func = node.func
            name = func.attr if isinstance(func, ast.Attribute) else getattr(func, "id", None)
            if name == "TypeVar":
                offenders.append(f"{rel}:{node.lineno}: TypeVar declaration")

    assert not offenders, "declare type parameters on the class or function:\n" + "\n".join(
        offenders
    )
