from __future__ import annotations

import ast
from pathlib import Path

AUTH_ROOT = Path(__file__).resolve().parents[1] / "src" / "auth"


def _exit_calls(tree: ast.Module) -> list[int]:
    lines: list[int] = []
    for node in ast.walk(tree):
        if not isinstance(node, ast.Call):
            continue
        func = node.func
        if isinstance(func, ast.Attribute) and func.attr in {"exit", "_exit"}:
            lines.append(node.lineno)
        elif isinstance(func, ast.Name) and func.id in {"exit", "quit"}:
            lines.append(node.lineno)
    return lines


def test_auth_package_never_exits_the_process() -> None:
    """Arrange-Act-Assert: only the command modules may terminate the process."""
    offenders = {}
    for path in sorted(AUTH_ROOT.glob("*.py")):
        calls = _exit_calls(ast.parse(path.read_text(encoding="utf-8")))
        if calls:
            offenders[path.name] = calls

    assert offenders == {}


def test_server_resolves_completion_only_through_finish() -> None:
    """Arrange-Act-Assert: the completion future has a single writer besides stop()."""
    tree = ast.parse((AUTH_ROOT / "server.py").read_text(encoding="utf-8"))

    owners = set()
    for cls in (n for n in tree.body if isinstance(n, ast.ClassDef)):
        for fn in (n for n in cls.body if isinstance(n, (ast.AsyncFunctionDef, ast.FunctionDef))):
            for node in ast.walk(fn):
                if isinstance(node, ast.Attribute) and node.attr == "set_result":
                    owners.add(fn.name)

    assert owners == {"_finish", "stop"}
