#!/usr/bin/env python3
"""Fail-fast guard against unsafe subprocess patterns."""

from __future__ import annotations

import re
import sys
from collections.abc import Sequence
from pathlib import Path

ROOTS = ("src", "tools")
ALLOW_FILES = {
    "src/cargo_tests/_safe_subprocess.py",
}
PATTERN_SHELL_TRUE = re.compile(r"subprocess\.\w+\([^)]*shell\s*=\s*True", re.IGNORECASE | re.DOTALL)
PATTERN_STRING_ARGS = re.compile(r"subprocess\.(run|Popen|call|check_call|check_output)\(\s*f?[\"']", re.DOTALL)
PATTERN_DIRECT_CALL = re.compile(r"\bsubprocess\.(run|Popen|call|check_call|check_output)\(")
PATTERN_OS_SYSTEM = re.compile(r"\bos\.system\(")


def _should_skip(rel: str) -> bool:
    if rel in ALLOW_FILES:
        return True
    return rel.startswith("tests/") or "/tests/" in rel


def _check_file(path: Path, rel: str) -> list[str]:
    try:
        text = path.read_text(encoding="utf-8", errors="ignore")
    except OSError:
        return []
    hits: list[str] = []
    if PATTERN_SHELL_TRUE.search(text):
        hits.append("shell=True")
    if PATTERN_STRING_ARGS.search(text):
        hits.append("string-command")
    elif PATTERN_DIRECT_CALL.search(text):
        hits.append("direct-subprocess")
    if PATTERN_OS_SYSTEM.search(text):
        hits.append("os.system")
    return hits


def scan(base: Path) -> list[tuple[str, list[str]]]:
    failures: list[tuple[str, list[str]]] = []
    for root in ROOTS:
        root_path = base / root
        if not root_path.exists():
            continue
        for file_path in sorted(root_path.rglob("*.py")):
            rel = file_path.relative_to(base).as_posix()
            if _should_skip(rel) or rel == "tools/check_subprocess_safety.py":
                continue
            issues = _check_file(file_path, rel)
            if issues:
                failures.append((rel, issues))
    return failures


def main(argv: Sequence[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    base = Path(args[0]) if args else Path.cwd()
    failures = scan(base)
    if failures:
        print("❌ Unsafe subprocess usage detected:")
        for rel, issues in failures:
            print(f"  - {rel}: {', '.join(issues)}")
        print("Use cargo_tests._safe_subprocess.safe_run and avoid shell=True.")
        return 2
    print("✅ Subprocess safety checks passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
