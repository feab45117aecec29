from __future__ import annotations

import tempfile
from pathlib import Path

from hypothesis import given, strategies as st

from cargo_tests.config import CoverageConfig
from cargo_tests.pipeline import resolve_targets
from cargo_tests.project import executable_prefix, parse_manifest
from tests.util.fake_tools import write_deps, write_manifest

_SEGMENT = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789_", min_size=1, max_size=8)


def _package_names() -> st.SearchStrategy[str]:
    return st.lists(_SEGMENT, min_size=1, max_size=4).map("-".join)


def _hashes() -> st.SearchStrategy[str]:
    return st.text(alphabet="0123456789abcdef", min_size=4, max_size=16)


@given(_package_names())
def test_prefix_replaces_every_hyphen_and_appends_one(name: str) -> None:
    prefix = executable_prefix(name)
    assert prefix.endswith("-")
    body = prefix[:-1]
    assert "-" not in body
    assert body == name.replace("-", "_")
    assert len(prefix) == len(name) + 1


@given(_package_names(), st.lists(_hashes(), max_size=5, unique=True))
def test_target_list_matches_every_binary_and_skips_dep_info(name: str, hashes: list[str]) -> None:
    prefix = executable_prefix(name)
    binaries = [f"{prefix}{h}" for h in hashes]
    dep_info = [f"{b}.d" for b in binaries]
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        location = parse_manifest(write_manifest(root, name))
        deps = write_deps(root, [*binaries, *dep_info, "Unrelated-0000", "Unrelated-0000.d"])
        targets = resolve_targets(location, CoverageConfig())
    assert targets == sorted(deps / b for b in binaries)
