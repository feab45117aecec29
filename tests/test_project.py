from __future__ import annotations

from pathlib import Path

import pytest

from cargo_tests.contracts.error import (
    ManifestError,
    ManifestFormatError,
    ManifestReadError,
    MissingNameError,
    MissingPackageError,
    ProjectNotFoundError,
    ToolchainError,
)
from cargo_tests.project import executable_prefix, locate_manifest, parse_manifest, resolve_project
from tests.util.fake_tools import FakeRunner, write_manifest


def test_executable_prefix_examples() -> None:
    assert executable_prefix("my-crate") == "my_crate-"
    assert executable_prefix("demo") == "demo-"
    assert executable_prefix("a-b-c") == "a_b_c-"
    assert executable_prefix("already_snake") == "already_snake-"


def test_parse_manifest_resolves_root_and_prefix(tmp_path: Path) -> None:
    manifest = write_manifest(tmp_path / "crate", "demo-lib")
    location = parse_manifest(manifest)
    assert location.root == tmp_path / "crate"
    assert location.manifest == manifest
    assert location.package == "demo-lib"
    assert location.executable_prefix == "demo_lib-"
    assert location.metadata == {}


def test_location_paths(tmp_path: Path) -> None:
    location = parse_manifest(write_manifest(tmp_path, "demo-lib"))
    assert location.cov_dir == tmp_path / "cov"
    assert location.profdata == tmp_path / "cov" / "demo-lib.profdata"
    assert location.html_index == tmp_path / "cov" / "html" / "index.html"
    assert location.deps_dir() == tmp_path / "target" / "debug" / "deps"
    assert location.deps_dir("release") == tmp_path / "target" / "release" / "deps"
    pattern = str(location.profile_pattern)
    assert pattern.startswith(str(tmp_path / "cov"))
    assert "%p" in pattern
    assert pattern.endswith(".profraw")


def test_parse_manifest_reads_metadata_table(tmp_path: Path) -> None:
    extra = '\n[package.metadata.cargo-tests]\nprofile = "release"\n'
    location = parse_manifest(write_manifest(tmp_path, "demo", extra=extra))
    assert location.metadata == {"profile": "release"}


def test_missing_manifest_is_read_error(tmp_path: Path) -> None:
    with pytest.raises(ManifestReadError):
        parse_manifest(tmp_path / "Cargo.toml")


def test_non_utf8_manifest_is_read_error(tmp_path: Path) -> None:
    manifest = tmp_path / "Cargo.toml"
    manifest.write_bytes(b"[package]\nname = \"\xff\xfe\"\n")
    with pytest.raises(ManifestReadError):
        parse_manifest(manifest)


@pytest.mark.parametrize(
    ("content", "error"),
    [
        ("[package\nname = 'x'", ManifestFormatError),
        ("[workspace]\nmembers = ['a']\n", MissingPackageError),
        ("package = 'demo'\n", MissingPackageError),
        ("[package]\nversion = '0.1.0'\n", MissingNameError),
        ("[package]\nname = 3\n", MissingNameError),
    ],
)
def test_manifest_errors_are_named(tmp_path: Path, content: str, error: type[ManifestError]) -> None:
    manifest = tmp_path / "Cargo.toml"
    manifest.write_text(content, encoding="utf-8")
    with pytest.raises(error):
        parse_manifest(manifest)


def test_locate_manifest_parses_trimmed_stdout(fake_runner: FakeRunner, tmp_path: Path) -> None:
    fake_runner.locate(tmp_path / "Cargo.toml")
    assert locate_manifest() == tmp_path / "Cargo.toml"
    call = fake_runner.find("cargo locate-project")
    assert call.args == ["cargo", "locate-project", "--message-format", "plain"]
    assert call.capture_output is True


def test_locate_manifest_uses_configured_cargo(fake_runner: FakeRunner, tmp_path: Path) -> None:
    fake_runner.stdout["cargo-nightly"] = f"{tmp_path / 'Cargo.toml'}\n".encode()
    locate_manifest("cargo-nightly")
    assert fake_runner.calls[0].args[0] == "cargo-nightly"


def test_locate_manifest_failure(fake_runner: FakeRunner) -> None:
    fake_runner.returncodes["cargo locate-project"] = 101
    with pytest.raises(ProjectNotFoundError):
        locate_manifest()
    assert fake_runner.keys == ["cargo locate-project"]


def test_locate_manifest_rejects_invalid_utf8(fake_runner: FakeRunner) -> None:
    fake_runner.stdout["cargo locate-project"] = b"/tmp/\xff/Cargo.toml\n"
    with pytest.raises(ProjectNotFoundError):
        locate_manifest()


def test_locate_manifest_rejects_empty_output(fake_runner: FakeRunner) -> None:
    fake_runner.stdout["cargo locate-project"] = b"\n"
    with pytest.raises(ProjectNotFoundError):
        locate_manifest()


def test_locate_manifest_without_cargo() -> None:
    with pytest.raises(ToolchainError):
        locate_manifest("__no_such_cargo__")


def test_resolve_project_end_to_end(fake_runner: FakeRunner, tmp_path: Path) -> None:
    fake_runner.locate(write_manifest(tmp_path, "my-crate"))
    location = resolve_project()
    assert location.root == tmp_path
    assert location.executable_prefix == "my_crate-"
