"""Locate the enclosing Cargo project and derive the test executable prefix."""

from __future__ import annotations

import logging
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ._safe_subprocess import SubprocessLaunchError, safe_run
from .contracts.error import (
    ManifestFormatError,
    ManifestReadError,
    MissingNameError,
    MissingPackageError,
    ProjectNotFoundError,
    ToolchainError,
)

logger = logging.getLogger(__name__)

COV_DIRNAME = "cov"
HTML_DIRNAME = "html"
METADATA_KEY = "cargo-tests"


def executable_prefix(package: str) -> str:
    """Return the file-name prefix cargo gives test binaries of ``package``."""

    return package.replace("-", "_") + "-"


@dataclass(frozen=True)
class ProjectLocation:
    """Where a project lives and how its compiled test binaries are named."""

    manifest: Path
    root: Path
    package: str
    executable_prefix: str
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @property
    def cov_dir(self) -> Path:
        return self.root / COV_DIRNAME

    @property
    def profdata(self) -> Path:
        return self.cov_dir / f"{self.package}.profdata"

    @property
    def profile_pattern(self) -> Path:
        # %p: pid of the writing process, %m: binary signature
        return self.cov_dir / f"{self.package}-%p-%m.profraw"

    @property
    def html_dir(self) -> Path:
        return self.cov_dir / HTML_DIRNAME

    @property
    def html_index(self) -> Path:
        return self.html_dir / "index.html"

    def deps_dir(self, profile: str = "debug") -> Path:
        return self.root / "target" / profile / "deps"


def locate_manifest(cargo: str = "cargo") -> Path:
    """Ask cargo for the manifest path of the project enclosing the cwd."""

    try:
        proc = safe_run(
            [cargo, "locate-project", "--message-format", "plain"],
            capture_output=True,
        )
    except SubprocessLaunchError as exc:
        raise ToolchainError(str(exc), hint="Is cargo installed and on PATH?") from exc
    if proc.returncode != 0:
        stderr = (proc.stderr or b"").decode("utf-8", errors="replace").strip()
        logger.error("failed to locate project")
        raise ProjectNotFoundError(
            stderr or f"{cargo} locate-project exited with {proc.returncode}",
            hint="Run cargo-tests from inside a Cargo project.",
        )
    try:
        raw = proc.stdout.decode("utf-8")
    except UnicodeDecodeError as exc:
        logger.error("failed to locate project")
        raise ProjectNotFoundError(f"{cargo} locate-project printed invalid UTF-8") from exc
    manifest = raw.strip()
    if not manifest:
        raise ProjectNotFoundError(f"{cargo} locate-project printed no manifest path")
    logger.debug("found manifest: %s", manifest)
    return Path(manifest)


def parse_manifest(path: Path) -> ProjectLocation:
    """Read ``Cargo.toml`` and resolve the project root and executable prefix."""

    logger.debug("parsing %s", path)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestReadError(f"Failed to read {path}: {exc}") from exc
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ManifestFormatError(f"Invalid TOML in {path}: {exc}") from exc

    package = data.get("package")
    if not isinstance(package, dict):
        raise MissingPackageError(
            f"No [package] table in {path}",
            hint="Virtual workspace manifests are not supported.",
        )
    name = package.get("name")
    if not isinstance(name, str) or not name:
        raise MissingNameError(f"No package.name in {path}")

    metadata = package.get("metadata", {})
    settings = metadata.get(METADATA_KEY, {}) if isinstance(metadata, dict) else {}
    return ProjectLocation(
        manifest=path,
        root=path.parent,
        package=name,
        executable_prefix=executable_prefix(name),
        metadata=settings,
    )


def resolve_project(cargo: str = "cargo") -> ProjectLocation:
    return parse_manifest(locate_manifest(cargo))


__all__ = [
    "ProjectLocation",
    "executable_prefix",
    "locate_manifest",
    "parse_manifest",
    "resolve_project",
]
