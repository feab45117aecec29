"""Coverage pipeline stages: clean, tests (+ merge + reports), report."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import sys
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ._safe_subprocess import SubprocessLaunchError, format_command, safe_run
from .config import DEFAULT_CONFIG, CoverageConfig
from .contracts.error import StageFailedError, ToolchainError, WorkspaceIOError
from .project import ProjectLocation

logger = logging.getLogger(__name__)

DEP_INFO_SUFFIX = ".d"


@dataclass
class CoverageRun:
    """What a successful tests stage produced."""

    profdata: Path
    targets: list[Path]
    failed_reports: list[str] = field(default_factory=list)

    @property
    def reports_ok(self) -> bool:
        return not self.failed_reports


def _run_tool(args: Sequence[str], *, env: dict[str, str] | None = None) -> int:
    try:
        return safe_run(args, env=env).returncode
    except SubprocessLaunchError as exc:
        raise ToolchainError(str(exc), hint=f"Is {args[0]} installed and on PATH?") from exc


def run_clean(location: ProjectLocation) -> None:
    """Remove the coverage workspace if it exists."""

    logger.debug("running clean")
    cov_dir = location.cov_dir
    if not cov_dir.exists():
        return
    try:
        shutil.rmtree(cov_dir)
    except OSError as exc:
        raise WorkspaceIOError(f"Unable to delete {cov_dir}: {exc}") from exc


def coverage_env(location: ProjectLocation, config: CoverageConfig = DEFAULT_CONFIG) -> dict[str, str]:
    existing = os.environ.get("RUSTFLAGS", "").strip()
    rustflags = f"{existing} {config.instrument_flag}" if existing else config.instrument_flag
    return {
        "RUSTFLAGS": rustflags,
        "LLVM_PROFILE_FILE": str(location.profile_pattern),
    }


def cargo_test_command(args: Sequence[str], config: CoverageConfig = DEFAULT_CONFIG) -> list[str]:
    command = [config.cargo, "test"]
    if config.profile == "release":
        command.append("--release")
    command.extend(args)
    return command


def merge_profiles(location: ProjectLocation, config: CoverageConfig = DEFAULT_CONFIG) -> Path:
    """Merge every raw fragment in the workspace into one sparse profdata file."""

    try:
        fragments = sorted(p for p in location.cov_dir.iterdir() if p.is_file())
    except OSError as exc:
        logger.error("no profile fragments found in %s", location.cov_dir)
        raise StageFailedError(f"No profile data written to {location.cov_dir}: {exc}") from exc
    if not fragments:
        logger.error("no profile fragments found in %s", location.cov_dir)
        raise StageFailedError(
            f"No profile data written to {location.cov_dir}",
            hint=f"Check that {config.instrument_flag!r} is supported by your toolchain.",
        )
    output = location.profdata
    command = [config.llvm_profdata, "merge", "-sparse", *map(str, fragments), "-o", str(output)]
    if _run_tool(command) != 0:
        logger.error("failed to generate profdata")
        raise StageFailedError(f"Profile merge failed: {format_command(command[:3])} ...")
    logger.debug("created profdata %s", output)
    return output


def resolve_targets(location: ProjectLocation, config: CoverageConfig = DEFAULT_CONFIG) -> list[Path]:
    """Return every compiled test binary for the package, sorted by path."""

    deps_dir = location.deps_dir(config.profile)
    logger.debug("looking for %s* in %s", location.executable_prefix, deps_dir)
    try:
        entries = list(deps_dir.iterdir())
    except OSError as exc:
        raise WorkspaceIOError(f"Unable to read {deps_dir}: {exc}") from exc
    targets = sorted(
        path
        for path in entries
        if path.is_file()
        and path.name.startswith(location.executable_prefix)
        and path.suffix != DEP_INFO_SUFFIX
    )
    if not targets:
        logger.warning("no test binaries matching %s* in %s", location.executable_prefix, deps_dir)
    return targets


def object_args(targets: Sequence[Path]) -> list[str]:
    args: list[str] = []
    for target in targets:
        args.extend(["--object", str(target)])
    return args


def report_commands(
    location: ProjectLocation,
    targets: Sequence[Path],
    config: CoverageConfig = DEFAULT_CONFIG,
) -> list[list[str]]:
    common: list[str] = []
    if config.use_color:
        common.append("--use-color")
    if config.ignore_filename_regex:
        common.extend(["--ignore-filename-regex", config.ignore_filename_regex])
    common.extend(["--instr-profile", str(location.profdata)])
    objects = object_args(targets)
    summary = [config.llvm_cov, "report", *common, *objects]
    html = [
        config.llvm_cov,
        "show",
        *common,
        "--show-instantiations",
        "--show-line-counts-or-regions",
        f"--Xdemangler={config.demangler}",
        "-format",
        "html",
        "-output-dir",
        str(location.html_dir),
        *objects,
    ]
    return [summary, html]


def generate_reports(
    location: ProjectLocation,
    targets: Sequence[Path],
    config: CoverageConfig = DEFAULT_CONFIG,
) -> list[str]:
    """Render the terminal summary and the HTML report.

    Returns the ``llvm-cov`` subcommands that failed. With
    ``report_failures = "fail"`` the first failure raises instead.
    """

    failed: list[str] = []
    for command in report_commands(location, targets, config):
        code = _run_tool(command)
        if code == 0:
            continue
        mode = command[1]
        if config.strict_reports:
            logger.error("llvm-cov %s failed with exit code %s", mode, code)
            raise StageFailedError(f"{config.llvm_cov} {mode} exited with {code}")
        logger.warning("llvm-cov %s failed with exit code %s", mode, code)
        failed.append(mode)
    return failed


def run_tests(
    location: ProjectLocation,
    args: Sequence[str],
    config: CoverageConfig = DEFAULT_CONFIG,
) -> CoverageRun:
    run_clean(location)

    logger.debug("running tests")
    if _run_tool(cargo_test_command(args, config), env=coverage_env(location, config)) != 0:
        logger.error("tests failed")
        raise StageFailedError("cargo test failed; skipping coverage report")
    logger.debug("finished running tests, updating profdata")

    profdata = merge_profiles(location, config)
    targets = resolve_targets(location, config)
    failed = generate_reports(location, targets, config)
    return CoverageRun(profdata=profdata, targets=targets, failed_reports=failed)


def viewer_command(path: Path, config: CoverageConfig = DEFAULT_CONFIG) -> list[str]:
    if config.viewer:
        return [*shlex.split(config.viewer), str(path)]
    if sys.platform == "darwin":
        return ["open", str(path)]
    if sys.platform == "win32":
        return ["cmd", "/c", "start", "", str(path)]
    return ["xdg-open", str(path)]


def run_report(
    location: ProjectLocation,
    args: Sequence[str],
    config: CoverageConfig = DEFAULT_CONFIG,
    coverage: CoverageRun | None = None,
) -> Path:
    """Open the HTML report, generating it first when missing.

    ``coverage`` is the result of a tests stage that already ran in this
    invocation; when given, the report is never regenerated.
    """

    index = location.html_index
    if coverage is None and not index.exists():
        logger.debug("no report found, running tests")
        coverage = run_tests(location, args, config)
    if coverage is not None and "show" in coverage.failed_reports:
        raise StageFailedError(
            f"{config.llvm_cov} show failed; no HTML report to open",
            hint="See the llvm-cov output above.",
        )
    if not index.exists():
        raise StageFailedError(f"{config.llvm_cov} show did not write {index}")
    command = viewer_command(index, config)
    code = _run_tool(command)
    if code != 0:
        raise ToolchainError(f"Failed to open {index} ({format_command(command)} exited with {code})")
    return index


__all__ = [
    "CoverageRun",
    "coverage_env",
    "generate_reports",
    "merge_profiles",
    "object_args",
    "report_commands",
    "resolve_targets",
    "run_clean",
    "run_report",
    "run_tests",
    "cargo_test_command",
    "viewer_command",
]
