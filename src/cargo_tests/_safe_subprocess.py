"""Safe wrappers for standard-library subprocess functions."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess  # noqa: S404  # nosec B404 - subprocess usage governed via validation helpers
from collections.abc import Mapping, MutableMapping, Sequence
from typing import Any

logger = logging.getLogger(__name__)

TIMEOUT_ENV = "CARGO_TESTS_SUBPROC_TIMEOUT"


class SubprocessError(RuntimeError):
    """Raised when a subprocess call times out or exits with a failure status."""


class SubprocessLaunchError(SubprocessError):
    """Raised when the executable cannot be started at all."""


class TimeoutSettingError(SubprocessError):
    """Raised when the default timeout from the environment is not a positive number."""


def default_timeout() -> float | None:
    raw = os.getenv(TIMEOUT_ENV, "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise TimeoutSettingError(f"{TIMEOUT_ENV} must be a number of seconds, got {raw!r}") from exc
    if not value > 0:
        raise TimeoutSettingError(f"{TIMEOUT_ENV} must be positive, got {raw!r}")
    return value


def _merge_env(env: Mapping[str, str] | None) -> MutableMapping[str, str] | None:
    if env is None:
        return None
    merged: dict[str, str] = dict(os.environ)
    merged.update(env)
    return merged


def _validate_args(args: Sequence[str]) -> list[str]:
    if not isinstance(args, list | tuple) or not args:
        raise ValueError("args must be a non-empty sequence of strings")
    if not all(isinstance(arg, str) for arg in args):
        raise ValueError("all subprocess arguments must be strings")
    return list(args)


def format_command(args: Sequence[str]) -> str:
    return " ".join(shlex.quote(part) for part in args)


def safe_run(
    args: Sequence[str],
    *,
    cwd: str | None = None,
    timeout: float | None = None,
    capture_output: bool = False,
    check: bool = False,
    env: Mapping[str, str] | None = None,
    text: bool = False,
) -> subprocess.CompletedProcess[Any]:
    """Run a subprocess and wait for it.

    Streams are inherited from the parent unless ``capture_output`` is set.
    ``env`` is layered over the current environment rather than replacing it.
    No timeout applies unless one is passed or ``CARGO_TESTS_SUBPROC_TIMEOUT``
    is set.
    """

    command = _validate_args(args)
    effective_timeout = default_timeout() if timeout is None else float(timeout)
    cmd_repr = format_command(command)
    logger.debug("Executing command: %s (timeout=%s)", cmd_repr, effective_timeout)
    try:
        completed = subprocess.run(  # noqa: S603  # nosec B603 - command validated via _validate_args
            command,
            cwd=cwd,
            env=_merge_env(env),
            capture_output=capture_output,
            text=text,
            timeout=effective_timeout,
            check=check,
        )
    except subprocess.TimeoutExpired as exc:
        logger.warning("Command timed out after %.1fs: %s", effective_timeout, cmd_repr)
        raise SubprocessError(
            f"Command timed out after {effective_timeout:.1f}s: {cmd_repr}"
        ) from exc
    except subprocess.CalledProcessError as exc:
        logger.warning("Command failed (exit %s): %s", exc.returncode, cmd_repr)
        raise SubprocessError(f"Command failed (exit {exc.returncode}): {cmd_repr}") from exc
    except OSError as exc:
        logger.error("Failed to launch %s: %s", cmd_repr, exc)
        raise SubprocessLaunchError(f"Failed to launch {command[0]!r}: {exc}") from exc

    if completed.returncode != 0:
        logger.debug("Command exited with code %s: %s", completed.returncode, cmd_repr)
    else:
        logger.debug("Command succeeded: %s", cmd_repr)
    return completed


__all__ = [
    "SubprocessError",
    "SubprocessLaunchError",
    "TIMEOUT_ENV",
    "TimeoutSettingError",
    "default_timeout",
    "format_command",
    "safe_run",
]
