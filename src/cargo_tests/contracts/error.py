"""Error envelope helpers and exit codes for the cargo-tests CLI."""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum
from functools import wraps
from typing import Any, NoReturn, TypeVar

from .._safe_subprocess import SubprocessError, TimeoutSettingError

logger = logging.getLogger(__name__)
T = TypeVar("T")


class Exit(IntEnum):
    """Stable exit codes shared across the CLI."""

    OK = 0
    NO_PROJECT = 1
    BAD_MANIFEST = 2
    TOOLCHAIN = 3
    STAGE_FAILED = 4
    IO = 5


@dataclass(slots=True)
class ErrorEnvelope:
    """Machine-readable error contract for CLI failures."""

    error: str
    detail: str
    hint: str | None = None

    def to_json(self) -> str:
        payload = {"error": self.error, "detail": self.detail}
        if self.hint:
            payload["hint"] = self.hint
        return json.dumps(payload, ensure_ascii=False)


def die(code: Exit, kind: str, detail: str, hint: str | None = None) -> NoReturn:
    """Emit standardized JSON error on stderr and exit with a stable code."""

    env = ErrorEnvelope(error=kind, detail=detail, hint=hint)
    sys.stderr.write(env.to_json() + "\n")
    try:
        sys.stderr.flush()
    finally:
        sys.exit(int(code))


class EnvelopeError(Exception):
    """Base exception that carries an optional hint for the error envelope."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ProjectNotFoundError(EnvelopeError):
    """Raised when cargo cannot locate an enclosing project."""


class ManifestError(EnvelopeError):
    """Base class for Cargo.toml problems."""


class ManifestReadError(ManifestError):
    """The manifest could not be read as UTF-8 text."""


class ManifestFormatError(ManifestError):
    """The manifest is not a TOML document."""


class MissingPackageError(ManifestError):
    """The manifest has no ``[package]`` table."""


class MissingNameError(ManifestError):
    """The ``[package]`` table has no ``name`` string."""


class ConfigError(EnvelopeError):
    """Raised for invalid cargo-tests settings (metadata table or env overrides)."""


class ToolchainError(EnvelopeError):
    """Raised when an external tool cannot be launched or the viewer fails."""


class StageFailedError(EnvelopeError):
    """Raised when a pipeline stage aborts (tests, merge, strict reports)."""


class WorkspaceIOError(EnvelopeError):
    """Raised for filesystem failures in the coverage workspace or target dir."""


_EXCEPTION_ORDER: tuple[tuple[type[EnvelopeError], Exit, str], ...] = (
    (ProjectNotFoundError, Exit.NO_PROJECT, "ProjectNotFound"),
    (ManifestError, Exit.BAD_MANIFEST, "BadManifest"),
    (ConfigError, Exit.BAD_MANIFEST, "BadConfig"),
    (ToolchainError, Exit.TOOLCHAIN, "Toolchain"),
    (StageFailedError, Exit.STAGE_FAILED, "StageFailed"),
    (WorkspaceIOError, Exit.IO, "IO"),
)


def guard_cli(fn: Callable[..., T]) -> Callable[..., T]:
    """Decorate a CLI handler to enforce exit codes and error envelopes."""

    @wraps(fn)
    def _wrapped(*args: Any, **kwargs: Any) -> T:
        try:
            return fn(*args, **kwargs)
        except EnvelopeError as exc:
            for exc_type, exit_code, label in _EXCEPTION_ORDER:
                if isinstance(exc, exc_type):
                    die(exit_code, label, str(exc), hint=exc.hint)
            die(Exit.STAGE_FAILED, "UnhandledEnvelope", str(exc), hint=exc.hint)
        except TimeoutSettingError as exc:
            die(Exit.BAD_MANIFEST, "BadConfig", str(exc))
        except SubprocessError as exc:
            die(Exit.TOOLCHAIN, "Subprocess", str(exc))
        except Exception as exc:  # pragma: no cover - last resort
            logger.exception("Unhandled CLI exception")
            die(Exit.STAGE_FAILED, "Unhandled", f"{type(exc).__name__}: {exc}")

    return _wrapped


__all__ = [
    "Exit",
    "ErrorEnvelope",
    "EnvelopeError",
    "ProjectNotFoundError",
    "ManifestError",
    "ManifestReadError",
    "ManifestFormatError",
    "MissingPackageError",
    "MissingNameError",
    "ConfigError",
    "ToolchainError",
    "StageFailedError",
    "WorkspaceIOError",
    "guard_cli",
    "die",
]
