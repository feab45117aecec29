"""Contract helpers for the cargo-tests CLI."""

from .error import (
    ConfigError,
    EnvelopeError,
    ErrorEnvelope,
    Exit,
    ManifestError,
    ManifestFormatError,
    ManifestReadError,
    MissingNameError,
    MissingPackageError,
    ProjectNotFoundError,
    StageFailedError,
    ToolchainError,
    WorkspaceIOError,
    die,
    guard_cli,
)

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
