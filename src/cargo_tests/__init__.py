"""Coverage proxy for ``cargo test`` built on llvm-profdata and llvm-cov."""

from . import cli, config, contracts, pipeline, project

__version__ = "0.1.0"

__all__ = [
    "cli",
    "config",
    "contracts",
    "pipeline",
    "project",
]
