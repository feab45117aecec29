#!/usr/bin/env python3
"""
app.py

Entry point for ``cargo tests``, a small proxy that adds llvm coverage to
``cargo test``:

    cargo tests <args>     run tests & generate cov report
    cargo tests all        runs clean && tests && report
    cargo tests clean      cleans up cov artifacts
    cargo tests report     open cov report

Logging is configured once per process from ``CARGO_TESTS_LOG_LEVEL``,
``CARGO_TESTS_LOG_JSON`` and ``CARGO_TESTS_LOG_FILE``. Settings are read from
``[package.metadata.cargo-tests]`` in the located Cargo.toml, with
``CARGO_TESTS_*`` environment overrides on top.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import sys
from collections.abc import Mapping
from logging.handlers import RotatingFileHandler

from cargo_tests import pipeline
from cargo_tests.cli.commands import CLIContext, dispatch
from cargo_tests.config import CoverageConfig
from cargo_tests.contracts.error import guard_cli
from cargo_tests.project import ProjectLocation, resolve_project

# --------------------------------------------------------------------
# Logging
# --------------------------------------------------------------------
logger = logging.getLogger("cargo_tests")

DEFAULT_LOG_LEVEL = "WARNING"
DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEFAULT_LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"
DEFAULT_LOG_MAX_BYTES = 5_000_000
DEFAULT_LOG_BACKUP_COUNT = 5


class JsonFormatter(logging.Formatter):
    """Render log records as JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, DEFAULT_LOG_DATEFMT),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(
    level: int | str = DEFAULT_LOG_LEVEL,
    use_json: bool = False,
    log_file: str | None = None,
    *,
    max_bytes: int = DEFAULT_LOG_MAX_BYTES,
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT,
) -> None:
    """Configure console (and optional rotating file) logging."""

    formatter: logging.Formatter
    if use_json:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(DEFAULT_LOG_FORMAT, DEFAULT_LOG_DATEFMT)

    for handler in list(logger.handlers):
        with contextlib.suppress(Exception):
            handler.close()
        logger.removeHandler(handler)

    logger.setLevel(level)

    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    if log_file:
        handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        handler.setFormatter(formatter)
        logger.addHandler(handler)


def configure_logging_from_env(env: Mapping[str, str]) -> None:
    raw_level = env.get("CARGO_TESTS_LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper()
    level = logging.getLevelName(raw_level)
    bad_level = not isinstance(level, int)
    use_json = env.get("CARGO_TESTS_LOG_JSON", "").strip().lower() in {"1", "true", "yes", "on"}
    configure_logging(
        logging.WARNING if bad_level else level,
        use_json,
        env.get("CARGO_TESTS_LOG_FILE") or None,
    )
    if bad_level:
        logger.warning("Ignoring unknown CARGO_TESTS_LOG_LEVEL %r", raw_level)


# --------------------------------------------------------------------
# CLI
# --------------------------------------------------------------------
def resolve_context() -> tuple[ProjectLocation, CoverageConfig]:
    """Locate the project, then load settings from its manifest."""

    bootstrap = CoverageConfig.load()
    location = resolve_project(bootstrap.cargo)
    config = CoverageConfig.load(location.metadata)
    logger.debug("found project %s at %s", location.package, location.root)
    return location, config


def build_context() -> CLIContext:
    return CLIContext(
        resolve_project=resolve_context,
        run_clean=pipeline.run_clean,
        run_tests=pipeline.run_tests,
        run_report=pipeline.run_report,
        print_fn=print,
        logger=logger,
        guard=guard_cli,
    )


def main(argv: list[str]) -> int:
    configure_logging_from_env(os.environ)
    return dispatch(argv, build_context())


def console_main() -> None:
    """Entry point for console_scripts."""

    try:
        raise SystemExit(main(sys.argv[1:]))
    except SystemExit:
        raise
    except Exception as e:  # noqa: BLE001
        logger.exception("Fatal error: %s", e)
        raise SystemExit(4) from e


__all__ = [
    "JsonFormatter",
    "build_context",
    "configure_logging",
    "configure_logging_from_env",
    "console_main",
    "logger",
    "main",
    "resolve_context",
]


if __name__ == "__main__":
    console_main()
