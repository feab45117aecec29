"""Subcommand table and dispatch for cargo-tests."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from cargo_tests.config import CoverageConfig
from cargo_tests.contracts.error import Exit
from cargo_tests.project import ProjectLocation

# cargo passes the subcommand name as the first argument to `cargo-tests`
WRAPPER_TOKEN = "tests"

USAGE = """\
cargo tests
description: generate llvm-cov reports when testing
commands:
    cargo tests <args>: run tests & generate cov report
    cargo tests all: runs clean && tests && report
    cargo tests clean: cleans up cov artifacts
    cargo tests report: open cov report
    cargo tests help: show this message
environment:
    CARGO_TESTS_LOG_LEVEL        log threshold (default: WARNING)
    CARGO_TESTS_LOG_JSON         emit logs as JSON when true
    CARGO_TESTS_LOG_FILE         also log to this file (rotating)
    CARGO_TESTS_SUBPROC_TIMEOUT  seconds before any tool is killed (default: none)
    CARGO_TESTS_<SETTING>        override a [package.metadata.cargo-tests] key,
                                 e.g. CARGO_TESTS_PROFILE=release"""

Handler = Callable[[list[str]], int]


@dataclass(frozen=True)
class CLIContext:
    """Runtime hooks supplied by the top-level CLI entrypoint."""

    resolve_project: Callable[[], tuple[ProjectLocation, CoverageConfig]]
    run_clean: Callable[[ProjectLocation], None]
    run_tests: Callable[[ProjectLocation, Sequence[str], CoverageConfig], Any]
    run_report: Callable[..., Any]
    print_fn: Callable[[str], None]
    logger: logging.Logger
    guard: Callable[[Handler], Handler]


def split_argv(argv: Sequence[str]) -> tuple[str | None, list[str]]:
    """Drop the optional wrapper token and split off the subcommand token."""

    args = list(argv)
    if args and args[0] == WRAPPER_TOKEN:
        args = args[1:]
    if not args:
        return None, []
    return args[0], args[1:]


def run_help(ctx: CLIContext) -> int:
    ctx.print_fn(USAGE)
    return int(Exit.OK)


def register_commands(ctx: CLIContext) -> dict[str, Handler]:
    """Return guarded handlers keyed by subcommand token."""

    def _all(args: list[str]) -> int:
        location, config = ctx.resolve_project()
        ctx.run_clean(location)
        coverage = ctx.run_tests(location, args, config)
        ctx.run_report(location, args, config, coverage)
        return int(Exit.OK)

    def _report(args: list[str]) -> int:
        location, config = ctx.resolve_project()
        ctx.run_report(location, args, config)
        return int(Exit.OK)

    def _clean(args: list[str]) -> int:
        del args
        location, _ = ctx.resolve_project()
        ctx.run_clean(location)
        return int(Exit.OK)

    def _help(args: list[str]) -> int:
        del args
        return run_help(ctx)

    handlers: dict[str, Handler] = {
        "all": _all,
        "report": _report,
        "clean": _clean,
        "help": _help,
    }
    return {name: ctx.guard(handler) for name, handler in handlers.items()}


def tests_handler(ctx: CLIContext) -> Handler:
    def _tests(args: list[str]) -> int:
        location, config = ctx.resolve_project()
        ctx.run_tests(location, args, config)
        return int(Exit.OK)

    return ctx.guard(_tests)


def dispatch(argv: Sequence[str], ctx: CLIContext) -> int:
    """Route ``argv`` (without the program name) to a stage sequence."""

    token, rest = split_argv(argv)
    handlers = register_commands(ctx)
    if token is not None and token in handlers:
        ctx.logger.debug("dispatching %s", token)
        return handlers[token](rest)
    passthrough = [] if token is None else [token, *rest]
    ctx.logger.debug("dispatching tests with %s", passthrough)
    return tests_handler(ctx)(passthrough)


__all__ = [
    "CLIContext",
    "USAGE",
    "WRAPPER_TOKEN",
    "dispatch",
    "register_commands",
    "run_help",
    "split_argv",
    "tests_handler",
]
