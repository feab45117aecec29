"""Module entry-point shim for `python -m cargo_tests`."""

from __future__ import annotations

from cargo_tests.cli.app import console_main


def main() -> None:  # pragma: no cover - thin wrapper
    console_main()


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
