"""Typed settings for cargo-tests.

Settings come from the ``[package.metadata.cargo-tests]`` table of the located
manifest and are then overridden by ``CARGO_TESTS_*`` environment variables.
"""

from __future__ import annotations

import json
import os
import shlex
from collections.abc import Mapping
from dataclasses import dataclass, fields
from functools import lru_cache
from importlib import resources
from typing import Any

from jsonschema import Draft202012Validator

from .contracts.error import ConfigError

ENV_PREFIX = "CARGO_TESTS_"
PROFILES = ("debug", "release")
REPORT_FAILURE_POLICIES = ("warn", "fail")


@lru_cache(maxsize=1)
def _schema_validator() -> Draft202012Validator:
    schema_resource = resources.files("cargo_tests.contracts") / "config_schema.json"
    with schema_resource.open(encoding="utf-8") as stream:
        return Draft202012Validator(json.load(stream))


def _parse_bool(key: str, raw: str) -> bool:
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"Invalid env override {key}={raw!r}", hint="Use true/false.")


@dataclass
class CoverageConfig:
    cargo: str = "cargo"
    llvm_profdata: str = "llvm-profdata"
    llvm_cov: str = "llvm-cov"
    profile: str = "debug"
    instrument_flag: str = "-C instrument-coverage"
    ignore_filename_regex: str = ".*/.cargo/registry"
    demangler: str = "rustfilt"
    use_color: bool = True
    report_failures: str = "warn"
    viewer: str | None = None

    @classmethod
    def load(
        cls,
        metadata: Mapping[str, Any] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CoverageConfig:
        cfg = cls.from_dict(metadata or {})
        cfg.apply_env_overrides(os.environ if env is None else env)
        cfg.validate()
        return cfg

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CoverageConfig:
        """Build a config from the manifest metadata table (kebab-case keys)."""

        if not isinstance(data, Mapping):
            raise ConfigError("[package.metadata.cargo-tests] must be a table")
        errors = sorted(_schema_validator().iter_errors(dict(data)), key=lambda err: list(err.path))
        if errors:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err.path) or '<table>'}: {err.message}"
                for err in errors
            )
            raise ConfigError(
                f"Invalid [package.metadata.cargo-tests]: {details}",
                hint="See the cargo-tests README for supported keys.",
            )
        return cls(**{key.replace("-", "_"): value for key, value in data.items()})

    def apply_env_overrides(self, env: Mapping[str, str]) -> None:
        for item in fields(self):
            key = ENV_PREFIX + item.name.upper()
            raw_value = env.get(key)
            if raw_value is None:
                continue
            value = _parse_bool(key, raw_value) if item.name == "use_color" else raw_value
            setattr(self, item.name, value)

    def validate(self) -> None:
        if self.profile not in PROFILES:
            raise ConfigError(f"profile must be one of {', '.join(PROFILES)}, got {self.profile!r}")
        if self.report_failures not in REPORT_FAILURE_POLICIES:
            raise ConfigError(
                "report_failures must be one of "
                f"{', '.join(REPORT_FAILURE_POLICIES)}, got {self.report_failures!r}"
            )
        for name in ("cargo", "llvm_profdata", "llvm_cov", "instrument_flag", "demangler"):
            if not getattr(self, name).strip():
                raise ConfigError(f"{name} must not be empty")
        if self.viewer is not None:
            try:
                viewer_argv = shlex.split(self.viewer)
            except ValueError as exc:
                raise ConfigError(f"viewer is not a valid command line: {exc}") from exc
            if not viewer_argv:
                raise ConfigError("viewer must not be empty when set")

    @property
    def strict_reports(self) -> bool:
        return self.report_failures == "fail"


DEFAULT_CONFIG = CoverageConfig()
