import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
if SRC.exists():
    sys.path.insert(0, str(SRC))

# Register shared Hypothesis profiles for deterministic CI runs and fast local loops.
from tests.util import hypothesis_profiles  # noqa: E402,F401  pylint: disable=unused-import
from tests.util.fake_tools import FakeRunner, write_manifest  # noqa: E402

from cargo_tests import pipeline, project  # noqa: E402
from cargo_tests.project import ProjectLocation, parse_manifest  # noqa: E402

CONFIG_ENV_VARS = (
    "CARGO_TESTS_CARGO",
    "CARGO_TESTS_LLVM_PROFDATA",
    "CARGO_TESTS_LLVM_COV",
    "CARGO_TESTS_PROFILE",
    "CARGO_TESTS_INSTRUMENT_FLAG",
    "CARGO_TESTS_IGNORE_FILENAME_REGEX",
    "CARGO_TESTS_DEMANGLER",
    "CARGO_TESTS_USE_COLOR",
    "CARGO_TESTS_REPORT_FAILURES",
    "CARGO_TESTS_VIEWER",
    "CARGO_TESTS_LOG_LEVEL",
    "CARGO_TESTS_LOG_JSON",
    "CARGO_TESTS_LOG_FILE",
    "RUSTFLAGS",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer settings from leaking into config and pipeline tests."""

    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def location(tmp_path: Path) -> ProjectLocation:
    """A parsed `demo-lib` project rooted in a temporary directory."""

    return parse_manifest(write_manifest(tmp_path, "demo-lib"))


@pytest.fixture()
def fake_runner(monkeypatch: pytest.MonkeyPatch) -> FakeRunner:
    """Replace every external tool invocation with a recording fake."""

    runner = FakeRunner()
    monkeypatch.setattr(pipeline, "safe_run", runner)
    monkeypatch.setattr(project, "safe_run", runner)
    return runner
