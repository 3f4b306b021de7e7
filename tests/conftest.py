"""Shared pytest fixtures for the uvscaffold test suite.

Provides reusable fixtures for:
- Temporary project roots
- Flat and nested layout configurations
- A recording stand-in for the external process runner
- A small zip archive shaped like a GitHub branch download
"""

from __future__ import annotations

import io
import zipfile
from pathlib import Path
from typing import Any

import pytest

from uvscaffold.config import Config
from uvscaffold.pipeline import Pipeline


# ---------------------------------------------------------------------------
# Paths & configuration
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_project_dir(tmp_path: Path) -> Path:
    """Empty, pre-existing project root."""
    project_dir = tmp_path / "demo-app"
    project_dir.mkdir()
    yield project_dir


@pytest.fixture
def config(tmp_project_dir: Path) -> Config:
    """Flat-layout configuration rooted at ``tmp_project_dir``."""
    return Config(root=tmp_project_dir, project_name="demo-app", python_version="3.12")


@pytest.fixture
def nested_config(tmp_project_dir: Path) -> Config:
    """Nested-layout configuration rooted at ``tmp_project_dir``."""
    return Config(
        root=tmp_project_dir,
        project_name="demo-app",
        python_version="3.12",
        layout="nested",
    )


# ---------------------------------------------------------------------------
# External process runner
# ---------------------------------------------------------------------------

class FakeRunner:
    """Records every command and answers with a configured exit code.

    ``failures`` maps an argv prefix (tuple) to the exit code returned for
    any command starting with it; everything else succeeds.
    """

    def __init__(self, failures: dict[tuple[str, ...], int] | None = None) -> None:
        self.failures = failures or {}
        self.calls: list[dict[str, Any]] = []

    def __call__(self, cmd, cwd=None, timeout=120, capture=True, env=None):
        argv = [str(part) for part in cmd]
        self.calls.append({"argv": argv, "cwd": cwd, "timeout": timeout, "capture": capture})
        for prefix, code in self.failures.items():
            if tuple(argv[: len(prefix)]) == prefix:
                return (code, "", "")
        return (0, "", "")

    @property
    def argvs(self) -> list[list[str]]:
        return [call["argv"] for call in self.calls]


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def pipeline(config: Config, fake_runner: FakeRunner) -> Pipeline:
    """Quiet pipeline over the flat config with the recording runner."""
    return Pipeline(config, runner=fake_runner, verbose=False)


# ---------------------------------------------------------------------------
# Archives
# ---------------------------------------------------------------------------

def make_zip(files: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def skeleton_zip() -> bytes:
    """Zip with a single top-level directory, like a GitHub branch archive."""
    return make_zip(
        {
            "template-master/README.md": "# skeleton\n",
            "template-master/backend/app/main.py": "app = None\n",
            "template-master/backend/pyproject.toml": "[project]\nname = 'backend'\n",
        }
    )


@pytest.fixture
def zip_factory():
    """Build zip payloads from ``{member name: content}`` mappings."""
    return make_zip


@pytest.fixture
def runner_factory():
    """Build a FakeRunner whose commands fail with the given exit codes."""
    return FakeRunner
