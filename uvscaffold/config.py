"""uvscaffold configuration.

Centralised, typed configuration for every command. All settings use
Pydantic v2 models so they can be validated at construction time and
serialised to/from JSON or environment variables without boiler-plate.
"""

from __future__ import annotations

import os
import re
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from uvscaffold.utils import python_identifier, slugify


class ManifestKind(str, Enum):
    """The two manifest classes a scaffolded project carries."""

    TOOLING = "tooling"
    PACKAGE = "package"


class LayoutProfile(BaseModel):
    """Where the source tree, tests and the inner package manifest live.

    The presets in :data:`LAYOUTS` capture the two known project shapes;
    every difference between them is a named field here rather than a
    branch in the scaffolding code.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    python_dir: str = Field(default="", description="Common parent of src/tests/notebooks ('' for the root)")
    source_dir: str = Field(default="src")
    tests_dir: str = Field(default="tests")
    notebooks_dir: str = Field(default="notebooks")
    package_manifest_dir: str = Field(
        default="src", description="Directory holding the inner package pyproject.toml"
    )
    scripts_manifest: ManifestKind = Field(
        default=ManifestKind.TOOLING,
        description="Which manifest gains the [project.scripts] entry point",
    )
    editable_install: bool = Field(
        default=False, description="Run `uv pip install -e` on the package manifest dir after setup"
    )
    entry_module: str = Field(default="main:main")


LAYOUTS: dict[str, LayoutProfile] = {
    "flat": LayoutProfile(name="flat"),
    "nested": LayoutProfile(
        name="nested",
        python_dir="python",
        source_dir="python/src",
        tests_dir="python/tests",
        notebooks_dir="python/notebooks",
        package_manifest_dir="python",
        scripts_manifest=ManifestKind.PACKAGE,
        editable_install=True,
        entry_module="src.main:main",
    ),
}

DEFAULT_ARCHIVE_URL = (
    "https://github.com/fastapi/full-stack-fastapi-template/archive/refs/heads/master.zip"
)

_VERSION_RE = re.compile(r"^\d+\.\d+(\.\d+)?$")


class Config(BaseModel):
    """Global uvscaffold configuration.

    Holds the project parameters bound into every content template plus the
    derived paths used by the planner, the cleaner and the command router.
    Instances are created once by the CLI entry point and passed through the
    rest of the system.
    """

    project_name: str = Field(default="default-project", min_length=1)
    python_version: str = Field(default="3.12")
    root: Path = Field(default=Path("."))
    layout: LayoutProfile = Field(default_factory=lambda: LAYOUTS["flat"])
    venv_dir: str = Field(default=".venv")
    data_dir: str = Field(default="data")
    docs_dir: str = Field(default="documents")
    config_dir: str = Field(default="config")
    web_app_dir: str = Field(default="app")
    web_app_archive_url: str = Field(default=DEFAULT_ARCHIVE_URL)
    package_manager: str = Field(default="uv")
    tool_timeout: int = Field(default=900, ge=1, description="Per-process timeout in seconds")
    download_timeout: int = Field(default=120, ge=1)

    @field_validator("python_version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        if not _VERSION_RE.match(value):
            raise ValueError(f"python_version must look like 3.12 or 3.12.1, got {value!r}")
        return value

    @field_validator("layout", mode="before")
    @classmethod
    def _resolve_layout(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return LAYOUTS[value]
            except KeyError:
                raise ValueError(
                    f"Unknown layout {value!r}; expected one of {', '.join(sorted(LAYOUTS))}"
                ) from None
        return value

    # ------------------------------------------------------------------
    # Derived names and paths (read-only properties)
    # ------------------------------------------------------------------

    @property
    def project_slug(self) -> str:
        """Distribution-style project name, e.g. ``my-project``."""
        return slugify(self.project_name) or "project"

    @property
    def package_project_name(self) -> str:
        """Name declared in the inner package manifest."""
        return f"{self.project_slug}-src"

    @property
    def script_name(self) -> str:
        return self.project_slug

    @property
    def tooling_manifest_path(self) -> Path:
        return self.root / "pyproject.toml"

    @property
    def package_manifest_path(self) -> Path:
        return self.root / self.layout.package_manifest_dir / "pyproject.toml"

    @property
    def venv_path(self) -> Path:
        return self.root / self.venv_dir

    def manifest_path(self, kind: ManifestKind) -> Path:
        """Return the on-disk location of the manifest of *kind*."""
        if kind is ManifestKind.TOOLING:
            return self.tooling_manifest_path
        return self.package_manifest_path

    def path_variables(self) -> dict[str, str]:
        """Placeholders usable in feature path templates (``{source}/prompts``)."""
        return {
            "source": self.layout.source_dir,
            "tests": self.layout.tests_dir,
            "notebooks": self.layout.notebooks_dir,
            "package": self.layout.package_manifest_dir,
            "data": self.data_dir,
            "docs": self.docs_dir,
            "config": self.config_dir,
            "web_app": self.web_app_dir,
        }

    def template_context(self) -> dict[str, Any]:
        """Build the Jinja2 context every content template is rendered with."""
        return {
            "project_name": self.project_name,
            "project_slug": self.project_slug,
            "package_name": python_identifier(self.project_name),
            "package_project_name": self.package_project_name,
            "python_version": self.python_version,
            "venv_dir": self.venv_dir,
            "script_name": self.script_name,
            "entry_module": self.layout.entry_module,
            "layout": self.layout.name,
            **self.path_variables(),
        }

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls, **overrides: Any) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            UVSCAFFOLD_PROJECT_NAME, UVSCAFFOLD_PYTHON_VERSION, UVSCAFFOLD_ROOT,
            UVSCAFFOLD_LAYOUT, UVSCAFFOLD_TOOL_TIMEOUT,
            UVSCAFFOLD_WEB_APP_ARCHIVE_URL.

        Keyword *overrides* whose value is not ``None`` take precedence over
        the environment.
        """
        kwargs: dict[str, Any] = {}
        env_map = {
            "UVSCAFFOLD_PROJECT_NAME": "project_name",
            "UVSCAFFOLD_PYTHON_VERSION": "python_version",
            "UVSCAFFOLD_ROOT": "root",
            "UVSCAFFOLD_LAYOUT": "layout",
            "UVSCAFFOLD_TOOL_TIMEOUT": "tool_timeout",
            "UVSCAFFOLD_WEB_APP_ARCHIVE_URL": "web_app_archive_url",
        }
        for env_name, field_name in env_map.items():
            if os.environ.get(env_name):
                kwargs[field_name] = os.environ[env_name]

        kwargs.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**kwargs)
