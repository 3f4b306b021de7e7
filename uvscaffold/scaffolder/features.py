"""Static catalog of feature modules.

A feature is a declarative record: the directories and files it adds to the
layout, the manifest dependencies and configuration blocks it declares, and
the features it builds on.  Paths are written with placeholders such as
``{source}`` and ``{tests}`` that the planner resolves against the active
:class:`~uvscaffold.config.LayoutProfile`, so one catalog serves every layout.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Iterable, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field

from uvscaffold.errors import ConfigurationError, DependencyCycleError

BASE_FEATURE = "base"


class WritePolicy(str, Enum):
    """How a generated file treats content already on disk."""

    CREATE_IF_ABSENT = "create-if-absent"
    ALWAYS_OVERWRITE = "always-overwrite"


class ManifestRole(str, Enum):
    """Manifest a configuration block belongs to.

    ``SCRIPTS`` is resolved by the planner to whichever manifest the layout
    declares entry points in.
    """

    TOOLING = "tooling"
    PACKAGE = "package"
    SCRIPTS = "scripts"


class FileTemplate(BaseModel):
    """A file a feature contributes.  ``template=None`` means an empty file."""

    model_config = ConfigDict(frozen=True)

    path: str
    template: str | None = None
    policy: WritePolicy = WritePolicy.CREATE_IF_ABSENT


class Dependency(BaseModel):
    """A requirement string plus the group it is declared in."""

    model_config = ConfigDict(frozen=True)

    requirement: str
    group: Literal["runtime", "dev"] = "runtime"


class ConfigBlock(BaseModel):
    """A TOML table appended once to a manifest.  ``body`` is a Jinja2 string."""

    model_config = ConfigDict(frozen=True)

    manifest: ManifestRole
    table: str
    body: str


class Feature(BaseModel):
    """A named, optional unit of scaffolding."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    description: str = ""
    command: str | None = Field(default=None, description="CLI command that activates the feature")
    requires: tuple[str, ...] = ()
    directories: tuple[str, ...] = ()
    files: tuple[FileTemplate, ...] = ()
    dependencies: tuple[Dependency, ...] = ()
    blocks: tuple[ConfigBlock, ...] = ()
    marks_packages: bool = Field(
        default=False,
        description="Add an __init__.py to every planned directory under the source tree",
    )
    fetches_archive: bool = Field(
        default=False, description="Populate the web-app directory from a downloaded archive"
    )


class FeatureRegistry:
    """Immutable mapping of feature identifier to :class:`Feature`."""

    def __init__(self, features: Iterable[Feature]) -> None:
        catalog: dict[str, Feature] = {}
        for feature in features:
            if feature.identifier in catalog:
                raise ConfigurationError(f"Duplicate feature identifier: {feature.identifier}")
            catalog[feature.identifier] = feature
        self._features: Mapping[str, Feature] = MappingProxyType(catalog)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._features

    def __iter__(self):
        return iter(self._features.values())

    def __len__(self) -> int:
        return len(self._features)

    def get(self, identifier: str) -> Feature:
        try:
            return self._features[identifier]
        except KeyError:
            raise ConfigurationError(f"Unknown feature: {identifier}") from None

    def identifiers(self) -> list[str]:
        return list(self._features)

    def by_command(self, command: str) -> Feature | None:
        """Return the feature a CLI command activates, if any."""
        for feature in self._features.values():
            if feature.command == command:
                return feature
        return None

    def unknown(self, identifiers: Iterable[str]) -> list[str]:
        """Return the identifiers not present in the catalog, in input order."""
        seen: set[str] = set()
        missing: list[str] = []
        for identifier in identifiers:
            if identifier not in self._features and identifier not in seen:
                missing.append(identifier)
                seen.add(identifier)
        return missing

    def resolve(self, identifiers: Iterable[str]) -> list[Feature]:
        """Return the prerequisite closure of *identifiers*, prerequisites first.

        ``base`` is always part of the result when the catalog defines it.

        Raises:
            ConfigurationError: A requested or prerequisite feature is unknown.
            DependencyCycleError: Prerequisites form a cycle.
        """
        requested = list(identifiers)
        missing = self.unknown(requested)
        if missing:
            raise ConfigurationError(f"Unknown feature(s): {', '.join(missing)}")

        if BASE_FEATURE in self._features:
            requested.insert(0, BASE_FEATURE)

        ordered: list[Feature] = []
        done: set[str] = set()
        stack: list[str] = []

        def visit(identifier: str) -> None:
            if identifier in done:
                return
            if identifier in stack:
                cycle = stack[stack.index(identifier):] + [identifier]
                raise DependencyCycleError(cycle)
            if identifier not in self._features:
                raise ConfigurationError(
                    f"Feature {stack[-1]!r} requires unknown feature {identifier!r}"
                )
            stack.append(identifier)
            for prerequisite in self._features[identifier].requires:
                visit(prerequisite)
            stack.pop()
            done.add(identifier)
            ordered.append(self._features[identifier])

        for identifier in requested:
            visit(identifier)
        return ordered

    def validate(self) -> None:
        """Resolve every feature once so a malformed catalog fails early."""
        for identifier in self._features:
            self.resolve([identifier])


# ---------------------------------------------------------------------------
# Default catalog
# ---------------------------------------------------------------------------

_RUFF_BLOCK = "line-length = 88"
_RUFF_LINT_BLOCK = 'select = ["E", "F", "W", "I"]\nignore = ["E203", "E501"]'
_SCRIPTS_BLOCK = '{{ script_name }} = "{{ entry_module }}"'


def default_features() -> list[Feature]:
    """Return the built-in feature definitions."""
    return [
        Feature(
            identifier=BASE_FEATURE,
            description="Source tree, placeholder test, ignore/env files and manifests",
            command="setup",
            directories=("{source}", "{tests}", "{data}", "{docs}", "{config}"),
            files=(
                FileTemplate(path="{source}/__init__.py"),
                FileTemplate(path="{source}/main.py", template="main.py.j2"),
                FileTemplate(path="{tests}/test_placeholder.py", template="test_placeholder.py.j2"),
                FileTemplate(
                    path=".gitignore",
                    template="gitignore.j2",
                    policy=WritePolicy.ALWAYS_OVERWRITE,
                ),
                FileTemplate(path=".env", template="env.j2"),
                FileTemplate(path="README.md", template="README.md.j2"),
            ),
            dependencies=(
                Dependency(requirement="ruff", group="dev"),
                Dependency(requirement="black", group="dev"),
                Dependency(requirement="pytest", group="dev"),
                Dependency(requirement="pytest-cov", group="dev"),
                Dependency(requirement="pydantic"),
                Dependency(requirement="loguru"),
            ),
            blocks=(
                ConfigBlock(manifest=ManifestRole.TOOLING, table="tool.ruff", body=_RUFF_BLOCK),
                ConfigBlock(
                    manifest=ManifestRole.TOOLING, table="tool.ruff.lint", body=_RUFF_LINT_BLOCK
                ),
                ConfigBlock(
                    manifest=ManifestRole.SCRIPTS, table="project.scripts", body=_SCRIPTS_BLOCK
                ),
            ),
        ),
        Feature(
            identifier="package-init",
            description="Package-initializer markers for every source directory",
            command="create-init",
            requires=(BASE_FEATURE,),
            marks_packages=True,
        ),
        Feature(
            identifier="notebook",
            description="Jupyter notebook support",
            command="add-notebook",
            requires=(BASE_FEATURE,),
            directories=("{notebooks}",),
            files=(
                FileTemplate(
                    path="{notebooks}/exploration.ipynb", template="exploration.ipynb.j2"
                ),
            ),
            dependencies=(Dependency(requirement="ipykernel", group="dev"),),
        ),
        Feature(
            identifier="ml",
            description="Machine-learning libraries",
            command="add-ml",
            requires=(BASE_FEATURE,),
            dependencies=(Dependency(requirement="torch"), Dependency(requirement="numpy")),
        ),
        Feature(
            identifier="llm",
            description="LLM libraries and a prompts package",
            command="add-llm",
            requires=(BASE_FEATURE, "package-init"),
            directories=("{source}/prompts",),
            files=(FileTemplate(path="{source}/prompts/system.md", template="system_prompt.md.j2"),),
            dependencies=(
                Dependency(requirement="langchain"),
                Dependency(requirement="langchain-community"),
            ),
        ),
        Feature(
            identifier="graph",
            description="Graph database and visualisation libraries",
            command="add-graph",
            requires=(BASE_FEATURE,),
            dependencies=(
                Dependency(requirement="yfiles-jupyter-graphs"),
                Dependency(requirement="neomodel"),
            ),
        ),
        Feature(
            identifier="web-app",
            description="Prebuilt FastAPI application skeleton",
            command="add-fastapi",
            requires=(BASE_FEATURE,),
            directories=("{web_app}",),
            dependencies=(Dependency(requirement="fastapi"), Dependency(requirement="uvicorn")),
            fetches_archive=True,
        ),
    ]


def build_default_registry() -> FeatureRegistry:
    """Build the registry of built-in features and validate it."""
    registry = FeatureRegistry(default_features())
    registry.validate()
    return registry


DEFAULT_REGISTRY = build_default_registry()
