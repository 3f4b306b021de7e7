"""Pure computation of the layout a set of features requires.

:func:`build_plan` turns a configuration and a list of feature identifiers
into a :class:`PathPlan`: every directory to ensure, every file to
generate (with its write policy), and every manifest entry to declare.
Nothing here touches the filesystem or starts a process.
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Iterable, Sequence

from pydantic import BaseModel, ConfigDict

from uvscaffold.config import Config, ManifestKind
from uvscaffold.errors import ConfigurationError
from uvscaffold.scaffolder.features import (
    DEFAULT_REGISTRY,
    Feature,
    FeatureRegistry,
    ManifestRole,
    WritePolicy,
)
from uvscaffold.scaffolder.manifest import BlockEntry, DependencyEntry, ManifestEntry
from uvscaffold.scaffolder.templates import TemplateRenderer


class DirectoryNode(BaseModel):
    """A directory, relative to the project root, that must exist."""

    model_config = ConfigDict(frozen=True)

    path: str

    @property
    def parts(self) -> tuple[str, ...]:
        return PurePosixPath(self.path).parts


class GeneratedFile(BaseModel):
    """A file the writer materialises, relative to the project root."""

    model_config = ConfigDict(frozen=True)

    path: str
    template: str | None = None
    policy: WritePolicy = WritePolicy.CREATE_IF_ABSENT
    feature: str = ""


class PathPlan(BaseModel):
    """Everything one command run must realise, in application order."""

    model_config = ConfigDict(frozen=True)

    root: Path
    features: tuple[str, ...]
    directories: tuple[DirectoryNode, ...]
    files: tuple[GeneratedFile, ...]
    manifest_entries: tuple[ManifestEntry, ...]
    archive_targets: tuple[str, ...] = ()

    def entries_for(self, kind: ManifestKind) -> list[ManifestEntry]:
        return [entry for entry in self.manifest_entries if entry.manifest is kind]

    def paths(self) -> set[str]:
        """Every planned directory and file path."""
        return {d.path for d in self.directories} | {f.path for f in self.files}


def _relative(path_template: str, variables: dict[str, str]) -> str | None:
    """Resolve a ``{placeholder}`` path and check it stays under the root."""
    try:
        raw = path_template.format_map(variables)
    except KeyError as exc:
        raise ConfigurationError(f"Unknown path placeholder {exc} in {path_template!r}") from None
    return _normalise(raw)


def _normalise(raw: str) -> str | None:
    path = PurePosixPath(raw.replace("\\", "/"))
    if path.is_absolute() or ".." in path.parts:
        raise ConfigurationError(f"Path {raw!r} escapes the project root")
    parts = [part for part in path.parts if part != "."]
    if not parts:
        return None
    return str(PurePosixPath(*parts))


def _with_ancestors(path: str) -> list[str]:
    parts = PurePosixPath(path).parts
    return [str(PurePosixPath(*parts[: i + 1])) for i in range(len(parts))]


def _is_within(path: str, parent: str) -> bool:
    return path == parent or path.startswith(parent + "/")


def build_plan(
    config: Config,
    features: Sequence[str] = (),
    *,
    registry: FeatureRegistry = DEFAULT_REGISTRY,
    extra_directories: Iterable[str] = (),
    renderer: TemplateRenderer | None = None,
) -> PathPlan:
    """Compute the plan for *features* (plus the implicit ``base``).

    Args:
        config: Project configuration; supplies the layout and the values
            bound into configuration blocks.
        features: Requested feature identifiers, in request order.
        registry: Catalog to resolve identifiers against.
        extra_directories: Additional root-relative directories to include,
            e.g. user-created source subdirectories discovered on disk.
        renderer: Template renderer used for configuration block bodies.

    Raises:
        ConfigurationError: Unknown feature, unsafe path, or two features
            contributing conflicting content for the same file or block.
        DependencyCycleError: Feature prerequisites form a cycle.
    """
    resolved: list[Feature] = registry.resolve(features)
    renderer = renderer or TemplateRenderer()
    variables = config.path_variables()
    context = config.template_context()

    directories: dict[str, None] = {}

    def add_directory(path: str | None) -> None:
        if path is None:
            return
        for ancestor in _with_ancestors(path):
            directories.setdefault(ancestor, None)

    add_directory(_relative("{package}", variables))
    for feature in resolved:
        for directory in feature.directories:
            add_directory(_relative(directory, variables))
    for directory in extra_directories:
        add_directory(_normalise(directory))

    files: dict[str, GeneratedFile] = {}

    def add_file(generated: GeneratedFile) -> None:
        current = files.get(generated.path)
        if current is None:
            files[generated.path] = generated
            return
        if (current.template, current.policy) != (generated.template, generated.policy):
            raise ConfigurationError(
                f"Features {current.feature!r} and {generated.feature!r} "
                f"both generate {generated.path} with different content"
            )

    for feature in resolved:
        for spec in feature.files:
            path = _relative(spec.path, variables)
            if path is None:
                raise ConfigurationError(f"Feature {feature.identifier!r} declares an empty file path")
            parent = str(PurePosixPath(path).parent)
            if parent != ".":
                add_directory(parent)
            add_file(
                GeneratedFile(
                    path=path,
                    template=spec.template,
                    policy=spec.policy,
                    feature=feature.identifier,
                )
            )

    source = _relative("{source}", variables)
    marker_features = [f.identifier for f in resolved if f.marks_packages]
    if marker_features and source is not None:
        for directory in list(directories):
            if _is_within(directory, source):
                add_file(
                    GeneratedFile(
                        path=f"{directory}/__init__.py",
                        feature=marker_features[0],
                    )
                )

    entries: dict[tuple[str, ...], ManifestEntry] = {}

    def add_entry(entry: ManifestEntry) -> None:
        current = entries.get(entry.identity)
        if current is None:
            entries[entry.identity] = entry
        elif isinstance(entry, BlockEntry) and current != entry:
            raise ConfigurationError(f"Conflicting definitions of [{entry.table}] in the manifest")

    for feature in resolved:
        for dependency in feature.dependencies:
            if dependency.group == "dev":
                add_entry(
                    DependencyEntry(
                        manifest=ManifestKind.TOOLING,
                        table="dependency-groups",
                        key="dev",
                        requirement=dependency.requirement,
                    )
                )
                continue
            for kind in (ManifestKind.TOOLING, ManifestKind.PACKAGE):
                add_entry(
                    DependencyEntry(
                        manifest=kind,
                        table="project",
                        key="dependencies",
                        requirement=dependency.requirement,
                    )
                )
        for block in feature.blocks:
            if block.manifest is ManifestRole.SCRIPTS:
                kind = config.layout.scripts_manifest
            else:
                kind = ManifestKind(block.manifest.value)
            add_entry(
                BlockEntry(
                    manifest=kind,
                    table=block.table,
                    body=renderer.render_string(block.body, context),
                )
            )

    archive_targets = tuple(
        target
        for target in (_relative("{web_app}", variables) for f in resolved if f.fetches_archive)
        if target is not None
    )

    return PathPlan(
        root=config.root,
        features=tuple(f.identifier for f in resolved),
        directories=tuple(
            DirectoryNode(path=p) for p in sorted(directories, key=lambda p: PurePosixPath(p).parts)
        ),
        files=tuple(sorted(files.values(), key=lambda f: PurePosixPath(f.path).parts)),
        manifest_entries=tuple(entries.values()),
        archive_targets=archive_targets,
    )
