"""Scaffolding engine: feature catalog, planner, writer and manifest composer.

Quick usage::

    from uvscaffold.config import Config
    from uvscaffold.scaffolder import FileWriter, build_plan

    config = Config(root=Path("my-app"))
    plan = build_plan(config, ["notebook"])
    FileWriter(config.root).apply(plan, config.template_context())
"""

from uvscaffold.scaffolder.features import DEFAULT_REGISTRY, Feature, FeatureRegistry, WritePolicy
from uvscaffold.scaffolder.manifest import BlockEntry, DependencyEntry, ManifestComposer
from uvscaffold.scaffolder.plan import DirectoryNode, GeneratedFile, PathPlan, build_plan
from uvscaffold.scaffolder.templates import TemplateRenderer
from uvscaffold.scaffolder.writer import Effect, FileWriter

__all__ = [
    "BlockEntry",
    "DEFAULT_REGISTRY",
    "DependencyEntry",
    "DirectoryNode",
    "Effect",
    "Feature",
    "FeatureRegistry",
    "FileWriter",
    "GeneratedFile",
    "ManifestComposer",
    "PathPlan",
    "TemplateRenderer",
    "WritePolicy",
    "build_plan",
]
