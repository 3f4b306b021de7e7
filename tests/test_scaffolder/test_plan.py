"""Tests for uvscaffold.scaffolder.plan.

Tests cover:
- The base layout for flat and nested profiles
- Parents planned before children
- Package-initializer markers under the source tree only
- Manifest entries per feature and layout
- Determinism and order independence of feature activation
- Path safety and conflicting file definitions
"""

from __future__ import annotations

from pathlib import Path

import pytest

from uvscaffold.config import Config, ManifestKind
from uvscaffold.errors import ConfigurationError
from uvscaffold.scaffolder.features import (
    Feature,
    FeatureRegistry,
    FileTemplate,
    WritePolicy,
    default_features,
)
from uvscaffold.scaffolder.manifest import BlockEntry, DependencyEntry
from uvscaffold.scaffolder.plan import build_plan

pytestmark = pytest.mark.unit


def file_paths(plan) -> list[str]:
    return [f.path for f in plan.files]


def dir_paths(plan) -> list[str]:
    return [d.path for d in plan.directories]


def requirements(plan, kind: ManifestKind, table: str, key: str) -> list[str]:
    return [
        entry.requirement
        for entry in plan.entries_for(kind)
        if isinstance(entry, DependencyEntry) and (entry.table, entry.key) == (table, key)
    ]


def blocks(plan, kind: ManifestKind) -> dict[str, str]:
    return {
        entry.table: entry.body
        for entry in plan.entries_for(kind)
        if isinstance(entry, BlockEntry)
    }


# ---------------------------------------------------------------------------
# Base layout
# ---------------------------------------------------------------------------

class TestBasePlan:
    def test_flat_directories(self, config: Config):
        plan = build_plan(config)
        assert dir_paths(plan) == ["config", "data", "documents", "src", "tests"]

    def test_flat_files(self, config: Config):
        plan = build_plan(config)
        assert file_paths(plan) == [
            ".env",
            ".gitignore",
            "README.md",
            "src/__init__.py",
            "src/main.py",
            "tests/test_placeholder.py",
        ]

    def test_features_recorded(self, config: Config):
        assert build_plan(config).features == ("base",)

    def test_root_carried(self, config: Config):
        assert build_plan(config).root == config.root

    def test_file_policies(self, config: Config):
        policies = {f.path: f.policy for f in build_plan(config).files}
        assert policies[".gitignore"] is WritePolicy.ALWAYS_OVERWRITE
        assert policies["src/main.py"] is WritePolicy.CREATE_IF_ABSENT

    def test_nested_directories(self, nested_config: Config):
        plan = build_plan(nested_config)
        assert dir_paths(plan) == [
            "config",
            "data",
            "documents",
            "python",
            "python/src",
            "python/tests",
        ]
        assert "python/src/main.py" in file_paths(plan)

    def test_parents_precede_children(self, config: Config):
        plan = build_plan(config, ["llm", "notebook"])
        seen: set[str] = set()
        for directory in plan.directories:
            parent = str(Path(directory.path).parent)
            assert parent == "." or parent in seen
            seen.add(directory.path)
        for generated in plan.files:
            parent = str(Path(generated.path).parent)
            assert parent == "." or parent in seen

    def test_no_archive_for_base(self, config: Config):
        assert build_plan(config).archive_targets == ()


# ---------------------------------------------------------------------------
# Features
# ---------------------------------------------------------------------------

class TestFeaturePlans:
    def test_llm_adds_prompts_package(self, config: Config):
        plan = build_plan(config, ["llm"])
        assert plan.features == ("base", "package-init", "llm")
        assert "src/prompts" in dir_paths(plan)
        assert "src/prompts/system.md" in file_paths(plan)
        assert "src/prompts/__init__.py" in file_paths(plan)

    def test_markers_only_under_source(self, config: Config):
        plan = build_plan(config, ["package-init"])
        markers = [p for p in file_paths(plan) if p.endswith("__init__.py")]
        assert markers == ["src/__init__.py"]

    def test_markers_for_extra_directories(self, config: Config):
        plan = build_plan(config, ["package-init"], extra_directories=["src/utils/io"])
        markers = [p for p in file_paths(plan) if p.endswith("__init__.py")]
        assert markers == ["src/__init__.py", "src/utils/__init__.py", "src/utils/io/__init__.py"]

    def test_nested_markers(self, nested_config: Config):
        plan = build_plan(nested_config, ["llm"])
        markers = [p for p in file_paths(plan) if p.endswith("__init__.py")]
        assert markers == ["python/src/__init__.py", "python/src/prompts/__init__.py"]

    def test_notebook(self, config: Config):
        plan = build_plan(config, ["notebook"])
        assert "notebooks/exploration.ipynb" in file_paths(plan)
        assert "ipykernel" in requirements(plan, ManifestKind.TOOLING, "dependency-groups", "dev")
        assert "ipykernel" not in requirements(plan, ManifestKind.PACKAGE, "project", "dependencies")

    def test_web_app_archive_target(self, config: Config):
        plan = build_plan(config, ["web-app"])
        assert plan.archive_targets == ("app",)
        assert "app" in dir_paths(plan)

    def test_order_independent(self, config: Config):
        forward = build_plan(config, ["ml", "llm", "notebook"])
        backward = build_plan(config, ["notebook", "llm", "ml"])
        assert forward.directories == backward.directories
        assert forward.files == backward.files
        assert set(forward.manifest_entries) == set(backward.manifest_entries)

    def test_deterministic(self, config: Config):
        assert build_plan(config, ["llm"]) == build_plan(config, ["llm"])

    def test_unknown_feature(self, config: Config):
        with pytest.raises(ConfigurationError, match="quantum"):
            build_plan(config, ["quantum"])


# ---------------------------------------------------------------------------
# Manifest entries
# ---------------------------------------------------------------------------

class TestManifestEntries:
    def test_dev_dependencies_in_tooling_only(self, config: Config):
        plan = build_plan(config)
        assert requirements(plan, ManifestKind.TOOLING, "dependency-groups", "dev") == [
            "ruff",
            "black",
            "pytest",
            "pytest-cov",
        ]
        assert requirements(plan, ManifestKind.PACKAGE, "dependency-groups", "dev") == []

    def test_runtime_dependencies_in_both_manifests(self, config: Config):
        plan = build_plan(config, ["ml"])
        expected = ["pydantic", "loguru", "torch", "numpy"]
        assert requirements(plan, ManifestKind.TOOLING, "project", "dependencies") == expected
        assert requirements(plan, ManifestKind.PACKAGE, "project", "dependencies") == expected

    def test_flat_scripts_in_tooling_manifest(self, config: Config):
        plan = build_plan(config)
        tooling = blocks(plan, ManifestKind.TOOLING)
        assert tooling["project.scripts"] == 'demo-app = "main:main"'
        assert tooling["tool.ruff"] == "line-length = 88"
        assert "project.scripts" not in blocks(plan, ManifestKind.PACKAGE)

    def test_nested_scripts_in_package_manifest(self, nested_config: Config):
        plan = build_plan(nested_config)
        assert blocks(plan, ManifestKind.PACKAGE)["project.scripts"] == 'demo-app = "src.main:main"'
        assert "project.scripts" not in blocks(plan, ManifestKind.TOOLING)


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------

class TestGuards:
    def test_escaping_path_rejected(self, config: Config):
        registry = FeatureRegistry(
            [Feature(identifier="bad", directories=("{source}/../../outside",))]
        )
        with pytest.raises(ConfigurationError, match="escapes the project root"):
            build_plan(config, ["bad"], registry=registry)

    def test_absolute_extra_directory_rejected(self, config: Config):
        with pytest.raises(ConfigurationError, match="escapes"):
            build_plan(config, extra_directories=["/etc"])

    def test_unknown_placeholder(self, config: Config):
        registry = FeatureRegistry([Feature(identifier="bad", directories=("{nowhere}",))])
        with pytest.raises(ConfigurationError, match="Unknown path placeholder"):
            build_plan(config, ["bad"], registry=registry)

    def test_conflicting_files(self, config: Config):
        registry = FeatureRegistry(
            [
                *default_features(),
                Feature(
                    identifier="other-main",
                    files=(FileTemplate(path="{source}/main.py", template="README.md.j2"),),
                ),
            ]
        )
        with pytest.raises(ConfigurationError, match="src/main.py"):
            build_plan(config, ["other-main"], registry=registry)

    def test_identical_files_merge(self, config: Config):
        registry = FeatureRegistry(
            [
                *default_features(),
                Feature(
                    identifier="same-main",
                    files=(FileTemplate(path="{source}/main.py", template="main.py.j2"),),
                ),
            ]
        )
        plan = build_plan(config, ["same-main"], registry=registry)
        assert file_paths(plan).count("src/main.py") == 1
