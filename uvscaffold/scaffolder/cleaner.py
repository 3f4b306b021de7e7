"""Enumeration and removal of ephemeral and generated paths.

``clean`` removes only what can be rebuilt by re-running tools: the
virtual environment, coverage output, lockfile and cache directories.
``remove-all`` additionally removes the generated tree and manifests.
Enumeration never deletes anything, so callers can show exactly what a
command would touch before it runs.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path

from uvscaffold.config import Config
from uvscaffold.errors import ScaffoldIOError
from uvscaffold.scaffolder.writer import Effect, EffectCallback

CACHE_DIR_NAMES = frozenset({"__pycache__", ".ruff_cache", ".pytest_cache"})
CACHE_FILE_NAMES = ("uv.lock", ".coverage", "activate_alias.sh")
EPHEMERAL_DIR_NAMES = ("htmlcov",)
_NEVER_DESCEND = frozenset({".git", ".hg", ".svn"})


def _exists(path: Path) -> bool:
    return path.exists() or path.is_symlink()


def _prune_nested(paths: list[Path]) -> list[Path]:
    """Sort *paths* and drop any path that lives under another one."""
    result: list[Path] = []
    for path in sorted(set(paths), key=lambda p: p.parts):
        if not any(parent in path.parents for parent in result):
            result.append(path)
    return result


def cleanable_paths(config: Config) -> list[Path]:
    """Return the runtime environment and cache paths under the project root."""
    root = config.root
    found: list[Path] = []

    for name in (config.venv_dir, *EPHEMERAL_DIR_NAMES):
        if _exists(root / name):
            found.append(root / name)
    for name in CACHE_FILE_NAMES:
        candidate = root / name
        if candidate.is_file() or candidate.is_symlink():
            found.append(candidate)

    skip_at_root = {config.venv_dir, *EPHEMERAL_DIR_NAMES}
    for dirpath, dirnames, _filenames in os.walk(root):
        current = Path(dirpath)
        keep: list[str] = []
        for name in dirnames:
            if name in _NEVER_DESCEND or (current == root and name in skip_at_root):
                continue
            if name in CACHE_DIR_NAMES:
                found.append(current / name)
                continue
            keep.append(name)
        dirnames[:] = keep

    return _prune_nested(found)


def generated_paths(config: Config) -> list[Path]:
    """Return the generated tree, data/docs/config directories and manifests."""
    root = config.root
    layout = config.layout
    candidates: list[Path] = []
    if layout.python_dir:
        candidates.append(root / layout.python_dir)
    candidates.extend(
        root / name
        for name in (
            layout.source_dir,
            layout.tests_dir,
            layout.notebooks_dir,
            config.data_dir,
            config.docs_dir,
            config.config_dir,
            config.web_app_dir,
        )
    )
    candidates.extend(
        [config.tooling_manifest_path, config.package_manifest_path, root / ".python-version"]
    )
    return _prune_nested([path for path in candidates if _exists(path)])


def removable_paths(config: Config) -> list[Path]:
    """Return everything ``remove-all`` deletes."""
    return _prune_nested(cleanable_paths(config) + generated_paths(config))


def remove_paths(
    paths: list[Path],
    root: str | Path,
    on_effect: EffectCallback | None = None,
) -> list[Effect]:
    """Delete *paths*, refusing anything outside *root*.

    Raises:
        ScaffoldIOError: A path is outside the root or could not be removed;
            ``completed`` lists the removals that already happened.
    """
    base = Path(root).resolve()
    effects: list[Effect] = []
    for path in paths:
        absolute = Path(os.path.abspath(path))
        parent = absolute.parent.resolve()
        if parent != base and base not in parent.parents:
            raise ScaffoldIOError(path, "refusing to remove a path outside the project root", effects)
        try:
            if absolute.is_dir() and not absolute.is_symlink():
                shutil.rmtree(absolute)
            elif _exists(absolute):
                absolute.unlink()
            else:
                continue
        except OSError as exc:
            raise ScaffoldIOError(path, exc.strerror or str(exc), effects) from exc
        relative = (parent / absolute.name).relative_to(base).as_posix()
        effect = Effect(action="remove", target=relative)
        effects.append(effect)
        if on_effect is not None:
            on_effect(effect)
    return effects
