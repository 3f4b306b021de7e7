"""Materialise a :class:`~uvscaffold.scaffolder.plan.PathPlan` on disk.

Directories are created idempotently.  Files follow their write policy:
create-if-absent files are only written when nothing occupies the path,
always-overwrite files are regenerated on every run.  The first filesystem
failure aborts the run with a :class:`ScaffoldIOError` that carries the
effects applied so far.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

from jinja2 import TemplateError
from pydantic import BaseModel, ConfigDict

from uvscaffold.errors import ConfigurationError, ScaffoldIOError
from uvscaffold.scaffolder.features import WritePolicy
from uvscaffold.scaffolder.plan import PathPlan
from uvscaffold.scaffolder.templates import TemplateRenderer


class Effect(BaseModel):
    """One observable side effect of a command, in the order it happened.

    ``action`` is one of ``mkdir``, ``exists``, ``write``, ``overwrite``,
    ``skip``, ``unchanged``, ``run``, ``download``, ``remove`` or ``info``.
    """

    model_config = ConfigDict(frozen=True)

    action: str
    target: str
    detail: str = ""


EffectCallback = Callable[[Effect], None]


class FileWriter:
    """Applies plans relative to a project root."""

    def __init__(
        self,
        root: str | Path,
        renderer: TemplateRenderer | None = None,
        on_effect: EffectCallback | None = None,
    ) -> None:
        self.root = Path(root)
        self.renderer = renderer or TemplateRenderer()
        self.on_effect = on_effect

    def apply(self, plan: PathPlan, context: dict[str, Any]) -> list[Effect]:
        """Create every planned directory, then write every planned file.

        All content is rendered before the first write so a template error
        leaves the tree untouched.

        Raises:
            ConfigurationError: A content template failed to render.
            ScaffoldIOError: A directory or file could not be created.
        """
        rendered: list[tuple[str, bytes, WritePolicy]] = []
        for generated in plan.files:
            try:
                content = (
                    self.renderer.render(generated.template, context)
                    if generated.template
                    else ""
                )
            except TemplateError as exc:
                raise ConfigurationError(
                    f"Cannot render {generated.template} for {generated.path}: {exc}"
                ) from exc
            rendered.append((generated.path, content.encode("utf-8"), generated.policy))

        effects: list[Effect] = []
        for directory in plan.directories:
            effects.append(self._guard(directory.path, effects, self._ensure_directory, directory.path))
        for path, data, policy in rendered:
            effects.append(self._guard(path, effects, self._write, path, data, policy))
        return effects

    def ensure_directory(self, relative: str) -> Effect:
        """Create *relative* (and parents); an existing directory is a no-op."""
        return self._guard(relative, [], self._ensure_directory, relative)

    def write_file(
        self,
        relative: str,
        content: str | bytes,
        policy: WritePolicy = WritePolicy.CREATE_IF_ABSENT,
    ) -> Effect:
        """Write *content* to *relative* according to *policy*."""
        data = content.encode("utf-8") if isinstance(content, str) else content
        return self._guard(relative, [], self._write, relative, data, policy)

    # -- Internals ---------------------------------------------------------

    def _guard(self, relative: str, completed: list[Effect], func: Callable[..., Effect], *args: Any) -> Effect:
        try:
            effect = func(*args)
        except OSError as exc:
            raise ScaffoldIOError(
                self.root / relative, exc.strerror or str(exc), completed=completed
            ) from exc
        if self.on_effect is not None:
            self.on_effect(effect)
        return effect

    def _ensure_directory(self, relative: str) -> Effect:
        path = self.root / relative
        if path.is_dir():
            return Effect(action="exists", target=relative)
        if path.exists() or path.is_symlink():
            raise FileExistsError(17, "exists and is not a directory", str(path))
        path.mkdir(parents=True, exist_ok=True)
        return Effect(action="mkdir", target=relative)

    def _write(self, relative: str, data: bytes, policy: WritePolicy) -> Effect:
        path = self.root / relative
        if path.is_dir():
            raise IsADirectoryError(21, "is a directory", str(path))
        existed = path.exists() or path.is_symlink()
        if existed and policy is WritePolicy.CREATE_IF_ABSENT:
            return Effect(action="skip", target=relative, detail="already present")
        path.write_bytes(data)
        return Effect(action="overwrite" if existed else "write", target=relative)
