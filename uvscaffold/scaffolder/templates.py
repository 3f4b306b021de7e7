"""Jinja2 template rendering for generated file content.

Provides the TemplateRenderer class which loads Jinja2 templates from the
``uvscaffold/scaffolder/templates/`` directory and renders them with the
project context built by :meth:`uvscaffold.config.Config.template_context`.
Rendering is pure: writing the result is the file writer's job.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from uvscaffold.utils import python_identifier, slugify

_DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"


class TemplateRenderer:
    """Renders Jinja2 templates for project scaffolding.

    Undefined variables raise instead of rendering as empty strings, so a
    template can never silently drop a project parameter.
    """

    def __init__(self, template_dir: str | Path | None = None) -> None:
        if template_dir is None:
            template_dir = _DEFAULT_TEMPLATE_DIR
        self.template_dir = Path(template_dir)
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape([]),
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )
        self.env.filters["slugify"] = slugify
        self.env.filters["identifier"] = python_identifier

    def render(self, template_path: str, context: dict[str, Any]) -> str:
        """Render a single template with the provided context.

        Args:
            template_path: Path relative to the template directory (e.g.
                ``"main.py.j2"``).
            context: Dictionary of variables available inside the template.

        Returns:
            The rendered template content as a string.
        """
        template = self.env.get_template(template_path)
        return template.render(**context)

    def render_string(self, template_string: str, context: dict[str, Any]) -> str:
        """Render an inline template string with the provided context.

        Used for manifest configuration blocks, which are short enough to
        live next to the feature that declares them.
        """
        template = self.env.from_string(template_string)
        return template.render(**context)

    def list_templates(self) -> list[str]:
        """Return a sorted list of all ``.j2`` template names."""
        if not self.template_dir.is_dir():
            return []
        return sorted(
            str(p.relative_to(self.template_dir)) for p in self.template_dir.rglob("*.j2")
        )
