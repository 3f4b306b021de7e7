"""Error taxonomy shared by every scaffolding stage.

All failures raised by the planner, the file writer, the manifest composer
and the external-tool runner derive from :class:`ScaffoldError` so the
command router can stop at the first failing stage and report it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence


class ScaffoldError(Exception):
    """Base class for every error raised by ``uvscaffold``."""


class ConfigurationError(ScaffoldError):
    """Raised for unknown features, invalid settings or a missing project root."""


class DependencyCycleError(ScaffoldError):
    """Raised when feature prerequisites form a cycle."""

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = tuple(cycle)
        super().__init__("Feature prerequisites form a cycle: " + " -> ".join(self.cycle))


class ScaffoldIOError(ScaffoldError):
    """A filesystem operation failed.

    Attributes:
        path: The path the failing operation targeted.
        completed: Effects applied before the failure, in order.
    """

    def __init__(
        self,
        path: str | Path,
        message: str,
        completed: Sequence[Any] = (),
    ) -> None:
        self.path = Path(path)
        self.completed = list(completed)
        super().__init__(f"{self.path}: {message}")


class ManifestParseError(ScaffoldError):
    """An existing manifest does not have the structure the composer expects."""

    def __init__(self, message: str, path: str | Path | None = None) -> None:
        self.path = Path(path) if path is not None else None
        prefix = f"{self.path}: " if self.path is not None else ""
        super().__init__(f"{prefix}{message}")


class ExternalToolError(ScaffoldError):
    """A delegated process exited with a non-zero status."""

    def __init__(
        self,
        tool: str,
        exit_code: int,
        argv: Sequence[str] = (),
        detail: str = "",
    ) -> None:
        self.tool = tool
        self.exit_code = exit_code
        self.argv = list(argv)
        message = f"{tool} exited with code {exit_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
