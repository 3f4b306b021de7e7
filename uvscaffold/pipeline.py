"""uvscaffold command router.

Every command is an ordered list of named stages:

plan              -- resolve features and compute the layout (no I/O).
apply             -- create directories and generated files.
compose-manifests -- declare dependencies and configuration blocks.
fetch-archive     -- download the web-app skeleton (add-fastapi only).
<tool stages>     -- delegate to uv, ruff, black or pytest.

Stages run strictly in sequence; the first failure stops the command and is
reported together with the effects that were applied before it.  Every
stage is safe to re-run, so re-invoking the command is the recovery path.

Usage::

    python -m uvscaffold setup --project-name my-app
    python -m uvscaffold add-llm
    python -m uvscaffold remove-all --yes
"""

from __future__ import annotations

import argparse
import os
import sys
import time
from pathlib import Path
from typing import Callable, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field
from rich.prompt import Confirm

from uvscaffold.config import LAYOUTS, Config, ManifestKind
from uvscaffold.errors import (
    ConfigurationError,
    ExternalToolError,
    ManifestParseError,
    ScaffoldError,
    ScaffoldIOError,
)
from uvscaffold.scaffolder.cleaner import cleanable_paths, remove_paths, removable_paths
from uvscaffold.scaffolder.features import DEFAULT_REGISTRY, FeatureRegistry, WritePolicy
from uvscaffold.scaffolder.fetcher import ArchiveFetcher
from uvscaffold.scaffolder.manifest import ManifestComposer
from uvscaffold.scaffolder.plan import PathPlan, build_plan
from uvscaffold.scaffolder.templates import TemplateRenderer
from uvscaffold.scaffolder.writer import Effect, FileWriter
from uvscaffold.utils import (
    console,
    format_duration,
    print_error,
    print_stage_header,
    print_success,
    print_summary_table,
    print_warning,
    run_command,
)

Runner = Callable[..., tuple[int, str, str]]
Stage = tuple[str, Callable[[], list[Effect]]]

COMMANDS: dict[str, str] = {
    "help": "Show available commands.",
    "setup": "Initialize project (folders, pyproject.toml, default deps).",
    "create-init": "Add __init__.py to every directory of the source tree.",
    "add-notebook": "Add notebook support (ipykernel).",
    "add-ml": "Add ML libraries (torch, numpy).",
    "add-llm": "Add LLM libraries (langchain) and a prompts package.",
    "add-graph": "Add graph libraries (yfiles-jupyter-graphs, neomodel).",
    "add-fastapi": "Download the FastAPI skeleton into app/ and add fastapi/uvicorn.",
    "init": "Create .venv and install dependencies.",
    "sanitize": "Run formatter (black) and linter (ruff).",
    "test": "Run pytest.",
    "coverage": "Run pytest with coverage report.",
    "clean": "Remove virtual environment and cache files.",
    "activate": "Print activation command.",
    "run": "Run the main script.",
    "remove-all": "Clean, then delete the generated tree and manifests (needs --yes).",
}


# ---------------------------------------------------------------------------
# Result model
# ---------------------------------------------------------------------------


class CommandResult(BaseModel):
    """Outcome of one command: success or the first failing stage."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    command: str
    success: bool = False
    effects: list[Effect] = Field(default_factory=list)
    stages_completed: list[str] = Field(default_factory=list)
    failed_stage: str | None = None
    error: ScaffoldError | None = Field(default=None, exclude=True)
    duration_seconds: float = 0.0

    @computed_field  # type: ignore[misc]
    @property
    def exit_code(self) -> int:
        """Process exit status: the failing tool's own code where it has one."""
        if self.success:
            return 0
        if isinstance(self.error, ExternalToolError) and 0 < self.error.exit_code < 256:
            return self.error.exit_code
        return 1


# ---------------------------------------------------------------------------
# Pipeline (command router)
# ---------------------------------------------------------------------------


class Pipeline:
    """Maps commands onto planner, writer, composer and tool stages.

    Attributes:
        config: Project configuration.
        registry: Feature catalog used for planning.
        runner: Callable with the signature of :func:`uvscaffold.utils.run_command`.
        fetcher: Archive fetcher for the web-app skeleton.
    """

    def __init__(
        self,
        config: Config,
        registry: FeatureRegistry = DEFAULT_REGISTRY,
        runner: Runner = run_command,
        fetcher: ArchiveFetcher | None = None,
        renderer: TemplateRenderer | None = None,
        verbose: bool = True,
    ) -> None:
        self.config = config
        self.registry = registry
        self.runner = runner
        self.fetcher = fetcher or ArchiveFetcher(timeout=config.download_timeout)
        self.renderer = renderer or TemplateRenderer()
        self.composer = ManifestComposer()
        self.verbose = verbose
        self.writer = FileWriter(config.root, self.renderer, on_effect=self._report)
        self._plan: PathPlan | None = None

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self, command: str, *, confirm: bool = False) -> CommandResult:
        """Execute *command* and return its :class:`CommandResult`.

        Args:
            command: One of :data:`COMMANDS`.
            confirm: Explicit consent for destructive commands (``remove-all``).
        """
        started = time.monotonic()
        result = CommandResult(command=command)
        self._plan = None

        try:
            stages = self._stages(command, confirm)
        except ScaffoldError as exc:
            return self._fail(result, "resolve", exc, started)

        for name, stage in stages:
            if self.verbose:
                print_stage_header(command, name)
            try:
                effects = stage()
            except ScaffoldError as exc:
                if isinstance(exc, ScaffoldIOError):
                    result.effects.extend(exc.completed)
                return self._fail(result, name, exc, started)
            result.effects.extend(effects)
            result.stages_completed.append(name)

        result.success = True
        result.duration_seconds = time.monotonic() - started
        return result

    def _fail(self, result: CommandResult, stage: str, exc: ScaffoldError, started: float) -> CommandResult:
        result.failed_stage = stage
        result.error = exc
        result.duration_seconds = time.monotonic() - started
        if self.verbose:
            print_error(f"{result.command}: stage '{stage}' failed: {exc}")
        return result

    # ------------------------------------------------------------------
    # Command -> stages
    # ------------------------------------------------------------------

    def _stages(self, command: str, confirm: bool) -> list[Stage]:
        if command not in COMMANDS:
            raise ConfigurationError(
                f"Unknown command {command!r}; expected one of {', '.join(COMMANDS)}"
            )
        if command != "help" and not self.config.root.is_dir():
            raise ConfigurationError(f"Project root {self.config.root} does not exist")

        src = self.config.layout.source_dir
        tests = self.config.layout.tests_dir

        if command == "help":
            return [("help", self._help)]
        if command == "setup":
            stages = self._scaffold_stages([])
            stages.append(self._tool("pin-python", "uv", "python", "pin", self.config.python_version))
            stages.append(self._tool("lock", "uv", "lock"))
            if self.config.layout.editable_install:
                stages.append(
                    self._tool(
                        "editable-install", "uv", "pip", "install", "-e",
                        f"./{self.config.layout.package_manifest_dir}",
                    )
                )
            return stages
        if command == "create-init":
            return self._scaffold_stages(["package-init"], discover=True)
        if command.startswith("add-"):
            feature = self.registry.by_command(command)
            if feature is None:
                raise ConfigurationError(f"No feature is registered for {command!r}")
            stages = self._scaffold_stages([feature.identifier])
            if feature.fetches_archive:
                stages.append(("fetch-archive", self._fetch_archive))
            stages.append(self._tool("lock", "uv", "lock"))
            return stages
        if command == "init":
            return [
                self._tool("create-venv", "uv", "venv", "-p", self.config.python_version),
                self._tool("sync", "uv", "sync"),
            ]
        if command == "sanitize":
            return [
                self._tool("format", "black", "run", "black", src, tests),
                self._tool("lint", "ruff", "run", "ruff", "check", "--fix", src, tests),
            ]
        if command == "test":
            return [self._tool("test", "pytest", "run", "pytest", "-v", tests)]
        if command == "coverage":
            return [
                self._tool(
                    "coverage", "pytest", "run", "pytest", f"--cov={src}",
                    "--cov-report=term-missing", tests,
                )
            ]
        if command == "clean":
            return [("clean", self._clean)]
        if command == "activate":
            return [("activate", self._activate)]
        if command == "run":
            return [self._tool("run", "python", "run", "python", f"{src}/main.py")]
        if command == "remove-all":
            if not confirm:
                raise ConfigurationError("remove-all deletes the generated project; pass --yes to confirm")
            return [("remove-all", self._remove_all)]
        raise ConfigurationError(f"Command {command!r} has no stages")

    def _scaffold_stages(self, features: list[str], discover: bool = False) -> list[Stage]:
        def plan() -> list[Effect]:
            extra = self._discover_source_dirs() if discover else []
            self._plan = build_plan(
                self.config,
                features,
                registry=self.registry,
                extra_directories=extra,
                renderer=self.renderer,
            )
            return []

        return [
            ("plan", plan),
            ("apply", self._apply),
            ("compose-manifests", self._compose_manifests),
        ]

    # ------------------------------------------------------------------
    # Stage implementations
    # ------------------------------------------------------------------

    def _require_plan(self) -> PathPlan:
        if self._plan is None:
            raise ConfigurationError("No plan has been computed for this command")
        return self._plan

    def _apply(self) -> list[Effect]:
        return self.writer.apply(self._require_plan(), self.config.template_context())

    def _compose_manifests(self) -> list[Effect]:
        plan = self._require_plan()
        context = self.config.template_context()
        updates: list[tuple[Path, str]] = []
        unchanged: list[Effect] = []

        for kind in ManifestKind:
            entries = plan.entries_for(kind)
            if not entries:
                continue
            path = self.config.manifest_path(kind)
            existing = self._read_manifest(path)
            baseline = existing if existing is not None else self.renderer.render(
                f"pyproject_{kind.value}.toml.j2", context
            )
            composed = self.composer.compose(baseline, entries, path=path)
            if composed == existing:
                effect = Effect(action="unchanged", target=self._relative(path))
                self._report(effect)
                unchanged.append(effect)
            else:
                updates.append((path, composed))

        effects = list(unchanged)
        for path, composed in updates:
            try:
                effects.append(
                    self.writer.write_file(self._relative(path), composed, WritePolicy.ALWAYS_OVERWRITE)
                )
            except ScaffoldIOError as exc:
                exc.completed[:0] = effects
                raise
        return effects

    def _read_manifest(self, path: Path) -> str | None:
        if not path.is_file():
            return None
        try:
            # decoded from bytes so CRLF line endings are not translated
            return path.read_bytes().decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ManifestParseError("manifest is not valid UTF-8", path) from exc
        except OSError as exc:
            raise ScaffoldIOError(path, exc.strerror or str(exc)) from exc

    def _fetch_archive(self) -> list[Effect]:
        effects: list[Effect] = []
        for target in self._require_plan().archive_targets:
            effect = self.fetcher.fetch(
                self.config.web_app_archive_url, self.config.root / target, label=target
            )
            self._report(effect)
            effects.append(effect)
        return effects

    def _tool(self, stage: str, tool: str, *args: str) -> Stage:
        """Build a stage that runs the package manager (``uv <args>``)."""

        def invoke() -> list[Effect]:
            argv = [self.config.package_manager, *args]
            if self.verbose:
                console.print(f"  [cyan]$[/cyan] {' '.join(argv)}")
            code, _stdout, stderr = self.runner(
                argv,
                cwd=self.config.root,
                timeout=self.config.tool_timeout,
                capture=False,
            )
            if code != 0:
                raise ExternalToolError(tool, code, argv, detail=stderr)
            return [Effect(action="run", target=" ".join(argv))]

        return (stage, invoke)

    def _clean(self) -> list[Effect]:
        return remove_paths(cleanable_paths(self.config), self.config.root, on_effect=self._report)

    def _remove_all(self) -> list[Effect]:
        return remove_paths(removable_paths(self.config), self.config.root, on_effect=self._report)

    def _activate(self) -> list[Effect]:
        message = f"source {self.config.venv_dir}/bin/activate"
        if self.verbose:
            console.print(f"Activate with: [bold]{message}[/bold]")
        return [Effect(action="info", target=message)]

    def _help(self) -> list[Effect]:
        return [Effect(action="info", target=name, detail=text) for name, text in COMMANDS.items()]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _discover_source_dirs(self) -> list[str]:
        """Return root-relative source directories that exist on disk."""
        source = self.config.root / self.config.layout.source_dir
        if not source.is_dir():
            return []
        found: list[str] = []
        for dirpath, dirnames, _filenames in os.walk(source):
            dirnames[:] = sorted(
                name for name in dirnames if not name.startswith(".") and name != "__pycache__"
            )
            found.append(Path(dirpath).relative_to(self.config.root).as_posix())
        return found

    def _relative(self, path: Path) -> str:
        try:
            return path.relative_to(self.config.root).as_posix()
        except ValueError:
            return str(path)

    def _report(self, effect: Effect) -> None:
        if not self.verbose:
            return
        colour = {
            "mkdir": "green", "write": "green", "overwrite": "yellow",
            "download": "green", "remove": "red",
        }.get(effect.action, "dim")
        detail = f" [dim]({effect.detail})[/dim]" if effect.detail else ""
        console.print(f"  [{colour}]{effect.action:>9}[/{colour}] {effect.target}{detail}")


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="uvscaffold",
        description="Scaffold and manage a uv-based Python project",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  uvscaffold setup --project-name my-app\n"
            "  uvscaffold add-notebook\n"
            "  uvscaffold setup --layout nested --python-version 3.11\n"
            "  uvscaffold remove-all --yes\n"
        ),
    )
    parser.add_argument("command", nargs="?", default="help", choices=list(COMMANDS))
    parser.add_argument("--root", "-C", default=None, help="Project root (default: current directory)")
    parser.add_argument("--project-name", default=None, help="Project name (default: default-project)")
    parser.add_argument("--python-version", default=None, help="Python version (default: 3.12)")
    parser.add_argument("--layout", default=None, choices=sorted(LAYOUTS), help="Project layout profile")
    parser.add_argument("--yes", "-y", action="store_true", help="Confirm destructive commands")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only print the final status")
    return parser


def _print_help() -> None:
    print_summary_table(list(COMMANDS.items()), title="Available commands")


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point for ``uvscaffold`` / ``python -m uvscaffold``."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "help":
        _print_help()
        return 0

    try:
        config = Config.from_env(
            project_name=args.project_name,
            python_version=args.python_version,
            root=args.root,
            layout=args.layout,
        )
    except ValidationError as exc:
        print_error(f"Invalid configuration: {exc}")
        return 2

    confirm = args.yes
    if args.command == "remove-all" and not confirm and sys.stdin.isatty():
        confirm = Confirm.ask(
            f"Delete the generated project under [bold]{config.root.resolve()}[/bold]?",
            default=False,
        )
    if args.command == "remove-all" and not confirm:
        print_warning("remove-all was not confirmed; pass --yes to delete the generated project")

    pipeline = Pipeline(config, verbose=not args.quiet)
    result = pipeline.run(args.command, confirm=confirm)

    if result.success:
        if not args.quiet and result.effects:
            print_summary_table([(e.action, e.target) for e in result.effects], title="Effects")
        print_success(f"{args.command} completed in {format_duration(result.duration_seconds)}")
    else:
        print_error(f"{args.command} failed at stage '{result.failed_stage}': {result.error}")
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
