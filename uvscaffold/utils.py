"""Shared utility functions for uvscaffold.

Provides external command execution, name helpers, and Rich-based progress
reporting.  Commands are always passed as argument lists, never as shell
strings, so no user value is ever interpreted by a shell.
"""

from __future__ import annotations

import os
import re
import subprocess
from pathlib import Path
from typing import Sequence

from rich.console import Console
from rich.rule import Rule
from rich.table import Table

console = Console()

# ---------------------------------------------------------------------------
# Command execution
# ---------------------------------------------------------------------------


def run_command(
    cmd: Sequence[str],
    cwd: str | Path | None = None,
    timeout: int = 120,
    capture: bool = True,
    env: dict[str, str] | None = None,
) -> tuple[int, str, str]:
    """Run an external command and wait for it to finish.

    Args:
        cmd: Argument list; ``cmd[0]`` is the executable.
        cwd: Working directory for the child process.
        timeout: Maximum wall-clock seconds before the process is killed.
        capture: Whether to capture stdout/stderr (if ``False`` they inherit
            the parent's streams).
        env: Optional extra environment variables merged on top of ``os.environ``.

    Returns:
        A ``(returncode, stdout, stderr)`` tuple.  If *capture* is ``False``
        the stdout/stderr strings will be empty.  A timeout yields ``-1`` and
        a missing executable yields ``127``.
    """
    argv = [str(part) for part in cmd]
    merged_env: dict[str, str] | None = None
    if env:
        merged_env = {**os.environ, **env}

    pipe = subprocess.PIPE if capture else None
    try:
        completed = subprocess.run(
            argv,
            cwd=str(cwd) if cwd else None,
            env=merged_env,
            stdout=pipe,
            stderr=pipe,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        return (-1, "", f"Command timed out after {timeout}s: {' '.join(argv)}")
    except FileNotFoundError:
        return (127, "", f"Command not found: {argv[0]}")

    stdout_str = (completed.stdout or b"").decode("utf-8", errors="replace").strip()
    stderr_str = (completed.stderr or b"").decode("utf-8", errors="replace").strip()
    return (completed.returncode, stdout_str, stderr_str)


# ---------------------------------------------------------------------------
# String / name helpers
# ---------------------------------------------------------------------------


def slugify(name: str) -> str:
    """Convert an arbitrary project name to a distribution-style slug.

    Examples::

        slugify("My Project") -> "my-project"
        slugify("  data_tools (v2) ") -> "data-tools-v2"
    """
    result = re.sub(r"[^a-z0-9]+", "-", name.strip().lower())
    return result.strip("-")


def python_identifier(name: str) -> str:
    """Convert a project name to an importable identifier (``my_project``)."""
    result = re.sub(r"[^a-z0-9]+", "_", name.strip().lower()).strip("_")
    if result and result[0].isdigit():
        result = f"_{result}"
    return result or "project"


def format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples::

        format_duration(3.7)    -> "3.7s"
        format_duration(65.2)   -> "1m 5s"
    """
    if seconds < 0:
        return "0.0s"

    minutes = int(seconds // 60)
    secs = seconds % 60
    if minutes > 0:
        return f"{minutes}m {int(secs)}s"
    return f"{secs:.1f}s"


# ---------------------------------------------------------------------------
# Rich output helpers
# ---------------------------------------------------------------------------


def print_stage_header(command: str, stage: str) -> None:
    """Print a rule naming the command and the stage about to run."""
    console.print(Rule(f"[bold bright_cyan]{command}[/bold bright_cyan] [dim]{stage}[/dim]", style="cyan"))


def print_summary_table(rows: list[tuple[str, str]], title: str = "Summary") -> None:
    """Print a two-column action/target table.

    Args:
        rows: ``(action, target)`` pairs in display order.
        title: Table title.
    """
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Action", style="dim", no_wrap=True)
    table.add_column("Target")

    for action, target in rows:
        table.add_row(action, target)

    console.print(table)


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    """Print a red error message."""
    console.print(f"[bold red]{message}[/bold red]")


def print_warning(message: str) -> None:
    """Print a yellow warning message."""
    console.print(f"[bold yellow]{message}[/bold yellow]")
