"""uvscaffold -- scaffold and manage uv-based Python projects.

Creates a standard source-tree layout with boilerplate files and
manifests, layers optional feature modules (notebooks, ML, LLM, graph,
a FastAPI skeleton) onto it, and delegates day-to-day tasks (sync, lint,
test, run) to uv.

Quick usage::

    from uvscaffold import Config, Pipeline

    result = Pipeline(Config(root=Path("my-app"))).run("setup")
    assert result.success
"""

from uvscaffold.config import Config, LayoutProfile
from uvscaffold.pipeline import CommandResult, Pipeline

__version__ = "0.1.0"

__all__ = [
    "CommandResult",
    "Config",
    "LayoutProfile",
    "Pipeline",
    "__version__",
]
