"""Install a freshly built core into a scaffolded extension project."""

import logging
import shutil
from pathlib import Path
from typing import Optional, Sequence

from .build import BuildResult
from .errors import LinkError
from .managers import ALL_LOCKFILES, PackageManager, commands_for
from .runner import Runner, run_command
from .ui import StepTracker

logger = logging.getLogger(__name__)

LINK_STEPS = [
    ("clean", "Remove stale dependencies"),
    ("add-local", "Add built packages"),
    ("project-install", "Install project dependencies"),
]


def clean_project(project_path: Path) -> list[str]:
    """Delete node_modules and every known lockfile; returns what was removed."""
    removed = []
    modules = project_path / "node_modules"
    if modules.exists():
        shutil.rmtree(modules)
        removed.append("node_modules")
    for name in ALL_LOCKFILES:
        lockfile = project_path / name
        if lockfile.exists():
            lockfile.unlink()
            removed.append(name)
    return removed


class ExtensionLinker:
    def __init__(self, *, runner: Runner = run_command, tracker: Optional[StepTracker] = None, verbose: bool = False):
        self.runner = runner
        self.tracker = tracker or StepTracker("Link core")
        self.verbose = verbose

    def link(
        self,
        project_path: Path,
        build_result: BuildResult,
        manager: PackageManager,
        packages: Optional[Sequence[Path]] = None,
    ) -> None:
        """Clean ``project_path``, add each package as a local dev dependency, then install.

        packages defaults to the built core only.
        """
        for key, label in LINK_STEPS:
            self.tracker.add(key, label)
        cmds = commands_for(manager)
        packages = list(packages) if packages else [build_result.core_path]

        self.tracker.start("clean")
        try:
            removed = clean_project(project_path)
        except OSError as e:
            self.tracker.error("clean", str(e))
            raise LinkError("clean", f"Could not clean {project_path}: {e}") from e
        self.tracker.complete("clean", ", ".join(removed) or "already clean")

        for package in packages:
            self._run("add-local", project_path, cmds.add_local_dep_cmd(package))
        self.tracker.complete("add-local", ", ".join(p.name for p in packages))

        self._run("project-install", project_path, cmds.install_deps_cmd)
        self.tracker.complete("project-install", manager.value)
        logger.debug("linked %s into %s", [str(p) for p in packages], project_path)

    def _run(self, stage: str, project_path: Path, cmd: tuple[str, ...]) -> None:
        self.tracker.start(stage, " ".join(cmd))
        result = self.runner(cmd, cwd=project_path, capture=not self.verbose)
        if not result.ok:
            self.tracker.error(stage, f"exit {result.returncode}")
            raise LinkError(stage, f"`{result.command_line}` exited with {result.returncode}", result.output_tail())
