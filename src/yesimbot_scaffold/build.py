"""Download, build and read the version of the framework's core package."""

import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

from . import manifest
from .archive import extract
from .errors import BuildError, ScaffoldError
from .fetch import auth_headers, download, make_client
from .managers import PackageManager, commands_for, manager_version
from .runner import CommandResult, Runner, run_command
from .ui import StepTracker

logger = logging.getLogger(__name__)

DEFAULT_MIRROR = "https://github.com"
DEFAULT_REPO = "HydroGest/YesImBot"
DEFAULT_BRANCH = "dev"
DEFAULT_CACHE_ROOT = Path.home() / ".buildcache"
CORE_PACKAGE = Path("packages") / "core"

BUILD_STEPS = [
    ("workdir", "Create working directory"),
    ("download", "Download source archive"),
    ("extract", "Extract archive"),
    ("prepare", "Prepare workspace"),
    ("install", "Install dependencies"),
    ("pin", "Pin package manager"),
    ("compile", "Build core"),
    ("version", "Read core version"),
]


@dataclass(frozen=True)
class BuildConfig:
    mirror_base: str = DEFAULT_MIRROR
    repo: str = DEFAULT_REPO
    branch: str = DEFAULT_BRANCH
    cache_root: Path = DEFAULT_CACHE_ROOT
    github_token: Optional[str] = None

    @classmethod
    def from_env(cls, **overrides) -> "BuildConfig":
        values = {
            "mirror_base": os.getenv("YESIMBOT_MIRROR_BASE") or DEFAULT_MIRROR,
            "repo": os.getenv("YESIMBOT_REPO") or DEFAULT_REPO,
            "branch": os.getenv("YESIMBOT_BRANCH") or DEFAULT_BRANCH,
            "cache_root": Path(os.getenv("YESIMBOT_BUILD_CACHE") or DEFAULT_CACHE_ROOT).expanduser(),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def repo_name(self) -> str:
        return self.repo.rsplit("/", 1)[-1]

    @property
    def archive_url(self) -> str:
        return f"{self.mirror_base.rstrip('/')}/{self.repo}/archive/refs/heads/{self.branch}.zip"

    @property
    def archive_name(self) -> str:
        return f"{self.branch.replace('/', '-')}.zip"

    @property
    def extracted_prefix(self) -> str:
        return f"{self.repo_name}-"


@dataclass(frozen=True)
class BuildResult:
    core_path: Path
    source_root: Path
    version: str


def create_workdir(cache_root: Path) -> Path:
    """Create a fresh ``<cache_root>/<unix-ms>`` directory; never reuses one."""
    cache_root.mkdir(parents=True, exist_ok=True)
    stamp = int(time.time() * 1000)
    while True:
        candidate = cache_root / str(stamp)
        try:
            candidate.mkdir()
            return candidate
        except FileExistsError:
            stamp += 1


def read_core_version(core_path: Path) -> str:
    path = core_path / manifest.MANIFEST
    if not path.is_file():
        raise BuildError("version", f"Built package manifest not found: {path}")
    try:
        data = manifest.read_manifest(path)
    except ValueError as e:
        raise BuildError("version", f"Could not parse {path}: {e}") from e
    version = data.get("version")
    if not isinstance(version, str) or not version.strip():
        raise BuildError("version", f"No version field in {path}")
    return version.strip()


def list_packages(source_root: Path) -> list[Path]:
    """Sub-packages under ``packages/`` that carry a manifest, core first."""
    packages_dir = source_root / "packages"
    if not packages_dir.is_dir():
        return []
    found = sorted(p for p in packages_dir.iterdir() if (p / manifest.MANIFEST).is_file())
    found.sort(key=lambda p: p.name != "core")
    return found


class CoreBuilder:
    """Runs the build pipeline once per :meth:`build` call.

    The working directory, resolved archive URL and extracted root of the
    last run stay readable after a failure so recovery instructions can
    point at them.
    """

    def __init__(
        self,
        config: BuildConfig,
        *,
        runner: Runner = run_command,
        client: Optional[httpx.Client] = None,
        tracker: Optional[StepTracker] = None,
        verbose: bool = False,
    ):
        self.config = config
        self.runner = runner
        self.client = client
        self.tracker = tracker or StepTracker("Build core")
        self.verbose = verbose
        self.workdir: Optional[Path] = None
        self.source_root: Optional[Path] = None

    @property
    def archive_url(self) -> str:
        return self.config.archive_url

    @property
    def archive_path(self) -> Optional[Path]:
        return self.workdir / self.config.archive_name if self.workdir else None

    def build(self, manager: PackageManager) -> BuildResult:
        for key, label in BUILD_STEPS:
            self.tracker.add(key, label)
        cmds = commands_for(manager)

        with self._stage("workdir"):
            self.workdir = create_workdir(self.config.cache_root)
            self.source_root = None
        self.tracker.complete("workdir", str(self.workdir))

        with self._stage("download"):
            size = self._download(self.archive_path)
        self.tracker.complete("download", f"{size:,} bytes")

        with self._stage("extract"):
            self.source_root = extract(self.archive_path, self.workdir, self.config.extracted_prefix)
        self.tracker.complete("extract", self.source_root.name)

        with self._stage("prepare"):
            notes = self._prepare(self.source_root, manager)
        self.tracker.complete("prepare", ", ".join(notes) or "nothing to change")

        self._run("install", cmds.install_deps_cmd)
        self.tracker.complete("install", manager.value)

        with self._stage("pin"):
            pinned = self._pin(self.source_root, manager)
        if pinned:
            self.tracker.complete("pin", pinned)
        else:
            self.tracker.skip("pin", "already pinned or version unknown")

        self._run("compile", cmds.build_cmd)
        self.tracker.complete("compile")

        self.tracker.start("version")
        core_path = self.source_root / CORE_PACKAGE
        try:
            version = read_core_version(core_path)
        except BuildError as e:
            self.tracker.error("version", str(e.args[0]))
            raise
        self.tracker.complete("version", version)

        logger.debug("built core %s at %s", version, core_path)
        return BuildResult(core_path=core_path, source_root=self.source_root, version=version)

    def _download(self, destination: Path) -> int:
        def report(percent: int, received: int, total: int) -> None:
            self.tracker.start("download", f"{percent}% of {total:,} bytes")

        client = self.client or make_client()
        try:
            size = download(
                self.archive_url, destination, client=client, on_progress=report,
                headers=auth_headers(self.config.github_token),
            )
        finally:
            if self.client is None:
                client.close()
        on_disk = destination.stat().st_size if destination.exists() else 0
        if size == 0 or on_disk == 0:
            raise BuildError("download", f"Downloaded archive is empty: {self.archive_url}")
        return on_disk

    def _prepare(self, root: Path, manager: PackageManager) -> list[str]:
        notes = []
        if manifest.ensure_workspace_manifest(root):
            notes.append("root manifest created")
        placeholder = root / "yarn.lock"
        if not placeholder.exists():
            placeholder.touch()
            notes.append("yarn.lock placeholder")
        if manager is PackageManager.YARN:
            stripped = sum(
                manifest.rewrite_manifest(path, manifest.strip_package_manager)
                for path in manifest.find_files(root, manifest.MANIFEST)
            )
            if stripped:
                notes.append(f"unpinned {stripped} manifest(s)")
        return notes

    def _pin(self, root: Path, manager: PackageManager) -> Optional[str]:
        version = manager_version(manager, self.runner)
        if not version:
            return None
        spec = f"{manager.value}@{version}"
        changed = manifest.rewrite_manifest(
            root / manifest.MANIFEST, lambda data: manifest.pin_package_manager(data, spec)
        )
        return spec if changed else None

    def _run(self, stage: str, cmd: tuple[str, ...]) -> CommandResult:
        self.tracker.start(stage, " ".join(cmd))
        result = self.runner(cmd, cwd=self.source_root, capture=not self.verbose)
        if not result.ok:
            self.tracker.error(stage, f"exit {result.returncode}")
            raise BuildError(stage, f"`{result.command_line}` exited with {result.returncode}", result.output_tail())
        return result

    def _stage(self, key: str) -> "_Stage":
        return _Stage(self.tracker, key)


class _Stage:
    """Marks a tracker step running and turns failures into ``BuildError``."""

    def __init__(self, tracker: StepTracker, key: str):
        self.tracker = tracker
        self.key = key

    def __enter__(self):
        self.tracker.start(self.key)
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc is None:
            return False
        if isinstance(exc, BuildError):
            self.tracker.error(self.key, str(exc.args[0]))
            return False
        if isinstance(exc, (ScaffoldError, OSError, ValueError)):
            self.tracker.error(self.key, str(exc))
            raise BuildError(self.key, str(exc)) from exc
        return False
