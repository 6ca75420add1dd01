"""Decide where a new extension sits relative to the framework."""

from dataclasses import dataclass
from pathlib import Path

FRAMEWORK_CONFIG = "koishi.yml"
ROOT_MANIFEST = "package.json"


@dataclass(frozen=True)
class ProjectLocation:
    is_inside_framework_monorepo: bool
    is_valid_host_location: bool


def _inside_monorepo(path: Path) -> bool:
    packages_dir = path.parent.parent
    return packages_dir.name == "packages" and (packages_dir.parent / ROOT_MANIFEST).is_file()


def _in_external_dir(path: Path) -> bool:
    return path.parent.name == "external" and (path.parent.parent / FRAMEWORK_CONFIG).is_file()


def _is_external_dir(path: Path) -> bool:
    return path.name == "external" and (path.parent / FRAMEWORK_CONFIG).is_file()


def classify(project_path: Path) -> ProjectLocation:
    """Inspect the path only; nothing is created or read beyond existence checks.

    Inside the monorepo the workspace resolves the core locally, so callers
    skip the build and link pipeline.
    """
    path = project_path.absolute()
    inside = _inside_monorepo(path)
    valid = inside or _in_external_dir(path) or _is_external_dir(path)
    return ProjectLocation(is_inside_framework_monorepo=inside, is_valid_host_location=valid)
