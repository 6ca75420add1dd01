"""Render an extension project from the bundled templates."""

import json
import logging
import re
import shutil
from pathlib import Path
from typing import Iterable, Mapping

from .manifest import update_package_json

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"
PACKAGE_PREFIX = "koishi-plugin-yesimbot-extension-"
NAME_PATTERN = re.compile(r"^[a-z0-9-]+$")

# (template set, destination relative to the project root)
TEMPLATE_SETS = (("base", "."), ("extension", "src"))
RENDERED_FILES = ("src/index.ts", "README.md", "package.json")

EXTENSION_SCRIPTS = {
    "build": "tsc && node esbuild.config.mjs",
    "dev": "tsc -w --preserveWatchOutput",
    "lint": "eslint . --ext .ts",
    "clean": "rm -rf lib .turbo tsconfig.tsbuildinfo *.tgz",
    "pack": "bun pm pack",
}
EXTENSION_KEYWORDS = ["koishi", "plugin", "extension", "yesimbot"]


def validate_extension_name(name: str) -> bool:
    return bool(NAME_PATTERN.match(name or ""))


def default_display_name(name: str) -> str:
    return name.replace("-", " ")


def class_name(friendly_name: str) -> str:
    return "".join(word[:1].upper() + word[1:] for word in friendly_name.split(" ") if word)


def full_package_name(name: str) -> str:
    return f"{PACKAGE_PREFIX}{name}"


def copy_template(name: str, dest: Path) -> None:
    source = TEMPLATE_DIR / name
    if not source.is_dir():
        raise FileNotFoundError(f"Template set '{name}' not found in {TEMPLATE_DIR}")
    shutil.copytree(source, dest, dirs_exist_ok=True)


def substitute(path: Path, bindings: Mapping[str, str]) -> None:
    text = path.read_text(encoding="utf-8")
    as_json = path.suffix == ".json"
    for key, value in bindings.items():
        if as_json:
            value = json.dumps(value)[1:-1]
        text = text.replace("{{" + key + "}}", value)
    path.write_text(text, encoding="utf-8")


def render_project(
    template_sets: Iterable[tuple[str, str]],
    destination: Path,
    bindings: Mapping[str, str],
    files: Iterable[str] = RENDERED_FILES,
) -> None:
    for name, subdir in template_sets:
        copy_template(name, destination / subdir)
    for rel in files:
        target = destination / rel
        if target.exists():
            substitute(target, bindings)


def scaffold_extension(project_path: Path, name: str, friendly_name: str, description: str) -> dict:
    """Create ``project_path`` from the templates and return the bindings used.

    The directory is removed again if anything fails half way.
    """
    bindings = {
        "name": name,
        "friendlyName": friendly_name,
        "description": description,
        "ClassName": class_name(friendly_name),
        "fullPackageName": full_package_name(name),
    }
    project_path.mkdir(parents=True)
    try:
        render_project(TEMPLATE_SETS, project_path, bindings)
        update_package_json(project_path / "package.json", {
            "name": bindings["fullPackageName"],
            "description": description,
            "scripts": EXTENSION_SCRIPTS,
            "keywords": EXTENSION_KEYWORDS,
        })
    except Exception:
        logger.debug("scaffolding %s failed, removing it", project_path)
        shutil.rmtree(project_path, ignore_errors=True)
        raise
    return bindings
