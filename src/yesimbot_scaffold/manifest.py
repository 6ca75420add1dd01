"""package.json helpers.

Mutations are expressed as pure ``dict -> dict`` transforms applied to files
found by :func:`find_files`, so the same transform can run over a whole tree.
"""

import json
import os
from pathlib import Path
from typing import Callable, Iterator

MANIFEST = "package.json"
PIN_FIELD = "packageManager"
SKIP_DIRS = {"node_modules", ".git"}


def find_files(root: Path, name: str) -> Iterator[Path]:
    """Yield every file called ``name`` below ``root``, lazily."""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
        if name in filenames:
            yield Path(dirpath) / name


def read_manifest(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    return data


def write_manifest(path: Path, data: dict) -> None:
    with path.open("w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=2, ensure_ascii=False)
        fh.write("\n")


def rewrite_manifest(path: Path, transform: Callable[[dict], dict]) -> bool:
    """Apply ``transform`` to the manifest at ``path``; write only if it changed."""
    before = read_manifest(path)
    after = transform(before)
    if after == before:
        return False
    write_manifest(path, after)
    return True


def strip_package_manager(manifest: dict) -> dict:
    return {k: v for k, v in manifest.items() if k != PIN_FIELD}


def pin_package_manager(manifest: dict, spec: str) -> dict:
    if PIN_FIELD in manifest:
        return dict(manifest)
    return {**manifest, PIN_FIELD: spec}


def ensure_workspace_manifest(root: Path) -> bool:
    """Give ``root`` a package.json with no workspaces if it has none.

    Without it the build tool may attach the snapshot to an enclosing
    workspace. Returns True when a file was created.
    """
    path = root / MANIFEST
    if path.exists():
        return False
    write_manifest(path, {"name": f"{root.name.lower()}-root", "private": True, "workspaces": []})
    return True


def update_package_json(path: Path, updates: dict) -> None:
    """Merge ``updates`` into the manifest, concatenating keywords and merging scripts."""
    current = read_manifest(path)
    merged = {
        **current,
        **updates,
        "keywords": [*current.get("keywords", []), *updates.get("keywords", [])],
        "scripts": {**current.get("scripts", {}), **updates.get("scripts", {})},
    }
    write_manifest(path, merged)
