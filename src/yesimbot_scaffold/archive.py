"""Zip extraction and discovery of the snapshot's root directory."""

import logging
import zipfile
from pathlib import Path

from .errors import ExtractionError

logger = logging.getLogger(__name__)


def extract(archive_path: Path, destination: Path, prefix: str) -> Path:
    """Unpack ``archive_path`` into ``destination`` and return the extracted root.

    Branch snapshots unpack to ``<repo>-<branch>/``, so the root is found by
    ``prefix`` rather than by a fixed name.
    """
    destination.mkdir(parents=True, exist_ok=True)
    try:
        with zipfile.ZipFile(archive_path, "r") as zip_ref:
            logger.debug("%s contains %d entries", archive_path.name, len(zip_ref.namelist()))
            zip_ref.extractall(destination)
    except (zipfile.BadZipFile, zipfile.LargeZipFile) as e:
        raise ExtractionError(f"{archive_path} is not a readable zip archive: {e}") from e
    except OSError as e:
        raise ExtractionError(f"Could not extract {archive_path} into {destination}: {e}") from e

    children = sorted(destination.iterdir(), key=lambda p: p.name)
    for child in children:
        if child.is_dir() and child.name.startswith(prefix):
            return child

    found = ", ".join(child.name for child in children) or "(empty)"
    raise ExtractionError(f"No directory starting with '{prefix}' in {destination}. Found: {found}")
