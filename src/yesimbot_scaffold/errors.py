"""Exception types raised by the build and link pipeline."""

from typing import Optional


class ScaffoldError(Exception):
    """Base class for every failure the CLI reports to the user."""


class DownloadError(ScaffoldError):
    """Network, timeout, write failure or empty payload while fetching an archive."""


class ExtractionError(ScaffoldError):
    """Archive is corrupt or the expected top-level directory is missing."""


class ToolchainError(ScaffoldError):
    """No usable package manager is available or installable."""


class StageError(ScaffoldError):
    """A pipeline stage failed. ``stage`` names the step that aborted the run."""

    def __init__(self, stage: str, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.stage = stage
        self.detail = detail

    def __str__(self) -> str:
        base = f"[{self.stage}] {self.args[0]}"
        if self.detail:
            return f"{base}\n{self.detail}"
        return base


class BuildError(StageError):
    """Dependency install, compile or version read of the core package failed."""


class LinkError(StageError):
    """Installing the built core into the new project failed."""
