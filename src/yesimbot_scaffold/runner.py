"""Single-attempt child process execution returning structured results."""

import logging
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command_line(self) -> str:
        return shlex.join(self.args)

    def output_tail(self, lines: int = 20) -> str:
        """Last ``lines`` lines of combined output, for error panels."""
        combined = "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)
        return "\n".join(combined.splitlines()[-lines:])


Runner = Callable[..., CommandResult]


def run_command(
    cmd: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    capture: bool = True,
    env: Optional[Mapping[str, str]] = None,
    shell: bool = False,
) -> CommandResult:
    """Run a command once and report how it went.

    capture: when False the child writes straight to the terminal and the
    result carries no output.
    A missing executable is reported as returncode 127 instead of raising.
    """
    args = tuple(cmd)
    if not shell:
        # npm-style shims on Windows are .cmd files that Popen will not find by bare name
        resolved = shutil.which(args[0])
        if resolved:
            args = (resolved,) + args[1:]
    popen_args = args[0] if shell else list(args)

    logger.debug("run %s (cwd=%s)", shlex.join(cmd), cwd)
    try:
        if capture:
            completed = subprocess.run(
                popen_args, cwd=cwd, env=env, shell=shell,
                capture_output=True, text=True, errors="replace",
            )
            result = CommandResult(tuple(cmd), completed.returncode, completed.stdout or "", completed.stderr or "")
        else:
            completed = subprocess.run(popen_args, cwd=cwd, env=env, shell=shell)
            result = CommandResult(tuple(cmd), completed.returncode)
    except FileNotFoundError as e:
        result = CommandResult(tuple(cmd), 127, "", f"command not found: {cmd[0]} ({e})")
    except OSError as e:
        result = CommandResult(tuple(cmd), 126, "", f"could not execute {cmd[0]}: {e}")

    logger.debug("exit %s from %s", result.returncode, result.command_line)
    return result
