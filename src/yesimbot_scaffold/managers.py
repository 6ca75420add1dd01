"""Package manager detection, command strategy table and bun bootstrap."""

import enum
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .runner import Runner, run_command

logger = logging.getLogger(__name__)


class PackageManager(str, enum.Enum):
    BUN = "bun"
    YARN = "yarn"

    @property
    def label(self) -> str:
        return MANAGER_LABELS[self]


MANAGER_LABELS = {
    PackageManager.BUN: "Bun (recommended)",
    PackageManager.YARN: "Yarn classic",
}

# Every lockfile either ecosystem may leave behind in a project.
ALL_LOCKFILES = ("bun.lockb", "bun.lock", "yarn.lock", "package-lock.json")


@dataclass(frozen=True)
class ManagerCommands:
    name: str
    version_cmd: tuple[str, ...]
    install_deps_cmd: tuple[str, ...]
    build_cmd: tuple[str, ...]
    add_local_prefix: tuple[str, ...]
    dev_cmd: tuple[str, ...]
    lockfiles: tuple[str, ...]

    def add_local_dep_cmd(self, path: Path) -> tuple[str, ...]:
        return self.add_local_prefix + (f"file:{path}",)


MANAGER_COMMANDS: dict[PackageManager, ManagerCommands] = {
    # bun does not enforce "engines", so a plain install is already relaxed
    PackageManager.BUN: ManagerCommands(
        name="bun",
        version_cmd=("bun", "--version"),
        install_deps_cmd=("bun", "install"),
        build_cmd=("bun", "run", "build"),
        add_local_prefix=("bun", "add", "--dev", "--force"),
        dev_cmd=("bun", "run", "dev"),
        lockfiles=("bun.lockb", "bun.lock"),
    ),
    PackageManager.YARN: ManagerCommands(
        name="yarn",
        version_cmd=("yarn", "--version"),
        install_deps_cmd=("yarn", "install", "--ignore-engines"),
        build_cmd=("yarn", "build"),
        add_local_prefix=("yarn", "add", "--dev", "--force", "--ignore-engines"),
        dev_cmd=("yarn", "dev"),
        lockfiles=("yarn.lock",),
    ),
}


def commands_for(manager: PackageManager) -> ManagerCommands:
    return MANAGER_COMMANDS[manager]


def manager_version(manager: PackageManager, runner: Runner = run_command) -> Optional[str]:
    """Installed version of ``manager``, or None when it does not run."""
    result = runner(commands_for(manager).version_cmd)
    if not result.ok:
        logger.debug("%s unavailable: %s", manager.value, result.output_tail(3))
        return None
    lines = result.stdout.strip().splitlines()
    return lines[-1].strip() if lines else ""


def detect_available_managers(runner: Runner = run_command) -> dict[PackageManager, Optional[str]]:
    return {manager: manager_version(manager, runner) for manager in PackageManager}


# ===== bun bootstrap =====

BUN_HOME = Path.home() / ".bun"
BUN_SCRIPT_INSTALL_POSIX = "curl -fsSL https://bun.sh/install | bash"
BUN_SCRIPT_INSTALL_WINDOWS = 'powershell -c "irm bun.sh/install.ps1 | iex"'
SHELL_RC_FILES = (".bashrc", ".zshrc")


def bun_install_methods() -> list[tuple[str, tuple[str, ...], bool]]:
    """Installation attempts in fallback order: (label, command, needs_shell)."""
    script = BUN_SCRIPT_INSTALL_WINDOWS if os.name == "nt" else BUN_SCRIPT_INSTALL_POSIX
    return [
        ("npm", ("npm", "install", "-g", "bun"), False),
        ("install script", (script,), True),
    ]


def bun_rc_lines(bun_home: Path = BUN_HOME) -> list[str]:
    return [
        f'export BUN_INSTALL="{bun_home}"',
        'export PATH="$BUN_INSTALL/bin:$PATH"',
    ]


def add_bun_to_process_path(bun_home: Path = BUN_HOME) -> None:
    bin_dir = str(bun_home / "bin")
    parts = os.environ.get("PATH", "").split(os.pathsep)
    if bin_dir not in parts:
        os.environ["PATH"] = os.pathsep.join([bin_dir] + [p for p in parts if p])


def append_shell_exports(home: Path, lines: list[str], rc_files=SHELL_RC_FILES) -> list[Path]:
    """Append ``lines`` to the user's shell rc files, skipping lines already present.

    Returns the files that were modified.
    """
    touched: list[Path] = []
    for name in rc_files:
        rc = home / name
        existing = rc.read_text(encoding="utf-8").splitlines() if rc.exists() else []
        missing = [line for line in lines if line not in existing]
        if not missing:
            continue
        with rc.open("a", encoding="utf-8") as fh:
            if existing and existing[-1].strip():
                fh.write("\n")
            fh.write("# bun\n")
            fh.write("\n".join(missing) + "\n")
        logger.info("appended %d line(s) to %s", len(missing), rc)
        touched.append(rc)
    return touched


def install_bun(
    runner: Runner = run_command,
    *,
    confirm_rc_edit: Callable[[list[str]], bool] = lambda lines: False,
    on_attempt: Callable[[str], None] = lambda label: None,
    home: Optional[Path] = None,
) -> bool:
    """Try each install method until bun answers ``--version``."""
    home = home or Path.home()
    bun_home = home / ".bun"
    for label, cmd, needs_shell in bun_install_methods():
        on_attempt(label)
        result = runner(cmd, shell=needs_shell) if needs_shell else runner(cmd)
        if not result.ok:
            logger.warning("bun install via %s failed: %s", label, result.output_tail(5))
            continue
        if needs_shell:
            add_bun_to_process_path(bun_home)
            lines = bun_rc_lines(bun_home)
            if confirm_rc_edit(lines):
                append_shell_exports(home, lines)
        if manager_version(PackageManager.BUN, runner) is not None:
            return True
        logger.warning("bun installed via %s but is still not runnable", label)
    return False


def select_package_manager(
    runner: Runner = run_command,
    *,
    choose: Callable[[dict[str, str], str], str],
    confirm: Callable[[str], bool],
    confirm_rc_edit: Callable[[list[str]], bool] = lambda lines: False,
    on_attempt: Callable[[str], None] = lambda label: None,
) -> Optional[PackageManager]:
    """Pick the package manager for this run.

    choose(options, default) is only asked when both managers answer.
    confirm(question) is only asked when neither does, to allow installing bun.
    None means no manager is usable and the caller must stop.
    """
    available = [m for m, version in detect_available_managers(runner).items() if version is not None]
    if len(available) == 2:
        picked = choose({m.value: m.label for m in available}, PackageManager.BUN.value)
        return PackageManager(picked)
    if len(available) == 1:
        return available[0]

    if not confirm("No package manager found (bun or yarn). Install bun now?"):
        return None
    if install_bun(runner, confirm_rc_edit=confirm_rc_edit, on_attempt=on_attempt):
        return PackageManager.BUN
    return None
