"""
YesImBot extension scaffolder

Usage:
    yesimbot-scaffold create <extension-name>
    yesimbot-scaffold update --path <host-project>
    yesimbot-scaffold check

Creates a Koishi plugin extension for YesImBot and, when the new project
lives outside the YesImBot monorepo, downloads and builds the framework core
and installs it into the project as a local dependency.
"""

import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

import typer
from rich.live import Live
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from typer.core import TyperGroup

from . import manifest
from .build import BuildConfig, BuildResult, CoreBuilder, list_packages
from .errors import BuildError, LinkError, ScaffoldError, ToolchainError
from .fetch import make_client
from .link import ExtensionLinker
from .location import classify
from .managers import (
    PackageManager,
    commands_for,
    detect_available_managers,
    manager_version,
    select_package_manager,
)
from .recovery import build_recovery_commands, link_recovery_commands
from .runner import run_command
from .scaffold import default_display_name, full_package_name, scaffold_extension, validate_extension_name
from .ui import (
    StepTracker,
    commands_panel,
    console,
    error_panel,
    select_many,
    select_with_arrows,
    show_banner,
)

logger = logging.getLogger(__name__)

__all__ = ["app", "main"]


class BannerGroup(TyperGroup):
    """Custom group that shows banner before help."""

    def format_help(self, ctx, formatter):
        show_banner()
        super().format_help(ctx, formatter)


app = typer.Typer(
    name="yesimbot-scaffold",
    help="Scaffold YesImBot extensions and link them against a freshly built core",
    add_completion=False,
    invoke_without_command=True,
    cls=BannerGroup,
)


def setup_logging(debug: bool) -> None:
    pkg_logger = logging.getLogger(__name__)
    if not any(isinstance(h, RichHandler) for h in pkg_logger.handlers):
        pkg_logger.addHandler(RichHandler(console=console, show_path=False, rich_tracebacks=True))
        pkg_logger.propagate = False
    pkg_logger.setLevel(logging.DEBUG if debug else logging.WARNING)


@app.callback()
def callback(ctx: typer.Context):
    """Print usage when no subcommand is given."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


# ===== shared option helpers =====

def _build_config(mirror: Optional[str], branch: Optional[str], github_token: Optional[str]) -> BuildConfig:
    return BuildConfig.from_env(mirror_base=mirror, branch=branch, github_token=github_token)


def _interactive() -> bool:
    return sys.stdin.isatty()


def resolve_manager(requested: Optional[PackageManager], allow_rc_edit: bool) -> PackageManager:
    """Return the manager for this run or raise ``ToolchainError``."""
    if requested is not None:
        if manager_version(requested) is None:
            raise ToolchainError(f"{requested.value} was requested but `{requested.value} --version` failed")
        return requested

    def choose(options: dict[str, str], default: str) -> str:
        if not _interactive():
            return default
        return select_with_arrows(options, "Choose a package manager", default)

    def confirm(question: str) -> bool:
        return Confirm.ask(f"[yellow]{question}[/yellow]", default=True, console=console)

    def confirm_rc_edit(lines: list[str]) -> bool:
        console.print(Panel("\n".join(lines), title="Shell profile (~/.bashrc, ~/.zshrc)", border_style="yellow"))
        if allow_rc_edit:
            console.print("[yellow]Appending the lines above (--allow-rc-edit)[/yellow]")
            return True
        return Confirm.ask("Append these lines to your shell profile?", default=False, console=console)

    def on_attempt(label: str) -> None:
        console.print(f"[cyan]Installing bun via {label}...[/cyan]")

    selected = select_package_manager(
        run_command, choose=choose, confirm=confirm, confirm_rc_edit=confirm_rc_edit, on_attempt=on_attempt,
    )
    if selected is None:
        raise ToolchainError("No package manager available: install bun or yarn and try again")
    console.print(f"[cyan]Package manager:[/cyan] {selected.value}")
    return selected


@contextmanager
def tracked(tracker: StepTracker, verbose: bool):
    """Live-render ``tracker`` unless child output is being streamed to the terminal."""
    try:
        if verbose:
            yield
        else:
            with Live(tracker.render(), console=console, refresh_per_second=8, transient=True) as live:
                tracker.attach_refresh(lambda: live.update(tracker.render()))
                yield
    finally:
        tracker.attach_refresh(None)
        console.print(tracker.render())


def describe(error: BaseException) -> str:
    lines = [str(error)]
    cause = error.__cause__
    while cause is not None:
        lines.append(f"caused by {type(cause).__name__}: {cause}")
        cause = cause.__cause__
    return "\n".join(lines)


def fail(error: ScaffoldError, recovery: Optional[list[str]] = None, note: Optional[str] = None, debug: bool = False) -> typer.Exit:
    logger.debug("pipeline failed", exc_info=error)
    console.print(error_panel(escape(describe(error)), title=type(error).__name__))
    if recovery:
        console.print(commands_panel(recovery))
    if note:
        console.print(f"[dim]{escape(note)}[/dim]")
    if debug:
        env_pairs = [("Python", sys.version.split()[0]), ("Platform", sys.platform), ("CWD", str(Path.cwd()))]
        width = max(len(k) for k, _ in env_pairs)
        env_lines = [f"{k.ljust(width)} → [bright_black]{v}[/bright_black]" for k, v in env_pairs]
        console.print(Panel("\n".join(env_lines), title="Debug Environment", border_style="magenta"))
    return typer.Exit(1)


def toolchain_recovery() -> list[str]:
    return [
        "npm install -g bun",
        "curl -fsSL https://bun.sh/install | bash",
        "npm install -g yarn",
    ]


def run_build(config: BuildConfig, selected: PackageManager, *, skip_tls: bool, verbose: bool, debug: bool, title: str) -> BuildResult:
    tracker = StepTracker(title)
    with make_client(skip_tls) as client:
        builder = CoreBuilder(config, client=client, tracker=tracker, verbose=verbose)
        try:
            with tracked(tracker, verbose):
                return builder.build(selected)
        except BuildError as e:
            note = f"Working directory kept for inspection: {builder.workdir}" if builder.workdir else None
            raise fail(e, build_recovery_commands(builder, selected), note, debug)


def run_link(project_path: Path, result: BuildResult, selected: PackageManager, packages: list[Path], *, verbose: bool, debug: bool) -> None:
    tracker = StepTracker("Link into project")
    try:
        with tracked(tracker, verbose):
            ExtensionLinker(tracker=tracker, verbose=verbose).link(project_path, result, selected, packages)
    except LinkError as e:
        raise fail(e, link_recovery_commands(project_path, selected, packages, result.core_path), debug=debug)


# ===== create =====

def collect_answers(name: Optional[str], display_name: Optional[str], description: Optional[str], yes: bool) -> Optional[dict]:
    """Ask for whatever was not given on the command line. None means cancelled."""
    while not name or not validate_extension_name(name):
        if name:
            console.print("[red]Name must be kebab-case (lowercase letters, digits, hyphens)[/red]")
        name = Prompt.ask("Extension name (kebab-case)", console=console)
    if display_name is None:
        display_name = Prompt.ask("Display name", default=default_display_name(name), console=console)
    if description is None:
        description = Prompt.ask("Description", default="", console=console)
    if not yes and not Confirm.ask("Create the extension with these settings?", default=True, console=console):
        return None
    return {"name": name, "display_name": display_name, "description": description}


def next_steps(project_name: str, selected: Optional[PackageManager], needs_install: bool) -> Panel:
    cmds = commands_for(selected or PackageManager.BUN)
    lines = [f"1. Go to the project folder: [cyan]cd {project_name}[/cyan]"]
    step = 2
    if needs_install:
        lines.append(f"{step}. Install dependencies: [cyan]{' '.join(cmds.install_deps_cmd)}[/cyan]")
        step += 1
    lines.append(f"{step}. Start the watcher: [cyan]{' '.join(cmds.dev_cmd)}[/cyan]")
    lines.append("")
    lines.append("Remember to add your tools in [cyan]src/index.ts[/cyan] and document them in [cyan]README.md[/cyan].")
    lines.append(f"Extra dependencies: [cyan]{cmds.add_local_prefix[0]} add <package>[/cyan]")
    return Panel("\n".join(lines), title="Next Steps", border_style="cyan", padding=(1, 2))


@app.command()
def create(
    name: str = typer.Argument(None, help="Extension name in kebab-case; becomes the directory name"),
    display_name: str = typer.Option(None, "--display-name", help="Human readable name (default: name with spaces)"),
    description: str = typer.Option(None, "--description", help="Short description of the extension"),
    directory: Path = typer.Option(None, "--dir", help="Parent directory for the new project (default: current directory)"),
    manager: Optional[PackageManager] = typer.Option(None, "--manager", case_sensitive=False, help="Package manager to use: bun or yarn"),
    skip_link: bool = typer.Option(False, "--skip-link", help="Only scaffold; do not build and link the core"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the final confirmation"),
    mirror: str = typer.Option(None, "--mirror", help="Archive mirror base URL (or set YESIMBOT_MIRROR_BASE)"),
    branch: str = typer.Option(None, "--branch", help="Branch snapshot to build (or set YESIMBOT_BRANCH)"),
    github_token: str = typer.Option(None, "--github-token", help="Token for the archive request (or set GH_TOKEN or GITHUB_TOKEN)"),
    skip_tls: bool = typer.Option(False, "--skip-tls", help="Skip SSL/TLS verification (not recommended)"),
    allow_rc_edit: bool = typer.Option(False, "--allow-rc-edit", help="Allow appending bun PATH exports to ~/.bashrc and ~/.zshrc"),
    verbose: bool = typer.Option(False, "--verbose", help="Stream package manager output instead of the progress tree"),
    debug: bool = typer.Option(False, "--debug", help="Show diagnostic logging"),
):
    """
    Create a new YesImBot extension.

    This command will:
    1. Ask for the extension name, display name and description
    2. Render the extension templates into a new directory
    3. Detect whether the directory is inside the YesImBot monorepo
    4. Otherwise download and build the YesImBot core and install it locally

    Examples:
        yesimbot-scaffold create weather
        yesimbot-scaffold create weather --manager yarn
        yesimbot-scaffold create weather --skip-link -y
    """
    setup_logging(debug)
    show_banner()

    answers = collect_answers(name, display_name, description, yes)
    if answers is None:
        console.print("\n[yellow]Extension creation cancelled[/yellow]")
        raise typer.Exit(0)
    name = answers["name"]

    project_path = (directory or Path.cwd()).resolve() / name
    if project_path.exists():
        console.print(error_panel(
            f"Directory '[cyan]{name}[/cyan]' already exists\n"
            "Please choose a different extension name or remove the existing directory.",
            title="Directory Conflict",
        ))
        raise typer.Exit(1)

    setup_lines = [
        "[cyan]YesImBot Extension Setup[/cyan]",
        "",
        f"{'Package':<15} [green]{full_package_name(name)}[/green]",
        f"{'Display name':<15} {escape(answers['display_name'])}",
        f"{'Target Path':<15} [dim]{project_path}[/dim]",
    ]
    console.print(Panel("\n".join(setup_lines), border_style="cyan", padding=(1, 2)))

    try:
        scaffold_extension(project_path, name, answers["display_name"], answers["description"])
    except (OSError, ValueError) as e:
        console.print(error_panel(f"Could not create the project: {escape(str(e))}"))
        raise typer.Exit(1)
    console.print(f"[green]Created[/green] {project_path}")

    location = classify(project_path)
    if location.is_inside_framework_monorepo:
        console.print("[cyan]Inside the YesImBot monorepo, skipping build and link[/cyan]")
        console.print(next_steps(name, manager, needs_install=True))
        return
    if not location.is_valid_host_location:
        console.print(Panel(
            "This directory is not a Koishi [cyan]external/[/cyan] folder, so Koishi will not load the "
            "extension automatically. Move it under [cyan]<koishi-app>/external/[/cyan] when ready.",
            title="[yellow]Location[/yellow]", border_style="yellow",
        ))

    if skip_link:
        console.print(next_steps(name, manager, needs_install=True))
        return

    try:
        selected = resolve_manager(manager, allow_rc_edit)
    except ToolchainError as e:
        raise fail(e, toolchain_recovery(), f"The project was created at {project_path}", debug)

    config = _build_config(mirror, branch, github_token)
    result = run_build(config, selected, skip_tls=skip_tls, verbose=verbose, debug=debug, title="Build YesImBot core")
    run_link(project_path, result, selected, [result.core_path], verbose=verbose, debug=debug)

    console.print(f"\n[bold green]Extension ready[/bold green] (core {result.version})")
    console.print(next_steps(name, selected, needs_install=False))


# ===== update =====

def _package_versions(packages: list[Path]) -> dict[str, str]:
    versions = {}
    for package in packages:
        try:
            versions[package.name] = manifest.read_manifest(package / manifest.MANIFEST).get("version", "?")
        except (OSError, ValueError):
            versions[package.name] = "?"
    return versions


def choose_packages(available: list[Path], requested: Optional[list[str]]) -> list[Path]:
    by_name = {p.name: p for p in available}
    if requested:
        unknown = [n for n in requested if n not in by_name]
        if unknown:
            raise BuildError("select", f"Unknown package(s): {', '.join(unknown)}. Available: {', '.join(by_name) or '(none)'}")
        return [by_name[n] for n in requested]
    if len(available) > 1 and _interactive():
        picked = select_many(_package_versions(available), "Packages to link", defaults=["core"])
        return [by_name[n] for n in picked]
    return [by_name["core"]] if "core" in by_name else available[:1]


@app.command()
def update(
    path: Path = typer.Option(Path("."), "--path", help="Host project to update (default: current directory)"),
    package: Optional[list[str]] = typer.Option(None, "--package", "-p", help="Built package to link (repeatable, default: core)"),
    manager: Optional[PackageManager] = typer.Option(None, "--manager", case_sensitive=False, help="Package manager to use: bun or yarn"),
    mirror: str = typer.Option(None, "--mirror", help="Archive mirror base URL (or set YESIMBOT_MIRROR_BASE)"),
    branch: str = typer.Option(None, "--branch", help="Branch snapshot to build (or set YESIMBOT_BRANCH)"),
    github_token: str = typer.Option(None, "--github-token", help="Token for the archive request (or set GH_TOKEN or GITHUB_TOKEN)"),
    skip_tls: bool = typer.Option(False, "--skip-tls", help="Skip SSL/TLS verification (not recommended)"),
    allow_rc_edit: bool = typer.Option(False, "--allow-rc-edit", help="Allow appending bun PATH exports to ~/.bashrc and ~/.zshrc"),
    verbose: bool = typer.Option(False, "--verbose", help="Stream package manager output instead of the progress tree"),
    debug: bool = typer.Option(False, "--debug", help="Show diagnostic logging"),
):
    """Rebuild the YesImBot core and relink selected packages into an existing project."""
    setup_logging(debug)
    show_banner()

    project_path = path.resolve()
    if not (project_path / manifest.MANIFEST).is_file():
        console.print(error_panel(f"No package.json in {project_path}", title="Not a project"))
        raise typer.Exit(1)

    try:
        selected = resolve_manager(manager, allow_rc_edit)
    except ToolchainError as e:
        raise fail(e, toolchain_recovery(), debug=debug)

    config = _build_config(mirror, branch, github_token)
    result = run_build(config, selected, skip_tls=skip_tls, verbose=verbose, debug=debug, title="Rebuild YesImBot core")

    try:
        packages = choose_packages(list_packages(result.source_root), package)
    except BuildError as e:
        raise fail(e, debug=debug)
    if not packages:
        raise fail(BuildError("select", f"No built packages found under {result.source_root / 'packages'}"), debug=debug)

    run_link(project_path, result, selected, packages, verbose=verbose, debug=debug)
    console.print(f"\n[bold green]Linked[/bold green] {', '.join(p.name for p in packages)} (core {result.version})")


# ===== check =====

@app.command()
def check():
    """Report which package managers are installed."""
    show_banner()
    tracker = StepTracker("Package managers")
    found = detect_available_managers()
    for selected, version in found.items():
        tracker.add(selected.value, selected.label)
        if version is None:
            tracker.error(selected.value, "not found")
        else:
            tracker.complete(selected.value, version)
    console.print(tracker.render())

    if all(version is None for version in found.values()):
        console.print("[dim]Tip: `yesimbot-scaffold create` can install bun for you[/dim]")
    else:
        console.print("\n[bold green]Ready to build the YesImBot core.[/bold green]")


def main():
    app()


if __name__ == "__main__":
    main()
