"""Console output, step tracking and keyboard-driven selection prompts."""

from dataclasses import dataclass
from typing import Callable, Iterable, Optional

import readchar
import typer
from rich.align import Align
from rich.console import Console
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

console = Console()

BANNER = """
██╗   ██╗███████╗███████╗██╗███╗   ███╗██████╗  ██████╗ ████████╗
╚██╗ ██╔╝██╔════╝██╔════╝██║████╗ ████║██╔══██╗██╔═══██╗╚══██╔══╝
 ╚████╔╝ █████╗  ███████╗██║██╔████╔██║██████╔╝██║   ██║   ██║
  ╚██╔╝  ██╔══╝  ╚════██║██║██║╚██╔╝██║██╔══██╗██║   ██║   ██║
   ██║   ███████╗███████║██║██║ ╚═╝ ██║██████╔╝╚██████╔╝   ██║
   ╚═╝   ╚══════╝╚══════╝╚═╝╚═╝     ╚═╝╚═════╝  ╚═════╝    ╚═╝
"""

TAGLINE = "YesImBot Extension Scaffolder"

_STATUS_SYMBOLS = {
    "done": "[green]●[/green]",
    "pending": "[green dim]○[/green dim]",
    "running": "[cyan]○[/cyan]",
    "error": "[red]●[/red]",
    "skipped": "[yellow]○[/yellow]",
}


@dataclass
class Step:
    key: str
    label: str
    status: str = "pending"
    detail: str = ""


class StepTracker:
    """Ordered set of pipeline steps rendered as a tree.

    An attached refresh callback (usually ``Live.update``) is invoked after
    every state change so progress shows up while a step is running.
    """

    def __init__(self, title: str):
        self.title = title
        self.steps: list[Step] = []
        self._refresh_cb: Optional[Callable[[], None]] = None

    def attach_refresh(self, cb: Optional[Callable[[], None]]) -> None:
        self._refresh_cb = cb

    def add(self, key: str, label: str) -> None:
        if self._find(key) is None:
            self.steps.append(Step(key, label))
            self._refresh()

    def start(self, key: str, detail: str = "") -> None:
        self._update(key, "running", detail)

    def complete(self, key: str, detail: str = "") -> None:
        self._update(key, "done", detail)

    def error(self, key: str, detail: str = "") -> None:
        self._update(key, "error", detail)

    def skip(self, key: str, detail: str = "") -> None:
        self._update(key, "skipped", detail)

    def status(self, key: str) -> Optional[str]:
        step = self._find(key)
        return step.status if step else None

    def _find(self, key: str) -> Optional[Step]:
        for step in self.steps:
            if step.key == key:
                return step
        return None

    def _update(self, key: str, status: str, detail: str) -> None:
        step = self._find(key)
        if step is None:
            step = Step(key, key)
            self.steps.append(step)
        step.status = status
        if detail:
            step.detail = detail
        self._refresh()

    def _refresh(self) -> None:
        if self._refresh_cb:
            self._refresh_cb()

    def render(self) -> Tree:
        tree = Tree(f"[cyan]{self.title}[/cyan]", guide_style="grey50")
        for step in self.steps:
            symbol = _STATUS_SYMBOLS.get(step.status, " ")
            label = escape(step.label)
            detail = escape(step.detail.strip())
            if step.status == "pending":
                text = f"{label} ({detail})" if detail else label
                tree.add(f"{symbol} [bright_black]{text}[/bright_black]")
            elif detail:
                tree.add(f"{symbol} [white]{label}[/white] [bright_black]({detail})[/bright_black]")
            else:
                tree.add(f"{symbol} [white]{label}[/white]")
        return tree


def show_banner() -> None:
    banner_lines = BANNER.strip().split("\n")
    colors = ["bright_blue", "blue", "cyan", "bright_cyan", "white", "bright_white"]

    styled = Text()
    for i, line in enumerate(banner_lines):
        styled.append(line + "\n", style=colors[i % len(colors)])

    console.print(Align.center(styled))
    console.print(Align.center(Text(TAGLINE, style="italic bright_yellow")))
    console.print()


def get_key() -> str:
    """Read one keypress and normalise the keys the selectors care about."""
    key = readchar.readkey()
    if key == readchar.key.UP:
        return "up"
    if key == readchar.key.DOWN:
        return "down"
    if key == readchar.key.ENTER:
        return "enter"
    if key == readchar.key.SPACE:
        return "space"
    if key == readchar.key.ESC:
        return "escape"
    if key == readchar.key.CTRL_C:
        raise KeyboardInterrupt
    return key


def _cancelled() -> typer.Exit:
    console.print("\n[yellow]Selection cancelled[/yellow]")
    return typer.Exit(1)


def select_with_arrows(options: dict[str, str], prompt_text: str = "Select an option", default_key: Optional[str] = None) -> str:
    """Pick one key of ``options`` with the arrow keys; Enter confirms."""
    keys = list(options)
    index = keys.index(default_key) if default_key in keys else 0

    def panel() -> Panel:
        table = Table.grid(padding=(0, 2))
        table.add_column(style="cyan", justify="left", width=3)
        table.add_column(style="white", justify="left")
        for i, key in enumerate(keys):
            table.add_row("▶" if i == index else " ", f"[cyan]{key}[/cyan] [dim]({options[key]})[/dim]")
        table.add_row("", "")
        table.add_row("", "[dim]Use ↑/↓ to navigate, Enter to select, Esc to cancel[/dim]")
        return Panel(table, title=f"[bold]{prompt_text}[/bold]", border_style="cyan", padding=(1, 2))

    console.print()
    with Live(panel(), console=console, transient=True, auto_refresh=False) as live:
        while True:
            try:
                key = get_key()
            except KeyboardInterrupt:
                raise _cancelled()
            if key == "up":
                index = (index - 1) % len(keys)
            elif key == "down":
                index = (index + 1) % len(keys)
            elif key == "enter":
                return keys[index]
            elif key == "escape":
                raise _cancelled()
            live.update(panel(), refresh=True)


def select_many(options: dict[str, str], prompt_text: str = "Select options", defaults: Iterable[str] = ()) -> list[str]:
    """Toggle any number of ``options`` with Space; Enter confirms a non-empty pick."""
    keys = list(options)
    chosen = {k for k in defaults if k in options}
    index = 0

    def panel() -> Panel:
        table = Table.grid(padding=(0, 2))
        table.add_column(style="cyan", justify="left", width=3)
        table.add_column(style="white", justify="left")
        for i, key in enumerate(keys):
            mark = "[green]■[/green]" if key in chosen else "□"
            cursor = "▶" if i == index else " "
            table.add_row(cursor, f"{mark} [cyan]{key}[/cyan] [dim]({options[key]})[/dim]")
        table.add_row("", "")
        table.add_row("", "[dim]Space to toggle, Enter to confirm, Esc to cancel[/dim]")
        return Panel(table, title=f"[bold]{prompt_text}[/bold]", border_style="cyan", padding=(1, 2))

    console.print()
    with Live(panel(), console=console, transient=True, auto_refresh=False) as live:
        while True:
            try:
                key = get_key()
            except KeyboardInterrupt:
                raise _cancelled()
            if key == "up":
                index = (index - 1) % len(keys)
            elif key == "down":
                index = (index + 1) % len(keys)
            elif key == "space":
                chosen ^= {keys[index]}
            elif key == "enter" and chosen:
                return [k for k in keys if k in chosen]
            elif key == "escape":
                raise _cancelled()
            live.update(panel(), refresh=True)


def error_panel(message: str, title: str = "Failure") -> Panel:
    return Panel(message, title=f"[red]{title}[/red]", border_style="red", padding=(1, 2))


def commands_panel(commands: list[str], title: str = "Manual recovery") -> Panel:
    body = "\n".join(f"[cyan]{escape(line)}[/cyan]" for line in commands)
    return Panel(body, title=f"[yellow]{title}[/yellow]", border_style="yellow", padding=(1, 2))
