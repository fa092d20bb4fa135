"""
Status display: a one-line progress panel above a scrolling output area.

When stdout is not a terminal the TUI degrades to plain console prints.
"""

import shutil
import sys
from collections import deque

from rich import box
from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

console = Console()

STEP_PREFIXES = {
  "Probe Boot Mode": "? ",
  "Partition Disk": "# ",
  "Fetch Packages": "v ",
  "Prepare Environment": "^ ",
  "Build Cross Toolchain": "& ",
  "Mount Virtual Filesystems": "@ ",
  "Build Temp Tools": "% ",
  "Build Final System": "* ",
  "Install X11": "+ ",
}

COLORS = {"text": "bold cyan", "border": "cyan", "dry": "yellow"}

# Lines kept for redraws; only the tail that fits the terminal is shown.
OUTPUT_HISTORY = 500


def progress_bar(current: int, total: int) -> str:
  return f"[{'▓' * current}{'░' * (total - current)}]"


class TUI:
  def __init__(self, dry_mode: bool = False):
    self.enabled: bool = sys.stdout.isatty()
    self.dry_mode: bool = dry_mode
    self.initialized: bool = False
    self.status_text: str = ""
    self.live: Live | None = None
    self.layout: Layout | None = None
    self.output_lines: deque[str] = deque(maxlen=OUTPUT_HISTORY)

  def initialize(self) -> None:
    if not self.enabled or self.initialized:
      return
    self.initialized = True

  def _status_panel(self) -> Panel:
    return Panel(
      Text(self.status_text, style=COLORS["text"]),
      border_style=COLORS["dry"] if self.dry_mode else COLORS["border"],
      padding=(0, 1),
      expand=False,
      box=box.SQUARE,
      title="lfs-install (dry run)" if self.dry_mode else "lfs-install",
      title_align="left",
    )

  def _output(self) -> Text:
    visible = max(1, shutil.get_terminal_size().lines - 4)
    return Text.from_markup("\n".join(list(self.output_lines)[-visible:]))

  def _start_live(self) -> None:
    layout = Layout()
    layout.split_column(
      Layout(self._status_panel(), name="status", size=3),
      Layout(self._output(), name="output", ratio=1),
    )
    self.layout = layout
    self.live = Live(layout, console=console, refresh_per_second=10, screen=False)
    self.live.start()

  def update_progress(self, current: int, total: int, step_name: str) -> None:
    """Show `step_name` as step `current` of `total`."""
    prefix = STEP_PREFIXES.get(step_name, "")
    self.update_status(f"{prefix}{progress_bar(current, total)} {step_name} · Step {current}/{total}")

  def update_status(self, message: str) -> None:
    if not self.enabled:
      console.print(f"[{COLORS['text']}]{escape(message)}[/]")
      return

    if not self.initialized:
      return

    self.status_text = message
    if self.live is None:
      self._start_live()
    elif self.layout:
      self.layout["status"].update(self._status_panel())

  def print(self, message: str) -> None:
    """Print message to output area when Live is active, or console when not."""
    self.output_lines.append(message)
    if self.live and self.layout:
      self.layout["output"].update(self._output())
    else:
      console.print(message)

  def pause(self) -> None:
    """Stop the live display so prompts can use the terminal. The next status update restarts it."""
    if self.live:
      self.live.stop()
      self.live = None

  def cleanup(self) -> None:
    if not (self.enabled and self.initialized):
      return

    self.pause()
    self.initialized = False
