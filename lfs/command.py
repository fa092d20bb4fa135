"""
Execution of typed steps.

A ShellStep is a program plus its argument list and is run without a shell,
so nothing needs quoting. A FileStep writes literal lines to a path. In dry
mode both are only printed to the TUI.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from rich.markup import escape

from lfs.errors import StepFailedError
from lfs.tui import TUI
from lfs.types import FileStep, ShellStep, Step

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CmdResult:
  argv: list[str]
  returncode: int
  stdout: str
  stderr: str

  @property
  def ok(self) -> bool:
    return self.returncode == 0


def format_argv(argv: Iterable[str]) -> str:
  return " ".join(shlex.quote(a) for a in argv)


def shell_step(*argv: str, cwd: str | None = None, env: Mapping[str, str] | None = None, **kwargs) -> ShellStep:
  """Build a ShellStep from positional arguments."""
  return ShellStep(argv=tuple(argv), cwd=cwd, env=tuple((env or {}).items()), **kwargs)


def file_step(path: str, lines: Iterable[str], mode: int | None = None, description: str = "") -> FileStep:
  return FileStep(path=path, lines=tuple(lines), mode=mode, description=description)


class CommandRunner:
  """Runs steps, logging every command. Failing checked steps raise StepFailedError."""

  def __init__(self, dry_run: bool, ui: TUI) -> None:
    self.dry_run: bool = dry_run
    self.ui: TUI = ui

  def execute(self, step: Step) -> CmdResult | None:
    if isinstance(step, FileStep):
      self.write(step)
      return None
    return self.run(step)

  def run(self, step: ShellStep) -> CmdResult:
    command = format_argv(step.argv)
    logger.info("CMD %s", command)

    if self.dry_run:
      suffix = " (with stdin data)" if step.stdin is not None else ""
      self.ui.print(f"[bold green][dim][DRY RUN] {escape(command)}{suffix}[/][/]")
      return CmdResult(argv=list(step.argv), returncode=0, stdout="", stderr="")

    if step.description:
      self.ui.print(f"[dim]{escape(step.description)}[/]")

    try:
      p = subprocess.run(
        list(step.argv),
        input=step.stdin,
        text=True,
        capture_output=True,
        cwd=step.cwd,
        env=dict(os.environ, **dict(step.env)) if step.env else None,
      )

    except FileNotFoundError as e:
      raise StepFailedError(step.argv, 127, str(e)) from e

    if p.stdout:
      logger.debug("STDOUT %s", p.stdout.strip())
    if p.stderr:
      logger.debug("STDERR %s", p.stderr.strip())

    if step.check and p.returncode != 0:
      logger.error("Command failed (%d): %s", p.returncode, command)
      raise StepFailedError(step.argv, p.returncode, p.stderr)

    return CmdResult(argv=list(step.argv), returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)

  def write(self, step: FileStep) -> None:
    logger.info("WRITE %s (%d lines)", step.path, len(step.lines))

    if self.dry_run:
      self.ui.print(f"[bold green][dim][DRY RUN] Writing to {escape(step.path)}:[/][/]")
      for line in step.lines:
        self.ui.print(f"[dim]{escape(line)}[/]")
      return

    with open(step.path, "w") as f:
      for line in step.lines:
        print(line, file=f)

    if step.mode is not None:
      os.chmod(step.path, step.mode)
