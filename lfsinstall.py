#!/usr/bin/env python3

import argparse
import logging
import sys
from argparse import Namespace
from textwrap import dedent
from typing import override

from rich.console import Console
from rich.markup import escape

from lfs.context import ContextConfig, InstallerContext
from lfs.errors import InstallerError, MissingToolError
from lfs.logs import DEFAULT_LOG_PATH, configure_logging
from lfs.probe import is_root, missing_tools, mounted_under
from lfs.provision import teardown
from lfs.report import print_summary
from lfs.steps import get_install_steps, step_0_configure
from lfs.tui import TUI
from lfs.types import DefaultsConfig, InstallState
from lfs.utils import format_step_name, load_defaults

__version__ = "0.1.0"

console = Console()
logger = logging.getLogger("lfsinstall")


class IndentedHelpFormatter(argparse.RawDescriptionHelpFormatter):
  def __init__(self, prog: str, **kwargs) -> None:
    super().__init__(prog, max_help_position=30, width=80, **kwargs)

  @override
  def _format_action_invocation(self, action: argparse.Action) -> str:
    options = action.option_strings
    if not options:
      return super()._format_action_invocation(action)

    parts: list[str] = []
    if len(options) == 1:
      parts.append(f"{'':4}{options[0]}")

    else:
      parts.append(f"{', '.join(options)}")

    if action.nargs != 0:
      default_metavar = self._get_default_metavar_for_optional(action)
      parts[-1] += f" {self._format_args(action, default_metavar)}"

    return parts[-1]


def _check_system_requirements(defaults: DefaultsConfig) -> None:
  """Check if the host can run the installation. Every failure is fatal."""
  if not is_root():
    console.print("\n[prompt.invalid]Root privileges are required. Please re-run the installer as root.[/]")
    sys.exit(1)

  missing = missing_tools(defaults["required_tools"])
  if missing:
    raise MissingToolError(missing)

  mount_root = defaults["mount_root"]
  try:
    with open("/proc/mounts", "r") as f:
      if mounted_under(mount_root, f):
        console.print(f"\n[prompt.invalid]{mount_root} is currently mounted or has mounted subdirectories.[/]")
        console.print("Please unmount before running the installer.")
        sys.exit(1)
  except OSError:
    logger.debug("/proc/mounts not readable, skipping mount check")


def _create_argument_parser() -> argparse.ArgumentParser:
  """Create and configure the argument parser."""
  parser = argparse.ArgumentParser(
    formatter_class=IndentedHelpFormatter,
    description=dedent("""
      An interactive installer for Linux From Scratch.

      It partitions a disk, downloads the LFS sources, builds the
      cross-toolchain and the temporary tools, and then builds a
      bootable system in a chroot, optionally with X11.
    """),
    epilog=dedent(f"""
      Examples:
        %(prog)s                               # Interactive installation
        %(prog)s --dry                         # Preview installation steps
        %(prog)s --log-file ./install.log      # Log somewhere else

      The log is written to {DEFAULT_LOG_PATH} by default.
    """),
  )

  _ = parser.add_argument(
    "-d",
    "--dry",
    action="store_true",
    help="preview installation steps without executing commands or writing files",
    dest="dry",
  )

  _ = parser.add_argument(
    "-l",
    "--log-file",
    metavar="PATH",
    type=str,
    default=None,
    help=f"write the installation log to PATH [default: {DEFAULT_LOG_PATH}]",
    dest="log_file",
  )

  _ = parser.add_argument("--version", action="version", version=f"lfs-install {__version__}")

  return parser


def _create_context_config(args: Namespace) -> ContextConfig:
  """Create a typed ContextConfig from an argparse Namespace."""
  return ContextConfig(
    dry=bool(getattr(args, "dry", False)),
    log_file=getattr(args, "log_file", None),
  )


def _abort(ctx: InstallerContext, message: str) -> None:
  """Print the failure, release what was mounted and exit 1."""
  ctx.ui.cleanup()
  console.print(f"\n[prompt.invalid]{escape(message)}[/]")
  console.print("\n[prompt.invalid]Installation cannot continue.[/]")

  if ctx.layout is not None and not ctx.dry:
    console.print("Unmounting the target filesystems...")
    failed = teardown(ctx.layout, ctx.runner)
    for command in failed:
      console.print(f" • could not run: {escape(command)}")

  if ctx.dry:
    console.print("\n[prompt.invalid]This error occurred during dry run - actual installation might fail.[/]")
  sys.exit(1)


def _run_installation(ctx: InstallerContext, ui: TUI, warnings: list[str]) -> None:
  """Run the installation process with proper error handling."""
  try:
    step_0_configure(ctx, warnings)

  except InstallerError as e:
    _abort(ctx, f"Configuration failed: {e}")

  steps = get_install_steps(ctx)[1:]
  total_steps = len(steps)

  for i, step in enumerate(steps, start=1):
    step_name = format_step_name(step.__name__)
    ui.update_progress(i, total_steps, step_name)
    logger.info("Step %d/%d: %s", i, total_steps, step_name)

    try:
      step(ctx, warnings)

    except InstallerError as e:
      logger.error("Step '%s' failed: %s", step_name, e)
      _abort(ctx, f"Step '{step_name}' failed with error: {e}")

    except OSError as e:
      logger.exception("Step '%s' failed", step_name)
      _abort(ctx, f"Step '{step_name}' failed with error: {e}")

  ctx.state = InstallState.COMPLETE
  logger.info("Installation complete: %s", ", ".join(ctx.completed_phases))

  # Clear status line when installation completes
  ui.cleanup()


def main() -> None:
  """Main entry point for the installer."""
  parser = _create_argument_parser()
  config = _create_context_config(parser.parse_args())

  # Collect warnings to display at the end
  warnings: list[str] = []

  log_path = configure_logging(config.log_file or DEFAULT_LOG_PATH)
  logger.info("lfs-install %s starting (dry=%s)", __version__, config.dry)

  try:
    defaults = load_defaults()
    if not config.dry:
      _check_system_requirements(defaults)

  except InstallerError as e:
    console.print(f"\n[prompt.invalid]{escape(str(e))}[/]")
    sys.exit(1)

  ui = TUI(dry_mode=config.dry)
  ctx = InstallerContext(config, defaults, ui)

  console.print()
  if config.dry:
    console.print("[bold yellow]DRY RUN MODE[/] - No actual changes will be made to your system")
    console.print()

  try:
    _run_installation(ctx, ui, warnings)

  except KeyboardInterrupt:
    ui.cleanup()
    console.print("\n\n[prompt.invalid]Installation interrupted by user. Exiting...[/]")
    if ctx.layout is not None and not ctx.dry:
      _ = teardown(ctx.layout, ctx.runner)
    sys.exit(130)

  print_summary(ctx.completed_phases, warnings, config.dry)
  console.print(f"[dim]Log written to {log_path}[/]")


if __name__ == "__main__":
  try:
    main()

  except KeyboardInterrupt:
    console.print("\n[prompt.invalid]Installation interrupted. Exiting...[/]")
    sys.exit(130)
