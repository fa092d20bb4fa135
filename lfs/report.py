"""Operator-facing summaries: the disk plan before it is applied, the fetch results, the final report."""

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from lfs.types import DiskPlan, FetchReport, InstallConfig, PartitionSpec

console = Console()


def _size(part: PartitionSpec) -> str:
  if part.end_mib is None:
    return "rest of disk"
  return f"{part.end_mib - part.start_mib} MiB"


def plan_table(plan: DiskPlan) -> Table:
  table = Table(title=f"Partition plan for {plan.target_device} ({plan.boot_mode.name})", box=box.SQUARE)
  table.add_column("#", justify="right")
  table.add_column("Device")
  table.add_column("Role")
  table.add_column("Filesystem")
  table.add_column("Start", justify="right")
  table.add_column("End", justify="right")
  table.add_column("Size", justify="right")

  for part in plan.partitions:
    table.add_row(
      str(part.number),
      part.device,
      part.role.name,
      part.filesystem or "-",
      part.start,
      part.end,
      _size(part),
    )
  return table


def fetch_table(report: FetchReport) -> Table:
  table = Table(title="Package download", box=box.SQUARE, show_header=False)
  table.add_column("Result")
  table.add_column("Count", justify="right")
  table.add_column("Packages")

  # fmt: off
  rows = [
    ("Downloaded", report.downloaded, "green"),
    ("Already present", report.skipped, "dim"),
    ("Failed", report.failed, "red"),
    ("Checksum mismatch", report.checksum_mismatches, "red"),
    ("Not verified", report.unverified, "yellow"),
  ]
  # fmt: on

  for label, names, style in rows:
    if names:
      table.add_row(f"[{style}]{label}[/]", str(len(names)), escape(", ".join(names)))
  return table


def print_config(config: InstallConfig) -> None:
  # fmt: off
  config_items = [
    ("Hostname", config.hostname),
    ("User", config.username),
    ("C library", config.libc.value),
    ("Core userland", config.init_tools.value),
    ("X11", "yes" if config.install_x11 else "no"),
  ]
  # fmt: on

  console.print()
  for label, value in config_items:
    console.print(f" • {label}: {escape(value)}")
  console.print()


def print_summary(completed: list[str], warnings: list[str], dry: bool) -> None:
  """Print the phases that ran and any warnings collected on the way."""
  console.print("\n")
  if completed:
    console.print("[bold]Completed phases:[/]")
    for name in completed:
      console.print(f" • {escape(name)}")
    console.print()

  if warnings:
    title = "Warnings encountered during dry run:" if dry else "Warnings encountered during installation:"
    console.print(f"[bold yellow]{title}[/]")
    for warning in warnings:
      console.print(f" • {escape(warning)}")
    console.print()

  if dry:
    console.print("[bold green]Dry run completed successfully![/]")
    console.print("[bold green]Run without --dry flag to perform actual installation.[/]")
  else:
    console.print("[bold green]Installation completed successfully![/]")
    console.print("[bold green]You can now reboot into the new system.[/]")
  console.print()
