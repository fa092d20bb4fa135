import pwd
from collections.abc import Sequence
from typing import Callable

from rich.console import Console
from rich.prompt import Confirm

from lfs.command import shell_step
from lfs.context import InstallerContext
from lfs.errors import AbortedError, SizeWarning
from lfs.packages import fetch_all, fetch_checksums, load_catalog, resolve_package_set
from lfs.phases import (
  build_env,
  cross_temp_tools_phase,
  cross_toolchain_phase,
  final_system_phase,
  ownership_phase,
  prepare_environment_phase,
  run_pipeline,
  temp_tools_phase,
  x11_phase,
)
from lfs.planner import plan_partitions
from lfs.probe import detect_boot_mode, list_block_devices
from lfs.provision import apply_plan, mount_virtual_filesystems
from lfs.report import fetch_table, plan_table, print_config
from lfs.types import BuildPhase, DiskPlan, InstallState
from lfs.utils import collect_config, set_disk

console = Console()

Step = Callable[[InstallerContext, list[str]], None]


def _run_phases(ctx: InstallerContext, phases: Sequence[BuildPhase]) -> None:
  assert ctx.env is not None
  result = run_pipeline(phases, ctx.runner, ctx.env)
  ctx.completed_phases += result.completed


def _build_user_exists(name: str) -> bool:
  try:
    _ = pwd.getpwnam(name)

  except KeyError:
    return False

  return True


def step_0_configure(ctx: InstallerContext, _warnings: list[str]) -> None:
  ctx.state = InstallState.CONFIGURE
  ctx.ui.initialize()

  if ctx.dry:
    console.print("Skipping root and host tool checks in dry run mode")
    console.print()

  ctx.install = collect_config(ctx.defaults["hostname"])
  print_config(ctx.install)


def step_1_probe_boot_mode(ctx: InstallerContext, _warnings: list[str]) -> None:
  ctx.state = InstallState.PROBE_BOOT_MODE
  ctx.boot_mode = detect_boot_mode()
  ctx.ui.print(f"Firmware boot mode: [bold]{ctx.boot_mode.name}[/]")


def _plan_with_override(ctx: InstallerContext) -> DiskPlan:
  assert ctx.disk is not None and ctx.boot_mode is not None
  plan_args = (ctx.disk, ctx.boot_mode, ctx.defaults["swap_size_mib"])

  try:
    return plan_partitions(*plan_args, minimum_mib=ctx.defaults["minimum_disk_mib"])

  except SizeWarning as e:
    console.print(f"\n[bold yellow]WARNING:[/] {e}")
    if not Confirm.ask("The build may run out of space. Use this disk anyway?", default=False):
      raise AbortedError("Undersized disk not accepted. No changes were made to the system.") from e

  return plan_partitions(*plan_args, minimum_mib=ctx.defaults["minimum_disk_mib"], allow_undersized=True)


def step_2_partition_disk(ctx: InstallerContext, _warnings: list[str]) -> None:
  ctx.state = InstallState.PARTITION_DISK
  ctx.ui.pause()

  ctx.disk = set_disk(list_block_devices())
  ctx.plan = _plan_with_override(ctx)

  console.print()
  console.print(plan_table(ctx.plan))
  console.print(f"\n[bold yellow]WARNING:[/] All data on {ctx.disk.path} will be erased.", style="bold")
  response = Confirm.ask("Are you sure you want to continue?", default=False)
  if not response:
    raise AbortedError(f"Overwriting {ctx.disk.path} was declined. No changes were made to the system.")

  console.print()
  ctx.layout = apply_plan(ctx.plan, ctx.mount_root, ctx.runner)


def step_3_fetch_packages(ctx: InstallerContext, warnings: list[str]) -> None:
  assert ctx.install is not None
  ctx.state = InstallState.FETCH
  ctx.packages = resolve_package_set(ctx.install)

  sources = f"{ctx.mount_root}/sources"
  _ = ctx.runner.run(shell_step("mkdir", "-p", sources))
  _ = ctx.runner.run(shell_step("chmod", "a+wt", sources))

  checksums = fetch_checksums(ctx.defaults["md5sums_url"], sources, ctx.runner, warnings)
  ctx.fetch_report = fetch_all(ctx.packages, sources, ctx.runner, checksums=checksums, warnings=warnings)
  ctx.ui.print(f"{len(ctx.packages)} packages selected")

  if not ctx.dry:
    ctx.ui.pause()
    console.print(fetch_table(ctx.fetch_report))


def step_4_prepare_environment(ctx: InstallerContext, _warnings: list[str]) -> None:
  assert ctx.install is not None
  ctx.state = InstallState.PREPARE_ENVIRONMENT
  ctx.env = build_env(ctx.install, ctx.defaults)
  exists = _build_user_exists(ctx.env.build_user)
  _run_phases(ctx, [prepare_environment_phase(ctx.env, exists)])


def step_5_build_cross_toolchain(ctx: InstallerContext, _warnings: list[str]) -> None:
  assert ctx.install is not None and ctx.env is not None
  ctx.state = InstallState.BUILD_CROSS_TOOLCHAIN
  _run_phases(
    ctx,
    [
      cross_toolchain_phase(ctx.env, ctx.packages, ctx.install),
      cross_temp_tools_phase(ctx.env, ctx.packages, ctx.install),
    ],
  )


def step_6_mount_virtual_filesystems(ctx: InstallerContext, _warnings: list[str]) -> None:
  assert ctx.env is not None and ctx.layout is not None
  ctx.state = InstallState.MOUNT_VIRTUAL_FS
  _run_phases(ctx, [ownership_phase(ctx.env)])
  ctx.layout = mount_virtual_filesystems(ctx.layout, ctx.runner)


def step_7_build_temp_tools(ctx: InstallerContext, _warnings: list[str]) -> None:
  assert ctx.install is not None and ctx.env is not None
  ctx.state = InstallState.BUILD_TEMP_TOOLS
  _run_phases(ctx, [temp_tools_phase(ctx.env, ctx.packages, ctx.install)])


def step_8_build_final_system(ctx: InstallerContext, _warnings: list[str]) -> None:
  assert ctx.install is not None and ctx.env is not None and ctx.plan is not None
  ctx.state = InstallState.BUILD_FINAL_SYSTEM
  _run_phases(ctx, [final_system_phase(ctx.env, ctx.packages, ctx.install, ctx.plan)])


def step_9_install_x11(ctx: InstallerContext, _warnings: list[str]) -> None:
  ctx.state = InstallState.INSTALL_X11
  names = [entry.name for entry in load_catalog()["x11"]]
  _run_phases(ctx, [x11_phase(ctx.packages, names)])


def get_install_steps(ctx: InstallerContext) -> list[Step]:
  """Get installation steps in state order. InstallX11 is only included when it was chosen."""
  all_steps: list[Step] = [
    step_0_configure,
    step_1_probe_boot_mode,
    step_2_partition_disk,
    step_3_fetch_packages,
    step_4_prepare_environment,
    step_5_build_cross_toolchain,
    step_6_mount_virtual_filesystems,
    step_7_build_temp_tools,
    step_8_build_final_system,
  ]

  if ctx.install is not None and ctx.install.install_x11:
    all_steps.append(step_9_install_x11)

  return all_steps
