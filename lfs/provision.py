"""
Applying a DiskPlan to the target disk and mounting the result.

This is destructive and there is no rollback: if a step fails after the
partition table was written, the disk is left partially provisioned.
"""

import logging

from lfs.command import CommandRunner, shell_step
from lfs.errors import StepFailedError
from lfs.types import DiskPlan, MountedLayout, PartitionRole, PartitionSpec, ShellStep

logger = logging.getLogger(__name__)

# (name recorded in MountedLayout, mount argv prefix, target relative to root)
VIRTUAL_FILESYSTEMS: list[tuple[str, list[str], str]] = [
  ("dev", ["mount", "--bind", "/dev"], "dev"),
  ("devpts", ["mount", "--types", "devpts", "devpts", "-o", "gid=5,mode=0620"], "dev/pts"),
  ("proc", ["mount", "--types", "proc", "proc"], "proc"),
  ("sys", ["mount", "--types", "sysfs", "sysfs"], "sys"),
  ("run", ["mount", "--types", "tmpfs", "tmpfs"], "run"),
]


def _format_step(part: PartitionSpec) -> ShellStep | None:
  if part.role == PartitionRole.ESP:
    return shell_step("mkfs.vfat", "-F", "32", "-n", part.label, part.device)
  if part.role == PartitionRole.ROOT:
    return shell_step("mkfs.ext4", "-F", "-L", part.label, part.device)
  if part.role == PartitionRole.SWAP:
    return shell_step("mkswap", "-L", part.label, part.device)
  return None


def esp_mount_point(mount_root: str) -> str:
  return f"{mount_root}/boot/efi"


def provision_steps(plan: DiskPlan, mount_root: str) -> list[ShellStep]:
  disk = plan.target_device
  steps = [
    shell_step("wipefs", "-a", disk, description=f"Wiping signatures on {disk}"),
    shell_step("parted", "-s", disk, "mklabel", "gpt"),
  ]

  for part in plan.partitions:
    fs_type = [part.filesystem] if part.filesystem else []
    steps.append(shell_step("parted", "-s", disk, "mkpart", part.label, *fs_type, part.start, part.end))

  for part in plan.partitions:
    for flag in part.flags:
      steps.append(shell_step("parted", "-s", disk, "set", str(part.number), flag, "on"))

  steps.append(shell_step("partprobe", disk))

  for part in plan.partitions:
    if (step := _format_step(part)) is not None:
      steps.append(step)

  if plan.swap is not None:
    steps.append(shell_step("swapon", plan.swap.device))

  steps += [
    shell_step("mkdir", "-p", mount_root),
    shell_step("mount", plan.root.device, mount_root),
  ]

  if plan.esp is not None:
    esp_mount = esp_mount_point(mount_root)
    steps += [
      shell_step("mkdir", "-p", esp_mount),
      shell_step("mount", plan.esp.device, esp_mount),
    ]

  return steps


def apply_plan(plan: DiskPlan, mount_root: str, runner: CommandRunner) -> MountedLayout:
  """Partition, format and mount the target disk. The first failing step aborts."""
  logger.info("Applying plan to %s (%s)", plan.target_device, plan.boot_mode.name)
  for step in provision_steps(plan, mount_root):
    _ = runner.run(step)

  return MountedLayout(
    root_mount=mount_root,
    root_device=plan.root.device,
    swap_device=plan.swap.device if plan.swap else None,
    esp_mount=esp_mount_point(mount_root) if plan.esp else None,
    esp_device=plan.esp.device if plan.esp else None,
  )


def virtual_fs_steps(layout: MountedLayout) -> list[tuple[str, ShellStep]]:
  root = layout.root_mount
  steps: list[tuple[str, ShellStep]] = []
  for name, mount_argv, target in VIRTUAL_FILESYSTEMS:
    if name in layout.bound_virtual_filesystems:
      continue
    steps.append((name, shell_step(*mount_argv, f"{root}/{target}")))
  return steps


def mount_virtual_filesystems(layout: MountedLayout, runner: CommandRunner) -> MountedLayout:
  """Mount dev, devpts, proc, sys and run under the root mount for chroot use."""
  _ = runner.run(shell_step("mkdir", "-p", *(f"{layout.root_mount}/{t}" for _, _, t in VIRTUAL_FILESYSTEMS)))
  for name, step in virtual_fs_steps(layout):
    _ = runner.run(step)
    layout.bound_virtual_filesystems.add(name)
  return layout


def teardown(layout: MountedLayout, runner: CommandRunner) -> list[str]:
  """
  Undo the mounts and swap of `layout`, best-effort.

  Returns the commands that failed. Nothing here raises; the partition table
  and filesystem contents are left as they are.
  """
  root = layout.root_mount
  steps: list[ShellStep] = [
    shell_step("umount", "--lazy", f"{root}/{target}", check=False)
    for name, _, target in reversed(VIRTUAL_FILESYSTEMS)
    if name in layout.bound_virtual_filesystems
  ]

  if layout.esp_mount:
    steps.append(shell_step("umount", layout.esp_mount, check=False))
  steps.append(shell_step("umount", "--recursive", root, check=False))
  if layout.swap_device:
    steps.append(shell_step("swapoff", layout.swap_device, check=False))

  failed: list[str] = []
  for step in steps:
    try:
      result = runner.run(step)

    except StepFailedError as e:
      logger.warning("Teardown step failed: %s", e)
      failed.append(" ".join(step.argv))
      continue

    if not result.ok:
      logger.warning("Teardown step failed (%d): %s", result.returncode, " ".join(step.argv))
      failed.append(" ".join(step.argv))

  layout.bound_virtual_filesystems.clear()
  return failed
