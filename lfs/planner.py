"""
Partition layout planning.

Every plan is a GPT layout starting at 1 MiB and ending at 100% of the disk:

  BIOS: 1 bios_grub stub (1-2 MiB) | 2 root ext4 | 3 swap
  UEFI: 1 ESP fat32 (1-513 MiB)    | 2 root ext4 | 3 swap

Root takes everything between the fixed leading partition and the trailing
swap partition, which is swap_size_mib large.
"""

import logging

from lfs.errors import InvalidSelectionError, PlanError, SizeWarning
from lfs.types import BootMode, DeviceInfo, DiskPlan, PartitionRole, PartitionSpec

logger = logging.getLogger(__name__)

FIRST_USABLE_MIB = 1
BIOS_BOOT_END_MIB = 2
ESP_END_MIB = 513


def partition_path(disk_path: str, number: int) -> str:
  """Device node of partition `number` on `disk_path` (nvme disks use a 'p' infix)."""
  if "nvme" in disk_path:
    return f"{disk_path}p{number}"
  return f"{disk_path}{number}"


def select_disk(devices: list[DeviceInfo], choice: str) -> DeviceInfo:
  """Pick a disk by its 1-based position in `devices`."""
  choice = choice.strip()
  if not choice.isdigit():
    raise InvalidSelectionError(f"Invalid disk selection '{choice}': not a number")

  index = int(choice)
  if not 1 <= index <= len(devices):
    raise InvalidSelectionError(f"Invalid disk selection {index}: choose between 1 and {len(devices)}")

  return devices[index - 1]


def plan_partitions(
  disk: DeviceInfo,
  boot_mode: BootMode,
  swap_size_mib: int,
  *,
  minimum_mib: int,
  allow_undersized: bool = False,
) -> DiskPlan:
  """
  Compute the partition layout for `disk`.

  Raises SizeWarning if the disk is below `minimum_mib` and the caller did not
  pass allow_undersized=True after asking the operator. Raises PlanError if
  the partitions cannot fit at all.
  """
  if disk.size_mib < minimum_mib and not allow_undersized:
    raise SizeWarning(disk.path, disk.size_mib, minimum_mib)

  if swap_size_mib <= 0:
    raise PlanError(f"Swap size must be positive, got {swap_size_mib} MiB")

  if boot_mode == BootMode.UEFI:
    lead = (PartitionRole.ESP, "ESP", "fat32", ESP_END_MIB, ("esp",))
  else:
    lead = (PartitionRole.BIOS_BOOT, "BIOS", None, BIOS_BOOT_END_MIB, ("bios_grub",))

  lead_role, lead_label, lead_fs, lead_end, lead_flags = lead
  root_end = disk.size_mib - swap_size_mib

  if root_end <= lead_end:
    raise PlanError(
      f"{disk.path} ({disk.size_mib} MiB) is too small for a {swap_size_mib} MiB swap partition and a root partition"
    )

  partitions = (
    PartitionSpec(
      number=1,
      role=lead_role,
      label=lead_label,
      filesystem=lead_fs,
      start_mib=FIRST_USABLE_MIB,
      end_mib=lead_end,
      device=partition_path(disk.path, 1),
      flags=lead_flags,
    ),
    PartitionSpec(
      number=2,
      role=PartitionRole.ROOT,
      label="ROOT",
      filesystem="ext4",
      start_mib=lead_end,
      end_mib=root_end,
      device=partition_path(disk.path, 2),
    ),
    PartitionSpec(
      number=3,
      role=PartitionRole.SWAP,
      label="SWAP",
      filesystem="linux-swap",
      start_mib=root_end,
      end_mib=None,
      device=partition_path(disk.path, 3),
    ),
  )

  plan = DiskPlan(target_device=disk.path, boot_mode=boot_mode, partitions=partitions)
  for p in plan.partitions:
    logger.info("Planned %s: %s %s-%s %s", p.device, p.role.name, p.start, p.end, p.filesystem or "-")

  return plan
