"""Host probing: firmware boot mode, block devices, required tools."""

import json
import logging
import os
import shutil
import subprocess
from collections.abc import Iterable
from pathlib import Path

from lfs.errors import EnvironmentProbeError
from lfs.types import BootMode, DeviceInfo

logger = logging.getLogger(__name__)

EFI_FIRMWARE_PATH = "/sys/firmware/efi"

LSBLK_ARGV = ["lsblk", "--json", "--bytes", "--nodeps", "--output", "NAME,PATH,SIZE,TYPE,MODEL"]


def detect_boot_mode(firmware_path: str = EFI_FIRMWARE_PATH) -> BootMode:
  """UEFI if the kernel exposes the EFI firmware interface, BIOS otherwise."""
  mode = BootMode.UEFI if Path(firmware_path).exists() else BootMode.BIOS
  logger.info("Detected boot mode %s (%s)", mode.name, firmware_path)
  return mode


def parse_lsblk(output: str) -> list[DeviceInfo]:
  try:
    data = json.loads(output)

  except json.JSONDecodeError as e:
    raise EnvironmentProbeError(f"Unable to parse lsblk output: {e}") from e

  devices = data.get("blockdevices") if isinstance(data, dict) else None
  if not isinstance(devices, list):
    raise EnvironmentProbeError("Unexpected lsblk output: no 'blockdevices' list")

  return [
    DeviceInfo(
      name=str(dev["name"]),
      path=str(dev.get("path") or f"/dev/{dev['name']}"),
      size_bytes=int(dev.get("size") or 0),
      model=str(dev.get("model") or "").strip(),
    )
    for dev in devices
    if dev.get("type") == "disk"
  ]


def list_block_devices() -> list[DeviceInfo]:
  """Return the disk-type block devices of the host."""
  try:
    result = subprocess.run(LSBLK_ARGV, capture_output=True, text=True, check=False)

  except FileNotFoundError as e:
    raise EnvironmentProbeError("lsblk not found", hint="Install util-linux.") from e

  if result.returncode != 0:
    raise EnvironmentProbeError(f"lsblk failed (exit {result.returncode}): {result.stderr.strip()}")

  devices = parse_lsblk(result.stdout)
  if not devices:
    raise EnvironmentProbeError("No disks found", hint="Attach a target disk and re-run the installer.")

  logger.info("Found disks: %s", ", ".join(d.path for d in devices))
  return devices


def missing_tools(tools: Iterable[str]) -> list[str]:
  return [tool for tool in tools if shutil.which(tool) is None]


def is_root() -> bool:
  return os.geteuid() == 0


def mounted_under(mount_root: str, mounts: Iterable[str]) -> bool:
  """True if `mount_root` or a directory below it appears in /proc/mounts lines."""
  for line in mounts:
    fields = line.split()
    if len(fields) > 1 and (fields[1] == mount_root or fields[1].startswith(mount_root + "/")):
      return True
  return False
