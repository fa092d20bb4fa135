import pytest

from conftest import RecordingRunner, disk
from lfs.errors import StepFailedError
from lfs.planner import plan_partitions
from lfs.provision import apply_plan, mount_virtual_filesystems, provision_steps, teardown
from lfs.types import BootMode, MountedLayout

ROOT = "/mnt/lfs"


def _plan(boot_mode: BootMode, path: str = "/dev/sda"):
  return plan_partitions(disk(path), boot_mode, 2048, minimum_mib=25600)


def test_uefi_provision_sequence() -> None:
  argvs = [list(s.argv) for s in provision_steps(_plan(BootMode.UEFI, "/dev/nvme0n1"), ROOT)]

  assert argvs[0] == ["wipefs", "-a", "/dev/nvme0n1"]
  assert argvs[1] == ["parted", "-s", "/dev/nvme0n1", "mklabel", "gpt"]
  assert argvs[2] == ["parted", "-s", "/dev/nvme0n1", "mkpart", "ESP", "fat32", "1MiB", "513MiB"]
  assert argvs[3] == ["parted", "-s", "/dev/nvme0n1", "mkpart", "ROOT", "ext4", "513MiB", "63488MiB"]
  assert argvs[4] == ["parted", "-s", "/dev/nvme0n1", "mkpart", "SWAP", "linux-swap", "63488MiB", "100%"]
  assert ["parted", "-s", "/dev/nvme0n1", "set", "1", "esp", "on"] in argvs
  assert ["mkfs.vfat", "-F", "32", "-n", "ESP", "/dev/nvme0n1p1"] in argvs
  assert ["mkfs.ext4", "-F", "-L", "ROOT", "/dev/nvme0n1p2"] in argvs
  assert ["mkswap", "-L", "SWAP", "/dev/nvme0n1p3"] in argvs
  assert argvs[-4:] == [
    ["mkdir", "-p", ROOT],
    ["mount", "/dev/nvme0n1p2", ROOT],
    ["mkdir", "-p", f"{ROOT}/boot/efi"],
    ["mount", "/dev/nvme0n1p1", f"{ROOT}/boot/efi"],
  ]


def test_bios_provision_has_no_esp() -> None:
  argvs = [list(s.argv) for s in provision_steps(_plan(BootMode.BIOS), ROOT)]

  assert ["parted", "-s", "/dev/sda", "set", "1", "bios_grub", "on"] in argvs
  assert ["parted", "-s", "/dev/sda", "mkpart", "BIOS", "1MiB", "2MiB"] in argvs
  assert not any(a[0] == "mkfs.vfat" for a in argvs)
  assert argvs[-1] == ["mount", "/dev/sda2", ROOT]


def test_apply_plan_returns_layout(runner: RecordingRunner) -> None:
  layout = apply_plan(_plan(BootMode.UEFI), ROOT, runner)

  assert layout.root_mount == ROOT
  assert layout.root_device == "/dev/sda2"
  assert layout.swap_device == "/dev/sda3"
  assert layout.esp_mount == f"{ROOT}/boot/efi"
  assert layout.esp_device == "/dev/sda1"
  assert layout.bound_virtual_filesystems == set()


def test_apply_plan_aborts_on_first_failure() -> None:
  runner = RecordingRunner(fail_on="mkswap")

  with pytest.raises(StepFailedError):
    apply_plan(_plan(BootMode.BIOS), ROOT, runner)

  assert runner.programs[-1] == "mkswap"
  assert "swapon" not in runner.programs
  assert "mount" not in runner.programs


def test_mount_virtual_filesystems_records_mounts(runner: RecordingRunner) -> None:
  layout = MountedLayout(root_mount=ROOT, root_device="/dev/sda2")

  _ = mount_virtual_filesystems(layout, runner)

  assert layout.bound_virtual_filesystems == {"dev", "devpts", "proc", "sys", "run"}
  assert ["mount", "--bind", "/dev", f"{ROOT}/dev"] in runner.commands
  assert ["mount", "--types", "proc", "proc", f"{ROOT}/proc"] in runner.commands


def test_teardown_is_best_effort() -> None:
  layout = MountedLayout(
    root_mount=ROOT,
    root_device="/dev/sda2",
    swap_device="/dev/sda3",
    esp_mount=f"{ROOT}/boot/efi",
    esp_device="/dev/sda1",
    bound_virtual_filesystems={"dev", "proc"},
  )
  runner = RecordingRunner(fail_on=f"{ROOT}/boot/efi")

  failed = teardown(layout, runner)

  assert runner.commands == [
    ["umount", "--lazy", f"{ROOT}/proc"],
    ["umount", "--lazy", f"{ROOT}/dev"],
    ["umount", f"{ROOT}/boot/efi"],
    ["umount", "--recursive", ROOT],
    ["swapoff", "/dev/sda3"],
  ]
  assert failed == [f"umount {ROOT}/boot/efi"]
  assert layout.bound_virtual_filesystems == set()
