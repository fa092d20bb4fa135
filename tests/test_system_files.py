from conftest import disk, install_config
from lfs.planner import plan_partitions
from lfs.system_files import (
  account_steps,
  bootloader_steps,
  essential_files,
  fstab_lines,
  grub_cfg_lines,
  group_lines,
  passwd_lines,
  system_config_files,
)
from lfs.types import BootMode, FileStep, ShellStep


def _plan(boot_mode: BootMode):
  return plan_partitions(disk("/dev/nvme0n1"), boot_mode, 2048, minimum_mib=25600)


def test_fstab_matches_uefi_plan() -> None:
  lines = fstab_lines(_plan(BootMode.UEFI))

  assert "/dev/nvme0n1p2  /  ext4  defaults  1  1" in lines
  assert "/dev/nvme0n1p3  swap  swap  pri=1  0  0" in lines
  assert any(line.startswith("/dev/nvme0n1p1  /boot/efi  vfat") for line in lines)


def test_fstab_bios_has_no_efi_entry() -> None:
  lines = fstab_lines(_plan(BootMode.BIOS))

  assert not any("/boot/efi" in line for line in lines)
  assert not any(line.startswith("/dev/nvme0n1p1") for line in lines)


def test_passwd_and_group_include_the_user() -> None:
  config = install_config()

  assert "alice:x:1000:1000::/home/alice:/bin/bash" in passwd_lines(config)
  assert passwd_lines(config)[0].startswith("root:x:0:0:")
  groups = group_lines(config)
  assert "users:x:999:alice" in groups
  assert "alice:x:1000:" in groups
  assert "utmp:x:13:" in groups


def test_passwords_never_reach_written_files() -> None:
  config = install_config()
  plan = _plan(BootMode.UEFI)
  files = essential_files(config) + system_config_files(config, plan)

  for step in files:
    assert all("rootpw" not in line and "userpw" not in line for line in step.lines)


def test_grub_cfg_points_at_root_partition() -> None:
  lines = grub_cfg_lines(_plan(BootMode.UEFI), "6.10.5", "12.2")

  assert "set root=(hd0,2)" in lines
  assert "  linux /boot/vmlinuz-6.10.5-lfs-12.2 root=/dev/nvme0n1p2 ro" in lines
  assert "insmod efi_gop" in lines
  assert "insmod efi_gop" not in grub_cfg_lines(_plan(BootMode.BIOS), "6.10.5", "12.2")


def test_bootloader_install_by_boot_mode() -> None:
  uefi = bootloader_steps(_plan(BootMode.UEFI), "6.10.5", "12.2")
  bios = bootloader_steps(_plan(BootMode.BIOS), "6.10.5", "12.2")

  assert isinstance(uefi[0], ShellStep)
  assert "--target=x86_64-efi" in uefi[0].argv
  assert isinstance(bios[0], ShellStep)
  assert bios[0].argv == ("grub-install", "--target=i386-pc", "/dev/nvme0n1")
  assert isinstance(uefi[1], FileStep)
  assert uefi[1].path == "/boot/grub/grub.cfg"


def test_account_steps_feed_chpasswd() -> None:
  home, chpasswd = account_steps(install_config())

  assert home.argv[-1] == "/home/alice"
  assert chpasswd.argv == ("chpasswd",)
  assert chpasswd.stdin == "root:rootpw\nalice:userpw\n"
  assert "rootpw" not in repr(chpasswd)
