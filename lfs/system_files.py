"""
Literal templates for the files written into the new system.

Paths are the paths inside the new root; the chroot phase rebases them onto
the LFS mount point before writing.
"""

from lfs.command import file_step, shell_step
from lfs.types import BootMode, DiskPlan, FileStep, InstallConfig, ShellStep

USER_UID = 1000
USERS_GID = 999


def fstab_lines(plan: DiskPlan) -> list[str]:
  entries = [
    "# file system  mount-point  type     options             dump  fsck",
    f"{plan.root.device}  /  ext4  defaults  1  1",
  ]

  if plan.swap is not None:
    entries.append(f"{plan.swap.device}  swap  swap  pri=1  0  0")

  if plan.esp is not None:
    entries.append(f"{plan.esp.device}  /boot/efi  vfat  codepage=437,iocharset=iso8859-1  0  1")

  entries += [
    "proc  /proc  proc  nosuid,noexec,nodev  0  0",
    "sysfs  /sys  sysfs  nosuid,noexec,nodev  0  0",
    "devpts  /dev/pts  devpts  gid=5,mode=620  0  0",
    "tmpfs  /run  tmpfs  defaults  0  0",
    "devtmpfs  /dev  devtmpfs  mode=0755,nosuid  0  0",
    "tmpfs  /dev/shm  tmpfs  nosuid,nodev  0  0",
  ]
  return entries


def passwd_lines(config: InstallConfig) -> list[str]:
  return [
    "root:x:0:0:root:/root:/bin/bash",
    "bin:x:1:1:bin:/dev/null:/usr/bin/false",
    "daemon:x:6:6:Daemon User:/dev/null:/usr/bin/false",
    "messagebus:x:18:18:D-Bus Message Daemon User:/run/dbus:/usr/bin/false",
    "uuidd:x:80:80:UUID Generation Daemon User:/dev/null:/usr/bin/false",
    "nobody:x:65534:65534:Unprivileged User:/dev/null:/usr/bin/false",
    f"{config.username}:x:{USER_UID}:{USER_UID}::/home/{config.username}:/bin/bash",
  ]


def group_lines(config: InstallConfig) -> list[str]:
  # fmt: off
  system_groups = [
    ("root", 0), ("bin", 1), ("sys", 2), ("kmem", 3), ("tape", 4), ("tty", 5),
    ("daemon", 6), ("floppy", 7), ("disk", 8), ("lp", 9), ("dialout", 10),
    ("audio", 11), ("video", 12), ("utmp", 13), ("cdrom", 15), ("adm", 16),
    ("messagebus", 18), ("input", 24), ("mail", 34), ("kvm", 61), ("uuidd", 80),
    ("wheel", 97),
  ]
  # fmt: on
  lines = [f"{name}:x:{gid}:" for name, gid in system_groups]
  lines += [
    f"users:x:{USERS_GID}:{config.username}",
    "nogroup:x:65534:",
    f"{config.username}:x:{USER_UID}:",
  ]
  return lines


def hosts_lines(hostname: str) -> list[str]:
  return [
    "127.0.0.1 localhost.localdomain localhost",
    f"127.0.1.1 {hostname}",
    "::1       localhost ip6-localhost ip6-loopback",
    "ff02::1   ip6-allnodes",
    "ff02::2   ip6-allrouters",
  ]


def kernel_image_name(kernel_version: str, lfs_version: str) -> str:
  return f"vmlinuz-{kernel_version}-lfs-{lfs_version}"


def grub_cfg_lines(plan: DiskPlan, kernel_version: str, lfs_version: str) -> list[str]:
  lines = [
    "# Begin /boot/grub/grub.cfg",
    "set default=0",
    "set timeout=5",
    "",
    "insmod part_gpt",
    "insmod ext2",
  ]

  if plan.boot_mode == BootMode.UEFI:
    lines += ["insmod efi_gop", "insmod efi_uga"]

  lines += [
    f"set root=(hd0,{plan.root.number})",
    "",
    f'menuentry "GNU/Linux, Linux {kernel_version}-lfs-{lfs_version}" {{',
    f"  linux /boot/{kernel_image_name(kernel_version, lfs_version)} root={plan.root.device} ro",
    "}",
  ]
  return lines


def essential_files(config: InstallConfig) -> list[FileStep]:
  return [
    file_step("/etc/passwd", passwd_lines(config), description="Writing /etc/passwd"),
    file_step("/etc/group", group_lines(config), description="Writing /etc/group"),
    file_step("/etc/hosts", hosts_lines(config.hostname), description="Writing /etc/hosts"),
  ]


def system_config_files(config: InstallConfig, plan: DiskPlan) -> list[FileStep]:
  return [
    file_step("/etc/fstab", fstab_lines(plan), description="Writing /etc/fstab"),
    file_step("/etc/hostname", [config.hostname], description="Writing /etc/hostname"),
  ]


def bootloader_steps(plan: DiskPlan, kernel_version: str, lfs_version: str) -> list[ShellStep | FileStep]:
  if plan.boot_mode == BootMode.UEFI:
    install = shell_step(
      "grub-install",
      "--target=x86_64-efi",
      "--efi-directory=/boot/efi",
      "--bootloader-id=LFS",
      "--removable",
      description="Installing GRUB (UEFI)",
    )
  else:
    install = shell_step("grub-install", "--target=i386-pc", plan.target_device, description="Installing GRUB (BIOS)")

  return [
    install,
    file_step("/boot/grub/grub.cfg", grub_cfg_lines(plan, kernel_version, lfs_version)),
  ]


def account_steps(config: InstallConfig) -> list[ShellStep]:
  """Create the user's home and set both passwords through chpasswd's stdin."""
  home = f"/home/{config.username}"
  return [
    shell_step("install", "-d", "-m", "0750", "-o", str(USER_UID), "-g", str(USER_UID), home),
    shell_step(
      "chpasswd",
      stdin=f"root:{config.root_password}\n{config.username}:{config.user_password}\n",
      description="Setting passwords",
    ),
  ]
