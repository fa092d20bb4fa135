"""
Type definitions for lfs-install.

This module contains the data model shared by the planner, the provisioner,
the package fetcher and the phase pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TypedDict


class PackageData(TypedDict, total=False):
  """A package entry as stored in config.json."""

  name: str
  url: str
  md5: str


class DefaultsConfig(TypedDict):
  """Installer defaults loaded from config.json."""

  hostname: str
  mount_root: str
  minimum_disk_mib: int
  swap_size_mib: int
  lfs_version: str
  md5sums_url: str
  build_user: str
  required_tools: list[str]


class BootMode(Enum):
  """Firmware boot mode of the running machine."""

  BIOS = "bios"
  UEFI = "uefi"


class Libc(Enum):
  GLIBC = "glibc"
  MUSL = "musl"


class InitTools(Enum):
  COREUTILS = "coreutils"
  BUSYBOX = "busybox"


class PartitionRole(Enum):
  BIOS_BOOT = "bios_boot"
  ESP = "esp"
  ROOT = "root"
  SWAP = "swap"


class PrivilegeContext(Enum):
  """Where the steps of a build phase are executed."""

  HOST_ROOT = "host root"
  CHROOTED_ROOT = "chrooted root"
  UNPRIVILEGED_BUILD_USER = "unprivileged build user"


class InstallState(Enum):
  INIT = "Init"
  CONFIGURE = "Configure"
  PROBE_BOOT_MODE = "ProbeBootMode"
  PARTITION_DISK = "PartitionDisk"
  FETCH = "Fetch"
  PREPARE_ENVIRONMENT = "PrepareEnvironment"
  BUILD_CROSS_TOOLCHAIN = "BuildCrossToolchain"
  MOUNT_VIRTUAL_FS = "MountVirtualFS"
  BUILD_TEMP_TOOLS = "BuildTempTools"
  BUILD_FINAL_SYSTEM = "BuildFinalSystem"
  INSTALL_X11 = "InstallX11"
  COMPLETE = "Complete"


@dataclass(frozen=True)
class InstallConfig:
  """Operator choices, collected once during the Configure step."""

  hostname: str
  username: str
  root_password: str = field(repr=False)
  user_password: str = field(repr=False)
  libc: Libc = Libc.GLIBC
  init_tools: InitTools = InitTools.COREUTILS
  install_x11: bool = False


@dataclass(frozen=True)
class DeviceInfo:
  """A disk-type block device reported by lsblk."""

  name: str
  path: str
  size_bytes: int
  model: str = ""

  @property
  def size_mib(self) -> int:
    return self.size_bytes // (1024 * 1024)

  @property
  def size_gib(self) -> float:
    return self.size_bytes / (1024**3)


@dataclass(frozen=True)
class PartitionSpec:
  """One partition of a DiskPlan. An end of None means "to 100% of the disk"."""

  number: int
  role: PartitionRole
  label: str
  filesystem: str | None
  start_mib: int
  end_mib: int | None
  device: str
  flags: tuple[str, ...] = ()

  @property
  def start(self) -> str:
    return f"{self.start_mib}MiB"

  @property
  def end(self) -> str:
    return "100%" if self.end_mib is None else f"{self.end_mib}MiB"


@dataclass(frozen=True)
class DiskPlan:
  target_device: str
  boot_mode: BootMode
  partitions: tuple[PartitionSpec, ...]

  def by_role(self, role: PartitionRole) -> PartitionSpec | None:
    return next((p for p in self.partitions if p.role == role), None)

  @property
  def root(self) -> PartitionSpec:
    root = self.by_role(PartitionRole.ROOT)
    assert root is not None
    return root

  @property
  def swap(self) -> PartitionSpec | None:
    return self.by_role(PartitionRole.SWAP)

  @property
  def esp(self) -> PartitionSpec | None:
    return self.by_role(PartitionRole.ESP)


@dataclass
class MountedLayout:
  root_mount: str
  root_device: str
  swap_device: str | None = None
  esp_mount: str | None = None
  esp_device: str | None = None
  bound_virtual_filesystems: set[str] = field(default_factory=set)


@dataclass(frozen=True)
class PackageEntry:
  """A source archive to download. The md5 is optional."""

  name: str
  url: str
  md5: str | None = None

  @property
  def filename(self) -> str:
    return self.url.rstrip("/").rsplit("/", 1)[-1]

  @property
  def source_dir(self) -> str:
    """Directory name the archive extracts to, e.g. gcc-14.2.0."""
    name = self.filename
    for ext in (".tar.xz", ".tar.gz", ".tar.bz2", ".tar.zst", ".tgz", ".tar"):
      if name.endswith(ext):
        return name[: -len(ext)]
    return name


PackageSet = dict[str, PackageEntry]


@dataclass
class FetchReport:
  downloaded: list[str] = field(default_factory=list)
  skipped: list[str] = field(default_factory=list)
  failed: list[str] = field(default_factory=list)
  checksum_mismatches: list[str] = field(default_factory=list)
  unverified: list[str] = field(default_factory=list)

  @property
  def ok(self) -> bool:
    return not self.failed and not self.checksum_mismatches


@dataclass(frozen=True)
class ShellStep:
  """A program and its arguments, executed without a shell."""

  argv: tuple[str, ...]
  cwd: str | None = None
  env: tuple[tuple[str, str], ...] = ()
  stdin: str | None = field(default=None, repr=False)
  description: str = ""
  check: bool = True

  @property
  def program(self) -> str:
    return self.argv[0]


@dataclass(frozen=True)
class FileStep:
  """Write a file from literal lines."""

  path: str
  lines: tuple[str, ...]
  mode: int | None = None
  description: str = ""


Step = ShellStep | FileStep


@dataclass(frozen=True)
class BuildPhase:
  name: str
  context: PrivilegeContext
  steps: tuple[Step, ...]


@dataclass(frozen=True)
class BuildEnv:
  """Paths and toolchain settings shared by every build phase."""

  lfs: str
  target: str
  jobs: int
  build_user: str = "lfs"
  lfs_version: str = ""
  term: str = "xterm"

  @property
  def sources(self) -> str:
    return f"{self.lfs}/sources"

  @property
  def tools(self) -> str:
    return f"{self.lfs}/tools"
