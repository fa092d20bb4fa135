"""Shared fixtures: a runner that records steps instead of executing them."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from lfs.command import CmdResult
from lfs.errors import StepFailedError
from lfs.types import DeviceInfo, FileStep, InstallConfig, InitTools, Libc, ShellStep, Step

MIB = 1024 * 1024


class RecordingUI:
  def __init__(self) -> None:
    self.lines: list[str] = []

  def print(self, message: str) -> None:
    self.lines.append(message)


class RecordingRunner:
  """
  Stands in for CommandRunner.

  Every step is recorded. A ShellStep whose argv contains `fail_on` exits 1:
  checked steps raise StepFailedError, unchecked ones return the failure.
  `on_run` may perform a side effect and return an exit status of its own.
  """

  def __init__(
    self,
    fail_on: str | None = None,
    dry_run: bool = False,
    on_run: Callable[[ShellStep], int | None] | None = None,
  ) -> None:
    self.fail_on = fail_on
    self.dry_run = dry_run
    self.on_run = on_run
    self.ui = RecordingUI()
    self.steps: list[Step] = []

  @property
  def commands(self) -> list[list[str]]:
    return [list(step.argv) for step in self.steps if isinstance(step, ShellStep)]

  @property
  def programs(self) -> list[str]:
    return [argv[0] for argv in self.commands]

  def execute(self, step: Step) -> CmdResult | None:
    if isinstance(step, FileStep):
      self.write(step)
      return None
    return self.run(step)

  def run(self, step: ShellStep) -> CmdResult:
    self.steps.append(step)
    returncode = 0

    if self.fail_on is not None and self.fail_on in step.argv:
      returncode = 1
    elif self.on_run is not None:
      returncode = self.on_run(step) or 0

    if returncode != 0 and step.check:
      raise StepFailedError(step.argv, returncode, "recorded failure")

    return CmdResult(argv=list(step.argv), returncode=returncode, stdout="", stderr="")

  def write(self, step: FileStep) -> None:
    self.steps.append(step)


@pytest.fixture
def runner() -> RecordingRunner:
  return RecordingRunner()


@pytest.fixture
def make_runner() -> Callable[..., RecordingRunner]:
  return RecordingRunner


def disk(path: str = "/dev/sda", size_mib: int = 65536, model: str = "QEMU HARDDISK") -> DeviceInfo:
  return DeviceInfo(name=path.rsplit("/", 1)[-1], path=path, size_bytes=size_mib * MIB, model=model)


def install_config(
  libc: Libc = Libc.GLIBC,
  init_tools: InitTools = InitTools.COREUTILS,
  install_x11: bool = False,
) -> InstallConfig:
  return InstallConfig(
    hostname="lfs",
    username="alice",
    root_password="rootpw",
    user_password="userpw",
    libc=libc,
    init_tools=init_tools,
    install_x11=install_x11,
  )
