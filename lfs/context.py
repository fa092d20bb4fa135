from __future__ import annotations

from dataclasses import dataclass

from lfs.command import CommandRunner
from lfs.tui import TUI
from lfs.types import (
  BootMode,
  BuildEnv,
  DefaultsConfig,
  DeviceInfo,
  DiskPlan,
  FetchReport,
  InstallConfig,
  InstallState,
  MountedLayout,
  PackageSet,
)


@dataclass
class ContextConfig:
  """Options given on the command line."""

  dry: bool = False
  log_file: str | None = None


class InstallerContext:
  """
  Holds the state and configuration for the installation process.

  This context object is passed between installation steps. Each step fills
  in what later steps need: the operator's choices, the probed boot mode,
  the disk plan and mounted layout, and the resolved package set.
  """

  def __init__(self, config: ContextConfig, defaults: DefaultsConfig, ui: TUI) -> None:
    self.config: ContextConfig = config
    self.defaults: DefaultsConfig = defaults
    self.ui: TUI = ui
    self.runner: CommandRunner = CommandRunner(config.dry, ui)
    self.state: InstallState = InstallState.INIT

    # Operator choices
    self.install: InstallConfig | None = None

    # Probed and planned
    self.boot_mode: BootMode | None = None
    self.disk: DeviceInfo | None = None
    self.plan: DiskPlan | None = None
    self.layout: MountedLayout | None = None

    # Build inputs
    self.packages: PackageSet = {}
    self.fetch_report: FetchReport | None = None
    self.env: BuildEnv | None = None
    self.completed_phases: list[str] = []

  @property
  def dry(self) -> bool:
    """Access dry run flag from config."""
    return self.config.dry

  @property
  def mount_root(self) -> str:
    return self.defaults["mount_root"]
