import json
import os
from functools import lru_cache
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, Prompt

from lfs.errors import ConfigError
from lfs.input import HostnamePrompt, PasswordPrompt, UsernamePrompt, ask_menu
from lfs.planner import select_disk
from lfs.types import DefaultsConfig, DeviceInfo, InitTools, InstallConfig, Libc, PackageData
from lfs.validations import validate_defaults_json, validate_packages_json

console = Console()


def get_resource_path(relative_path: str) -> str:
  """Get the absolute path of a file shipped as package data next to this module."""
  return os.path.join(os.path.dirname(os.path.abspath(__file__)), relative_path)


@lru_cache(maxsize=None)
def _load_config(config_file: str) -> dict[str, Any]:
  try:
    with open(config_file, "r") as f:
      data = json.load(f)

  except (FileNotFoundError, json.JSONDecodeError) as e:
    raise ConfigError(f"Error loading {config_file}: {e}") from e

  if not isinstance(data, dict):
    raise ConfigError(f"Invalid {config_file} format: top level must be an object")

  return data


def load_defaults(config_file: str | None = None) -> DefaultsConfig:
  """Load installer defaults from config.json."""
  path = config_file or get_resource_path("config.json")
  config_data = _load_config(path)

  try:
    data = validate_defaults_json(config_data.get("defaults"))

  except (KeyError, ValueError) as e:
    raise ConfigError(f"Invalid config.json format: {e}") from e

  return DefaultsConfig(
    hostname=str(data["hostname"]),
    mount_root=str(data["mount_root"]).rstrip("/") or "/",
    minimum_disk_mib=int(data["minimum_disk_mib"]),
    swap_size_mib=int(data["swap_size_mib"]),
    lfs_version=str(data["lfs_version"]),
    md5sums_url=str(data["md5sums_url"]),
    build_user=str(data["build_user"]),
    required_tools=[str(tool) for tool in data["required_tools"]],
  )


def load_package_groups(config_file: str | None = None) -> dict[str, list[PackageData]]:
  """Load the package catalog from config.json, keyed by group name."""
  path = config_file or get_resource_path("config.json")
  config_data = _load_config(path)

  try:
    return validate_packages_json(config_data.get("packages"))

  except ValueError as e:
    raise ConfigError(f"Invalid config.json format: {e}") from e


def format_step_name(name: str) -> str:
  """
  Format step name from function name string.

  Args:
      name: Step function name

  Returns:
      Formatted step name (e.g., "Partition Disk")
  """
  return name.replace("step_", "").replace("_", " ").title().lstrip("0123456789 ")


def set_host(default: str | None = None) -> str:
  return HostnamePrompt.ask("Enter a hostname for the system", default=default)


def set_user() -> tuple[str, str, str]:
  console.print()
  user_name = UsernamePrompt.ask("Enter username for the new account")
  root_pass = PasswordPrompt.ask("Provide root password (hidden)")
  user_pass = PasswordPrompt.ask(f"Provide password for {user_name} (hidden)")
  return user_name, root_pass, user_pass


def set_libc() -> Libc:
  return ask_menu("C library", "Choose the C library (enter number)", [("glibc", Libc.GLIBC), ("musl", Libc.MUSL)])


def set_init_tools() -> InitTools:
  options = [("coreutils", InitTools.COREUTILS), ("busybox", InitTools.BUSYBOX)]
  return ask_menu("Core userland", "Choose the core userland (enter number)", options)


def set_x11() -> bool:
  console.print()
  return Confirm.ask("Install the X11 window system (BLFS)?", default=False)


def collect_config(default_hostname: str) -> InstallConfig:
  """Ask the operator for everything InstallConfig holds."""
  host = set_host(default_hostname)
  user_name, root_pass, user_pass = set_user()
  libc = set_libc()
  init_tools = set_init_tools()
  install_x11 = set_x11()
  return InstallConfig(
    hostname=host,
    username=user_name,
    root_password=root_pass,
    user_password=user_pass,
    libc=libc,
    init_tools=init_tools,
    install_x11=install_x11,
  )


def set_disk(devices: list[DeviceInfo]) -> DeviceInfo:
  """List the disks and return the chosen one. Invalid input is fatal."""
  console.print()
  console.print("Disks:")
  for i, disk in enumerate(devices, start=1):
    model = f" {escape(disk.model)}" if disk.model else ""
    console.print(f" {i}. {disk.path} ({disk.size_gib:.1f} GiB){model}")

  console.print()
  choice = Prompt.ask("Choose the destination disk (enter number)")
  return select_disk(devices, choice)
