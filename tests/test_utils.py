import json
import os
from pathlib import Path

import pytest

from lfs.errors import ConfigError
from lfs.utils import format_step_name, get_resource_path, load_defaults, load_package_groups
from lfs.validations import REQUIRED_DEFAULTS


def _write_config(path: Path, **overrides) -> str:
  with open(get_resource_path("config.json"), "r") as f:
    data = json.load(f)
  data["defaults"].update(overrides)
  path.write_text(json.dumps(data))
  return str(path)


def test_bundled_defaults() -> None:
  defaults = load_defaults()

  assert defaults["hostname"] == "lfs"
  assert defaults["mount_root"] == "/mnt/lfs"
  assert defaults["minimum_disk_mib"] == 25600
  assert defaults["build_user"] == "lfs"
  assert {"wget", "parted", "mkfs.ext4", "mkfs.vfat", "mkswap", "make"} <= set(defaults["required_tools"])


def test_bundled_catalog_groups() -> None:
  groups = load_package_groups()
  assert set(groups) == {"base", "glibc", "musl", "coreutils", "busybox", "x11"}


def test_mount_root_trailing_slash_is_stripped(tmp_path: Path) -> None:
  path = _write_config(tmp_path / "config.json", mount_root="/mnt/build/")
  assert load_defaults(path)["mount_root"] == "/mnt/build"


@pytest.mark.parametrize(
  "overrides",
  [
    {"swap_size_mib": 0},
    {"minimum_disk_mib": "lots"},
    {"mount_root": "relative/path"},
    {"hostname": "-bad-"},
    {"required_tools": "wget"},
  ],
)
def test_invalid_defaults_raise_config_error(tmp_path: Path, overrides: dict) -> None:
  path = _write_config(tmp_path / "config.json", **overrides)

  with pytest.raises(ConfigError):
    load_defaults(path)


def test_missing_key_raises_config_error(tmp_path: Path) -> None:
  path = tmp_path / "config.json"
  path.write_text(json.dumps({"defaults": {"hostname": "lfs"}, "packages": {}}))

  with pytest.raises(ConfigError, match="Missing required keys"):
    load_defaults(str(path))


def test_unreadable_config_raises_config_error(tmp_path: Path) -> None:
  path = tmp_path / "config.json"
  path.write_text("{ not json")

  with pytest.raises(ConfigError):
    load_defaults(str(path))

  with pytest.raises(ConfigError):
    load_defaults(str(tmp_path / "absent.json"))


def test_invalid_package_url(tmp_path: Path) -> None:
  path = tmp_path / "config.json"
  path.write_text(json.dumps({"packages": {"base": [{"name": "x", "url": "not a url"}]}}))

  with pytest.raises(ConfigError):
    load_package_groups(str(path))


@pytest.mark.parametrize(
  ("name", "expected"),
  [
    ("step_2_partition_disk", "Partition Disk"),
    ("step_6_mount_virtual_filesystems", "Mount Virtual Filesystems"),
    ("step_9_install_x11", "Install X11"),
  ],
)
def test_format_step_name(name: str, expected: str) -> None:
  assert format_step_name(name) == expected


def test_bundled_defaults_hold_only_known_keys() -> None:
  assert set(load_defaults()) == REQUIRED_DEFAULTS


def test_resource_path_is_inside_the_package() -> None:
  path = get_resource_path("config.json")
  assert os.path.isfile(path)
  assert os.path.basename(os.path.dirname(path)) == "lfs"
