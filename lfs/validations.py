"""
Validation of operator input (hostname, username, passwords) and of the
defaults and package catalog in config.json.
"""

import re
import urllib.parse
from typing import Any

from lfs.types import PackageData

# useradd's default NAME_REGEX, capped at 32 characters
USERNAME_RE = re.compile(r"[a-z_][a-z0-9_-]{0,31}")

HOSTNAME_LABEL_RE = re.compile(r"[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?")

MD5_RE = re.compile(r"[0-9a-f]{32}")

# Accounts the installer creates on its own
RESERVED_USERNAMES = frozenset({"root", "lfs", "bin", "daemon", "nobody", "messagebus", "uuidd"})

REQUIRED_DEFAULTS = frozenset(
  {
    "hostname",
    "mount_root",
    "minimum_disk_mib",
    "swap_size_mib",
    "lfs_version",
    "md5sums_url",
    "build_user",
    "required_tools",
  }
)


def validate_username(username: str) -> bool:
  if username in RESERVED_USERNAMES or username.isdigit():
    return False
  return USERNAME_RE.fullmatch(username) is not None


def validate_password(password: str) -> bool:
  # chpasswd reads name:password lines
  return bool(password.strip()) and ":" not in password and "\n" not in password


def validate_url(url: str) -> bool:
  parsed = urllib.parse.urlparse(url)
  return parsed.scheme in ("http", "https", "ftp") and bool(parsed.netloc)


def validate_hostname(hostname: str) -> bool:
  """RFC 1123 hostname: dot-separated labels of letters, digits and inner hyphens."""
  if not 0 < len(hostname) <= 253:
    return False
  return all(HOSTNAME_LABEL_RE.fullmatch(label) for label in hostname.split("."))


def validate_md5(value: str) -> bool:
  return MD5_RE.fullmatch(value) is not None


def validate_defaults_json(data: Any) -> dict[str, Any]:
  """Check the `defaults` object of config.json. Raises KeyError or ValueError."""
  if not isinstance(data, dict):
    raise ValueError("'defaults' must be an object")

  if missing := REQUIRED_DEFAULTS - data.keys():
    raise KeyError(f"Missing required keys: {sorted(missing)}")

  sizes = [key for key in ("minimum_disk_mib", "swap_size_mib") if not isinstance(data[key], int) or data[key] <= 0]
  if sizes:
    raise ValueError(f"{', '.join(sizes)} must be positive integers (MiB)")

  tools = data["required_tools"]
  if not isinstance(tools, list) or not all(isinstance(tool, str) for tool in tools):
    raise ValueError("required_tools must be a list of program names")

  if not str(data["mount_root"]).startswith("/"):
    raise ValueError(f"mount_root must be an absolute path, got {data['mount_root']!r}")

  if not validate_hostname(str(data["hostname"])):
    raise ValueError(f"Invalid default hostname: {data['hostname']}")

  return data


def validate_packages_json(data: Any) -> dict[str, list[PackageData]]:
  """Validate and return the package catalog: group name -> list of packages."""
  if not isinstance(data, dict):
    raise ValueError("Packages JSON must be an object")

  for group, items in data.items():
    if not isinstance(items, list):
      raise ValueError(f"Package group '{group}' must be an array")

    for item in items:
      if not isinstance(item, dict):
        raise ValueError(f"Each package in '{group}' must be an object")

      if not all(key in item for key in ["name", "url"]):
        raise ValueError(f"Each package in '{group}' must have name and url fields")

      if not validate_url(item["url"]):
        raise ValueError(f"Invalid URL for package '{item['name']}': {item['url']}")

      md5 = item.get("md5")
      if md5 is not None and not validate_md5(md5):
        raise ValueError(f"Invalid md5 for package '{item['name']}': {md5}")

  return data
