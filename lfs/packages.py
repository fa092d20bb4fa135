"""
Package selection and download.

Downloads are advisory: a failed download or a checksum mismatch is reported
and the run continues. The build step that needs a missing archive fails
later, when it tries to extract it.
"""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

from lfs.command import CommandRunner, shell_step
from lfs.types import FetchReport, InitTools, InstallConfig, Libc, PackageData, PackageEntry, PackageSet
from lfs.utils import load_package_groups

logger = logging.getLogger(__name__)

MD5SUMS_NAME = "md5sums"


def load_catalog(config_file: str | None = None) -> dict[str, list[PackageEntry]]:
  """Package groups from config.json as PackageEntry lists."""

  def to_entry(data: PackageData) -> PackageEntry:
    return PackageEntry(name=data["name"], url=data["url"], md5=data.get("md5"))

  return {group: [to_entry(item) for item in items] for group, items in load_package_groups(config_file).items()}


def package_groups(config: InstallConfig) -> list[str]:
  """Catalog groups selected by `config`, in download order."""
  groups = ["base"]
  groups.append("glibc" if config.libc == Libc.GLIBC else "musl")
  groups.append("coreutils" if config.init_tools == InitTools.COREUTILS else "busybox")
  if config.install_x11:
    groups.append("x11")
  return groups


def resolve_package_set(
  config: InstallConfig,
  catalog: dict[str, list[PackageEntry]] | None = None,
) -> PackageSet:
  """Map an InstallConfig to the packages it needs. Same config, same result."""
  catalog = catalog if catalog is not None else load_catalog()
  package_set: PackageSet = {}

  for group in package_groups(config):
    for entry in catalog.get(group, []):
      package_set[entry.name] = entry

  return package_set


def md5_of(path: str | Path) -> str:
  h = hashlib.md5()
  with open(path, "rb") as f:
    for chunk in iter(lambda: f.read(1 << 20), b""):
      h.update(chunk)
  return h.hexdigest()


def parse_md5sums(text: str) -> dict[str, str]:
  """Parse `md5sum` output (hash, whitespace, optional '*', filename) into filename -> hash."""
  checksums: dict[str, str] = {}
  for line in text.splitlines():
    parts = line.strip().split(None, 1)
    if len(parts) != 2 or line.lstrip().startswith("#"):
      continue
    digest, name = parts
    checksums[name.lstrip("*").strip()] = digest.lower()
  return checksums


def fetch_checksums(url: str, dest_dir: str, runner: CommandRunner, warnings: list[str] | None = None) -> dict[str, str]:
  """Download the upstream md5sums list. An empty mapping means no checksums are known."""
  path = os.path.join(dest_dir, MD5SUMS_NAME)
  result = runner.run(shell_step("wget", "--quiet", f"--output-document={path}", url, check=False))

  if runner.dry_run:
    return {}

  if not result.ok or not os.path.isfile(path):
    message = f"Unable to download checksum list from {url} - archives will not be verified"
    logger.warning(message)
    if warnings is not None:
      warnings.append(message)
    return {}

  with open(path, "r") as f:
    return parse_md5sums(f.read())


def fetch_all(
  package_set: PackageSet,
  dest_dir: str,
  runner: CommandRunner,
  *,
  checksums: dict[str, str] | None = None,
  warnings: list[str] | None = None,
) -> FetchReport:
  """Download every package into dest_dir and verify what can be verified."""
  report = FetchReport()
  checksums = checksums or {}

  def warn(message: str) -> None:
    logger.warning(message)
    if warnings is not None:
      warnings.append(message)

  for name, entry in package_set.items():
    target = os.path.join(dest_dir, entry.filename)

    if os.path.isfile(target):
      report.skipped.append(name)

    else:
      result = runner.run(
        shell_step(
          "wget",
          "--continue",
          "--no-verbose",
          f"--directory-prefix={dest_dir}",
          entry.url,
          check=False,
          description=f"Downloading {entry.filename}",
        )
      )
      if not result.ok:
        report.failed.append(name)
        warn(f"Download of {entry.url} failed (exit {result.returncode})")
        continue

      report.downloaded.append(name)

    if runner.dry_run:
      continue

    expected = entry.md5 or checksums.get(entry.filename)
    if expected is None:
      report.unverified.append(name)
      continue

    if not os.path.isfile(target):
      report.failed.append(name)
      warn(f"{entry.filename} is missing after download")
      continue

    actual = md5_of(target)
    if actual != expected.lower():
      report.checksum_mismatches.append(name)
      warn(f"Checksum mismatch for {entry.filename}: expected {expected}, got {actual}")

  logger.info(
    "Fetch finished: %d downloaded, %d present, %d failed, %d mismatched, %d unverified",
    len(report.downloaded),
    len(report.skipped),
    len(report.failed),
    len(report.checksum_mismatches),
    len(report.unverified),
  )
  return report
