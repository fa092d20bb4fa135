"""
Error types for lfs-install.

Every fatal condition is an InstallerError. The installer entry point catches
them, prints the message and exits with status 1. Advisory problems (a failed
download, a checksum mismatch) are never raised; they are collected as
warnings instead.
"""

from __future__ import annotations

from collections.abc import Sequence


class InstallerError(Exception):
  """Base class for fatal installer errors, with an optional hint."""

  def __init__(self, message: str, *, hint: str | None = None) -> None:
    super().__init__(message)
    self.hint: str | None = hint

  def __str__(self) -> str:
    message = super().__str__()
    if self.hint:
      return f"{message}\nHint: {self.hint}"
    return message


class ConfigError(InstallerError):
  """config.json is missing or malformed."""


class EnvironmentProbeError(InstallerError):
  """The host could not be probed, or it has no usable disk."""


class MissingToolError(InstallerError):
  def __init__(self, tools: Sequence[str]) -> None:
    super().__init__(
      f"Required host tools not found: {', '.join(tools)}",
      hint="Install the missing tools and re-run the installer.",
    )
    self.tools: list[str] = list(tools)


class MissingInputError(InstallerError):
  """A required answer was left empty."""

  def __init__(self, what: str) -> None:
    super().__init__(f"No {what} given", hint=f"A {what} is required; re-run the installer and enter one.")
    self.what: str = what


class InvalidSelectionError(InstallerError):
  """The operator picked a disk index that does not exist."""


class AbortedError(InstallerError):
  """The operator declined to go on, before anything was written to disk."""


class PlanError(InstallerError):
  """The requested partition layout does not fit on the disk."""


class SizeWarning(InstallerError):
  """The disk is smaller than the recommended minimum.

  Raised by the planner unless the caller passes allow_undersized=True, which
  it should only do after the operator confirmed.
  """

  def __init__(self, disk: str, size_mib: int, minimum_mib: int) -> None:
    super().__init__(f"{disk} is {size_mib / 1024:.1f} GiB, less than the recommended {minimum_mib / 1024:.0f} GiB")
    self.disk: str = disk
    self.size_mib: int = size_mib
    self.minimum_mib: int = minimum_mib


class StepFailedError(InstallerError):
  """A command exited with a non-zero status."""

  def __init__(self, argv: Sequence[str], returncode: int, stderr: str = "", phase: str | None = None) -> None:
    where = f" in phase '{phase}'" if phase else ""
    message = f"Command '{' '.join(argv)}' failed with exit status {returncode}{where}"
    tail = "\n".join(stderr.strip().splitlines()[-10:])
    super().__init__(f"{message}\n{tail}" if tail else message)
    self.argv: list[str] = list(argv)
    self.returncode: int = returncode
    self.stderr: str = stderr
    self.phase: str | None = phase
