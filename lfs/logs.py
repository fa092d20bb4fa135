import logging
import os
from pathlib import Path

DEFAULT_LOG_PATH = "/var/log/lfs-install.log"
FALLBACK_LOG_NAME = "lfs-install.log"


def configure_logging(log_path: str = DEFAULT_LOG_PATH, level: int = logging.DEBUG) -> str:
  """
  Send all log records to a file and return the path actually used.

  The console belongs to the rich TUI, so no stream handler is installed.
  If log_path is not writable (dry runs as a normal user, read-only live
  media) the log goes to ./lfs-install.log instead.
  """
  root = logging.getLogger()
  if getattr(root, "_lfs_configured", False):
    return str(getattr(root, "_lfs_log_path", log_path))

  fmt = logging.Formatter(
    fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S%z",
  )

  chosen_path = log_path
  try:
    Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path)

  except OSError:
    chosen_path = str(Path.cwd() / FALLBACK_LOG_NAME)
    handler = logging.FileHandler(chosen_path)

  handler.setFormatter(fmt)
  root.addHandler(handler)
  root.setLevel(level)

  setattr(root, "_lfs_configured", True)
  setattr(root, "_lfs_log_path", chosen_path)

  logging.getLogger(__name__).info("Logging initialized (requested=%s, actual=%s)", log_path, chosen_path)
  return chosen_path
