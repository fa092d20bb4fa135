import os
from pathlib import Path

import pytest

from conftest import RecordingUI
from lfs.command import CommandRunner, file_step, format_argv, shell_step
from lfs.errors import InstallerError, StepFailedError


def test_run_captures_output() -> None:
  result = CommandRunner(False, RecordingUI()).run(shell_step("sh", "-c", 'printf "%s" "$0"', "a b"))

  assert result.ok
  assert result.stdout == "a b"


def test_run_passes_stdin_and_cwd(tmp_path: Path) -> None:
  runner = CommandRunner(False, RecordingUI())
  result = runner.run(shell_step("sh", "-c", "cat; pwd", cwd=str(tmp_path), stdin="hello\n"))

  assert result.stdout.splitlines() == ["hello", str(tmp_path)]


def test_failing_step_raises_with_stderr_tail() -> None:
  runner = CommandRunner(False, RecordingUI())
  step = shell_step("sh", "-c", 'for i in $(seq 1 20); do echo "line $i" >&2; done; exit 3')

  with pytest.raises(StepFailedError) as excinfo:
    runner.run(step)

  message = str(excinfo.value)
  assert excinfo.value.returncode == 3
  assert "line 20" in message
  assert "line 10\n" not in message


def test_unchecked_failure_is_returned() -> None:
  result = CommandRunner(False, RecordingUI()).run(shell_step("sh", "-c", "exit 2", check=False))
  assert result.returncode == 2
  assert not result.ok


def test_missing_program_raises() -> None:
  with pytest.raises(StepFailedError) as excinfo:
    CommandRunner(False, RecordingUI()).run(shell_step("definitely-not-a-real-program-lfs"))

  assert excinfo.value.returncode == 127


def test_dry_run_prints_instead_of_running(tmp_path: Path) -> None:
  ui = RecordingUI()
  runner = CommandRunner(True, ui)
  target = tmp_path / "created"

  result = runner.run(shell_step("touch", str(target)))
  runner.write(file_step(str(tmp_path / "hostname"), ["lfs"]))

  assert result.ok
  assert not target.exists()
  assert not (tmp_path / "hostname").exists()
  assert any("DRY RUN" in line and "touch" in line for line in ui.lines)


def test_dry_run_hides_stdin() -> None:
  ui = RecordingUI()
  _ = CommandRunner(True, ui).run(shell_step("chpasswd", stdin="root:secret\n"))

  assert not any("secret" in line for line in ui.lines)


def test_write_file_with_mode(tmp_path: Path) -> None:
  path = tmp_path / "fstab"
  CommandRunner(False, RecordingUI()).write(file_step(str(path), ["a", "b"], mode=0o600))

  assert path.read_text() == "a\nb\n"
  assert os.stat(path).st_mode & 0o777 == 0o600


def test_format_argv_quotes() -> None:
  assert format_argv(["echo", "a b", "c"]) == "echo 'a b' c"


def test_installer_error_hint() -> None:
  assert str(InstallerError("broken", hint="fix it")) == "broken\nHint: fix it"
  assert str(InstallerError("broken")) == "broken"


def test_step_failed_error_names_phase() -> None:
  error = StepFailedError(["make"], 2, "oops", phase="Final system")
  assert str(error) == "Command 'make' failed with exit status 2 in phase 'Final system'\noops"
