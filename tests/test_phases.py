from pathlib import Path

import pytest

from conftest import RecordingRunner, RecordingUI, disk, install_config
from lfs.command import CommandRunner, file_step, shell_step
from lfs.errors import StepFailedError
from lfs.packages import resolve_package_set
from lfs.phases import (
  CHDIR_SCRIPT,
  build_env,
  cross_temp_tools_phase,
  cross_toolchain_phase,
  final_system_phase,
  ownership_phase,
  prepare_environment_phase,
  run_pipeline,
  temp_tools_phase,
  wrap_step,
  x11_phase,
)
from lfs.planner import plan_partitions
from lfs.types import BootMode, BuildEnv, BuildPhase, FileStep, InitTools, Libc, PrivilegeContext, ShellStep
from lfs.utils import load_defaults

ENV = BuildEnv(lfs="/mnt/lfs", target="x86_64-lfs-linux-gnu", jobs=4, build_user="lfs", lfs_version="12.2")


def test_host_root_runs_argv_unchanged() -> None:
  step = shell_step("mkdir", "-p", "/mnt/lfs/tools", cwd="/tmp")
  assert wrap_step(step, PrivilegeContext.HOST_ROOT, ENV) == step


def test_build_user_context_has_minimal_environment() -> None:
  step = shell_step("make", "install", cwd="/mnt/lfs/sources/m4-1.4.19", env={"DESTDIR": "/mnt/lfs"})
  wrapped = wrap_step(step, PrivilegeContext.UNPRIVILEGED_BUILD_USER, ENV)

  assert isinstance(wrapped, ShellStep)
  argv = list(wrapped.argv)
  assert argv[:6] == ["runuser", "-u", "lfs", "--", "env", "-i"]
  assert "HOME=/home/lfs" in argv
  assert "LFS=/mnt/lfs" in argv
  assert "LC_ALL=POSIX" in argv
  assert "LFS_TGT=x86_64-lfs-linux-gnu" in argv
  assert "PATH=/mnt/lfs/tools/bin:/usr/bin:/bin" in argv
  assert "MAKEFLAGS=-j4" in argv
  assert "DESTDIR=/mnt/lfs" in argv
  assert argv[-6:] == ["/bin/sh", "-c", CHDIR_SCRIPT, "/mnt/lfs/sources/m4-1.4.19", "make", "install"]
  assert wrapped.cwd is None
  assert wrapped.env == ()


def test_chroot_context() -> None:
  step = shell_step("make", cwd="/sources/perl-5.40.0")
  wrapped = wrap_step(step, PrivilegeContext.CHROOTED_ROOT, ENV)

  assert isinstance(wrapped, ShellStep)
  argv = list(wrapped.argv)
  assert argv[:4] == ["chroot", "/mnt/lfs", "/usr/bin/env", "-i"]
  assert "HOME=/root" in argv
  assert "PATH=/usr/bin:/usr/sbin" in argv
  assert not any(a.startswith("LFS=") for a in argv)
  assert argv[-3:] == [CHDIR_SCRIPT, "/sources/perl-5.40.0", "make"]


def test_chroot_without_cwd_skips_shell() -> None:
  wrapped = wrap_step(shell_step("chpasswd", stdin="root:pw\n"), PrivilegeContext.CHROOTED_ROOT, ENV)

  assert isinstance(wrapped, ShellStep)
  assert "/bin/sh" not in wrapped.argv
  assert wrapped.argv[-1] == "chpasswd"
  assert wrapped.stdin == "root:pw\n"


def test_file_steps_are_rebased_in_chroot() -> None:
  step = file_step("/etc/hostname", ["lfs"])

  chrooted = wrap_step(step, PrivilegeContext.CHROOTED_ROOT, ENV)
  assert isinstance(chrooted, FileStep)
  assert chrooted.path == "/mnt/lfs/etc/hostname"
  assert wrap_step(step, PrivilegeContext.HOST_ROOT, ENV) == step


def test_pipeline_stops_at_first_failure() -> None:
  phases = [
    BuildPhase("one", PrivilegeContext.HOST_ROOT, (shell_step("true"), shell_step("true"))),
    BuildPhase("two", PrivilegeContext.HOST_ROOT, (shell_step("boom"), shell_step("after"))),
    BuildPhase("three", PrivilegeContext.HOST_ROOT, (shell_step("never"),)),
  ]
  runner = RecordingRunner(fail_on="boom")

  with pytest.raises(StepFailedError) as excinfo:
    run_pipeline(phases, runner, ENV)

  assert excinfo.value.phase == "two"
  assert "phase 'two'" in str(excinfo.value)
  assert runner.programs == ["true", "true", "boom"]


def test_pipeline_reports_completed_phases(runner: RecordingRunner) -> None:
  phases = [
    BuildPhase("one", PrivilegeContext.HOST_ROOT, (shell_step("true"),)),
    BuildPhase("two", PrivilegeContext.CHROOTED_ROOT, (file_step("/etc/hosts", ["127.0.0.1 localhost"]),)),
  ]

  result = run_pipeline(phases, runner, ENV)

  assert result.completed == ["one", "two"]
  assert isinstance(runner.steps[1], FileStep)
  assert runner.steps[1].path == "/mnt/lfs/etc/hosts"


def test_failed_file_write_stops_pipeline(tmp_path: Path) -> None:
  env = BuildEnv(lfs=str(tmp_path), target="x86_64-lfs-linux-gnu", jobs=1)
  phases = [BuildPhase("files", PrivilegeContext.CHROOTED_ROOT, (file_step("/no/such/dir/file", ["x"]),))]

  with pytest.raises(StepFailedError) as excinfo:
    run_pipeline(phases, CommandRunner(False, RecordingUI()), env)

  assert excinfo.value.phase == "files"


@pytest.mark.parametrize("exists", [True, False])
def test_prepare_environment_creates_build_user_once(exists: bool) -> None:
  phase = prepare_environment_phase(ENV, exists)
  programs = [step.argv[0] for step in phase.steps if isinstance(step, ShellStep)]

  assert phase.context == PrivilegeContext.HOST_ROOT
  assert "groupadd" in programs
  assert ("useradd" in programs) is not exists


@pytest.mark.parametrize("libc", [Libc.GLIBC, Libc.MUSL])
@pytest.mark.parametrize("init_tools", [InitTools.COREUTILS, InitTools.BUSYBOX])
@pytest.mark.parametrize("boot_mode", [BootMode.BIOS, BootMode.UEFI])
def test_every_configuration_builds_all_phases(libc: Libc, init_tools: InitTools, boot_mode: BootMode) -> None:
  config = install_config(libc, init_tools, install_x11=True)
  packages = resolve_package_set(config)
  env = build_env(config, load_defaults(), jobs=2)
  plan = plan_partitions(disk(), boot_mode, 2048, minimum_mib=25600)

  phases = [
    prepare_environment_phase(env, False),
    cross_toolchain_phase(env, packages, config),
    cross_temp_tools_phase(env, packages, config),
    ownership_phase(env),
    temp_tools_phase(env, packages, config),
    final_system_phase(env, packages, config, plan),
    x11_phase(packages, [name for name in packages if name not in resolve_package_set(install_config(libc, init_tools))]),
  ]

  assert all(phase.steps for phase in phases)
  archives = [s.argv[2] for p in phases for s in p.steps if isinstance(s, ShellStep) and s.argv[:2] == ("tar", "-xf")]
  assert any(libc.value in a for a in archives)
  assert any(init_tools.value in a for a in archives)


def test_cross_phases_use_host_sources_and_chroot_phases_do_not() -> None:
  config = install_config()
  packages = resolve_package_set(config)
  env = build_env(config, load_defaults(), jobs=2)

  cross = cross_toolchain_phase(env, packages, config)
  temp = temp_tools_phase(env, packages, config)

  assert cross.context == PrivilegeContext.UNPRIVILEGED_BUILD_USER
  assert temp.context == PrivilegeContext.CHROOTED_ROOT
  assert all(s.cwd is None or s.cwd.startswith("/mnt/lfs/sources") for s in cross.steps if isinstance(s, ShellStep))
  assert all(s.cwd is None or s.cwd.startswith("/sources") for s in temp.steps if isinstance(s, ShellStep))


def test_final_system_sets_passwords_through_stdin() -> None:
  config = install_config()
  packages = resolve_package_set(config)
  env = build_env(config, load_defaults(), jobs=2)
  plan = plan_partitions(disk(), BootMode.UEFI, 2048, minimum_mib=25600)

  phase = final_system_phase(env, packages, config, plan)
  chpasswd = next(s for s in phase.steps if isinstance(s, ShellStep) and s.argv == ("chpasswd",))

  assert chpasswd.stdin == "root:rootpw\nalice:userpw\n"
  assert all("rootpw" not in s.argv for s in phase.steps if isinstance(s, ShellStep))
