"""
Build phases and the pipeline that runs them.

A phase is an ordered list of steps plus the privilege context they run in.
The pipeline is fail-fast: the first failing step raises StepFailedError and
nothing after it runs. There is no persisted state, so a failed run starts
over from the beginning.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace

from lfs.command import CommandRunner, shell_step
from lfs.errors import StepFailedError
from lfs.recipes import (
  CHROOT_SOURCES,
  PackageRecipe,
  chroot_temp_tools_recipes,
  cross_temp_tools_recipes,
  cross_toolchain_recipes,
  final_system_recipes,
  kernel_recipe,
  recipe_steps,
  target_triple,
  x11_recipes,
)
from lfs.system_files import account_steps, bootloader_steps, essential_files, system_config_files
from lfs.types import (
  BuildEnv,
  BuildPhase,
  DefaultsConfig,
  DiskPlan,
  FileStep,
  InstallConfig,
  PackageSet,
  PrivilegeContext,
  ShellStep,
  Step,
)

logger = logging.getLogger(__name__)

# Runs argv in the directory given as $0, without any quoting.
CHDIR_SCRIPT = 'cd "$0" && exec "$@"'

LFS_TOP_DIRS = ["etc", "var", "usr/bin", "usr/lib", "usr/sbin", "lib64", "tools"]
LFS_USR_LINKS = ["bin", "lib", "sbin"]


@dataclass
class PipelineResult:
  completed: list[str] = field(default_factory=list)


def build_env(config: InstallConfig, defaults: DefaultsConfig, jobs: int | None = None) -> BuildEnv:
  return BuildEnv(
    lfs=defaults["mount_root"],
    target=target_triple(config.libc),
    jobs=jobs or os.cpu_count() or 1,
    build_user=defaults["build_user"],
    lfs_version=defaults["lfs_version"],
    term=os.environ.get("TERM", "xterm"),
  )


# =============================================================================
# Privilege contexts
# =============================================================================


def build_user_environment(env: BuildEnv) -> list[str]:
  return [
    f"HOME=/home/{env.build_user}",
    f"TERM={env.term}",
    f"LFS={env.lfs}",
    "LC_ALL=POSIX",
    f"LFS_TGT={env.target}",
    f"PATH={env.tools}/bin:/usr/bin:/bin",
    f"CONFIG_SITE={env.lfs}/usr/share/config.site",
    f"MAKEFLAGS=-j{env.jobs}",
  ]


def chroot_environment(env: BuildEnv) -> list[str]:
  return [
    "HOME=/root",
    f"TERM={env.term}",
    "PS1=(lfs chroot) \\u:\\w\\$ ",
    "PATH=/usr/bin:/usr/sbin",
    f"MAKEFLAGS=-j{env.jobs}",
  ]


def _in_directory(step: ShellStep) -> list[str]:
  if step.cwd is None:
    return list(step.argv)
  return ["/bin/sh", "-c", CHDIR_SCRIPT, step.cwd, *step.argv]


def wrap_step(step: Step, context: PrivilegeContext, env: BuildEnv) -> Step:
  """Rewrite a step so it runs in `context` with a minimal environment."""
  if isinstance(step, FileStep):
    if context == PrivilegeContext.CHROOTED_ROOT:
      return replace(step, path=f"{env.lfs}{step.path}")
    return step

  if context == PrivilegeContext.HOST_ROOT:
    return step

  extra = [f"{key}={value}" for key, value in step.env]

  if context == PrivilegeContext.UNPRIVILEGED_BUILD_USER:
    argv = [
      "runuser",
      "-u",
      env.build_user,
      "--",
      "env",
      "-i",
      *build_user_environment(env),
      *extra,
      *_in_directory(step),
    ]
  else:
    argv = ["chroot", env.lfs, "/usr/bin/env", "-i", *chroot_environment(env), *extra, *_in_directory(step)]

  return replace(step, argv=tuple(argv), cwd=None, env=())


# =============================================================================
# Pipeline driver
# =============================================================================


def run_phase(phase: BuildPhase, runner: CommandRunner, env: BuildEnv) -> None:
  logger.info("Phase '%s' (%s): %d steps", phase.name, phase.context.value, len(phase.steps))
  runner.ui.print(f"[bold]{phase.name}[/] [dim]({phase.context.value})[/]")

  for step in phase.steps:
    wrapped = wrap_step(step, phase.context, env)
    try:
      _ = runner.execute(wrapped)

    except StepFailedError as e:
      raise StepFailedError(e.argv, e.returncode, e.stderr, phase=phase.name) from e

    except OSError as e:
      assert isinstance(wrapped, FileStep)
      raise StepFailedError(["write", wrapped.path], 1, str(e), phase=phase.name) from e


def run_pipeline(phases: Sequence[BuildPhase], runner: CommandRunner, env: BuildEnv) -> PipelineResult:
  """Run phases in order. The first failure propagates; later phases never start."""
  result = PipelineResult()
  for phase in phases:
    run_phase(phase, runner, env)
    result.completed.append(phase.name)
  return result


# =============================================================================
# Phase builders
# =============================================================================


def _recipes_to_steps(recipes: Iterable[PackageRecipe], packages: PackageSet, sources_dir: str) -> list[Step]:
  return [step for recipe in recipes for step in recipe_steps(recipe, packages, sources_dir)]


def prepare_environment_phase(env: BuildEnv, build_user_exists: bool) -> BuildPhase:
  lfs, user = env.lfs, env.build_user
  steps: list[Step] = [shell_step("mkdir", "-p", *(f"{lfs}/{d}" for d in LFS_TOP_DIRS))]
  steps += [shell_step("ln", "-sfn", f"usr/{name}", f"{lfs}/{name}") for name in LFS_USR_LINKS]
  steps.append(shell_step("groupadd", "-f", user))

  if not build_user_exists:
    steps.append(shell_step("useradd", "-s", "/bin/bash", "-g", user, "-m", "-k", "/dev/null", user))

  owned = [f"{lfs}/{d}" for d in ("usr", "usr/bin", "usr/lib", "usr/sbin", "etc", "var", "lib64", "tools", "sources")]
  steps.append(shell_step("chown", "-h", user, *owned, *(f"{lfs}/{name}" for name in LFS_USR_LINKS)))
  return BuildPhase(name="Prepare environment", context=PrivilegeContext.HOST_ROOT, steps=tuple(steps))


def cross_toolchain_phase(env: BuildEnv, packages: PackageSet, config: InstallConfig) -> BuildPhase:
  return BuildPhase(
    name="Cross toolchain",
    context=PrivilegeContext.UNPRIVILEGED_BUILD_USER,
    steps=tuple(_recipes_to_steps(cross_toolchain_recipes(env, packages, config.libc), packages, env.sources)),
  )


def cross_temp_tools_phase(env: BuildEnv, packages: PackageSet, config: InstallConfig) -> BuildPhase:
  return BuildPhase(
    name="Cross-compiled temporary tools",
    context=PrivilegeContext.UNPRIVILEGED_BUILD_USER,
    steps=tuple(_recipes_to_steps(cross_temp_tools_recipes(env, packages, config.init_tools), packages, env.sources)),
  )


def ownership_phase(env: BuildEnv) -> BuildPhase:
  """Hand the new root back to root before it is used as a chroot."""
  targets = [f"{env.lfs}/{d}" for d in ("usr", "var", "etc", "tools", "lib64")]
  return BuildPhase(
    name="Change ownership",
    context=PrivilegeContext.HOST_ROOT,
    steps=(
      shell_step("chown", "-R", "root:root", *targets),
      shell_step("chown", "-h", "root:root", *(f"{env.lfs}/{name}" for name in LFS_USR_LINKS)),
    ),
  )


def _skeleton_dirs() -> list[str]:
  dirs = ["/boot", "/home", "/mnt", "/opt", "/srv", "/etc/opt", "/etc/sysconfig", "/lib/firmware"]
  dirs += ["/media/floppy", "/media/cdrom", "/usr/lib/locale"]
  for prefix in ("/usr", "/usr/local"):
    dirs += [f"{prefix}/{d}" for d in ("include", "src")]
    dirs += [f"{prefix}/share/{d}" for d in ("color", "dict", "doc", "info", "locale", "man", "misc", "terminfo", "zoneinfo")]
    dirs += [f"{prefix}/share/man/man{n}" for n in range(1, 9)]
  dirs += ["/usr/local/bin", "/usr/local/lib", "/usr/local/sbin"]
  dirs += [f"/var/{d}" for d in ("cache", "local", "log", "mail", "opt", "spool")]
  dirs += [f"/var/lib/{d}" for d in ("color", "misc", "locate")]
  return dirs


def temp_tools_phase(env: BuildEnv, packages: PackageSet, config: InstallConfig) -> BuildPhase:
  logs = [f"/var/log/{name}" for name in ("btmp", "lastlog", "faillog", "wtmp")]
  steps: list[Step] = [
    shell_step("mkdir", "-p", *_skeleton_dirs()),
    shell_step("ln", "-sfn", "/run", "/var/run"),
    shell_step("ln", "-sfn", "/run/lock", "/var/lock"),
    shell_step("install", "-d", "-m", "0750", "/root"),
    shell_step("install", "-d", "-m", "1777", "/tmp", "/var/tmp"),
    shell_step("ln", "-sf", "/proc/self/mounts", "/etc/mtab"),
    *essential_files(config),
    shell_step("touch", *logs),
    shell_step("chgrp", "utmp", "/var/log/lastlog"),
    shell_step("chmod", "664", "/var/log/lastlog"),
    shell_step("chmod", "600", "/var/log/btmp"),
  ]
  steps += _recipes_to_steps(chroot_temp_tools_recipes(packages), packages, CHROOT_SOURCES)
  steps.append(shell_step("rm", "-rf", "/tools"))
  return BuildPhase(name="Temporary tools", context=PrivilegeContext.CHROOTED_ROOT, steps=tuple(steps))


def final_system_phase(env: BuildEnv, packages: PackageSet, config: InstallConfig, plan: DiskPlan) -> BuildPhase:
  kernel_version = packages["linux"].source_dir.rsplit("-", 1)[-1]
  steps: list[Step] = _recipes_to_steps(final_system_recipes(packages, plan.boot_mode), packages, CHROOT_SOURCES)
  steps += account_steps(config)
  steps += system_config_files(config, plan)
  steps += recipe_steps(kernel_recipe(packages, env.lfs_version), packages, CHROOT_SOURCES)
  steps += bootloader_steps(plan, kernel_version, env.lfs_version)
  return BuildPhase(name="Final system", context=PrivilegeContext.CHROOTED_ROOT, steps=tuple(steps))


def x11_phase(packages: PackageSet, names: list[str]) -> BuildPhase:
  return BuildPhase(
    name="X11",
    context=PrivilegeContext.CHROOTED_ROOT,
    steps=tuple(_recipes_to_steps(x11_recipes(packages, names), packages, CHROOT_SOURCES)),
  )
