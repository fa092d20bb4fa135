"""
Build recipes.

Every package is built the same way: extract the archive into the sources
directory, run the preparation commands, configure, build, install, then
delete the extracted tree. A PackageRecipe only says what differs between
packages; recipe_steps() turns it into ShellSteps.

Recipe paths are the paths seen by the phase that runs them: host paths
under the LFS mount for the build user, paths inside the new root for chroot
phases.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from lfs.system_files import kernel_image_name
from lfs.types import BootMode, BuildEnv, InitTools, Libc, PackageSet, ShellStep

Argv = tuple[str, ...]

BUILD_TRIPLE: Final = "x86_64-pc-linux-gnu"
CHROOT_SOURCES: Final = "/sources"


@dataclass(frozen=True)
class Cmd:
  """A command of a recipe. `subdir` is relative to the extracted source tree."""

  argv: Argv
  subdir: str | None = None


def c(*argv: str, subdir: str | None = None) -> Cmd:
  return Cmd(argv=tuple(argv), subdir=subdir)


def concat_cmd(dest: str, *sources: str, subdir: str | None = None) -> Cmd:
  return c("sh", "-c", 'cat "$@" > "$0"', dest, *sources, subdir=subdir)


@dataclass(frozen=True)
class PackageRecipe:
  package: str
  label: str = ""
  extra_archives: tuple[str, ...] = ()
  prepare: tuple[Cmd, ...] = ()
  build_dir: str | None = None
  configure: Cmd | None = None
  build: tuple[Cmd, ...] = (c("make"),)
  install: tuple[Cmd, ...] = (c("make", "install"),)

  @property
  def title(self) -> str:
    return self.label or self.package


def version_of(packages: PackageSet, name: str) -> str:
  """Version part of a package's source directory, e.g. 14.2.0 for gcc-14.2.0."""
  return packages[name].source_dir.rsplit("-", 1)[-1]


def recipe_steps(recipe: PackageRecipe, packages: PackageSet, sources_dir: str) -> list[ShellStep]:
  entry = packages[recipe.package]
  src = f"{sources_dir}/{entry.source_dir}"
  work = f"{src}/{recipe.build_dir}" if recipe.build_dir else src

  def step(cmd: Cmd, default_cwd: str, description: str = "") -> ShellStep:
    cwd = f"{src}/{cmd.subdir}" if cmd.subdir else default_cwd
    return ShellStep(argv=cmd.argv, cwd=cwd, description=description)

  steps = [
    ShellStep(
      argv=("tar", "-xf", f"{sources_dir}/{entry.filename}", "-C", sources_dir),
      description=f"Building {recipe.title}",
    )
  ]

  for name in recipe.extra_archives:
    extra = packages[name]
    steps.append(ShellStep(argv=("tar", "-xf", f"{sources_dir}/{extra.filename}"), cwd=src))
    steps.append(ShellStep(argv=("mv", extra.source_dir, name), cwd=src))

  steps += [step(cmd, src) for cmd in recipe.prepare]

  if recipe.build_dir:
    steps.append(ShellStep(argv=("mkdir", "-p", work), cwd=src))

  if recipe.configure is not None:
    steps.append(step(recipe.configure, work))

  steps += [step(cmd, work) for cmd in recipe.build]
  steps += [step(cmd, work) for cmd in recipe.install]
  steps.append(ShellStep(argv=("rm", "-rf", src), cwd=sources_dir))
  return steps


def target_triple(libc: Libc) -> str:
  return "x86_64-lfs-linux-gnu" if libc == Libc.GLIBC else "x86_64-lfs-linux-musl"


# =============================================================================
# Cross toolchain (build user)
# =============================================================================


def cross_toolchain_recipes(env: BuildEnv, packages: PackageSet, libc: Libc) -> list[PackageRecipe]:
  lfs, tgt = env.lfs, env.target
  gcc_version = version_of(packages, "gcc")
  glibc_version = ["--with-glibc-version=" + version_of(packages, "glibc")] if libc == Libc.GLIBC else []
  lib64_fix = c("sed", "-e", "/m64=/s/lib64/lib/", "-i.orig", "gcc/config/i386/t-linux64")

  recipes = [
    PackageRecipe(
      package="binutils",
      label="binutils (pass 1)",
      build_dir="build",
      configure=c(
        "../configure",
        f"--prefix={lfs}/tools",
        f"--with-sysroot={lfs}",
        f"--target={tgt}",
        "--disable-nls",
        "--enable-gprofng=no",
        "--disable-werror",
        "--enable-new-dtags",
        "--enable-default-hash-style=gnu",
      ),
    ),
    PackageRecipe(
      package="gcc",
      label="gcc (pass 1)",
      extra_archives=("mpfr", "gmp", "mpc"),
      prepare=(lib64_fix,),
      build_dir="build",
      configure=c(
        "../configure",
        f"--target={tgt}",
        f"--prefix={lfs}/tools",
        *glibc_version,
        f"--with-sysroot={lfs}",
        "--with-newlib",
        "--without-headers",
        "--enable-default-pie",
        "--enable-default-ssp",
        "--disable-nls",
        "--disable-shared",
        "--disable-multilib",
        "--disable-threads",
        "--disable-libatomic",
        "--disable-libgomp",
        "--disable-libquadmath",
        "--disable-libssp",
        "--disable-libvtv",
        "--disable-libstdcxx",
        "--enable-languages=c,c++",
      ),
      install=(
        c("make", "install"),
        concat_cmd(
          f"{lfs}/tools/lib/gcc/{tgt}/{gcc_version}/include/limits.h",
          "gcc/limitx.h",
          "gcc/glimits.h",
          "gcc/limity.h",
          subdir=".",
        ),
      ),
    ),
    PackageRecipe(
      package="linux",
      label="Linux API headers",
      prepare=(c("make", "mrproper"),),
      build=(c("make", "headers"),),
      install=(
        c("find", "usr/include", "-type", "f", "!", "-name", "*.h", "-delete"),
        c("cp", "-r", "usr/include", f"{lfs}/usr"),
      ),
    ),
  ]

  if libc == Libc.GLIBC:
    recipes.append(
      PackageRecipe(
        package="glibc",
        prepare=(
          c("ln", "-sfv", "../lib/ld-linux-x86-64.so.2", f"{lfs}/lib64"),
          c("ln", "-sfv", "../lib/ld-linux-x86-64.so.2", f"{lfs}/lib64/ld-lsb-x86-64.so.3"),
        ),
        build_dir="build",
        configure=c(
          "../configure",
          "--prefix=/usr",
          f"--host={tgt}",
          f"--build={BUILD_TRIPLE}",
          "--enable-kernel=4.19",
          f"--with-headers={lfs}/usr/include",
          "--disable-nscd",
          "libc_cv_slibdir=/usr/lib",
        ),
        install=(
          c("make", f"DESTDIR={lfs}", "install"),
          c("sed", "/RTLDLIST=/s@/usr@@g", "-i", f"{lfs}/usr/bin/ldd"),
        ),
      )
    )
  else:
    recipes.append(
      PackageRecipe(
        package="musl",
        configure=c(
          "./configure",
          "--prefix=/usr",
          f"--target={tgt}",
          f"CROSS_COMPILE={tgt}-",
          "--syslibdir=/usr/lib",
        ),
        install=(c("make", f"DESTDIR={lfs}", "install"),),
      )
    )

  recipes.append(
    PackageRecipe(
      package="gcc",
      label="libstdc++",
      build_dir="build",
      configure=c(
        "../libstdc++-v3/configure",
        f"--host={tgt}",
        f"--build={BUILD_TRIPLE}",
        "--prefix=/usr",
        "--disable-multilib",
        "--disable-nls",
        "--disable-libstdcxx-pch",
        f"--with-gxx-include-dir=/tools/{tgt}/include/c++/{gcc_version}",
      ),
      install=(
        c("make", f"DESTDIR={lfs}", "install"),
        c(
          "rm",
          "-f",
          *(f"{lfs}/usr/lib/lib{name}.la" for name in ("stdc++", "stdc++exp", "stdc++fs", "supc++")),
        ),
      ),
    )
  )
  return recipes


# =============================================================================
# Cross-compiled temporary tools (build user)
# =============================================================================


def _cross_autotools(env: BuildEnv, package: str, *extra: str, **kwargs) -> PackageRecipe:
  return PackageRecipe(
    package=package,
    configure=c("./configure", "--prefix=/usr", f"--host={env.target}", f"--build={BUILD_TRIPLE}", *extra),
    install=kwargs.pop("install", (c("make", f"DESTDIR={env.lfs}", "install"),)),
    **kwargs,
  )


def cross_temp_tools_recipes(env: BuildEnv, packages: PackageSet, init_tools: InitTools) -> list[PackageRecipe]:
  lfs, tgt = env.lfs, env.target
  destdir_install = c("make", f"DESTDIR={lfs}", "install")
  file_src = f"{env.sources}/{packages['file'].source_dir}"
  ncurses_src = f"{env.sources}/{packages['ncurses'].source_dir}"
  lib64_fix = c("sed", "-e", "/m64=/s/lib64/lib/", "-i.orig", "gcc/config/i386/t-linux64")

  if init_tools == InitTools.COREUTILS:
    userland = _cross_autotools(
      env,
      "coreutils",
      "--enable-install-program=hostname",
      "--enable-no-install-program=kill,uptime",
      install=(destdir_install, c("mv", f"{lfs}/usr/bin/chroot", f"{lfs}/usr/sbin")),
    )
  else:
    userland = PackageRecipe(
      package="busybox",
      prepare=(c("make", "defconfig"),),
      build=(c("make", f"CROSS_COMPILE={tgt}-"),),
      install=(c("make", f"CROSS_COMPILE={tgt}-", f"CONFIG_PREFIX={lfs}", "install"),),
    )

  return [
    _cross_autotools(env, "m4"),
    _cross_autotools(
      env,
      "ncurses",
      "--mandir=/usr/share/man",
      "--with-manpage-format=normal",
      "--with-shared",
      "--without-normal",
      "--with-cxx-shared",
      "--without-debug",
      "--without-ada",
      "--disable-stripping",
      prepare=(
        c("mkdir", "-p", "build"),
        c("../configure", subdir="build"),
        c("make", "-C", "include", subdir="build"),
        c("make", "-C", "progs", "tic", subdir="build"),
      ),
      install=(
        c("make", f"DESTDIR={lfs}", f"TIC_PATH={ncurses_src}/build/progs/tic", "install"),
        c("ln", "-sf", "libncursesw.so", f"{lfs}/usr/lib/libncurses.so"),
        c("sed", "-e", "s/^#if.*XOPEN.*$/#if 1/", "-i", f"{lfs}/usr/include/curses.h"),
      ),
    ),
    _cross_autotools(
      env,
      "bash",
      "--without-bash-malloc",
      install=(destdir_install, c("ln", "-sf", "bash", f"{lfs}/bin/sh")),
    ),
    userland,
    _cross_autotools(env, "diffutils"),
    _cross_autotools(
      env,
      "file",
      prepare=(
        c("mkdir", "-p", "build"),
        c(
          "../configure",
          "--disable-bzlib",
          "--disable-libseccomp",
          "--disable-xzlib",
          "--disable-zlib",
          subdir="build",
        ),
        c("make", subdir="build"),
      ),
      build=(c("make", f"FILE_COMPILE={file_src}/build/src/file"),),
    ),
    _cross_autotools(env, "findutils", "--localstatedir=/var/lib/locate"),
    _cross_autotools(env, "gawk", prepare=(c("sed", "-i", "s/extras//", "Makefile.in"),)),
    _cross_autotools(env, "grep"),
    _cross_autotools(env, "gzip"),
    _cross_autotools(env, "make", "--without-guile"),
    _cross_autotools(env, "patch"),
    _cross_autotools(env, "sed"),
    _cross_autotools(env, "tar"),
    _cross_autotools(
      env,
      "xz",
      "--disable-static",
      f"--docdir=/usr/share/doc/{packages['xz'].source_dir}",
    ),
    PackageRecipe(
      package="binutils",
      label="binutils (pass 2)",
      prepare=(c("sed", "6031s/$add_dir//", "-i", "ltmain.sh"),),
      build_dir="build",
      configure=c(
        "../configure",
        "--prefix=/usr",
        f"--build={BUILD_TRIPLE}",
        f"--host={tgt}",
        "--disable-nls",
        "--enable-shared",
        "--enable-gprofng=no",
        "--disable-werror",
        "--enable-64-bit-bfd",
        "--enable-new-dtags",
        "--enable-default-hash-style=gnu",
      ),
      install=(
        destdir_install,
        c(
          "rm",
          "-f",
          *(
            f"{lfs}/usr/lib/lib{name}.{ext}"
            for name in ("bfd", "ctf", "ctf-nobfd", "opcodes", "sframe")
            for ext in ("a", "la")
          ),
        ),
      ),
    ),
    PackageRecipe(
      package="gcc",
      label="gcc (pass 2)",
      extra_archives=("mpfr", "gmp", "mpc"),
      prepare=(
        lib64_fix,
        c("sed", "/thread_header =/s/@.*@/gthr-posix.h/", "-i", "libgcc/Makefile.in", "libstdc++-v3/include/Makefile.in"),
      ),
      build_dir="build",
      configure=c(
        "../configure",
        f"--build={BUILD_TRIPLE}",
        f"--host={tgt}",
        f"--target={tgt}",
        f"LDFLAGS_FOR_TARGET=-L{env.sources}/{packages['gcc'].source_dir}/build/{tgt}/libgcc",
        "--prefix=/usr",
        f"--with-build-sysroot={lfs}",
        "--enable-default-pie",
        "--enable-default-ssp",
        "--disable-nls",
        "--disable-multilib",
        "--disable-libatomic",
        "--disable-libgomp",
        "--disable-libquadmath",
        "--disable-libsanitizer",
        "--disable-libssp",
        "--disable-libvtv",
        "--enable-languages=c,c++",
      ),
      install=(destdir_install, c("ln", "-sf", "gcc", f"{lfs}/usr/bin/cc")),
    ),
  ]


# =============================================================================
# Temporary tools inside the chroot
# =============================================================================


def chroot_temp_tools_recipes(packages: PackageSet) -> list[PackageRecipe]:
  return [
    PackageRecipe(
      package="gettext",
      configure=c("./configure", "--disable-shared"),
      install=(
        c("cp", "gettext-tools/src/msgfmt", "gettext-tools/src/msgmerge", "gettext-tools/src/xgettext", "/usr/bin"),
      ),
    ),
    PackageRecipe(
      package="bison",
      configure=c("./configure", "--prefix=/usr", f"--docdir=/usr/share/doc/{packages['bison'].source_dir}"),
    ),
    PackageRecipe(
      package="perl",
      configure=c(
        "sh",
        "Configure",
        "-des",
        "-D",
        "prefix=/usr",
        "-D",
        "vendorprefix=/usr",
        "-D",
        "useshrplib",
      ),
    ),
    PackageRecipe(package="zlib", configure=c("./configure", "--prefix=/usr")),
    PackageRecipe(
      package="python",
      label="Python",
      configure=c("./configure", "--prefix=/usr", "--enable-shared", "--without-ensurepip"),
    ),
    PackageRecipe(package="texinfo", configure=c("./configure", "--prefix=/usr")),
    PackageRecipe(
      package="util-linux",
      prepare=(c("mkdir", "-p", "/var/lib/hwclock"),),
      configure=c(
        "./configure",
        "--libdir=/usr/lib",
        "--runstatedir=/run",
        "--disable-chfn-chsh",
        "--disable-login",
        "--disable-nologin",
        "--disable-su",
        "--disable-setpriv",
        "--disable-runuser",
        "--disable-pylibmount",
        "--disable-static",
        "--disable-liblastlog2",
        "--without-python",
        "ADJTIME_PATH=/var/lib/hwclock/adjtime",
      ),
    ),
  ]


# =============================================================================
# Final system inside the chroot
# =============================================================================


def final_system_recipes(packages: PackageSet, boot_mode: BootMode) -> list[PackageRecipe]:
  grub_platform = ("--with-platform=efi", "--target=x86_64") if boot_mode == BootMode.UEFI else ()

  return [
    PackageRecipe(
      package="bzip2",
      build=(c("make", "-f", "Makefile-libbz2_so"), c("make", "clean"), c("make")),
      install=(c("make", "PREFIX=/usr", "install"), c("cp", "-f", "bzip2-shared", "/usr/bin/bzip2")),
    ),
    PackageRecipe(package="flex", configure=c("./configure", "--prefix=/usr", "--disable-static")),
    PackageRecipe(package="bc", configure=c("env", "CC=gcc", "./configure", "--prefix=/usr", "-G", "-O3", "-r")),
    PackageRecipe(
      package="pkgconf",
      configure=c("./configure", "--prefix=/usr", "--disable-static"),
      install=(c("make", "install"), c("ln", "-sf", "pkgconf", "/usr/bin/pkg-config")),
    ),
    PackageRecipe(
      package="elfutils",
      label="libelf",
      configure=c("./configure", "--prefix=/usr", "--disable-debuginfod", "--enable-libdebuginfod=dummy"),
      install=(
        c("make", "-C", "libelf", "install"),
        c("install", "-Dm644", "config/libelf.pc", "/usr/lib/pkgconfig/libelf.pc"),
      ),
    ),
    PackageRecipe(
      package="libxcrypt",
      configure=c(
        "./configure",
        "--prefix=/usr",
        "--enable-hashes=strong,glibc",
        "--enable-obsolete-api=no",
        "--disable-static",
        "--disable-failure-tokens",
      ),
    ),
    PackageRecipe(
      package="shadow",
      prepare=(c("sed", "-i", "s/groups$(EXEEXT) //", "src/Makefile.in"),),
      configure=c(
        "./configure",
        "--sysconfdir=/etc",
        "--disable-static",
        "--with-yescrypt",
        "--without-libbsd",
        "--with-group-name-max-length=32",
      ),
      install=(c("make", "exec_prefix=/usr", "install"), c("pwconv"), c("grpconv")),
    ),
    PackageRecipe(
      package="ninja",
      build=(c("python3", "configure.py", "--bootstrap"),),
      install=(c("install", "-m755", "ninja", "/usr/bin/"),),
    ),
    PackageRecipe(
      package="meson",
      build=(),
      install=(
        c("python3", "packaging/create_zipapp.py", "--outfile", "/usr/bin/meson", "--interpreter", "/usr/bin/python3"),
      ),
    ),
    PackageRecipe(
      package="e2fsprogs",
      build_dir="build",
      configure=c(
        "../configure",
        "--prefix=/usr",
        "--sysconfdir=/etc",
        "--enable-elf-shlibs",
        "--disable-libblkid",
        "--disable-libuuid",
        "--disable-uuidd",
        "--disable-fsck",
      ),
    ),
    PackageRecipe(
      package="kmod",
      configure=c("./configure", "--prefix=/usr", "--sysconfdir=/etc", "--with-zlib"),
      install=(
        c("make", "install"),
        *(c("ln", "-sf", "../bin/kmod", f"/usr/sbin/{tool}") for tool in ("depmod", "insmod", "modinfo", "modprobe", "rmmod")),
        c("ln", "-sf", "kmod", "/usr/bin/lsmod"),
      ),
    ),
    PackageRecipe(
      package="grub",
      configure=c("./configure", "--prefix=/usr", "--sysconfdir=/etc", "--disable-efiemu", "--disable-werror", *grub_platform),
    ),
  ]


def kernel_recipe(packages: PackageSet, lfs_version: str) -> PackageRecipe:
  version = version_of(packages, "linux")
  return PackageRecipe(
    package="linux",
    label="Linux kernel",
    prepare=(c("make", "mrproper"), c("make", "defconfig")),
    build=(c("make"),),
    install=(
      c("make", "modules_install"),
      c("cp", "-f", "arch/x86/boot/bzImage", f"/boot/{kernel_image_name(version, lfs_version)}"),
      c("cp", "-f", "System.map", f"/boot/System.map-{version}"),
      c("cp", "-f", ".config", f"/boot/config-{version}"),
    ),
  )


# =============================================================================
# X11 (BLFS Xorg)
# =============================================================================

X11_MESON: Final[dict[str, tuple[str, ...]]] = {
  "xorgproto": (),
  "pixman": ("-Dgtk=disabled", "-Dtests=disabled"),
  "xkeyboard-config": (),
  "xorg-server": (
    "-Dglamor=false",
    "-Dsecure-rpc=false",
    "-Dudev=false",
    "-Dudev_kms=false",
    "-Dxkb_output_dir=/var/lib/xkb",
  ),
}

X11_CONFIGURE_EXTRA: Final[dict[str, tuple[str, ...]]] = {
  "libxcb": ("--without-doxygen",),
  "libX11": ("--disable-specs",),
  "libxshmfence": ("--with-shared-memory-dir=/dev/shm",),
}

XORG_PREFIX: Final = ("--prefix=/usr", "--sysconfdir=/etc", "--localstatedir=/var", "--disable-static")


def x11_recipes(packages: PackageSet, names: list[str]) -> list[PackageRecipe]:
  """Recipes for the X11 packages in `names`, in that order. Names missing from `packages` are skipped."""
  recipes: list[PackageRecipe] = []
  for name in (n for n in names if n in packages):
    if name in X11_MESON:
      recipes.append(
        PackageRecipe(
          package=name,
          build_dir="build",
          configure=c("meson", "setup", "..", "--prefix=/usr", "--buildtype=release", *X11_MESON[name]),
          build=(c("ninja"),),
          install=(c("ninja", "install"),),
        )
      )
    else:
      recipes.append(
        PackageRecipe(
          package=name,
          configure=c("./configure", *XORG_PREFIX, *X11_CONFIGURE_EXTRA.get(name, ())),
        )
      )
  return recipes
