"""
Policy composition and assembly.

compose:  deny-all baseline -> basics -> application bundles -> profile
assemble: dedupe, drop what does not exist, render bwrap arguments
"""

import os
import shlex
from dataclasses import dataclass
from typing import Optional

from burrow import ui
from burrow.bundles import DISABLE_USERNS, AppEntry, apply_bundles, resolve_application
from burrow.config import get_profile_dir, profile_path
from burrow.profiles import DEFAULT_MAX_DEPTH, home_dir, load_profile, runtime_dir
from burrow.seccomp_filter import FilterCompiler, SeccompMode, SyscallPolicy, select_syscall_policy
from burrow.state import PolicyState

BASELINE_ARGS = (
    "--unshare-all",
    "--unshare-user",
    DISABLE_USERNS,
    "--die-with-parent",
    "--new-session",
    "--cap-drop", "ALL",
    "--clearenv",
)

BASIC_RO = (
    "/etc/ld.so.cache",
    "/etc/ld.so.conf",
    "/etc/ld.so.conf.d",
    "/etc/alternatives",
    "/etc/localtime",
    "/etc/locale.conf",
    "/etc/locale.alias",
    "/etc/passwd",
    "/etc/group",
    "/etc/machine-id",
    "/etc/os-release",
)

BASIC_ENV = (
    "PATH", "HOME", "USER", "LOGNAME",
    "LANG", "LANGUAGE", "LC_ALL", "LC_CTYPE", "LC_MESSAGES", "TZ",
    "XDG_RUNTIME_DIR", "XDG_CONFIG_HOME", "XDG_DATA_HOME", "XDG_CACHE_HOME",
)

# Number of values each bwrap option takes, for readable dry-run output
ARITY = {
    "--bind": 2, "--ro-bind": 2, "--dev-bind": 2, "--dev-bind-try": 2,
    "--ro-bind-try": 2, "--bind-try": 2, "--symlink": 2, "--setenv": 2,
    "--cap-drop": 1, "--cap-add": 1, "--proc": 1, "--dev": 1,
    "--tmpfs": 1, "--dir": 1, "--perms": 1, "--unsetenv": 1,
}


def baseline_state() -> PolicyState:
    """Everything unshared, every capability dropped, empty environment."""
    return PolicyState(args=list(BASELINE_ARGS))


def apply_basics(state: PolicyState, environ=None) -> PolicyState:
    """What any dynamically linked program needs to start at all."""
    environ = os.environ if environ is None else environ
    state.add_args(
        "--ro-bind", "/usr", "/usr",
        "--symlink", "usr/bin", "/bin",
        "--symlink", "usr/sbin", "/sbin",
        "--symlink", "usr/lib", "/lib",
        "--symlink", "usr/lib64", "/lib64",
        "--proc", "/proc",
        "--dev", "/dev",
        "--tmpfs", "/tmp",
        "--perms", "0700", "--dir", runtime_dir(environ),
        "--dir", home_dir(environ),
    )
    state.add_ro(*BASIC_RO)
    state.add_env(*BASIC_ENV)
    return state


@dataclass
class Composition:
    state: PolicyState
    entry: AppEntry
    profile: str
    profile_found: bool


def compose_policy(app_id: str, config: dict, profile_name: str = None,
                   environ=None, extra_ro: tuple = ()) -> Composition:
    """Build the unassembled policy state for one application."""
    environ = os.environ if environ is None else environ

    state = apply_basics(baseline_state(), environ)

    entry = resolve_application(app_id, config.get("applications"))
    ui.debug(f"{app_id}: bundles {', '.join(entry.bundle_names) or '(none)'}")
    state = apply_bundles(entry, state, environ)

    state.add_ro(*extra_ro)

    profile = profile_name or entry.profile
    found, state = load_profile(
        profile_path(config, profile), state, get_profile_dir(config),
        environ=environ, max_depth=config.get("max_include_depth", DEFAULT_MAX_DEPTH),
    )
    if not found:
        ui.debug(f"no profile '{profile}', using bundles only")

    return Composition(state=state, entry=entry, profile=profile, profile_found=found)


def _usable(path: str) -> bool:
    return os.path.exists(path) and os.access(path, os.R_OK)


def _unique_paths(paths: list) -> list:
    return sorted({os.path.abspath(p) for p in paths})


def assemble(state: PolicyState, environ=None) -> list:
    """Render a policy state into the final bwrap argument list.

    Raw arguments come first, then ``--bind`` for every writable path,
    ``--ro-bind`` for every read-only path (both sorted) and ``--setenv`` for
    every passthrough variable with a non-empty value. rw and ro are
    deduplicated separately; a path listed in both gets both directives.
    """
    environ = os.environ if environ is None else environ
    args = list(state.args)

    for kind, flag, paths in (("rw", "--bind", state.rw), ("ro", "--ro-bind", state.ro)):
        for path in _unique_paths(paths):
            ok = _usable(path)
            ui.bind_status(path, kind, ok)
            if ok:
                args += [flag, path, path]

    for name in dict.fromkeys(state.env):
        value = environ.get(name)
        if value:
            args += ["--setenv", name, value]

    return args


@dataclass
class RenderedPolicy:
    args: list
    syscall_policy: SyscallPolicy
    filter_program: Optional[bytes] = None
    profile: str = ""
    profile_found: bool = False

    def to_bytes(self) -> bytes:
        """NUL-terminated argument stream, as bwrap --args expects."""
        return b"".join(arg.encode() + b"\0" for arg in self.args)

    def describe(self) -> list:
        """One line per directive, for dry runs."""
        lines = []
        i = 0
        while i < len(self.args):
            n = ARITY.get(self.args[i], 0)
            lines.append(" ".join(shlex.quote(a) for a in self.args[i:i + n + 1]))
            i += n + 1

        mode = self.syscall_policy.mode
        if self.filter_program is None:
            lines.append(f"# seccomp: {mode.value}")
        else:
            lines.append(f"# seccomp: {mode.value} ({len(self.filter_program)} bytes)")
        return lines


def build_policy(app_id: str, config: dict, mode: SeccompMode, compiler: FilterCompiler,
                 profile_name: str = None, environ=None, extra_ro: tuple = ()) -> RenderedPolicy:
    """Compose, assemble and pick the syscall policy for one application."""
    environ = os.environ if environ is None else environ

    composition = compose_policy(app_id, config, profile_name, environ, extra_ro)
    args = assemble(composition.state, environ)
    syscall_policy, program = select_syscall_policy(mode, compiler)

    return RenderedPolicy(
        args=args,
        syscall_policy=syscall_policy,
        filter_program=program,
        profile=composition.profile,
        profile_found=composition.profile_found,
    )
