"""
Syscall filtering for the sandboxed process.

Default: ALLOW - permit most syscalls
Blacklist: a fixed list of dangerous operations, either refused with EPERM
(block mode) or only logged by the kernel (log mode).

The BPF program itself is produced by libseccomp through pyseccomp and handed
to bwrap as raw bytes; nothing here loads a filter into the current process.
"""

import errno
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from burrow import ui
from burrow.errors import UsageError


class SeccompMode(Enum):
    DISABLED = "disabled"
    BLOCK = "block"      # Blacklisted syscalls fail with EPERM
    LOG = "log"          # Blacklisted syscalls succeed but are audited


BLACKLIST = (
    # System destruction
    "reboot",
    "kexec_load",
    "kexec_file_load",

    # Kernel modules
    "init_module",
    "finit_module",
    "delete_module",
    "create_module",
    "query_module",
    "get_kernel_syms",

    # Filesystem manipulation
    "mount",
    "umount",
    "umount2",
    "move_mount",
    "fsopen",
    "fsmount",
    "pivot_root",
    "chroot",
    "swapon",
    "swapoff",
    "quotactl",
    "name_to_handle_at",
    "open_by_handle_at",

    # Debugging/tracing (could escape sandbox)
    "ptrace",
    "process_vm_readv",
    "process_vm_writev",
    "kcmp",
    "perf_event_open",
    "bpf",
    "userfaultfd",

    # Kernel keyring
    "add_key",
    "request_key",
    "keyctl",

    # System configuration
    "sethostname",
    "setdomainname",
    "settimeofday",
    "clock_settime",
    "adjtimex",
    "clock_adjtime",
    "acct",
    "syslog",
    "_sysctl",
    "ioperm",
    "iopl",
    "vhangup",
    "nfsservctl",
    "uselib",
)


@dataclass(frozen=True)
class SyscallPolicy:
    mode: SeccompMode
    blacklist: tuple = BLACKLIST

    @property
    def enabled(self) -> bool:
        return self.mode is not SeccompMode.DISABLED


def select_mode(disable: bool = False, log: bool = False) -> SeccompMode:
    """Pick the filter mode from the command line flags. Default is BLOCK."""
    if disable and log:
        raise UsageError("--no-seccomp and --seccomp-log are mutually exclusive")
    if disable:
        return SeccompMode.DISABLED
    if log:
        return SeccompMode.LOG
    return SeccompMode.BLOCK


class FilterCompiler(ABC):
    """Turns a mode and a list of syscall names into a BPF program."""

    @abstractmethod
    def available(self) -> bool:
        """Check whether the compiler can run on this machine."""
        pass

    @abstractmethod
    def compile(self, mode: SeccompMode, syscalls: tuple) -> bytes:
        """Return the filter program as raw bytes."""
        pass


class SeccompCompiler(FilterCompiler):
    """libseccomp via pyseccomp."""

    def __init__(self):
        self._seccomp = None  # Lazy load

    def _get_seccomp(self):
        if self._seccomp is None:
            import pyseccomp
            self._seccomp = pyseccomp
        return self._seccomp

    def available(self) -> bool:
        # pyseccomp loads libseccomp.so when imported
        try:
            self._get_seccomp()
            return True
        except (ImportError, OSError, AttributeError) as e:
            ui.debug(f"pyseccomp unavailable: {e}")
            return False

    def compile(self, mode: SeccompMode, syscalls: tuple) -> bytes:
        seccomp = self._get_seccomp()

        if mode is SeccompMode.LOG:
            action = seccomp.LOG
        else:
            # ERRNO rather than KILL so programs handle the refusal gracefully
            action = seccomp.ERRNO(errno.EPERM)

        f = seccomp.SyscallFilter(seccomp.ALLOW)
        for syscall in syscalls:
            try:
                f.add_rule(action, syscall)
            except Exception as e:
                # Not every name exists on every architecture
                ui.debug(f"skipping syscall {syscall}: {e}")

        with tempfile.TemporaryFile() as out:
            f.export_bpf(out)
            out.seek(0)
            return out.read()


def select_syscall_policy(mode: SeccompMode, compiler: FilterCompiler) -> tuple:
    """Decide the effective syscall policy and build its filter program.

    Returns ``(SyscallPolicy, program)`` where ``program`` is None when
    filtering ends up disabled. A compiler that cannot run degrades to
    DISABLED with a warning instead of failing.
    """
    if mode is SeccompMode.DISABLED:
        return SyscallPolicy(SeccompMode.DISABLED), None

    if not compiler.available():
        ui.warning("libseccomp/pyseccomp not available, running without a syscall filter")
        return SyscallPolicy(SeccompMode.DISABLED), None

    policy = SyscallPolicy(mode)
    try:
        program = compiler.compile(mode, policy.blacklist)
    except (OSError, RuntimeError, ValueError) as e:
        ui.warning(f"could not build the syscall filter ({e}), running without one")
        return SyscallPolicy(SeccompMode.DISABLED), None

    ui.debug(f"seccomp filter ({mode.value}): {len(program)} bytes, {len(policy.blacklist)} syscalls")
    return policy, program
