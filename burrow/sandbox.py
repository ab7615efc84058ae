import os
import shutil
import subprocess
import tempfile
from contextlib import ExitStack
from enum import Enum
from typing import Optional

from burrow import ui
from burrow.policy import RenderedPolicy


class HandoffMode(Enum):
    ARGS = "args"                        # argument stream only
    ARGS_AND_FILTER = "args+filter"      # argument stream and seccomp program


def find_bwrap(name: str = "bwrap") -> Optional[str]:
    """Locate the bwrap executable, or None if it is not installed."""
    if os.path.isabs(name):
        return name if os.access(name, os.X_OK) else None
    return shutil.which(name)


class FilterArtifact:
    """The compiled filter as a file in the shared temp dir.

    Lives exactly as long as the ``with`` block wrapping the bwrap call and
    is unlinked on exit, whether the sandboxed process succeeded or not.
    """

    def __init__(self, program: bytes, directory: str = None):
        self.program = program
        self.directory = directory
        self.path = None
        self._file = None

    def __enter__(self):
        self._file = tempfile.NamedTemporaryFile(
            prefix="burrow-seccomp-", suffix=".bpf", dir=self.directory, delete=False
        )
        self.path = self._file.name
        self._file.write(self.program)
        self._file.flush()
        self._file.seek(0)
        return self

    def fileno(self) -> int:
        return self._file.fileno()

    def __exit__(self, exc_type, exc, tb):
        self._file.close()
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass
        return False


class BubblewrapBoundary:
    """Hands a rendered policy to bwrap and runs the command under it."""

    def __init__(self, bwrap: str):
        self.bwrap = bwrap

    def available(self) -> bool:
        """Check that bwrap is installed; on success ``bwrap`` becomes its full path."""
        path = find_bwrap(self.bwrap)
        if path is None:
            return False
        self.bwrap = path
        return True

    @staticmethod
    def handoff_mode(policy: RenderedPolicy) -> HandoffMode:
        if policy.filter_program is None:
            return HandoffMode.ARGS
        return HandoffMode.ARGS_AND_FILTER

    def build_command(self, command: list, args_fd: int, filter_fd: int = None) -> list:
        argv = [self.bwrap, "--args", str(args_fd)]
        if filter_fd is not None:
            argv += ["--seccomp", str(filter_fd)]
        return argv + ["--"] + list(command)

    def run(self, policy: RenderedPolicy, command: list) -> int:
        """Run ``command`` inside the sandbox and return its exit status."""
        mode = self.handoff_mode(policy)

        with ExitStack() as stack:
            args_file = stack.enter_context(tempfile.TemporaryFile(prefix="burrow-args-"))
            args_file.write(policy.to_bytes())
            args_file.flush()
            args_file.seek(0)
            fds = [args_file.fileno()]

            filter_fd = None
            if mode is HandoffMode.ARGS_AND_FILTER:
                artifact = stack.enter_context(FilterArtifact(policy.filter_program))
                filter_fd = artifact.fileno()
                fds.append(filter_fd)

            argv = self.build_command(command, args_file.fileno(), filter_fd)
            ui.debug(f"handoff ({mode.value}): {' '.join(argv)}")

            result = subprocess.run(argv, pass_fds=fds)
            return result.returncode
