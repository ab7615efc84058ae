import os

import pytest

from burrow import ui
from burrow.seccomp_filter import FilterCompiler


class StubCompiler(FilterCompiler):
    """Deterministic stand-in for libseccomp."""

    def __init__(self, available: bool = True, program: bytes = b"\x20\x00\x00\x00bpf"):
        self._available = available
        self.program = program
        self.calls = []

    def available(self) -> bool:
        return self._available

    def compile(self, mode, syscalls):
        self.calls.append((mode, tuple(syscalls)))
        return self.program


def write(path, text=""):
    os.makedirs(os.path.dirname(str(path)), exist_ok=True)
    with open(path, "w") as f:
        f.write(text)
    return str(path)


@pytest.fixture(autouse=True)
def quiet_ui():
    ui.set_verbose(False)
    yield
    ui.set_verbose(False)


@pytest.fixture
def home(tmp_path):
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def rundir(tmp_path):
    path = tmp_path / "run"
    path.mkdir()
    return path


@pytest.fixture
def environ(home, rundir):
    return {"HOME": str(home), "XDG_RUNTIME_DIR": str(rundir)}


@pytest.fixture
def profile_dir(tmp_path):
    path = tmp_path / "profiles"
    path.mkdir()
    return path


@pytest.fixture
def config(profile_dir):
    return {
        "profile_dir": str(profile_dir),
        "bwrap": "bwrap",
        "max_include_depth": 16,
        "applications": {},
    }
