import os
import subprocess

import pytest

from burrow import sandbox
from burrow.policy import RenderedPolicy
from burrow.sandbox import BubblewrapBoundary, FilterArtifact, HandoffMode, find_bwrap
from burrow.seccomp_filter import SeccompMode, SyscallPolicy


def make_policy(program=None):
    mode = SeccompMode.BLOCK if program else SeccompMode.DISABLED
    return RenderedPolicy(
        args=["--unshare-all", "--setenv", "A", "1"],
        syscall_policy=SyscallPolicy(mode),
        filter_program=program,
    )


def read_fd(fd):
    os.lseek(fd, 0, os.SEEK_SET)
    return os.read(fd, 65536)


def test_filter_artifact_is_removed_after_use(tmp_path):
    with FilterArtifact(b"bpf", directory=str(tmp_path)) as artifact:
        assert os.path.exists(artifact.path)
        assert read_fd(artifact.fileno()) == b"bpf"
    assert not os.path.exists(artifact.path)


def test_filter_artifact_is_removed_on_error(tmp_path):
    with pytest.raises(RuntimeError):
        with FilterArtifact(b"bpf", directory=str(tmp_path)) as artifact:
            raise RuntimeError("boom")
    assert os.listdir(tmp_path) == []


def test_handoff_mode():
    assert BubblewrapBoundary.handoff_mode(make_policy()) is HandoffMode.ARGS
    assert BubblewrapBoundary.handoff_mode(make_policy(b"x")) is HandoffMode.ARGS_AND_FILTER


def test_build_command():
    boundary = BubblewrapBoundary("/usr/bin/bwrap")
    assert boundary.build_command(["ls", "-l"], 5) == ["/usr/bin/bwrap", "--args", "5", "--", "ls", "-l"]
    assert boundary.build_command(["ls"], 5, 6) == \
        ["/usr/bin/bwrap", "--args", "5", "--seccomp", "6", "--", "ls"]


def test_run_streams_arguments(monkeypatch):
    seen = {}

    def fake_run(argv, pass_fds=()):
        seen["argv"] = argv
        seen["fds"] = pass_fds
        seen["args"] = read_fd(int(argv[2]))
        return subprocess.CompletedProcess(argv, 7)

    monkeypatch.setattr(sandbox.subprocess, "run", fake_run)
    policy = make_policy()

    status = BubblewrapBoundary("bwrap").run(policy, ["/usr/bin/true"])

    assert status == 7
    assert "--seccomp" not in seen["argv"]
    assert seen["argv"][-2:] == ["--", "/usr/bin/true"]
    assert seen["args"] == policy.to_bytes()
    assert len(seen["fds"]) == 1


def test_run_streams_filter_and_cleans_up(monkeypatch):
    seen = {}

    def fake_run(argv, pass_fds=()):
        fd = int(argv[argv.index("--seccomp") + 1])
        seen["filter"] = read_fd(fd)
        seen["path"] = os.readlink(f"/proc/self/fd/{fd}")
        seen["existed"] = os.path.exists(seen["path"])
        seen["fds"] = pass_fds
        return subprocess.CompletedProcess(argv, 0)

    monkeypatch.setattr(sandbox.subprocess, "run", fake_run)

    status = BubblewrapBoundary("bwrap").run(make_policy(b"\x01\x02"), ["/usr/bin/true"])

    assert status == 0
    assert seen["filter"] == b"\x01\x02"
    assert seen["existed"]
    assert os.path.basename(seen["path"]).startswith("burrow-seccomp-")
    assert not os.path.exists(seen["path"])
    assert len(seen["fds"]) == 2


def test_find_bwrap_absolute_path(tmp_path):
    assert find_bwrap(str(tmp_path / "bwrap")) is None

    exe = tmp_path / "bwrap"
    exe.write_text("#!/bin/sh\n")
    exe.chmod(0o755)
    assert find_bwrap(str(exe)) == str(exe)


def test_find_bwrap_on_path(tmp_path, monkeypatch):
    monkeypatch.setenv("PATH", str(tmp_path))
    assert find_bwrap("bwrap") is None


def test_boundary_available_resolves_full_path(tmp_path, monkeypatch):
    exe = tmp_path / "bwrap"
    exe.write_text("#!/bin/sh\n")
    exe.chmod(0o755)
    monkeypatch.setenv("PATH", str(tmp_path))

    boundary = BubblewrapBoundary("bwrap")

    assert boundary.available() is True
    assert boundary.bwrap == str(exe)
    assert boundary.build_command(["true"], 3)[0] == str(exe)


def test_boundary_unavailable_keeps_name(tmp_path, monkeypatch):
    monkeypatch.setenv("PATH", str(tmp_path))

    boundary = BubblewrapBoundary("bwrap")

    assert boundary.available() is False
    assert boundary.bwrap == "bwrap"
    assert BubblewrapBoundary(str(tmp_path / "missing")).available() is False
