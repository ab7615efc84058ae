import os
import subprocess

import pytest

from conftest import write

from burrow import cli, config, sandbox
from burrow.seccomp_filter import SeccompCompiler


@pytest.fixture
def cli_env(tmp_path, home, rundir, profile_dir, monkeypatch):
    """Isolate the CLI from the real home, runtime dir, config and bwrap."""
    bindir = tmp_path / "bin"
    bindir.mkdir()
    for name in ("firefox-esr", "mytool"):
        exe = bindir / name
        exe.write_text("#!/bin/sh\n")
        exe.chmod(0o755)

    monkeypatch.setattr(config, "CONFIG_FILE", tmp_path / "config.json")
    monkeypatch.setattr(config, "ENV_FILE", tmp_path / "burrow.env")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_RUNTIME_DIR", str(rundir))
    monkeypatch.setenv("PATH", f"{bindir}:{os.environ.get('PATH', '')}")
    monkeypatch.setenv("BURROW_PROFILE_DIR", str(profile_dir))
    monkeypatch.setattr(SeccompCompiler, "available", lambda self: False)

    def no_handoff(*args, **kwargs):
        raise AssertionError("bwrap must not be started")

    monkeypatch.setattr(sandbox.subprocess, "run", no_handoff)
    return bindir


def test_help(capsys):
    assert cli.run(["--help"]) == 0
    assert "--dry-run" in capsys.readouterr().out


def test_no_command(cli_env, capsys):
    assert cli.run(["-n"]) == 1
    assert "Usage:" in capsys.readouterr().err


def test_command_not_found(cli_env, capsys):
    assert cli.run(["-n", "definitely-not-a-command-xyz"]) == 1
    assert "command not found" in capsys.readouterr().err


def test_unknown_option(cli_env):
    assert cli.run(["--frobnicate", "mytool"]) == 1


def test_conflicting_seccomp_flags(cli_env):
    assert cli.run(["-n", "--no-seccomp", "--seccomp-log", "mytool"]) == 1


def test_missing_bwrap(cli_env, monkeypatch, capsys):
    monkeypatch.setenv("BURROW_BWRAP", "/nonexistent/bwrap")
    assert cli.run(["mytool"]) == 1
    assert "install bubblewrap" in capsys.readouterr().err


def test_dry_run_prints_policy_without_handoff(cli_env, monkeypatch, capsys):
    monkeypatch.setenv("BURROW_BWRAP", "/nonexistent/bwrap")

    assert cli.run(["-n", "--no-seccomp", "mytool", "--flag"]) == 0

    out = capsys.readouterr().out
    assert out.splitlines()[0] == "--unshare-all"
    assert f"--ro-bind {cli_env} {cli_env}" in out
    assert "# seccomp: disabled" in out


def test_dry_run_only_creates_accessibility_dir(cli_env, home, rundir, tmp_path):
    before = sorted(os.listdir(tmp_path))

    assert cli.run(["--dry-run", "firefox-esr"]) == 0

    assert sorted(os.listdir(tmp_path)) == before
    assert os.listdir(rundir) == ["at-spi"]
    assert os.listdir(home) == []


def test_dry_run_uses_profile_override(cli_env, home, profile_dir, capsys):
    (home / ".mozilla").mkdir()
    write(profile_dir / "firefox.profile", "whitelist ${HOME}/.mozilla\n")

    assert cli.run(["-n", "firefox-esr"]) == 0

    assert f"--bind {home}/.mozilla {home}/.mozilla" in capsys.readouterr().out


def test_seccomp_log_degrades_when_unavailable(cli_env, capsys):
    assert cli.run(["-n", "--seccomp-log", "mytool"]) == 0

    captured = capsys.readouterr()
    assert "# seccomp: disabled" in captured.out
    assert "running without a syscall filter" in captured.err


def test_profile_cycle_exits_with_error(cli_env, profile_dir, capsys):
    write(profile_dir / "mytool.profile", "include mytool.profile\n")

    assert cli.run(["-n", "mytool"]) == 1
    assert "Include cycle" in capsys.readouterr().err


def test_runs_command_under_bwrap(cli_env, monkeypatch):
    seen = {}

    def fake_run(argv, pass_fds=()):
        seen["argv"] = argv
        return subprocess.CompletedProcess(argv, 3)

    monkeypatch.setattr(sandbox.subprocess, "run", fake_run)
    monkeypatch.setattr(sandbox, "find_bwrap", lambda name: "/usr/bin/bwrap")

    assert cli.run(["--", "mytool", "-x"]) == 3

    assert seen["argv"][0] == "/usr/bin/bwrap"
    assert seen["argv"][-3:] == ["--", str(cli_env / "mytool"), "-x"]
    assert "--seccomp" not in seen["argv"]


def test_application_id_keeps_symlink_name(tmp_path):
    target = tmp_path / "firefox"
    target.write_text("")
    link = tmp_path / "firefox-esr"
    link.symlink_to(target)

    assert cli.application_id(str(link)) == "firefox-esr"


def test_command_dirs_skip_system_dirs():
    assert cli.command_dirs("/usr/bin/ls") == ()
    assert cli.command_dirs("/bin/ls") == ()


def test_command_dirs_outside_usr(tmp_path):
    exe = tmp_path / "opt" / "app"
    exe.parent.mkdir()
    exe.write_text("")
    assert cli.command_dirs(str(exe))[0] == str(exe.parent)
