import argparse
import os
import shutil
import sys

from burrow import ui
from burrow.config import load_config
from burrow.errors import BurrowError, MissingDependencyError, UsageError
from burrow.policy import build_policy
from burrow.sandbox import BubblewrapBoundary
from burrow.seccomp_filter import SeccompCompiler, select_mode

VERSION = "0.1.0"

USAGE = "burrow [OPTIONS] COMMAND [ARGS...]"

# Already provided by the basics (usrmerge symlinks)
SYSTEM_DIRS = ("/bin", "/sbin", "/lib", "/lib64")


class _Parser(argparse.ArgumentParser):
    def error(self, message):
        raise UsageError(message)


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(prog="burrow", usage=USAGE, add_help=False)
    parser.add_argument("-h", "--help", action="store_true")
    parser.add_argument("-n", "--dry-run", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("-p", "--profile", metavar="NAME")
    parser.add_argument("--no-seccomp", action="store_true")
    parser.add_argument("--seccomp-log", action="store_true")
    parser.add_argument("command", nargs=argparse.REMAINDER)
    return parser


def show_help():
    """Show help with styled output."""
    ui.print_banner(VERSION)
    print(f"  {ui.bold('Run an application in a bubblewrap sandbox')}")
    print()
    print(f"  {ui.dim('Usage:')} {USAGE}")
    print()
    print(f"  {ui.dim('Options:')}")
    print(f"    -h, --help           Show this help message")
    print(f"    -n, --dry-run        Print the sandbox policy instead of running")
    print(f"    -v, --verbose        Explain every decision")
    print(f"    -p, --profile NAME   Use NAME.profile instead of the application's own")
    print(f"    --no-seccomp         Do not filter syscalls")
    print(f"    --seccomp-log        Log blacklisted syscalls instead of refusing them")
    print()


def resolve_command(name: str) -> str:
    """Full path of the command to run, looked up on PATH unless it has a slash."""
    if "/" in name:
        path = os.path.abspath(name)
        if os.path.isfile(path) and os.access(path, os.X_OK):
            return path
        raise UsageError(f"{name}: not an executable file")

    path = shutil.which(name)
    if path is None:
        raise UsageError(f"{name}: command not found")
    return path


def application_id(command_path: str) -> str:
    # Symlink names matter (chromium-browser, firefox-esr), so no realpath
    return os.path.basename(command_path)


def command_dirs(command_path: str) -> tuple:
    """Directories outside /usr the command needs to be visible in the sandbox."""
    dirs = []
    for path in (command_path, os.path.realpath(command_path)):
        directory = os.path.dirname(path)
        if directory.startswith("/usr/") or directory in SYSTEM_DIRS:
            continue
        if directory not in dirs:
            dirs.append(directory)
    return tuple(dirs)


def _run(opts) -> int:
    if opts.command and opts.command[0] == "--":
        opts.command = opts.command[1:]
    if not opts.command:
        raise UsageError("no command given")

    mode = select_mode(disable=opts.no_seccomp, log=opts.seccomp_log)
    config = load_config()

    boundary = BubblewrapBoundary(config["bwrap"])
    if not opts.dry_run:
        if not boundary.available():
            raise MissingDependencyError(f"{config['bwrap']} not found, install bubblewrap")

    command_path = resolve_command(opts.command[0])
    app_id = application_id(command_path)
    ui.debug(f"command {command_path} (application '{app_id}')")

    policy = build_policy(
        app_id, config, mode, SeccompCompiler(),
        profile_name=opts.profile, extra_ro=command_dirs(command_path),
    )

    if opts.dry_run:
        ui.print_policy(policy.describe())
        return 0

    return boundary.run(policy, [command_path] + opts.command[1:])


def run(argv: list = None) -> int:
    """Entry point returning an exit status."""
    try:
        opts = build_parser().parse_args(argv)
    except UsageError as e:
        ui.error(str(e))
        print(f"Usage: {USAGE}", file=sys.stderr)
        return 1

    if opts.help:
        show_help()
        return 0

    ui.set_verbose(opts.verbose)

    try:
        return _run(opts)
    except UsageError as e:
        ui.error(str(e))
        print(f"Usage: {USAGE}", file=sys.stderr)
        return 1
    except BurrowError as e:
        ui.error(str(e))
        return 1
    except KeyboardInterrupt:
        return 130


def main():
    sys.exit(run())


if __name__ == "__main__":
    main()
