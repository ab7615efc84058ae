"""Terminal output helpers for burrow - minimal colored status lines."""

import os
import sys

class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    GREEN = "\033[38;5;114m"
    RED = "\033[38;5;203m"
    YELLOW = "\033[38;5;221m"


# Symbols
CHECK = "✓"
CROSS = "✗"
DOT = "●"
WARN = "⚠"

_verbose = False


def set_verbose(enabled: bool):
    """Turn debug output on or off for this process."""
    global _verbose
    _verbose = enabled


def _use_color(stream) -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def _paint(code: str, text: str) -> str:
    if not _use_color(sys.stderr):
        return text
    return f"{code}{text}{Colors.RESET}"


def green(text: str) -> str:
    return _paint(Colors.GREEN, text)

def red(text: str) -> str:
    return _paint(Colors.RED, text)

def yellow(text: str) -> str:
    return _paint(Colors.YELLOW, text)

def dim(text: str) -> str:
    return _paint(Colors.DIM, text)

def bold(text: str) -> str:
    return _paint(Colors.BOLD, text)


def error(message: str):
    """Print an error message."""
    print(f"  {red(CROSS)} {message}", file=sys.stderr)


def warning(message: str):
    """Print a warning message."""
    print(f"  {yellow(WARN)} {message}", file=sys.stderr)


def debug(message: str):
    """Print a message only when running with --verbose."""
    if _verbose:
        print(f"  {dim(DOT)} {dim(message)}", file=sys.stderr)


def bind_status(path: str, kind: str, ok: bool):
    """Print one path decision made by the assembler."""
    if not _verbose:
        return
    symbol = green(CHECK) if ok else red(CROSS)
    print(f"    {dim(kind)} {path} {symbol}", file=sys.stderr)


def print_banner(version: str):
    """Print the burrow banner."""
    print(f"""
     ___
    /   \\__
   (  o   _)
    \\___/

  {bold('burrow')} {dim(f'v{version}')}
""")


def print_policy(lines: list):
    """Dump a rendered policy on stdout, one directive per line."""
    for line in lines:
        print(line)
