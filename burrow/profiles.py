"""
Permission profile loader.

A profile is a line-oriented file, one directive per line:

    include common.inc
    whitelist ${HOME}/.mozilla
    read-only ${HOME}/.config/user-dirs.dirs
    whitelist-ro /usr/share/hunspell
    whitelist !${DOWNLOADS}      # disabled, ignored

Arguments may use ${HOME}, ${RUNUSER} and ${DOWNLOADS} and shell globs.
Variables are substituted first, then globs are expanded, and only matches
that exist and are readable make it into the policy state.
"""

import glob
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import dotenv_values

from burrow import ui
from burrow.errors import ProfileCycleError, ProfileDepthError
from burrow.state import PolicyState

COMMENT = "#"
DISABLE_MARKERS = ("!", "#")

INCLUDE = "include"
WHITELIST = "whitelist"
READ_ONLY = "read-only"
WHITELIST_RO = "whitelist-ro"

DEFAULT_MAX_DEPTH = 16


@dataclass(frozen=True)
class ProfileDirective:
    kind: str
    argument: str


def home_dir(environ) -> str:
    return environ.get("HOME") or os.path.expanduser("~")


def runtime_dir(environ) -> str:
    return environ.get("XDG_RUNTIME_DIR") or f"/run/user/{os.getuid()}"


def downloads_dir(environ) -> str:
    """Resolve the user's download directory the way xdg-user-dir does."""
    home = home_dir(environ)
    value = environ.get("XDG_DOWNLOAD_DIR")

    if not value:
        config_home = environ.get("XDG_CONFIG_HOME") or os.path.join(home, ".config")
        user_dirs = os.path.join(config_home, "user-dirs.dirs")
        if os.path.isfile(user_dirs):
            value = dotenv_values(user_dirs, interpolate=False).get("XDG_DOWNLOAD_DIR")

    if not value:
        return os.path.join(home, "Downloads")
    return value.replace("${HOME}", home).replace("$HOME", home)


def substitute(argument: str, environ, downloads: str = None) -> str:
    """Replace the three profile variables. Unknown ${...} stay as written.

    ``downloads`` is the already resolved download dir; when it is None it is
    looked up here, and only if the argument uses ${DOWNLOADS}.
    """
    replacements = {
        "${HOME}": home_dir(environ),
        "${RUNUSER}": runtime_dir(environ),
    }
    for var, val in replacements.items():
        argument = argument.replace(var, val)
    if "${DOWNLOADS}" in argument:
        if downloads is None:
            downloads = downloads_dir(environ)
        argument = argument.replace("${DOWNLOADS}", downloads)
    return argument


def expand(pattern: str) -> list:
    """Glob a pattern and keep readable matches, sorted."""
    return sorted(p for p in glob.glob(pattern) if os.access(p, os.R_OK))


def parse_line(line: str) -> Optional[ProfileDirective]:
    """Split one profile line into a directive, or None if it contributes nothing."""
    line = line.strip()
    if not line or line.startswith(COMMENT):
        return None

    parts = line.split(None, 1)
    if len(parts) < 2:
        return None
    keyword, rest = parts

    rest = rest.strip()
    if rest.startswith(DISABLE_MARKERS):
        return None

    # Trailing inline comment
    rest = rest.split(COMMENT, 1)[0].strip()
    if not rest:
        return None

    return ProfileDirective(kind=keyword, argument=rest)


@dataclass
class _LoadContext:
    profile_dir: str
    environ: object
    max_depth: int
    chain: list = field(default_factory=list)
    downloads: Optional[str] = None

    def downloads_dir(self) -> str:
        # user-dirs.dirs is read at most once per load
        if self.downloads is None:
            self.downloads = downloads_dir(self.environ)
        return self.downloads


def load_profile(path: str, state: PolicyState, profile_dir: str,
                 environ=None, max_depth: int = DEFAULT_MAX_DEPTH) -> tuple:
    """Load a profile file into ``state``.

    Returns ``(found, state)``. A missing profile is not an error: ``found`` is
    False and the state comes back untouched.

    Raises ProfileCycleError if an include chain loops back on itself and
    ProfileDepthError if includes nest deeper than ``max_depth``.
    """
    environ = os.environ if environ is None else environ
    ctx = _LoadContext(profile_dir=profile_dir, environ=environ, max_depth=max_depth)
    found = _load(path, state, ctx)
    return found, state


def _load(path: str, state: PolicyState, ctx: _LoadContext) -> bool:
    if not (os.path.isfile(path) and os.access(path, os.R_OK)):
        ui.debug(f"profile {path} not found, skipping")
        return False

    canonical = os.path.realpath(path)
    if canonical in ctx.chain:
        raise ProfileCycleError(canonical, tuple(ctx.chain))
    if len(ctx.chain) >= ctx.max_depth:
        raise ProfileDepthError(canonical, ctx.max_depth)

    ui.debug(f"loading profile {path}")
    with open(path) as f:
        lines = f.readlines()

    ctx.chain.append(canonical)
    try:
        for line in lines:
            directive = parse_line(line)
            if directive is None:
                continue
            _apply(directive, state, ctx)
    finally:
        ctx.chain.pop()

    return True


def _apply(directive: ProfileDirective, state: PolicyState, ctx: _LoadContext):
    downloads = None
    if "${DOWNLOADS}" in directive.argument:
        downloads = ctx.downloads_dir()
    argument = substitute(directive.argument, ctx.environ, downloads)

    if directive.kind == INCLUDE:
        # os.path.join keeps absolute arguments as they are
        for match in expand(os.path.join(ctx.profile_dir, argument)):
            _load(match, state, ctx)
    elif directive.kind == WHITELIST:
        state.add_rw(*expand(argument))
    elif directive.kind in (READ_ONLY, WHITELIST_RO):
        state.add_ro(*expand(argument))
    else:
        ui.debug(f"ignoring unsupported directive '{directive.kind}'")
