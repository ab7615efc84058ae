"""Exceptions raised while computing or handing off a sandbox policy.

Anything that is simply missing (a profile file, a glob without matches, a
path that does not exist) is not an error and never shows up here.
"""


class BurrowError(Exception):
    """Base class for every failure that stops a burrow invocation."""


class UsageError(BurrowError):
    """No command was given, it cannot be found, or options conflict."""


class MissingDependencyError(BurrowError):
    """The isolation engine (bwrap) is not installed."""


class ConfigError(BurrowError):
    """The user configuration file is malformed."""


class ProfileError(BurrowError):
    """A permission profile cannot be loaded as written."""

    def __init__(self, message: str, path: str):
        super().__init__(message)
        self.path = path


class ProfileCycleError(ProfileError):
    """A profile includes itself, directly or through other profiles."""

    def __init__(self, path: str, chain: tuple):
        trail = " -> ".join(list(chain) + [path])
        super().__init__(f"Include cycle: {trail}", path)
        self.chain = chain


class ProfileDepthError(ProfileError):
    """Includes are nested deeper than the configured limit."""

    def __init__(self, path: str, limit: int):
        super().__init__(f"Includes nested deeper than {limit} levels at {path}", path)
        self.limit = limit
