import json
import os
from pathlib import Path

from dotenv import dotenv_values

from burrow.errors import ConfigError

CONFIG_DIR = Path.home() / ".config" / "burrow"
CONFIG_FILE = CONFIG_DIR / "config.json"
ENV_FILE = CONFIG_DIR / "burrow.env"

DEFAULT_CONFIG = {
    # Where permission profiles live; `include` lines resolve against it
    "profile_dir": str(CONFIG_DIR / "profiles"),

    # Isolation engine executable, looked up on PATH unless absolute
    "bwrap": "bwrap",

    # Guard against runaway include chains
    "max_include_depth": 16,

    # Extra application entries, merged over the built-in table:
    #   {"myapp": {"bundles": ["gui", "net"], "profile": "myapp"}}
    "applications": {},
}

# Variable name -> (config key, converter)
ENV_OVERRIDES = {
    "BURROW_PROFILE_DIR": ("profile_dir", str),
    "BURROW_BWRAP": ("bwrap", str),
    "BURROW_MAX_INCLUDE_DEPTH": ("max_include_depth", int),
}


def _read_json(path: Path) -> dict:
    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"{path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be an object")
    return data


def _apply_overrides(config: dict, values: dict, source: str):
    for name, (key, convert) in ENV_OVERRIDES.items():
        raw = values.get(name)
        if not raw:
            continue
        try:
            config[key] = convert(raw)
        except ValueError as e:
            raise ConfigError(f"{source}: {name}={raw!r} is not valid") from e


def load_config(config_file: Path = None, env_file: Path = None, environ=None) -> dict:
    """Load config from disk, or return defaults.

    Precedence, lowest first: built-in defaults, the JSON file, the
    ``burrow.env`` file, then ``BURROW_*`` variables in the environment.
    Nothing is ever written back.
    """
    config_file = config_file or CONFIG_FILE
    env_file = env_file or ENV_FILE
    environ = os.environ if environ is None else environ

    config = {**DEFAULT_CONFIG, "applications": dict(DEFAULT_CONFIG["applications"])}

    if config_file.exists():
        # Merge with defaults for any missing keys
        config.update(_read_json(config_file))

    if env_file.exists():
        # dotenv_values leaves os.environ alone, so these never reach the sandbox
        _apply_overrides(config, dotenv_values(env_file), str(env_file))

    _apply_overrides(config, environ, "environment")

    if not isinstance(config.get("applications"), dict):
        raise ConfigError(f"{config_file}: 'applications' must be an object")
    try:
        config["max_include_depth"] = int(config["max_include_depth"])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{config_file}: 'max_include_depth' must be an integer") from e
    if config["max_include_depth"] < 1:
        raise ConfigError(f"{config_file}: 'max_include_depth' must be at least 1")

    config["profile_dir"] = os.path.expanduser(str(config["profile_dir"]))
    return config


def get_profile_dir(config: dict) -> str:
    """Directory that profile names and `include` arguments resolve against."""
    return config.get("profile_dir", DEFAULT_CONFIG["profile_dir"])


def profile_path(config: dict, name: str) -> str:
    """Path of the profile file for a profile name."""
    return os.path.join(get_profile_dir(config), f"{name}.profile")
