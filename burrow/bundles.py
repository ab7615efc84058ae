"""
Capability bundles and the application table.

A bundle is a named contribution of paths, environment names and raw bwrap
arguments for one class of need (display, audio, bus access...). Bundles only
append to the policy state, never fail on missing sockets and leave existence
checks to the assembler. The one exception is `userns`, which lifts the
nested user namespace restriction set by the baseline.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass

from burrow import ui
from burrow.errors import ConfigError
from burrow.profiles import home_dir, runtime_dir
from burrow.state import PolicyState

DISABLE_USERNS = "--disable-userns"


class CapabilityBundle(ABC):
    """Base class every bundle implements."""

    name = ""

    @abstractmethod
    def apply(self, state: PolicyState, environ) -> PolicyState:
        """Add this bundle's contribution to ``state`` and return it."""
        pass

    def __repr__(self):
        return f"<bundle {self.name}>"


def _home(environ, *parts: str) -> str:
    return os.path.join(home_dir(environ), *parts)


def _run(environ, *parts: str) -> str:
    return os.path.join(runtime_dir(environ), *parts)


class GuiBundle(CapabilityBundle):
    """Wayland/X11 display sockets, GPU nodes, fonts and themes."""

    name = "gui"

    ENV = [
        "DISPLAY", "WAYLAND_DISPLAY", "XAUTHORITY",
        "XDG_SESSION_TYPE", "XDG_CURRENT_DESKTOP", "XDG_SESSION_DESKTOP", "DESKTOP_SESSION",
        "GDK_BACKEND", "QT_QPA_PLATFORM", "MOZ_ENABLE_WAYLAND",
        "GTK_THEME", "XCURSOR_THEME", "XCURSOR_SIZE",
    ]

    def apply(self, state, environ):
        wayland = environ.get("WAYLAND_DISPLAY")
        if wayland:
            # WAYLAND_DISPLAY may already be absolute
            state.add_rw(os.path.join(runtime_dir(environ), wayland))

        if environ.get("DISPLAY"):
            state.add_rw("/tmp/.X11-unix")
        if environ.get("XAUTHORITY"):
            state.add_ro(environ["XAUTHORITY"])

        state.add_ro(
            "/etc/fonts",
            "/sys/dev/char",
            "/sys/devices",
            _home(environ, ".config", "fontconfig"),
            _home(environ, ".local", "share", "fonts"),
            _home(environ, ".fonts"),
            _home(environ, ".config", "gtk-3.0"),
            _home(environ, ".config", "gtk-4.0"),
            _home(environ, ".icons"),
        )
        state.add_args("--dev-bind-try", "/dev/dri", "/dev/dri")
        state.add_env(*self.ENV)
        return state


class SoundBundle(CapabilityBundle):
    """PulseAudio and PipeWire sockets plus ALSA devices."""

    name = "sound"

    def apply(self, state, environ):
        state.add_rw(
            _run(environ, "pulse", "native"),
            _run(environ, "pipewire-0"),
        )
        state.add_ro(
            "/etc/pulse",
            "/etc/asound.conf",
            _home(environ, ".config", "pulse", "cookie"),
        )
        state.add_args("--dev-bind-try", "/dev/snd", "/dev/snd")
        state.add_env("PULSE_SERVER", "PULSE_COOKIE", "PIPEWIRE_REMOTE")
        return state


class DbusBundle(CapabilityBundle):
    """Session, system and accessibility bus sockets."""

    name = "dbus"

    def apply(self, state, environ):
        state.add_rw(_run(environ, "bus"), "/run/dbus/system_bus_socket")

        address = environ.get("DBUS_SESSION_BUS_ADDRESS", "")
        for part in address.split(";"):
            if part.startswith("unix:path="):
                state.add_rw(part[len("unix:path="):].split(",", 1)[0])

        # at-spi only creates its socket dir on demand; without it the bind
        # would be dropped and accessibility silently breaks
        at_spi = _run(environ, "at-spi")
        try:
            os.makedirs(at_spi, mode=0o700, exist_ok=True)
        except OSError as e:
            ui.debug(f"could not create {at_spi}: {e}")
        state.add_rw(at_spi)

        state.add_env("DBUS_SESSION_BUS_ADDRESS", "DBUS_SYSTEM_BUS_ADDRESS", "NO_AT_BRIDGE")
        return state


class NetBundle(CapabilityBundle):
    """Share the host network namespace and what name resolution needs."""

    name = "net"

    def apply(self, state, environ):
        state.add_args("--share-net")
        state.add_ro(
            "/etc/resolv.conf",
            "/run/systemd/resolve",
            "/etc/hosts",
            "/etc/host.conf",
            "/etc/nsswitch.conf",
            "/etc/gai.conf",
            "/etc/services",
            "/etc/protocols",
            "/etc/ssl",
            "/etc/ca-certificates",
            "/etc/pki",
        )
        state.add_env(
            "http_proxy", "https_proxy", "no_proxy",
            "HTTP_PROXY", "HTTPS_PROXY", "NO_PROXY",
        )
        return state


class TermBundle(CapabilityBundle):
    """Interactive shell startup files and terminal settings."""

    name = "term"

    def apply(self, state, environ):
        state.add_ro(
            "/etc/profile",
            "/etc/profile.d",
            "/etc/bash.bashrc",
            "/etc/bashrc",
            "/etc/inputrc",
            "/etc/terminfo",
            _home(environ, ".profile"),
            _home(environ, ".bashrc"),
            _home(environ, ".bash_profile"),
            _home(environ, ".inputrc"),
            _home(environ, ".zshrc"),
        )
        state.add_env("TERM", "COLORTERM", "SHELL", "EDITOR", "PAGER", "LS_COLORS")
        return state


class RwHomeBundle(CapabilityBundle):
    """The whole home directory, writable."""

    name = "rwhome"

    def apply(self, state, environ):
        state.add_rw(home_dir(environ))
        return state


class UsernsBundle(CapabilityBundle):
    """Allow the application to create its own user namespaces (browser sandboxes, Steam)."""

    name = "userns"

    def apply(self, state, environ):
        return state.remove_arg(DISABLE_USERNS)


class GamesBundle(CapabilityBundle):
    """Input devices and SDL settings, plus a game's own data directories.

    ``home_dirs`` are relative to the home directory and writable.
    """

    name = "games"

    def __init__(self, home_dirs: tuple = (), env: tuple = ()):
        self.home_dirs = tuple(home_dirs)
        self.env = tuple(env)

    def apply(self, state, environ):
        state.add_args("--dev-bind-try", "/dev/input", "/dev/input")
        state.add_ro("/run/udev")
        state.add_rw(*(_home(environ, d) for d in self.home_dirs))
        state.add_env("SDL_VIDEODRIVER", "SDL_AUDIODRIVER", "SDL_GAMECONTROLLERCONFIG", *self.env)
        return state


class PsdBundle(CapabilityBundle):
    """profile-sync-daemon keeps browser profiles in tmpfs under the runtime dir."""

    name = "psd"

    def apply(self, state, environ):
        state.add_rw(_run(environ, "psd"))
        state.add_ro(_home(environ, ".config", "psd"))
        return state


gui = GuiBundle()
sound = SoundBundle()
dbus = DbusBundle()
net = NetBundle()
term = TermBundle()
rwhome = RwHomeBundle()
userns = UsernsBundle()
games = GamesBundle()
psd = PsdBundle()

BUNDLES = {b.name: b for b in (gui, sound, dbus, net, term, rwhome, userns, games, psd)}


@dataclass(frozen=True)
class AppEntry:
    bundles: tuple
    profile: str

    @property
    def bundle_names(self) -> tuple:
        return tuple(b.name for b in self.bundles)


BROWSER = (gui, sound, dbus, net, psd)

APPLICATIONS = {
    # Browsers
    "firefox": AppEntry(BROWSER, "firefox"),
    "firefox-esr": AppEntry(BROWSER, "firefox"),
    "librewolf": AppEntry(BROWSER, "librewolf"),
    "chromium": AppEntry(BROWSER + (userns,), "chromium"),
    "chromium-browser": AppEntry(BROWSER + (userns,), "chromium"),
    "thunderbird": AppEntry(BROWSER, "thunderbird"),

    # Media and documents
    "mpv": AppEntry((gui, sound, dbus), "mpv"),
    "vlc": AppEntry((gui, sound, dbus), "vlc"),
    "evince": AppEntry((gui, dbus), "evince"),
    "zathura": AppEntry((gui,), "zathura"),
    "gimp": AppEntry((gui, dbus), "gimp"),

    # Terminal tools
    "bash": AppEntry((term,), "bash"),
    "zsh": AppEntry((term,), "zsh"),
    "curl": AppEntry((net,), "curl"),
    "wget": AppEntry((net,), "wget"),
    "ssh": AppEntry((net, term), "ssh"),

    # Games
    "steam": AppEntry(
        (gui, sound, dbus, net, userns,
         GamesBundle((".steam", ".local/share/Steam"), ("STEAM_RUNTIME", "STEAM_COMPAT_DATA_PATH"))),
        "steam",
    ),
    "supertuxkart": AppEntry(
        (gui, sound, GamesBundle((".config/supertuxkart", ".local/share/supertuxkart", ".cache/supertuxkart"))),
        "supertuxkart",
    ),
    "0ad": AppEntry(
        (gui, sound, GamesBundle((".config/0ad", ".local/share/0ad", ".cache/0ad"))),
        "0ad",
    ),
    "minetest": AppEntry((gui, sound, net, GamesBundle((".minetest",))), "minetest"),
    "luanti": AppEntry((gui, sound, net, GamesBundle((".minetest", ".luanti"))), "luanti"),
}


def _entry_from_config(app_id: str, raw) -> AppEntry:
    if not isinstance(raw, dict):
        raise ConfigError(f"applications.{app_id}: expected an object")
    bundles = []
    for name in raw.get("bundles", []):
        if name not in BUNDLES:
            raise ConfigError(f"applications.{app_id}: unknown bundle '{name}'")
        bundles.append(BUNDLES[name])
    return AppEntry(tuple(bundles), str(raw.get("profile") or app_id))


def resolve_application(app_id: str, extra: dict = None) -> AppEntry:
    """Bundles and profile name for an application.

    Entries from ``extra`` (the user's configuration) take precedence over the
    built-in table. Unknown identifiers get no bundles and a profile named
    after themselves.
    """
    if extra and app_id in extra:
        return _entry_from_config(app_id, extra[app_id])
    return APPLICATIONS.get(app_id, AppEntry((), app_id))


def apply_bundles(entry: AppEntry, state: PolicyState, environ=None) -> PolicyState:
    """Run every bundle of ``entry`` over ``state`` in order."""
    environ = os.environ if environ is None else environ
    for bundle in entry.bundles:
        ui.debug(f"applying bundle {bundle.name}")
        state = bundle.apply(state, environ)
    return state
