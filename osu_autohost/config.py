import logging
import math
import os
import re
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv

log = logging.getLogger(__name__)

DEFAULT_LOBBY_NAME = "osu-autohost-bot"
DEFAULT_SERVER = "irc.ppy.sh"
DEFAULT_PORT = 6667
USAGE = "usage: osu-autohost <room_id> [min_stars [max_stars]]"


class ConfigurationError(Exception):
    pass


@dataclass(frozen=True)
class SessionConfig:
    room_id: int
    min_stars: float = 0.0
    max_stars: float = 0.0
    lobby_name: str = DEFAULT_LOBBY_NAME

    @property
    def channel_name(self):
        return f"#mp_{self.room_id}"

    @property
    def display_name(self):
        if self.min_stars <= 0 and self.max_stars > 0:
            return f"{self.lobby_name} | 1-{_format_stars(self.max_stars)}*"
        if self.min_stars > 0 and self.max_stars <= 0:
            return f"{self.lobby_name} | Min: {_format_stars(self.min_stars)}*"
        if self.min_stars > 0 and self.max_stars > 0:
            return f"{self.lobby_name} | {_format_stars(self.min_stars)}-{_format_stars(self.max_stars)}*"
        return self.lobby_name


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str
    api_key: str = ""
    server: str = DEFAULT_SERVER
    port: int = DEFAULT_PORT

    def __repr__(self):
        return f"Credentials(username={self.username!r}, server={self.server!r}, port={self.port})"


def _format_stars(value):
    return f"{value:g}"


def _parse_room_id(raw):
    match = re.fullmatch(r"(?:#mp_)?(\d+)", raw.strip())
    if not match:
        raise ConfigurationError(f"Invalid room ID '{raw}': expected a number like 123456 or #mp_123456.")
    return int(match.group(1))


def _parse_stars(raw, name):
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"Invalid {name} '{raw}': expected a number.") from None
    if not math.isfinite(value) or value < 0:
        raise ConfigurationError(f"Invalid {name} '{raw}': must be a finite number >= 0.")
    return value


def parse_arguments(args, lobby_name=None):
    """Builds the session config from ``<room_id> [min_stars [max_stars]]``."""
    if not 1 <= len(args) <= 3:
        raise ConfigurationError(f"Expected 1 to 3 arguments, got {len(args)}. {USAGE}")

    room_id = _parse_room_id(args[0])
    min_stars = _parse_stars(args[1], "minimum stars") if len(args) >= 2 else 0.0
    max_stars = _parse_stars(args[2], "maximum stars") if len(args) == 3 else 0.0

    if min_stars > 0 and max_stars > 0 and min_stars > max_stars:
        raise ConfigurationError(f"Minimum stars ({min_stars:g}) cannot be above maximum stars ({max_stars:g}).")

    return SessionConfig(
        room_id=room_id,
        min_stars=min_stars,
        max_stars=max_stars,
        lobby_name=lobby_name or DEFAULT_LOBBY_NAME,
    )


def load_environment():
    # .env is optional, real environment variables win
    load_dotenv(find_dotenv(usecwd=True))


def load_credentials(environ=None):
    env = os.environ if environ is None else environ

    username = env.get("OSU_USER", "").strip()
    password = env.get("OSU_PASS", "").strip()
    missing = [k for k, v in (("OSU_USER", username), ("OSU_PASS", password)) if not v]
    if missing:
        raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}. Set them or add them to a .env file.")

    raw_port = env.get("OSU_IRC_PORT", str(DEFAULT_PORT))
    try:
        port = int(raw_port)
    except ValueError:
        raise ConfigurationError(f"Invalid OSU_IRC_PORT '{raw_port}': expected an integer.") from None

    api_key = env.get("API_KEY", "").strip()
    if not api_key:
        log.warning("API_KEY not set. Beatmap star ratings cannot be looked up.")

    return Credentials(
        username=username,
        password=password,
        api_key=api_key,
        server=env.get("OSU_IRC_SERVER", DEFAULT_SERVER),
        port=port,
    )
