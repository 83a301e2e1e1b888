"""Bancho IRC client.

Wraps ``irc.client.SimpleIRCClient`` and turns BanchoBot's room messages in
``#mp_<id>`` channels into lobby events. Room commands are plain ``!mp``
chat messages sent to the channel.
"""
import enum
import logging
import re
import time
from dataclasses import dataclass
from typing import Optional

import irc.client

from .events import LobbyEvent, TypedEvent
from .osu_api import get_beatmap_rating

log = logging.getLogger(__name__)

BANCHO_BOT = "BanchoBot"
LOGIN_TIMEOUT = 30.0
JOIN_TIMEOUT = 30.0
MAX_MESSAGE_BYTES = 450
MAX_LOBBY_SIZE = 16

BEATMAP_ID_RE = re.compile(r"/(?:b|beatmaps)/(\d+)|/beatmapsets/\d+#(?:osu|taiko|fruits|mania)/(\d+)")
PLAYER_JOINED_RE = re.compile(r"(.+?) joined in slot \d+(?: for team \w+)?\.$")
PLAYER_LEFT_RE = re.compile(r"(.+?) left the game\.$")
PLAYER_KICKED_RE = re.compile(r"(.+?) was kicked from the room\.$")
SCORE_RE = re.compile(r"(.+?) finished playing \(Score: (\d+), (PASSED|FAILED)\)\.$")
SLOT_RE = re.compile(r"Slot (\d+)\s+(?:Not Ready|Ready|No Map)\s+https://osu\.ppy\.sh/u/\d+\s+(.+)")


class BanchoError(Exception):
    pass


class BanchoLoginError(BanchoError):
    pass


class BanchoJoinError(BanchoError):
    pass


class TeamMode(enum.IntEnum):
    HEAD_TO_HEAD = 0
    TAG_COOP = 1
    TEAM_VS = 2
    TAG_TEAM_VS = 3


class WinCondition(enum.IntEnum):
    SCORE = 0
    ACCURACY = 1
    COMBO = 2
    SCORE_V2 = 3


@dataclass
class Beatmap:
    beatmap_id: int
    title: str = ""
    difficulty_rating: Optional[float] = None


@dataclass
class Score:
    player: str
    score: int
    passed: bool = True


def irc_name(player):
    """Bancho accepts usernames in commands with spaces as underscores."""
    return player.strip().replace(" ", "_")


def parse_beatmap_id(msg):
    match = BEATMAP_ID_RE.search(msg)
    if not match:
        return None
    map_id_str = match.group(1) or match.group(2)
    try:
        return int(map_id_str)
    except (TypeError, ValueError):
        log.error(f"Could not convert map ID string '{map_id_str}' to int. Msg: {msg}")
        return None


class Channel:
    def __init__(self, client, name):
        self.client = client
        self.name = name
        self.joined = False
        self.join_error = None
        self.lobby = Lobby(self) if name.lower().startswith("#mp_") else None

    def send_message(self, message):
        self.client.send_irc_message(self.name, message)

    def __repr__(self):
        return f"Channel({self.name!r}, joined={self.joined})"


class Lobby:
    """Multiplayer room behind an ``#mp_<id>`` channel."""

    def __init__(self, channel):
        self.channel = channel
        self.id = int(channel.name[len("#mp_"):])
        self.beatmap = None
        self.players = []
        self._scores = []
        self._events = {tag: TypedEvent(tag.value) for tag in LobbyEvent}

    @property
    def url(self):
        return f"https://osu.ppy.sh/mp/{self.id}"

    def on(self, event, listener):
        return self._events[LobbyEvent(event)].on(listener)

    def emit(self, event, data):
        log.debug(f"Lobby {self.id} event {event.value}: {data}")
        self._events[event].emit(data)

    # --- Room Commands ---
    def set_settings(self, team_mode=TeamMode.HEAD_TO_HEAD, win_condition=WinCondition.SCORE, size=None):
        command = f"!mp set {int(team_mode)} {int(win_condition)}"
        if size is not None:
            command += f" {max(1, min(int(size), MAX_LOBBY_SIZE))}"
        self.channel.send_message(command)

    def set_mods(self, mods="", freemod=False):
        parts = [str(m) for m in (mods if isinstance(mods, (list, tuple)) else [mods]) if m]
        if freemod and not any(p.lower() == "freemod" for p in parts):
            parts.append("Freemod")
        self.channel.send_message(" ".join(["!mp mods"] + parts))

    def set_name(self, name):
        self.channel.send_message(f"!mp name {name}")

    def set_host(self, player):
        self.channel.send_message(f"!mp host {irc_name(player)}")

    def abort_match(self):
        self.channel.send_message("!mp abort")

    def update_settings(self):
        self.channel.send_message("!mp settings")

    # --- BanchoBot Message Parsing ---
    def handle_bancho_message(self, msg):
        log.debug(f"Parsing Bancho: {msg}")
        try:
            if msg == "The match has started!":
                self._scores = []
                self.emit(LobbyEvent.MATCH_STARTED, {})
            elif msg == "The match has finished!":
                scores, self._scores = self._scores, []
                self.emit(LobbyEvent.MATCH_FINISHED, {'scores': scores})
            elif " finished playing " in msg:
                match = SCORE_RE.match(msg)
                if match:
                    self._scores.append(Score(match.group(1).strip(), int(match.group(2)), match.group(3) == "PASSED"))
            elif " joined in slot " in msg:
                match = PLAYER_JOINED_RE.match(msg)
                if match: self._player_joined(match.group(1).strip())
            elif " left the game." in msg:
                match = PLAYER_LEFT_RE.match(msg)
                if match: self._player_left(match.group(1).strip())
            elif " was kicked from the room." in msg:
                match = PLAYER_KICKED_RE.match(msg)
                if match: self._player_left(match.group(1).strip())
            elif msg.startswith("Beatmap changed to: ") or msg.startswith("Changed beatmap to "):
                self._beatmap_changed(msg)
            elif msg.startswith("Beatmap: "):
                self._parse_initial_beatmap(msg)
            elif msg.startswith("Slot "):
                self._parse_slot_message(msg)
            else:
                log.debug(f"Ignoring unrecognized BanchoBot message: {msg}")
        except Exception as e:
            log.error(f"Error parsing Bancho msg: '{msg}' - {e}", exc_info=True)
            self.channel.client.report_error(e)

    def _player_joined(self, player):
        if not player or player == BANCHO_BOT:
            return
        if player in self.players:
            log.debug(f"Player '{player}' join message received, but already in lobby list.")
            return
        self.players.append(player)
        log.info(f"Player '{player}' joined the lobby. Lobby size: {len(self.players)}")
        self.emit(LobbyEvent.PLAYER_JOINED, {'player': player})

    def _player_left(self, player):
        if player in self.players:
            self.players.remove(player)
            log.info(f"'{player}' left/kicked. Lobby size: {len(self.players)}")
        else:
            log.warning(f"'{player}' left/kicked but was not in tracked player list?")
        self.emit(LobbyEvent.PLAYER_LEFT, {'user': player})

    def _beatmap_changed(self, msg):
        map_id = parse_beatmap_id(msg)
        if not map_id:
            log.warning(f"Could not parse map ID from map change msg: {msg}")
            self.beatmap = None
            self.emit(LobbyEvent.BEATMAP, {'beatmap': None})
            return

        title = "Unknown Title"
        # "Beatmap changed to: Title (URL)" or "Changed beatmap to URL Title"
        title_match = re.match(r"Beatmap changed to: (.*?)\s*\(https?://osu\.ppy\.sh/.*\)", msg) \
            or re.match(r"Changed beatmap to https?://osu\.ppy\.sh/\S*\s+(.+)$", msg)
        if title_match:
            title = title_match.group(1).strip()

        self.beatmap = self.channel.client.lookup_beatmap(map_id, title)
        log.info(f"Map changed to ID: {map_id}, Title: '{title}', Stars: {self.beatmap.difficulty_rating}")
        self.emit(LobbyEvent.BEATMAP, {'beatmap': self.beatmap})

    def _parse_initial_beatmap(self, msg):
        map_id = parse_beatmap_id(msg)
        if not map_id:
            log.warning(f"Could not parse initial beatmap msg: {msg}")
            self.beatmap = None
            return
        title_match = re.match(r"Beatmap: https?://osu\.ppy\.sh/\S*\s+(.+)$", msg)
        title = title_match.group(1).strip() if title_match else "Unknown Title (from settings)"
        self.beatmap = self.channel.client.lookup_beatmap(map_id, title)
        log.info(f"Initial map set from settings: ID {map_id}, Title: '{title}'")

    def _parse_slot_message(self, msg):
        match = SLOT_RE.match(msg)
        if not match:
            log.debug(f"Ignoring empty/locked slot msg: {msg}")
            return
        player = match.group(2).strip()
        if '[' in player:
            player = player.split('[')[0].strip()
        if not player:
            log.warning(f"Parsed empty player name from slot {match.group(1)}: '{msg}'")
            return
        log.info(f"Parsed slot {match.group(1)}: '{player}' from !mp settings.")
        self._player_joined(player)

    def __repr__(self):
        return f"Lobby(id={self.id}, players={self.players})"


# --- IRC Client ---
class BanchoClient(irc.client.SimpleIRCClient):
    def __init__(self, credentials, rating_lookup=get_beatmap_rating):
        super().__init__()
        self.credentials = credentials
        self.rating_lookup = rating_lookup
        self.connection_registered = False
        self.shutdown_requested = False
        self.channels = {}
        self._login_error = None
        self.Error = TypedEvent("error")

    @property
    def username(self):
        return self.credentials.username

    def on(self, event_name, listener):
        if event_name != "error":
            raise ValueError(f"Unknown client event '{event_name}'")
        return self.Error.on(listener)

    def report_error(self, error):
        self.Error.emit(error)

    def request_shutdown(self, reason=""):
        if not self.shutdown_requested:
            log.info(f"Shutdown requested. Reason: {reason if reason else 'N/A'}")
            self.shutdown_requested = True
        else: log.warning("Shutdown already in progress.")

    # --- Connection ---
    def connect(self, timeout=LOGIN_TIMEOUT):
        creds = self.credentials
        log.info(f"Connecting to {creds.server}:{creds.port} as {creds.username}...")
        self._login_error = None
        try:
            super().connect(
                creds.server, creds.port,
                nickname=irc_name(creds.username), password=creds.password,
                username=irc_name(creds.username),
            )
        except irc.client.ServerConnectionError as e:
            raise BanchoLoginError(f"IRC connection to {creds.server}:{creds.port} failed: {e}") from e

        self._wait_for(lambda: self.connection_registered or self._login_error, timeout, "login", BanchoLoginError)
        if self._login_error:
            raise BanchoLoginError(self._login_error)
        log.info("Login successful!")

    def join_channel(self, room_id, timeout=JOIN_TIMEOUT):
        name = f"#mp_{room_id}"
        channel = Channel(self, name)
        self.channels[name.lower()] = channel
        log.info(f"Attempting to join channel: {name}")
        try:
            self.connection.join(name)
        except irc.client.ServerNotConnectedError as e:
            raise BanchoJoinError(f"Connection lost before joining {name}") from e

        self._wait_for(lambda: channel.joined or channel.join_error, timeout, f"join {name}", BanchoJoinError)
        if channel.join_error:
            del self.channels[name.lower()]
            raise BanchoJoinError(f"Cannot join '{name}': {channel.join_error}")
        return channel

    def _wait_for(self, predicate, timeout, what, error_class):
        deadline = time.monotonic() + timeout
        while not predicate():
            if self.shutdown_requested:
                raise BanchoError(f"Shutdown requested while waiting for {what}")
            if time.monotonic() > deadline:
                raise error_class(f"Timed out after {timeout:.0f}s waiting for {what}")
            self.reactor.process_once(timeout=0.2)

    def process_until_shutdown(self):
        while not self.shutdown_requested:
            try:
                self.reactor.process_once(timeout=0.2)
            except irc.client.ServerNotConnectedError:
                self.request_shutdown("Disconnected in main loop")
            except Exception as e:
                log.error(f"Unhandled exception in main loop: {e}", exc_info=True)
                self.report_error(e)
                time.sleep(2)

    def disconnect(self, message="Client shutting down."):
        self.shutdown_requested = True
        if not self.connection.is_connected():
            log.warning("Cannot send QUIT, connection not available.")
            return
        log.info(f"Sending QUIT command ('{message}')...")
        try:
            self.connection.quit(message)
        except irc.client.ServerNotConnectedError:
            log.warning("Cannot send QUIT, already disconnected.")
        finally:
            self.connection_registered = False
            self.connection.disconnect("Client shutdown")

    # --- Beatmaps ---
    def lookup_beatmap(self, beatmap_id, title=""):
        rating = self.rating_lookup(beatmap_id, self.credentials.api_key)
        return Beatmap(beatmap_id, title, rating)

    # --- Core IRC Event Handlers ---
    def on_welcome(self, connection, event):
        log.info(f"Connected to {connection.server}:{connection.port} as {connection.get_nickname()}")
        self.connection_registered = True

    def on_passwdmismatch(self, connection, event):
        self._login_error = "Incorrect IRC password. Get it from the osu! website account settings (Legacy API)."
        log.critical(self._login_error)

    def on_nicknameinuse(self, connection, event):
        self._login_error = f"Nickname '{self.credentials.username}' in use. Is another client connected?"
        log.critical(self._login_error)

    def _handle_channel_join_error(self, event, error_type):
        name = event.arguments[0] if event.arguments else "UnknownChannel"
        log.error(f"Cannot join '{name}': {error_type}.")
        channel = self.channels.get(name.lower())
        if channel and not channel.joined:
            channel.join_error = error_type

    def on_nosuchchannel(self, c, e): self._handle_channel_join_error(e, "No such channel/Invalid ID")
    def on_bannedfromchan(self, c, e): self._handle_channel_join_error(e, "Banned")
    def on_channelisfull(self, c, e): self._handle_channel_join_error(e, "Channel full")
    def on_inviteonlychan(self, c, e): self._handle_channel_join_error(e, "Invite only")
    def on_badchannelkey(self, c, e): self._handle_channel_join_error(e, "Bad key")

    def on_join(self, connection, event):
        channel = self.channels.get(event.target.lower())
        if channel and irc.client.NickMask(event.source).nick == connection.get_nickname():
            log.info(f"Successfully joined {event.target}")
            channel.joined = True

    def on_part(self, connection, event):
        channel = self.channels.get(event.target.lower())
        if channel and irc.client.NickMask(event.source).nick == connection.get_nickname():
            log.warning(f"Left channel {event.target}.")
            channel.joined = False

    def on_disconnect(self, connection, event):
        reason = event.arguments[0] if event.arguments else "Unknown reason"
        log.warning(f"Disconnected from server: {reason}")
        if not self.connection_registered and not self._login_error:
            self._login_error = f"Disconnected before login: {reason}"
        self.connection_registered = False
        if not self.shutdown_requested:
            self.report_error(BanchoError(f"Disconnected: {reason}"))
            self.request_shutdown(f"Disconnected: {reason}")

    def on_privmsg(self, connection, event):
        log.info(f"[PRIVATE] <{irc.client.NickMask(event.source).nick}> {event.arguments[0]}")

    def on_pubmsg(self, connection, event):
        sender = irc.client.NickMask(event.source).nick
        message = event.arguments[0]
        channel = self.channels.get(event.target.lower())
        if not channel:
            return
        if sender != connection.get_nickname():
            log.info(f"[{event.target}] <{sender}> {message}")
        if sender == BANCHO_BOT and channel.lobby:
            channel.lobby.handle_bancho_message(message)

    # --- Sending ---
    def send_irc_message(self, target, message):
        """Sends one message, escaping command prefixes and truncating long text."""
        if not message:
            return
        if not self.connection.is_connected():
            log.warning(f"Cannot send, not connected: Target={target}, Msg={message}")
            return
        full_msg = str(message)
        if not full_msg.startswith("!") and (full_msg.startswith("/") or full_msg.startswith(".")):
            log.warning(f"Message starts with potentially unsafe char, prepending space: {full_msg[:30]}...")
            full_msg = " " + full_msg
        encoded_msg = full_msg.encode('utf-8', 'ignore')
        if len(encoded_msg) > MAX_MESSAGE_BYTES:
            log.warning(f"Truncating long message (>{MAX_MESSAGE_BYTES} bytes): {encoded_msg[:100]}...")
            full_msg = encoded_msg[:MAX_MESSAGE_BYTES].decode('utf-8', 'ignore') + "..."
        try:
            log.info(f"SEND -> {target}: {full_msg}")
            self.connection.privmsg(target, full_msg)
        except irc.client.ServerNotConnectedError as e:
            log.warning("Failed to send message: Disconnected.")
            self.report_error(e)
            self.request_shutdown("Disconnected during send")
        except irc.client.MessageTooLong as e:
            log.error(f"Failed to send message to {target}: {e}")
            self.report_error(e)
