import logging

from .difficulty import DifficultyGate
from .events import LobbyEvent
from .host_queue import HostQueue

log = logging.getLogger(__name__)


class LobbyController:
    """Host rotation and star-rating enforcement for one lobby.

    Reacts to lobby events through ``handlers`` and talks back through the
    lobby handle (``set_host``, ``abort_match``) and the channel handle
    (``send_message``).
    """

    def __init__(self, lobby, channel, config, own_username, queue=None, gate=None):
        self.lobby = lobby
        self.channel = channel
        self.config = config
        self.own_username = own_username
        self.queue = queue if queue is not None else HostQueue()
        self.gate = gate if gate is not None else DifficultyGate.from_config(config)
        self.current_host = None

        self.handlers = {
            LobbyEvent.PLAYER_JOINED: self.on_player_joined,
            LobbyEvent.PLAYER_LEFT: self.on_player_left,
            LobbyEvent.MATCH_FINISHED: self.on_match_finished,
            LobbyEvent.BEATMAP: self.on_beatmap,
            LobbyEvent.MATCH_STARTED: self.on_match_started,
        }

    def attach(self, lobby=None):
        """Registers every handler on the lobby's event emitter."""
        lobby = lobby or self.lobby
        return [lobby.on(event, handler) for event, handler in self.handlers.items()]

    def dispatch(self, event, payload=None):
        self.handlers[LobbyEvent(event)](payload or {})

    def seed_own_session(self):
        if len(self.queue) == 0:
            log.info(f"Seeding host queue with own session '{self.own_username}'.")
            self.queue.enqueue(self.own_username)

    def is_own_session(self, player):
        if not player or not self.own_username:
            return False
        return player.replace(" ", "_").lower() == self.own_username.replace(" ", "_").lower()

    def _queue_name(self, player):
        # Own session is always stored under the configured username
        return self.own_username if self.is_own_session(player) else player

    # --- Event Handlers ---
    def on_player_joined(self, event):
        player = self._queue_name(event["player"])
        if self.is_own_session(player):
            log.info(f"Own session '{player}' joined, taking host.")
            self.lobby.set_host(player)
            self.current_host = player

        self.queue.enqueue(player)
        self.announce_next_hosts()

    def on_player_left(self, event):
        player = self._queue_name(event["user"])
        self.queue.remove(player)
        if player == self.current_host:
            log.info(f"Host '{player}' left.")
            self.current_host = None
        self.announce_next_hosts()

    def on_match_finished(self, event):
        scores = event.get('scores') or []
        if scores:
            results = ", ".join(f"{s.player}: {s.score}{'' if s.passed else ' (failed)'}" for s in scores)
            log.info(f"Match finished. Scores: {results}")
        else:
            log.info("Match finished.")
        self.rotate_host()

    def on_beatmap(self, event):
        beatmap = event.get('beatmap')
        if beatmap is None or not self.gate.is_restricted():
            return
        rating = beatmap.difficulty_rating
        if rating is None:
            log.debug(f"Beatmap {beatmap.beatmap_id} has no known star rating, skipping check.")
            return

        if self.gate.too_low(rating):
            log.info(f"Beatmap {beatmap.beatmap_id} ({rating:.2f}*) below minimum {self.gate.min_stars:g}*.")
            self.channel.send_message(
                f"{self.current_host} this beatmap is too low, minimum stars are {self.gate.min_stars:g}. "
                f"If you start with these settings, match will be aborted and host will be passed to the next in line.")

        if self.gate.too_high(rating):
            log.info(f"Beatmap {beatmap.beatmap_id} ({rating:.2f}*) above maximum {self.gate.max_stars:g}*.")
            self.channel.send_message(
                f"{self.current_host} this beatmap is too high, maximum stars are {self.gate.max_stars:g}. "
                f"If you start with these settings, match will be aborted and host will be passed to the next in line.")

    def on_match_started(self, event):
        if not self.gate.is_restricted():
            return
        beatmap = self.lobby.beatmap
        rating = beatmap.difficulty_rating if beatmap is not None else None
        if not self.gate.out_of_band(rating):
            return

        log.warning(f"Match started on out-of-band beatmap ({rating:.2f}*) by '{self.current_host}'. Aborting.")
        self.channel.send_message(f"{self.current_host} you have been warned.")
        self.lobby.abort_match()
        self.rotate_host()

    def on_transport_error(self, error):
        log.error(f"Transport error: {error}")

    # --- Rotation ---
    def rotate_host(self):
        next_host = self.queue.advance(self.current_host)
        if next_host is not None:
            self.lobby.set_host(next_host)
            self.current_host = next_host
        else:
            log.warning("Rotation triggered with nobody left to host.")
        self.announce_next_hosts()

    def announce_next_hosts(self):
        self.channel.send_message("Upcoming hosts: " + ", ".join(self.queue.upcoming()))
