"""Host rotation queue.

Players wait in ``queue`` in join order. Every player handed host is pushed
onto ``already_hosted``; once the queue runs dry it is refilled from there,
oldest host first, which gives a round-robin over everyone still present.
"""
import logging
from collections import deque

log = logging.getLogger(__name__)


class HostQueue:
    def __init__(self, players=()):
        self.queue = deque()
        self.already_hosted = deque()
        for player in players:
            self.enqueue(player)

    def enqueue(self, player):
        """Moves ``player`` to the tail of the queue, dropping any earlier entry."""
        if player in self.queue:
            self.queue.remove(player)
        self.queue.append(player)
        log.debug(f"Enqueued '{player}'. Queue: {list(self.queue)}")

    def remove(self, player):
        if player in self.queue:
            self.queue.remove(player)
            log.debug(f"Removed '{player}' from queue. Queue: {list(self.queue)}")
        if player in self.already_hosted:
            self.already_hosted.remove(player)
            log.debug(f"Removed '{player}' from already hosted: {list(self.already_hosted)}")

    def advance(self, current_host=None):
        """Picks the next host, or returns None when nobody is left."""
        candidate = self._pop()
        if candidate is None:
            return None

        # Avoid the same host twice in a row
        if candidate == current_host and (self.queue or self.already_hosted):
            log.debug(f"'{candidate}' is the outgoing host, passing over them.")
            self.already_hosted.append(candidate)
            candidate = self._pop()

        self.already_hosted.append(candidate)
        log.info(f"Next host: '{candidate}'. Queue: {list(self.queue)}, Already hosted: {list(self.already_hosted)}")
        return candidate

    def _pop(self):
        if not self.queue:
            if not self.already_hosted:
                return None
            log.info(f"Host queue empty, refilling from already hosted: {list(self.already_hosted)}")
            self.queue = deque(self.already_hosted)
            self.already_hosted.clear()
        return self.queue.popleft()

    def upcoming(self):
        return list(self.queue)

    def __len__(self):
        return len(self.queue)

    def __contains__(self, player):
        return player in self.queue

    def __repr__(self):
        return f"HostQueue(queue={list(self.queue)}, already_hosted={list(self.already_hosted)})"
