"""Pytest configuration and fixtures."""

from unittest.mock import MagicMock

import pytest

from osu_autohost.config import SessionConfig
from osu_autohost.controller import LobbyController


@pytest.fixture
def lobby() -> MagicMock:
    """Lobby handle stand-in with no beatmap selected."""
    lobby = MagicMock()
    lobby.beatmap = None
    return lobby


@pytest.fixture
def channel() -> MagicMock:
    return MagicMock()


@pytest.fixture
def make_controller(lobby, channel):
    """Factory building a controller owned by the session 'A'."""

    def factory(min_stars: float = 0.0, max_stars: float = 0.0, own_username: str = "A") -> LobbyController:
        config = SessionConfig(room_id=123, min_stars=min_stars, max_stars=max_stars)
        return LobbyController(lobby, channel, config, own_username)

    return factory


def sent_messages(channel: MagicMock) -> list:
    return [c.args[0] for c in channel.send_message.call_args_list]
