"""Tests for the Bancho IRC client and lobby message parsing."""

from unittest.mock import MagicMock

import irc.client
import pytest

from osu_autohost.bancho import (
    MAX_MESSAGE_BYTES,
    BanchoClient,
    Beatmap,
    Channel,
    TeamMode,
    WinCondition,
    parse_beatmap_id,
)
from osu_autohost.config import Credentials
from osu_autohost.events import LobbyEvent


@pytest.fixture
def rating_lookup() -> MagicMock:
    return MagicMock(return_value=4.5)


@pytest.fixture
def client(rating_lookup) -> BanchoClient:
    client = BanchoClient(Credentials("Auto Host", "secret", api_key="key"), rating_lookup=rating_lookup)
    client.connection = MagicMock()
    client.connection.is_connected.return_value = True
    client.connection.get_nickname.return_value = "Auto_Host"
    return client


@pytest.fixture
def channel(client) -> Channel:
    channel = Channel(client, "#mp_123")
    channel.joined = True
    client.channels["#mp_123"] = channel
    return channel


@pytest.fixture
def events(channel) -> list:
    received = []
    for tag in LobbyEvent:
        channel.lobby.on(tag, lambda data, tag=tag: received.append((tag, data)))
    return received


def sent(client) -> list:
    return [c.args for c in client.connection.privmsg.call_args_list]


class TestLobbyCommands:
    """Tests for !mp command formatting."""

    def test_lobby_id_and_url(self, channel) -> None:
        assert channel.lobby.id == 123
        assert channel.lobby.url == "https://osu.ppy.sh/mp/123"

    def test_non_multiplayer_channel_has_no_lobby(self, client) -> None:
        assert Channel(client, "#osu").lobby is None

    def test_set_settings(self, client, channel) -> None:
        channel.lobby.set_settings(TeamMode.HEAD_TO_HEAD, WinCondition.SCORE, 8)
        assert sent(client) == [("#mp_123", "!mp set 0 0 8")]

    def test_set_settings_clamps_size(self, client, channel) -> None:
        channel.lobby.set_settings(TeamMode.TEAM_VS, WinCondition.SCORE_V2, 40)
        assert sent(client) == [("#mp_123", "!mp set 2 3 16")]

    def test_set_mods_freemod(self, client, channel) -> None:
        channel.lobby.set_mods("Freemod", True)
        channel.lobby.set_mods(["HD", "HR"], True)
        assert sent(client) == [("#mp_123", "!mp mods Freemod"), ("#mp_123", "!mp mods HD HR Freemod")]

    def test_set_host_uses_irc_name(self, client, channel) -> None:
        channel.lobby.set_host("Some Player")
        assert sent(client) == [("#mp_123", "!mp host Some_Player")]

    def test_abort_name_and_settings(self, client, channel) -> None:
        channel.lobby.abort_match()
        channel.lobby.set_name("osu-autohost-bot | 3-5*")
        channel.lobby.update_settings()
        assert sent(client) == [
            ("#mp_123", "!mp abort"),
            ("#mp_123", "!mp name osu-autohost-bot | 3-5*"),
            ("#mp_123", "!mp settings"),
        ]


class TestBanchoMessages:
    """Tests for BanchoBot message parsing."""

    def test_player_join_and_leave(self, channel, events) -> None:
        lobby = channel.lobby
        lobby.handle_bancho_message("Some Player joined in slot 3.")
        lobby.handle_bancho_message("Some Player joined in slot 4.")
        lobby.handle_bancho_message("Other joined in slot 1 for team red.")
        lobby.handle_bancho_message("Some Player left the game.")
        lobby.handle_bancho_message("Other was kicked from the room.")

        assert events == [
            (LobbyEvent.PLAYER_JOINED, {'player': "Some Player"}),
            (LobbyEvent.PLAYER_JOINED, {'player': "Other"}),
            (LobbyEvent.PLAYER_LEFT, {'user': "Some Player"}),
            (LobbyEvent.PLAYER_LEFT, {'user': "Other"}),
        ]
        assert lobby.players == []

    def test_match_lifecycle_collects_scores(self, channel, events) -> None:
        lobby = channel.lobby
        lobby.handle_bancho_message("The match has started!")
        lobby.handle_bancho_message("A finished playing (Score: 123456, PASSED).")
        lobby.handle_bancho_message("B finished playing (Score: 42, FAILED).")
        lobby.handle_bancho_message("The match has finished!")

        assert events[0] == (LobbyEvent.MATCH_STARTED, {})
        tag, data = events[1]
        assert tag == LobbyEvent.MATCH_FINISHED
        assert [(s.player, s.score, s.passed) for s in data['scores']] == [("A", 123456, True), ("B", 42, False)]

    def test_beatmap_change_looks_up_rating(self, channel, events, rating_lookup) -> None:
        channel.lobby.handle_bancho_message("Beatmap changed to: Artist - Song [Insane] (https://osu.ppy.sh/b/1234)")

        rating_lookup.assert_called_once_with(1234, "key")
        expected = Beatmap(1234, "Artist - Song [Insane]", 4.5)
        assert channel.lobby.beatmap == expected
        assert events == [(LobbyEvent.BEATMAP, {'beatmap': expected})]

    def test_changed_beatmap_format(self, channel, events) -> None:
        channel.lobby.handle_bancho_message("Changed beatmap to https://osu.ppy.sh/b/99 Artist - Other [Hard]")
        assert events == [(LobbyEvent.BEATMAP, {'beatmap': Beatmap(99, "Artist - Other [Hard]", 4.5)})]

    def test_unparseable_beatmap_emits_none(self, channel, events) -> None:
        channel.lobby.handle_bancho_message("Beatmap changed to: Something odd")
        assert channel.lobby.beatmap is None
        assert events == [(LobbyEvent.BEATMAP, {'beatmap': None})]

    def test_settings_report_seated_players(self, channel, events) -> None:
        lobby = channel.lobby
        lobby.handle_bancho_message("Beatmap: https://osu.ppy.sh/b/55 Artist - Song [Normal]")
        lobby.handle_bancho_message("Slot 1  Not Ready https://osu.ppy.sh/u/2 peppy           [Host / Hidden]")
        lobby.handle_bancho_message("Slot 2  Ready     https://osu.ppy.sh/u/3 Some Player     ")
        lobby.handle_bancho_message("Slot 3  Open")

        assert lobby.beatmap == Beatmap(55, "Artist - Song [Normal]", 4.5)
        assert events == [
            (LobbyEvent.PLAYER_JOINED, {'player': "peppy"}),
            (LobbyEvent.PLAYER_JOINED, {'player': "Some Player"}),
        ]

    def test_failing_listener_does_not_break_parsing(self, channel) -> None:
        channel.lobby.on(LobbyEvent.PLAYER_JOINED, MagicMock(side_effect=RuntimeError("boom")))
        channel.lobby.handle_bancho_message("A joined in slot 1.")
        assert channel.lobby.players == ["A"]

    @pytest.mark.parametrize("msg, expected", [
        ("https://osu.ppy.sh/b/123", 123),
        ("https://osu.ppy.sh/beatmaps/456", 456),
        ("https://osu.ppy.sh/beatmapsets/1#mania/789", 789),
        ("no link", None),
    ])
    def test_parse_beatmap_id(self, msg: str, expected) -> None:
        assert parse_beatmap_id(msg) == expected


class TestIrcEvents:
    """Tests for IRC event handlers."""

    def test_pubmsg_from_banchobot_reaches_lobby(self, client, channel, events) -> None:
        event = irc.client.Event("pubmsg", "BanchoBot!cho@ppy.sh", "#mp_123", ["The match has started!"])
        client.on_pubmsg(client.connection, event)
        assert events == [(LobbyEvent.MATCH_STARTED, {})]

    def test_pubmsg_from_player_is_not_parsed(self, client, channel, events) -> None:
        event = irc.client.Event("pubmsg", "Someone!u@ppy.sh", "#mp_123", ["The match has started!"])
        client.on_pubmsg(client.connection, event)
        assert events == []

    def test_join_confirms_channel(self, client) -> None:
        pending = Channel(client, "#mp_7")
        client.channels["#mp_7"] = pending
        client.on_join(client.connection, irc.client.Event("join", "Auto_Host!u@ppy.sh", "#mp_7"))
        assert pending.joined

    def test_join_error_is_recorded(self, client) -> None:
        pending = Channel(client, "#mp_7")
        client.channels["#mp_7"] = pending
        client.on_nosuchchannel(client.connection, irc.client.Event("nosuchchannel", "cho.ppy.sh", "Auto_Host", ["#mp_7", "No such channel"]))
        assert pending.join_error == "No such channel/Invalid ID"

    def test_unexpected_disconnect_requests_shutdown(self, client) -> None:
        errors = []
        client.on("error", errors.append)
        client.connection_registered = True
        client.on_disconnect(client.connection, irc.client.Event("disconnect", "cho.ppy.sh", "", ["Connection reset"]))

        assert client.shutdown_requested
        assert len(errors) == 1

    def test_unknown_client_event(self, client) -> None:
        with pytest.raises(ValueError):
            client.on("matchFinished", print)


class TestSending:
    """Tests for outgoing message handling."""

    def test_long_message_is_truncated(self, client) -> None:
        client.send_irc_message("#mp_123", "x" * 1000)
        (target, message), = sent(client)
        assert target == "#mp_123"
        assert message == "x" * MAX_MESSAGE_BYTES + "..."

    def test_not_connected_sends_nothing(self, client) -> None:
        client.connection.is_connected.return_value = False
        client.send_irc_message("#mp_123", "hello")
        client.connection.privmsg.assert_not_called()

    def test_send_failure_is_reported(self, client) -> None:
        errors = []
        client.on("error", errors.append)
        client.connection.privmsg.side_effect = irc.client.ServerNotConnectedError("gone")

        client.send_irc_message("#mp_123", "hello")

        assert client.shutdown_requested
        assert isinstance(errors[0], irc.client.ServerNotConnectedError)

    def test_unsafe_prefix_is_escaped(self, client) -> None:
        client.send_irc_message("#mp_123", "/me dances")
        assert sent(client) == [("#mp_123", " /me dances")]

    def test_empty_message_is_skipped(self, client) -> None:
        client.send_irc_message("#mp_123", "")
        client.connection.privmsg.assert_not_called()
