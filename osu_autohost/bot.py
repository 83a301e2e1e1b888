import logging
import os
import signal
import sys

from .bancho import BanchoClient, BanchoError, TeamMode, WinCondition
from .config import USAGE, ConfigurationError, load_credentials, load_environment, parse_arguments
from .controller import LobbyController

log = logging.getLogger(__name__)

LOBBY_SLOTS = 8


def setup_logging(level_name=None):
    level = logging.getLevelName((level_name or "INFO").upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - [%(name)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def start_lobby(client, config):
    """Logs in, joins the room, prepares it and wires the controller to it."""
    client.connect()

    channel = client.join_channel(config.room_id)
    lobby = channel.lobby

    controller = LobbyController(lobby, channel, config, client.username)
    controller.seed_own_session()

    lobby.set_settings(TeamMode.HEAD_TO_HEAD, WinCondition.SCORE, LOBBY_SLOTS)
    lobby.set_mods("Freemod", True)
    lobby.set_name(config.display_name)
    log.info(f"Multiplayer Link: {lobby.url}")

    if controller.gate.is_restricted() and not client.credentials.api_key:
        log.warning("Star limits are set but API_KEY is missing. Beatmaps cannot be checked.")

    client.on("error", controller.on_transport_error)
    controller.attach()

    # Players already seated show up as joins
    lobby.update_settings()
    return controller


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    load_environment()
    setup_logging(os.environ.get("LOG_LEVEL"))

    try:
        config = parse_arguments(argv, lobby_name=os.environ.get("LOBBY_NAME"))
        credentials = load_credentials()
    except ConfigurationError as e:
        log.critical(f"FATAL: {e}")
        print(USAGE, file=sys.stderr)
        return 2

    client = BanchoClient(credentials)

    def signal_handler(sig, frame):
        log.info(f"Shutdown signal ({signal.Signals(sig).name}) received. Closing lobby and exiting...")
        client.request_shutdown("Signal")

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        start_lobby(client, config)
    except BanchoError as e:
        log.critical(f"FATAL: {e}")
        client.disconnect("Startup failed.")
        return 1

    log.info("Starting main processing loop...")
    client.process_until_shutdown()

    log.info("Main loop exited. Disconnecting...")
    client.disconnect("Client shutting down normally.")
    log.info("osu-autohost finished.")
    return 0
