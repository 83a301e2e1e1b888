from .controller import LobbyController
from .difficulty import DifficultyGate
from .host_queue import HostQueue

__version__ = "1.0.0"

__all__ = ["DifficultyGate", "HostQueue", "LobbyController"]
