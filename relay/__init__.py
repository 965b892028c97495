"""世界中继模块
基于 WebSocket 的多人 3D 世界同步中继
"""

from .client import RelayClient
from .protocol import ClientMsg, MsgType, ServerMsg
from .registry import SessionRegistry
from .server import RelayServer
from .world import Player, WorldState

__all__ = [
    "MsgType", "ServerMsg", "ClientMsg",
    "RelayServer", "SessionRegistry", "WorldState", "Player",
    "RelayClient",
]
