"""会话注册表

连接 ↔ 会话 ID 的双向映射，是 "谁在线" 的唯一事实来源。
连接以传输层签发的句柄 (websockets 连接的 ``id``) 作为键。
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any

from websockets.protocol import State

from .identity import new_session_id

if TYPE_CHECKING:
    from websockets.asyncio.server import ServerConnection

logger = logging.getLogger(__name__)


def is_open(connection: ServerConnection) -> bool:
    """连接是否处于可发送状态"""
    return connection.state is State.OPEN


class SessionRegistry:
    """会话注册表

    Args:
        id_factory: 会话 ID 生成函数 (测试时可替换)
    """

    def __init__(self, id_factory: Callable[[], str] = new_session_id) -> None:
        self._id_factory = id_factory
        self._ids: dict[Any, str] = {}  # 连接句柄 → session id
        self._connections: dict[str, ServerConnection] = {}  # session id → 连接

    def register(self, connection: ServerConnection) -> str:
        """登记新连接并返回分配的会话 ID"""
        sid = self._id_factory()
        while sid in self._connections:
            # 退化 ID 理论上可能碰撞，重新生成
            logger.warning("Session id collision: %s", sid)
            sid = self._id_factory()
        self._ids[connection.id] = sid
        self._connections[sid] = connection
        return sid

    def unregister(self, connection: ServerConnection) -> str | None:
        """注销连接，返回释放的会话 ID；连接不存在时返回 None"""
        sid = self._ids.pop(connection.id, None)
        if sid is None:
            return None
        self._connections.pop(sid, None)
        return sid

    def get_id(self, connection: ServerConnection) -> str | None:
        return self._ids.get(connection.id)

    def get_connection(self, sid: str) -> ServerConnection | None:
        return self._connections.get(sid)

    def for_each_except(
        self, exclude_id: str | None = None
    ) -> Iterator[tuple[str, ServerConnection]]:
        """遍历所有处于 OPEN 状态的连接 (跳过 exclude_id)"""
        for sid, connection in list(self._connections.items()):
            if sid == exclude_id:
                continue
            if not is_open(connection):
                continue
            yield sid, connection

    def connections(self) -> list[ServerConnection]:
        """所有已登记连接 (不论状态)"""
        return list(self._connections.values())

    def __contains__(self, sid: object) -> bool:
        return sid in self._connections

    def __len__(self) -> int:
        return len(self._connections)
