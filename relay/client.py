"""WebSocket 中继客户端

用于联调与冒烟测试 (浏览器端之外的参考客户端):
- 连接服务端并记录分配的会话 ID
- 发送 join/state/name/pickup/shoot/land/score/reset
- 通过回调把收到的消息通知上层
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from websockets.asyncio.client import connect
from websockets.exceptions import InvalidHandshake, InvalidURI

from .protocol import ClientMsg, MsgType, ServerMsg

if TYPE_CHECKING:
    from websockets.asyncio.client import ClientConnection

logger = logging.getLogger(__name__)


class RelayClient:
    """中继客户端

    职责:
    1. 维护与服务端的 WebSocket 连接
    2. 收发消息
    3. 通过回调函数将事件通知上层
    """

    def __init__(self, server_url: str = "ws://localhost:8080"):
        self.server_url = server_url
        self.session_id: str | None = None
        self.snapshot: dict[str, Any] = {"players": {}, "scores": {}}

        # WebSocket 连接
        self._ws: ClientConnection | None = None
        self._connected: bool = False

        # 事件回调
        self._handlers: dict[MsgType, Callable] = {}

    # ==================== 事件回调注册 ====================

    def on(self, msg_type: MsgType, handler: Callable) -> None:
        """注册消息处理回调 (同步或异步函数)"""
        self._handlers[msg_type] = handler

    # ==================== 连接管理 ====================

    async def connect(self) -> bool:
        """连接到服务端"""
        try:
            self._ws = await connect(self.server_url)
            self._connected = True
            logger.info("Connected to %s", self.server_url)
            return True
        except (OSError, InvalidHandshake, InvalidURI) as e:
            logger.error("Connect failed: %s", e)
            self._connected = False
            return False

    async def disconnect(self) -> None:
        """断开连接"""
        self._connected = False
        if self._ws:
            await self._ws.close()
            self._ws = None
        logger.info("Disconnected")

    @property
    def is_connected(self) -> bool:
        return self._connected and self._ws is not None

    # ==================== 消息收发 ====================

    async def send(self, msg: ClientMsg) -> bool:
        """发送消息"""
        if not self.is_connected:
            logger.warning("Not connected, dropping %s", msg.type.value)
            return False
        try:
            await self._ws.send(msg.to_json())
            return True
        except Exception as e:
            logger.warning("Send failed: %s", e)
            self._connected = False
            return False

    async def receive_loop(self) -> None:
        """消息接收循环，连接关闭时返回"""
        try:
            async for raw in self._ws:
                await self._dispatch(raw)
        except Exception as e:
            logger.warning("Receive loop ended: %s", e)
        finally:
            self._connected = False

    async def _dispatch(self, raw: str) -> None:
        """分发收到的消息"""
        try:
            msg = ServerMsg.from_json(raw)
        except (ValueError, KeyError) as e:
            logger.warning("Bad message from server: %s", e)
            return

        if msg.type == MsgType.HELLO:
            self.session_id = msg.id
        elif msg.type == MsgType.SNAPSHOT and msg.data is not None:
            self.snapshot = msg.data

        handler = self._handlers.get(msg.type)
        if handler is None:
            logger.debug("Unhandled message type: %s", msg.type.value)
            return
        if inspect.iscoroutinefunction(handler):
            await handler(msg)
        else:
            handler(msg)

    # ==================== 便捷操作方法 ====================

    async def join(self, name: str, x: float = 0.0, z: float = 0.0) -> None:
        await self.send(ClientMsg.join(x, z, name))

    async def move(self, x: float, z: float) -> None:
        await self.send(ClientMsg.state(x, z))

    async def rename(self, name: str) -> None:
        await self.send(ClientMsg.name(name))

    async def pickup(self, idx: int, **extra: Any) -> None:
        await self.send(ClientMsg.pickup(idx, **extra))

    async def shoot(self, idx: int, **extra: Any) -> None:
        await self.send(ClientMsg.shoot(idx, **extra))

    async def land(self, idx: int, **extra: Any) -> None:
        await self.send(ClientMsg.land(idx, **extra))

    async def score(self, target: str | None = None) -> None:
        await self.send(ClientMsg.score(target))

    async def reset_scores(self) -> None:
        await self.send(ClientMsg.reset())


# ==================== CLI 客户端 ====================


async def cli_client_main(server_url: str, player_name: str) -> None:
    """冒烟客户端: 加入世界并打印收到的事件"""
    client = RelayClient(server_url)
    cli_log = logging.getLogger("relay.cli")

    def on_hello(msg: ServerMsg):
        cli_log.info("Assigned session %s", msg.id)

    def on_event(msg: ServerMsg):
        cli_log.info("[%s] id=%s id2=%s p=%s", msg.type.value, msg.id, msg.id2, msg.data)

    client.on(MsgType.HELLO, on_hello)
    for msg_type in MsgType:
        if msg_type != MsgType.HELLO:
            client.on(msg_type, on_event)

    if not await client.connect():
        return
    await client.join(player_name)
    await client.receive_loop()


def main():
    """命令行客户端入口"""
    import argparse

    from logging_config import setup_logging

    from .config import get_config

    parser = argparse.ArgumentParser(description="World relay smoke client")
    parser.add_argument("--server", default="ws://localhost:8080", help="服务端地址")
    parser.add_argument("--name", default="Player", help="玩家名称")

    args = parser.parse_args()
    setup_logging(get_config())
    try:
        asyncio.run(cli_client_main(args.server, args.name))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
