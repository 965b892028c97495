"""WebSocket 世界中继服务端
基于 asyncio 的轻量 3D 世界同步中继

功能:
- 会话管理 (分配 ID / hello / snapshot)
- 消息路由 (join/state/name/pickup/shoot/land/score/reset)
- 排除发送者的广播与单播
- 存活检测 (ping/pong)
- 同端口 HTTP 健康检查
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import partial
from http import HTTPStatus
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError
from websockets.asyncio.server import serve
from websockets.exceptions import ConnectionClosed

from logging_config import setup_logging

from .config import DEFAULT_MAX_MESSAGE_SIZE, DEFAULT_PORT, RelayConfig, get_config
from .liveness import DEFAULT_PING_INTERVAL, LivenessSweeper
from .models import (
    JoinData,
    NameData,
    PickupData,
    ScoreData,
    StateData,
    parse_envelope,
    validate_payload,
)
from .protocol import MsgType, ServerMsg, client_msg_type
from .registry import SessionRegistry, is_open
from .world import WorldState

if TYPE_CHECKING:
    from websockets.asyncio.server import Server, ServerConnection
    from websockets.http11 import Request, Response

logger = logging.getLogger(__name__)

# 外部进程守护使用的探活路径
HEALTH_PATHS = frozenset({"/", "/health", "/_health"})

# 1001 = Going Away
CLOSE_CODE_SHUTDOWN = 1001


class RelayServer:
    """世界中继服务端

    职责:
    1. 管理 WebSocket 连接与会话 ID
    2. 维护玩家位置/名字与积分
    3. 将客户端事件转发给其他客户端
    4. 驱逐无响应连接

    所有入站事件 (连接、消息、断线) 经 _event_lock 串行处理，
    一个事件连同它触发的全部发送完成后才处理下一个。

    健康检查与 WebSocket 共用端口，只应答 GET /、/health、/_health。
    websockets 的握手解析器不接受 HEAD，探活需配置为 GET。
    """

    def __init__(self, host: str = "0.0.0.0", port: int = DEFAULT_PORT,
                 ping_interval: float = DEFAULT_PING_INTERVAL,
                 max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE):
        self.host = host
        self.port = port
        self._max_message_size = max_message_size
        # 进程内共享状态，只由本实例修改
        self.registry = SessionRegistry()
        self.world = WorldState()
        self.sweeper = LivenessSweeper(self.registry, self._unregister,
                                       interval=ping_interval)
        # 消息路由表
        self._handlers: dict[MsgType, Callable[..., Awaitable[None]]] = {
            MsgType.JOIN: self._handle_join,
            MsgType.STATE: self._handle_state,
            MsgType.NAME: self._handle_name,
            MsgType.PICKUP: partial(self._handle_pickup_event, MsgType.PICKUP),
            MsgType.SHOOT: partial(self._handle_pickup_event, MsgType.SHOOT),
            MsgType.LAND: partial(self._handle_pickup_event, MsgType.LAND),
            MsgType.SCORE: self._handle_score,
            MsgType.RESET: self._handle_reset,
        }
        # 服务端状态
        self._server: Server | None = None
        self._stop_event: asyncio.Event | None = None
        self.started = asyncio.Event()
        # 入站事件全序
        self._event_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: RelayConfig) -> RelayServer:
        return cls(
            host=config.host,
            port=config.port,
            ping_interval=config.ping_interval,
            max_message_size=config.max_message_size,
        )

    # ==================== 连接管理 ====================

    async def _register(self, websocket: ServerConnection) -> str:
        """注册新连接并下发 hello + snapshot"""
        async with self._event_lock:
            sid = self.registry.register(websocket)
            self.sweeper.track(websocket)
            await self.unicast(websocket, ServerMsg.hello(sid))
            await self.unicast(websocket, ServerMsg.snapshot(self.world.snapshot()))
        logger.info("Session %s connected (%d online)", sid, len(self.registry))
        return sid

    async def _unregister(self, websocket: ServerConnection) -> None:
        """注销连接；先清理注册表与世界状态，再广播 remove"""
        async with self._event_lock:
            sid = self.registry.unregister(websocket)
            if sid is None:
                return
            self.sweeper.forget(websocket)
            self.world.remove(sid)
            await self.broadcast(ServerMsg.remove(sid))
        logger.info("Session %s disconnected (%d online)", sid, len(self.registry))

    # ==================== 消息收发 ====================

    async def _send(self, websocket: ServerConnection, data: str) -> bool:
        """发送给单个连接；失败只记录日志"""
        try:
            await websocket.send(data)
            return True
        except Exception as e:
            logger.warning("Send failed (%s): %s", self.registry.get_id(websocket), e)
            return False

    async def unicast(self, websocket: ServerConnection, msg: ServerMsg) -> bool:
        """单播 (连接非 OPEN 时跳过)"""
        if not is_open(websocket):
            return False
        return await self._send(websocket, msg.to_json())

    async def broadcast(self, msg: ServerMsg, exclude_id: str | None = None) -> int:
        """广播给所有在线连接 (可排除一个会话)，返回成功发送数

        消息只序列化一次，所有接收方收到相同的字节。
        """
        data = msg.to_json()
        delivered = 0
        for _sid, websocket in self.registry.for_each_except(exclude_id):
            if await self._send(websocket, data):
                delivered += 1
        return delivered

    # ==================== 消息路由 ====================

    async def _handle_message(self, websocket: ServerConnection, raw: str | bytes) -> None:
        """校验并路由一帧消息；非法帧整帧丢弃"""
        sid = self.registry.get_id(websocket)
        if sid is None:
            return
        if not isinstance(raw, str):
            logger.debug("Dropping binary frame from %s", sid)
            return

        try:
            envelope = parse_envelope(raw)
            msg_type = client_msg_type(envelope.t)
            if msg_type is None:
                logger.debug("Ignoring message type %r from %s", envelope.t, sid)
                return
            payload = validate_payload(msg_type, envelope.p)
        except ValidationError as e:
            logger.debug("Dropping malformed message from %s (%d errors)",
                         sid, e.error_count())
            return

        handler = self._handlers[msg_type]
        async with self._event_lock:
            # 等锁期间连接可能已被注销
            if self.registry.get_id(websocket) != sid:
                return
            try:
                await handler(websocket, sid, envelope.p, payload)
            except Exception:
                logger.exception("Error handling %s from %s", msg_type.value, sid)

    # ==================== 消息处理器 ====================

    async def _handle_join(self, websocket: ServerConnection, sid: str,
                           data: dict[str, Any], payload: JoinData) -> None:
        player = self.world.join(sid, payload.x, payload.z, payload.name)
        await self.broadcast(ServerMsg.add(sid, player.to_dict()), exclude_id=sid)
        await self.unicast(websocket, ServerMsg.name(sid, player.name))
        logger.info("Session %s joined as %r", sid, player.name)

    async def _handle_state(self, websocket: ServerConnection, sid: str,
                            data: dict[str, Any], payload: StateData) -> None:
        player = self.world.update_state(sid, payload.x, payload.z)
        if player is None:
            # 未 join 先发 state: 忽略
            return
        await self.broadcast(ServerMsg.state(sid, player.x, player.z), exclude_id=sid)

    async def _handle_name(self, websocket: ServerConnection, sid: str,
                           data: dict[str, Any], payload: NameData) -> None:
        name = self.world.rename(sid, payload.name)
        # 不排除发送者，发送者也收到回显
        await self.broadcast(ServerMsg.name(sid, name))

    async def _handle_pickup_event(self, msg_type: MsgType, websocket: ServerConnection,
                                   sid: str, data: dict[str, Any], payload: PickupData) -> None:
        """pickup / shoot / land: 服务端不保存状态，原样转发"""
        await self.broadcast(
            ServerMsg.pickup_event(msg_type, sid, payload.idx, data),
            exclude_id=sid,
        )

    async def _handle_score(self, websocket: ServerConnection, sid: str,
                            data: dict[str, Any], payload: ScoreData) -> None:
        target = payload.id if isinstance(payload.id, str) and payload.id in self.registry else sid
        self.world.bump_score(target, 1)
        await self.broadcast(ServerMsg.score(target, self.world.player_name(target)))

    async def _handle_reset(self, websocket: ServerConnection, sid: str,
                            data: dict[str, Any], payload: None) -> None:
        self.world.reset_all()
        await self.broadcast(ServerMsg.reset())
        logger.info("Scores reset by %s", sid)

    # ==================== HTTP 健康检查 ====================

    def _process_request(self, connection: ServerConnection,
                         request: Request) -> Response | None:
        """非 WebSocket 升级请求按健康检查应答"""
        if request.headers.get("Upgrade", "").lower() == "websocket":
            return None
        path = request.path.split("?", 1)[0]
        if path in HEALTH_PATHS:
            return connection.respond(HTTPStatus.OK, "ok\n")
        return connection.respond(HTTPStatus.NOT_FOUND, "not found\n")

    # ==================== 服务端生命周期 ====================

    async def _connection_handler(self, websocket: ServerConnection) -> None:
        """处理单个 WebSocket 连接"""
        sid = await self._register(websocket)
        try:
            async for raw_message in websocket:
                await self._handle_message(websocket, raw_message)
        except ConnectionClosed as e:
            logger.info("Session %s closed abnormally: %s", sid, e)
        except Exception as e:
            logger.warning("Connection error (%s): %s", sid, e)
        finally:
            await self._unregister(websocket)

    @property
    def bound_port(self) -> int | None:
        """实际监听端口 (port=0 时由系统分配)"""
        if self._server is None:
            return None
        for sock in self._server.sockets:
            return sock.getsockname()[1]
        return None

    async def start(self) -> None:
        """启动服务端，直到 stop() 被调用"""
        self._stop_event = asyncio.Event()
        async with serve(
            self._connection_handler,
            self.host,
            self.port,
            process_request=self._process_request,
            # 存活检测由 LivenessSweeper 负责
            ping_interval=None,
            max_size=self._max_message_size,
        ) as server:
            self._server = server
            self.sweeper.start()
            logger.info("Relay listening on ws://%s:%s", self.host, self.bound_port)
            self.started.set()
            await self._stop_event.wait()
            await self._shutdown()
        self._server = None
        logger.info("Relay stopped")

    async def _shutdown(self) -> None:
        """取消存活检测并关闭所有连接 (退出 serve 上下文后释放监听端口)"""
        await self.sweeper.stop()
        connections = self.registry.connections()
        results = await asyncio.gather(
            *(ws.close(CLOSE_CODE_SHUTDOWN, "server shutdown") for ws in connections),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.debug("Close during shutdown failed: %s", result)
        logger.info("Closed %d connection(s)", len(connections))

    def stop(self) -> None:
        """请求停止服务端"""
        if self._stop_event is not None:
            self._stop_event.set()
        logger.info("Relay stopping")


# ==================== CLI 入口 ====================

async def _serve(server: RelayServer) -> None:
    import signal

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, server.stop)
        except NotImplementedError:
            # Windows 事件循环不支持信号处理器，依赖 KeyboardInterrupt
            pass
    await server.start()


def main(argv: list[str] | None = None) -> None:
    """命令行启动服务端"""
    import argparse

    config = get_config()

    parser = argparse.ArgumentParser(description="WebSocket world relay")
    parser.add_argument("--host", default=config.host, help="监听地址")
    parser.add_argument("--port", type=int, default=config.port, help="监听端口")
    parser.add_argument("--ping-interval", type=float, default=config.ping_interval,
                        help="存活探测周期 (秒)")
    parser.add_argument("-v", "--verbose", action="store_true", help="详细日志")

    args = parser.parse_args(argv)

    config = RelayConfig(
        host=args.host,
        port=args.port,
        ping_interval=args.ping_interval,
        max_message_size=config.max_message_size,
        log_level="DEBUG" if args.verbose else config.log_level,
        log_file=config.log_file,
    )
    errors = config.validate()
    if errors:
        parser.error("; ".join(errors))

    setup_logging(config)

    server = RelayServer.from_config(config)
    try:
        asyncio.run(_serve(server))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
