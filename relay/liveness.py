"""存活检测

定期对每个连接发送传输层 ping；上一轮 ping 未收到 pong 的连接先被强制关闭，
再按正常断线流程清理 (注销 → 清理世界状态 → 广播 remove)。
本模块只维护每个连接的 "自上次探测后是否应答" 标志。
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from .registry import SessionRegistry, is_open

if TYPE_CHECKING:
    from websockets.asyncio.server import ServerConnection

logger = logging.getLogger(__name__)

# 与常见反向代理的空闲超时 (30~60 秒) 相比留有余量
DEFAULT_PING_INTERVAL: float = 25.0

# 1001 = Going Away
CLOSE_CODE_UNRESPONSIVE = 1001


class LivenessSweeper:
    """存活检测器

    Args:
        registry: 会话注册表 (只读)
        on_dead: 连接被判定失活后的清理回调
        interval: 探测周期 (秒)
    """

    def __init__(self, registry: SessionRegistry,
                 on_dead: Callable[[ServerConnection], Awaitable[None]],
                 interval: float = DEFAULT_PING_INTERVAL) -> None:
        self._registry = registry
        self._on_dead = on_dead
        self.interval = interval
        self._alive: dict[Any, bool] = {}  # 连接句柄 → 上次探测后是否应答
        self._task: asyncio.Task | None = None

    # ==================== 连接跟踪 ====================

    def track(self, connection: ServerConnection) -> None:
        """新连接视为存活"""
        self._alive[connection.id] = True

    def forget(self, connection: ServerConnection) -> None:
        self._alive.pop(connection.id, None)

    def is_alive(self, connection: ServerConnection) -> bool:
        return self._alive.get(connection.id, False)

    def _on_pong(self, connection: ServerConnection, waiter: asyncio.Future) -> None:
        if waiter.cancelled() or waiter.exception() is not None:
            return
        if connection.id in self._alive:
            self._alive[connection.id] = True

    # ==================== 探测 ====================

    async def _probe(self, connection: ServerConnection) -> None:
        try:
            pong_waiter = await connection.ping()
        except Exception as e:
            # 连接正在关闭；由连接自身的收尾流程清理
            logger.debug("Ping failed for %s: %s", connection.id, e)
            return
        pong_waiter.add_done_callback(
            lambda waiter: self._on_pong(connection, waiter)
        )

    async def sweep(self) -> int:
        """执行一轮检测，返回被驱逐的连接数"""
        dead: list[ServerConnection] = []
        for connection in self._registry.connections():
            if not self._alive.get(connection.id, True):
                dead.append(connection)
                continue
            self._alive[connection.id] = False
            if is_open(connection):
                await self._probe(connection)

        for connection in dead:
            logger.warning(
                "Session %s did not answer ping, dropping",
                self._registry.get_id(connection),
            )
            self.forget(connection)

        if dead:
            await asyncio.gather(*(self._evict(c) for c in dead))
        return len(dead)

    async def _evict(self, connection: ServerConnection) -> None:
        # 须先于清理: 关闭会中止卡在该连接上的发送
        try:
            await connection.close(CLOSE_CODE_UNRESPONSIVE, "ping timeout")
        except Exception as e:
            logger.debug("Close after ping timeout failed: %s", e)
        await self._on_dead(connection)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Liveness sweep failed")

    # ==================== 生命周期 ====================

    def start(self) -> None:
        """在当前事件循环上启动后台任务"""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """取消后台任务并等待其结束"""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
