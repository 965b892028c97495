"""
存活检测测试
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from websockets.exceptions import ConnectionClosedError

from relay.liveness import CLOSE_CODE_UNRESPONSIVE, LivenessSweeper
from relay.registry import SessionRegistry
from relay.server import RelayServer


class TestLivenessSweeper:
    @pytest.mark.asyncio
    async def test_first_sweep_probes_everyone(self, make_ws):
        registry = SessionRegistry()
        on_dead = AsyncMock()
        sweeper = LivenessSweeper(registry, on_dead, interval=1.0)
        conns = [make_ws() for _ in range(2)]
        for ws in conns:
            registry.register(ws)
            sweeper.track(ws)

        assert await sweeper.sweep() == 0
        for ws in conns:
            ws.ping.assert_awaited_once()
            assert not sweeper.is_alive(ws)
        on_dead.assert_not_called()

    @pytest.mark.asyncio
    async def test_pong_marks_alive(self, make_ws):
        registry = SessionRegistry()
        sweeper = LivenessSweeper(registry, AsyncMock())
        ws = make_ws()
        registry.register(ws)
        sweeper.track(ws)

        await sweeper.sweep()
        ws.pong_waiters[0].set_result(0.01)
        await asyncio.sleep(0)  # 让 done 回调执行
        assert sweeper.is_alive(ws)

        # 应答过的连接在下一轮继续被探测而不是被驱逐
        assert await sweeper.sweep() == 0
        assert ws.ping.await_count == 2

    @pytest.mark.asyncio
    async def test_unanswered_probe_evicts(self, make_ws):
        registry = SessionRegistry()
        on_dead = AsyncMock()
        sweeper = LivenessSweeper(registry, on_dead)
        ws = make_ws()
        registry.register(ws)
        sweeper.track(ws)

        await sweeper.sweep()
        assert await sweeper.sweep() == 1
        on_dead.assert_awaited_once_with(ws)
        ws.close.assert_awaited_once_with(CLOSE_CODE_UNRESPONSIVE, "ping timeout")
        assert ws.ping.await_count == 1

    @pytest.mark.asyncio
    async def test_failed_pong_does_not_mark_alive(self, make_ws):
        registry = SessionRegistry()
        sweeper = LivenessSweeper(registry, AsyncMock())
        ws = make_ws()
        registry.register(ws)
        sweeper.track(ws)

        await sweeper.sweep()
        ws.pong_waiters[0].set_exception(ConnectionClosedError(None, None))
        await asyncio.sleep(0)
        assert not sweeper.is_alive(ws)

    @pytest.mark.asyncio
    async def test_ping_failure_is_tolerated(self, make_ws):
        registry = SessionRegistry()
        sweeper = LivenessSweeper(registry, AsyncMock())
        ws = make_ws()
        ws.ping.side_effect = ConnectionClosedError(None, None)
        registry.register(ws)
        sweeper.track(ws)
        assert await sweeper.sweep() == 0

    @pytest.mark.asyncio
    async def test_close_failure_is_tolerated(self, make_ws):
        registry = SessionRegistry()
        on_dead = AsyncMock()
        sweeper = LivenessSweeper(registry, on_dead)
        ws = make_ws()
        ws.close.side_effect = OSError("gone")
        registry.register(ws)
        sweeper.track(ws)
        await sweeper.sweep()
        assert await sweeper.sweep() == 1
        on_dead.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_precedes_cleanup(self, make_ws):
        registry = SessionRegistry()
        calls = []

        async def on_dead(connection):
            calls.append("on_dead")

        sweeper = LivenessSweeper(registry, on_dead)
        ws = make_ws()
        ws.close.side_effect = lambda *args: calls.append("close")
        registry.register(ws)
        sweeper.track(ws)

        await sweeper.sweep()
        await sweeper.sweep()
        assert calls == ["close", "on_dead"]

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        sweeper = LivenessSweeper(SessionRegistry(), AsyncMock(), interval=0.01)
        sweeper.start()
        assert sweeper.running
        await asyncio.sleep(0.03)
        await sweeper.stop()
        assert not sweeper.running
        # 重复 stop 无副作用
        await sweeper.stop()


class TestServerEviction:
    @pytest.mark.asyncio
    async def test_dead_peer_triggers_remove_broadcast(self, make_ws, sent):
        server = RelayServer()
        ws_dead, ws_live = make_ws(), make_ws()
        dead = await server._register(ws_dead)
        await server._register(ws_live)

        await server.sweeper.sweep()
        # 只有存活连接应答
        ws_live.pong_waiters[0].set_result(0.01)
        await asyncio.sleep(0)
        ws_live.reset_mock()

        assert await server.sweeper.sweep() == 1
        assert dead not in server.registry
        assert sent(ws_live) == [{"t": "remove", "id": dead}]
        ws_dead.close.assert_awaited_once()
