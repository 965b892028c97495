"""共享测试夹具: WebSocket 连接替身"""

import asyncio
import json
import uuid
from unittest.mock import AsyncMock

import pytest
from websockets.protocol import State


def _make_ws(state: State = State.OPEN) -> AsyncMock:
    """模拟 ServerConnection: 具备 id / state / send / close / ping"""
    ws = AsyncMock()
    ws.id = uuid.uuid4()
    ws.state = state
    ws.pong_waiters = []

    async def ping(data=None):
        waiter = asyncio.get_running_loop().create_future()
        ws.pong_waiters.append(waiter)
        return waiter

    ws.ping.side_effect = ping
    return ws


def _sent(ws) -> list[dict]:
    """解析某个连接收到的全部 JSON 消息"""
    return [json.loads(call.args[0]) for call in ws.send.call_args_list]


@pytest.fixture
def make_ws():
    return _make_ws


@pytest.fixture
def sent():
    return _sent
