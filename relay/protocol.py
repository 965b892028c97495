"""网络协议定义
基于 WebSocket 的 JSON 文本帧

协议设计:
- 客户端 → 服务端: {"t": 类型, "p": {...}}
- 服务端 → 客户端: {"t": 类型, "id": 会话 ID, "id2": 拾取物索引, "p": {...}}
- id / id2 / p 按需出现
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# ==================== 消息类型枚举 ====================

class MsgType(Enum):
    """网络消息类型"""

    # ---- 仅服务端发出 ----
    HELLO = "hello"           # 连接后下发分配的会话 ID
    SNAPSHOT = "snapshot"     # 完整世界状态
    ADD = "add"               # 有玩家 join
    REMOVE = "remove"         # 有玩家断线

    # ---- 双向 ----
    JOIN = "join"             # 加入世界
    STATE = "state"           # 位置更新
    NAME = "name"             # 改名
    PICKUP = "pickup"         # 拾取
    SHOOT = "shoot"           # 投掷
    LAND = "land"             # 落地
    SCORE = "score"           # 得分
    RESET = "reset"           # 积分清零


# 客户端可以发起的类型 (其余类型服务端收到后忽略)
CLIENT_TYPES = frozenset({
    MsgType.JOIN, MsgType.STATE, MsgType.NAME, MsgType.PICKUP,
    MsgType.SHOOT, MsgType.LAND, MsgType.SCORE, MsgType.RESET,
})


def _dumps(obj: dict[str, Any]) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


# ==================== 消息数据类 ====================

@dataclass
class ServerMsg:
    """服务端 → 客户端消息

    {
        "t": "state",
        "id": "9f1c...",
        "p": {"x": 1.0, "z": 2.0}
    }
    """
    type: MsgType
    id: str | None = None
    id2: int | None = None
    data: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        obj: dict[str, Any] = {"t": self.type.value}
        if self.id is not None:
            obj["id"] = self.id
        if self.id2 is not None:
            obj["id2"] = self.id2
        if self.data is not None:
            obj["p"] = self.data
        return obj

    def to_json(self) -> str:
        """序列化为 JSON 字符串"""
        return _dumps(self.to_dict())

    @classmethod
    def from_json(cls, raw: str) -> ServerMsg:
        """从 JSON 字符串反序列化"""
        obj = json.loads(raw)
        return cls(
            type=MsgType(obj["t"]),
            id=obj.get("id"),
            id2=obj.get("id2"),
            data=obj.get("p"),
        )

    # ---------- 工厂方法 ----------

    @classmethod
    def hello(cls, sid: str) -> ServerMsg:
        return cls(type=MsgType.HELLO, id=sid)

    @classmethod
    def snapshot(cls, state: dict[str, Any]) -> ServerMsg:
        """完整世界状态 (players + scores)"""
        return cls(type=MsgType.SNAPSHOT, data=state)

    @classmethod
    def add(cls, sid: str, player: dict[str, Any]) -> ServerMsg:
        return cls(type=MsgType.ADD, id=sid, data=player)

    @classmethod
    def remove(cls, sid: str) -> ServerMsg:
        return cls(type=MsgType.REMOVE, id=sid)

    @classmethod
    def name(cls, sid: str, name: str) -> ServerMsg:
        return cls(type=MsgType.NAME, id=sid, data={"name": name})

    @classmethod
    def state(cls, sid: str, x: float, z: float) -> ServerMsg:
        return cls(type=MsgType.STATE, id=sid, data={"x": x, "z": z})

    @classmethod
    def pickup_event(cls, msg_type: MsgType, sid: str, idx: int,
                     payload: dict[str, Any]) -> ServerMsg:
        """pickup / shoot / land: 原样转发载荷，id2 为拾取物索引"""
        return cls(type=msg_type, id=sid, id2=idx, data=payload)

    @classmethod
    def score(cls, sid: str, name: str) -> ServerMsg:
        return cls(type=MsgType.SCORE, id=sid, data={"name": name})

    @classmethod
    def reset(cls) -> ServerMsg:
        return cls(type=MsgType.RESET, data={})


@dataclass
class ClientMsg:
    """客户端 → 服务端消息

    {"t": "join", "p": {"x": 0, "z": 0, "name": "Ann"}}
    """
    type: MsgType
    data: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return _dumps({"t": self.type.value, "p": self.data})

    # ---------- 工厂方法 ----------

    @classmethod
    def join(cls, x: float, z: float, name: str) -> ClientMsg:
        return cls(type=MsgType.JOIN, data={"x": x, "z": z, "name": name})

    @classmethod
    def state(cls, x: float, z: float) -> ClientMsg:
        return cls(type=MsgType.STATE, data={"x": x, "z": z})

    @classmethod
    def name(cls, name: str) -> ClientMsg:
        return cls(type=MsgType.NAME, data={"name": name})

    @classmethod
    def pickup(cls, idx: int, **extra: Any) -> ClientMsg:
        return cls(type=MsgType.PICKUP, data={"idx": idx, **extra})

    @classmethod
    def shoot(cls, idx: int, **extra: Any) -> ClientMsg:
        return cls(type=MsgType.SHOOT, data={"idx": idx, **extra})

    @classmethod
    def land(cls, idx: int, **extra: Any) -> ClientMsg:
        return cls(type=MsgType.LAND, data={"idx": idx, **extra})

    @classmethod
    def score(cls, target: str | None = None) -> ClientMsg:
        return cls(type=MsgType.SCORE, data={"id": target} if target else {})

    @classmethod
    def reset(cls) -> ClientMsg:
        return cls(type=MsgType.RESET)


# ==================== 工具函数 ====================

def client_msg_type(type_str: str) -> MsgType | None:
    """客户端可发起的消息类型；未知或仅服务端类型返回 None"""
    try:
        msg_type = MsgType(type_str)
    except ValueError:
        return None
    return msg_type if msg_type in CLIENT_TYPES else None
