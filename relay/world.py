"""世界状态存储

按会话 ID 保存玩家 (坐标 + 名字) 与积分。
服务端不做物理与规则校验，只保存新加入者需要的权威值。
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_NAME = "Player"
NAME_MAX_LENGTH = 20


def parse_number(value: Any) -> float | None:
    """解析坐标值；非法值 (含布尔、NaN、无穷) 返回 None"""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def clamp_name(name: Any) -> str:
    """截断到 20 个字符；缺失或空串时使用默认名"""
    if not isinstance(name, str) or not name:
        return DEFAULT_NAME
    return name[:NAME_MAX_LENGTH]


@dataclass
class Player:
    """已加入的玩家"""
    x: float = 0.0
    z: float = 0.0
    name: str = DEFAULT_NAME

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class WorldState:
    """玩家表 + 积分表

    两张表都以会话 ID 为键，互相独立但逻辑一致:
    由 join 创建的积分行在断线前一定有对应玩家。
    """

    def __init__(self) -> None:
        self.players: dict[str, Player] = {}
        self.scores: dict[str, int] = {}

    # ==================== 玩家 ====================

    def join(self, sid: str, x: Any, z: Any, name: Any) -> Player:
        """创建或覆盖玩家，并确保积分行存在"""
        prior = self.players.get(sid) or Player()
        px = parse_number(x)
        pz = parse_number(z)
        player = Player(
            x=prior.x if px is None else px,
            z=prior.z if pz is None else pz,
            name=clamp_name(name),
        )
        self.players[sid] = player
        self.scores.setdefault(sid, 0)
        return player

    def update_state(self, sid: str, x: Any, z: Any) -> Player | None:
        """更新坐标；未 join 的会话返回 None 且不做任何修改"""
        player = self.players.get(sid)
        if player is None:
            return None
        px = parse_number(x)
        pz = parse_number(z)
        if px is not None:
            player.x = px
        if pz is not None:
            player.z = pz
        return player

    def rename(self, sid: str, name: Any) -> str:
        """改名，返回规范化后的名字 (无论玩家是否存在都会转发)"""
        clamped = clamp_name(name)
        player = self.players.get(sid)
        if player is not None:
            player.name = clamped
        return clamped

    def player_name(self, sid: str) -> str:
        player = self.players.get(sid)
        return player.name if player else DEFAULT_NAME

    # ==================== 积分 ====================

    def bump_score(self, sid: str, delta: int = 1) -> int:
        self.scores[sid] = self.scores.get(sid, 0) + delta
        return self.scores[sid]

    def reset_all(self) -> None:
        """清空积分后为每个在场玩家重建 0 分行

        没有对应玩家的残留积分行会被丢弃。
        """
        self.scores.clear()
        for sid in self.players:
            self.scores[sid] = 0

    # ==================== 快照 / 清理 ====================

    def snapshot(self) -> dict[str, Any]:
        """完整世界状态 (发给新连接)"""
        return {
            "players": {sid: p.to_dict() for sid, p in self.players.items()},
            "scores": {
                sid: {"name": self.player_name(sid), "score": score}
                for sid, score in self.scores.items()
            },
        }

    def remove(self, sid: str) -> bool:
        """断线清理，返回是否存在过记录"""
        had_player = self.players.pop(sid, None) is not None
        had_score = self.scores.pop(sid, None) is not None
        return had_player or had_score
