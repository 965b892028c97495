"""中继服务配置 (单一事实来源)

所有可配置参数在此定义，支持从环境变量覆盖。
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from .liveness import DEFAULT_PING_INTERVAL

# WebSocket 消息体最大字节数
DEFAULT_MAX_MESSAGE_SIZE: int = 65_536  # 64 KB

DEFAULT_PORT: int = 8080

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _get_env_float(key: str, default: float) -> float:
    """从环境变量获取浮点数配置"""
    value = os.environ.get(key)
    if value is not None:
        try:
            return float(value)
        except ValueError:
            pass
    return default


def _get_env_int(key: str, default: int) -> int:
    """从环境变量获取整数配置"""
    value = os.environ.get(key)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            pass
    return default


def _default_port() -> int:
    # 托管平台 (Railway / Heroku 等) 通过 PORT 指定端口
    return _get_env_int("PORT", _get_env_int("RELAY_PORT", DEFAULT_PORT))


@dataclass(frozen=True)
class RelayConfig:
    """中继服务配置类 (不可变)

    所有配置项支持通过环境变量覆盖：
    - RELAY_HOST: 监听地址
    - PORT / RELAY_PORT: 监听端口 (PORT 优先)
    - RELAY_PING_INTERVAL: 存活探测周期秒数
    - RELAY_MAX_MSG_SIZE: 单帧最大字节数
    - RELAY_LOG_LEVEL / RELAY_LOG_FILE: 日志
    """
    # ==================== 网络配置 ====================
    host: str = field(
        default_factory=lambda: os.environ.get("RELAY_HOST", "0.0.0.0")
    )
    port: int = field(default_factory=_default_port)
    ping_interval: float = field(
        default_factory=lambda: _get_env_float("RELAY_PING_INTERVAL", DEFAULT_PING_INTERVAL)
    )
    max_message_size: int = field(
        default_factory=lambda: _get_env_int("RELAY_MAX_MSG_SIZE", DEFAULT_MAX_MESSAGE_SIZE)
    )

    # ==================== 日志 ====================
    log_level: str = field(
        default_factory=lambda: os.environ.get("RELAY_LOG_LEVEL", "INFO")
    )
    log_file: str = field(
        default_factory=lambda: os.environ.get("RELAY_LOG_FILE", "")
    )

    @classmethod
    def from_env(cls) -> RelayConfig:
        """从环境变量创建配置实例"""
        return cls()

    def validate(self) -> list[str]:
        """返回配置错误列表，空列表表示合法"""
        errors: list[str] = []
        if not self.host:
            errors.append("host must not be empty")
        # 0 表示由系统分配端口
        if not 0 <= self.port <= 65535:
            errors.append(f"port out of range: {self.port}")
        if self.ping_interval <= 0:
            errors.append(f"ping_interval must be positive: {self.ping_interval}")
        if self.max_message_size <= 0:
            errors.append(f"max_message_size must be positive: {self.max_message_size}")
        if self.log_level.upper() not in _LOG_LEVELS:
            errors.append(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        return errors


# 全局配置单例
_config: RelayConfig | None = None


def get_config() -> RelayConfig:
    """获取全局配置实例（懒加载）"""
    global _config
    if _config is None:
        _config = RelayConfig.from_env()
    return _config


def reset_config() -> None:
    """重置配置（用于测试）"""
    global _config
    _config = None
