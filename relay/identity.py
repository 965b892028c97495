"""会话 ID 生成

每个连接分配一个 128 位随机 ID (UUID4 hex)。
系统随机源不可用时退化为 "时间戳-随机后缀"，仍按唯一处理。
"""

from __future__ import annotations

import logging
import random
import time
import uuid

logger = logging.getLogger(__name__)


def _fallback_id() -> str:
    """时间戳 + 随机后缀 (弱随机)"""
    return f"{time.time_ns():x}-{random.getrandbits(32):08x}"


def new_session_id() -> str:
    """生成新的会话 ID"""
    try:
        return uuid.uuid4().hex
    except NotImplementedError:
        # os.urandom 在没有随机源的平台上会抛出 NotImplementedError
        logger.warning("OS randomness unavailable, using weak session id")
        return _fallback_id()
