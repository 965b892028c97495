"""网络消息 Pydantic 校验模型

服务端在路由前先用 EnvelopeModel 校验外层结构，
再按消息类型用 DATA_VALIDATORS 校验载荷，校验失败的整帧被丢弃。

设计原则:
  - 校验模型与路由/状态层分离
  - 校验失败抛出 pydantic.ValidationError，由调用方统一处理
  - 外层与载荷均容忍未知字段 (客户端可能附带渲染用的额外数据)
  - 坐标/名字的宽松解析留给 WorldState，这里只保证容器形状
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator

from .protocol import MsgType

# ====================================================================== #
#  外层信封                                                                #
# ====================================================================== #


class EnvelopeModel(BaseModel):
    """客户端消息信封 {"t": ..., "p": {...}}"""

    model_config = ConfigDict(extra="ignore")

    t: StrictStr
    p: dict[str, Any] = Field(default_factory=dict)

    @field_validator("p", mode="before")
    @classmethod
    def null_payload(cls, v: Any) -> Any:
        # "p": null 与缺省等价
        return {} if v is None else v


# ====================================================================== #
#  载荷校验模型                                                            #
# ====================================================================== #


class JoinData(BaseModel):
    """join 载荷: 坐标与名字在 WorldState 中宽松解析"""

    model_config = ConfigDict(extra="allow")

    x: Any = None
    z: Any = None
    name: Any = None


class StateData(BaseModel):
    """state 载荷"""

    model_config = ConfigDict(extra="allow")

    x: Any = None
    z: Any = None


class NameData(BaseModel):
    """name 载荷"""

    model_config = ConfigDict(extra="allow")

    name: Any = None


class PickupData(BaseModel):
    """pickup / shoot / land 载荷: 必须携带数值型拾取物索引"""

    model_config = ConfigDict(extra="allow")

    idx: int

    @field_validator("idx", mode="before")
    @classmethod
    def idx_is_number(cls, v: Any) -> Any:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError("idx must be a number")
        return v


class ScoreData(BaseModel):
    """score 载荷: id 缺省或未知时为自己得分"""

    model_config = ConfigDict(extra="allow")

    id: Any = None


# ====================================================================== #
#  消息类型 → 载荷校验模型映射                                              #
# ====================================================================== #

# reset 不需要载荷；不在此映射中的类型仅校验外层结构
DATA_VALIDATORS: dict[MsgType, type[BaseModel]] = {
    MsgType.JOIN: JoinData,
    MsgType.STATE: StateData,
    MsgType.NAME: NameData,
    MsgType.PICKUP: PickupData,
    MsgType.SHOOT: PickupData,
    MsgType.LAND: PickupData,
    MsgType.SCORE: ScoreData,
}


def parse_envelope(raw: str) -> EnvelopeModel:
    """校验原始 JSON 文本帧的外层结构 (二进制帧由调用方先行丢弃)

    Raises:
        pydantic.ValidationError: 非法 JSON / 非对象 / t 缺失或非字符串 / p 非对象
    """
    return EnvelopeModel.model_validate_json(raw)


def validate_payload(msg_type: MsgType, data: dict[str, Any]) -> BaseModel | None:
    """按消息类型校验载荷，无专门模型时返回 None

    Raises:
        pydantic.ValidationError: 载荷不满足该类型的前置条件
    """
    validator_cls = DATA_VALIDATORS.get(msg_type)
    if validator_cls is None:
        return None
    return validator_cls.model_validate(data)
