"""
Pydantic 网络消息校验模型测试
"""

import pytest
from pydantic import ValidationError

from relay.models import (
    EnvelopeModel,
    PickupData,
    ScoreData,
    parse_envelope,
    validate_payload,
)
from relay.protocol import MsgType


class TestEnvelope:
    """外层消息结构校验"""

    def test_valid(self):
        env = parse_envelope('{"t": "join", "p": {"x": 1}}')
        assert env.t == "join"
        assert env.p == {"x": 1}

    def test_missing_payload_defaults_to_empty(self):
        assert parse_envelope('{"t": "reset"}').p == {}

    def test_null_payload_defaults_to_empty(self):
        assert parse_envelope('{"t": "reset", "p": null}').p == {}

    def test_extra_envelope_keys_ignored(self):
        env = parse_envelope('{"t": "state", "p": {}, "id": "spoofed"}')
        assert not hasattr(env, "id")

    @pytest.mark.parametrize("raw", [
        "not json",
        "{",
        "[]",
        '"join"',
        "42",
        "{}",
        '{"t": 5}',
        '{"t": null}',
        '{"t": "join", "p": []}',
        '{"t": "join", "p": "x"}',
    ])
    def test_malformed_rejected(self, raw):
        with pytest.raises(ValidationError):
            parse_envelope(raw)

    def test_model_direct(self):
        with pytest.raises(ValidationError):
            EnvelopeModel(p={})


class TestPickupData:
    def test_int_index(self):
        assert PickupData(idx=3).idx == 3

    def test_integral_float_index(self):
        assert PickupData(idx=4.0).idx == 4

    def test_extra_fields_allowed(self):
        data = PickupData.model_validate({"idx": 1, "vx": 2.0})
        assert data.idx == 1

    @pytest.mark.parametrize("value", [None, "3", True, 2.5, [1]])
    def test_non_numeric_rejected(self, value):
        with pytest.raises(ValidationError):
            PickupData(idx=value)

    def test_missing_rejected(self):
        with pytest.raises(ValidationError):
            PickupData.model_validate({})


class TestValidatePayload:
    @pytest.mark.parametrize("msg_type", [MsgType.PICKUP, MsgType.SHOOT, MsgType.LAND])
    def test_pickup_family_requires_idx(self, msg_type):
        with pytest.raises(ValidationError):
            validate_payload(msg_type, {"x": 1})
        assert validate_payload(msg_type, {"idx": 0}).idx == 0

    def test_lenient_join(self):
        data = validate_payload(MsgType.JOIN, {"x": "bad", "name": 7})
        assert data.x == "bad"
        assert data.z is None
        assert data.name == 7

    def test_score_optional_target(self):
        assert validate_payload(MsgType.SCORE, {}).id is None
        assert isinstance(validate_payload(MsgType.SCORE, {"id": "b"}), ScoreData)

    def test_reset_has_no_validator(self):
        assert validate_payload(MsgType.RESET, {"anything": 1}) is None
