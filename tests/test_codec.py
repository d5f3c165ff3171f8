import json
import struct

import pytest

from tagbridge.core.codec import decode_accel, decode_button, encode_envelope
from tagbridge.core.model import Envelope, EnvelopeStatus, SensorProfile

PROFILE = SensorProfile(
    button_char_uuid="ef680302-9b35-4933-9b10-52ffa9740042",
    motion_char_uuid="ef680406-9b35-4933-9b10-52ffa9740042",
    accel_format="<hhh",
    accel_scale=1 / 1024,
)


def test_heartbeat_wire_format() -> None:
    raw = encode_envelope(Envelope(status=EnvelopeStatus.GATEWAY_CONNECTED, timestamp=1700000000))
    assert json.loads(raw) == {"status": "GATEWAY_CONNECTED", "timestamp": 1700000000, "payload": None}


def test_device_wire_format() -> None:
    payload = {"accel": {"x": 0.0, "y": 1.5, "z": -9.75}, "button": True}
    raw = encode_envelope(
        Envelope(status=EnvelopeStatus.DEVICE_CONNECTED, timestamp=1700000001, payload=payload)
    )
    document = json.loads(raw.decode("utf-8"))
    assert document["status"] == "DEVICE_CONNECTED"
    assert document["payload"] == payload


def test_decode_button() -> None:
    assert decode_button(b"\x01") is True
    assert decode_button(b"\x00\xff") is False
    with pytest.raises(ValueError):
        decode_button(b"")


def test_decode_accel_scales_axes() -> None:
    data = struct.pack("<hhh", -2048, 512, 1024)
    assert decode_accel(data, PROFILE) == (-2.0, 0.5, 1.0)


def test_decode_accel_float_profile() -> None:
    profile = SensorProfile(
        button_char_uuid=PROFILE.button_char_uuid,
        motion_char_uuid=PROFILE.motion_char_uuid,
        accel_format="<fff",
    )
    assert decode_accel(struct.pack("<fff", 0.5, 0.25, -1.0), profile) == (0.5, 0.25, -1.0)


def test_decode_accel_short_frame() -> None:
    with pytest.raises(ValueError, match="does not fit"):
        decode_accel(b"\x00\x01", PROFILE)
