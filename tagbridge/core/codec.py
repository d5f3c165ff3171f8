"""Notification decoding and envelope encoding."""

from __future__ import annotations

import json
import struct

from tagbridge.core.model import Envelope, SensorProfile


def decode_button(data: bytes) -> bool:
    if not data:
        raise ValueError("Empty button notification")
    return data[0] != 0


def decode_accel(data: bytes, profile: SensorProfile) -> tuple[float, float, float]:
    try:
        x, y, z = struct.unpack_from(profile.accel_format, data)[:3]
    except struct.error as exc:
        raise ValueError(
            f"Motion notification of {len(data)} bytes does not fit '{profile.accel_format}'"
        ) from exc
    scale = profile.accel_scale
    return float(x) * scale, float(y) * scale, float(z) * scale


def encode_envelope(envelope: Envelope) -> bytes:
    document = {
        "status": envelope.status.value,
        "timestamp": envelope.timestamp,
        "payload": envelope.payload,
    }
    return json.dumps(document, separators=(",", ":")).encode("utf-8")
