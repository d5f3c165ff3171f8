"""Target identity normalization and advertisement matching."""

from __future__ import annotations

import re

from tagbridge.core.errors import ConfigValidationError
from tagbridge.core.model import WILDCARD, DeviceIdentity

_SEPARATORS_RE = re.compile(r"[:\-\s]")
_HEX_ADDRESS_RE = re.compile(r"^[0-9a-f]{12}$")


def normalize_address(address: str) -> str:
    return _SEPARATORS_RE.sub("", address.strip().lower())


def parse_identity(target: str) -> DeviceIdentity:
    stripped = target.strip()
    if stripped == WILDCARD:
        return DeviceIdentity(WILDCARD)
    normalized = normalize_address(stripped)
    if not _HEX_ADDRESS_RE.match(normalized):
        raise ConfigValidationError(
            f"ble.target must be a 6-byte hardware address or '{WILDCARD}', got '{target}'"
        )
    return DeviceIdentity(normalized)


def matches(identity: DeviceIdentity, address: str) -> bool:
    if identity.is_wildcard:
        return True
    return normalize_address(address) == identity.value
