"""Configuration loading and validation for the YAML gateway config."""

from __future__ import annotations

import json
import logging
import os
import re
import socket
import struct
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from tagbridge.core.device_match import parse_identity
from tagbridge.core.errors import ConfigLoadError, ConfigValidationError
from tagbridge.core.model import AppSettings, BleSettings, GatewayConfig, MqttSettings, SensorProfile

_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$|^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
HOSTNAME_PLACEHOLDER = "{hostname}"
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedConfig:
    config: GatewayConfig
    source: str
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("tagbridge.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def default_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "tagbridge/config.yaml"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _normalize_uuid(value: str, *, context: str) -> str:
    normalized = value.strip().lower()
    if not _UUID_RE.match(normalized):
        raise ConfigValidationError(
            f"{context} must be a 16-bit, 32-bit, or 128-bit UUID string"
        )
    return normalized


def _normalize_struct_format(value: str, *, context: str) -> str:
    try:
        struct.calcsize(value)
    except struct.error as exc:
        raise ConfigValidationError(f"{context} is not a valid struct format: {exc}") from exc
    axes = struct.unpack(value, bytes(struct.calcsize(value)))[:3]
    if len(axes) < 3 or not all(isinstance(axis, (int, float)) for axis in axes):
        raise ConfigValidationError(f"{context} must unpack at least three numeric axis values")
    return value


def resolve_topic(template: str, hostname: str | None = None) -> str:
    return template.replace(HOSTNAME_PLACEHOLDER, hostname or socket.gethostname())


def _build_config(doc: dict[str, Any], source: str) -> GatewayConfig:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    ble = doc["ble"]
    profile = ble["profile"]
    mqtt = doc["mqtt"]
    app = doc["app"]

    return GatewayConfig(
        ble=BleSettings(
            target=parse_identity(ble["target"]),
            adapter=ble.get("adapter") or None,
            restart_delay_ms=int(ble["restart_delay_ms"]),
            profile=SensorProfile(
                button_char_uuid=_normalize_uuid(
                    profile["button_char_uuid"],
                    context="ble.profile.button_char_uuid",
                ),
                motion_char_uuid=_normalize_uuid(
                    profile["motion_char_uuid"],
                    context="ble.profile.motion_char_uuid",
                ),
                accel_format=_normalize_struct_format(
                    profile.get("accel_format", "<hhh"),
                    context="ble.profile.accel_format",
                ),
                accel_scale=float(profile.get("accel_scale", 1.0)),
            ),
        ),
        mqtt=MqttSettings(
            host=mqtt["host"],
            port=int(mqtt["port"]),
            topic=resolve_topic(mqtt["topic"]),
            client_id=mqtt.get("client_id", ""),
            keepalive_s=int(mqtt.get("keepalive_s", 60)),
        ),
        app=AppSettings(
            send_interval_ms=int(app["send_interval_ms"]),
            start_delay_ms=int(app.get("start_delay_ms", 0)),
            logging_level=app["logging_level"],
        ),
    )


def load_config(path: Path | None = None) -> LoadedConfig:
    warnings: list[str] = []
    doc = _read_yaml(resources.files("tagbridge.defaults").joinpath("config.yaml"))
    source = "<defaults>"

    if path is None:
        candidate = default_config_path()
        if candidate.is_file():
            path = candidate
        else:
            warning = f"No config file at {candidate}; using packaged defaults"
            LOGGER.warning(warning)
            warnings.append(warning)

    if path is not None:
        doc = _merge(doc, _read_yaml(path))
        source = str(path)

    return LoadedConfig(config=_build_config(doc, source), source=source, warnings=tuple(warnings))
