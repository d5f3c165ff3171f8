from __future__ import annotations

from pathlib import Path

import pytest

from tagbridge.core import config_loader
from tagbridge.core.config_loader import load_config, resolve_topic
from tagbridge.core.errors import ConfigLoadError, ConfigValidationError


def _write_config(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def isolated_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setattr(config_loader.socket, "gethostname", lambda: "pi-gateway")
    return tmp_path / "cfg"


def test_packaged_defaults_load_with_warning() -> None:
    loaded = load_config()
    cfg = loaded.config

    assert loaded.source == "<defaults>"
    assert any("using packaged defaults" in w for w in loaded.warnings)
    assert cfg.ble.target.is_wildcard
    assert cfg.ble.restart_delay_ms == 5000
    assert cfg.ble.profile.accel_format == "<hhh"
    assert cfg.mqtt.endpoint == "localhost:1883"
    assert cfg.mqtt.topic == "gateway/pi-gateway/telemetry"
    assert cfg.app.send_interval_ms == 1000
    assert cfg.app.start_delay_ms == 5000


def test_user_config_from_xdg_overrides_defaults(isolated_xdg: Path) -> None:
    _write_config(
        isolated_xdg / "tagbridge" / "config.yaml",
        """
ble:
  target: "C0:98:E5:49:00:0A"
mqtt:
  host: mqtt.example.org
  topic: "sensors/{hostname}"
app:
  send_interval_ms: 250
  logging_level: DEBUG
""",
    )

    loaded = load_config()
    cfg = loaded.config
    assert loaded.warnings == ()
    assert cfg.ble.target.value == "c098e549000a"
    assert cfg.ble.adapter == "hci0"
    assert cfg.mqtt.host == "mqtt.example.org"
    assert cfg.mqtt.port == 1883
    assert cfg.mqtt.topic == "sensors/pi-gateway"
    assert cfg.app.send_interval_ms == 250
    assert cfg.app.logging_level == "DEBUG"


def test_explicit_path_wins(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "gw.yaml", "mqtt:\n  port: 8883\n")
    loaded = load_config(path)
    assert loaded.source == str(path)
    assert loaded.config.mqtt.port == 8883


def test_missing_explicit_file_raises_load_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError):
        load_config(tmp_path / "nope.yaml")


@pytest.mark.parametrize(
    "content",
    [
        "mqtt:\n  port: 1883\n  port: 1884\n",
        "ble:\n  target: not-an-address\n",
        "mqtt:\n  port: 70000\n",
        "app:\n  logging_level: TRACE\n",
        "app:\n  unknown_key: 1\n",
        "ble:\n  profile:\n    button_char_uuid: nope\n",
        "ble:\n  profile:\n    accel_format: \"<h\"\n",
        "ble:\n  profile:\n    accel_format: \"<q?z\"\n",
        "- just\n- a list\n",
        "ble: [unterminated\n",
    ],
)
def test_invalid_config_rejected(tmp_path: Path, content: str) -> None:
    path = _write_config(tmp_path / "bad.yaml", content)
    with pytest.raises(ConfigValidationError):
        load_config(path)


def test_empty_file_means_defaults(tmp_path: Path) -> None:
    path = _write_config(tmp_path / "empty.yaml", "")
    assert load_config(path).config.mqtt.host == "localhost"


def test_resolve_topic_uses_given_hostname() -> None:
    assert resolve_topic("gw/{hostname}/state", "edge-01") == "gw/edge-01/state"
    assert resolve_topic("gw/static") == "gw/static"
