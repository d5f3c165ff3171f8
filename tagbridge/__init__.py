"""BLE sensor tag to MQTT gateway."""

__version__ = "0.1.0"
