# core/app_state.py
import threading
from datetime import timedelta
from typing import Optional

from core.constants import (
    DEFAULT_INTERVAL,
    DEFAULT_MQTT_PORT,
    DEFAULT_MQTT_ROOT,
    DEFAULT_STATISTIC_UPDATE_INTERVAL,
)

REDACTED = "***REDACTED***"


class AppState:
    """
    Centralized application state.

    Holds the loaded configuration and the shared stop event. It is populated
    by `core.config_loader.load_configuration` and read by the E3DC client, the
    MQTT service and the scheduler.

    `repr()` never shows the E3DC password, the RSCP key or the MQTT password,
    so the object can be logged safely.
    """
    def __init__(self, version: str):
        # Version and Lifecycle
        self.version = version
        self.running = True
        self.main_threads_stop_event = threading.Event()

        # Configuration (will be populated by config_loader)
        self.config = None
        self.config_path: Optional[str] = None
        self.log_level = "INFO"
        self.log_to_file = False

        # E3DC
        self.e3dc_host: str = ""
        self.e3dc_username: str = ""
        self.e3dc_password: str = ""
        self.e3dc_key: str = ""
        self.interval: timedelta = DEFAULT_INTERVAL
        self.statistic_update_interval: timedelta = DEFAULT_STATISTIC_UPDATE_INTERVAL

        # MQTT
        self.mqtt_root: str = DEFAULT_MQTT_ROOT
        self.mqtt_host: str = ""
        self.mqtt_port: int = DEFAULT_MQTT_PORT
        self.mqtt_username: str = ""
        self.mqtt_password: str = ""

    def __repr__(self) -> str:
        return (
            f"AppState(version={self.version!r}, config_path={self.config_path!r}, "
            f"log_level={self.log_level!r}, log_to_file={self.log_to_file}, "
            f"e3dc_host={self.e3dc_host!r}, e3dc_username={self.e3dc_username!r}, "
            f"e3dc_password={self._redact(self.e3dc_password)!r}, e3dc_key={self._redact(self.e3dc_key)!r}, "
            f"interval={self.interval}, statistic_update_interval={self.statistic_update_interval}, "
            f"mqtt_root={self.mqtt_root!r}, mqtt_host={self.mqtt_host!r}, mqtt_port={self.mqtt_port}, "
            f"mqtt_username={self.mqtt_username!r}, mqtt_password={self._redact(self.mqtt_password)!r})"
        )

    @staticmethod
    def _redact(secret: str) -> str:
        return REDACTED if secret else ""
