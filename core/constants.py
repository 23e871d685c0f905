"""
Centralized constants for the E3DC MQTT bridge.

This module defines constants used throughout the application to avoid magic
strings and provide a single source of truth for configuration values.
"""
from datetime import timedelta

# Application Details
APP_NAME = "E3DC MQTT Bridge"
APP_VERSION = "0.1.0"
LOG_FILE_NAME = "e3dc_mqtt.log"
CONFIG_FILE_NAME = "config.ini"

# Logger Names
CORE_LOGGER_NAME = "E3dcMqttCore"
E3DC_LIBRARY_LOGGER_NAME = "e3dc"

# Thread Names
MAIN_THREAD_NAME = "Scheduler"

# Default Intervals
DEFAULT_INTERVAL = timedelta(seconds=5)
DEFAULT_STATISTIC_UPDATE_INTERVAL = timedelta(seconds=300)
MIN_INTERVAL = timedelta(seconds=1)
SCHEDULER_MIN_SLEEP_SECONDS = 0.1
STARTUP_SETTLE_SECONDS = 0.5

# MQTT Defaults
DEFAULT_MQTT_ROOT = "e3dc"
DEFAULT_MQTT_PORT = 1883
