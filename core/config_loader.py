# core/config_loader.py
import configparser
import logging
import os
import re
from datetime import timedelta
from typing import Any, Optional, Type

from core.app_state import AppState
from core.constants import (
    DEFAULT_INTERVAL,
    DEFAULT_MQTT_PORT,
    DEFAULT_MQTT_ROOT,
    DEFAULT_STATISTIC_UPDATE_INTERVAL,
    MIN_INTERVAL,
)
from core.errors import ConfigFileNotFoundError, ConfigValidationError

logger = logging.getLogger(__name__)

_DURATION_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$", re.IGNORECASE)
_DURATION_UNITS = {
    None: "seconds",
    "ms": "milliseconds",
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
}
_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def parse_duration(text: str) -> timedelta:
    """
    Parses a duration such as `5`, `500ms`, `5s`, `2m` or `1h`.

    A bare number is read as seconds.

    Raises:
        ValueError: If the text is not a non-negative number with an optional unit.
    """
    match = _DURATION_PATTERN.match(text)
    if not match:
        raise ValueError(f"Invalid duration '{text}'. Expected e.g. '5s', '500ms', '2m' or '1h'.")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit.lower() if unit else None]: float(amount)})

def load_configuration(config_path: str, app_state: AppState):
    """
    Loads configuration from a .ini file and environment variables, populating the AppState object.

    The precedence is:
    1. Environment variable (e.g., `MQTT_HOST`)
    2. Value from config file (e.g., `MQTT_HOST` in `[MQTT]`)
    3. Default value specified in the code.

    Durations that cannot be parsed are stored as `None` and reported by
    `validate_core_config`.

    Args:
        config_path (str): The path to the configuration file (e.g., 'config.ini').
        app_state (AppState): The central application state object to be populated with
                              the loaded configuration values.

    Raises:
        ConfigFileNotFoundError: If `config_path` does not exist.
    """
    if not os.path.exists(config_path):
        raise ConfigFileNotFoundError(config_path)

    config = configparser.ConfigParser(interpolation=None)
    config.read(config_path, encoding='utf-8')
    logger.info(f"Successfully read configuration from {config_path}")

    app_state.config = config
    app_state.config_path = config_path

    def get_config_value(var_name: str, return_type: Type = str, default: Any = None, section: str = 'DEFAULT') -> Any:
        """
        Retrieves and converts a configuration value with environment variable override support.

        Args:
            var_name: The configuration variable name
            return_type: The expected type for conversion (str, int, float, bool)
            default: Default value if not found in env or config
            section: Configuration file section name

        Returns:
            The configuration value converted to the specified type
        """
        env_value = os.environ.get(var_name.upper())
        config_value = config.get(section, var_name, fallback=None) if config.has_option(section, var_name) else None

        value_to_cast = env_value if env_value is not None else config_value
        if value_to_cast is None:
            return default

        if isinstance(value_to_cast, str):
            value_to_cast = value_to_cast.strip().strip("'\"")

        try:
            if return_type == bool:
                return value_to_cast.lower() in ['true', '1', 'yes', 'on']
            return return_type(value_to_cast)
        except (ValueError, TypeError):
            logger.warning(f"Could not cast '{value_to_cast}' for '{var_name}' to {return_type.__name__}. Using default: {default}")
            return default

    def get_duration(var_name: str, default: timedelta, section: str) -> Optional[timedelta]:
        raw = get_config_value(var_name, str, None, section=section)
        if raw is None:
            return default
        try:
            return parse_duration(raw)
        except ValueError as e:
            logger.error(f"{var_name}: {e}")
            return None

    # Logging
    app_state.log_level = get_config_value("LOG_LEVEL", str, "INFO", section='LOGGING').upper()
    app_state.log_to_file = get_config_value("LOG_TO_FILE", bool, False, section='LOGGING')

    # E3DC
    app_state.e3dc_host = get_config_value("E3DC_HOST", str, "", section='E3DC')
    app_state.e3dc_username = get_config_value("E3DC_USERNAME", str, "", section='E3DC')
    app_state.e3dc_password = get_config_value("E3DC_PASSWORD", str, "", section='E3DC')
    app_state.e3dc_key = get_config_value("E3DC_KEY", str, "", section='E3DC')
    app_state.interval = get_duration("INTERVAL", DEFAULT_INTERVAL, section='E3DC')
    app_state.statistic_update_interval = get_duration(
        "STATISTIC_UPDATE_INTERVAL", DEFAULT_STATISTIC_UPDATE_INTERVAL, section='E3DC'
    )

    # MQTT
    app_state.mqtt_root = get_config_value("MQTT_ROOT", str, DEFAULT_MQTT_ROOT, section='MQTT')
    app_state.mqtt_host = get_config_value("MQTT_HOST", str, "", section='MQTT')
    app_state.mqtt_port = get_config_value("MQTT_PORT", int, DEFAULT_MQTT_PORT, section='MQTT')
    app_state.mqtt_username = get_config_value("MQTT_USERNAME", str, "", section='MQTT')
    app_state.mqtt_password = get_config_value("MQTT_PASSWORD", str, "", section='MQTT')

    logger.info("Configuration loading complete.")
    logger.debug(f"Loaded configuration: {app_state!r}")

def validate_core_config(app_state: AppState):
    """
    Validates critical configuration settings after they have been loaded.

    This function verifies that:
    - The E3DC host and credentials and the RSCP key are set.
    - The MQTT host is set and the port is a valid TCP port.
    - Both polling intervals were parsed and are whole seconds, at least one.
      The scheduler aligns ticks on whole epoch seconds.

    Args:
        app_state (AppState): The application state object containing the configuration
                              to be validated.

    Raises:
        ConfigValidationError: Listing every problem found.
    """
    errors = []
    for var_name, value in (
        ("E3DC_HOST", app_state.e3dc_host),
        ("E3DC_USERNAME", app_state.e3dc_username),
        ("E3DC_PASSWORD", app_state.e3dc_password),
        ("E3DC_KEY", app_state.e3dc_key),
    ):
        if not value:
            errors.append(f"{var_name} must be configured in [E3DC].")

    if not app_state.mqtt_host:
        errors.append("MQTT_HOST must be configured in [MQTT].")
    if not 0 < app_state.mqtt_port < 65536:
        errors.append(f"MQTT_PORT must be between 1 and 65535 (got {app_state.mqtt_port}).")

    for var_name, value in (
        ("INTERVAL", app_state.interval),
        ("STATISTIC_UPDATE_INTERVAL", app_state.statistic_update_interval),
    ):
        if value is None:
            errors.append(f"{var_name} is not a valid duration.")
        elif value <= timedelta(0):
            errors.append(f"{var_name} must be > 0.")
        elif value < MIN_INTERVAL:
            errors.append(f"{var_name} must be at least {int(MIN_INTERVAL.total_seconds())} second.")
        elif value % timedelta(seconds=1):
            errors.append(f"{var_name} must be a whole number of seconds (got {value.total_seconds()}s).")

    if app_state.log_level not in _VALID_LOG_LEVELS:
        errors.append(f"LOG_LEVEL must be one of {', '.join(_VALID_LOG_LEVELS)} (got '{app_state.log_level}').")

    if errors:
        raise ConfigValidationError(errors)

    logger.info("Core configuration validated successfully.")
