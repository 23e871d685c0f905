"""
Main entry point for the E3DC MQTT bridge.

This script orchestrates the application lifecycle:
- Parses the command line and loads and validates the configuration.
- Sets up logging.
- Connects to the E3DC storage system over local RSCP and reads its identity.
- Connects to the MQTT broker and announces the device (`online`, `info`).
- Runs the dual-interval scheduler that polls and publishes changed values.
- Handles graceful shutdown on SIGINT/SIGTERM signals.

Any E3DC, MQTT or configuration error is fatal: it is logged and the process
exits with status 1, leaving restarts to the service supervisor.
"""
import argparse
import logging
from logging.handlers import RotatingFileHandler
import pathlib
import signal
import sys
import threading
from typing import Callable, List, Optional

from core.app_state import AppState
from core.config_loader import load_configuration, validate_core_config
from core.constants import *
from core.errors import ConfigError, E3dcError, MqttError
from core.scheduler import DualIntervalScheduler
from plugins.e3dc.e3dc_client import E3dcClient
from plugins.e3dc.rscp_transport import RscpTransport
from services.mqtt_service import MqttService

# Application version
__version__ = APP_VERSION


def setup_logging(app_state: AppState):
    """
    Sets up logging to console and, optionally, a rotating file.

    The pye3dc library logger is capped at WARNING so that its per-frame
    debug output does not drown the bridge's own messages.

    Args:
        app_state: The application state object containing the loaded config.
    """
    log_levels = {
        "DEBUG": logging.DEBUG, "INFO": logging.INFO,
        "WARNING": logging.WARNING, "ERROR": logging.ERROR, "CRITICAL": logging.CRITICAL,
    }
    effective_log_level = log_levels.get(app_state.log_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(effective_log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter('%(asctime)s %(levelname)-8s [%(threadName)s] %(name)s: %(message)s')

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if app_state.log_to_file:
        log_file_path = pathlib.Path(__file__).parent / LOG_FILE_NAME

        file_handler = RotatingFileHandler(
            log_file_path, maxBytes=5*1024*1024, backupCount=3, encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logging.info(f"Logging to file: {log_file_path}")

    logging.getLogger(E3DC_LIBRARY_LOGGER_NAME).setLevel(max(effective_log_level, logging.WARNING))
    logging.info(f"Logging level set to {app_state.log_level}.")


def graceful_exit(app_state: AppState) -> Callable[[int, object | None], None]:
    """
    Creates a signal handler function to ensure a clean shutdown.

    This function, when called by a signal (like SIGINT/Ctrl-C), will set
    the application's running flag to False and wake the scheduler, which then
    returns normally so the shutdown path can publish `online = false`.

    Args:
        app_state: The global application state.

    Returns:
        A signal handler function.
    """
    def handler(signum, frame):
        if not app_state.running:
            return
        logger = logging.getLogger(CORE_LOGGER_NAME)
        logger.warning(f"Shutdown signal ({signal.Signals(signum).name}) received. Cleaning up...")
        app_state.running = False
        app_state.main_threads_stop_event.set()
    return handler


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    script_dir = pathlib.Path(__file__).parent.resolve()
    parser = argparse.ArgumentParser(description=f"{APP_NAME}: publishes E3DC storage data to MQTT.")
    parser.add_argument(
        "-c", "--config",
        default=str(script_dir / CONFIG_FILE_NAME),
        help=f"Path to the configuration file (default: {CONFIG_FILE_NAME} next to this script).",
    )
    return parser.parse_args(argv)


def run(app_state: AppState) -> None:
    """
    Connects both sides of the bridge and runs the scheduler until shutdown.

    Raises:
        E3dcError: On any RSCP connection, query or decoding failure.
        MqttError: On any broker connection or publish failure.
    """
    logger = logging.getLogger(CORE_LOGGER_NAME)

    transport = RscpTransport(
        app_state.e3dc_host,
        app_state.e3dc_username,
        app_state.e3dc_password,
        app_state.e3dc_key,
    )
    mqtt_service: Optional[MqttService] = None
    try:
        e3dc_client = E3dcClient(transport)
        system_info = e3dc_client.get_system_info()
        device_id = e3dc_client.device_id
        logger.info(f"Connected to {system_info.model} (serial {system_info.serial_number}, release {system_info.software_release}).")
        logger.info(f"  Device ID: {device_id}")
        logger.info(f"  Interval: {app_state.interval}")
        logger.info(f"  Statistics Interval: {app_state.statistic_update_interval}")

        mqtt_service = MqttService(app_state, device_id)
        mqtt_service.start()
        mqtt_service.settle(STARTUP_SETTLE_SECONDS)
        mqtt_service.publish_online(True)
        mqtt_service.publish_system_info(system_info)

        def status_task():
            mqtt_service.publish_status(e3dc_client.get_status())

        def statistics_task():
            mqtt_service.publish_daily_statistics(
                e3dc_client.get_daily_statistics(app_state.statistic_update_interval)
            )
            mqtt_service.publish_battery_data(e3dc_client.get_battery_data())

        scheduler = DualIntervalScheduler(
            app_state.interval,
            app_state.statistic_update_interval,
            status_task,
            statistics_task,
            stop_event=app_state.main_threads_stop_event,
            is_running=lambda: app_state.running,
            health_check=mqtt_service.raise_if_failed,
        )
        logger.info("Main loop started. Press Ctrl+C to stop.")
        scheduler.run()
    finally:
        logger.info("Shutting down...")
        if mqtt_service is not None:
            mqtt_service.stop()
        transport.disconnect()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    app_state = AppState(version=__version__)
    logger = logging.getLogger(CORE_LOGGER_NAME)
    # the scheduler runs in the main thread
    threading.current_thread().name = MAIN_THREAD_NAME

    try:
        load_configuration(args.config, app_state)
        setup_logging(app_state)
        validate_core_config(app_state)
    except ConfigError as e:
        if not logging.getLogger().handlers:
            logging.basicConfig(level=logging.INFO, stream=sys.stdout)
        logger.critical(f"{e}. Exiting.")
        return 1

    logger.info(f"--- Starting {APP_NAME} v{__version__} ---")

    signal.signal(signal.SIGINT, graceful_exit(app_state))  # Handle Ctrl-C
    signal.signal(signal.SIGTERM, graceful_exit(app_state)) # Handle systemctl stop, docker stop

    try:
        run(app_state)
    except (E3dcError, MqttError) as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        return 1

    logger.info(f"--- {APP_NAME} v{__version__} Finished ---")
    return 0


if __name__ == "__main__":
    sys.exit(main())
