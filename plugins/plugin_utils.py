# plugins/plugin_utils.py
import time
import socket
import logging
from typing import Tuple, Optional

def check_tcp_port(host: str, port: int, timeout: float = 2.0, logger_instance: Optional[logging.Logger] = None) -> Tuple[bool, float, Optional[str]]:
    """
    Checks whether a TCP port on `host` accepts connections.

    Used before opening the RSCP session so that an unreachable device or a
    closed port is reported as such, instead of as a failed login.

    Args:
        host (str): The hostname or IP address to connect to.
        port (int): The TCP port number to check.
        timeout (float): The connection timeout in seconds.
        logger_instance (Optional[logging.Logger]): Logger for debug messages.
            If None, the module logger is used.

    Returns:
        A tuple containing:
        - bool: True if the connection succeeded.
        - float: The connect latency in milliseconds, or -1.0 on failure.
        - Optional[str]: An error message if the connection failed, otherwise None.
    """
    effective_logger = logger_instance if logger_instance else logging.getLogger(__name__)
    effective_logger.debug(f"TCP Check: Connecting to {host}:{port} with timeout {timeout}s")
    start_time = time.monotonic()
    try:
        with socket.create_connection((host, port), timeout=timeout):
            latency_ms = (time.monotonic() - start_time) * 1000
            effective_logger.debug(f"TCP Check: {host}:{port} reachable. Latency: {latency_ms:.2f} ms")
            return True, latency_ms, None
    except socket.timeout:
        effective_logger.debug(f"TCP Check: {host}:{port} timeout.")
        return False, -1.0, "Timeout"
    except OSError as e:
        effective_logger.debug(f"TCP Check: {host}:{port} socket error: {e}")
        return False, -1.0, str(e)
