# services/mqtt_service.py
import paho.mqtt.client as mqtt
import logging
import threading
import time
from typing import Any, Dict, Optional, Sequence

from core.app_state import AppState
from core.data_processor import (
    BATTERY_FIELDS_HEAD,
    BATTERY_FIELDS_TAIL,
    DAILY_STATISTICS_FIELDS,
    DCB_FIELDS,
    STATUS_FIELDS,
    FieldTable,
    build_info_document,
    evaluate_fields,
)
from core.errors import MqttClientError, PublishFailure
from plugins.e3dc.e3dc_models import BatteryData, DailyStatistics, DcbData, Status, SystemInfo
from utils.helpers import PAYLOAD_FALSE, PAYLOAD_TRUE, format_payload, to_json_document

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 10
KEEPALIVE_SECONDS = 60
PUBLISH_QOS = 1


class MqttService:
    """
    Publishes E3DC snapshots to an MQTT broker, one retained message per field.

    The service keeps the last snapshot of every record kind it has published
    and only sends fields whose value changed since then. All topics live under
    `<root>/<device_id>`:

    - `online`: `true` after startup, `false` on shutdown and as last will
    - `info`: JSON document with the static system information
    - `status/<field>` and `status_sums/<field>`
    - `status/battery:<i>/<field>` and `status/battery:<i>/dcb:<j>/<field>`

    There is no reconnect. An unexpected disconnect is recorded and reported to
    the scheduler through `raise_if_failed()`, which ends the run.
    """
    def __init__(self, app_state: AppState, device_id: str):
        self.app_state = app_state
        self.device_id = device_id
        self.base_topic = f"{app_state.mqtt_root}/{device_id}"
        self.online_topic = f"{self.base_topic}/online"
        self.client: Optional[mqtt.Client] = None
        self._is_connected = threading.Event()
        self._connack_received = threading.Event()
        self._stopping = False
        self._fatal_error: Optional[str] = None

        self._last_status: Optional[Status] = None
        self._last_daily_statistics: Optional[DailyStatistics] = None
        self._last_batteries: Dict[int, BatteryData] = {}

    # --- lifecycle ---

    def start(self) -> None:
        """
        Connects to the broker and starts paho's network loop thread.

        Raises:
            MqttClientError: If the broker cannot be reached or refuses the
                connection within `CONNECT_TIMEOUT_SECONDS`.
        """
        if self.client is None:
            self._setup_client()

        host, port = self.app_state.mqtt_host, self.app_state.mqtt_port
        logger.info(f"MQTT Service: Connecting to broker at {host}:{port} as '{self.client_id}'...")
        try:
            self.client.connect(host, port, KEEPALIVE_SECONDS)
        except (ConnectionRefusedError, OSError, TimeoutError) as e:
            raise MqttClientError(f"Failed to connect to MQTT broker {host}:{port}: {e}") from e

        self.client.loop_start()
        self._connack_received.wait(timeout=CONNECT_TIMEOUT_SECONDS)
        if not self._is_connected.is_set():
            self.client.loop_stop()
            reason = self._fatal_error or "no CONNACK received"
            raise MqttClientError(f"MQTT broker {host}:{port} did not accept the connection: {reason}")
        logger.info("MQTT Service: Connected to broker.")

    def stop(self) -> None:
        """
        Publishes `false` to the online topic and disconnects cleanly.

        A clean disconnect suppresses the last will, so the explicit `false`
        keeps the retained state consistent. Errors are logged, not raised.
        """
        if self.client is None:
            return
        logger.info("MQTT Service: Stopping...")
        self._stopping = True
        if self._is_connected.is_set():
            try:
                info = self.client.publish(self.online_topic, PAYLOAD_FALSE, qos=PUBLISH_QOS, retain=True)
                info.wait_for_publish(timeout=2)
            except (RuntimeError, ValueError, OSError) as e:
                logger.error(f"MQTT Service: Error publishing offline state during stop: {e}")
        self.client.disconnect()
        self.client.loop_stop()
        self._is_connected.clear()
        logger.info("MQTT Service: Stopped.")

    @property
    def client_id(self) -> str:
        return f"e3dc-mqtt-{self.device_id}"

    def _setup_client(self) -> None:
        """
        Creates the paho client with the configured credentials and the
        `online = false` last will.
        """
        self.client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            protocol=mqtt.MQTTv311,
        )
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        if self.app_state.mqtt_username:
            self.client.username_pw_set(self.app_state.mqtt_username, self.app_state.mqtt_password)

        self.client.will_set(self.online_topic, PAYLOAD_FALSE, qos=PUBLISH_QOS, retain=True)

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        """
        Callback executed when the broker answers the CONNECT packet.

        Args:
            reason_code: paho `ReasonCode`; `is_failure` is set when the
                broker refused the connection.
        """
        self._connack_received.set()
        if reason_code.is_failure:
            self._fatal_error = f"connection refused ({reason_code})"
            self._is_connected.clear()
            logger.error(f"MQTT Service: Failed to connect. Reason: {reason_code}")
            return
        self._is_connected.set()

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        self._is_connected.clear()
        if self._stopping:
            return
        self._fatal_error = f"unexpectedly disconnected from broker ({reason_code})"
        logger.error(f"MQTT Service: {self._fatal_error}")
        self.app_state.main_threads_stop_event.set()

    def raise_if_failed(self) -> None:
        """Raises `MqttClientError` once the broker connection has been lost."""
        if self._fatal_error is not None:
            raise MqttClientError(self._fatal_error)

    # --- publishing ---

    def publish(self, topic: str, payload: str) -> None:
        """
        Publishes one retained QoS 1 message.

        Raises:
            PublishFailure: If paho rejects the message (e.g. not connected,
                outgoing queue full).
        """
        try:
            info = self.client.publish(topic, payload, qos=PUBLISH_QOS, retain=True)
        except (ValueError, RuntimeError) as e:
            raise PublishFailure(topic, str(e)) from e
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishFailure(topic, mqtt.error_string(info.rc))
        logger.debug(f"MQTT Service: {topic} = {payload}")

    def publish_online(self, online: bool) -> None:
        self.publish(self.online_topic, PAYLOAD_TRUE if online else PAYLOAD_FALSE)

    def publish_system_info(self, info: SystemInfo) -> None:
        self.publish(f"{self.base_topic}/info", to_json_document(build_info_document(info)))

    def publish_changes(self, context: str, fields: FieldTable, current: Any, previous: Optional[Any]) -> int:
        """
        Publishes every field of `current` whose value differs from `previous`.

        Fields are evaluated through the table on both snapshots, so comparison
        happens on the published (rounded, derived) values. Without a previous
        snapshot every field is published. Messages go out in table order to
        `<context>/<field>`.

        Returns:
            int: The number of messages published.
        """
        previous_values = dict(evaluate_fields(fields, previous)) if previous is not None else {}
        published = 0
        for name, value in evaluate_fields(fields, current):
            if previous is not None and previous_values.get(name) == value:
                continue
            self.publish(f"{context}/{name}", format_payload(value))
            published += 1
        return published

    def publish_status(self, status: Status) -> int:
        count = self.publish_changes(f"{self.base_topic}/status", STATUS_FIELDS, status, self._last_status)
        self._last_status = status
        return count

    def publish_daily_statistics(self, statistics: DailyStatistics) -> int:
        count = self.publish_changes(
            f"{self.base_topic}/status_sums", DAILY_STATISTICS_FIELDS, statistics, self._last_daily_statistics
        )
        self._last_daily_statistics = statistics
        return count

    def publish_battery_data(self, batteries: Sequence[BatteryData]) -> int:
        """
        Publishes the changed fields of every battery and its DCBs.

        Batteries are matched with the previous poll by `index`, DCBs by their
        index within the battery. A battery missing from `batteries` is simply
        not published; nothing is retracted.
        """
        count = 0
        for battery in batteries:
            previous = self._last_batteries.get(battery.index)
            context = f"{self.base_topic}/status/battery:{battery.index}"
            count += self.publish_changes(context, BATTERY_FIELDS_HEAD, battery, previous)

            previous_dcbs: Dict[int, DcbData] = {d.index: d for d in previous.dcbs} if previous else {}
            for dcb in battery.dcbs:
                count += self.publish_changes(f"{context}/dcb:{dcb.index}", DCB_FIELDS, dcb, previous_dcbs.get(dcb.index))

            count += self.publish_changes(context, BATTERY_FIELDS_TAIL, battery, previous)

        self._last_batteries = {b.index: b for b in batteries}
        return count

    def settle(self, seconds: float) -> None:
        """Gives the broker a moment after connecting before the first publish."""
        time.sleep(seconds)
