# plugins/e3dc/e3dc_client.py
"""
E3DC Snapshot Client

Builds typed snapshots (system info, status, battery/DCB data, daily sums) from
RSCP responses. All requests go through a `ProtocolProvider`; all field access
goes through the typed getters in `rscp_navigator`.

Every snapshot is all-or-nothing. A missing tag, an empty value or a value of an
impossible type raises an `E3dcError` and no partial record is returned, so a
consumer keeps its previous snapshot instead of publishing a half-wrong one.

Startup work (battery discovery and static system values) happens once in the
constructor and is cached for the lifetime of the client.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from core.errors import E3dcError, MissingValueError, QueryFailure
from plugins.plugin_interface import ProtocolProvider, Response
from plugins.e3dc.e3dc_models import (
    BatteryData, BatteryInfo, DailyStatistics, DcbData, Status, SystemInfo, SystemInfoStatic
)
from plugins.e3dc.rscp_navigator import (
    container_items, get_bool, get_integer, get_items, get_items_with_tag, get_number, get_string
)
from plugins.e3dc.rscp_values import DynamicValue, TaggedItem, to_float
from plugins.e3dc.e3dc_plugin_constants import *

logger = logging.getLogger(__name__)


# --- Derived-field policies ---

def strip_serial_prefix(serial: str) -> str:
    """Drops the four-character production prefix the device reports in front of the serial number."""
    return serial[SERIAL_PREFIX_LENGTH:] if len(serial) > SERIAL_PREFIX_LENGTH else serial

def identify_model(serial_number: str) -> str:
    """Maps a prefix-stripped serial number to the E3DC model name, or "N/A"."""
    for prefixes, model in E3DC_MODEL_PREFIXES:
        if serial_number.startswith(prefixes):
            return model
    return UNKNOWN_MODEL

def reconcile_cell_temperatures(raw: Sequence[float], sensor_count: int) -> List[float]:
    """
    Selects the real sensor readings from a DCB temperature buffer.

    The buffer is longer than the number of fitted sensors and is padded with
    zeros. With a reported sensor count the leading entries are used; without one
    the placeholders are dropped by discarding readings below 10 °C.
    """
    if sensor_count > 0:
        return list(raw[:sensor_count])
    return [t for t in raw if t >= MIN_VALID_CELL_TEMP_C]

def reconcile_cell_voltages(raw: Sequence[float], series_cell_count: int) -> List[float]:
    if series_cell_count > 0:
        return list(raw[:series_cell_count])
    return list(raw)

def effective_series_cell_count(series_cell_count: int, voltages: Sequence[float]) -> int:
    # Some firmware reports 0; fall back to the number of voltages actually returned.
    # The parallel cell count has no equivalent source and is passed through as reported.
    return series_cell_count if series_cell_count > 0 else len(voltages)

def select_daily_window(now: datetime, statistic_interval: timedelta) -> Tuple[datetime, timedelta]:
    """
    Chooses the aggregation window for the daily sums.

    Normally this is today so far, `[midnight UTC, now)`. Right after midnight that
    window is shorter than one statistics interval and nearly empty, so yesterday's
    last hour (23:00 to 00:00 UTC) is reported instead.

    Returns:
        A `(start, timespan)` tuple. The timespan is in whole seconds.
    """
    now = now.astimezone(timezone.utc)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed = timedelta(seconds=int((now - midnight).total_seconds()))
    if elapsed < statistic_interval:
        one_hour = timedelta(hours=1)
        return midnight - one_hour, one_hour
    return midnight, elapsed

def _request(tag: int) -> TaggedItem:
    return TaggedItem(tag)

def _container(tag: int, children: List[TaggedItem]) -> TaggedItem:
    return TaggedItem(tag, DynamicValue.container(children))

def _battery_index_item(index: int) -> TaggedItem:
    return TaggedItem(BAT_INDEX, DynamicValue.unsigned(index, 16))


class E3dcClient:
    """
    Assembles domain snapshots from an E3DC system.

    Construction connects the provider, discovers the installed batteries and
    reads the static system values. Any failure there raises; there is no
    partially-initialized client.
    """

    def __init__(self, provider: ProtocolProvider):
        self.provider = provider
        logger.info(f"Connecting to E3DC at {provider.host} via {provider.name}...")
        if not provider.is_connected:
            provider.connect()
        self.batteries: List[BatteryInfo] = self._discover_batteries()
        self.info: SystemInfoStatic = self._get_system_info_static()
        logger.info(f"E3DC identified as {self.info.model} (serial {self.info.serial_number}), "
                    f"{len(self.batteries)} battery(ies). Device ID: {self.device_id}")

    @property
    def device_id(self) -> str:
        return self.info.device_id

    def disconnect(self) -> None:
        self.provider.disconnect()

    def _send(self, items: List[TaggedItem]) -> Response:
        response = self.provider.send(items)
        if not response.items:
            raise QueryFailure("Response has no data")
        return response

    # --- Startup ---

    def _get_system_info_static(self) -> SystemInfoStatic:
        response = self._send([
            _request(EMS_REQ_DERATE_AT_PERCENT_VALUE),
            _request(EMS_REQ_DERATE_AT_POWER_VALUE),
            _request(EMS_REQ_INSTALLED_PEAK_POWER),
            _request(EMS_REQ_EXT_SRC_AVAILABLE),
            _request(INFO_REQ_SERIAL_NUMBER),
            _request(INFO_REQ_MAC_ADDRESS),
        ])
        items = response.items

        serial_number = strip_serial_prefix(get_string(items, response_tag(INFO_REQ_SERIAL_NUMBER)))
        return SystemInfoStatic(
            serial_number=serial_number,
            model=identify_model(serial_number),
            mac_address=get_string(items, response_tag(INFO_REQ_MAC_ADDRESS)),
            installed_peak_power=get_integer(items, response_tag(EMS_REQ_INSTALLED_PEAK_POWER)),
            derate_at_percent_value=get_number(items, response_tag(EMS_REQ_DERATE_AT_PERCENT_VALUE)),
            derate_at_power_value=get_integer(items, response_tag(EMS_REQ_DERATE_AT_POWER_VALUE)),
            ext_source_available=get_bool(items, response_tag(EMS_REQ_EXT_SRC_AVAILABLE)),
        )

    def _discover_batteries(self) -> List[BatteryInfo]:
        """
        Reads the identity of every installed battery.

        One request returns all battery identities; each battery then needs one
        more request for its DCB count. The count is cached here because the
        value returned with the periodic battery data is unreliable.
        """
        response = self._send([_request(BAT_REQ_AVAILABLE_BATTERIES)])
        available = get_items(response.items, response_tag(BAT_REQ_AVAILABLE_BATTERIES))

        batteries = []
        for entry in available:
            spec = container_items(entry)
            index = get_integer(spec, BAT_INDEX)
            dcb_count = self._get_dcb_count(index)
            battery = BatteryInfo(
                index=index,
                device_name=get_string(spec, BAT_DEVICE_NAME),
                param_bat_number=get_integer(spec, BAT_PARAM_BAT_NUMBER),
                manufacturer_name=get_string(spec, BAT_MANUFACTURER_NAME),
                serialno=get_integer(spec, BAT_SERIALNO),
                instance_descriptor=get_string(spec, BAT_INSTANCE_DESCRIPTOR),
                dcb_count=dcb_count,
            )
            logger.info(f"Found battery {battery.index}: {battery.device_name} "
                        f"({battery.manufacturer_name}) with {battery.dcb_count} DCB(s)")
            batteries.append(battery)
        return batteries

    def _get_dcb_count(self, battery_index: int) -> int:
        response = self._send([
            _container(BAT_REQ_DATA, [_battery_index_item(battery_index), _request(BAT_REQ_DCB_COUNT)])
        ])
        data = get_items(response.items, BAT_DATA)
        return get_integer(data, response_tag(BAT_REQ_DCB_COUNT))

    # --- Snapshots ---

    def get_system_info(self) -> SystemInfo:
        """Combines the cached static values with the live power settings and system specs."""
        response = self._send([
            _request(INFO_REQ_SW_RELEASE),
            _request(INFO_REQ_IP_ADDRESS),
            _request(EMS_REQ_GET_POWER_SETTINGS),
            _request(EMS_REQ_GET_SYS_SPECS),
        ])
        items = response.items
        settings = get_items(items, response_tag(EMS_REQ_GET_POWER_SETTINGS))
        specs = self._parse_sys_specs(get_items(items, response_tag(EMS_REQ_GET_SYS_SPECS)))

        return SystemInfo(
            time_stamp=response.timestamp,
            serial_number=self.info.serial_number,
            model=self.info.model,
            mac_address=self.info.mac_address,
            ip_address=get_string(items, response_tag(INFO_REQ_IP_ADDRESS)),
            software_release=get_string(items, response_tag(INFO_REQ_SW_RELEASE)),
            installed_peak_power=self.info.installed_peak_power,
            installed_battery_capacity=specs.get(SYS_SPEC_INSTALLED_BATTERY_CAPACITY),
            max_ac_power=specs.get(SYS_SPEC_MAX_AC_POWER),
            max_battery_charge_power=specs.get(SYS_SPEC_MAX_BAT_CHARGE_POWER),
            max_battery_discharge_power=specs.get(SYS_SPEC_MAX_BAT_DISCHARGE_POWER),
            derate_percent=self.info.derate_at_percent_value,
            derate_power=self.info.derate_at_power_value,
            max_charge_power=get_integer(settings, EMS_MAX_CHARGE_POWER),
            max_discharge_power=get_integer(settings, EMS_MAX_DISCHARGE_POWER),
            discharge_start_power=get_integer(settings, EMS_DISCHARGE_START_POWER),
            power_limits_used=get_bool(settings, EMS_POWER_LIMITS_USED),
            power_save_enabled=get_bool(settings, EMS_POWERSAVE_ENABLED),
            weather_forecast_mode=get_integer(settings, EMS_WEATHER_FORECAST_MODE),
            weather_regulated_charge_enabled=get_bool(settings, EMS_WEATHER_REGULATED_CHARGE_ENABLED),
            external_source_available=self.info.ext_source_available,
        )

    @staticmethod
    def _parse_sys_specs(spec_items: List[TaggedItem]) -> Dict[str, int]:
        """Reads the name/integer pairs of the system spec list. Entries without an integer value are skipped."""
        specs: Dict[str, int] = {}
        for entry in get_items_with_tag(spec_items, EMS_SYS_SPEC):
            try:
                fields = container_items(entry)
                specs[get_string(fields, EMS_SYS_SPEC_NAME)] = get_integer(fields, EMS_SYS_SPEC_VALUE_INT)
            except E3dcError as e:
                logger.debug(f"Skipping system spec entry: {e}")
        return specs

    def get_status(self) -> Status:
        response = self._send([_request(tag) for tag in STATUS_REQUEST_TAGS])
        items = response.items

        return Status(
            time_stamp=response.timestamp,
            power_pv=get_number(items, response_tag(EMS_REQ_POWER_PV)),
            power_battery=get_number(items, response_tag(EMS_REQ_POWER_BAT)),
            power_grid=get_number(items, response_tag(EMS_REQ_POWER_GRID)),
            power_home=get_number(items, response_tag(EMS_REQ_POWER_HOME)),
            power_wb=get_number(items, response_tag(EMS_REQ_POWER_WB_ALL)),
            power_add=get_number(items, response_tag(EMS_REQ_POWER_ADD)),
            battery_soc=get_number(items, response_tag(EMS_REQ_BAT_SOC)),
            autarky=get_number(items, response_tag(EMS_REQ_AUTARKY)),
            self_consumption=get_number(items, response_tag(EMS_REQ_SELF_CONSUMPTION)),
        )

    def get_battery_data(self) -> List[BatteryData]:
        """Returns one snapshot per battery found at startup, including all of its DCBs."""
        return [self._get_battery_data(battery) for battery in self.batteries]

    def _get_battery_data(self, battery: BatteryInfo) -> BatteryData:
        response = self._send([
            _container(BAT_REQ_DATA,
                       [_battery_index_item(battery.index)] + [_request(tag) for tag in BATTERY_DATA_REQUEST_TAGS])
        ])
        data = get_items(response.items, BAT_DATA)

        def number(request_tag: int) -> float:
            return get_number(data, response_tag(request_tag))

        return BatteryData(
            index=battery.index,
            time_stamp=response.timestamp,
            rsoc=number(BAT_REQ_RSOC),
            rsoc_real=number(BAT_REQ_RSOC_REAL),
            asoc=number(BAT_REQ_ASOC),
            current=number(BAT_REQ_CURRENT),
            module_voltage=number(BAT_REQ_MODULE_VOLTAGE),
            terminal_voltage=number(BAT_REQ_TERMINAL_VOLTAGE),
            max_bat_voltage=number(BAT_REQ_MAX_BAT_VOLTAGE),
            eod_voltage=number(BAT_REQ_EOD_VOLTAGE),
            fcc=number(BAT_REQ_FCC),
            rc=number(BAT_REQ_RC),
            design_capacity=number(BAT_REQ_DESIGN_CAPACITY),
            usable_capacity=number(BAT_REQ_USABLE_CAPACITY),
            usable_remaining_capacity=number(BAT_REQ_USABLE_REMAINING_CAPACITY),
            max_charge_current=number(BAT_REQ_MAX_CHARGE_CURRENT),
            max_discharge_current=number(BAT_REQ_MAX_DISCHARGE_CURRENT),
            max_dcb_cell_temp=number(BAT_REQ_MAX_DCB_CELL_TEMPERATURE),
            min_dcb_cell_temp=number(BAT_REQ_MIN_DCB_CELL_TEMPERATURE),
            status_code=number(BAT_REQ_STATUS_CODE),
            error_code=number(BAT_REQ_ERROR_CODE),
            charge_cycles=number(BAT_REQ_CHARGE_CYCLES),
            total_use_time=get_integer(data, response_tag(BAT_REQ_TOTAL_USE_TIME)),
            total_discharge_time=get_integer(data, response_tag(BAT_REQ_TOTAL_DISCHARGE_TIME)),
            device_name=battery.device_name,
            param_bat_number=battery.param_bat_number,
            manufacturer_name=battery.manufacturer_name,
            serialno=battery.serialno,
            instance_descriptor=battery.instance_descriptor,
            dcb_count=battery.dcb_count,
            ready_for_shutdown=get_bool(data, response_tag(BAT_REQ_READY_FOR_SHUTDOWN)),
            training_mode=get_bool(data, response_tag(BAT_REQ_TRAINING_MODE)),
            dcbs=[self.get_dcb_data(battery.index, dcb_index) for dcb_index in range(battery.dcb_count)],
        )

    @staticmethod
    def _extract_cell_values(cell_container: List[TaggedItem], cell_tag: int) -> List[float]:
        # <ALL_CELL_*> -> BAT_DATA -> repeated <cell_tag> items
        cells = get_items(cell_container, BAT_DATA)
        values = []
        for item in get_items_with_tag(cells, cell_tag):
            if item.value is None:
                raise MissingValueError(item.tag)
            values.append(to_float(item.value))
        return values

    def get_dcb_data(self, battery_index: int, dcb_index: int) -> DcbData:
        """Reads the info block and the cell temperature/voltage buffers of one DCB."""
        dcb_value = DynamicValue.unsigned(dcb_index, 16)
        response = self._send([
            _container(BAT_REQ_DATA, [
                _battery_index_item(battery_index),
                TaggedItem(BAT_REQ_DCB_ALL_CELL_TEMPERATURES, dcb_value),
                TaggedItem(BAT_REQ_DCB_ALL_CELL_VOLTAGES, dcb_value),
                TaggedItem(BAT_REQ_DCB_INFO, dcb_value),
            ])
        ])
        data = get_items(response.items, BAT_DATA)
        info = get_items(data, response_tag(BAT_REQ_DCB_INFO))

        sensor_count = get_integer(info, BAT_DCB_NR_SENSOR)
        series_cell_count = get_integer(info, BAT_DCB_NR_SERIES_CELL)
        parallel_cell_count = get_integer(info, BAT_DCB_NR_PARALLEL_CELL)

        raw_temperatures = self._extract_cell_values(
            get_items(data, response_tag(BAT_REQ_DCB_ALL_CELL_TEMPERATURES)), BAT_DCB_CELL_TEMPERATURE)
        raw_voltages = self._extract_cell_values(
            get_items(data, response_tag(BAT_REQ_DCB_ALL_CELL_VOLTAGES)), BAT_DCB_CELL_VOLTAGE)
        cell_temperatures = reconcile_cell_temperatures(raw_temperatures, sensor_count)
        cell_voltages = reconcile_cell_voltages(raw_voltages, series_cell_count)

        return DcbData(
            index=dcb_index,
            current=get_number(info, BAT_DCB_CURRENT),
            current_avg_30s=get_number(info, BAT_DCB_CURRENT_AVG_30S),
            voltage=get_number(info, BAT_DCB_VOLTAGE),
            voltage_avg_30s=get_number(info, BAT_DCB_VOLTAGE_AVG_30S),
            soc=get_number(info, BAT_DCB_SOC),
            soh=get_number(info, BAT_DCB_SOH),
            cycle_count=get_number(info, BAT_DCB_CYCLE_COUNT),
            design_capacity=get_number(info, BAT_DCB_DESIGN_CAPACITY),
            design_voltage=get_number(info, BAT_DCB_DESIGN_VOLTAGE),
            full_charge_capacity=get_number(info, BAT_DCB_FULL_CHARGE_CAPACITY),
            remaining_capacity=get_number(info, BAT_DCB_REMAINING_CAPACITY),
            max_charge_voltage=get_number(info, BAT_DCB_MAX_CHARGE_VOLTAGE),
            max_charge_current=get_number(info, BAT_DCB_MAX_CHARGE_CURRENT),
            max_discharge_current=get_number(info, BAT_DCB_MAX_DISCHARGE_CURRENT),
            end_of_discharge=get_number(info, BAT_DCB_END_OF_DISCHARGE),
            max_charge_temperature=get_number(info, BAT_DCB_CHARGE_HIGH_TEMPERATURE),
            min_charge_temperature=get_number(info, BAT_DCB_CHARGE_LOW_TEMPERATURE),
            device_name=get_string(info, BAT_DCB_DEVICE_NAME),
            manufacture_name=get_string(info, BAT_DCB_MANUFACTURE_NAME),
            manufacture_date=get_number(info, BAT_DCB_MANUFACTURE_DATE),
            serial_code=get_string(info, BAT_DCB_SERIALCODE),
            serial_no=get_number(info, BAT_DCB_SERIALNO),
            fw_version=get_number(info, BAT_DCB_FW_VERSION),
            pcb_version=get_number(info, BAT_DCB_PCB_VERSION),
            protocol_version=get_number(info, BAT_DCB_PROTOCOL_VERSION),
            error=get_number(info, BAT_DCB_ERROR),
            warning=get_number(info, BAT_DCB_WARNING),
            status=get_number(info, BAT_DCB_STATUS),
            series_cell_count=effective_series_cell_count(series_cell_count, cell_voltages),
            parallel_cell_count=parallel_cell_count,
            sensor_count=sensor_count,
            cell_temperatures=cell_temperatures,
            cell_voltages=cell_voltages,
        )

    def get_daily_statistics(self, statistic_interval: timedelta, now: Optional[datetime] = None) -> DailyStatistics:
        now = now or datetime.now(timezone.utc)
        start, timespan = select_daily_window(now, statistic_interval)
        logger.debug(f"Daily statistics window: {start.isoformat()} + {int(timespan.total_seconds())}s")
        return self.get_db_data_timestamp(start, timespan)

    def get_db_data_timestamp(self, start: datetime, timespan: timedelta) -> DailyStatistics:
        """Reads the device's history sums for `[start, start + timespan)`."""
        start_ts = int(start.timestamp())
        span_seconds = int(timespan.total_seconds())
        if start_ts < 0 or span_seconds < 0:
            raise QueryFailure(f"Invalid history window: start={start.isoformat()}, timespan={span_seconds}s")

        response = self._send([
            _container(DB_REQ_HISTORY_DATA_DAY, [
                TaggedItem(DB_REQ_HISTORY_TIME_START, DynamicValue.unsigned(start_ts, 64)),
                TaggedItem(DB_REQ_HISTORY_TIME_INTERVAL, DynamicValue.unsigned(span_seconds, 64)),
                TaggedItem(DB_REQ_HISTORY_TIME_SPAN, DynamicValue.unsigned(span_seconds, 64)),
            ])
        ])
        history = get_items(response.items, response_tag(DB_REQ_HISTORY_DATA_DAY))
        sums = get_items(history, DB_SUM_CONTAINER)

        return DailyStatistics(
            time_stamp=response.timestamp,
            autarky=get_number(sums, DB_AUTARKY),
            consumed_production=get_number(sums, DB_CONSUMED_PRODUCTION),
            solar_production=get_number(sums, DB_DC_POWER),
            consumption=get_number(sums, DB_CONSUMPTION),
            bat_power_in=get_number(sums, DB_BAT_POWER_IN),
            bat_power_out=get_number(sums, DB_BAT_POWER_OUT),
            grid_power_in=get_number(sums, DB_GRID_POWER_IN),
            grid_power_out=get_number(sums, DB_GRID_POWER_OUT),
            state_of_charge=get_number(sums, DB_BAT_CHARGE_LEVEL),
            start=start,
            timespan=timespan,
        )
