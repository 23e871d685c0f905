# core/data_processor.py
"""
Mapping from E3DC snapshots to the records published over MQTT.

Each published record kind is described by an ordered field table: a list of
`(field name, accessor)` pairs. The accessor derives the published value from
a snapshot (power split, sign flip, rounding), and the table order is the
publish order. The MQTT service diffs two snapshots by evaluating the same
table on both, so adding a field means adding one line here.
"""
import math
from typing import Any, Callable, Dict, List, Sequence, Tuple

from plugins.e3dc.e3dc_models import SystemInfo


FieldTable = List[Tuple[str, Callable[[Any], Any]]]

PERCENT_DECIMALS = 1
ELECTRICAL_DECIMALS = 2


def round_half_away(value: float, decimals: int) -> float:
    """
    Rounds half away from zero (2.25 -> 2.3, -2.25 -> -2.3).

    Python's built-in `round()` rounds half to even; published values use the
    away-from-zero rule. Non-finite values are returned unchanged.
    """
    if not math.isfinite(value):
        return value
    multiplier = 10 ** decimals
    scaled = value * multiplier
    rounded = math.floor(scaled + 0.5) if scaled >= 0 else math.ceil(scaled - 0.5)
    return rounded / multiplier

def split_val(value: float) -> Tuple[float, float]:
    """
    Splits a signed directional power into `(positive part, negative part)`.

    Exactly one part is nonzero for a nonzero input and
    `positive - negative == value` always holds.
    """
    if value >= 0:
        return value, 0.0
    return 0.0, abs(value)

def _r1(value: float) -> float:
    return round_half_away(value, PERCENT_DECIMALS)

def _r2(value: float) -> float:
    return round_half_away(value, ELECTRICAL_DECIMALS)

def _r2_list(values: Sequence[float]) -> List[float]:
    return [_r2(v) for v in values]


# --- status (short cadence) ---
STATUS_FIELDS: FieldTable = [
    ("time", lambda s: s.time_stamp),
    ("additional", lambda s: -s.power_add),
    ("autarky", lambda s: _r1(s.autarky)),
    ("battery_charge", lambda s: split_val(s.power_battery)[0]),
    ("battery_discharge", lambda s: split_val(s.power_battery)[1]),
    ("battery_consumption", lambda s: s.power_battery),
    ("consumption_from_grid", lambda s: split_val(s.power_grid)[0]),
    ("export_to_grid", lambda s: split_val(s.power_grid)[1]),
    ("grid_production", lambda s: s.power_grid),
    ("house_consumption", lambda s: s.power_home),
    ("self_consumption", lambda s: _r1(s.self_consumption)),
    ("solar_production", lambda s: s.power_pv),
    ("solar_production_excess", lambda s: s.power_pv - s.power_home),
    ("state_of_charge", lambda s: s.battery_soc),
    ("wb_consumption", lambda s: s.power_wb),
]

# --- status_sums (statistics cadence) ---
DAILY_STATISTICS_FIELDS: FieldTable = [
    ("time", lambda d: d.time_stamp),
    ("autarky_today", lambda d: _r1(d.autarky)),
    ("self_consumption_today", lambda d: _r1(d.consumed_production)),
    ("solar_production_today", lambda d: d.solar_production),
    ("house_consumption_today", lambda d: d.consumption),
    ("battery_charge_today", lambda d: d.bat_power_in),
    ("battery_discharge_today", lambda d: d.bat_power_out),
    ("export_to_grid_today", lambda d: d.grid_power_in),
    ("consumption_from_grid_today", lambda d: d.grid_power_out),
    ("state_of_charge_today", lambda d: _r1(d.state_of_charge)),
    ("start", lambda d: d.start),
    ("timespan", lambda d: d.timespan),
]

# --- battery:<i> ---
# DCB records are published between these two tables.
BATTERY_FIELDS_HEAD: FieldTable = [
    ("time", lambda b: b.time_stamp),
    ("asoc", lambda b: b.asoc),
    ("charge_cycles", lambda b: b.charge_cycles),
    ("current", lambda b: _r2(b.current)),
    ("dcb_count", lambda b: b.dcb_count),
]

BATTERY_FIELDS_TAIL: FieldTable = [
    ("design_capacity", lambda b: b.design_capacity),
    ("device_name", lambda b: b.device_name),
    ("eod_voltage", lambda b: b.eod_voltage),
    ("error_code", lambda b: b.error_code),
    ("fcc", lambda b: b.fcc),
    ("index", lambda b: b.index),
    ("max_battery_voltage", lambda b: _r2(b.max_bat_voltage)),
    ("max_charge_current", lambda b: b.max_charge_current),
    ("max_discharge_current", lambda b: b.max_discharge_current),
    ("max_dcb_cell_temp", lambda b: _r2(b.max_dcb_cell_temp)),
    ("min_dcb_cell_temp", lambda b: _r2(b.min_dcb_cell_temp)),
    ("module_voltage", lambda b: _r2(b.module_voltage)),
    ("rc", lambda b: _r2(b.rc)),
    ("ready_for_shutdown", lambda b: b.ready_for_shutdown),
    ("rsoc", lambda b: _r2(b.rsoc)),
    ("rsoc_real", lambda b: _r2(b.rsoc_real)),
    ("status_code", lambda b: b.status_code),
    ("terminal_voltage", lambda b: _r2(b.terminal_voltage)),
    ("total_use_time", lambda b: b.total_use_time),
    ("total_discharge_time", lambda b: b.total_discharge_time),
    ("training_mode", lambda b: b.training_mode),
    ("usable_capacity", lambda b: _r2(b.usable_capacity)),
    ("usable_remaining_capacity", lambda b: _r2(b.usable_remaining_capacity)),
]

# --- battery:<i>/dcb:<j> ---
DCB_FIELDS: FieldTable = [
    ("current", lambda d: _r2(d.current)),
    ("current_avg_30s", lambda d: _r2(d.current_avg_30s)),
    ("cycle_count", lambda d: d.cycle_count),
    ("design_capacity", lambda d: d.design_capacity),
    ("design_voltage", lambda d: _r2(d.design_voltage)),
    ("device_name", lambda d: d.device_name),
    ("end_of_discharge", lambda d: d.end_of_discharge),
    ("error", lambda d: d.error),
    ("full_charge_capacity", lambda d: d.full_charge_capacity),
    ("fw_version", lambda d: d.fw_version),
    ("manufacture_date", lambda d: d.manufacture_date),
    ("manufacture_name", lambda d: d.manufacture_name),
    ("max_charge_current", lambda d: d.max_charge_current),
    ("max_charge_temperature", lambda d: d.max_charge_temperature),
    ("max_charge_voltage", lambda d: _r2(d.max_charge_voltage)),
    ("max_discharge_current", lambda d: d.max_discharge_current),
    ("min_charge_temperature", lambda d: d.min_charge_temperature),
    ("parallel_cell_count", lambda d: d.parallel_cell_count),
    ("sensor_count", lambda d: d.sensor_count),
    ("series_cell_count", lambda d: d.series_cell_count),
    ("pcb_version", lambda d: d.pcb_version),
    ("protocol_version", lambda d: d.protocol_version),
    ("remaining_capacity", lambda d: _r2(d.remaining_capacity)),
    ("serial_no", lambda d: d.serial_no),
    ("serial_code", lambda d: d.serial_code),
    ("soc", lambda d: _r2(d.soc)),
    ("soh", lambda d: d.soh),
    ("status", lambda d: d.status),
    ("temperatures", lambda d: _r2_list(d.cell_temperatures)),
    ("voltage", lambda d: _r2(d.voltage)),
    ("voltage_avg_30s", lambda d: _r2(d.voltage_avg_30s)),
    ("voltages", lambda d: _r2_list(d.cell_voltages)),
    ("warning", lambda d: d.warning),
]


def evaluate_fields(fields: FieldTable, record: Any) -> List[Tuple[str, Any]]:
    """Evaluates a field table against one snapshot, returning `(name, value)` pairs in table order."""
    return [(name, accessor(record)) for name, accessor in fields]

def build_info_document(info: SystemInfo) -> Dict[str, Any]:
    """
    Builds the one-off `info` document.

    Optional system specs the device did not report are kept as `None`
    (serialized as JSON `null`).
    """
    return {
        "time": info.time_stamp,
        "derate_percent": round_half_away(info.derate_percent, ELECTRICAL_DECIMALS),
        "derate_power": info.derate_power,
        "external_source_available": info.external_source_available,
        "installed_battery_capacity": info.installed_battery_capacity,
        "installed_peak_power": info.installed_peak_power,
        "ip_address": info.ip_address,
        "max_ac_power": info.max_ac_power,
        "mac_address": info.mac_address,
        "max_battery_charge_power": info.max_battery_charge_power,
        "max_battery_discharge_power": info.max_battery_discharge_power,
        "model": info.model,
        "release": info.software_release,
        "serial": info.serial_number,
        "discharge_start_power": info.discharge_start_power,
        "max_charge_power": info.max_charge_power,
        "max_discharge_power": info.max_discharge_power,
        "power_limits_used": info.power_limits_used,
        "power_save_enabled": info.power_save_enabled,
        "weather_forecast_mode": info.weather_forecast_mode,
        "weather_regulated_charge_enabled": info.weather_regulated_charge_enabled,
    }
