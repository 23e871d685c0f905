# plugins/e3dc/e3dc_models.py
"""Typed snapshots assembled from RSCP responses."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional


@dataclass(frozen=True)
class SystemInfoStatic:
    """Identity and limits read once when the client connects."""
    serial_number: str
    model: str
    mac_address: str
    installed_peak_power: int
    derate_at_percent_value: float
    derate_at_power_value: int
    ext_source_available: bool

    @property
    def device_id(self) -> str:
        return f"{self.model}-{self.serial_number}"


@dataclass
class SystemInfo:
    time_stamp: datetime
    serial_number: str
    model: str
    mac_address: str
    ip_address: str
    software_release: str
    installed_peak_power: int
    installed_battery_capacity: Optional[int]
    max_ac_power: Optional[int]
    max_battery_charge_power: Optional[int]
    max_battery_discharge_power: Optional[int]
    derate_percent: float
    derate_power: int
    max_charge_power: int
    max_discharge_power: int
    discharge_start_power: int
    power_limits_used: bool
    power_save_enabled: bool
    weather_forecast_mode: int
    weather_regulated_charge_enabled: bool
    external_source_available: bool


@dataclass
class Status:
    time_stamp: datetime
    power_pv: float
    power_battery: float
    power_grid: float
    power_home: float
    power_wb: float
    power_add: float
    battery_soc: float
    autarky: float
    self_consumption: float


@dataclass(frozen=True)
class BatteryInfo:
    """Identity of one battery, discovered once at startup. `index` is the correlation key."""
    index: int
    device_name: str
    param_bat_number: int
    manufacturer_name: str
    serialno: int
    instance_descriptor: str
    dcb_count: int


@dataclass
class DcbData:
    index: int
    current: float
    current_avg_30s: float
    voltage: float
    voltage_avg_30s: float
    soc: float
    soh: float
    cycle_count: float
    design_capacity: float
    design_voltage: float
    full_charge_capacity: float
    remaining_capacity: float
    max_charge_voltage: float
    max_charge_current: float
    max_discharge_current: float
    end_of_discharge: float
    max_charge_temperature: float
    min_charge_temperature: float
    device_name: str
    manufacture_name: str
    manufacture_date: float
    serial_code: str
    serial_no: float
    fw_version: float
    pcb_version: float
    protocol_version: float
    error: float
    warning: float
    status: float
    series_cell_count: int
    parallel_cell_count: int
    sensor_count: int
    cell_temperatures: List[float] = field(default_factory=list)
    cell_voltages: List[float] = field(default_factory=list)


@dataclass
class BatteryData:
    index: int
    time_stamp: datetime
    rsoc: float
    rsoc_real: float
    asoc: float
    current: float
    module_voltage: float
    terminal_voltage: float
    max_bat_voltage: float
    eod_voltage: float
    fcc: float
    rc: float
    design_capacity: float
    usable_capacity: float
    usable_remaining_capacity: float
    max_charge_current: float
    max_discharge_current: float
    max_dcb_cell_temp: float
    min_dcb_cell_temp: float
    status_code: float
    error_code: float
    charge_cycles: float
    total_use_time: int
    total_discharge_time: int
    device_name: str
    param_bat_number: int
    manufacturer_name: str
    serialno: int
    instance_descriptor: str
    dcb_count: int
    ready_for_shutdown: bool
    training_mode: bool
    dcbs: List[DcbData] = field(default_factory=list)


@dataclass
class DailyStatistics:
    time_stamp: datetime
    autarky: float
    consumed_production: float
    solar_production: float
    consumption: float
    bat_power_in: float
    bat_power_out: float
    grid_power_in: float
    grid_power_out: float
    state_of_charge: float
    start: datetime
    timespan: timedelta
